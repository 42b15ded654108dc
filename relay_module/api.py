"""FastAPI entry point for the relay: chat page, health check and the WebSocket relay."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Union

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.responses import FileResponse
from fastapi.websockets import WebSocketState

from .config import RelayConfig
from .frames import WebSocketChannel
from .llm_client import OllamaStreamClient
from .service import CLOSE_INTERNAL_ERROR, RelayService
from .utils import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_PAGE = Path(__file__).resolve().parent / "static" / "index.html"


def create_app(
    relay_config: Optional[RelayConfig] = None,
    *,
    client: Optional[OllamaStreamClient] = None,
    log_dir: Optional[str] = None,
    page_path: Optional[Union[str, Path]] = None,
) -> FastAPI:
    if log_dir:
        setup_logging(log_dir, logging.INFO)

    service = RelayService(relay_config, client=client)
    page = Path(page_path) if page_path else DEFAULT_PAGE

    app = FastAPI(title="Chat Relay", version="0.1.0")
    app.state.service = service

    @app.get("/", include_in_schema=False)
    async def home():
        if not page.is_file():
            logger.error("Chat page missing at %s", page)
            raise HTTPException(status_code=500, detail=f"Could not load page: {page.name}")
        return FileResponse(page, media_type="text/html")

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.websocket("/ws")
    async def relay(websocket: WebSocket) -> None:
        await websocket.accept()
        session = app.state.service.open_session(WebSocketChannel(websocket))
        logger.info("Accepted relay connection from %s", websocket.client)
        try:
            await session.run()
        except Exception:
            logger.exception("Relay session failed")
            session.close_code = CLOSE_INTERNAL_ERROR
        finally:
            await _release(websocket, session.close_code)

    return app


async def _release(websocket: WebSocket, code: int) -> None:
    if websocket.client_state != WebSocketState.CONNECTED:
        return
    if websocket.application_state != WebSocketState.CONNECTED:
        return
    try:
        await websocket.close(code=code)
    except (RuntimeError, OSError):
        logger.debug("Connection already gone while closing", exc_info=True)
