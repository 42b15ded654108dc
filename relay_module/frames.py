"""Wire frames exchanged with relay clients and the WebSocket adapter carrying them."""

from __future__ import annotations

import json
import logging

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from .errors import ClientDisconnected, ClientProtocolError

logger = logging.getLogger(__name__)


class InboundFrame(BaseModel):
    message: str = Field(..., description="User message to relay upstream.")


class OutboundFrame(BaseModel):
    chunk: str = Field("", description="Partial assistant text or a diagnostic.")
    done: bool = Field(False, description="True on the single terminal frame of a cycle.")


class WebSocketChannel:
    """Translate between WebSocket messages and relay frames."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def receive_message(self) -> str:
        """Wait for the next inbound frame and return its message text."""
        event = await self.websocket.receive()
        if event["type"] == "websocket.disconnect":
            raise ClientDisconnected(f"client closed the connection (code={event.get('code', 1000)})")

        raw = event.get("text")
        if raw is None:
            raw = event.get("bytes")
        try:
            payload = json.loads(raw) if raw is not None else None
        except (ValueError, RecursionError) as exc:
            raise ClientProtocolError(f"inbound frame is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ClientProtocolError("inbound frame must be a JSON object")

        try:
            frame = InboundFrame(**payload)
        except ValueError as exc:
            raise ClientProtocolError(f"invalid inbound frame: {exc}") from exc
        return frame.message

    async def send_frame(self, frame: OutboundFrame) -> None:
        try:
            await self.websocket.send_json(frame.model_dump())
        except (WebSocketDisconnect, OSError) as exc:
            raise ClientDisconnected("client went away while sending a frame") from exc
