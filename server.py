"""Command-line entry point that serves the chat relay locally, on the LAN or through an ngrok tunnel."""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import socket
import sys
from typing import Optional

import ngrok
import uvicorn

from relay_module import RelayConfig, RelayLLMConfig
from relay_module.api import create_app

logger = logging.getLogger(__name__)

BACKEND_BINARY = "ollama"
DOWNLOAD_HINTS = {
    "win32": "Download: https://ollama.com/download/windows",
    "darwin": "Download: https://ollama.com/download/mac",
}
DEFAULT_DOWNLOAD_HINT = "Run: curl -fsSL https://ollama.com/install.sh | sh"
TUNNEL_TOKEN_ENV = "NGROK_AUTHTOKEN"


# ---------- Environment ----------
def check_backend_binary(binary: str = BACKEND_BINARY, platform: Optional[str] = None) -> bool:
    """Log whether the backend executable is on PATH; never fatal."""
    if shutil.which(binary):
        logger.info("%s found.", binary)
        return True
    platform = platform or sys.platform
    logger.warning("%s is not installed or not in your PATH.", binary)
    logger.warning(DOWNLOAD_HINTS.get(platform, DEFAULT_DOWNLOAD_HINT))
    return False


def get_local_ip() -> str:
    """Return the address of the interface used for outbound traffic."""
    # UDP connect sends nothing; it only selects a route.
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect(("8.8.8.8", 80))
        return sock.getsockname()[0]


def resolve_bind(mode: str) -> tuple[str, str]:
    """Return ``(bind_host, advertised_host)`` for a serving mode."""
    if mode == "lan":
        try:
            advertised = get_local_ip()
        except OSError:
            logger.warning("Could not determine LAN address; advertising 0.0.0.0")
            advertised = "0.0.0.0"
        return "0.0.0.0", advertised
    return "localhost", "localhost"


def open_tunnel(port: int, environ: Optional[dict] = None) -> str:
    """Expose the local port through ngrok and return the public URL.

    The authtoken is read from ``NGROK_AUTHTOKEN``; an empty token raises
    ``RuntimeError`` before any connection to ngrok is attempted.
    """
    environ = os.environ if environ is None else environ
    if not environ.get(TUNNEL_TOKEN_ENV):
        raise RuntimeError(f"{TUNNEL_TOKEN_ENV} is empty. Please export it before running.")

    logger.info("Token found. Connecting to ngrok...")
    listener = ngrok.forward(f"localhost:{port}", authtoken_from_env=True)
    url = listener.url()
    logger.info("Ingress established at: %s", url)
    return url


# ---------- CLI ----------
def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Relay WebSocket chat clients to a streaming LLM backend.")
    parser.add_argument(
        "mode",
        nargs="?",
        default="local",
        choices=["local", "lan", "ngrok"],
        help="Serve on localhost only, on all interfaces, or on localhost behind an ngrok tunnel.",
    )
    parser.add_argument("--port", type=int, default=8080, help="Port to bind.")
    parser.add_argument("--log_dir", help="Directory for application logs.")
    parser.add_argument("--llm_endpoint", default="http://localhost:11434/api/chat", help="Streaming chat endpoint.")
    parser.add_argument("--llm_model", default="gemma3:1b", help="Model name sent with every request.")
    parser.add_argument(
        "--request_timeout",
        type=float,
        default=None,
        help="Timeout for upstream calls in seconds (default: none).",
    )
    parser.add_argument("--window_size", type=int, default=10, help="Recent turns sent upstream with each message.")
    parser.add_argument("--system_prompt", help="Override the persona prompt sent as the first message.")
    parser.add_argument("--temperature", type=float, default=0.5, help="Sampling temperature.")
    parser.add_argument("--top_k", type=int, default=1, help="Top-k sampling cutoff.")
    parser.add_argument("--top_p", type=float, default=0.9, help="Nucleus sampling cutoff.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RelayConfig:
    relay_cfg = RelayConfig(
        llm=RelayLLMConfig(
            endpoint=args.llm_endpoint,
            model=args.llm_model,
            request_timeout=args.request_timeout,
        ),
        window_size=args.window_size,
        temperature=args.temperature,
        top_k=args.top_k,
        top_p=args.top_p,
    )
    if args.system_prompt:
        relay_cfg.system_prompt = args.system_prompt
    return relay_cfg


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    if not args.log_dir:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    app = create_app(build_config(args), log_dir=args.log_dir)
    check_backend_binary()

    host, advertised = resolve_bind(args.mode)
    if args.mode == "ngrok":
        try:
            open_tunnel(args.port)
        except RuntimeError as exc:
            logger.error("%s", exc)
            raise SystemExit(1) from exc
    logger.info("%s relay running at http://%s:%d", args.mode.upper(), advertised, args.port)
    uvicorn.run(app, host=host, port=args.port)


if __name__ == "__main__":
    main()
