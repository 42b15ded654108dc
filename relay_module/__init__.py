"""Streaming chat relay between WebSocket clients and an Ollama-style backend.

Each WebSocket connection gets its own conversation memory.  User messages
are forwarded to the backend together with a fixed system prompt and a
sliding window of recent turns, and the backend's tokens are pushed back to
the client as they arrive.  ``relay_module.api.create_app`` builds the HTTP
service; ``relay_module.service.RelayService`` can be embedded directly.
"""

from .config import RelayConfig, RelayLLMConfig
from .service import RelayService

__all__ = ["RelayConfig", "RelayLLMConfig", "RelayService"]
