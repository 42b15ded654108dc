"""Per-connection relay between a client channel and the streaming backend.

Upstream reads are blocking ``requests`` calls, so each pending read occupies
one worker of AnyIO's default thread limiter (40 threads).  More concurrent
streams than that queue behind each other until a worker frees up.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

from fastapi.concurrency import iterate_in_threadpool

from .config import RelayConfig
from .errors import ClientDisconnected, ClientProtocolError, TransportError
from .frames import OutboundFrame, WebSocketChannel
from .llm_client import OllamaStreamClient
from .memory import Role, SessionMemory, Turn

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_INVALID_PAYLOAD = 1007
CLOSE_INTERNAL_ERROR = 1011


class SessionState(str, Enum):
    AWAITING_INPUT = "awaiting_input"
    STREAMING_RESPONSE = "streaming_response"
    CLOSED = "closed"


class RelaySession:
    """Drive request/response cycles for one client connection.

    Cycles are strictly sequential: the next inbound frame is only read after
    the previous cycle's terminal frame was sent.
    """

    def __init__(
        self,
        channel: WebSocketChannel,
        client: OllamaStreamClient,
        config: RelayConfig,
        *,
        memory: Optional[SessionMemory] = None,
    ) -> None:
        self.channel = channel
        self.client = client
        self.config = config
        self.memory = memory if memory is not None else SessionMemory()
        self.system_turn = Turn(Role.SYSTEM, config.system_prompt)
        self.state = SessionState.AWAITING_INPUT
        self.close_code = CLOSE_NORMAL
        self.cycles = 0

    async def run(self) -> None:
        """Serve cycles until the client disconnects or breaks the protocol."""
        try:
            while True:
                message = await self.channel.receive_message()
                await self.relay(message)
        except ClientDisconnected as exc:
            logger.info("Client disconnected after %d cycle(s): %s", self.cycles, exc)
        except ClientProtocolError as exc:
            logger.warning("Closing session on protocol error: %s", exc)
            self.close_code = CLOSE_INVALID_PAYLOAD
        finally:
            self.state = SessionState.CLOSED

    async def relay(self, message: str) -> None:
        """Run one cycle: forward fragments for ``message`` and send the terminal frame."""
        self.memory.append(Turn(Role.USER, message))
        view = self.memory.view(self.config.window_size, self.system_turn)
        self.state = SessionState.STREAMING_RESPONSE
        logger.debug("Relaying message with %d prompt turn(s), %d stored", len(view), len(self.memory))

        fragments = self.client.stream([turn.to_message() for turn in view])
        parts: List[str] = []
        try:
            async for fragment in iterate_in_threadpool(fragments):
                await self.channel.send_frame(OutboundFrame(chunk=fragment, done=False))
                parts.append(fragment)
        except TransportError as exc:
            logger.warning("Upstream request failed: %s", exc)
            if not parts:
                await self._finish_cycle(OutboundFrame(chunk=f"Error: {exc}", done=True))
                return
        finally:
            close = getattr(fragments, "close", None)
            if close is not None:
                close()

        reply = "".join(parts)
        self.memory.append(Turn(Role.ASSISTANT, reply))
        logger.info("Relayed %d fragment(s), %d char(s)", len(parts), len(reply))
        await self._finish_cycle(OutboundFrame(chunk="", done=True))

    async def _finish_cycle(self, frame: OutboundFrame) -> None:
        await self.channel.send_frame(frame)
        self.cycles += 1
        self.state = SessionState.AWAITING_INPUT


class RelayService:
    """Process-wide relay entry point; opens an isolated session per connection."""

    def __init__(
        self,
        config: Optional[RelayConfig] = None,
        *,
        client: Optional[OllamaStreamClient] = None,
    ) -> None:
        self.config = config or RelayConfig()
        self.client = client or OllamaStreamClient(self.config)

    def open_session(self, channel: WebSocketChannel) -> RelaySession:
        return RelaySession(channel, self.client, self.config, memory=SessionMemory())
