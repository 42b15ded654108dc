"""Shared test fixtures and fakes."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Sequence, Union

import pytest
from fastapi import WebSocketDisconnect

from relay_module.config import RelayConfig

Reply = Union[Sequence[str], Exception]


class FakeWebSocket:
    """Minimal stand-in for a Starlette WebSocket driven from a script."""

    def __init__(self, inbound: Sequence[Union[str, bytes]], *, fail_send_after: Optional[int] = None) -> None:
        self.inbound = list(inbound)
        self.sent: List[Dict[str, object]] = []
        self.fail_send_after = fail_send_after

    async def receive(self) -> Dict[str, object]:
        if not self.inbound:
            return {"type": "websocket.disconnect", "code": 1000}
        item = self.inbound.pop(0)
        if isinstance(item, bytes):
            return {"type": "websocket.receive", "bytes": item}
        return {"type": "websocket.receive", "text": item}

    async def send_json(self, data: Dict[str, object]) -> None:
        if self.fail_send_after is not None and len(self.sent) >= self.fail_send_after:
            raise WebSocketDisconnect(code=1006)
        self.sent.append(data)


class FakeStreamClient:
    """Upstream client returning scripted fragment lists or raising scripted errors."""

    def __init__(self, replies: Sequence[Reply]) -> None:
        self.replies = list(replies)
        self.requests: List[List[Dict[str, str]]] = []
        self.produced = 0
        self.closed = 0

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        self.requests.append(messages)
        return self._generate(self.replies.pop(0))

    def _generate(self, reply: Reply) -> Iterator[str]:
        try:
            if isinstance(reply, Exception):
                raise reply
            for fragment in reply:
                self.produced += 1
                yield fragment
        finally:
            self.closed += 1


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(window_size=10, system_prompt="Sys")
