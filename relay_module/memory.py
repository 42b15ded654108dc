"""Per-connection conversation log with a bounded outbound view."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class SessionMemory:
    """Append-only history of turns owned by a single relay session.

    Storage is never truncated; only :meth:`view` limits what is sent
    upstream.
    """

    def __init__(self) -> None:
        self._turns: List[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def view(self, window_size: int, system_turn: Turn) -> List[Turn]:
        """Return the system turn followed by the most recent ``window_size`` turns."""
        if window_size < 0:
            raise ValueError("window_size must not be negative")
        recent = self._turns[-window_size:] if window_size else []
        return [system_turn, *recent]
