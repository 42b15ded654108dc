"""Configuration objects for the relay module."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Union


@dataclass
class RelayLLMConfig:
    """Upstream backend connection details."""

    endpoint: str = "http://localhost:11434/api/chat"
    model: str = "gemma3:1b"
    # None disables the timeout; a stalled upstream then holds its connection open.
    request_timeout: Optional[float] = None


@dataclass
class RelayConfig:
    """Runtime controls for relay behaviour."""

    llm: RelayLLMConfig = field(default_factory=RelayLLMConfig)
    window_size: int = 10
    system_prompt: str = "You are an assistant who speaks in gangster slang."
    temperature: float = 0.5
    top_k: int = 1
    top_p: float = 0.9

    def __post_init__(self) -> None:
        if self.window_size < 0:
            raise ValueError("window_size must not be negative")

    @property
    def sampling_options(self) -> Dict[str, Union[float, int]]:
        return {
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
        }
