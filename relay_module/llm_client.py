"""Client wrapper for streaming chat requests against an Ollama-style backend."""

from __future__ import annotations

import json
import logging
from typing import Dict, Iterator, List, Optional

import requests

from .config import RelayConfig
from .errors import TransportError

logger = logging.getLogger(__name__)


class OllamaStreamClient:
    """Thin wrapper around a line-delimited streaming chat endpoint."""

    def __init__(self, config: RelayConfig) -> None:
        self.config = config

    def build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, object]:
        return {
            "model": self.config.llm.model,
            "messages": messages,
            "stream": True,
            "options": self.config.sampling_options,
        }

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        """Yield text fragments from the backend as they arrive.

        The request is only sent once the iterator is first advanced.  Failing
        to reach the backend raises :class:`TransportError`; a read error after
        the response started ends the iteration instead, keeping whatever was
        already produced.  Closing the iterator early releases the upstream
        connection.
        """
        endpoint = self.config.llm.endpoint
        logger.info(
            "Streaming %d message(s) to %s using model %s",
            len(messages),
            endpoint,
            self.config.llm.model,
        )
        try:
            response = requests.post(
                endpoint,
                json=self.build_payload(messages),
                stream=True,
                timeout=self.config.llm.request_timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(str(exc)) from exc

        try:
            for raw_line in response.iter_lines():
                token = self._extract_content(raw_line)
                if token:
                    yield token
        except requests.RequestException as exc:
            logger.warning("Upstream stream ended early: %s", exc)
        finally:
            response.close()

    @staticmethod
    def _extract_content(raw_line: bytes) -> Optional[str]:
        if not raw_line or not raw_line.strip():
            return None
        try:
            payload = json.loads(raw_line)
        except (ValueError, RecursionError):
            logger.debug("Skipping non-JSON stream line: %r", raw_line)
            return None

        message = payload.get("message") if isinstance(payload, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            logger.debug("Skipping stream line without message content: %r", raw_line)
            return None
        return content
