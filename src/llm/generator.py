# src/llm/generator.py - v1
"""ExternalGenerator: the opaque async text producer used by report steps.

Latency is unbounded and calls may raise. Callers bound the wait; no
retry happens here.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

from gapflow.llm.base_client import BaseLLMClient
from gapflow.llm.models import Message

logger = logging.getLogger(__name__)


@runtime_checkable
class ExternalGenerator(Protocol):
    """Anything that turns a prompt plus context into text."""

    async def generate(self, prompt: str, context: dict[str, Any] | None = None) -> str:
        ...


class LLMGenerator:
    """ExternalGenerator backed by a BaseLLMClient.

    The context dict is rendered as a JSON block appended to the prompt.
    """

    def __init__(
        self,
        client: BaseLLMClient,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> None:
        self._client = client
        self._system = system
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._json_mode = json_mode

    @property
    def provider_name(self) -> str:
        return self._client.provider_name

    async def generate(self, prompt: str, context: dict[str, Any] | None = None) -> str:
        content = prompt
        if context:
            content = f"{prompt}\n\nContext:\n{json.dumps(context, indent=2, default=str)}"

        response = await self._client.complete(
            messages=[Message(role="user", content=content)],
            system=self._system,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            json_mode=self._json_mode,
        )
        logger.debug(
            "Generated %d chars via %s (%d in / %d out tokens, %dms)",
            len(response.content), response.provider,
            response.input_tokens, response.output_tokens, response.latency_ms,
        )
        return response.content
