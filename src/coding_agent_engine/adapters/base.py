"""
Base LLM adapter interface.

An adapter translates the canonical message model to one vendor's wire
format and back. Translation itself lives in pure module-level ``to_wire`` /
``from_wire`` functions in each adapter module; the adapter classes only
own the HTTP plumbing shared here.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from coding_agent_engine.events import StreamEvent
from coding_agent_engine.logging import get_logger
from coding_agent_engine.messages import (
    Message,
    MessageResponse,
    ThinkingConfig,
    ToolChoice,
    ToolDefinition,
)

logger = get_logger("adapters")

SSE_DONE = "[DONE]"


class ProviderError(Exception):
    """
    A provider call failed: non-2xx status, transport failure, or a body
    that could not be understood.

    ``status_code`` is None for failures that never produced an HTTP status.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LLMAdapter(ABC):
    """
    Abstract base class for LLM provider adapters.

    Subclasses implement :meth:`send` (single JSON reply) and :meth:`stream`
    (incremental :class:`StreamEvent` sequence). A stream is finite and not
    restartable; call :meth:`stream` again to retry.

    Example implementation for a custom provider:

        class MyAdapter(LLMAdapter):
            name = "mine"

            async def send(self, messages, system_prompt=None, tools=(), tool_choice=None, thinking=None):
                body = await self._post_json(f"{self.base_url}/complete", to_wire(...))
                return from_wire(body)

            async def stream(self, messages, system_prompt=None, tools=(), tool_choice=None, thinking=None):
                decoder = MyStreamDecoder()
                async for data in self._stream_data(url, payload):
                    for event in decoder.feed(data):
                        yield event
    """

    name: str = "base"
    default_base_url: str = ""

    def __init__(
        self,
        model: str,
        api_key: str = "",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily created HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                trust_env=False,
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> LLMAdapter:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r}, base_url={self.base_url!r})"

    @abstractmethod
    def _headers(self) -> dict[str, str]:
        """Authentication and protocol headers for every request."""

    @abstractmethod
    async def send(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDefinition] = (),
        tool_choice: ToolChoice | None = None,
        thinking: ThinkingConfig | None = None,
    ) -> MessageResponse:
        """
        Send a request and wait for the complete reply.

        Args:
            messages: Conversation history
            system_prompt: Optional system prompt
            tools: Tools the model may call
            tool_choice: Tool-calling policy (only sent when tools are present)
            thinking: Extended reasoning budget

        Returns:
            The canonical response

        Raises:
            ProviderError: On transport, status or decoding failure
        """

    @abstractmethod
    def stream(
        self,
        messages: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDefinition] = (),
        tool_choice: ToolChoice | None = None,
        thinking: ThinkingConfig | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Send a streaming request.

        Yields:
            StreamEvent objects, ending with ``message_stop``

        Raises:
            ProviderError: Before the first event for a non-2xx response, or
                mid-stream on transport failure or truncation
        """

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        logger.debug("%s request: model=%s url=%s", self.name, self.model, url)
        try:
            response = await self.client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e

        if not response.is_success:
            raise ProviderError(
                f"{self.name} API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise ProviderError(
                f"{self.name} returned malformed JSON: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e
        if not isinstance(body, dict):
            raise ProviderError(
                f"{self.name} returned unexpected body", status_code=response.status_code
            )
        return body

    async def _stream_data(self, url: str, payload: dict[str, Any]) -> AsyncIterator[str]:
        """
        POST ``payload`` and yield the payload of each SSE ``data:`` line.

        A non-2xx status raises before anything is yielded. ``event:``,
        comment and blank lines are skipped.
        """
        logger.debug("%s stream request: model=%s url=%s", self.name, self.model, url)
        try:
            async with self.client.stream(
                "POST", url, json=payload, headers=self._headers()
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ProviderError(
                        f"{self.name} API error {response.status_code}: {body}",
                        status_code=response.status_code,
                        body=body,
                    )
                logger.info("%s stream started", self.name)
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    yield line[5:].strip()
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} stream failed: {e}") from e
