"""Async LLM provider base class with shared retry and SSE handling."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from ..types import GenerateResult, LLMProviderError, ModelInfo, StreamPart, Usage

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF = [1.0, 2.0, 4.0]


def parse_sse_events(buf: bytes) -> tuple[list[tuple[str, str]], bytes]:
    """Split a byte buffer into complete SSE events.

    Returns ``(events, remainder)`` where each event is
    ``(event_type, data_str)``.  Handles both ``\\r\\n\\r\\n`` and ``\\n\\n``
    event boundaries; multi-line ``data:`` fields are joined with newlines.
    """
    events: list[tuple[str, str]] = []
    while True:
        idx_rn = buf.find(b"\r\n\r\n")
        idx_n = buf.find(b"\n\n")
        if idx_rn == -1 and idx_n == -1:
            break
        # Use whichever boundary comes first
        if idx_rn != -1 and (idx_n == -1 or idx_rn <= idx_n):
            end = idx_rn + 4
        else:
            end = idx_n + 2

        raw_event = buf[:end]
        buf = buf[end:]

        decoded = raw_event.decode("utf-8", errors="replace")
        event_type = ""
        data_lines: list[str] = []
        for line in decoded.split("\n"):
            line = line.rstrip("\r")
            if line.startswith("event:"):
                event_type = line[6:].strip()
            elif line.startswith("data:"):
                data_lines.append(line[5:].lstrip(" "))

        events.append((event_type, "\n".join(data_lines)))

    return events, buf


class BaseProvider(ABC):
    """Abstract base for model backends. Subclasses override hook methods;
    the retry loop and SSE decoding are shared."""

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str = "",
        *,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._timeout = timeout
        self._client = client

    # -- hook methods subclasses must implement --

    @abstractmethod
    def _get_url(self) -> str: ...

    @abstractmethod
    def _get_headers(self) -> dict: ...

    @abstractmethod
    def _build_payload(
        self, messages: list[dict], system: str, model: str, max_tokens: int, stream: bool,
    ) -> dict: ...

    @abstractmethod
    def _parse_completion(self, data: dict) -> GenerateResult: ...

    @abstractmethod
    def _parse_stream_event(self, event_type: str, data: dict) -> list[StreamPart]:
        """Translate one decoded SSE event into stream parts.

        A ``finish`` part is emitted by the base class at end of stream; the
        subclass records finish reason and usage on ``self._stream_state``.
        """

    @abstractmethod
    def _parse_models(self, data: dict) -> list[ModelInfo]: ...

    def _models_url(self) -> str:
        return f"{self.base_url}/models"

    # -- shared plumbing --

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, connect=10.0)) as client:
            yield client

    def _error(self, message: str, status_code: int | None = None) -> LLMProviderError:
        return LLMProviderError(message, provider=self.name, status_code=status_code)

    async def generate(
        self, messages: list[dict], system: str, model: str, max_tokens: int,
    ) -> GenerateResult:
        """Non-streaming completion with automatic retry on transient errors."""
        url = self._get_url()
        headers = self._get_headers()
        payload = self._build_payload(messages, system, model, max_tokens, stream=False)

        last_error: Exception | None = None

        async with self._http() as client:
            for attempt in range(MAX_RETRIES):
                try:
                    response = await client.post(url, headers=headers, json=payload)

                    if response.status_code == 200:
                        return self._parse_completion(response.json())

                    if response.status_code == 429 or response.status_code >= 500:
                        last_error = self._error(
                            f"HTTP {response.status_code}: {response.text}",
                            response.status_code,
                        )
                        if attempt < MAX_RETRIES - 1:
                            await asyncio.sleep(RETRY_BACKOFF[attempt])
                        continue

                    raise self._error(
                        f"HTTP {response.status_code}: {response.text}",
                        response.status_code,
                    )

                except httpx.HTTPError as e:
                    last_error = self._error(f"HTTP error: {e}")
                    if attempt < MAX_RETRIES - 1:
                        await asyncio.sleep(RETRY_BACKOFF[attempt])
                    continue

        raise last_error or self._error("Max retries exceeded")

    async def _open_stream(
        self, client: httpx.AsyncClient, url: str, headers: dict, payload: dict,
    ) -> httpx.Response:
        """Open a streaming response, retrying transient failures before any bytes arrive."""
        last_error: Exception | None = None
        for attempt in range(MAX_RETRIES):
            try:
                request = client.build_request("POST", url, headers=headers, json=payload)
                response = await client.send(request, stream=True)
            except httpx.HTTPError as e:
                last_error = self._error(f"HTTP error: {e}")
                if attempt < MAX_RETRIES - 1:
                    await asyncio.sleep(RETRY_BACKOFF[attempt])
                continue

            if response.status_code == 200:
                return response

            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            error = self._error(f"HTTP {response.status_code}: {body}", response.status_code)
            if response.status_code == 429 or response.status_code >= 500:
                last_error = error
                if attempt < MAX_RETRIES - 1:
                    await asyncio.sleep(RETRY_BACKOFF[attempt])
                continue
            raise error

        raise last_error or self._error("Max retries exceeded")

    async def stream(
        self, messages: list[dict], system: str, model: str, max_tokens: int,
    ) -> AsyncIterator[StreamPart]:
        """Stream typed parts; failures become a trailing ``error`` part."""
        url = self._get_url()
        headers = self._get_headers()
        payload = self._build_payload(messages, system, model, max_tokens, stream=True)
        self._stream_state = {"finish_reason": "unknown", "usage": Usage()}

        async with self._http() as client:
            try:
                response = await self._open_stream(client, url, headers, payload)
            except LLMProviderError as e:
                yield StreamPart(type="error", error=e)
                return

            try:
                buf = b""
                async for raw_chunk in response.aiter_bytes():
                    buf += raw_chunk
                    events, buf = parse_sse_events(buf)
                    for event_type, data_str in events:
                        if not data_str or data_str.strip() == "[DONE]":
                            continue
                        try:
                            data = json.loads(data_str)
                        except json.JSONDecodeError:
                            logger.debug("Skipping undecodable SSE data from %s", self.name)
                            continue
                        for part in self._parse_stream_event(event_type, data):
                            yield part
                            if part.type == "error":
                                return
            except httpx.HTTPError as e:
                yield StreamPart(type="error", error=self._error(f"Stream interrupted: {e}"))
                return
            finally:
                await response.aclose()

        yield StreamPart(
            type="finish",
            finish_reason=self._stream_state["finish_reason"],
            usage=self._stream_state["usage"],
        )

    async def list_models(self) -> list[ModelInfo]:
        """Query the provider's model list endpoint."""
        async with self._http() as client:
            try:
                response = await client.get(self._models_url(), headers=self._get_headers())
            except httpx.HTTPError as e:
                raise self._error(f"HTTP error: {e}")
        if response.status_code != 200:
            raise self._error(
                f"HTTP {response.status_code}: {response.text}", response.status_code,
            )
        return self._parse_models(response.json())
