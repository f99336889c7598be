"""GenericOpenAIProvider: OpenAI-compatible endpoint via httpx.

Works with OpenAI, Ollama, vLLM, LM Studio, or any server exposing
/v1/chat/completions with SSE streaming.
"""

from __future__ import annotations

from ..types import GenerateResult, ModelInfo, StreamPart, Usage
from .base import BaseProvider

FINISH_REASONS = {
    "stop": "stop",
    "length": "length",
    "content_filter": "content-filter",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
}


def _map_finish_reason(reason: str | None) -> str:
    if not reason:
        return "unknown"
    return FINISH_REASONS.get(reason, "other")


def _parse_usage(raw: dict | None) -> Usage:
    raw = raw or {}
    prompt = raw.get("prompt_tokens", 0) or 0
    completion = raw.get("completion_tokens", 0) or 0
    return Usage(
        completion_tokens=completion,
        prompt_tokens=prompt,
        total_tokens=raw.get("total_tokens") or prompt + completion,
    )


def _convert_content(content: str | list[dict]) -> str | list[dict]:
    if isinstance(content, str):
        return content
    parts: list[dict] = []
    for part in content:
        kind = part.get("type")
        if kind == "text":
            parts.append({"type": "text", "text": part.get("text", "")})
        elif kind == "image":
            parts.append({"type": "image_url", "image_url": {"url": part.get("image", "")}})
        else:
            parts.append(part)
    return parts


class GenericOpenAIProvider(BaseProvider):
    """Model backend for any OpenAI-compatible chat completions API."""

    def _get_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_payload(
        self, messages: list[dict], system: str, model: str, max_tokens: int, stream: bool,
    ) -> dict:
        wire_messages = []
        if system:
            wire_messages.append({"role": "system", "content": system})
        for m in messages:
            wire_messages.append({"role": m["role"], "content": _convert_content(m["content"])})

        payload = {
            "model": model,
            "messages": wire_messages,
            "max_tokens": max_tokens,
        }
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        return payload

    def _parse_completion(self, data: dict) -> GenerateResult:
        choices = data.get("choices", [])
        text = ""
        finish_reason = "unknown"
        if choices:
            text = choices[0].get("message", {}).get("content") or ""
            finish_reason = _map_finish_reason(choices[0].get("finish_reason"))
        return GenerateResult(
            text=text,
            finish_reason=finish_reason,
            usage=_parse_usage(data.get("usage")),
        )

    def _parse_stream_event(self, event_type: str, data: dict) -> list[StreamPart]:
        if "error" in data:
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            return [StreamPart(type="error", error=self._error(message))]

        if data.get("usage"):
            self._stream_state["usage"] = _parse_usage(data["usage"])

        parts: list[StreamPart] = []
        for choice in data.get("choices", []) or []:
            delta = choice.get("delta") or {}
            # Ollama/DeepSeek style reasoning deltas
            reasoning = delta.get("reasoning_content") or delta.get("reasoning")
            if reasoning:
                parts.append(StreamPart(type="reasoning", text=reasoning))
            content = delta.get("content")
            if content:
                parts.append(StreamPart(type="text", text=content))
            if choice.get("finish_reason"):
                self._stream_state["finish_reason"] = _map_finish_reason(choice["finish_reason"])
        return parts

    def _parse_models(self, data: dict) -> list[ModelInfo]:
        return [
            ModelInfo(name=m["id"], provider=self.name, label=m["id"])
            for m in data.get("data", [])
            if m.get("id")
        ]
