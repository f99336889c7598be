"""AnthropicProvider: calls Messages API via httpx (no SDK dependency)."""

from __future__ import annotations

import re

from ..types import GenerateResult, ModelInfo, StreamPart, Usage
from .base import BaseProvider

API_VERSION = "2023-06-01"

STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool-calls",
    "refusal": "content-filter",
}

_DATA_URL_RE = re.compile(r"^data:(?P<media>[^;]+);base64,(?P<data>.*)$", re.DOTALL)


def _map_stop_reason(reason: str | None) -> str:
    if not reason:
        return "unknown"
    return STOP_REASONS.get(reason, "other")


def _to_blocks(content: str | list[dict]) -> list[dict]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    blocks: list[dict] = []
    for part in content:
        kind = part.get("type")
        if kind == "text":
            blocks.append({"type": "text", "text": part.get("text", "")})
        elif kind == "image":
            match = _DATA_URL_RE.match(part.get("image", ""))
            if match:
                blocks.append({
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": match.group("media"),
                        "data": match.group("data"),
                    },
                })
            else:
                blocks.append({"type": "image", "source": {"type": "url", "url": part.get("image", "")}})
    return blocks


class AnthropicProvider(BaseProvider):
    """Model backend using the Anthropic Messages API directly via httpx."""

    def _get_url(self) -> str:
        return f"{self.base_url}/messages"

    def _get_headers(self) -> dict:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

    def _build_payload(
        self, messages: list[dict], system: str, model: str, max_tokens: int, stream: bool,
    ) -> dict:
        # The Messages API takes one system string and strictly alternating turns.
        system_parts = [system] if system else []
        turns: list[dict] = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"] if isinstance(m["content"], str) else "")
                continue
            blocks = _to_blocks(m["content"])
            if turns and turns[-1]["role"] == m["role"]:
                turns[-1]["content"].extend(blocks)
            else:
                turns.append({"role": m["role"], "content": blocks})

        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": turns,
        }
        system_text = "\n\n".join(p for p in system_parts if p)
        if system_text:
            payload["system"] = system_text
        if stream:
            payload["stream"] = True
        return payload

    def _parse_completion(self, data: dict) -> GenerateResult:
        text_parts = [
            block["text"]
            for block in data.get("content", [])
            if block.get("type") == "text"
        ]
        raw_usage = data.get("usage", {})
        prompt = raw_usage.get("input_tokens", 0)
        completion = raw_usage.get("output_tokens", 0)
        return GenerateResult(
            text="\n".join(text_parts),
            finish_reason=_map_stop_reason(data.get("stop_reason")),
            usage=Usage(
                completion_tokens=completion,
                prompt_tokens=prompt,
                total_tokens=prompt + completion,
            ),
        )

    def _parse_stream_event(self, event_type: str, data: dict) -> list[StreamPart]:
        kind = data.get("type", event_type)
        state = self._stream_state

        if kind == "message_start":
            prompt = data.get("message", {}).get("usage", {}).get("input_tokens", 0)
            state["usage"] = Usage(prompt_tokens=prompt, total_tokens=prompt)
            return []

        if kind == "content_block_delta":
            delta = data.get("delta", {})
            if delta.get("type") == "text_delta":
                return [StreamPart(type="text", text=delta.get("text", ""))]
            if delta.get("type") == "thinking_delta":
                return [StreamPart(type="reasoning", text=delta.get("thinking", ""))]
            return []

        if kind == "message_delta":
            reason = data.get("delta", {}).get("stop_reason")
            if reason:
                state["finish_reason"] = _map_stop_reason(reason)
            completion = data.get("usage", {}).get("output_tokens")
            if completion is not None:
                prompt = state["usage"].prompt_tokens
                state["usage"] = Usage(
                    completion_tokens=completion,
                    prompt_tokens=prompt,
                    total_tokens=prompt + completion,
                )
            return []

        if kind == "error":
            error = data.get("error", {})
            return [StreamPart(type="error", error=self._error(error.get("message", "stream error")))]

        return []

    def _parse_models(self, data: dict) -> list[ModelInfo]:
        return [
            ModelInfo(name=m["id"], provider=self.name, label=m.get("display_name", m["id"]))
            for m in data.get("data", [])
            if m.get("id")
        ]
