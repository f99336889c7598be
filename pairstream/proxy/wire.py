"""Typed events for the outbound data stream.

Each event encodes to one line ``<code>:<json>\\n``. The codes are those the
browser client's stream parser understands:

    0  text             g  reasoning
    2  data             8  message annotations
    3  error string     f  start step
    e  finish step      d  finish message
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar

from ..types import Usage


def _usage_dict(usage: Usage | None) -> dict:
    usage = usage or Usage()
    return {"promptTokens": usage.prompt_tokens, "completionTokens": usage.completion_tokens}


@dataclass
class StreamEvent:
    code: ClassVar[str] = ""

    def payload(self) -> Any:
        raise NotImplementedError

    def encode(self) -> str:
        return f"{self.code}:{json.dumps(self.payload(), ensure_ascii=False, separators=(',', ':'))}\n"


@dataclass
class TextEvent(StreamEvent):
    code: ClassVar[str] = "0"
    text: str = ""

    def payload(self) -> str:
        return self.text


@dataclass
class ReasoningEvent(StreamEvent):
    code: ClassVar[str] = "g"
    text: str = ""

    def payload(self) -> str:
        return self.text


@dataclass
class DataEvent(StreamEvent):
    code: ClassVar[str] = "2"
    data: list[dict] = field(default_factory=list)

    def payload(self) -> list[dict]:
        return self.data


@dataclass
class AnnotationEvent(StreamEvent):
    code: ClassVar[str] = "8"
    annotations: list[dict] = field(default_factory=list)

    def payload(self) -> list[dict]:
        return self.annotations


@dataclass
class ErrorEvent(StreamEvent):
    code: ClassVar[str] = "3"
    message: str = ""

    def payload(self) -> str:
        return self.message


@dataclass
class StartStepEvent(StreamEvent):
    code: ClassVar[str] = "f"
    message_id: str = ""

    def payload(self) -> dict:
        return {"messageId": self.message_id}


@dataclass
class FinishStepEvent(StreamEvent):
    code: ClassVar[str] = "e"
    finish_reason: str = "unknown"
    usage: Usage | None = None
    is_continued: bool = False

    def payload(self) -> dict:
        return {
            "finishReason": self.finish_reason,
            "usage": _usage_dict(self.usage),
            "isContinued": self.is_continued,
        }


@dataclass
class FinishMessageEvent(StreamEvent):
    code: ClassVar[str] = "d"
    finish_reason: str = "unknown"
    usage: Usage | None = None

    def payload(self) -> dict:
        return {"finishReason": self.finish_reason, "usage": _usage_dict(self.usage)}


def split_line(line: str) -> tuple[str, str]:
    """Split an encoded line into ``(code, json_payload)`` without the newline."""
    code, _, rest = line.partition(":")
    return code, rest.rstrip("\n")
