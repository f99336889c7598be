"""Bounded multi-segment generation across provider token limits."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum

from ..patterns import format_model_hint
from ..types import Message, SegmentsGroupAnnotation, StreamSegment, Usage
from .annotations import AnnotationEmitter
from .models import ResolvedModel
from .normalizer import normalize_messages
from .prompts import CONTINUE_PROMPT
from .usage_tracker import UsageTracker

logger = logging.getLogger(__name__)

SEGMENT_LIMIT_MESSAGE = "Cannot continue message: Maximum segments reached"


class GenerationState(str, Enum):
    START = "start"
    GENERATING = "generating"
    CONTINUING = "continuing"
    COMPLETE = "complete"
    SEGMENT_LIMIT_EXCEEDED = "segment_limit_exceeded"
    FAILED = "failed"


@dataclass
class GenerationOutcome:
    state: GenerationState
    segments: list[StreamSegment] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    error: str | None = None

    @property
    def text(self) -> str:
        return "".join(s.text for s in self.segments)


def to_wire(messages: list[Message]) -> list[dict]:
    return [{"role": m.role, "content": m.content} for m in messages]


def continuation_messages(segment_text: str, model: str, provider: str) -> list[Message]:
    """The assistant text so far plus the synthetic request to keep going."""
    return [
        Message(role="assistant", content=segment_text),
        Message(role="user", content=format_model_hint(model, provider) + CONTINUE_PROMPT),
    ]


class ContinuationController:
    """Drive one turn's generation, continuing on ``length`` up to a bound.

    The loop makes at most ``max_response_segments`` backend calls. Text and
    reasoning are forwarded to the emitter as they arrive; every segment's
    usage lands in the shared tracker.
    """

    def __init__(
        self,
        emitter: AnnotationEmitter,
        usage: UsageTracker,
        max_response_segments: int = 2,
    ) -> None:
        self.emitter = emitter
        self.usage = usage
        self.max_response_segments = max(1, max_response_segments)
        self.state = GenerationState.START

    async def _run_segment(
        self,
        resolved: ResolvedModel,
        system: str,
        history: list[Message],
        index: int,
    ) -> tuple[StreamSegment, str | None]:
        segment = StreamSegment(index=index)
        wire = to_wire(normalize_messages(history, resolved.model.name, resolved.provider).messages)
        self.emitter.start_step(f"msg-{uuid.uuid4().hex[:24]}")

        async for part in resolved.backend.stream(wire, system, resolved.model.name, resolved.max_tokens):
            if part.type == "text":
                segment.text += part.text
                self.emitter.text(part.text)
            elif part.type == "reasoning":
                self.emitter.reasoning(part.text)
            elif part.type == "finish":
                segment.finish_reason = part.finish_reason or "unknown"
                segment.usage = part.usage or Usage()
            elif part.type == "error":
                segment.finish_reason = "error"
                return segment, str(part.error or "Unknown error")
        return segment, None

    async def run(
        self,
        resolved: ResolvedModel,
        system: str,
        messages: list[Message],
    ) -> GenerationOutcome:
        history = list(messages)
        segments: list[StreamSegment] = []
        continued = False
        group_id = f"segment-{uuid.uuid4().hex[:12]}"

        while True:
            self.state = GenerationState.GENERATING
            segment, error = await self._run_segment(resolved, system, history, len(segments))
            segments.append(segment)
            self.usage.add(segment.usage, "segment")

            if error is not None:
                logger.error("Backend stream error on segment %d: %s", segment.index, error)
                self.state = GenerationState.FAILED
                self.emitter.error(error)
                break

            is_continued = segment.finish_reason == "length"
            self.emitter.finish_step(segment.finish_reason, segment.usage, is_continued)
            if not is_continued:
                self.state = GenerationState.COMPLETE
                break

            if len(segments) >= self.max_response_segments:
                logger.warning("Maximum response segments (%d) reached", self.max_response_segments)
                self.state = GenerationState.SEGMENT_LIMIT_EXCEEDED
                error = SEGMENT_LIMIT_MESSAGE
                self.emitter.error(error)
                break

            self.state = GenerationState.CONTINUING
            logger.info(
                "Reached max token limit (%d): continuing message (%d of %d segments)",
                resolved.max_tokens, len(segments) + 1, self.max_response_segments,
            )
            history.extend(continuation_messages(segment.text, resolved.model.name, resolved.provider))
            self.emitter.annotate(SegmentsGroupAnnotation(segments_group_id=group_id))
            if not continued:
                self.emitter.start_phase("continuation")
                continued = True

        if self.state == GenerationState.COMPLETE:
            if continued:
                self.emitter.complete_phase("continuation")
            self.emitter.usage(self.usage.total)
            self.emitter.complete_phase("response")
        else:
            if continued:
                self.emitter.fail_phase("continuation")
            self.emitter.fail_phase("response")

        self.emitter.finish_message(segments[-1].finish_reason, self.usage.total)
        return GenerationOutcome(state=self.state, segments=segments, messages=history, error=error)
