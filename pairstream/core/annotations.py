"""AnnotationEmitter: progress, annotation and error events for one request."""

from __future__ import annotations

import logging
from typing import Callable

from ..proxy.wire import (
    AnnotationEvent,
    DataEvent,
    FinishMessageEvent,
    FinishStepEvent,
    ReasoningEvent,
    StartStepEvent,
    StreamEvent,
    TextEvent,
)
from ..types import (
    ChatSummaryAnnotation,
    CodeContextAnnotation,
    ProgressAnnotation,
    ProgressStatus,
    SegmentsGroupAnnotation,
    StreamError,
    Usage,
    UsageAnnotation,
)

logger = logging.getLogger(__name__)

Sink = Callable[[StreamEvent], None]

# Default progress messages per phase: (in-progress, complete)
PHASE_MESSAGES = {
    "summary": ("Analysing Request", "Analysis Complete"),
    "context": ("Determining Files to Read", "Code Files Selected"),
    "response": ("Generating Response", "Response Generated"),
    "continuation": ("Continuing Response", "Response Continued"),
}


class AnnotationEmitter:
    """Writes typed events to a sink, numbering progress annotations.

    ``order`` starts at 1 and increases by one for every progress annotation.
    A phase emits one ``in-progress`` and at most one terminal status; a
    second terminal status for the same phase is dropped.
    """

    def __init__(self, sink: Sink) -> None:
        self._sink = sink
        self._order = 0
        self._phases: dict[str, ProgressStatus] = {}
        self.history: list[StreamEvent] = []

    @property
    def order(self) -> int:
        return self._order

    def emit(self, event: StreamEvent) -> None:
        self.history.append(event)
        self._sink(event)

    # -- progress --

    def progress(self, label: str, status: ProgressStatus, message: str | None = None) -> ProgressAnnotation:
        self._order += 1
        if message is None:
            start, done = PHASE_MESSAGES.get(label, (label, label))
            message = start if status == ProgressStatus.IN_PROGRESS else done
        annotation = ProgressAnnotation(label=label, status=status, order=self._order, message=message)
        self.emit(DataEvent(data=[annotation.to_dict()]))
        return annotation

    def start_phase(self, label: str, message: str | None = None) -> None:
        if label in self._phases:
            logger.warning("Phase %s already started", label)
            return
        self._phases[label] = ProgressStatus.IN_PROGRESS
        self.progress(label, ProgressStatus.IN_PROGRESS, message)

    def _finish_phase(self, label: str, status: ProgressStatus, message: str | None) -> None:
        current = self._phases.get(label)
        if current is None:
            self.start_phase(label)
        elif current != ProgressStatus.IN_PROGRESS:
            logger.debug("Phase %s already finished with %s", label, current.value)
            return
        self._phases[label] = status
        self.progress(label, status, message)

    def complete_phase(self, label: str, message: str | None = None) -> None:
        self._finish_phase(label, ProgressStatus.COMPLETE, message)

    def fail_phase(self, label: str, message: str | None = None) -> None:
        self._finish_phase(label, ProgressStatus.ERROR, message or "Error")

    def phase_status(self, label: str) -> ProgressStatus | None:
        return self._phases.get(label)

    # -- message annotations --

    def annotate(self, annotation: ChatSummaryAnnotation | CodeContextAnnotation
                 | UsageAnnotation | SegmentsGroupAnnotation) -> None:
        self.emit(AnnotationEvent(annotations=[annotation.to_dict()]))

    def usage(self, total: Usage) -> None:
        self.annotate(UsageAnnotation(value=total))

    def error(self, message: str) -> StreamError:
        err = StreamError(message=message)
        self.emit(DataEvent(data=[err.to_dict()]))
        return err

    # -- content --

    def text(self, text: str) -> None:
        if text:
            self.emit(TextEvent(text=text))

    def reasoning(self, text: str) -> None:
        if text:
            self.emit(ReasoningEvent(text=text))

    def start_step(self, message_id: str) -> None:
        self.emit(StartStepEvent(message_id=message_id))

    def finish_step(self, finish_reason: str, usage: Usage | None, is_continued: bool) -> None:
        self.emit(FinishStepEvent(finish_reason=finish_reason, usage=usage, is_continued=is_continued))

    def finish_message(self, finish_reason: str, usage: Usage | None) -> None:
        self.emit(FinishMessageEvent(finish_reason=finish_reason, usage=usage))
