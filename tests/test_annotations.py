"""Tests for AnnotationEmitter."""

from pairstream.core.annotations import AnnotationEmitter
from pairstream.proxy.wire import AnnotationEvent, DataEvent, TextEvent
from pairstream.types import (
    ChatSummaryAnnotation,
    CodeContextAnnotation,
    ProgressStatus,
    Usage,
)


def progress(events):
    return [item for e in events if isinstance(e, DataEvent) for item in e.data if item["type"] == "progress"]


class TestAnnotationEmitter:
    def test_order_starts_at_one_and_increments(self):
        events = []
        emitter = AnnotationEmitter(events.append)
        emitter.start_phase("summary")
        emitter.complete_phase("summary")
        emitter.start_phase("context")
        assert [p["order"] for p in progress(events)] == [1, 2, 3]
        assert emitter.order == 3

    def test_default_messages(self):
        events = []
        emitter = AnnotationEmitter(events.append)
        emitter.start_phase("summary")
        emitter.complete_phase("summary")
        assert [p["message"] for p in progress(events)] == ["Analysing Request", "Analysis Complete"]

    def test_terminal_status_emitted_once(self):
        events = []
        emitter = AnnotationEmitter(events.append)
        emitter.start_phase("response")
        emitter.fail_phase("response")
        emitter.complete_phase("response")
        statuses = [p["status"] for p in progress(events)]
        assert statuses == ["in-progress", "error"]
        assert emitter.phase_status("response") == ProgressStatus.ERROR

    def test_duplicate_start_ignored(self):
        events = []
        emitter = AnnotationEmitter(events.append)
        emitter.start_phase("context")
        emitter.start_phase("context")
        assert len(progress(events)) == 1

    def test_finish_without_start_emits_both(self):
        events = []
        emitter = AnnotationEmitter(events.append)
        emitter.complete_phase("context")
        assert [p["status"] for p in progress(events)] == ["in-progress", "complete"]

    def test_context_annotations_are_message_annotations(self):
        events = []
        emitter = AnnotationEmitter(events.append)
        emitter.annotate(ChatSummaryAnnotation(summary="S", chat_id="m9"))
        emitter.annotate(CodeContextAnnotation(files=["src/a.ts"]))
        assert all(isinstance(e, AnnotationEvent) for e in events)
        assert events[0].annotations == [{"type": "chatSummary", "summary": "S", "chatId": "m9"}]
        assert events[1].annotations == [{"type": "codeContext", "files": ["src/a.ts"]}]

    def test_usage_and_error(self):
        events = []
        emitter = AnnotationEmitter(events.append)
        emitter.usage(Usage(completion_tokens=1, prompt_tokens=2, total_tokens=3))
        err = emitter.error("boom")
        assert events[0].annotations == [{
            "type": "usage",
            "value": {"completionTokens": 1, "promptTokens": 2, "totalTokens": 3},
        }]
        assert events[1].data == [{"type": "error", "id": err.id, "message": "boom"}]

    def test_empty_text_is_skipped(self):
        events = []
        emitter = AnnotationEmitter(events.append)
        emitter.text("")
        emitter.text("x")
        assert events == [TextEvent(text="x")]
        assert emitter.history == events
