"""Tests for ThoughtTagFramer."""

from pairstream.proxy.framer import THOUGHT_CLOSE, THOUGHT_OPEN, ThoughtTagFramer
from pairstream.proxy.wire import ReasoningEvent, TextEvent


def run(framer: ThoughtTagFramer, chunks: list[str]) -> list[str]:
    out: list[str] = []
    for chunk in chunks:
        out.extend(framer.transform(chunk))
    return out


class TestThoughtTagFramer:
    def test_markers_are_exact(self):
        assert THOUGHT_OPEN == '0:"<div class=\\"__boltThought__\\">"\n'
        assert THOUGHT_CLOSE == '0:"</div>\\n"\n'

    def test_text_passes_through(self):
        framer = ThoughtTagFramer()
        assert framer.transform('0:"hello"\n') == ['0:"hello"\n']
        assert framer.transform('2:[{"type":"progress"}]\n') == ['2:[{"type":"progress"}]\n']

    def test_reasoning_run_is_wrapped_once(self):
        framer = ThoughtTagFramer()
        out = run(framer, ['g:"think "\n', 'g:"more"\n', '0:"answer"\n'])
        assert out == [
            THOUGHT_OPEN,
            '0:"think "\n',
            '0:"more"\n',
            THOUGHT_CLOSE,
            '0:"answer"\n',
        ]

    def test_alternating_runs(self):
        framer = ThoughtTagFramer()
        out = run(framer, ['g:"a"\n', '0:"b"\n', 'g:"c"\n', '0:"d"\n'])
        assert out.count(THOUGHT_OPEN) == 2
        assert out.count(THOUGHT_CLOSE) == 2

    def test_flush_closes_open_wrapper(self):
        framer = ThoughtTagFramer()
        run(framer, ['g:"unfinished"\n'])
        assert framer.flush() == [THOUGHT_CLOSE]
        assert framer.flush() == []

    def test_flush_without_reasoning_is_empty(self):
        framer = ThoughtTagFramer()
        run(framer, ['0:"x"\n'])
        assert framer.flush() == []

    def test_encoded_events_round_through_framer(self):
        framer = ThoughtTagFramer()
        out = run(framer, [ReasoningEvent(text='say "hi"').encode(), TextEvent(text="done").encode()])
        assert out[1] == '0:"say \\"hi\\""\n'
        assert out[-1] == '0:"done"\n'

    def test_payload_containing_colon(self):
        framer = ThoughtTagFramer()
        out = run(framer, ['g:"a:b"\n'])
        assert out[1] == '0:"a:b"\n'
