"""ThoughtTagFramer: move reasoning lines onto the text channel inside a wrapper div."""

from __future__ import annotations

from .wire import split_line

THOUGHT_OPEN = '0:"<div class=\\"__boltThought__\\">"\n'
THOUGHT_CLOSE = '0:"</div>\\n"\n'


class ThoughtTagFramer:
    """Stateful line transform for one response stream.

    A run of ``g`` (reasoning) lines is re-framed as ``0`` (text) lines and
    wrapped in a ``__boltThought__`` div so clients that only render text still
    see the reasoning, collapsed. Every other line passes through unchanged.
    """

    def __init__(self) -> None:
        self._last_chunk = " "

    @property
    def in_reasoning(self) -> bool:
        return self._last_chunk.startswith("g")

    def transform(self, chunk: str) -> list[str]:
        out: list[str] = []
        is_reasoning = chunk.startswith("g")

        if is_reasoning and not self.in_reasoning:
            out.append(THOUGHT_OPEN)
        elif not is_reasoning and self.in_reasoning:
            out.append(THOUGHT_CLOSE)

        self._last_chunk = chunk

        if is_reasoning:
            _, payload = split_line(chunk)
            out.append(f"0:{payload}\n")
        else:
            out.append(chunk)
        return out

    def flush(self) -> list[str]:
        """Close an open wrapper when the stream ends mid-reasoning."""
        if self.in_reasoning:
            self._last_chunk = " "
            return [THOUGHT_CLOSE]
        return []
