"""UsageTracker: accumulate backend token usage across one client request."""

from __future__ import annotations

import logging

from ..types import Usage

logger = logging.getLogger(__name__)


class UsageTracker:
    """Additive token usage for every backend call made while serving a request.

    Calls are recorded per phase (``summary``, ``merge``, ``context``,
    ``segment``) so callers can report where tokens went; ``total`` is the
    cumulative sum across all phases.
    """

    def __init__(self) -> None:
        self._total = Usage()
        self._by_phase: dict[str, Usage] = {}
        self._calls: dict[str, int] = {}

    def add(self, usage: Usage | None, phase: str = "other") -> None:
        """Add one backend call's usage."""
        self._calls[phase] = self._calls.get(phase, 0) + 1
        if usage is None:
            return
        self._total = self._total + usage
        self._by_phase[phase] = self._by_phase.get(phase, Usage()) + usage
        logger.debug(
            "token usage for %s: prompt=%d completion=%d total=%d",
            phase, usage.prompt_tokens, usage.completion_tokens, usage.total_tokens,
        )

    @property
    def total(self) -> Usage:
        return Usage(
            completion_tokens=self._total.completion_tokens,
            prompt_tokens=self._total.prompt_tokens,
            total_tokens=self._total.total_tokens,
        )

    def phase(self, name: str) -> Usage:
        return self._by_phase.get(name, Usage())

    def calls(self, phase: str | None = None) -> int:
        """Number of backend calls recorded, overall or for one phase."""
        if phase is None:
            return sum(self._calls.values())
        return self._calls.get(phase, 0)
