"""Context file selection and serialization of the selected files."""

from __future__ import annotations

import logging
import re
from typing import Callable, Protocol, runtime_checkable

from ..patterns import is_lockfile
from ..token_counter import estimate_tokens
from ..types import FileEntry, FileMap, Message, ProviderCredentials
from .usage_tracker import UsageTracker

logger = logging.getLogger(__name__)

DEFAULT_WORK_DIR = "/home/project"

IGNORED_DIRS = ("node_modules", ".git", "dist", "build", ".next", ".cache", "coverage")


def relative_path(path: str, work_dir: str = DEFAULT_WORK_DIR) -> str:
    """Strip the work directory prefix so paths match what the client shows."""
    prefix = work_dir.rstrip("/") + "/"
    if path.startswith(prefix):
        return path[len(prefix):]
    return path


def create_files_context(
    files: FileMap,
    work_dir: str = DEFAULT_WORK_DIR,
    use_relative_path: bool = True,
) -> str:
    """Serialize files into one artifact block for the system prompt."""
    actions = []
    for path, entry in files.items():
        if entry.type != "file" or entry.is_binary:
            continue
        if any(f"/{d}/" in f"/{path}" for d in IGNORED_DIRS):
            continue
        shown = relative_path(path, work_dir) if use_relative_path else path
        actions.append(f'<boltAction type="file" filePath="{shown}">{entry.content}</boltAction>')
    return (
        '<boltArtifact id="code-content" title="Code Content">\n'
        + "\n".join(actions)
        + "\n</boltArtifact>"
    )


@runtime_checkable
class ContextSelector(Protocol):
    async def select_context(
        self,
        messages: list[Message],
        files: FileMap,
        summary: str,
        usage: UsageTracker,
        credentials: ProviderCredentials | None = None,
    ) -> FileMap: ...


class BudgetContextSelector:
    """Pick the files the conversation talks about, within a token budget.

    A file scores one point per mention of its relative path and one per
    mention of its basename across the last user message (weighted double),
    the summary, and the most recent messages. Zero-score files are kept only
    while budget remains, smallest first, so small projects send everything.
    """

    def __init__(
        self,
        max_context_tokens: int = 20_000,
        recent_messages: int = 3,
        work_dir: str = DEFAULT_WORK_DIR,
        token_counter: Callable[[str], int] = estimate_tokens,
    ) -> None:
        self.max_context_tokens = max_context_tokens
        self.recent_messages = recent_messages
        self.work_dir = work_dir
        self.token_counter = token_counter

    def _candidates(self, files: FileMap) -> dict[str, FileEntry]:
        return {
            path: entry
            for path, entry in files.items()
            if entry.type == "file"
            and not entry.is_binary
            and not is_lockfile(path)
            and not any(f"/{d}/" in f"/{path}" for d in IGNORED_DIRS)
        }

    def _score(self, path: str, corpus: str, focus: str) -> int:
        rel = relative_path(path, self.work_dir)
        name = rel.rsplit("/", 1)[-1]
        score = 0
        for needle in {rel, name}:
            pattern = re.compile(r"(?<![\w./-])" + re.escape(needle) + r"(?![\w-])")
            score += len(pattern.findall(corpus)) + 2 * len(pattern.findall(focus))
        return score

    async def select_context(
        self,
        messages: list[Message],
        files: FileMap,
        summary: str,
        usage: UsageTracker,
        credentials: ProviderCredentials | None = None,
    ) -> FileMap:
        candidates = self._candidates(files)
        if not candidates:
            return {}

        user_messages = [m for m in messages if m.role == "user"]
        focus = user_messages[-1].text if user_messages else ""
        recent = messages[-self.recent_messages:] if self.recent_messages else []
        corpus = "\n".join([summary or ""] + [m.text for m in recent])

        scored = [
            (self._score(path, corpus, focus), self.token_counter(entry.content), path)
            for path, entry in candidates.items()
        ]
        # Highest score first; among equals, smaller files first.
        scored.sort(key=lambda item: (-item[0], item[1], item[2]))

        selected: FileMap = {}
        budget = self.max_context_tokens
        for score, tokens, path in scored:
            if tokens > budget:
                continue
            selected[path] = candidates[path]
            budget -= tokens

        logger.info(
            "Selected %d of %d context files (%d tokens left in budget)",
            len(selected), len(candidates), budget,
        )
        return selected
