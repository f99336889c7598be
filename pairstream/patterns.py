"""Regex patterns for message hints and assistant markup.

Kept in a standalone module so the normalizer, summarizer and continuation
prompt builder share one definition of the hint syntax.
"""

import re

# "[Model: gpt-4o]\n\n" and "[Provider: OpenAI]\n\n" prefixes on user messages
MODEL_HINT_RE = re.compile(r"\[Model: (.*?)\]\n\n")
PROVIDER_HINT_RE = re.compile(r"\[Provider: (.*?)\]\n\n")

# Reasoning wrapper emitted by the thought-tag framer; stored content may carry
# the JSON-escaped quote form (class=\"__boltThought__\").
THOUGHT_DIV_RE = re.compile(r'<div class=\\?"__boltThought__\\?">.*?</div>', re.DOTALL)
THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)

FENCED_CODE_RE = re.compile(r"```.*?```", re.DOTALL)

LOCKFILE_NAMES: tuple[str, ...] = (
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "bun.lockb",
    "poetry.lock",
    "Cargo.lock",
    "composer.lock",
    "Gemfile.lock",
)

LOCKFILE_ACTION_RE = re.compile(
    r'<boltAction type="file" filePath="(?P<path>(?:[^"]*/)?(?P<name>'
    + "|".join(re.escape(name) for name in LOCKFILE_NAMES)
    + r'))">[\s\S]*?</boltAction>'
)


def format_model_hint(model: str, provider: str) -> str:
    """Prefix a user message carries to select its model and provider."""
    return f"[Model: {model}]\n\n[Provider: {provider}]\n\n"


def is_lockfile(path: str) -> bool:
    return path.rsplit("/", 1)[-1] in LOCKFILE_NAMES
