"""Token counters used to budget context files."""

from __future__ import annotations

import importlib
from typing import Callable

TokenCounter = Callable[[str], int]

DEFAULT_ENCODING = "o200k_base"


def estimate_tokens(text: str) -> int:
    """~4 characters per token; never less than one."""
    return max(1, len(text) // 4)


def _tiktoken_counter(encoding: str) -> TokenCounter:
    try:
        import tiktoken
    except ImportError:
        raise ImportError(
            "tiktoken not installed. Install with: pip install pairstream[tiktoken]"
        )
    enc = tiktoken.get_encoding(encoding)
    return lambda text: len(enc.encode(text, disallowed_special=()))


def create_token_counter(mode: str = "estimate") -> TokenCounter:
    """Build the counter named by ``config.token_counter``.

    ``"estimate"``, ``"tiktoken"`` or ``"tiktoken:<encoding>"``, or
    ``"callable:package.module:func"`` for a user-supplied function.
    """
    if mode == "estimate":
        return estimate_tokens

    if mode == "tiktoken" or mode.startswith("tiktoken:"):
        _, _, encoding = mode.partition(":")
        return _tiktoken_counter(encoding or DEFAULT_ENCODING)

    if mode.startswith("callable:"):
        module_path, sep, func_name = mode[len("callable:"):].rpartition(":")
        if not sep or not module_path:
            raise ValueError(f"Invalid callable token counter: {mode}. Expected callable:module:func")
        return getattr(importlib.import_module(module_path), func_name)

    raise ValueError(f"Unknown token counter mode: {mode}")
