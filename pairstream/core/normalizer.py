"""Message normalization: model/provider hints and assistant markup cleanup.

Pure functions. The normalizer never mutates its input; it returns new
``Message`` objects with rewritten content and the same ids and order.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from ..patterns import (
    FENCED_CODE_RE,
    LOCKFILE_ACTION_RE,
    MODEL_HINT_RE,
    PROVIDER_HINT_RE,
    THINK_BLOCK_RE,
    THOUGHT_DIV_RE,
)
from ..types import ChatSummaryAnnotation, CodeContextAnnotation, Message


@dataclass
class MessageHints:
    model: str
    provider: str
    content: str | list[dict]


@dataclass
class NormalizedConversation:
    messages: list[Message]
    model: str
    provider: str


def _strip_hints(text: str) -> tuple[str | None, str | None, str]:
    model_match = MODEL_HINT_RE.search(text)
    provider_match = PROVIDER_HINT_RE.search(text)
    cleaned = MODEL_HINT_RE.sub("", text)
    cleaned = PROVIDER_HINT_RE.sub("", cleaned)
    return (
        model_match.group(1) if model_match else None,
        provider_match.group(1) if provider_match else None,
        cleaned,
    )


def extract_message_hints(
    message: Message, default_model: str, default_provider: str,
) -> MessageHints:
    """Pull ``[Model: ...]`` / ``[Provider: ...]`` hints out of a user message.

    Structured content keeps its non-text parts (images etc.); only text parts
    are rewritten. The first hint found across text parts is used.
    """
    model: str | None = None
    provider: str | None = None

    if isinstance(message.content, str):
        model, provider, cleaned = _strip_hints(message.content)
        content: str | list[dict] = cleaned
    else:
        parts: list[dict] = []
        for part in message.content:
            if part.get("type") == "text":
                m, p, cleaned = _strip_hints(part.get("text", ""))
                model = model or m
                provider = provider or p
                parts.append({**part, "text": cleaned})
            else:
                parts.append(part)
        content = parts

    return MessageHints(
        model=model or default_model,
        provider=provider or default_provider,
        content=content,
    )


def strip_assistant_markup(text: str) -> str:
    """Remove reasoning markup and lockfile bodies from an assistant message."""
    text = THOUGHT_DIV_RE.sub("", text)
    text = THINK_BLOCK_RE.sub("", text)
    text = LOCKFILE_ACTION_RE.sub(
        lambda m: f"[{m.group('name')} content removed]", text,
    )
    return text.strip()


def summary_view(message: Message) -> str:
    """Condensed text of a message for summarization prompts."""
    text = strip_assistant_markup(message.text)
    return FENCED_CODE_RE.sub("[code]", text).strip()


def normalize_messages(
    messages: list[Message], default_model: str, default_provider: str,
) -> NormalizedConversation:
    """Normalize a conversation; the last user message's hints win."""
    model = default_model
    provider = default_provider
    out: list[Message] = []

    for message in messages:
        if message.role == "user":
            hints = extract_message_hints(message, default_model, default_provider)
            model, provider = hints.model, hints.provider
            out.append(replace(message, content=hints.content))
        elif message.role == "assistant":
            if isinstance(message.content, str):
                content: str | list[dict] = strip_assistant_markup(message.content)
            else:
                content = [
                    {**part, "text": strip_assistant_markup(part.get("text", ""))}
                    if part.get("type") == "text" else part
                    for part in message.content
                ]
            out.append(replace(message, content=content))
        else:
            out.append(message)

    return NormalizedConversation(messages=out, model=model, provider=provider)


def extract_current_context(
    messages: list[Message],
) -> tuple[ChatSummaryAnnotation | None, CodeContextAnnotation | None]:
    """Find the latest ``chatSummary`` and ``codeContext`` annotations.

    Annotations ride on assistant messages the client stored from earlier
    turns; the newest one of each type wins.
    """
    summary: ChatSummaryAnnotation | None = None
    code_context: CodeContextAnnotation | None = None

    for message in reversed(messages):
        if message.role != "assistant" or not message.annotations:
            continue
        for annotation in reversed(message.annotations):
            if not isinstance(annotation, dict):
                continue
            kind = annotation.get("type")
            if kind == "chatSummary" and summary is None:
                summary = ChatSummaryAnnotation(
                    summary=annotation.get("summary", ""),
                    chat_id=annotation.get("chatId"),
                )
            elif kind == "codeContext" and code_context is None:
                code_context = CodeContextAnnotation(files=list(annotation.get("files", [])))
        if summary is not None and code_context is not None:
            break

    return summary, code_context
