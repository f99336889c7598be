"""All dataclasses, Protocols, and exceptions for pairstream."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Literal, Protocol, runtime_checkable


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class PairstreamError(Exception):
    """Base class for pairstream errors."""


class ConfigurationError(PairstreamError):
    """Fatal for the request; raised before any bytes are streamed."""


class MissingAPIKeyError(ConfigurationError):
    def __init__(self, provider: str):
        super().__init__(f"Missing API key for provider {provider}")
        self.provider = provider


class ModelNotAvailableError(ConfigurationError):
    def __init__(self, provider: str):
        super().__init__(f"No models found for provider {provider}")
        self.provider = provider


class LLMProviderError(PairstreamError):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Messages & files
# ---------------------------------------------------------------------------

@dataclass
class Message:
    role: str  # "user", "assistant", "system"
    content: str | list[dict]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    created_at: datetime | None = None
    annotations: list[dict] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Plain text view; for structured content, the first text part."""
        if isinstance(self.content, str):
            return self.content
        for part in self.content:
            if part.get("type") == "text":
                return part.get("text", "")
        return ""

    @classmethod
    def from_dict(cls, raw: dict) -> "Message":
        created = raw.get("createdAt")
        created_at = None
        if isinstance(created, str):
            try:
                created_at = datetime.fromisoformat(created.replace("Z", "+00:00"))
            except ValueError:
                created_at = None
        content = raw.get("content")
        if content is None:
            content = ""
        elif not isinstance(content, (str, list)):
            raise ValueError(f"Message content must be a string or a list, got {type(content).__name__}")
        return cls(
            role=raw.get("role", "user"),
            content=content,
            id=raw.get("id") or uuid.uuid4().hex[:16],
            created_at=created_at,
            annotations=list(raw.get("annotations") or []),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "role": self.role, "content": self.content}


@dataclass
class FileEntry:
    type: str = "file"  # "file" or "folder"
    content: str = ""
    is_binary: bool = False
    is_locked: bool = False

    @classmethod
    def from_dict(cls, raw: dict | None) -> "FileEntry":
        raw = raw or {}
        return cls(
            type=raw.get("type", "file"),
            content=raw.get("content", "") or "",
            is_binary=bool(raw.get("isBinary", False)),
            is_locked=bool(raw.get("isLocked", False)),
        )


FileMap = dict[str, FileEntry]


def parse_file_map(raw: dict | None) -> FileMap:
    return {path: FileEntry.from_dict(entry) for path, entry in (raw or {}).items()}


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------

@dataclass
class Usage:
    completion_tokens: int = 0
    prompt_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            completion_tokens=self.completion_tokens + other.completion_tokens,
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict:
        return {
            "completionTokens": self.completion_tokens,
            "promptTokens": self.prompt_tokens,
            "totalTokens": self.total_tokens,
        }


# ---------------------------------------------------------------------------
# Model backend
# ---------------------------------------------------------------------------

@dataclass
class ModelInfo:
    name: str
    provider: str
    label: str = ""
    max_tokens: int | None = None  # max completion tokens for this model


@dataclass
class GenerateResult:
    text: str
    finish_reason: str = "stop"
    usage: Usage = field(default_factory=Usage)


@dataclass
class StreamPart:
    """One typed part of a backend's full stream."""
    type: Literal["text", "reasoning", "finish", "error"]
    text: str = ""
    finish_reason: str = ""
    usage: Usage | None = None
    error: Exception | str | None = None


@dataclass
class StreamSegment:
    """One backend generation call's output within a turn."""
    index: int
    text: str = ""
    finish_reason: str = "unknown"
    usage: Usage = field(default_factory=Usage)


@runtime_checkable
class ModelBackend(Protocol):
    async def generate(
        self, messages: list[dict], system: str, model: str, max_tokens: int,
    ) -> GenerateResult: ...

    def stream(
        self, messages: list[dict], system: str, model: str, max_tokens: int,
    ) -> AsyncIterator[StreamPart]: ...

    async def list_models(self) -> list[ModelInfo]: ...


@dataclass
class ProviderCredentials:
    """Per-request credentials parsed from the ``apiKeys``/``providers`` cookies."""
    api_keys: dict[str, str] = field(default_factory=dict)
    provider_settings: dict[str, dict] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Summary cache
# ---------------------------------------------------------------------------

@dataclass
class CacheEntry:
    summary_text: str
    source_hash: str
    created_at: float = field(default_factory=time.monotonic)


@runtime_checkable
class SummaryCacheBackend(Protocol):
    def get(self, key: str, source_hash: str) -> CacheEntry | None: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def invalidate(self, key: str) -> None: ...


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------

class ProgressStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressAnnotation:
    label: str
    status: ProgressStatus
    order: int
    message: str

    def to_dict(self) -> dict:
        return {
            "type": "progress",
            "label": self.label,
            "status": self.status.value,
            "order": self.order,
            "message": self.message,
        }


@dataclass
class CodeContextAnnotation:
    files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"type": "codeContext", "files": list(self.files)}


@dataclass
class ChatSummaryAnnotation:
    summary: str
    chat_id: str | None = None

    def to_dict(self) -> dict:
        return {"type": "chatSummary", "summary": self.summary, "chatId": self.chat_id}


ContextAnnotation = CodeContextAnnotation | ChatSummaryAnnotation


@dataclass
class UsageAnnotation:
    value: Usage

    def to_dict(self) -> dict:
        return {"type": "usage", "value": self.value.to_dict()}


@dataclass
class SegmentsGroupAnnotation:
    segments_group_id: str

    def to_dict(self) -> dict:
        return {"type": "segmentsGroup", "segmentsGroupId": self.segments_group_id}


@dataclass
class StreamError:
    message: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])

    def to_dict(self) -> dict:
        return {"type": "error", "id": self.id, "message": self.message}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass
class AgentPersona:
    """A selected agent whose instructions extend the system prompt."""
    id: str
    name: str
    description: str = ""
    instructions: str = ""

    @classmethod
    def from_dict(cls, raw: dict) -> "AgentPersona":
        return cls(
            id=raw.get("id", ""),
            name=raw.get("name", ""),
            description=raw.get("description", ""),
            instructions=raw.get("initialPrompt") or raw.get("instructions", ""),
        )


@dataclass
class SupabaseConnection:
    is_connected: bool = False
    has_selected_project: bool = False
    anon_key: str | None = None
    supabase_url: str | None = None

    @classmethod
    def from_dict(cls, raw: dict | None) -> "SupabaseConnection | None":
        if not raw:
            return None
        creds = raw.get("credentials") or {}
        return cls(
            is_connected=bool(raw.get("isConnected", False)),
            has_selected_project=bool(raw.get("hasSelectedProject", False)),
            anon_key=creds.get("anonKey"),
            supabase_url=creds.get("supabaseUrl"),
        )


@dataclass
class ChatRequest:
    messages: list[Message]
    files: FileMap = field(default_factory=dict)
    prompt_id: str | None = None
    context_optimization: bool = False
    chat_mode: Literal["discuss", "build"] = "build"
    design_scheme: dict | None = None
    supabase: SupabaseConnection | None = None
    selected_agent: AgentPersona | None = None
    agent_id: str | None = None

    @classmethod
    def from_body(cls, body: dict) -> "ChatRequest":
        if not isinstance(body, dict):
            raise ValueError("Request body must be a JSON object")
        raw_messages = body.get("messages")
        if not isinstance(raw_messages, list):
            raise ValueError("'messages' must be a list")
        chat_mode = body.get("chatMode") or "build"
        if chat_mode not in ("discuss", "build"):
            raise ValueError(f"Unknown chatMode: {chat_mode}")
        agent = body.get("selectedAgent")
        return cls(
            messages=[Message.from_dict(m) for m in raw_messages],
            files=parse_file_map(body.get("files")),
            prompt_id=body.get("promptId"),
            context_optimization=bool(body.get("contextOptimization", False)),
            chat_mode=chat_mode,
            design_scheme=body.get("designScheme"),
            supabase=SupabaseConnection.from_dict(body.get("supabase")),
            selected_agent=AgentPersona.from_dict(agent) if isinstance(agent, dict) else None,
            agent_id=body.get("agentId"),
        )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class ModelConfig:
    name: str
    label: str = ""
    max_tokens: int | None = None


@dataclass
class ProviderConfig:
    name: str
    type: str = "openai"  # "openai" (any OpenAI-compatible API) or "anthropic"
    base_url: str = ""
    api_key_env: str = ""
    requires_api_key: bool = True
    dynamic_models: bool = False  # also query the provider's model list endpoint
    models: list[ModelConfig] = field(default_factory=list)
    timeout: float = 120.0


@dataclass
class SummarizationConfig:
    batch_size: int = 50
    cache_ttl_seconds: float = 600.0
    max_cache_entries: int = 256
    max_concurrent_batches: int = 4
    cache_scope: str = "prompt"  # "prompt" or "conversation"
    max_tokens: int = 2000


@dataclass
class ContinuationConfig:
    max_response_segments: int = 2
    max_tokens: int = 8000


@dataclass
class ContextConfig:
    work_dir: str = "/home/project"
    max_context_tokens: int = 20_000
    recent_messages: int = 3


@dataclass
class PromptsConfig:
    default_prompt_id: str = "default"
    project_planning: bool = True
    custom: dict[str, str] = field(default_factory=dict)


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 5173
    log_level: str = "info"


@dataclass
class PairstreamConfig:
    version: str = "0.1"
    default_provider: str = "OpenAI"
    default_model: str = "gpt-4o"
    token_counter: str = "estimate"
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    continuation: ContinuationConfig = field(default_factory=ContinuationConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    agents: list[AgentPersona] = field(default_factory=list)
