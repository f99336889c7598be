"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .types import (
    AgentPersona,
    ContextConfig,
    ContinuationConfig,
    ModelConfig,
    PairstreamConfig,
    PromptsConfig,
    ProviderConfig,
    ServerConfig,
    SummarizationConfig,
)

CONFIG_FILENAMES = [
    "pairstream.yaml",
    "pairstream.yml",
    "pairstream.json",
]

DEFAULT_PROVIDERS: dict[str, dict[str, Any]] = {
    "OpenAI": {
        "type": "openai",
        "base_url": "https://api.openai.com/v1",
        "api_key_env": "OPENAI_API_KEY",
        "models": [
            {"name": "gpt-4o", "label": "GPT-4o", "max_tokens": 8000},
            {"name": "gpt-4o-mini", "label": "GPT-4o Mini", "max_tokens": 8000},
        ],
    },
    "Anthropic": {
        "type": "anthropic",
        "base_url": "https://api.anthropic.com/v1",
        "api_key_env": "ANTHROPIC_API_KEY",
        "models": [
            {"name": "claude-sonnet-4-5", "label": "Claude Sonnet 4.5", "max_tokens": 8000},
            {"name": "claude-haiku-4-5", "label": "Claude Haiku 4.5", "max_tokens": 8000},
        ],
    },
    "Ollama": {
        "type": "openai",
        "base_url": "http://127.0.0.1:11434/v1",
        "requires_api_key": False,
        "dynamic_models": True,
        "models": [],
    },
}

VALID_PROVIDER_TYPES = ("openai", "anthropic")
VALID_CACHE_SCOPES = ("prompt", "conversation")


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _parse_provider(name: str, raw: dict[str, Any]) -> ProviderConfig:
    models = []
    for m in raw.get("models", []) or []:
        if isinstance(m, str):
            models.append(ModelConfig(name=m))
        else:
            models.append(ModelConfig(
                name=m["name"],
                label=m.get("label", ""),
                max_tokens=m.get("max_tokens"),
            ))
    return ProviderConfig(
        name=name,
        type=raw.get("type", "openai"),
        base_url=raw.get("base_url", ""),
        api_key_env=raw.get("api_key_env", ""),
        requires_api_key=raw.get("requires_api_key", True),
        dynamic_models=raw.get("dynamic_models", False),
        models=models,
        timeout=raw.get("timeout", 120.0),
    )


def _build_config(raw: dict[str, Any]) -> PairstreamConfig:
    """Build a PairstreamConfig from a raw dict."""
    providers_raw = raw.get("providers")
    if providers_raw is None:
        providers_raw = DEFAULT_PROVIDERS
    providers = {
        name: _parse_provider(name, pconf if isinstance(pconf, dict) else {})
        for name, pconf in providers_raw.items()
    }

    summ_raw = raw.get("summarization", {})
    summarization = SummarizationConfig(
        batch_size=summ_raw.get("batch_size", 50),
        cache_ttl_seconds=summ_raw.get("cache_ttl_seconds", 600.0),
        max_cache_entries=summ_raw.get("max_cache_entries", 256),
        max_concurrent_batches=summ_raw.get("max_concurrent_batches", 4),
        cache_scope=summ_raw.get("cache_scope", "prompt"),
        max_tokens=summ_raw.get("max_tokens", 2000),
    )

    cont_raw = raw.get("continuation", {})
    continuation = ContinuationConfig(
        max_response_segments=cont_raw.get("max_response_segments", 2),
        max_tokens=cont_raw.get("max_tokens", 8000),
    )

    ctx_raw = raw.get("context", {})
    context = ContextConfig(
        work_dir=ctx_raw.get("work_dir", "/home/project"),
        max_context_tokens=ctx_raw.get("max_context_tokens", 20_000),
        recent_messages=ctx_raw.get("recent_messages", 3),
    )

    prompts_raw = raw.get("prompts", {})
    prompts = PromptsConfig(
        default_prompt_id=prompts_raw.get("default_prompt_id", "default"),
        project_planning=prompts_raw.get("project_planning", True),
        custom=dict(prompts_raw.get("custom", {}) or {}),
    )

    server_raw = raw.get("server", {})
    server = ServerConfig(
        host=server_raw.get("host", "127.0.0.1"),
        port=server_raw.get("port", 5173),
        log_level=server_raw.get("log_level", "info"),
    )

    agents = [AgentPersona.from_dict(a) for a in raw.get("agents", []) or []]

    return PairstreamConfig(
        version=raw.get("version", "0.1"),
        default_provider=raw.get("default_provider", "OpenAI"),
        default_model=raw.get("default_model", "gpt-4o"),
        token_counter=raw.get("token_counter", "estimate"),
        providers=providers,
        summarization=summarization,
        continuation=continuation,
        context=context,
        prompts=prompts,
        server=server,
        agents=agents,
    )


def validate_config(config: PairstreamConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []

    if not config.providers:
        errors.append("At least one provider must be defined")
    elif config.default_provider not in config.providers:
        errors.append(
            f"Default provider '{config.default_provider}' "
            f"not found in providers section"
        )

    for name, provider in config.providers.items():
        if provider.type not in VALID_PROVIDER_TYPES:
            errors.append(
                f"Provider '{name}' has unknown type '{provider.type}' "
                f"(expected one of {', '.join(VALID_PROVIDER_TYPES)})"
            )
        if not provider.base_url:
            errors.append(f"Provider '{name}' has no base_url")
        if not provider.models and not provider.dynamic_models:
            errors.append(f"Provider '{name}' lists no models and dynamic_models is off")

    if config.summarization.batch_size < 1:
        errors.append("summarization.batch_size must be >= 1")

    if config.summarization.max_concurrent_batches < 1:
        errors.append("summarization.max_concurrent_batches must be >= 1")

    if config.summarization.cache_scope not in VALID_CACHE_SCOPES:
        errors.append(
            f"summarization.cache_scope must be one of {', '.join(VALID_CACHE_SCOPES)}"
        )

    if config.continuation.max_response_segments < 1:
        errors.append("continuation.max_response_segments must be >= 1")

    if config.context.recent_messages < 1:
        errors.append("context.recent_messages must be >= 1")

    agent_ids = [a.id for a in config.agents]
    if len(agent_ids) != len(set(agent_ids)):
        errors.append("Agent ids must be unique")

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> PairstreamConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(raw)
