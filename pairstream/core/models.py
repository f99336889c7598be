"""ProviderRegistry: build model backends from config and resolve model ids."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import httpx

from ..config import _parse_provider
from ..types import (
    ConfigurationError,
    MissingAPIKeyError,
    ModelBackend,
    ModelInfo,
    ModelNotAvailableError,
    PairstreamConfig,
    ProviderConfig,
    ProviderCredentials,
)

logger = logging.getLogger(__name__)


@dataclass
class ResolvedModel:
    backend: ModelBackend
    model: ModelInfo
    provider: str
    max_tokens: int


class ProviderRegistry:
    """Maps provider names to backends for one process.

    API keys come from the request's ``apiKeys`` cookie first, then the
    provider's ``api_key_env`` environment variable. Backends registered with
    ``register_backend`` bypass config entirely.
    """

    def __init__(
        self,
        config: PairstreamConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._client = client
        self._overrides: dict[str, ModelBackend] = {}

    def register_backend(
        self, name: str, backend: ModelBackend, models: list[str] | None = None,
    ) -> None:
        self._overrides[name] = backend
        if name not in self.config.providers:
            self.config.providers[name] = _parse_provider(
                name, {"base_url": "local://", "requires_api_key": False, "models": models or []},
            )

    def provider_names(self) -> list[str]:
        return list(self.config.providers)

    def _provider_config(self, name: str) -> ProviderConfig:
        provider = self.config.providers.get(name)
        if provider is None:
            raise ConfigurationError(f"Unknown provider: {name}")
        return provider

    def get_api_key(self, name: str, credentials: ProviderCredentials | None = None) -> str:
        provider = self._provider_config(name)
        if credentials and credentials.api_keys.get(name):
            return credentials.api_keys[name]
        if provider.api_key_env:
            return os.environ.get(provider.api_key_env, "")
        return ""

    def get_backend(
        self, name: str, credentials: ProviderCredentials | None = None,
    ) -> ModelBackend:
        """Build the backend for *name*; raises before any network I/O."""
        if name in self._overrides:
            return self._overrides[name]

        provider = self._provider_config(name)
        api_key = self.get_api_key(name, credentials)
        if provider.requires_api_key and not api_key:
            raise MissingAPIKeyError(name)

        base_url = provider.base_url
        if credentials:
            settings = credentials.provider_settings.get(name) or {}
            base_url = settings.get("baseUrl") or base_url

        if provider.type == "anthropic":
            from ..providers.anthropic import AnthropicProvider
            return AnthropicProvider(
                name, base_url, api_key, timeout=provider.timeout, client=self._client,
            )
        if provider.type == "openai":
            from ..providers.generic_openai import GenericOpenAIProvider
            return GenericOpenAIProvider(
                name, base_url, api_key, timeout=provider.timeout, client=self._client,
            )
        raise ConfigurationError(f"Provider {name} has unsupported type {provider.type}")

    async def list_models(
        self, name: str, credentials: ProviderCredentials | None = None,
    ) -> list[ModelInfo]:
        """Static models from config plus, if enabled, the provider's live list."""
        provider = self._provider_config(name)
        models = [
            ModelInfo(name=m.name, provider=name, label=m.label or m.name, max_tokens=m.max_tokens)
            for m in provider.models
        ]
        if provider.dynamic_models:
            backend = self.get_backend(name, credentials)
            try:
                dynamic = await backend.list_models()
            except Exception as e:
                logger.warning("Failed to list models for %s: %s", name, e)
                dynamic = []
            known = {m.name for m in models}
            models.extend(m for m in dynamic if m.name not in known)
        return models

    async def resolve(
        self,
        model: str,
        provider: str,
        credentials: ProviderCredentials | None = None,
    ) -> ResolvedModel:
        """Resolve a model id; unknown ids fall back to the provider's first model."""
        backend = self.get_backend(provider, credentials)
        models = await self.list_models(provider, credentials)
        if not models:
            raise ModelNotAvailableError(provider)

        info = next((m for m in models if m.name == model), None)
        if info is None:
            info = models[0]
            logger.warning(
                "Model %s not found for provider %s, falling back to %s",
                model, provider, info.name,
            )
        return ResolvedModel(
            backend=backend,
            model=info,
            provider=provider,
            max_tokens=info.max_tokens or self.config.continuation.max_tokens,
        )
