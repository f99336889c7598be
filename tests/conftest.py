"""Shared fixtures for pairstream tests."""

from __future__ import annotations

import pytest

from pairstream.config import load_config
from pairstream.core.models import ProviderRegistry
from pairstream.types import (
    GenerateResult,
    Message,
    ModelInfo,
    PairstreamConfig,
    StreamPart,
    Usage,
)


class FakeBackend:
    """Scripted model backend.

    ``generate`` returns queued results (default: numbered summaries with
    fixed usage). ``stream`` replays queued part scripts (default: one text
    part then ``stop``).
    """

    def __init__(
        self,
        generate_results: list[GenerateResult] | None = None,
        stream_scripts: list[list[StreamPart]] | None = None,
        models: list[ModelInfo] | None = None,
    ) -> None:
        self.generate_results = list(generate_results or [])
        self.stream_scripts = list(stream_scripts or [])
        self.models = list(models or [])
        self.generate_calls: list[dict] = []
        self.stream_calls: list[dict] = []

    async def generate(self, messages, system, model, max_tokens):
        self.generate_calls.append({
            "messages": messages, "system": system, "model": model, "max_tokens": max_tokens,
        })
        if self.generate_results:
            return self.generate_results.pop(0)
        n = len(self.generate_calls)
        return GenerateResult(
            text=f"summary-{n}",
            finish_reason="stop",
            usage=Usage(completion_tokens=10, prompt_tokens=100, total_tokens=110),
        )

    async def stream(self, messages, system, model, max_tokens):
        self.stream_calls.append({
            "messages": messages, "system": system, "model": model, "max_tokens": max_tokens,
        })
        if self.stream_scripts:
            script = self.stream_scripts.pop(0)
        else:
            script = [
                StreamPart(type="text", text="Hello"),
                StreamPart(
                    type="finish",
                    finish_reason="stop",
                    usage=Usage(completion_tokens=5, prompt_tokens=50, total_tokens=55),
                ),
            ]
        for part in script:
            yield part

    async def list_models(self):
        return list(self.models)


def make_messages(n: int, prefix: str = "m") -> list[Message]:
    """Alternating user/assistant messages with ids ``m0``, ``m1``, ..."""
    return [
        Message(
            role="user" if i % 2 == 0 else "assistant",
            content=f"message {i}",
            id=f"{prefix}{i}",
        )
        for i in range(n)
    ]


def text_script(*chunks: str, finish_reason: str = "stop", completion: int = 5) -> list[StreamPart]:
    parts = [StreamPart(type="text", text=c) for c in chunks]
    parts.append(StreamPart(
        type="finish",
        finish_reason=finish_reason,
        usage=Usage(completion_tokens=completion, prompt_tokens=50, total_tokens=50 + completion),
    ))
    return parts


@pytest.fixture
def config() -> PairstreamConfig:
    return load_config(config_dict={
        "default_provider": "Fake",
        "default_model": "fake-model",
        "providers": {
            "Fake": {
                "type": "openai",
                "base_url": "http://fake.local/v1",
                "requires_api_key": False,
                "models": [
                    {"name": "fake-model", "max_tokens": 1000},
                    {"name": "other-model"},
                ],
            },
        },
    })


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def registry(config, backend) -> ProviderRegistry:
    reg = ProviderRegistry(config)
    reg.register_backend("Fake", backend)
    return reg
