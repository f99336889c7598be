"""Tests for config loading and validation."""

import json

import pytest

from pairstream.config import DEFAULT_PROVIDERS, load_config, validate_config


class TestLoadConfig:
    def test_defaults(self):
        config = load_config(config_dict={})
        assert config.default_provider == "OpenAI"
        assert config.default_model == "gpt-4o"
        assert set(config.providers) == set(DEFAULT_PROVIDERS)
        assert config.summarization.batch_size == 50
        assert config.summarization.cache_ttl_seconds == 600.0
        assert config.summarization.cache_scope == "prompt"
        assert config.continuation.max_response_segments == 2
        assert config.continuation.max_tokens == 8000
        assert config.context.work_dir == "/home/project"
        assert validate_config(config) == []

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "pairstream.yaml"
        path.write_text(
            "default_provider: Local\n"
            "default_model: qwen\n"
            "providers:\n"
            "  Local:\n"
            "    type: openai\n"
            "    base_url: http://127.0.0.1:8000/v1\n"
            "    requires_api_key: false\n"
            "    models: [qwen, {name: llama, max_tokens: 4096}]\n"
            "summarization:\n"
            "  batch_size: 20\n"
            "agents:\n"
            "  - id: reviewer\n"
            "    name: Reviewer\n"
            "    initialPrompt: Review everything.\n"
        )
        config = load_config(path)
        local = config.providers["Local"]
        assert [m.name for m in local.models] == ["qwen", "llama"]
        assert local.models[1].max_tokens == 4096
        assert local.requires_api_key is False
        assert config.summarization.batch_size == 20
        assert config.agents[0].instructions == "Review everything."
        assert validate_config(config) == []

    def test_json_file(self, tmp_path):
        path = tmp_path / "pairstream.json"
        path.write_text(json.dumps({"default_model": "gpt-4o-mini"}))
        assert load_config(path).default_model == "gpt-4o-mini"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_discovers_config_in_cwd(self, tmp_path, monkeypatch):
        (tmp_path / "pairstream.yml").write_text("default_model: discovered\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().default_model == "discovered"


class TestValidateConfig:
    def test_unknown_default_provider(self):
        config = load_config(config_dict={"default_provider": "Nope"})
        assert any("Nope" in e for e in validate_config(config))

    def test_bad_values(self):
        config = load_config(config_dict={
            "summarization": {"batch_size": 0, "cache_scope": "global", "max_concurrent_batches": 0},
            "continuation": {"max_response_segments": 0},
            "context": {"recent_messages": 0},
        })
        errors = validate_config(config)
        assert len(errors) == 5

    def test_provider_problems(self):
        config = load_config(config_dict={
            "default_provider": "X",
            "providers": {"X": {"type": "grpc", "models": []}},
        })
        errors = validate_config(config)
        assert any("unknown type" in e for e in errors)
        assert any("no base_url" in e for e in errors)
        assert any("no models" in e for e in errors)

    def test_duplicate_agent_ids(self):
        config = load_config(config_dict={"agents": [
            {"id": "a", "name": "One"}, {"id": "a", "name": "Two"},
        ]})
        assert "Agent ids must be unique" in validate_config(config)
