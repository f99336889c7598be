"""Tests for cookie parsing and pre-stream error mapping."""

import json
from urllib.parse import quote

from pairstream.proxy.helpers import (
    credentials_from_cookies,
    parse_cookies,
    pre_stream_status,
)
from pairstream.types import ConfigurationError, LLMProviderError, MissingAPIKeyError


def test_parse_cookies_decodes_values():
    header = "a=1; b=%7B%22x%22%3A1%7D; broken; =nameless"
    assert parse_cookies(header) == {"a": "1", "b": '{"x":1}'}
    assert parse_cookies(None) == {}


def test_credentials_from_cookies():
    keys = quote(json.dumps({"OpenAI": "sk-test", "Bad": 3}))
    providers = quote(json.dumps({"Ollama": {"baseUrl": "http://gpu:11434/v1"}}))
    creds = credentials_from_cookies(f"apiKeys={keys}; providers={providers}")
    assert creds.api_keys == {"OpenAI": "sk-test"}
    assert creds.provider_settings["Ollama"]["baseUrl"] == "http://gpu:11434/v1"


def test_malformed_cookie_ignored(caplog):
    creds = credentials_from_cookies("apiKeys=not-json")
    assert creds.api_keys == {}
    assert "apiKeys" in caplog.text


def test_pre_stream_status():
    assert pre_stream_status(MissingAPIKeyError("OpenAI")) == 401
    assert pre_stream_status(ConfigurationError("Unknown provider: X")) == 500
    assert pre_stream_status(LLMProviderError("HTTP 401: bad key", "OpenAI", 401)) == 401
    assert pre_stream_status(LLMProviderError("HTTP 503: busy", "OpenAI", 503)) == 500
    assert pre_stream_status(RuntimeError("invalid API key supplied")) == 500
    assert pre_stream_status(RuntimeError("boom")) == 500
