from __future__ import annotations

import logging
from pathlib import Path

from customllm.config import DEFAULT_BASE_URL, DEFAULT_GREETING, load_config


def test_defaults_from_empty_environment() -> None:
    config = load_config({})

    assert config.host == "0.0.0.0"
    assert config.port == 3100
    assert config.base_url == DEFAULT_BASE_URL
    assert config.model == "gpt-4o-mini"
    assert config.api_key is None
    assert config.request_timeout_s == 30.0
    assert config.allowed_origins == ("*",)
    assert config.greeting == DEFAULT_GREETING
    assert config.max_tool_iterations == 10
    assert config.max_body_bytes == 1_000_000
    assert config.keepalive_s == 30.0
    assert config.trace_dir is None
    assert config.backend == "openai"


def test_fallback_variables_are_honoured() -> None:
    config = load_config(
        {
            "AGORA_AGENT_LLM_URL": "https://upstream.test/chat",
            "AGORA_AGENT_LLM_MODEL": "agent-model",
            "OPENAI_API_KEY": "sk-real",
            "CORS_ALLOWED_ORIGINS": "https://a.test, https://b.test",
            "AGORA_AGENT_GREETING_MESSAGE": "Hello!",
            "CUSTOM_LLM_TRACE_DIR": "/tmp/traces",
            "CUSTOM_LLM_BACKEND": "FAKE",
        }
    )

    assert config.base_url == "https://upstream.test/chat"
    assert config.model == "agent-model"
    assert config.api_key == "sk-real"
    assert config.allowed_origins == ("https://a.test", "https://b.test")
    assert config.greeting == "Hello!"
    assert config.trace_dir == Path("/tmp/traces")
    assert config.backend == "fake"


def test_primary_variables_win_over_fallbacks() -> None:
    config = load_config(
        {
            "CUSTOM_LLM_MODEL": "primary",
            "AGORA_AGENT_LLM_MODEL": "secondary",
            "CUSTOM_LLM_API_KEY": "sk-primary",
            "OPENAI_API_KEY": "sk-secondary",
        }
    )

    assert config.model == "primary"
    assert config.api_key == "sk-primary"


def test_placeholder_keys_are_ignored(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="customllm.config"):
        config = load_config(
            {
                "CUSTOM_LLM_API_KEY": "your-openai-api-key",
                "AGORA_AGENT_LLM_API_KEY": "replace-with-your-key",
                "OPENAI_API_KEY": "sk-live",
            }
        )

    assert config.api_key == "sk-live"
    assert len(caplog.records) == 2


def test_malformed_numbers_fall_back_to_defaults() -> None:
    config = load_config(
        {
            "CUSTOM_LLM_PORT": "not-a-port",
            "CUSTOM_LLM_REQUEST_TIMEOUT_MS": "2500",
            "CUSTOM_LLM_MAX_TOOL_ITERATIONS": "-3",
        }
    )

    assert config.port == 3100
    assert config.request_timeout_s == 2.5
    assert config.max_tool_iterations == 10
