from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_GREETING = (
    "Hi, I'm Aiden, your Agora checklist assistant. To kick things off, are you seeing "
    "any mixed usage of string and integer RTC UIDs in your implementation?"
)

_API_KEY_VARS = (
    "CUSTOM_LLM_API_KEY",
    "AGORA_AGENT_LLM_API_KEY",
    "YOUR_LLM_API_KEY",
    "OPENAI_API_KEY",
)
_PLACEHOLDER_KEYS = {"your-secret-key", "your-openai-api-key", "your_api_key"}
_PLACEHOLDER_FRAGMENTS = ("replace-with", "example-key")


@dataclass(frozen=True, slots=True)
class GatewayConfig:
    host: str = "0.0.0.0"
    port: int = 3100
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    api_key: str | None = field(default=None, repr=False)
    request_timeout_s: float = 30.0
    allowed_origins: tuple[str, ...] = ("*",)
    greeting: str = DEFAULT_GREETING
    checklist_prompt: str | None = None
    max_tool_iterations: int = 10
    max_body_bytes: int = 1_000_000
    keepalive_s: float = 30.0
    trace_dir: Path | None = None
    tools_module: str | None = None
    backend: str = "openai"
    log_level: str = "INFO"
    log_payloads: bool = False


def _first_env(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("ignoring malformed %s=%r", name, raw)
        return default
    return value if value > 0 else default


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def is_placeholder_key(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _PLACEHOLDER_KEYS:
        return True
    return any(fragment in lowered for fragment in _PLACEHOLDER_FRAGMENTS)


def resolve_api_key(env: Mapping[str, str]) -> str | None:
    for name in _API_KEY_VARS:
        value = env.get(name)
        if value is None or not value.strip():
            continue
        if is_placeholder_key(value):
            logger.warning("%s looks like a placeholder value and will be ignored", name)
            continue
        return value.strip()
    return None


def parse_origins(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ("*",)
    origins = tuple(item.strip() for item in raw.split(",") if item.strip())
    return origins or ("*",)


def load_config(env: Mapping[str, str] | None = None) -> GatewayConfig:
    """Build the gateway configuration from environment variables."""
    env = os.environ if env is None else env
    trace_dir = _first_env(env, "CUSTOM_LLM_TRACE_DIR")
    return GatewayConfig(
        host=_first_env(env, "CUSTOM_LLM_HOST") or "0.0.0.0",
        port=_env_int(env, "CUSTOM_LLM_PORT", 3100),
        base_url=_first_env(env, "CUSTOM_LLM_BASE_URL", "AGORA_AGENT_LLM_URL") or DEFAULT_BASE_URL,
        model=_first_env(env, "CUSTOM_LLM_MODEL", "AGORA_AGENT_LLM_MODEL") or DEFAULT_MODEL,
        api_key=resolve_api_key(env),
        request_timeout_s=_env_int(env, "CUSTOM_LLM_REQUEST_TIMEOUT_MS", 30_000) / 1000.0,
        allowed_origins=parse_origins(
            _first_env(env, "CUSTOM_LLM_ALLOWED_ORIGINS", "ALLOWED_ORIGINS", "CORS_ALLOWED_ORIGINS")
        ),
        greeting=_first_env(env, "CUSTOM_LLM_GREETING_MESSAGE", "AGORA_AGENT_GREETING_MESSAGE")
        or DEFAULT_GREETING,
        checklist_prompt=_first_env(env, "CUSTOM_LLM_CHECKLIST_PROMPT"),
        max_tool_iterations=_env_int(env, "CUSTOM_LLM_MAX_TOOL_ITERATIONS", 10),
        max_body_bytes=_env_int(env, "CUSTOM_LLM_MAX_BODY_BYTES", 1_000_000),
        keepalive_s=float(_env_int(env, "CUSTOM_LLM_KEEPALIVE_S", 30)),
        trace_dir=Path(trace_dir) if trace_dir else None,
        tools_module=_first_env(env, "CUSTOM_LLM_TOOLS_MODULE"),
        backend=(_first_env(env, "CUSTOM_LLM_BACKEND") or "openai").lower(),
        log_level=(_first_env(env, "CUSTOM_LLM_LOG_LEVEL") or "INFO").upper(),
        log_payloads=_env_bool(env, "CUSTOM_LLM_LOG_PAYLOAD"),
    )
