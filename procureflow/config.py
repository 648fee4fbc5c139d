"""Runtime configuration for ProcureFlow.

Settings come from (lowest to highest priority):
1. Built-in defaults
2. ./procureflow.yaml or ~/.procureflow/config.yaml (or --config <path>)
3. Plain environment variables (DATABASE_URL, LLM_PROVIDER, ...)
4. PROCUREFLOW_<SECTION>_<KEY> environment overrides

${VAR} references in YAML values resolve from the environment at load
time. A .env file in the working directory is loaded first.

Environment Variables:
    DATABASE_URL: SQLAlchemy URL. Defaults to sqlite:///./procureflow.db.
    SQL_ECHO: "true" to echo SQL statements.
    LLM_PROVIDER: Completion provider: anthropic (default), openai, or gemini.
    ANTHROPIC_API_KEY / OPENAI_API_KEY / GEMINI_API_KEY: Provider credentials.
    <PROVIDER>_MODEL: Model override for the selected provider.
    <PROVIDER>_RPM_LIMIT: Requests per minute per provider; 0 disables.
    OPENAI_MODERATION_ENABLED: "true" to enable the moderation gate.
    MODERATION_MODEL: OpenAI moderation model name.
    PROMPT_INJECTION_STRICT: "true" to reject any injection detection.
    <PROVIDER>_MAX_RETRIES: Retry ceiling override per provider.
    SEARCH_CACHE_MAX_SIZE: Maximum cached search results (default 100).
    SEARCH_CACHE_TTL_SECONDS: Search cache entry lifetime (default 300).
    LOG_LEVEL: Root log level (default INFO).
    ALLOWED_ORIGINS: Comma-separated CORS origins.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./procureflow.db"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MODERATION_MODEL = "omni-moderation-latest"
DEFAULT_ALLOWED_ORIGINS = "http://localhost:5173,http://localhost:3000"

# Retry ceilings per completion provider; gemini is the least reliable
DEFAULT_PROVIDER_RETRIES: dict[str, int] = {
    "anthropic": 3,
    "openai": 3,
    "gemini": 4,
    "default": 3,
}

DEFAULT_PROVIDER_MODELS: dict[str, str] = {
    "anthropic": DEFAULT_MODEL,
    "openai": "gpt-4o-mini",
    "gemini": "gemini-2.0-flash",
}

# Requests per minute; gemini free tier quota is 15
DEFAULT_PROVIDER_RPM: dict[str, int] = {
    "anthropic": 50,
    "openai": 60,
    "gemini": 15,
    "default": 10,
}

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def get_database_url() -> str:
    """Get database URL from environment or use the default SQLite file."""
    return os.environ.get("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL


def get_model(provider_name: str) -> str:
    """Get the completion model for a provider.

    Args:
        provider_name: Provider key such as "anthropic" or "openai".

    Returns:
        Model identifier from <PROVIDER>_MODEL, or the provider's default.
    """
    key = provider_name.strip().lower()
    override = os.environ.get(f"{key.upper()}_MODEL", "").strip()
    return override or DEFAULT_PROVIDER_MODELS.get(key, DEFAULT_MODEL)


def _non_negative_env(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return None
    if value < 0:
        logger.warning("Ignoring negative %s", name)
        return None
    return value


def get_max_retries(provider_name: str) -> int:
    """Resolve the retry ceiling for a completion provider.

    Reads <PROVIDER>_MAX_RETRIES first, then the built-in table, then the
    "default" entry. Invalid or negative overrides are ignored.

    Args:
        provider_name: Provider key such as "anthropic" or "gemini".

    Returns:
        Maximum number of retries after the first attempt.
    """
    key = provider_name.strip().lower()
    override = _non_negative_env(f"{key.upper()}_MAX_RETRIES")
    if override is not None:
        return override
    return DEFAULT_PROVIDER_RETRIES.get(key, DEFAULT_PROVIDER_RETRIES["default"])


def get_rpm_limit(provider_name: str) -> int:
    """Requests-per-minute budget for a provider; 0 means unlimited."""
    key = provider_name.strip().lower()
    override = _non_negative_env(f"{key.upper()}_RPM_LIMIT")
    if override is not None:
        return override
    return DEFAULT_PROVIDER_RPM.get(key, DEFAULT_PROVIDER_RPM["default"])


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string. Missing vars become ''."""
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class ServerConfig(BaseModel):
    """HTTP server settings used by `procureflow serve`."""

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    allowed_origins: list[str] = Field(default_factory=list)

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value


class LLMConfig(BaseModel):
    """Completion provider selection.

    Attributes:
        provider: anthropic, openai, or gemini.
        model: Explicit model; None resolves through get_model(provider).
        max_tokens: Reply token ceiling.
    """

    model_config = ConfigDict(frozen=True)

    provider: str = "anthropic"
    model: str | None = None
    max_tokens: int = 1024


class SafetyConfig(BaseModel):
    """Input safety and moderation gate switches."""

    model_config = ConfigDict(frozen=True)

    prompt_injection_strict: bool = False
    moderation_enabled: bool = False
    moderation_model: str = DEFAULT_MODERATION_MODEL


class SearchCacheConfig(BaseModel):
    """Bounds for the in-process catalog search cache."""

    model_config = ConfigDict(frozen=True)

    max_size: int = Field(default=100, ge=0)
    ttl_seconds: float = Field(default=300.0, ge=0)


class Settings(BaseModel):
    """Top-level ProcureFlow settings."""

    model_config = ConfigDict(frozen=True)

    database_url: str = DEFAULT_DATABASE_URL
    sql_echo: bool = False
    server: ServerConfig = ServerConfig()
    llm: LLMConfig = LLMConfig()
    safety: SafetyConfig = SafetyConfig()
    search_cache: SearchCacheConfig = SearchCacheConfig()


def _find_config_file() -> Path | None:
    candidates = [
        Path.cwd() / "procureflow.yaml",
        Path.cwd() / "procureflow.yml",
        Path.home() / ".procureflow" / "config.yaml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _set(data: dict[str, Any], section: str, key: str, value: Any) -> None:
    section_data = data.setdefault(section, {})
    if isinstance(section_data, dict):
        section_data[key] = value


def _apply_plain_env(data: dict[str, Any]) -> dict[str, Any]:
    """Apply the flat, well-known environment variables."""
    env = os.environ
    if env.get("DATABASE_URL", "").strip():
        data["database_url"] = env["DATABASE_URL"].strip()
    if "SQL_ECHO" in env:
        data["sql_echo"] = _env_flag("SQL_ECHO")
    if env.get("LLM_PROVIDER", "").strip():
        _set(data, "llm", "provider", env["LLM_PROVIDER"].strip().lower())
    llm_section = data.get("llm") if isinstance(data.get("llm"), dict) else {}
    provider = str(llm_section.get("provider") or "anthropic").lower()
    model_var = f"{provider.upper()}_MODEL"
    if env.get(model_var, "").strip():
        _set(data, "llm", "model", env[model_var].strip())
    if "OPENAI_MODERATION_ENABLED" in env:
        _set(data, "safety", "moderation_enabled", _env_flag("OPENAI_MODERATION_ENABLED"))
    if env.get("MODERATION_MODEL", "").strip():
        _set(data, "safety", "moderation_model", env["MODERATION_MODEL"].strip())
    if "PROMPT_INJECTION_STRICT" in env:
        _set(data, "safety", "prompt_injection_strict", _env_flag("PROMPT_INJECTION_STRICT"))
    if env.get("SEARCH_CACHE_MAX_SIZE", "").strip():
        _set(data, "search_cache", "max_size", env["SEARCH_CACHE_MAX_SIZE"].strip())
    if env.get("SEARCH_CACHE_TTL_SECONDS", "").strip():
        _set(data, "search_cache", "ttl_seconds", env["SEARCH_CACHE_TTL_SECONDS"].strip())
    if env.get("LOG_LEVEL", "").strip():
        _set(data, "server", "log_level", env["LOG_LEVEL"].strip().upper())
    origins = env.get("ALLOWED_ORIGINS")
    if origins is not None:
        _set(data, "server", "allowed_origins", origins)
    elif "allowed_origins" not in data.get("server", {}):
        _set(data, "server", "allowed_origins", DEFAULT_ALLOWED_ORIGINS)
    return data


def _apply_prefixed_env(data: dict[str, Any]) -> dict[str, Any]:
    """Apply PROCUREFLOW_<SECTION>_<KEY> overrides.

    Section names are matched longest-first so ``search_cache`` wins over
    a hypothetical ``search`` section.
    """
    prefix = "PROCUREFLOW_"
    sections = sorted(
        (
            name
            for name, field in Settings.model_fields.items()
            if isinstance(field.default, BaseModel)
        ),
        key=len,
        reverse=True,
    )
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        for section in sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix) and len(suffix) > len(section_prefix):
                _set(data, section, suffix[len(section_prefix):], value)
                break
    return data


def load_settings(config_path: str | None = None) -> Settings:
    """Load settings from YAML, the environment, and .env.

    Args:
        config_path: Explicit YAML path. If None, searches the working
            directory and then ~/.procureflow/.

    Returns:
        Validated, immutable Settings.

    Raises:
        FileNotFoundError: If config_path is given but does not exist.
    """
    load_dotenv()

    data: dict[str, Any] = {}
    path = Path(config_path) if config_path else _find_config_file()
    if config_path and not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        data = _resolve_env_vars_recursive(raw)

    data = _apply_plain_env(data)
    data = _apply_prefixed_env(data)
    return Settings(**data)
