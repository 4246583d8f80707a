"""Centralized configuration management for the tax alert pipeline."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_CONFIG_ENV_VAR = "TAXALERT_CONFIG_FILE"

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_BASE_URLS = {
    "anthropic": "https://api.anthropic.com/v1",
    "openai": "https://api.openai.com/v1",
    "vllm": "http://localhost:8000/v1",
    "ollama": "http://localhost:11434/v1",
}
_PROVIDER_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def _deep_update(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``overrides`` into ``base`` and return ``base``."""

    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


@dataclass
class ProviderSettings:
    """Settings that control how the LLM backend is accessed."""

    provider: str = DEFAULT_PROVIDER
    base_url: Optional[str] = None
    default_model: str = DEFAULT_MODEL
    api_key: Optional[str] = None
    timeout_seconds: float = 120.0
    temperature: float = 0.2
    max_tokens: int = 4000
    extra: Dict[str, Any] = field(default_factory=dict)

    def resolved_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        return DEFAULT_BASE_URLS.get(self.provider, DEFAULT_BASE_URLS["vllm"])

    def resolved_api_key(self, provider: Optional[str] = None) -> Optional[str]:
        """Return the configured key, or the provider's conventional env var."""

        provider = provider or self.provider
        if self.api_key and provider == self.provider:
            return self.api_key
        env_name = _PROVIDER_KEY_ENV.get(provider)
        return os.environ.get(env_name) if env_name else None


@dataclass
class ExtractionSettings:
    """Knobs for the extraction pipeline and its callers."""

    min_text_length: int = 50
    min_confidence: float = 0.0
    fallback_jurisdiction: str = "US"
    batch_concurrency: int = 1
    organization_profile: str = (
        "a global integrated energy company (upstream oil & gas, refining, "
        "renewables, trading and retail)"
    )
    store_path: Optional[str] = None


@dataclass
class Settings:
    """Top level configuration container."""

    llm: ProviderSettings = field(default_factory=ProviderSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)


def _load_yaml_config(path: Path) -> Dict[str, Any]:
    import yaml

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        logger.debug("Configuration file %s not found", path)
        return {}
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping")
    return data


def _load_env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {"llm": {}, "extraction": {}}
    llm = overrides["llm"]
    extraction = overrides["extraction"]

    for env_name, key in (
        ("LLM_PROVIDER", "provider"),
        ("LLM_BASE_URL", "base_url"),
        ("LLM_MODEL_DEFAULT", "default_model"),
        ("LLM_API_KEY", "api_key"),
        ("LLM_TIMEOUT", "timeout_seconds"),
        ("LLM_TEMPERATURE", "temperature"),
        ("LLM_MAX_TOKENS", "max_tokens"),
    ):
        value = os.environ.get(env_name)
        if value:
            llm[key] = value

    for env_name, key in (
        ("TAXALERT_MIN_TEXT_LENGTH", "min_text_length"),
        ("TAXALERT_MIN_CONFIDENCE", "min_confidence"),
        ("TAXALERT_FALLBACK_JURISDICTION", "fallback_jurisdiction"),
        ("TAXALERT_BATCH_CONCURRENCY", "batch_concurrency"),
        ("TAXALERT_ORGANIZATION_PROFILE", "organization_profile"),
        ("TAXALERT_STORE_PATH", "store_path"),
    ):
        value = os.environ.get(env_name)
        if value:
            extraction[key] = value

    return overrides


def _coerce_provider_settings(data: Dict[str, Any]) -> ProviderSettings:
    llm_data = dict(data.get("llm", {}) or {})
    known = {
        "provider",
        "base_url",
        "default_model",
        "api_key",
        "timeout_seconds",
        "temperature",
        "max_tokens",
    }
    return ProviderSettings(
        provider=str(llm_data.get("provider", DEFAULT_PROVIDER)).lower(),
        base_url=llm_data.get("base_url"),
        default_model=str(llm_data.get("default_model") or DEFAULT_MODEL),
        api_key=llm_data.get("api_key"),
        timeout_seconds=float(llm_data.get("timeout_seconds", 120.0)),
        temperature=float(llm_data.get("temperature", 0.2)),
        max_tokens=int(llm_data.get("max_tokens", 4000)),
        extra={key: value for key, value in llm_data.items() if key not in known},
    )


def _coerce_extraction_settings(data: Dict[str, Any]) -> ExtractionSettings:
    raw = dict(data.get("extraction", {}) or {})
    defaults = ExtractionSettings()
    return ExtractionSettings(
        min_text_length=int(raw.get("min_text_length", defaults.min_text_length)),
        min_confidence=float(raw.get("min_confidence", defaults.min_confidence)),
        fallback_jurisdiction=str(
            raw.get("fallback_jurisdiction", defaults.fallback_jurisdiction)
        ).upper(),
        batch_concurrency=max(1, int(raw.get("batch_concurrency", defaults.batch_concurrency))),
        organization_profile=str(raw.get("organization_profile", defaults.organization_profile)),
        store_path=raw.get("store_path"),
    )


def _build_settings() -> Settings:
    data: Dict[str, Any] = {}

    config_file = os.environ.get(_CONFIG_ENV_VAR)
    if config_file:
        data = _load_yaml_config(Path(config_file))

    env_overrides = _load_env_overrides()
    _deep_update(data.setdefault("llm", {}), env_overrides["llm"])
    _deep_update(data.setdefault("extraction", {}), env_overrides["extraction"])

    return Settings(
        llm=_coerce_provider_settings(data),
        extraction=_coerce_extraction_settings(data),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached configuration settings."""

    settings = _build_settings()
    logger.debug("Loaded settings: %s", json.dumps({
        "provider": settings.llm.provider,
        "base_url": settings.llm.resolved_base_url(),
        "default_model": settings.llm.default_model,
        "fallback_jurisdiction": settings.extraction.fallback_jurisdiction,
    }))
    return settings


def reset_settings_cache() -> None:
    """Reset the cached settings to force a reload on next access."""

    get_settings.cache_clear()  # type: ignore[attr-defined]
