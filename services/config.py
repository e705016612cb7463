"""Runtime configuration for FeedGen, built once at startup."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

PROVIDERS = ("vertex", "openai")

DEFAULT_TITLE_PROMPT = (
    "You are a leading digital marketer working for a top retail organisation. "
    "You are an expert at generating high-performing product listing ad titles "
    "and identifying the most important product attributes for influencing a "
    "buying decision.\n"
    "Given the product data in Context, answer with exactly four lines:\n"
    "product attribute keys in original title: <keys used by the title, separated by |>\n"
    "product category: <category>\n"
    "product attribute keys: <keys for an optimised title, separated by |>\n"
    "product attribute values: <values for those keys, in the same order, separated by |>\n\n"
)

DEFAULT_DESCRIPTION_PROMPT = (
    "You are a leading digital marketer working for a top retail organisation. "
    "Write a compelling product description of at most 5000 characters for the "
    "product in Context. Use only facts present in Context and do not repeat the "
    "title verbatim.\n\n"
)

ENV_PREFIX = "FEEDGEN_"


class ConfigError(Exception):
    """Raised when required settings are missing or malformed."""


@dataclass(frozen=True)
class ModelParameters:
    temperature: float = 0.1
    max_output_tokens: int = 1024
    top_k: int = 40
    top_p: float = 0.8

    def to_vertex(self) -> Dict[str, float | int]:
        return {
            "temperature": self.temperature,
            "maxOutputTokens": self.max_output_tokens,
            "topK": self.top_k,
            "topP": self.top_p,
        }


@dataclass(frozen=True)
class FeedGenConfig:
    provider: str = "vertex"
    gcp_project_id: str = ""
    gcp_location: str = "us-central1"
    model_id: str = "text-bison"
    access_token: str = ""
    openai_api_key: str = ""
    item_id_column: str = "id"
    title_column: str = "title"
    description_column: str = "description"
    title_prompt: str = DEFAULT_TITLE_PROMPT
    description_prompt: str = DEFAULT_DESCRIPTION_PROMPT
    title_parameters: ModelParameters = field(default_factory=ModelParameters)
    description_parameters: ModelParameters = field(
        default_factory=lambda: ModelParameters(temperature=0.1, max_output_tokens=1024)
    )
    max_retries: int = 3
    retry_delay_seconds: float = 0.0

    def with_overrides(self, **changes: Any) -> "FeedGenConfig":
        """Return a copy with non-empty ``changes`` applied (sidebar edits)."""

        cleaned = {key: value for key, value in changes.items() if value not in (None, "")}
        return replace(self, **cleaned)


def _lookup(source: Mapping[str, Any], key: str) -> Any:
    if key in source and source[key] not in (None, ""):
        return source[key]
    env_value = os.getenv(ENV_PREFIX + key.upper())
    if env_value not in (None, ""):
        return env_value
    return None


def _as_number(value: Any, cast, key: str, errors: List[str]):
    try:
        return cast(value)
    except (TypeError, ValueError):
        errors.append(f"{key} must be numeric (got {value!r})")
        return None


def _model_parameters(
    source: Mapping[str, Any], prefix: str, defaults: ModelParameters, errors: List[str]
) -> ModelParameters:
    nested = source.get(prefix) if isinstance(source.get(prefix), Mapping) else {}
    values: Dict[str, Any] = {}
    for name, cast in (
        ("temperature", float),
        ("max_output_tokens", int),
        ("top_k", int),
        ("top_p", float),
    ):
        raw = nested.get(name) if name in nested else _lookup(source, f"{prefix}_{name}")
        if raw in (None, ""):
            continue
        number = _as_number(raw, cast, f"{prefix}_{name}", errors)
        if number is not None:
            values[name] = number
    return replace(defaults, **values)


def load_config(source: Optional[Mapping[str, Any]] = None) -> FeedGenConfig:
    """Build :class:`FeedGenConfig` from ``source`` with ``FEEDGEN_*`` env fallback.

    ``source`` is usually ``st.secrets``; generation parameters may be given
    flat (``title_temperature``) or nested under ``title`` / ``description``.
    """

    source = dict(source or {})
    defaults = FeedGenConfig()
    errors: List[str] = []
    values: Dict[str, Any] = {}

    for key in (
        "provider",
        "gcp_project_id",
        "gcp_location",
        "model_id",
        "access_token",
        "openai_api_key",
        "item_id_column",
        "title_column",
        "description_column",
        "title_prompt",
        "description_prompt",
    ):
        raw = _lookup(source, key)
        if raw is not None:
            values[key] = str(raw).strip() if key not in ("title_prompt", "description_prompt") else str(raw)

    for key, cast in (("max_retries", int), ("retry_delay_seconds", float)):
        raw = _lookup(source, key)
        if raw is not None:
            number = _as_number(raw, cast, key, errors)
            if number is not None:
                values[key] = number

    values["title_parameters"] = _model_parameters(source, "title", defaults.title_parameters, errors)
    values["description_parameters"] = _model_parameters(
        source, "description", defaults.description_parameters, errors
    )

    config = replace(defaults, **values)

    provider = config.provider.lower()
    if provider not in PROVIDERS:
        errors.append(f"provider must be one of {', '.join(PROVIDERS)} (got {config.provider!r})")
    elif provider == "vertex":
        missing = [name for name in ("gcp_project_id", "access_token") if not getattr(config, name)]
        if missing:
            errors.append(f"missing Vertex AI settings: {', '.join(missing)}")
    elif not config.openai_api_key and not os.getenv("OPENAI_API_KEY"):
        errors.append("missing OpenAI settings: openai_api_key")

    if config.max_retries < 1:
        errors.append("max_retries must be at least 1")

    if errors:
        raise ConfigError("; ".join(errors))
    return replace(config, provider=provider)
