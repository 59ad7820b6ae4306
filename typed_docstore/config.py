"""Configuration with YAML + env vars + explicit override support."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class StoreConfig:
    backend: str = "qdrant"  # "qdrant" | "memory"
    location: str | None = ":memory:"  # ":memory:" | None when url/path is used
    url: str | None = None
    api_key: str | None = None
    path: str | None = None
    collection: str = "documents"
    page_size: int = 100
    timeout: int | None = None
    native_async: bool = False  # AsyncQdrantClient instead of worker threads


@dataclass
class MappingConfig:
    cache_descriptors: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class AppConfig:
    store: StoreConfig = field(default_factory=StoreConfig)
    mapping: MappingConfig = field(default_factory=MappingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Mapping: env var name -> (section, field)
_ENV_MAPPING: dict[str, tuple[str, str]] = {
    "TYPED_DOCSTORE_BACKEND": ("store", "backend"),
    "TYPED_DOCSTORE_LOCATION": ("store", "location"),
    "TYPED_DOCSTORE_URL": ("store", "url"),
    "TYPED_DOCSTORE_API_KEY": ("store", "api_key"),
    "TYPED_DOCSTORE_PATH": ("store", "path"),
    "TYPED_DOCSTORE_COLLECTION": ("store", "collection"),
    "TYPED_DOCSTORE_PAGE_SIZE": ("store", "page_size"),
    "TYPED_DOCSTORE_TIMEOUT": ("store", "timeout"),
    "TYPED_DOCSTORE_NATIVE_ASYNC": ("store", "native_async"),
    "TYPED_DOCSTORE_CACHE_DESCRIPTORS": ("mapping", "cache_descriptors"),
    "TYPED_DOCSTORE_LOG_LEVEL": ("logging", "level"),
}


def load_config(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """Load configuration with priority: YAML < env vars < explicit overrides.

    Args:
        config_path: Path to YAML config file. None to skip.
        overrides: Dict of overrides in format {"section.field": value}.
            None values are skipped.
    """
    config = AppConfig()

    # 1. Load from YAML
    if config_path:
        _apply_yaml(config, config_path)

    # 2. Apply env vars
    _apply_env_vars(config)

    # 3. Apply explicit overrides
    if overrides:
        _apply_overrides(config, overrides)

    return config


def _apply_yaml(config: AppConfig, config_path: str) -> None:
    """Load YAML file and apply values to config."""
    path = Path(config_path)
    if not path.is_file():
        logger.warning("Config file not found: %s, using defaults", config_path)
        return

    import yaml

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        logger.warning("Config file is not a valid YAML mapping: %s", config_path)
        return

    for section_name, section_data in data.items():
        if not isinstance(section_data, dict):
            continue
        section = getattr(config, section_name, None)
        if section is None:
            logger.debug("Unknown config section: %s", section_name)
            continue
        _set_section_fields(section, section_data)

    logger.info("Loaded config from %s", config_path)


def _apply_env_vars(config: AppConfig) -> None:
    for env_name, (section_name, field_name) in _ENV_MAPPING.items():
        value = os.environ.get(env_name)
        if value is None:
            continue
        _set_field_value(getattr(config, section_name), field_name, value)


def _apply_overrides(config: AppConfig, overrides: dict[str, Any]) -> None:
    """Apply overrides in format {'section.field': value}."""
    for key, value in overrides.items():
        if value is None:
            continue
        parts = key.split(".", 1)
        if len(parts) != 2:
            logger.debug("Ignoring malformed override key: %s", key)
            continue
        section_name, field_name = parts
        section = getattr(config, section_name, None)
        if section is None:
            continue
        _set_field_value(section, field_name, value)


def _set_section_fields(section: Any, data: dict[str, Any]) -> None:
    section_fields = {f.name for f in fields(section)}
    for key, value in data.items():
        if key in section_fields:
            _set_field_value(section, key, value)


def _set_field_value(obj: Any, field_name: str, value: Any) -> None:
    """Set a field on a dataclass, coercing the value to the correct type."""
    field_info = {f.name: f for f in fields(obj)}.get(field_name)
    if field_info is None:
        return
    object.__setattr__(obj, field_name, _coerce_value(value, field_info.type))


def _coerce_value(value: Any, type_hint: str | type | None) -> Any:
    """Coerce a value to match the target type hint.

    Field annotations are strings here (postponed evaluation), so the
    checks work on their text.
    """
    type_str = str(type_hint) if type_hint else ""
    optional = "None" in type_str

    if value is None or (optional and isinstance(value, str) and value.strip().lower() in ("", "none", "null")):
        return None

    if "bool" in type_str:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        return bool(value)

    if "int" in type_str:
        try:
            return int(value)
        except (ValueError, TypeError):
            if optional:
                logger.warning("Ignoring non-integer value %r", value)
                return None
            raise

    if "str" in type_str and not isinstance(value, str):
        return str(value)

    return value
