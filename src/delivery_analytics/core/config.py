"""Reporting configuration loaded from the environment or a config file."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from delivery_analytics.domain.models import RangeSelector
from delivery_analytics.planning.bucketing import resolve_timezone

ENV_PREFIX = "ANALYTICS_"


def _str_to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Expected an integer, got {value!r}") from exc


def _str_to_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Expected a number, got {value!r}") from exc


def _load_json(raw: str) -> Dict[str, Any]:
    return json.loads(raw) or {}


def _load_yaml(raw: str) -> Dict[str, Any]:
    try:
        import yaml  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("PyYAML is required to read YAML configuration") from exc
    return yaml.safe_load(raw) or {}


_LOADERS: Dict[str, Callable[[str], Dict[str, Any]]] = {
    ".json": _load_json,
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
}


@dataclass(frozen=True)
class AnalyticsConfig:
    """Default range, reporting timezone and record-source tuning."""

    default_range: str = "7d"
    timezone: str = "UTC"
    source_timeout_seconds: float = 30.0
    source_max_retries: int = 3
    source_backoff_factor: float = 0.5
    source_page_size: int = 1000

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def from_env(cls) -> "AnalyticsConfig":
        """Read ``ANALYTICS_*`` variables, falling back to the defaults."""

        defaults = cls()

        def env(name: str) -> str | None:
            return os.getenv(f"{ENV_PREFIX}{name}")

        return cls(
            default_range=env("DEFAULT_RANGE") or defaults.default_range,
            timezone=env("TIMEZONE") or defaults.timezone,
            source_timeout_seconds=_str_to_float(
                env("SOURCE_TIMEOUT_SECONDS"), defaults.source_timeout_seconds
            ),
            source_max_retries=_str_to_int(
                env("SOURCE_MAX_RETRIES"), defaults.source_max_retries
            ),
            source_backoff_factor=_str_to_float(
                env("SOURCE_BACKOFF_FACTOR"), defaults.source_backoff_factor
            ),
            source_page_size=_str_to_int(
                env("SOURCE_PAGE_SIZE"), defaults.source_page_size
            ),
        )

    @classmethod
    def from_file(cls, path: str) -> "AnalyticsConfig":
        """Load a JSON or YAML mapping; keys not set keep their defaults."""

        config_path = Path(path)
        if not config_path.is_file():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        loader = _LOADERS.get(config_path.suffix.lower())
        if loader is None:
            raise ValueError(
                f"Unsupported config format '{config_path.suffix}'; use JSON or YAML"
            )
        return cls(**cls._known_fields(loader(config_path.read_text())))

    @property
    def range_selector(self) -> RangeSelector:
        return RangeSelector(self.default_range)

    def validate(self) -> None:
        allowed = sorted(selector.value for selector in RangeSelector)
        if self.default_range not in allowed:
            raise ValueError(f"default_range must be one of {allowed}")
        resolve_timezone(self.timezone)
        if self.source_timeout_seconds <= 0:
            raise ValueError("source_timeout_seconds must be positive")
        if self.source_max_retries < 0:
            raise ValueError("source_max_retries must be non-negative")
        if self.source_backoff_factor <= 0:
            raise ValueError("source_backoff_factor must be positive")
        if self.source_page_size <= 0:
            raise ValueError("source_page_size must be positive")

    @classmethod
    def _known_fields(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        names = {field.name for field in fields(cls)}
        return {key: value for key, value in data.items() if key in names}
