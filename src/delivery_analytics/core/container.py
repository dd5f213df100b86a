"""Dependency injection container for building fully-wired reporters."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import httpx

from delivery_analytics.analytics.aggregator import Aggregator
from delivery_analytics.analytics.reporter import AnalyticsReporter
from delivery_analytics.core.config import AnalyticsConfig
from delivery_analytics.domain.interfaces import (
    IAggregator,
    IRecordSource,
    IWindowPlanner,
)
from delivery_analytics.planning.planner import Clock, WindowPlanner
from delivery_analytics.sources.base import SourceConfig
from delivery_analytics.sources.sqlite_source import SQLiteRecordSource
from delivery_analytics.sources.supabase_source import SupabaseRecordSource


class DIContainer:
    """Factory helpers that assemble an AnalyticsReporter with default wiring."""

    @staticmethod
    def create_reporter(
        *,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        supabase_anon_key: Optional[str] = None,
        sqlite_path: str | Path | None = None,
        config: Optional[AnalyticsConfig] = None,
        clock: Optional[Clock] = None,
        http_client_factory: Optional[Callable[[SourceConfig], httpx.Client]] = None,
    ) -> AnalyticsReporter:
        resolved_key = DIContainer._normalize_api_key(
            "supabase", supabase_key, supabase_anon_key
        )
        cfg = config or AnalyticsConfig.from_env()
        source_config = DIContainer._build_source_config(cfg)

        source: IRecordSource
        if supabase_url and resolved_key:
            client_factory = (
                http_client_factory or DIContainer._build_http_client_factory()
            )
            source = SupabaseRecordSource(
                client_factory(source_config),
                supabase_url,
                resolved_key,
                source_config,
            )
        elif sqlite_path is not None:
            source = SQLiteRecordSource(sqlite_path, source_config)
        else:
            raise ValueError(
                "Either supabase_url with a key or sqlite_path must be supplied"
            )

        planner = WindowPlanner(cfg.timezone, clock=clock)
        return AnalyticsReporter(
            source,
            planner,
            Aggregator(),
            default_range=cfg.range_selector,
        )

    @staticmethod
    def create_custom_reporter(
        *,
        source: IRecordSource,
        planner: Optional[IWindowPlanner] = None,
        aggregator: Optional[IAggregator] = None,
        config: Optional[AnalyticsConfig] = None,
    ) -> AnalyticsReporter:
        cfg = config or AnalyticsConfig()
        return AnalyticsReporter(
            source,
            planner or WindowPlanner(cfg.timezone),
            aggregator or Aggregator(),
            default_range=cfg.range_selector,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _build_source_config(config: AnalyticsConfig) -> SourceConfig:
        return SourceConfig(
            timeout=config.source_timeout_seconds,
            max_retries=config.source_max_retries,
            backoff_factor=config.source_backoff_factor,
            page_size=config.source_page_size,
        )

    @staticmethod
    def _build_http_client_factory() -> Callable[[SourceConfig], httpx.Client]:
        def factory(source_config: SourceConfig) -> httpx.Client:
            return httpx.Client(timeout=source_config.timeout)

        return factory

    @staticmethod
    def _normalize_api_key(source_name: str, *keys: Optional[str]) -> Optional[str]:
        """Allow both *_key and *_anon_key kwargs while preventing conflicts."""
        provided = [key for key in keys if key]
        if not provided:
            return None
        unique_values = set(provided)
        if len(unique_values) > 1:
            raise ValueError(
                f"Conflicting API keys supplied for {source_name}: {provided}"
            )
        return provided[0]
