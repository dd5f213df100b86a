"""Delivery analytics package following Clean Architecture layering."""

from .analytics.aggregator import Aggregator, aggregate
from .analytics.reporter import AnalyticsReporter
from .core.container import DIContainer
from .planning.planner import WindowPlanner, plan

__all__ = [
    "Aggregator",
    "AnalyticsReporter",
    "DIContainer",
    "WindowPlanner",
    "aggregate",
    "plan",
    "domain",
    "planning",
    "analytics",
    "sources",
    "core",
]
