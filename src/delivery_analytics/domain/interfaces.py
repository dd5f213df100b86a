"""Domain-level interfaces defining contracts for reporting collaborators."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence, Union

from pydantic import BaseModel, ConfigDict

from .models import AggregationResult, BucketPlan, LogRecord, RangeSelector


class AnalyticsReport(BaseModel):
    """Bucket plan and aggregation result handed to the presentation layer."""

    model_config = ConfigDict(frozen=True)

    plan: BucketPlan
    result: AggregationResult


class IRecordSource(Protocol):
    """Fetches every log record whose timestamp falls inside ``[start, end)``."""

    def fetch_records(self, start: datetime, end: datetime) -> Sequence[LogRecord]:
        """Return the records for the window or raise ``SourceUnavailableError``."""


class IWindowPlanner(Protocol):
    """Resolves a coarse range selector into a concrete bucket plan."""

    def plan(
        self,
        range_selector: Union[RangeSelector, str],
        reference: Optional[datetime] = None,
    ) -> BucketPlan:
        """Return the plan for the window ending at ``reference``."""


class IAggregator(Protocol):
    """Folds records against a bucket plan in a single pass."""

    def aggregate(
        self, plan: BucketPlan, records: Iterable[LogRecord]
    ) -> AggregationResult:
        """Return the aggregated report for the supplied records."""


class IAnalyticsReporter(Protocol):
    """Coordinates planning, fetching and aggregation for one report."""

    def build_report(
        self,
        range_selector: Union[RangeSelector, str, None] = None,
        reference: Optional[datetime] = None,
    ) -> AnalyticsReport:
        """Produce a fresh report for the requested window."""
