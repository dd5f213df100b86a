"""Reporting facade that coordinates planner, record source and aggregator."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Union

from delivery_analytics.analytics.aggregator import Aggregator
from delivery_analytics.domain.exceptions import SourceError
from delivery_analytics.domain.interfaces import (
    AnalyticsReport,
    IAggregator,
    IAnalyticsReporter,
    IRecordSource,
    IWindowPlanner,
)
from delivery_analytics.domain.models import RangeSelector
from delivery_analytics.planning.planner import WindowPlanner


class AnalyticsReporter(IAnalyticsReporter):
    """High-level facade producing a fresh report per request.

    Nothing is cached between calls; each report owns its plan and tallies.
    """

    def __init__(
        self,
        source: IRecordSource,
        planner: IWindowPlanner | None = None,
        aggregator: IAggregator | None = None,
        *,
        default_range: Union[RangeSelector, str] = RangeSelector.LAST_7_DAYS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._source = source
        self._planner = planner or WindowPlanner()
        self._aggregator = aggregator or Aggregator()
        self._default_range = RangeSelector.parse(default_range)
        self._logger = logger or logging.getLogger(__name__)

    @property
    def default_range(self) -> RangeSelector:
        return self._default_range

    def build_report(
        self,
        range_selector: Union[RangeSelector, str, None] = None,
        reference: Optional[datetime] = None,
    ) -> AnalyticsReport:
        """Plan the window, fetch its records once and aggregate them."""

        selector = RangeSelector.parse(
            self._default_range if range_selector is None else range_selector
        )
        self._logger.info("report_requested", extra={"range": selector.value})

        plan = self._planner.plan(selector, reference)
        try:
            records = self._source.fetch_records(plan.start, plan.end)
        except SourceError as exc:
            self._logger.error(
                "report_source_failed",
                extra={"range": selector.value, "context": exc.context},
            )
            raise

        result = self._aggregator.aggregate(plan, records)
        self._logger.info(
            "report_built",
            extra={
                "range": selector.value,
                "total_messages": result.total_messages,
                "skipped_records": result.skipped_records,
            },
        )
        return AnalyticsReport(plan=plan, result=result)

    def refresh(
        self,
        range_selector: Union[RangeSelector, str, None] = None,
        reference: Optional[datetime] = None,
    ) -> AnalyticsReport:
        """Re-run the report from scratch for a refresh action."""

        return self.build_report(range_selector, reference)

    @staticmethod
    def to_dataframe(report: AnalyticsReport) -> Any:
        """Export the bucket series of a report to a pandas DataFrame."""

        try:
            import pandas as pd  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("pandas is required for dataframe export") from exc

        data = [
            {"bucket": label, "messages": count}
            for label, count in report.result.bucket_series()
        ]
        return pd.DataFrame(data)
