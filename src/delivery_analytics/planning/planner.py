"""Window planner resolving range selectors into bucket plans."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from delivery_analytics.domain.exceptions import InvalidPlanError
from delivery_analytics.domain.interfaces import IWindowPlanner
from delivery_analytics.domain.models import BucketPlan, RangeSelector
from delivery_analytics.planning.bucketing import TimeBucketer, as_utc, resolve_timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WindowPlanner(IWindowPlanner):
    """Computes ``[start, end)`` and the ordered bucket labels for a range."""

    def __init__(
        self,
        timezone_name: str = "UTC",
        *,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        resolve_timezone(timezone_name)
        self._timezone_name = timezone_name
        self._clock = clock or utc_now
        self._logger = logger or logging.getLogger(__name__)

    @property
    def timezone_name(self) -> str:
        return self._timezone_name

    def plan(
        self,
        range_selector: Union[RangeSelector, str],
        reference: Optional[datetime] = None,
    ) -> BucketPlan:
        """Return the plan for the window ending at ``reference`` (or the clock).

        Raises ``InvalidRangeSelectorError`` for tokens other than ``24h``,
        ``7d`` and ``30d``. In a zone with daylight saving time, a ``24h``
        plan whose window crosses a clock change raises ``InvalidPlanError``
        because one of its ``HH:00`` labels would repeat. Daily plans and
        UTC plans never fail this way.
        """

        selector = RangeSelector.parse(range_selector)
        end = as_utc(reference if reference is not None else self._clock())
        bucketer = TimeBucketer(selector.granularity, self._timezone_name)
        start = bucketer.shift_back(end, selector.duration)
        labels = bucketer.labels(start, selector.bucket_count)

        if len(set(labels)) != len(labels):
            # Only reachable for hourly plans spanning a DST transition.
            raise InvalidPlanError(
                "Bucket labels repeat inside the window",
                context={
                    "range": selector.value,
                    "timezone": self._timezone_name,
                    "end": end.isoformat(),
                },
            )

        plan = BucketPlan(
            range_selector=selector,
            start=start,
            end=end,
            granularity=selector.granularity,
            timezone=self._timezone_name,
            labels=tuple(labels),
        )
        self._logger.debug(
            "window_planned",
            extra={
                "range": selector.value,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "buckets": len(labels),
            },
        )
        return plan


def plan(
    range_selector: Union[RangeSelector, str],
    reference: Optional[datetime] = None,
    *,
    timezone_name: str = "UTC",
) -> BucketPlan:
    """Functional shortcut for ``WindowPlanner(timezone_name).plan(...)``."""

    return WindowPlanner(timezone_name).plan(range_selector, reference)
