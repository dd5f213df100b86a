"""Time-bucket label formatting shared by the planner and the aggregator."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import List, Union

import pytz

from delivery_analytics.domain.models import BucketPlan, Granularity


def resolve_timezone(name: str) -> tzinfo:
    """Return the pytz zone for an IANA name, raising ``ValueError`` if unknown."""

    if not name or not name.strip():
        raise ValueError("timezone must be a non-empty IANA name")
    try:
        return pytz.timezone(name.strip())
    except pytz.UnknownTimeZoneError as exc:
        raise ValueError(f"Unknown timezone '{name}'") from exc


def as_utc(instant: datetime) -> datetime:
    """Normalize an instant to UTC; naive values are taken to be UTC already."""

    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


class TimeBucketer:
    """Single owner of bucket granularity and label formatting.

    Labels are ``HH:00`` for hourly buckets and ``YYYY-MM-DD`` for daily ones,
    rendered in the configured zone. Hourly walks step one absolute hour at a
    time; daily walks step one calendar day on the local date, so DST days
    and month ends need no special casing.
    """

    def __init__(
        self, granularity: Union[Granularity, str], timezone_name: str = "UTC"
    ) -> None:
        self.granularity = Granularity(granularity)
        self.timezone_name = timezone_name
        self._zone = resolve_timezone(timezone_name)

    @classmethod
    def for_plan(cls, plan: BucketPlan) -> "TimeBucketer":
        return cls(plan.granularity, plan.timezone)

    @property
    def zone(self) -> tzinfo:
        return self._zone

    def localize(self, instant: datetime) -> datetime:
        return as_utc(instant).astimezone(self._zone)

    def label(self, instant: datetime) -> str:
        return self.localize(instant).strftime(self.granularity.label_format)

    def labels(self, start: datetime, count: int) -> List[str]:
        if count < 0:
            raise ValueError("count must be non-negative")
        if self.granularity is Granularity.HOUR:
            origin = as_utc(start)
            return [self.label(origin + timedelta(hours=step)) for step in range(count)]
        first_day = self.localize(start).date()
        return [self._format_day(first_day + timedelta(days=step)) for step in range(count)]

    def shift_back(self, end: datetime, duration: timedelta) -> datetime:
        """Return ``end - duration`` in UTC.

        Hourly windows subtract absolute time. Daily windows subtract on the
        local wall clock so that "7 days ago" keeps the same local time of day
        across a DST change.
        """

        if self.granularity is Granularity.HOUR:
            return as_utc(end) - duration
        local_end = self.localize(end)
        wall_start = local_end.replace(tzinfo=None) - duration
        return self._zone.localize(wall_start).astimezone(timezone.utc)

    def _format_day(self, day: date) -> str:
        return day.strftime(self.granularity.label_format)
