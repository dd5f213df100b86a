"""Exception hierarchy for delivery analytics failures."""

from __future__ import annotations

from typing import Any, Mapping


class DeliveryAnalyticsError(Exception):
    """Base class for all domain-level errors in delivery analytics."""

    default_message = "Delivery analytics error occurred"

    def __init__(
        self, message: str | None = None, *, context: Mapping[str, Any] | None = None
    ):
        self.message = message or self.default_message
        self.context: Mapping[str, Any] = dict(context or {})
        formatted = self._format_message()
        super().__init__(formatted)

    def _format_message(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


class InvalidRangeSelectorError(DeliveryAnalyticsError):
    """Window planner received a range token outside the supported set."""

    default_message = "Unsupported range selector"


class InvalidPlanError(DeliveryAnalyticsError):
    """Bucket plan is empty or carries duplicate labels."""

    default_message = "Invalid bucket plan"


class MalformedRecordError(DeliveryAnalyticsError):
    """A single log record cannot be assigned to a bucket."""

    default_message = "Malformed log record"


class SourceError(DeliveryAnalyticsError):
    """Generic record source failures (bad request, bad payload)."""

    default_message = "Record source error"


class SourceUnavailableError(SourceError):
    """Record source is down or unreachable."""

    default_message = "Record source is unavailable"


class SourceRateLimitError(SourceError):
    """Record source refuses the query due to rate limiting."""

    default_message = "Record source rate limit exceeded"
