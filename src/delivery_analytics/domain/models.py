"""Domain value objects describing delivery logs, bucket plans and reports."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.dataclasses import dataclass as pydantic_dataclass

from .exceptions import InvalidRangeSelectorError


class MessageStatus(str, Enum):
    """Delivery statuses the dashboard knows about."""

    DELIVERED = "delivered"
    SENT = "sent"
    ERROR = "error"
    PENDING = "pending"

    @property
    def key(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Optional[str]) -> "StatusKey":
        """Map a raw status onto the enum, or onto ``OtherStatus`` when unknown."""

        if value is None or not str(value).strip():
            return OtherStatus(label=UNKNOWN_STATUS_LABEL)
        try:
            return cls(value)
        except ValueError:
            return OtherStatus(label=str(value))


@pydantic_dataclass(frozen=True)
class OtherStatus:
    """Escape variant for statuses introduced after this code was written."""

    label: str

    @property
    def key(self) -> str:
        return self.label


StatusKey = Union[MessageStatus, OtherStatus]

UNKNOWN_STATUS_LABEL = "unknown"


class MessageType(str, Enum):
    """Message kinds inferred from the content preview."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"

    @classmethod
    def classify(cls, preview: Optional[str]) -> "MessageType":
        """First substring match wins: image, then video, then document."""

        if preview:
            for candidate in (cls.IMAGE, cls.VIDEO, cls.DOCUMENT):
                if candidate.value in preview:
                    return candidate
        return cls.TEXT


class Granularity(str, Enum):
    """Bucket size used for the message time series."""

    HOUR = "hour"
    DAY = "day"

    @property
    def label_format(self) -> str:
        return "%H:00" if self is Granularity.HOUR else "%Y-%m-%d"


class RangeSelector(str, Enum):
    """Reporting windows offered by the dashboard."""

    LAST_24_HOURS = "24h"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"

    @property
    def duration(self) -> timedelta:
        return _RANGE_DURATIONS[self]

    @property
    def granularity(self) -> Granularity:
        if self is RangeSelector.LAST_24_HOURS:
            return Granularity.HOUR
        return Granularity.DAY

    @property
    def bucket_count(self) -> int:
        unit = timedelta(hours=1) if self.granularity is Granularity.HOUR else timedelta(days=1)
        return self.duration // unit

    @classmethod
    def parse(cls, value: Union["RangeSelector", str]) -> "RangeSelector":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidRangeSelectorError(
                f"Unsupported range selector '{value}'",
                context={"allowed": [member.value for member in cls]},
            ) from exc


_RANGE_DURATIONS = {
    RangeSelector.LAST_24_HOURS: timedelta(hours=24),
    RangeSelector.LAST_7_DAYS: timedelta(days=7),
    RangeSelector.LAST_30_DAYS: timedelta(days=30),
}


_TIMESTAMP_ADAPTER = TypeAdapter(Optional[datetime])


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a backend timestamp; values pydantic cannot read become ``None``."""

    if isinstance(value, str):
        value = value.strip() or None
    try:
        return _TIMESTAMP_ADAPTER.validate_python(value)
    except ValidationError:
        return None


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class LogRecord(BaseModel):
    """Immutable message-delivery log entry supplied by a record source.

    ``timestamp`` is optional only so that malformed rows can still be carried
    to the aggregator, which skips them.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    timestamp: Optional[datetime] = None
    status: Optional[str] = None
    recipient_identifier: Optional[str] = None
    content_preview: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def assume_utc_when_naive(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LogRecord":
        """Build a record from a ``message_logs`` row of the hosted backend."""

        return cls(
            id=_optional_str(row.get("id")),
            timestamp=_parse_timestamp(row.get("created_at")),
            status=_optional_str(row.get("status")),
            recipient_identifier=_optional_str(row.get("phone_number")),
            content_preview=_optional_str(row.get("message_preview")),
        )

    def classify_status(self) -> StatusKey:
        return MessageStatus.parse(self.status)

    def classify_type(self) -> MessageType:
        return MessageType.classify(self.content_preview)


class BucketPlan(BaseModel):
    """Concrete ``[start, end)`` window plus the ordered bucket labels to report."""

    model_config = ConfigDict(frozen=True)

    range_selector: RangeSelector
    start: datetime
    end: datetime
    granularity: Granularity
    timezone: str = "UTC"
    labels: Tuple[str, ...]

    @model_validator(mode="after")
    def validate_window(self) -> "BucketPlan":
        if self.start >= self.end:
            raise ValueError("start must be earlier than end")
        return self

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


class RecipientCount(BaseModel):
    """Ranked recipient entry."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    count: int = Field(..., ge=1)


class AggregationResult(BaseModel):
    """Report produced by one aggregation pass."""

    model_config = ConfigDict(frozen=True)

    total_messages: int = Field(..., ge=0)
    delivery_rate_percent: float = Field(..., ge=0, le=100)
    messages_by_bucket: Dict[str, int]
    messages_by_status: Dict[str, int]
    messages_by_type: Dict[str, int]
    top_recipients: Tuple[RecipientCount, ...] = Field(default_factory=tuple)
    active_recipient_count: int = Field(..., ge=0)
    skipped_records: int = Field(default=0, ge=0)
    unbucketed_records: int = Field(default=0, ge=0)

    def bucket_series(self) -> List[Tuple[str, int]]:
        """Bucket counts as ``(label, count)`` pairs in plan order."""

        return list(self.messages_by_bucket.items())
