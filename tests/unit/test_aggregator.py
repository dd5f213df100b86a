import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from delivery_analytics.analytics.aggregator import (
    TOP_RECIPIENTS_LIMIT,
    Aggregator,
    aggregate,
)
from delivery_analytics.domain.exceptions import InvalidPlanError
from delivery_analytics.domain.models import (
    BucketPlan,
    Granularity,
    LogRecord,
    RangeSelector,
)
from delivery_analytics.planning.planner import WindowPlanner

UTC = timezone.utc
REFERENCE = datetime(2024, 5, 15, 14, 30, tzinfo=UTC)


def _plan(selector: str = "7d") -> BucketPlan:
    return WindowPlanner().plan(selector, REFERENCE)


def _record(
    when: Optional[datetime],
    status: Optional[str] = "delivered",
    recipient: Optional[str] = None,
    preview: Optional[str] = None,
    idx: int = 0,
) -> LogRecord:
    return LogRecord(
        id=f"log-{idx}",
        timestamp=when,
        status=status,
        recipient_identifier=recipient,
        content_preview=preview,
    )


def _top(result):
    return [(entry.identifier, entry.count) for entry in result.top_recipients]


def test_empty_records_with_week_plan():
    plan = _plan("7d")
    result = Aggregator().aggregate(plan, [])

    assert result.total_messages == 0
    assert list(result.messages_by_bucket) == list(plan.labels)
    assert set(result.messages_by_bucket.values()) == {0}
    assert result.delivery_rate_percent == 0
    assert result.top_recipients == ()
    assert result.active_recipient_count == 0
    assert result.messages_by_status == {
        "delivered": 0,
        "sent": 0,
        "error": 0,
        "pending": 0,
    }
    assert result.messages_by_type == {"text": 0, "image": 0, "video": 0, "document": 0}


def test_statuses_in_one_bucket_and_delivery_rate():
    day = datetime(2024, 5, 10, 9, 0, tzinfo=UTC)
    records = [
        _record(day, "delivered", idx=1),
        _record(day + timedelta(hours=1), "delivered", idx=2),
        _record(day + timedelta(hours=2), "error", idx=3),
    ]

    result = Aggregator().aggregate(_plan("7d"), records)

    assert result.messages_by_bucket["2024-05-10"] == 3
    assert sum(result.messages_by_bucket.values()) == 3
    nonzero = {key: value for key, value in result.messages_by_status.items() if value}
    assert nonzero == {"delivered": 2, "error": 1}
    assert result.delivery_rate_percent == pytest.approx(66.7)


def test_recipient_ranking_with_identifier_tie_break():
    day = datetime(2024, 5, 12, 8, 0, tzinfo=UTC)
    counts = {"A": 5, "B": 3, "D": 1, "C": 1}
    records = [
        _record(day + timedelta(minutes=len(recipient) * n), recipient=recipient, idx=n)
        for recipient, count in counts.items()
        for n in range(count)
    ]

    result = Aggregator().aggregate(_plan("7d"), records)

    assert result.total_messages == 10
    assert result.active_recipient_count == 4
    assert _top(result) == [("A", 5), ("B", 3), ("C", 1), ("D", 1)]


def test_top_recipients_truncated_and_sorted():
    day = datetime(2024, 5, 12, 8, 0, tzinfo=UTC)
    counts = {"g": 1, "f": 2, "e": 2, "d": 3, "c": 3, "b": 4, "a": 1}
    records = [
        _record(day, recipient=recipient)
        for recipient, count in counts.items()
        for _ in range(count)
    ]

    result = Aggregator().aggregate(_plan("7d"), records)

    assert len(result.top_recipients) == TOP_RECIPIENTS_LIMIT
    assert _top(result) == [("b", 4), ("c", 3), ("d", 3), ("e", 2), ("f", 2)]
    assert result.active_recipient_count == 7
    ranked = _top(result)
    for (first_id, first_count), (second_id, second_count) in zip(ranked, ranked[1:]):
        assert first_count > second_count or (
            first_count == second_count and first_id < second_id
        )


def test_document_preview_is_classified_as_document():
    record = _record(
        datetime(2024, 5, 12, 8, 0, tzinfo=UTC), preview="see attached document.pdf"
    )

    result = Aggregator().aggregate(_plan("7d"), [record])

    assert result.messages_by_type["document"] == 1
    assert result.messages_by_type["text"] == 0


def test_record_before_plan_is_counted_but_not_bucketed():
    plan = _plan("7d")
    stray = _record(plan.start - timedelta(days=1), "sent", recipient="+1", idx=9)

    result = Aggregator().aggregate(plan, [stray])

    assert result.total_messages == 1
    assert sum(result.messages_by_bucket.values()) == 0
    assert result.unbucketed_records == 1
    assert result.messages_by_status["sent"] == 1
    assert result.active_recipient_count == 1


def test_records_from_the_reference_day_fall_outside_daily_buckets():
    # Daily buckets cover the seven days starting at the window start, so the
    # partial day containing the reference instant has no label of its own.
    plan = _plan("7d")
    today = _record(REFERENCE - timedelta(hours=1))

    result = Aggregator().aggregate(plan, [today])

    assert "2024-05-15" not in result.messages_by_bucket
    assert result.total_messages == 1
    assert result.unbucketed_records == 1


def test_hourly_plan_buckets_by_hour():
    plan = _plan("24h")
    records = [
        _record(datetime(2024, 5, 15, 9, 10, tzinfo=UTC)),
        _record(datetime(2024, 5, 15, 9, 55, tzinfo=UTC)),
        _record(datetime(2024, 5, 14, 20, 5, tzinfo=UTC)),
    ]

    result = Aggregator().aggregate(plan, records)

    assert result.messages_by_bucket["09:00"] == 2
    assert result.messages_by_bucket["20:00"] == 1
    assert len(result.messages_by_bucket) == 24


def test_unknown_and_missing_statuses_are_kept():
    day = datetime(2024, 5, 11, 12, 0, tzinfo=UTC)
    records = [
        _record(day, "read"),
        _record(day, "read"),
        _record(day, None),
        _record(day, "pending"),
    ]

    result = Aggregator().aggregate(_plan("7d"), records)

    assert result.messages_by_status["read"] == 2
    assert result.messages_by_status["unknown"] == 1
    assert result.messages_by_status["pending"] == 1
    assert sum(result.messages_by_status.values()) == result.total_messages
    assert result.delivery_rate_percent == 0


def test_record_without_timestamp_is_skipped(caplog):
    caplog.set_level(logging.WARNING, logger="delivery_analytics.analytics.aggregator")
    day = datetime(2024, 5, 11, 12, 0, tzinfo=UTC)
    records = [
        _record(day, "delivered", recipient="+1", idx=1),
        _record(None, "delivered", recipient="+2", preview="image", idx=2),
    ]

    result = Aggregator().aggregate(_plan("7d"), records)

    assert result.total_messages == 1
    assert result.skipped_records == 1
    assert result.messages_by_status["delivered"] == 1
    assert result.messages_by_type["image"] == 0
    assert result.active_recipient_count == 1
    assert result.delivery_rate_percent == 100.0
    assert any(entry.getMessage() == "malformed_record_skipped" for entry in caplog.records)


def test_empty_recipient_is_not_counted():
    day = datetime(2024, 5, 11, 12, 0, tzinfo=UTC)
    records = [_record(day, recipient=""), _record(day, recipient=None)]

    result = Aggregator().aggregate(_plan("7d"), records)

    assert result.total_messages == 2
    assert result.active_recipient_count == 0
    assert result.top_recipients == ()


def test_bucket_sum_never_exceeds_total():
    plan = _plan("7d")
    records = [
        _record(plan.start + timedelta(hours=hours), idx=hours)
        for hours in range(0, 24 * 8, 5)
    ]

    result = Aggregator().aggregate(plan, records)

    bucketed = sum(result.messages_by_bucket.values())
    assert bucketed <= result.total_messages
    assert bucketed + result.unbucketed_records == result.total_messages


def test_aggregate_is_idempotent_and_leaves_inputs_untouched():
    plan = _plan("30d")
    records = [
        _record(
            plan.start + timedelta(hours=7 * n),
            status=("delivered", "sent", "error", "queued")[n % 4],
            recipient=f"+33{n % 6}",
            preview=("image", "video", None, "notes")[n % 4],
            idx=n,
        )
        for n in range(90)
    ]
    records_before = copy.deepcopy(records)
    plan_before = plan.model_copy(deep=True)

    first = Aggregator().aggregate(plan, records)
    second = Aggregator().aggregate(plan, records)

    assert first == second
    assert first.model_dump() == second.model_dump()
    assert records == records_before
    assert plan == plan_before


def test_aggregate_consumes_iterators_in_one_pass():
    day = datetime(2024, 5, 11, 12, 0, tzinfo=UTC)
    records = (_record(day + timedelta(minutes=n), idx=n) for n in range(4))

    result = aggregate(_plan("7d"), records)

    assert result.total_messages == 4
    assert result.messages_by_bucket["2024-05-11"] == 4


def _raw_plan(labels) -> BucketPlan:
    return BucketPlan(
        range_selector=RangeSelector.LAST_7_DAYS,
        start=REFERENCE - timedelta(days=7),
        end=REFERENCE,
        granularity=Granularity.DAY,
        labels=tuple(labels),
    )


def test_empty_plan_is_rejected():
    with pytest.raises(InvalidPlanError):
        Aggregator().aggregate(_raw_plan([]), [])


def test_duplicate_labels_are_rejected():
    with pytest.raises(InvalidPlanError) as excinfo:
        Aggregator().aggregate(_raw_plan(["2024-05-08", "2024-05-08"]), [])
    assert excinfo.value.context["duplicates"] == ["2024-05-08"]


@pytest.mark.parametrize(
    "delivered, total, expected",
    [
        (0, 0, 0.0),
        (2, 3, 66.7),
        (1, 3, 33.3),
        (1, 8, 12.5),
        (1, 16, 6.3),
        (5, 5, 100.0),
    ],
)
def test_delivery_rate_rounding(delivered, total, expected):
    assert Aggregator.delivery_rate(delivered, total) == expected
