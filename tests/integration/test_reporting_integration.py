from datetime import datetime, timedelta, timezone

import pytest

from delivery_analytics.core.config import AnalyticsConfig
from delivery_analytics.core.container import DIContainer
from delivery_analytics.domain.models import LogRecord
from delivery_analytics.sources.sqlite_source import SQLiteRecordSource

pytestmark = pytest.mark.integration

UTC = timezone.utc
REFERENCE = datetime(2024, 5, 15, 14, 30, tzinfo=UTC)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "message_logs.db"


@pytest.fixture
def reporter(db_path):
    return DIContainer.create_reporter(
        sqlite_path=db_path,
        config=AnalyticsConfig(default_range="7d"),
        clock=lambda: REFERENCE,
    )


def _seed(db_path, *records):
    source = SQLiteRecordSource(db_path)
    for record in records:
        source.save(record)


def test_weekly_report_over_sqlite(db_path, reporter):
    start = REFERENCE - timedelta(days=7)
    _seed(
        db_path,
        LogRecord(id="before", timestamp=start - timedelta(milliseconds=1), status="delivered"),
        LogRecord(
            id="first",
            timestamp=start,
            status="delivered",
            recipient_identifier="+33600000001",
        ),
        LogRecord(
            id="middle",
            timestamp=datetime(2024, 5, 10, 9, 0, tzinfo=UTC),
            status="error",
            recipient_identifier="+33600000001",
            content_preview="image.jpg",
        ),
        LogRecord(id="at-end", timestamp=REFERENCE, status="delivered"),
        LogRecord(
            id="today",
            timestamp=datetime(2024, 5, 15, 10, 0, tzinfo=UTC),
            status="sent",
            recipient_identifier="+33600000002",
        ),
    )

    report = reporter.build_report()
    result = report.result

    assert report.plan.labels[0] == "2024-05-08"
    assert report.plan.labels[-1] == "2024-05-14"
    assert result.total_messages == 3
    assert sum(result.messages_by_bucket.values()) == 2
    assert result.unbucketed_records == 1
    assert result.messages_by_bucket["2024-05-08"] == 1
    assert result.messages_by_bucket["2024-05-10"] == 1
    assert result.messages_by_status["delivered"] == 1
    assert result.messages_by_status["error"] == 1
    assert result.messages_by_status["sent"] == 1
    assert result.messages_by_type["image"] == 1
    assert result.delivery_rate_percent == 33.3
    assert [r.identifier for r in result.top_recipients] == [
        "+33600000001",
        "+33600000002",
    ]
    assert result.active_recipient_count == 2


def test_refresh_picks_up_new_records(db_path, reporter):
    _seed(db_path, LogRecord(id="1", timestamp=REFERENCE - timedelta(hours=2), status="read"))

    first = reporter.build_report("24h").result
    _seed(db_path, LogRecord(id="2", timestamp=REFERENCE - timedelta(hours=1), status="read"))
    second = reporter.refresh("24h").result

    assert first.total_messages == 1
    assert second.total_messages == 2
    assert second.messages_by_bucket["12:00"] == 1
    assert second.messages_by_bucket["13:00"] == 1


def test_empty_database_yields_zeroed_report(reporter):
    result = reporter.build_report("30d").result

    assert result.total_messages == 0
    assert result.delivery_rate_percent == 0.0
    assert len(result.messages_by_bucket) == 30
    assert all(count == 0 for count in result.messages_by_bucket.values())
    assert result.top_recipients == ()
