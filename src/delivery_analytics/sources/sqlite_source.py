"""SQLite-backed record source for local development."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple
from uuid import uuid4

from delivery_analytics.domain.exceptions import SourceUnavailableError
from delivery_analytics.domain.models import LogRecord
from delivery_analytics.planning.bucketing import as_utc

from .base import BaseRecordSource, SourceConfig

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS message_logs (
    id TEXT PRIMARY KEY,
    status TEXT,
    phone_number TEXT,
    message_preview TEXT,
    created_at TEXT
);
"""

_INSERT_SQL = """
INSERT INTO message_logs (id, status, phone_number, message_preview, created_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    status=excluded.status,
    phone_number=excluded.phone_number,
    message_preview=excluded.message_preview,
    created_at=excluded.created_at;
"""

_SELECT_BY_WINDOW_SQL = """
SELECT id, status, phone_number, message_preview, created_at
FROM message_logs
WHERE created_at >= ? AND created_at < ?
ORDER BY created_at ASC, id ASC;
"""

# Fixed-width UTC text so that string comparison matches time order.
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


class SQLiteRecordSource(BaseRecordSource):
    """Lightweight source focused on a local ``message_logs`` table."""

    def __init__(
        self, db_path: str | Path, config: Optional[SourceConfig] = None
    ) -> None:
        super().__init__(config)
        self._db_path = str(db_path)
        self._ensure_schema()

    def save(self, record: LogRecord) -> None:
        with sqlite3.connect(self._db_path, timeout=self.config.timeout) as conn:
            conn.execute(
                _INSERT_SQL,
                (
                    record.id or str(uuid4()),
                    record.status,
                    record.recipient_identifier,
                    record.content_preview,
                    self._encode_timestamp(record.timestamp),
                ),
            )
            conn.commit()

    def _query(self, start: datetime, end: datetime) -> List[LogRecord]:
        try:
            with sqlite3.connect(self._db_path, timeout=self.config.timeout) as conn:
                rows = conn.execute(
                    _SELECT_BY_WINDOW_SQL,
                    (self._encode_timestamp(start), self._encode_timestamp(end)),
                ).fetchall()
        except sqlite3.OperationalError as exc:
            raise SourceUnavailableError(
                "SQLite record source unavailable",
                context={"db_path": self._db_path, "error": str(exc)},
            ) from exc
        return [self._row_to_record(row) for row in rows]

    def _ensure_schema(self) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(_CREATE_TABLE_SQL)
            conn.commit()

    @staticmethod
    def _encode_timestamp(value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        return as_utc(value).strftime(_TIMESTAMP_FORMAT)

    @staticmethod
    def _row_to_record(
        row: Tuple[str, Optional[str], Optional[str], Optional[str], Optional[str]]
    ) -> LogRecord:
        id_, status, phone_number, message_preview, created_at = row
        return LogRecord.from_row(
            {
                "id": id_,
                "status": status,
                "phone_number": phone_number,
                "message_preview": message_preview,
                "created_at": created_at,
            }
        )
