"""Record source reading ``message_logs`` through the hosted backend's REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import httpx

from delivery_analytics.domain.exceptions import (
    SourceError,
    SourceRateLimitError,
    SourceUnavailableError,
)
from delivery_analytics.domain.models import LogRecord

from .base import BaseRecordSource, SourceConfig


REST_PATH = "/rest/v1"
DEFAULT_TABLE = "message_logs"


class SupabaseRecordSource(BaseRecordSource):
    """Concrete source that pages through a PostgREST table over HTTP."""

    def __init__(
        self,
        http_client: httpx.Client,
        base_url: str,
        api_key: str,
        config: Optional[SourceConfig] = None,
        *,
        table: str = DEFAULT_TABLE,
    ) -> None:
        if not base_url:
            raise ValueError("base_url must be provided")
        if not api_key:
            raise ValueError("api_key must be provided")
        super().__init__(config)
        self._http = http_client
        self._api_key = api_key
        self._endpoint = f"{base_url.rstrip('/')}{REST_PATH}/{table}"

    def _query(self, start: datetime, end: datetime) -> List[LogRecord]:
        records: List[LogRecord] = []
        offset = 0
        while True:
            rows = self._fetch_page(start, end, offset)
            records.extend(LogRecord.from_row(row) for row in rows)
            if len(rows) < self.config.page_size:
                return records
            offset += self.config.page_size

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _fetch_page(
        self, start: datetime, end: datetime, offset: int
    ) -> Sequence[Mapping[str, Any]]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }
        try:
            http_response = self._http.get(
                self._endpoint,
                params=self._build_params(start, end, offset),
                headers=headers,
                timeout=self.config.timeout,
            )
        except httpx.TransportError as exc:
            raise SourceUnavailableError(
                "Record source unreachable",
                context={"endpoint": self._endpoint, "error": str(exc)},
            ) from exc
        return self._map_response(http_response)

    def _build_params(
        self, start: datetime, end: datetime, offset: int
    ) -> List[Tuple[str, str]]:
        return [
            ("select", "*"),
            ("created_at", f"gte.{start.isoformat()}"),
            ("created_at", f"lt.{end.isoformat()}"),
            # id breaks created_at ties so offset pages never overlap.
            ("order", "created_at.asc,id.asc"),
            ("limit", str(self.config.page_size)),
            ("offset", str(offset)),
        ]

    def _map_response(
        self, http_response: httpx.Response
    ) -> Sequence[Mapping[str, Any]]:
        status = http_response.status_code

        if status == 429:
            raise SourceRateLimitError(
                "Record source rate limit exceeded",
                context={"status_code": status},
            )
        if status >= 500:
            raise SourceUnavailableError(
                "Record source unavailable",
                context={"status_code": status},
            )
        if status >= 400:
            raise SourceError(
                self._error_message(http_response),
                context={"status_code": status},
            )

        try:
            data = http_response.json()
        except ValueError as exc:
            raise SourceError(
                "Record source returned invalid JSON", context={"status_code": status}
            ) from exc

        if not isinstance(data, list) or not all(
            isinstance(row, Mapping) for row in data
        ):
            raise SourceError(
                "Record source returned an unexpected payload",
                context={"payload_type": type(data).__name__},
            )
        return data

    @staticmethod
    def _error_message(http_response: httpx.Response) -> str:
        try:
            data = http_response.json()
        except ValueError:
            return "Record source request failed"
        if isinstance(data, Mapping) and data.get("message"):
            return str(data["message"])
        return "Record source request failed"
