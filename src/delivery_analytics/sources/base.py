"""Record source abstractions and shared retry behaviour."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from delivery_analytics.domain.exceptions import (
    SourceError,
    SourceRateLimitError,
    SourceUnavailableError,
)
from delivery_analytics.domain.models import LogRecord
from delivery_analytics.planning.bucketing import as_utc

TransientSourceError = Union[SourceRateLimitError, SourceUnavailableError]


@dataclass(frozen=True)
class SourceConfig:
    """Timeout, retry and paging settings shared by every record source."""

    timeout: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 0.5
    page_size: int = 1000

    def __post_init__(self) -> None:
        positive = {
            "timeout": self.timeout,
            "backoff_factor": self.backoff_factor,
            "page_size": self.page_size,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value!r}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries!r}")


class BaseRecordSource(ABC):
    """Fetch template: subclasses implement ``_query`` for one attempt.

    Rate limits and outages are retried with exponential backoff; other
    ``SourceError`` values surface immediately and anything else is wrapped.
    """

    def __init__(
        self,
        config: Optional[SourceConfig] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or SourceConfig()
        self.logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}"
        )

    def fetch_records(self, start: datetime, end: datetime) -> List[LogRecord]:
        """Return records in ``[start, end)``, retrying transient failures."""

        start_utc, end_utc = as_utc(start), as_utc(end)
        if start_utc >= end_utc:
            raise ValueError("start must be earlier than end")

        attempt = 0
        while True:
            self.log_attempt(start_utc, end_utc, attempt)
            try:
                records = self._query(start_utc, end_utc)
            except (SourceRateLimitError, SourceUnavailableError) as exc:
                if attempt >= self.config.max_retries:
                    self.logger.error(
                        "source_retries_exhausted",
                        extra={"source": self.source_name, "attempts": attempt + 1},
                        exc_info=exc,
                    )
                    raise
                self._wait_before_retry(exc, attempt)
                attempt += 1
                continue
            except SourceError:
                raise
            except Exception as exc:
                self.logger.exception(
                    "source_failed_unexpectedly", extra={"source": self.source_name}
                )
                raise SourceError(
                    "Unexpected record source failure",
                    context={"source": self.source_name},
                ) from exc
            self.log_result(records)
            return records

    @property
    def source_name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def _query(self, start: datetime, end: datetime) -> List[LogRecord]:
        """Source-specific retrieval of the half-open ``[start, end)`` window."""

    def log_attempt(self, start: datetime, end: datetime, attempt: int) -> None:
        self.logger.debug(
            "source_query",
            extra={
                "start": start.isoformat(),
                "end": end.isoformat(),
                "attempt": attempt,
                "source": self.source_name,
            },
        )

    def log_result(self, records: List[LogRecord]) -> None:
        self.logger.debug(
            "source_result",
            extra={"records": len(records), "source": self.source_name},
        )

    def handle_rate_limit(self, error: SourceRateLimitError, delay: float) -> None:
        """Hook invoked before sleeping on a rate-limit response."""

        self.logger.warning(
            "source_rate_limited",
            extra={"delay": delay, "source": self.source_name, "context": error.context},
        )

    def _wait_before_retry(self, error: TransientSourceError, attempt: int) -> None:
        delay = self._backoff_delay(attempt)
        if isinstance(error, SourceRateLimitError):
            self.handle_rate_limit(error, delay)
        else:
            self.logger.warning(
                "source_unavailable_backing_off",
                extra={"delay": delay, "source": self.source_name, "context": error.context},
            )
        self._sleep(delay)

    def _backoff_delay(self, attempt: int) -> float:
        return self.config.backoff_factor * (2 ** attempt)

    def _sleep(self, delay: float) -> None:
        time.sleep(delay)
