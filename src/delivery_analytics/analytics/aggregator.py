"""Single-pass aggregation of delivery log records against a bucket plan."""

from __future__ import annotations

import logging
from collections import Counter
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from delivery_analytics.domain.exceptions import InvalidPlanError, MalformedRecordError
from delivery_analytics.domain.interfaces import IAggregator
from delivery_analytics.domain.models import (
    AggregationResult,
    BucketPlan,
    LogRecord,
    MessageStatus,
    MessageType,
    RecipientCount,
)
from delivery_analytics.planning.bucketing import TimeBucketer

TOP_RECIPIENTS_LIMIT = 5


class Aggregator(IAggregator):
    """Folds log records into bucket, status, type and recipient tallies.

    Records without a timestamp are skipped and counted only in
    ``skipped_records``. Records whose bucket label is missing from the plan
    are counted in every table except the bucket series.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def aggregate(
        self, plan: BucketPlan, records: Iterable[LogRecord]
    ) -> AggregationResult:
        labels = self._validate_plan(plan)
        bucketer = self._bucketer(plan)

        by_bucket: Dict[str, int] = {label: 0 for label in labels}
        by_status: Dict[str, int] = {status.key: 0 for status in MessageStatus}
        by_type: Dict[str, int] = {kind.value: 0 for kind in MessageType}
        recipients: Dict[str, int] = {}
        total = 0
        skipped = 0
        unbucketed = 0

        for record in records:
            try:
                label = self._bucket_label(record, bucketer)
            except MalformedRecordError as exc:
                skipped += 1
                self._logger.warning(
                    "malformed_record_skipped",
                    extra={"record_id": record.id, "reason": exc.message},
                )
                continue

            total += 1

            status_key = record.classify_status().key
            by_status[status_key] = by_status.get(status_key, 0) + 1

            if label in by_bucket:
                by_bucket[label] += 1
            else:
                unbucketed += 1
                self._logger.debug(
                    "record_outside_plan",
                    extra={"record_id": record.id, "label": label},
                )

            if record.recipient_identifier:
                identifier = record.recipient_identifier
                recipients[identifier] = recipients.get(identifier, 0) + 1

            by_type[record.classify_type().value] += 1

        result = AggregationResult(
            total_messages=total,
            delivery_rate_percent=self.delivery_rate(
                by_status[MessageStatus.DELIVERED.key], total
            ),
            messages_by_bucket=by_bucket,
            messages_by_status=by_status,
            messages_by_type=by_type,
            top_recipients=self.rank_recipients(recipients),
            active_recipient_count=len(recipients),
            skipped_records=skipped,
            unbucketed_records=unbucketed,
        )
        self._logger.info(
            "aggregation_complete",
            extra={
                "range": plan.range_selector.value,
                "total_messages": total,
                "skipped_records": skipped,
                "unbucketed_records": unbucketed,
            },
        )
        return result

    @staticmethod
    def delivery_rate(delivered: int, total: int) -> float:
        """Percentage of delivered messages, one decimal, halves rounded up."""

        if total == 0:
            return 0.0
        rate = Decimal(delivered * 100) / Decimal(total)
        return float(rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))

    @staticmethod
    def rank_recipients(
        counts: Mapping[str, int], limit: int = TOP_RECIPIENTS_LIMIT
    ) -> Tuple[RecipientCount, ...]:
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return tuple(
            RecipientCount(identifier=identifier, count=count)
            for identifier, count in ranked[:limit]
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _validate_plan(plan: Optional[BucketPlan]) -> List[str]:
        if plan is None or not plan.labels:
            raise InvalidPlanError("Bucket plan has no labels")
        labels = list(plan.labels)
        duplicates = sorted(
            label for label, occurrences in Counter(labels).items() if occurrences > 1
        )
        if duplicates:
            raise InvalidPlanError(
                "Bucket plan has duplicate labels",
                context={"duplicates": duplicates},
            )
        return labels

    @staticmethod
    def _bucketer(plan: BucketPlan) -> TimeBucketer:
        try:
            return TimeBucketer.for_plan(plan)
        except ValueError as exc:
            raise InvalidPlanError(
                "Bucket plan has an unusable granularity or timezone",
                context={"granularity": plan.granularity, "timezone": plan.timezone},
            ) from exc

    @staticmethod
    def _bucket_label(record: LogRecord, bucketer: TimeBucketer) -> str:
        if record.timestamp is None:
            raise MalformedRecordError(
                "Record has no timestamp", context={"record_id": record.id}
            )
        return bucketer.label(record.timestamp)


def aggregate(plan: BucketPlan, records: Iterable[LogRecord]) -> AggregationResult:
    """Functional shortcut for ``Aggregator().aggregate(...)``."""

    return Aggregator().aggregate(plan, records)
