# src/bookingdesk/core/state/submissions.py
"""Duplicate-submission guard.

Webhook sources redeliver on timeouts and non-2xx responses. Each
submission id gets a marker in the state store:

    absent --mark_pending--> pending --mark_processed--> processed
              (claim)          |
                               +--release--> absent   (processing failed)

A processed marker is terminal for its retention window. A pending
marker younger than the in-flight lease means another delivery of the
same submission is being processed right now; older pending markers are
treated as abandoned (the process died mid-request) and may be
reclaimed.
"""

from __future__ import annotations

import json

import structlog

from bookingdesk.contracts import DuplicateSubmission, SubmissionRecord, SubmissionStatus
from bookingdesk.core.clock import Clock, system_clock
from bookingdesk.core.state.store import StateStore

logger = structlog.get_logger(__name__)

SUBMISSION_KEY_PREFIX = "submission:"


def submission_key(submission_id: str) -> str:
    return f"{SUBMISSION_KEY_PREFIX}{submission_id}"


class SubmissionGuard:
    """Tracks webhook submission ids through pending and processed states."""

    def __init__(
        self,
        store: StateStore,
        *,
        retention_seconds: int = 86_400,
        in_flight_lease_seconds: int = 120,
        reject_in_flight: bool = True,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._retention_seconds = retention_seconds
        self._lease_ms = in_flight_lease_seconds * 1000
        self._reject_in_flight = reject_in_flight
        self._clock = clock

    def _read(self, submission_id: str) -> SubmissionRecord | None:
        raw = self._store.get(submission_key(submission_id))
        if raw is None:
            return None
        try:
            return SubmissionRecord.from_json(raw)
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning("submission.marker_unreadable", submission_id=submission_id, error=str(e))
            return None

    def _write(self, submission_id: str, status: SubmissionStatus) -> SubmissionRecord:
        record = SubmissionRecord(status=status, updated_at=self._clock())
        self._store.put(submission_key(submission_id), record.to_json(), ttl_seconds=self._retention_seconds)
        return record

    def _is_fresh_pending(self, record: SubmissionRecord | None) -> bool:
        return (
            record is not None
            and record.status is SubmissionStatus.PENDING
            and self._clock() - record.updated_at < self._lease_ms
        )

    def is_processed(self, submission_id: str) -> bool:
        record = self._read(submission_id)
        return record is not None and record.status is SubmissionStatus.PROCESSED

    def is_in_flight(self, submission_id: str) -> bool:
        """True while a pending marker is younger than the in-flight lease."""
        return self._is_fresh_pending(self._read(submission_id))

    def mark_pending(self, submission_id: str) -> None:
        self._write(submission_id, SubmissionStatus.PENDING)

    def mark_processed(self, submission_id: str) -> None:
        self._write(submission_id, SubmissionStatus.PROCESSED)

    def release(self, submission_id: str) -> None:
        """Drop a pending marker so the source's next redelivery is processed.

        Processed markers are never released.
        """
        record = self._read(submission_id)
        if record is not None and record.status is SubmissionStatus.PENDING:
            self._store.delete(submission_key(submission_id))

    def claim(self, submission_id: str) -> None:
        """Reject duplicates, then mark the submission pending.

        Raises:
            DuplicateSubmission: If the submission was processed, or is in
                flight and in-flight rejection is enabled
        """
        record = self._read(submission_id)
        if record is not None and record.status is SubmissionStatus.PROCESSED:
            raise DuplicateSubmission(submission_id)
        if self._reject_in_flight and self._is_fresh_pending(record):
            raise DuplicateSubmission(submission_id, in_flight=True)

        if record is None:
            pending = SubmissionRecord(status=SubmissionStatus.PENDING, updated_at=self._clock())
            claimed = self._store.put_if_absent(
                submission_key(submission_id),
                pending.to_json(),
                ttl_seconds=self._retention_seconds,
            )
            if claimed:
                return
            # Lost a race with a concurrent delivery of the same submission
            racer = self._read(submission_id)
            if racer is not None and racer.status is SubmissionStatus.PROCESSED:
                raise DuplicateSubmission(submission_id)
            if self._reject_in_flight:
                raise DuplicateSubmission(submission_id, in_flight=True)

        if record is not None:
            logger.info(
                "submission.reclaimed",
                submission_id=submission_id,
                previous_status=record.status.value,
                age_ms=self._clock() - record.updated_at,
            )
        self.mark_pending(submission_id)
