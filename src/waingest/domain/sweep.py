"""Reconciliation sweep - re-dispatch event logs left unprocessed.

Covers dispatches lost after the ack (queue outage, process restart) and
tasks that exhausted their retries. Re-dispatch is safe because
process_event() is idempotent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from psycopg2.extensions import connection as PgConnection

from waingest.domain.dispatcher import EventDispatcher
from waingest.infra.db import txn
from waingest.infra.repositories.event_logs_repository import claim_unprocessed
from waingest.infra.time import utc_now
from waingest.observability.logging import get_logger
from waingest.observability.redaction import safe_log_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class SweepResult:
    scanned: int
    dispatched: int
    failed: int


def sweep_bucket(now: datetime, min_age_seconds: int) -> str:
    """Run identifier; constant within one min_age window.

    Two sweeps in the same window reuse task ids (queue-side dedup); a later
    window gets fresh ids so retry-exhausted tasks can run again.
    """
    window = max(min_age_seconds, 1)
    return str(int(now.timestamp()) // window)


def sweep_unprocessed(
    dispatcher: EventDispatcher,
    *,
    min_age_seconds: int,
    limit: int,
    max_attempts: int = 10,
    now: datetime | None = None,
    conn: PgConnection | None = None,
) -> SweepResult:
    """Re-submit unprocessed, active logs older than `min_age_seconds`.

    A row is re-submitted at most once per `min_age_seconds` window, so
    rows that keep failing rotate to the back instead of filling every run.

    Args:
        dispatcher: Dispatcher used for re-submission.
        min_age_seconds: Rows younger than this are left to their first dispatch.
        limit: Maximum rows per run. Rows never swept go first.
        max_attempts: Rows swept this many times are left for operators.
        now: Clock override (tests).
        conn: Optional connection (a new one is opened if None).

    Returns:
        SweepResult with counts.
    """
    now = now or utc_now()
    cutoff = now - timedelta(seconds=min_age_seconds)

    with txn(conn) as cur:
        rows = claim_unprocessed(
            cur,
            created_before=cutoff,
            swept_before=cutoff,
            swept_at=now,
            max_attempts=max_attempts,
            limit=limit,
        )

    bucket = sweep_bucket(now, min_age_seconds)
    dispatched = 0
    for row in rows:
        ok = dispatcher.submit(
            row["id"],
            row["tenant_id"],
            task_suffix=f"sweep:{bucket}",
        )
        if ok:
            dispatched += 1

    result = SweepResult(scanned=len(rows), dispatched=dispatched, failed=len(rows) - dispatched)
    logger.info(
        "unprocessed sweep finished",
        extra={
            "extra_fields": safe_log_context(
                scanned=result.scanned,
                dispatched=result.dispatched,
                failed=result.failed,
                min_age_seconds=min_age_seconds,
            )
        },
    )
    return result
