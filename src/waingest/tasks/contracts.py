"""Task contracts v1 - worker payload definitions.

Task payloads reference rows by id only; they never carry webhook payloads,
phone numbers or message text.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

PROCESS_EVENT_TASK = "webhook_events.process"
PROCESS_EVENT_PATH = "/tasks/webhook-events/process"


@dataclass(frozen=True)
class ProcessEventTaskV1:
    """Ask the worker to materialize one webhook event log.

    Attributes:
        version: Contract version (always "v1").
        task_id: Unique identifier for enqueue idempotency.
        log_id: webhook_event_logs.id.
        tenant_id: Tenant the log belongs to (for logs and routing).
        correlation_id: Correlation ID of the ingress request.
    """

    version: Literal["v1"] = field(default="v1", init=False)
    task_id: str = ""
    log_id: int = 0
    tenant_id: str = ""
    correlation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "version": self.version,
            "task_name": PROCESS_EVENT_TASK,
            "task_id": self.task_id,
            "log_id": self.log_id,
            "tenant_id": self.tenant_id,
            "correlation_id": self.correlation_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProcessEventTaskV1":
        """Create from dict.

        Raises:
            ValueError: Unsupported version or missing/invalid log_id.
        """
        if data.get("version") != "v1":
            raise ValueError(f"Unsupported version: {data.get('version')}")
        log_id = data.get("log_id")
        if not isinstance(log_id, int) or isinstance(log_id, bool) or log_id <= 0:
            raise ValueError("log_id must be a positive integer")
        return cls(
            task_id=str(data.get("task_id") or ""),
            log_id=log_id,
            tenant_id=str(data.get("tenant_id") or ""),
            correlation_id=data.get("correlation_id"),
        )


def process_event_task_id(log_id: int, suffix: str | None = None) -> str:
    """Task id for a log; `suffix` distinguishes sweep re-dispatches."""
    base = f"webhook-event:{log_id}"
    return f"{base}:{suffix}" if suffix else base
