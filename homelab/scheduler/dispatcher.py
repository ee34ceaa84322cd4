"""
JobDispatcher - runs one firing of a trigger.

For every firing, scheduled or run-now:
1. Resolve the handler for the trigger's job type
2. Invoke it, timing only the invocation
3. Convert any raised exception into an error outcome
4. Write exactly one ExecutionRecord (and the trigger's last_run)
5. Publish exactly one `scheduler-run` event

What JobDispatcher MUST NOT do:
- Retry (the next scheduled firing is the retry)
- Impose its own timeout (handlers bound their own external calls)
- Serialize firings of the same trigger
"""

import logging
import time
from typing import TYPE_CHECKING, Optional

from .entities import ExecutionRecord, ExecutionStatus, Trigger, now_iso
from .errors import PersistenceError
from .persistence import ExecutionLedger

if TYPE_CHECKING:
    from homelab.infra.event_bus import EventBus
    from homelab.tasks.registry import TaskRegistry


logger = logging.getLogger(__name__)

SCHEDULER_RUN_EVENT = "scheduler-run"

# Outcome messages are cut to this length in events, never in storage
EVENT_MESSAGE_LIMIT = 200


def _error_message(error: BaseException) -> str:
    message = str(error).strip()
    return message or type(error).__name__


class JobDispatcher:
    """Orchestrates a single firing. Safe to call from many threads at once."""

    def __init__(
        self,
        tasks: "TaskRegistry",
        ledger: ExecutionLedger,
        event_bus: "EventBus",
    ):
        self.tasks = tasks
        self.ledger = ledger
        self.event_bus = event_bus

    def dispatch(self, trigger: Trigger) -> ExecutionRecord:
        """
        Run the trigger's handler once and record the outcome.

        Never raises for handler failures or ledger write failures.

        Returns:
            The ExecutionRecord (with id when it was stored)
        """
        job_type = getattr(trigger.job_type, "value", trigger.job_type)
        handler = self.tasks.get(trigger.job_type)

        if handler is None:
            logger.error(
                f"[Dispatcher] No handler for job type {job_type!r} "
                f"(trigger {trigger.id} '{trigger.name}')"
            )
            status = ExecutionStatus.ERROR
            message = f"Unknown job type: {job_type}"
            duration_ms = 0
        else:
            logger.info(f"[Dispatcher] Running '{trigger.name}' ({job_type})")
            started = time.perf_counter()
            try:
                outcome = handler.execute(dict(trigger.config or {}))
                elapsed = time.perf_counter() - started
                status = ExecutionStatus.SUCCESS
                message = "" if outcome is None else str(outcome)
            except Exception as e:
                elapsed = time.perf_counter() - started
                status = ExecutionStatus.ERROR
                message = _error_message(e)
                logger.warning(f"[Dispatcher] '{trigger.name}' failed: {message}")
            duration_ms = int(round(elapsed * 1000))

        record = ExecutionRecord(
            trigger_id=trigger.id,
            status=status,
            message=message,
            duration_ms=duration_ms,
            executed_at=now_iso(),
        )
        stored = self._store(record)

        self.event_bus.publish(SCHEDULER_RUN_EVENT, {
            "jobId": trigger.id,
            "jobName": trigger.name,
            "type": job_type,
            "status": status.value,
            "duration": duration_ms,
            "message": message[:EVENT_MESSAGE_LIMIT],
        })

        logger.info(
            f"[Dispatcher] '{trigger.name}' finished: {status.value} in {duration_ms} ms"
        )
        return stored or record

    def _store(self, record: ExecutionRecord) -> Optional[ExecutionRecord]:
        try:
            return self.ledger.record(record)
        except PersistenceError as e:
            logger.error(
                f"[Dispatcher] Failed to store execution record for trigger {record.trigger_id}: {e}",
                exc_info=True,
            )
            return None
