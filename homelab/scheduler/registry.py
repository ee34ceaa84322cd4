"""
TriggerRegistry - the live side of the scheduler.

Owns exactly one CronTimer per enabled trigger id and nothing for
disabled ones. Per-id state machine:

    Unregistered --add(enabled)--> Scheduled
    Unregistered --add(disabled)-> Disabled
    any          --add(...)------> replaces the previous timer first
    any          --remove--------> Unregistered

Callers never mutate a live timer; a changed trigger is re-added and the
old timer is cancelled. Cancelling does not interrupt a firing that has
already been handed to the dispatcher.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from .cron import CronTimer, validate_expression
from .dispatcher import JobDispatcher
from .entities import ExecutionRecord, RegistrationState, Trigger
from .errors import InvalidTriggerError, PersistenceError
from .persistence import TriggerStore


logger = logging.getLogger(__name__)


def _to_iso(moment: datetime) -> str:
    # Naive datetimes from croniter are local time
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class TriggerRegistry:
    """In-memory map of trigger id to live timer, reconciled against the TriggerStore."""

    def __init__(
        self,
        store: TriggerStore,
        dispatcher: JobDispatcher,
        timer_factory: Callable[..., CronTimer] = CronTimer,
    ):
        """
        Initialize TriggerRegistry.

        Args:
            store: Durable trigger definitions
            dispatcher: Runs each firing
            timer_factory: Builds live timers (CronTimer signature)
        """
        self.store = store
        self.dispatcher = dispatcher
        self.timer_factory = timer_factory

        self._timers: dict[int, CronTimer] = {}
        self._states: dict[int, RegistrationState] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # State queries
    # =========================================================================

    def state(self, trigger_id: int) -> RegistrationState:
        with self._lock:
            return self._states.get(trigger_id, RegistrationState.UNREGISTERED)

    def is_scheduled(self, trigger_id: int) -> bool:
        with self._lock:
            return trigger_id in self._timers

    @property
    def scheduled_ids(self) -> set[int]:
        with self._lock:
            return set(self._timers)

    def timer(self, trigger_id: int) -> Optional[CronTimer]:
        with self._lock:
            return self._timers.get(trigger_id)

    # =========================================================================
    # Transitions
    # =========================================================================

    def add(self, trigger: Trigger) -> RegistrationState:
        """
        Register a trigger, replacing any live timer for its id.

        Raises:
            InvalidScheduleError: If the schedule is malformed (registry unchanged)
        """
        validate_expression(trigger.schedule)

        with self._lock:
            previous = self._timers.pop(trigger.id, None)
            if previous is not None:
                previous.cancel()

            if not trigger.enabled:
                self._states[trigger.id] = RegistrationState.DISABLED
                self._clear_next_run(trigger.id)
                logger.info(f"[Scheduler] '{trigger.name}' registered as disabled")
                return RegistrationState.DISABLED

            timer = self.timer_factory(
                trigger.id,
                trigger.schedule,
                lambda: self._fire(trigger),
                lambda fire_at: self._record_next_run(trigger.id, timer, fire_at),
            )
            self._timers[trigger.id] = timer
            self._states[trigger.id] = RegistrationState.SCHEDULED
            timer.start()

        logger.info(f"[Scheduler] Scheduled '{trigger.name}' ({trigger.schedule})")
        return RegistrationState.SCHEDULED

    def remove(self, trigger_id: int) -> bool:
        """
        Cancel any live timer and forget the id. Safe on unknown ids.

        Returns:
            True if a live timer was cancelled
        """
        with self._lock:
            timer = self._timers.pop(trigger_id, None)
            self._states.pop(trigger_id, None)

        if timer is None:
            return False
        timer.cancel()
        logger.info(f"[Scheduler] Unscheduled trigger {trigger_id}")
        return True

    def run_now(self, trigger_id: int) -> ExecutionRecord:
        """
        Dispatch a trigger once, immediately, on the calling thread.

        Reads the definition from the store, not from the live timer. Not
        serialized against scheduled firings of the same trigger.

        Raises:
            TriggerNotFoundError: If the trigger does not exist
        """
        trigger = self.store.get(trigger_id)
        logger.info(f"[Scheduler] Run now: '{trigger.name}'")
        return self.dispatcher.dispatch(trigger)

    def reconcile(self) -> int:
        """
        Sync live timers with the store's enabled triggers.

        Enabled triggers are (re-)added; timers for ids that are no
        longer enabled are cancelled. A stored trigger with a bad
        schedule is logged and skipped.

        Returns:
            Number of triggers scheduled
        """
        enabled = self.store.list_enabled()
        enabled_ids = {trigger.id for trigger in enabled}

        for stale_id in self.scheduled_ids - enabled_ids:
            self.remove(stale_id)

        scheduled = 0
        for trigger in enabled:
            try:
                self.add(trigger)
                scheduled += 1
            except InvalidTriggerError as e:
                logger.error(f"[Scheduler] Skipping '{trigger.name}' on reconcile: {e}")

        logger.info(f"[Scheduler] {scheduled} trigger(s) loaded")
        return scheduled

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel every live timer. In-flight firings finish on their own threads."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self._states.clear()

        for timer in timers:
            timer.cancel()
        if timeout is not None:
            for timer in timers:
                timer.join(timeout)
        logger.info(f"[Scheduler] Shut down ({len(timers)} timer(s) cancelled)")

    # =========================================================================
    # Timer callbacks
    # =========================================================================

    def _fire(self, trigger: Trigger) -> None:
        try:
            self.dispatcher.dispatch(trigger)
        except Exception as e:
            logger.error(f"[Scheduler] Firing of '{trigger.name}' crashed: {e}", exc_info=True)

    def _record_next_run(self, trigger_id: int, timer: CronTimer, fire_at: datetime) -> None:
        with self._lock:
            # A replaced or cancelled timer must not overwrite its successor's value
            if self._timers.get(trigger_id) is not timer:
                return
            try:
                self.store.set_next_run(trigger_id, _to_iso(fire_at))
            except PersistenceError as e:
                logger.warning(f"[Scheduler] Could not persist next_run for {trigger_id}: {e}")

    def _clear_next_run(self, trigger_id: int) -> None:
        try:
            self.store.set_next_run(trigger_id, None)
        except PersistenceError as e:
            logger.warning(f"[Scheduler] Could not clear next_run for {trigger_id}: {e}")
