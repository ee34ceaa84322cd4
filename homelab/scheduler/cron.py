"""
Cron expression handling and live recurring timers.

Expressions are standard five-field cron or six-field cron with a
leading seconds field. croniter expects seconds as the trailing field,
so six-field expressions are rotated before they reach it.

A CronTimer is the owned, cancellable handle for one live schedule. It
runs a daemon thread that sleeps until the next match and hands each
firing to its callback on a fresh thread, so a long-running firing never
delays the next one.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from croniter import croniter

from .errors import InvalidScheduleError


logger = logging.getLogger(__name__)


def normalize_expression(expression: str) -> str:
    """
    Convert an expression to croniter field order.

    Args:
        expression: Five-field or six-field (seconds first) cron expression

    Returns:
        Expression suitable for croniter

    Raises:
        InvalidScheduleError: If the field count is not 5 or 6
    """
    if not isinstance(expression, str):
        raise InvalidScheduleError(str(expression))

    fields = expression.split()
    if len(fields) == 5:
        return " ".join(fields)
    if len(fields) == 6:
        return " ".join(fields[1:] + fields[:1])
    raise InvalidScheduleError(expression)


def validate_expression(expression: str) -> str:
    """
    Validate a cron expression.

    Returns:
        The croniter-ordered expression

    Raises:
        InvalidScheduleError: If the expression is malformed
    """
    normalized = normalize_expression(expression)
    if not croniter.is_valid(normalized):
        raise InvalidScheduleError(expression)
    return normalized


def is_valid_expression(expression: str) -> bool:
    """Check a cron expression without raising."""
    try:
        validate_expression(expression)
    except InvalidScheduleError:
        return False
    return True


def next_fire_time(expression: str, after: Optional[datetime] = None) -> datetime:
    """
    Compute the next match strictly after `after` (local time).

    Raises:
        InvalidScheduleError: If the expression is malformed
    """
    normalized = validate_expression(expression)
    base = after or datetime.now()
    return croniter(normalized, base).get_next(datetime)


class CronTimer:
    """
    Live recurring timer bound to one cron expression.

    Cancelling stops future firings only; a firing already handed to its
    callback runs to completion.
    """

    def __init__(
        self,
        trigger_id: int,
        expression: str,
        callback: Callable[[], None],
        on_armed: Optional[Callable[[datetime], None]] = None,
    ):
        """
        Initialize CronTimer.

        Args:
            trigger_id: Owning trigger id (used for thread names and logs)
            expression: Cron expression (validated here)
            callback: Called once per firing on its own thread
            on_armed: Optional hook receiving each next fire time

        Raises:
            InvalidScheduleError: If the expression is malformed
        """
        self.trigger_id = trigger_id
        self.expression = expression
        self._normalized = validate_expression(expression)
        self._callback = callback
        self._on_armed = on_armed

        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._next_fire_at: Optional[datetime] = None
        self._fire_count = 0

    @property
    def next_fire_at(self) -> Optional[datetime]:
        return self._next_fire_at

    @property
    def fire_count(self) -> int:
        return self._fire_count

    @property
    def is_active(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._cancelled.is_set()
        )

    def start(self) -> None:
        """Start the timer thread. Calling start twice is an error."""
        if self._thread is not None:
            raise RuntimeError(f"Timer for trigger {self.trigger_id} already started")

        self._thread = threading.Thread(
            target=self._run,
            name=f"cron-timer-{self.trigger_id}",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        """Stop future firings. Safe to call repeatedly."""
        self._cancelled.set()
        self._next_fire_at = None

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        last_fire: Optional[datetime] = None

        while not self._cancelled.is_set():
            base = datetime.now()
            # Event.wait can return a hair early; never re-fire the same slot
            if last_fire is not None and base < last_fire:
                base = last_fire
            fire_at = croniter(self._normalized, base).get_next(datetime)
            self._next_fire_at = fire_at

            if self._on_armed is not None:
                try:
                    self._on_armed(fire_at)
                except Exception as e:
                    logger.warning(
                        f"[CronTimer] on_armed hook failed for trigger {self.trigger_id}: {e}"
                    )

            delay = (fire_at - datetime.now()).total_seconds()
            if self._cancelled.wait(max(0.0, delay)):
                break

            last_fire = fire_at
            self._fire()

        self._next_fire_at = None
        logger.debug(f"[CronTimer] Timer for trigger {self.trigger_id} stopped")

    def _fire(self) -> None:
        self._fire_count += 1
        worker = threading.Thread(
            target=self._callback,
            name=f"cron-fire-{self.trigger_id}-{self._fire_count}",
            daemon=True,
        )
        worker.start()
