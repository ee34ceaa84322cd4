"""
Scheduler-specific exceptions.

ValidationError-class failures (InvalidTriggerError and subclasses) are
raised synchronously at the API boundary and never reach a live timer.
HandlerError-class failures are converted into error ExecutionRecords by
the dispatcher and never propagate as crashes.
"""


class SchedulerError(Exception):
    """Base exception for all scheduler errors."""
    pass


class InvalidTriggerError(SchedulerError):
    """
    Raised when a trigger definition is rejected.

    Examples:
    - Malformed cron expression
    - Job type outside the supported enumeration
    - Empty name
    """
    pass


class InvalidScheduleError(InvalidTriggerError):
    """Raised when a schedule expression is not valid cron syntax."""

    def __init__(self, expression: str):
        self.expression = expression
        super().__init__(f"Invalid cron expression: {expression!r}")


class UnknownJobTypeError(InvalidTriggerError):
    """Raised when a job type is not one of the supported types."""

    def __init__(self, job_type: str, valid_types: list[str]):
        self.job_type = job_type
        self.valid_types = valid_types
        super().__init__(
            f"Unknown job type: {job_type!r} (valid types: {', '.join(valid_types)})"
        )


class TriggerNotFoundError(SchedulerError):
    """Raised when a requested trigger does not exist."""

    def __init__(self, trigger_id: int):
        self.trigger_id = trigger_id
        super().__init__(f"Trigger not found: {trigger_id}")


class HandlerError(SchedulerError):
    """
    Raised by a task handler with a human-readable message.

    The dispatcher records the message as the outcome of an error run.
    """
    pass


class PersistenceError(SchedulerError):
    """Raised when the underlying store rejects or cannot complete a write."""
    pass
