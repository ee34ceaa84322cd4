"""
TaskRegistry: fixed mapping from JobType to its handler.
"""

import logging
from typing import Iterable, Optional

from homelab.scheduler.entities import JobType

from .base import TaskHandler


logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    Job type to handler lookup.

    Populated once at startup; each JobType has at most one handler.
    """

    def __init__(self, handlers: Iterable[TaskHandler] = ()):
        self._handlers: dict[JobType, TaskHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: TaskHandler) -> None:
        job_type = JobType(handler.job_type)
        if job_type in self._handlers:
            raise ValueError(f"Handler already registered for {job_type.value}")
        self._handlers[job_type] = handler
        logger.debug(f"[TaskRegistry] Registered {type(handler).__name__} for {job_type.value}")

    def get(self, job_type) -> Optional[TaskHandler]:
        """Handler for a type, or None for unknown/unregistered types."""
        try:
            return self._handlers.get(JobType(job_type))
        except ValueError:
            return None

    def __contains__(self, job_type) -> bool:
        return self.get(job_type) is not None

    @property
    def job_types(self) -> list[JobType]:
        return list(self._handlers)

    def missing_types(self) -> list[JobType]:
        return [job_type for job_type in JobType if job_type not in self._handlers]
