"""
Task handler contract.

Every job type is served by exactly one TaskHandler. A handler receives
only its own trigger config and returns a human-readable outcome string.
Failures are raised as exceptions carrying a readable message; the
dispatcher turns any exception into an error ExecutionRecord.

Handlers never see the TriggerRegistry or other triggers.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, ValidationError

from homelab.scheduler.entities import JobType
from homelab.scheduler.errors import HandlerError


logger = logging.getLogger(__name__)


class TaskHandler(ABC):
    """
    Abstract base class for job type handlers.

    Subclasses set `job_type` and, when they take configuration,
    `config_model` to a pydantic model used by `parse_config()`.
    """

    job_type: JobType
    config_model: Optional[type[BaseModel]] = None

    @abstractmethod
    def execute(self, config: dict) -> str:
        """
        Run the task once.

        Args:
            config: The trigger's opaque key/value configuration

        Returns:
            Outcome message

        Raises:
            HandlerError (or any exception): On failure
        """
        ...

    def parse_config(self, config: Optional[dict]):
        """
        Validate a trigger config against `config_model`.

        Raises:
            HandlerError: If the config does not match the model
        """
        if self.config_model is None:
            return config or {}
        try:
            return self.config_model.model_validate(config or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise HandlerError(f"Invalid {self.job_type.value} config: {problems}") from e
