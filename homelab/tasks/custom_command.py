"""Custom command: run a configured shell command with timeout and output cap."""

import logging
from typing import Callable

from homelab.infra import command_runner
from homelab.infra.command_runner import CommandResult
from homelab.scheduler.entities import JobType
from homelab.scheduler.errors import HandlerError

from .base import TaskHandler
from .config import CustomCommandConfig


logger = logging.getLogger(__name__)

# Substrings refused outright
BLOCKED_PATTERNS = ("rm -rf /", "mkfs", "dd if=", ":(){", "shutdown", "reboot")


class CustomCommandHandler(TaskHandler):
    """
    Returns stdout (or stderr, or "done") on success.

    Timeouts, oversized output, non-zero exits and blocked commands
    raise HandlerError.
    """

    job_type = JobType.CUSTOM_COMMAND
    config_model = CustomCommandConfig

    def __init__(self, runner: Callable[..., CommandResult] = command_runner.run):
        self.runner = runner

    def execute(self, config: dict) -> str:
        cfg: CustomCommandConfig = self.parse_config(config)

        lowered = cfg.command.lower()
        for pattern in BLOCKED_PATTERNS:
            if pattern in lowered:
                raise HandlerError(f"Command blocked (matches {pattern!r})")

        try:
            result = self.runner(
                cfg.command,
                timeout_ms=cfg.timeout_ms,
                max_output_bytes=cfg.max_output_bytes,
            )
        except OSError as e:
            raise HandlerError(f"Command could not start: {e}") from e

        if result.timed_out:
            raise HandlerError(f"Command timed out after {cfg.timeout_ms} ms")

        if result.truncated:
            raise HandlerError(
                f"Command output exceeded {cfg.max_output_bytes} bytes and the command was stopped"
            )

        if result.exit_code:
            detail = (result.stderr or result.stdout).strip()
            raise HandlerError(
                f"Command exited with code {result.exit_code}" + (f": {detail}" if detail else "")
            )

        return result.stdout or result.stderr or "done"
