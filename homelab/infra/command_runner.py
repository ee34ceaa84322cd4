"""
Shell command runner with a wall-clock timeout and output cap.

The command runs in its own process group so a timeout kills the whole
tree, not just the shell. stdout and stderr are drained incrementally by
reader threads; once either stream passes the cap the group is killed,
so a chatty command never buffers more than the cap in memory. POSIX only.
"""

import logging
import os
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import IO, Callable, Optional


logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024


@dataclass
class CommandResult:
    """Captured result of one command run."""

    command: str
    stdout: str
    stderr: str
    exit_code: Optional[int]
    timed_out: bool = False
    truncated: bool = False

    @property
    def exit_error(self) -> Optional[str]:
        """Human-readable failure, or None when the command succeeded."""
        if self.timed_out:
            return "Command timed out"
        if self.truncated:
            return "Command output exceeded the limit"
        if self.exit_code:
            return f"Command exited with code {self.exit_code}"
        return None


class _StreamReader(threading.Thread):
    """Reads one pipe up to `limit` bytes; calls `on_overflow` once past it."""

    def __init__(self, stream: IO[bytes], limit: int, on_overflow: Callable[[], None]):
        super().__init__(daemon=True)
        self.stream = stream
        self.limit = limit
        self.on_overflow = on_overflow
        self.data = bytearray()
        self.overflowed = False

    def run(self) -> None:
        try:
            while True:
                chunk = self.stream.read1(READ_CHUNK_BYTES)
                if not chunk:
                    return
                room = self.limit - len(self.data)
                self.data += chunk[:max(room, 0)]
                if len(chunk) > room:
                    self.overflowed = True
                    self.on_overflow()
                    return
        finally:
            self.stream.close()

    def text(self) -> str:
        return bytes(self.data).decode("utf-8", errors="replace")


def _kill_group(process: subprocess.Popen) -> None:
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def run(
    command: str,
    timeout_ms: int,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    cwd: Optional[str] = None,
) -> CommandResult:
    """
    Run a shell command.

    Args:
        command: Shell command line
        timeout_ms: Wall-clock limit in milliseconds
        max_output_bytes: Cap applied to stdout and stderr separately;
            exceeding it kills the process group
        cwd: Optional working directory

    Returns:
        CommandResult (a timeout or overflow is reported, not raised)

    Raises:
        OSError: If the shell cannot be spawned
    """
    timeout_s = max(timeout_ms, 1) / 1000.0
    logger.info(f"[CommandRunner] Running (timeout {timeout_s:.0f}s): {command}")

    process = subprocess.Popen(
        command,
        shell=True,
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        start_new_session=True,
    )

    def on_overflow() -> None:
        logger.warning(f"[CommandRunner] Output exceeded {max_output_bytes} bytes, killing: {command}")
        _kill_group(process)

    readers = [
        _StreamReader(process.stdout, max_output_bytes, on_overflow),
        _StreamReader(process.stderr, max_output_bytes, on_overflow),
    ]
    for reader in readers:
        reader.start()

    timed_out = False
    try:
        process.wait(timeout=timeout_s)
    except subprocess.TimeoutExpired:
        timed_out = True
        logger.warning(f"[CommandRunner] Timeout after {timeout_s:.0f}s, killing: {command}")
        _kill_group(process)
        process.wait()

    for reader in readers:
        reader.join()

    out_reader, err_reader = readers
    truncated = out_reader.overflowed or err_reader.overflowed

    return CommandResult(
        command=command,
        stdout=out_reader.text(),
        stderr=err_reader.text(),
        exit_code=None if (timed_out or truncated) else process.returncode,
        timed_out=timed_out,
        truncated=truncated,
    )
