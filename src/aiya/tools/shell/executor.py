"""Execution engine for shell commands.

Runs one subprocess per call with:
- A hard wall-clock timeout; on expiry the whole process group is killed
- A per-stream output cap; excess output is drained and discarded
- Timeout validation before anything is spawned
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import IO

from aiya.constants import format_size
from aiya.logging import Loggers
from aiya.tools.shell.catalog import ExitCode, Limits, Timeouts
from aiya.tools.shell.errors import ShellInputValidationError
from aiya.tools.shell.models import ExecutionResult

logger = Loggers.shell()

_POSIX = os.name == "posix"
_CHUNK_SIZE = 64 * 1024
# How long to wait for pipes to close after the process exits
_DRAIN_GRACE_SECONDS = 2.0


class _StreamReader(threading.Thread):
    """Drains a pipe, keeping at most ``limit`` bytes."""

    def __init__(self, stream: IO[bytes], limit: int):
        super().__init__(daemon=True)
        self._stream = stream
        self._limit = limit
        self._chunks: list[bytes] = []
        self._size = 0
        self._lock = threading.Lock()
        self.truncated = False

    def run(self) -> None:
        try:
            while True:
                chunk = self._stream.read1(_CHUNK_SIZE)
                if not chunk:
                    break
                with self._lock:
                    room = self._limit - self._size
                    if room > 0:
                        kept = chunk[:room]
                        self._chunks.append(kept)
                        self._size += len(kept)
                    if len(chunk) > max(room, 0):
                        self.truncated = True
        except (OSError, ValueError):
            # Pipe closed underneath us after a kill
            pass
        finally:
            self._stream.close()

    def text(self) -> str:
        with self._lock:
            data = b"".join(self._chunks)
        text = data.decode("utf-8", errors="replace")
        if self.truncated:
            text += f"\n... [OUTPUT TRUNCATED - exceeded {format_size(self._limit)}]"
        return text


class ExecutionEngine:
    """Spawns commands with timeout and output-buffer limits."""

    def __init__(
        self,
        max_output_bytes: int = Limits.MAX_BUFFER_SIZE,
        max_timeout: float = Timeouts.MAX_COMMAND_EXECUTION,
        env: dict[str, str] | None = None,
    ):
        self.max_output_bytes = max_output_bytes
        self.max_timeout = max_timeout
        self.env = env

    def validate_timeout(self, timeout: float | int) -> float:
        """Check a timeout in seconds.

        Raises:
            ShellInputValidationError: If not a number in (0, max_timeout].
        """
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise ShellInputValidationError(f"Timeout must be a number of seconds, got {timeout!r}")
        if timeout <= 0:
            raise ShellInputValidationError(f"Timeout must be positive, got {timeout}")
        if timeout > self.max_timeout:
            raise ShellInputValidationError(
                f"Timeout {timeout}s exceeds the maximum of {self.max_timeout}s"
            )
        return float(timeout)

    def run(
        self,
        command: str,
        cwd: str | Path,
        timeout: float = Timeouts.DEFAULT_COMMAND_EXECUTION,
    ) -> ExecutionResult:
        """Run a command and capture its output.

        Args:
            command: Shell command to run.
            cwd: Validated working directory.
            timeout: Seconds before the process group is killed.

        Returns:
            ExecutionResult. On timeout ``exit_code`` is ``ExitCode.TIMEOUT``
            and ``timed_out`` is set.

        Raises:
            ShellInputValidationError: If the timeout is out of range.
        """
        timeout = self.validate_timeout(timeout)
        start_time = time.monotonic()

        try:
            process = subprocess.Popen(
                command,
                shell=True,
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env={**os.environ, **self.env} if self.env else None,
                start_new_session=_POSIX,
            )
        except OSError as e:
            logger.warning("spawn_failed", command=command, cwd=str(cwd), error=str(e))
            exit_code = (
                ExitCode.PERMISSION_DENIED if isinstance(e, PermissionError)
                else ExitCode.COMMAND_NOT_FOUND if isinstance(e, FileNotFoundError)
                else ExitCode.GENERAL_ERROR
            )
            return ExecutionResult(
                stdout="",
                stderr=str(e),
                exit_code=exit_code,
                duration_ms=self._elapsed_ms(start_time),
            )

        readers = [
            _StreamReader(process.stdout, self.max_output_bytes),
            _StreamReader(process.stderr, self.max_output_bytes),
        ]
        for reader in readers:
            reader.start()

        timed_out = False
        try:
            exit_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            self._kill(process)
            process.wait()
            exit_code = ExitCode.TIMEOUT
            logger.warning("command_timeout", command=command, timeout=timeout)

        for reader in readers:
            reader.join(_DRAIN_GRACE_SECONDS)

        stdout_reader, stderr_reader = readers
        result = ExecutionResult(
            stdout=stdout_reader.text(),
            stderr=stderr_reader.text(),
            exit_code=exit_code,
            duration_ms=self._elapsed_ms(start_time),
            timed_out=timed_out,
            truncated=stdout_reader.truncated or stderr_reader.truncated,
        )
        logger.debug(
            "command_finished",
            command=command,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            truncated=result.truncated,
        )
        return result

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        if _POSIX:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        else:
            process.kill()

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)
