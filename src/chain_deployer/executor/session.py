"""Local subprocess execution with live tee of output."""

from __future__ import annotations

import os
import shlex
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..errors import DeployerError
from ..utils.logging import RunLog, get_logger

logger = get_logger(__name__)

# Flags whose following argument must never reach logs or error messages
_SECRET_FLAGS = ("--private-key",)


def redact_command(command: Sequence[str]) -> str:
    parts: List[str] = []
    hide_next = False
    for part in command:
        if hide_next:
            parts.append("***")
            hide_next = False
            continue
        parts.append(part)
        hide_next = part in _SECRET_FLAGS
    return shlex.join(parts)


class SubprocessError(DeployerError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, command: Sequence[str], exit_code: int, stderr: str = "") -> None:
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-5:]
        detail = f": {' | '.join(tail)}" if tail else ""
        super().__init__(f"Command {redact_command(command)} failed with code {exit_code}{detail}")


@dataclass
class ProcessResult:
    """Result of executing a local command."""

    command: List[str]
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class ProcessSession:
    """
    Runs external tools and streams their output through a :class:`RunLog`.

    stdout and stderr are drained by two reader threads so neither pipe can
    fill up and stall the child, and each line is written to the console and
    the log file as soon as it arrives. There is no timeout:
    a hung tool has to be terminated from outside.
    """

    def __init__(
        self,
        run_log: Optional[RunLog] = None,
        *,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.run_log = run_log or RunLog()
        self._popen = popen
        self.spawn_count = 0
        self._count_lock = threading.Lock()

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        extend_env: bool = True,
        check: bool = True,
    ) -> ProcessResult:
        """
        Execute ``command`` and wait for it.

        Args:
            command: argv list, no shell involved
            cwd: working directory for the child
            env: extra environment variables
            extend_env: start from ``os.environ`` before applying ``env``
            check: raise :class:`SubprocessError` on a non-zero exit

        Returns:
            ProcessResult with the full captured stdout and stderr
        """
        command = [str(part) for part in command]
        display = redact_command(command)
        logger.info("$ %s", display)
        self.run_log.banner(f"RUNNING COMMAND: {display}")

        try:
            process = self._popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=cwd,
                env=self._build_env(env, extend_env),
            )
        except OSError as exc:
            # binary missing or cwd unusable, same exit code a shell would report
            raise SubprocessError(command, 127, str(exc)) from exc
        with self._count_lock:
            self.spawn_count += 1

        stdout_chunks: List[str] = []
        stderr_chunks: List[str] = []

        def pump(stream, chunks: List[str], write: Callable[[str], None]) -> None:
            for line in stream:
                chunks.append(line)
                write(line)
            stream.close()

        readers = [
            threading.Thread(
                target=pump, args=(process.stdout, stdout_chunks, self.run_log.write_stdout), daemon=True
            ),
            threading.Thread(
                target=pump, args=(process.stderr, stderr_chunks, self.run_log.write_stderr), daemon=True
            ),
        ]
        for reader in readers:
            reader.start()
        exit_status = process.wait()
        for reader in readers:
            reader.join()

        result = ProcessResult(
            command=command,
            stdout="".join(stdout_chunks),
            stderr="".join(stderr_chunks),
            exit_status=exit_status,
        )
        if check and not result.ok:
            raise SubprocessError(command, exit_status, result.stderr)
        return result

    def _build_env(self, env: Optional[Mapping[str, str]], extend_env: bool) -> Dict[str, str]:
        merged: Dict[str, str] = dict(os.environ) if extend_env else {}
        if env:
            merged.update({key: str(value) for key, value in env.items()})
        return merged
