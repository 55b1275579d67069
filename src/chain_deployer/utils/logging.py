"""Logging helpers."""

from __future__ import annotations

import logging
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional, TextIO

_LOGGING_CONFIGURED = False

_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")


def get_logger(name: Optional[str] = None) -> logging.Logger:
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(
            level=logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
        )
        _LOGGING_CONFIGURED = True
    return logging.getLogger(name)


def strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE_RE.sub("", text)


class RunLog:
    """
    Tee sink for subprocess output.

    Every chunk written goes to the console stream and, with ANSI colour
    codes removed, to the run's log file. Writes from the stdout and stderr
    reader threads are serialised so lines never interleave mid-line.

    Tests pass their own ``stdout``/``stderr`` objects (e.g. ``io.StringIO``)
    instead of touching the process-wide handles.
    """

    def __init__(
        self,
        log_file: Optional[Path] = None,
        *,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.log_file = log_file
        self._stdout = stdout
        self._stderr = stderr
        self._lock = threading.Lock()
        self._handle: Optional[TextIO] = None
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self._handle = log_file.open("a", encoding="utf-8")

    @classmethod
    def for_run(cls, log_dir: Path, command: str, script: str = "") -> "RunLog":
        """Create a sink writing to ``<log_dir>/<command>-<script>-<unix>.log``."""
        parts = [command]
        if script:
            parts.append(Path(script).name.replace(".s.sol", ""))
        parts.append(str(int(time.time())))
        return cls(log_dir / ("-".join(parts) + ".log"))

    @property
    def console_out(self) -> TextIO:
        return self._stdout or sys.stdout

    @property
    def console_err(self) -> TextIO:
        return self._stderr or sys.stderr

    def write_stdout(self, chunk: str) -> None:
        self._write(self.console_out, chunk)

    def write_stderr(self, chunk: str) -> None:
        self._write(self.console_err, chunk)

    def banner(self, text: str) -> None:
        """Write a section header (only to the file, the console gets log lines)."""
        with self._lock:
            if self._handle is not None:
                self._handle.write(f"\n=== {text} ===\n\n")
                self._handle.flush()

    def _write(self, console: TextIO, chunk: str) -> None:
        with self._lock:
            console.write(chunk)
            console.flush()
            if self._handle is not None:
                self._handle.write(strip_ansi(chunk))
                self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None

    def __enter__(self) -> "RunLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
