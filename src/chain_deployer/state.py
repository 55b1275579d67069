"""Durable registry of deployed artifacts, one JSON file per destination."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Union

from .config import ConfigurationError, Destination
from .utils.logging import get_logger

logger = get_logger(__name__)

DeployedState = Dict[str, Any]


def state_file_name(destination: Union[str, Destination]) -> str:
    return f"deployed-{Destination.parse(destination).value}.json"


def to_document(value: Any) -> Any:
    """Copy ``value`` for JSON output, stringifying scalars that are not strings."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return {str(k): to_document(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_document(item) for item in value]
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class DeployedStateStore:
    """Loads and saves ``deployed-<destination>.json`` under ``state_dir``.

    docker, dev and prod each get their own file so a local run can never
    touch production records. Saves replace the whole file through a temp
    file and ``os.replace``; loads return the document as written.
    """

    def __init__(self, state_dir: Union[str, Path]) -> None:
        self.state_dir = Path(state_dir)
        # shared with writers of the in-memory state so snapshots are consistent
        self.lock = threading.RLock()

    def path_for(self, destination: Union[str, Destination]) -> Path:
        return self.state_dir / state_file_name(destination)

    def load(self, destination: Union[str, Destination]) -> DeployedState:
        path = self.path_for(destination)
        if not path.exists():
            return {}
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Deployed state file {path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigurationError(
                f"Deployed state file {path} must hold a JSON object, got {type(payload).__name__}"
            )
        return payload

    def save(self, destination: Union[str, Destination], state: Mapping[str, Any]) -> Path:
        path = self.path_for(destination)
        with self.lock:
            # snapshot under the lock; workers may still be adding keys
            payload = to_document(dict(state))
            self.state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(self.state_dir))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2, sort_keys=True)
                    handle.write("\n")
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        logger.info("💾 Saved deployed state to %s", path)
        return path
