"""Execution of the external deployment tool."""

from .output import DEPLOYED_VALUE_RE, parse_deployed_values
from .runner import DeploymentExecutor
from .session import ProcessResult, ProcessSession, SubprocessError, redact_command

__all__ = [
    "DEPLOYED_VALUE_RE",
    "DeploymentExecutor",
    "ProcessResult",
    "ProcessSession",
    "SubprocessError",
    "parse_deployed_values",
    "redact_command",
]
