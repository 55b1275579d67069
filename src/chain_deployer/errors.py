"""Exception hierarchy shared across chain-deployer."""

from __future__ import annotations


class DeployerError(RuntimeError):
    """Base class for failures that end a CLI invocation with exit code 1."""

    pass
