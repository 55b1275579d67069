"""Local sandbox helpers (compose stacks and account funding)."""

from .compose import COMPOSE_ACTIONS, ComposeCommandError, ComposeManager, otterscan_config
from .funding import AnvilFunder

__all__ = ["COMPOSE_ACTIONS", "AnvilFunder", "ComposeCommandError", "ComposeManager", "otterscan_config"]
