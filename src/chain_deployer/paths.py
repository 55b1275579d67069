"""Unified path constants for chain-deployer.

Generated data lives next to the invocation directory:
- .chain-deployer/state/   # deployed-<destination>.json registries
- logs/                    # tee'd subprocess output, one file per run
"""

from pathlib import Path

BASE_DIR = Path(".chain-deployer")

STATE_DIR = BASE_DIR / "state"
LOGS_DIR = Path("logs")
DEFAULT_CONFIG_PATH = Path("config/default_config.json")
