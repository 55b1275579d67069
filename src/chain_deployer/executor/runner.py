"""Runs one deployment script and folds its results into the deployed state."""

from __future__ import annotations

import threading
from contextlib import nullcontext
from typing import Dict, List, Mapping, Optional, Union

from ..config import Network
from ..utils.logging import get_logger
from .output import parse_deployed_values
from .session import ProcessSession, SubprocessError

logger = get_logger(__name__)


class DeploymentExecutor:
    """Invokes ``<tool> script <path> --rpc-url <url> --broadcast --private-key <key>``.

    Stdout lines of the form ``NAME=VALUE`` are the only result channel; each
    one becomes ``state[network][NAME]``. Matches are recorded before the
    exit status is checked, so a script that fails half-way still leaves its
    already-deployed artifacts in the registry.
    """

    def __init__(
        self,
        session: ProcessSession,
        *,
        tool_binary: str = "forge",
        contracts_dir: str = "..",
        state_lock: Optional[threading.RLock] = None,
    ) -> None:
        self.session = session
        self.tool_binary = tool_binary
        self.contracts_dir = contracts_dir
        self._state_lock = state_lock

    def build_command(self, script_path: str, rpc_url: str, private_key: str) -> List[str]:
        return [
            self.tool_binary,
            "script",
            script_path,
            "--rpc-url",
            rpc_url,
            "--broadcast",
            "--private-key",
            private_key,
        ]

    def run(
        self,
        env: Mapping[str, str],
        script_path: str,
        network: Union[str, Network],
        state: Dict[str, Dict[str, str]],
        *,
        rpc_url: str,
        private_key: str,
    ) -> Dict[str, str]:
        """
        Execute one script against one network.

        Returns:
            The values parsed from this invocation's stdout.

        Raises:
            SubprocessError: the tool exited non-zero (after recording matches).
        """
        network_name = network.value if isinstance(network, Network) else str(network)
        logger.info("network=%s: Deploying %s rpcUrl=%s", network_name, script_path, rpc_url)

        command = self.build_command(script_path, rpc_url, private_key)
        result = self.session.run(command, cwd=self.contracts_dir, env=env, check=False)

        deployed = parse_deployed_values(result.stdout)
        if deployed:
            with self._state_lock or nullcontext():
                state.setdefault(network_name, {}).update(deployed)
            for name, value in deployed.items():
                logger.info("network=%s: %s=%s", network_name, name, value)

        if not result.ok:
            raise SubprocessError(result.command, result.exit_status, result.stderr)
        return deployed
