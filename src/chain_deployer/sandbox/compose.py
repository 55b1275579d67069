"""docker compose control for the local sandbox chains."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from ..config import Network, SandboxSettings
from ..executor.session import ProcessSession, SubprocessError
from ..utils.logging import get_logger

logger = get_logger(__name__)

COMPOSE_ACTIONS: Dict[str, List[str]] = {
    "up": ["up", "--build", "--remove-orphans", "-d"],
    "down": ["down", "--remove-orphans"],
    "down-clean": ["down", "--remove-orphans", "--volumes"],
}


class ComposeCommandError(SubprocessError):
    """Raised when a docker compose command fails."""

    pass


def otterscan_config(network: Network, values: Mapping[str, str]) -> Dict[str, object]:
    """Block explorer settings for one network's Otterscan container."""
    return {
        # Otterscan talks to the published port, not the in-network one
        "erigonURL": f"http://localhost:{values.get('RPC_PORT', '')}",
        "beaconAPI": "",
        "assetsURLPrefix": "",
        "experimental": "",
        "branding": {
            "siteName": f"{network.value} {values.get('SCANNER_BASE_URL', '')}".strip(),
            "networkTitle": network.value,
        },
        "sourcifySources": {
            "ipfs": "https://ipfs.io/ipns/repo.sourcify.dev",
            "central_server": "http://sourcify:5555/verify",
        },
    }


class ComposeManager:
    """Wraps ``docker compose`` for the shared stack and one stack per network."""

    def __init__(self, session: ProcessSession, settings: SandboxSettings) -> None:
        self.session = session
        self.settings = settings

    @property
    def shared_dir(self) -> Path:
        return Path(self.settings.docker_dir) / self.settings.compose_project

    @property
    def network_dir(self) -> Path:
        return Path(self.settings.docker_dir) / f"{self.settings.compose_project}-network"

    def project_name(self, network: Network) -> str:
        return f"{self.settings.compose_project}-{network.value}"

    def apply(
        self,
        action: str,
        networks: Sequence[Network],
        network_envs: Mapping[Network, Mapping[str, str]],
    ) -> None:
        """
        Run ``action`` on the shared stack, then on each network's stack.

        Args:
            action: one of ``up``, ``down``, ``down-clean``
            networks: networks whose stacks are touched, in order
            network_envs: projected config per network, passed to compose
        """
        if action not in COMPOSE_ACTIONS:
            raise ValueError(f"Unknown compose action: {action}")

        self._compose(action, self.shared_dir, {"COMPOSE_PROJECT_NAME": self.settings.compose_project})

        for network in networks:
            values = dict(network_envs.get(network, {}))
            env = {
                **values,
                "COMPOSE_PROJECT_NAME": self.project_name(network),
                "OTTERSCAN_CONFIG": json.dumps(otterscan_config(network, values)),
            }
            self._compose(action, self.network_dir, env)
            if action == "up" and values.get("OTTERSCAN_PORT"):
                logger.info(
                    "🔎 %s: Otterscan running under http://localhost:%s", network.value, values["OTTERSCAN_PORT"]
                )

    def recreate(
        self,
        networks: Sequence[Network],
        network_envs: Mapping[Network, Mapping[str, str]],
    ) -> None:
        """Tear down every network stack with its volumes, then bring ``networks`` back up."""
        self.apply("down-clean", list(Network), network_envs)
        self.apply("up", networks, network_envs)

    def _compose(self, action: str, cwd: Path, env: Mapping[str, str]) -> None:
        command = [self.settings.docker_binary, "compose", *COMPOSE_ACTIONS[action]]
        logger.info("🐳 %s (%s)", " ".join(command[1:]), env.get("COMPOSE_PROJECT_NAME"))
        result = self.session.run(command, cwd=str(cwd), env=env, check=False)
        if not result.ok:
            raise ComposeCommandError(command, result.exit_status, result.stderr)
