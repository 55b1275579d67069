"""Configuration loading and per-network resolution for chain-deployer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from dotenv import load_dotenv

from .env import project_env, scoped_keys
from .errors import DeployerError
from .paths import DEFAULT_CONFIG_PATH, LOGS_DIR, STATE_DIR
from .utils.logging import get_logger

# Load .env file if it exists
load_dotenv()

logger = get_logger(__name__)


class ConfigurationError(DeployerError):
    """A field required by the active destination is missing or malformed."""

    pass


class ValidationError(DeployerError):
    """The request itself is not allowed (unknown network, unsafe fan-out)."""

    pass


class Network(str, Enum):
    ETHEREUM = "ethereum"
    SEPOLIA = "sepolia"
    CARTIO = "cartio"


class Destination(str, Enum):
    SANDBOX = "docker"
    DEV = "dev"
    PROD = "prod"

    @classmethod
    def parse(cls, value: Union[str, "Destination"]) -> "Destination":
        if isinstance(value, Destination):
            return value
        normalized = value.strip().lower()
        if normalized == "sandbox":
            # sandbox 是 docker 的别名
            return cls.SANDBOX
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(d.value for d in cls)
            raise ValidationError(
                f"Invalid destination: {value}. Allowed values are: {allowed}"
            ) from None

    @property
    def is_remote(self) -> bool:
        return self is not Destination.SANDBOX


ALLOWED_NETWORKS = [n.value for n in Network]

# Anvil account #1 / #2, pre-funded on every local sandbox chain
DEFAULT_ANVIL_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
DEFAULT_WALLET_ADDRESS = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"

# (RPC_PORT, OTTERSCAN_PORT) published by the sandbox compose stacks
SANDBOX_DEFAULT_PORTS = {
    Network.ETHEREUM: ("8546", "28546"),
    Network.SEPOLIA: ("8547", "28547"),
    Network.CARTIO: ("8548", "28548"),
}

FLUSH_POLICIES = ("end_of_run", "per_task")


def parse_network(value: Union[str, Network]) -> Network:
    if isinstance(value, Network):
        return value
    try:
        return Network(value.strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid network: {value}. Allowed values are: {', '.join(ALLOWED_NETWORKS)}"
        ) from None


def parse_networks(value: Union[str, Sequence[Union[str, Network]], None]) -> List[Network]:
    """Parse a comma-separated list (or sequence) of network names, keeping order."""
    if value is None:
        return []
    items: Iterable[Union[str, Network]]
    if isinstance(value, str):
        items = [part for part in value.split(",") if part.strip()]
    else:
        items = value
    networks: List[Network] = []
    for item in items:
        network = parse_network(item)
        if network not in networks:
            networks.append(network)
    return networks


class IteratorKind(str, Enum):
    MANY = "many"
    SKIP = "skip"
    SINGLE = "single"


@dataclass(frozen=True)
class IteratorField:
    """Tagged shape of a config field that may drive repeated script runs."""

    kind: IteratorKind
    items: tuple = ()

    @classmethod
    def many(cls, items: Sequence[Mapping[str, Any]]) -> "IteratorField":
        return cls(IteratorKind.MANY, tuple(dict(item) for item in items))

    @classmethod
    def skip(cls) -> "IteratorField":
        return cls(IteratorKind.SKIP)

    @classmethod
    def single(cls) -> "IteratorField":
        return cls(IteratorKind.SINGLE)

    @classmethod
    def from_value(cls, value: Any, *, name: str = "") -> "IteratorField":
        if value is None:
            return cls.skip()
        if isinstance(value, (list, tuple)):
            for position, item in enumerate(value):
                if not isinstance(item, Mapping):
                    raise ConfigurationError(
                        f"Iterator field {name or '?'}[{position}] must be an object, "
                        f"got {type(item).__name__}"
                    )
            return cls.many(value)
        return cls.single()


@dataclass
class ScriptStep:
    """One entry of a deployment sequence."""

    script: str
    iterator: Optional[str] = None
    sandbox_only: bool = False
    env_prefix: Optional[str] = None

    @classmethod
    def from_value(cls, payload: Union[str, Mapping[str, Any]]) -> "ScriptStep":
        if isinstance(payload, str):
            return cls(script=payload)
        if "script" not in payload:
            raise ConfigurationError(f"deploy_order entry is missing 'script': {dict(payload)}")
        return cls(
            script=str(payload["script"]),
            iterator=payload.get("iterator"),
            sandbox_only=bool(payload.get("sandbox_only", False)),
            env_prefix=payload.get("env_prefix"),
        )

    @property
    def name(self) -> str:
        """Script name without directory or ``.s.sol`` suffix (also the config field key)."""
        base = Path(self.script).name
        for suffix in (".s.sol", ".sol"):
            if base.endswith(suffix):
                return base[: -len(suffix)]
        return base

    @property
    def script_path(self) -> str:
        """Path handed to the deployment tool, relative to the contracts directory."""
        if self.script.endswith(".sol"):
            return self.script
        return f"script/{self.script}.s.sol"


@dataclass
class DeploymentSettings:
    """Settings for driving the external deployment tool."""

    tool_binary: str = "forge"
    contracts_dir: str = ".."
    state_dir: str = str(STATE_DIR)
    log_dir: str = str(LOGS_DIR)
    flush_policy: str = "end_of_run"
    probe_method: str = "eth_chainId"
    probe_interval: float = 1.0
    probe_request_timeout: float = 5.0
    max_parallel_networks: int = 3
    state_passthrough_fields: List[str] = field(default_factory=lambda: ["GRAPH_NODE_RPC_PORT"])


@dataclass
class SandboxSettings:
    """Settings for the local docker sandbox."""

    compose_project: str = "dahlia"
    docker_dir: str = "./docker"
    docker_binary: str = "docker"
    cast_binary: str = "cast"
    rich_account: str = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
    default_fund_amount: str = "10000000000000000000"


@dataclass
class AppConfig:
    """Top-level configuration."""

    deployment: DeploymentSettings = field(default_factory=DeploymentSettings)
    sandbox: SandboxSettings = field(default_factory=SandboxSettings)
    networks: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    deploy_order: List[ScriptStep] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        deployment_payload = payload.get("deployment", {}) or {}
        sandbox_payload = payload.get("sandbox", {}) or {}
        networks_payload = payload.get("networks", {}) or {}

        # 过滤掉以下划线开头的注释字段
        deployment_payload = {k: v for k, v in deployment_payload.items() if not k.startswith("_")}
        sandbox_payload = {k: v for k, v in sandbox_payload.items() if not k.startswith("_")}

        networks: Dict[str, Dict[str, Any]] = {}
        for name, values in networks_payload.items():
            if name.startswith("_"):
                continue
            if name not in ALLOWED_NETWORKS:
                raise ConfigurationError(
                    f"Config declares unknown network '{name}'. Allowed: {', '.join(ALLOWED_NETWORKS)}"
                )
            networks[name] = dict(values or {})

        deployment = DeploymentSettings(**{**DeploymentSettings().__dict__, **deployment_payload})
        if deployment.flush_policy not in FLUSH_POLICIES:
            raise ConfigurationError(
                f"deployment.flush_policy must be one of {', '.join(FLUSH_POLICIES)}, "
                f"got {deployment.flush_policy!r}"
            )

        return cls(
            deployment=deployment,
            sandbox=SandboxSettings(**{**SandboxSettings().__dict__, **sandbox_payload}),
            networks=networks,
            deploy_order=[ScriptStep.from_value(step) for step in payload.get("deploy_order", []) or []],
        )


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than config file):
    - CHAIN_DEPLOYER_CONTRACTS_DIR: directory the deployment tool runs in
    - CHAIN_DEPLOYER_TOOL_BINARY: deployment tool executable (default forge)
    - CHAIN_DEPLOYER_STATE_DIR: where deployed-<destination>.json files live
    - CHAIN_DEPLOYER_LOG_DIR: where tee'd run logs are written
    """

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    candidate_paths.append(DEFAULT_CONFIG_PATH)

    for candidate in candidate_paths:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                try:
                    data = json.load(handle)
                except json.JSONDecodeError as exc:
                    raise ConfigurationError(f"Invalid JSON in {candidate}: {exc}") from exc
            config = AppConfig.from_dict(data)

            env_contracts_dir = os.getenv("CHAIN_DEPLOYER_CONTRACTS_DIR")
            if env_contracts_dir:
                config.deployment.contracts_dir = env_contracts_dir

            env_tool = os.getenv("CHAIN_DEPLOYER_TOOL_BINARY")
            if env_tool:
                config.deployment.tool_binary = env_tool

            env_state_dir = os.getenv("CHAIN_DEPLOYER_STATE_DIR")
            if env_state_dir:
                config.deployment.state_dir = env_state_dir

            env_log_dir = os.getenv("CHAIN_DEPLOYER_LOG_DIR")
            if env_log_dir:
                config.deployment.log_dir = env_log_dir

            logger.debug("Loaded configuration from %s", candidate)
            return config

    raise ConfigurationError(
        f"Could not find configuration file. Looked in: {', '.join(str(p) for p in candidate_paths)}"
    )


@dataclass
class ResolvedNetworkConfig:
    """Everything needed to deploy to one network at one destination."""

    network: Network
    destination: Destination
    values: Dict[str, Any]
    rpc_url: str
    scanner_base_url: str
    private_key: str
    wallet_address: str
    iterators: Dict[str, IteratorField] = field(default_factory=dict)

    def iterator_for(self, key: str) -> IteratorField:
        """Shape of ``key``: stored variant for list/null fields, Single otherwise."""
        return self.iterators.get(key, IteratorField.single())

    def env(self) -> Dict[str, str]:
        """Scalar fields as environment strings."""
        return project_env(self.values)


def _pick_private_key(
    values: Mapping[str, Any], environ: Mapping[str, str], destination: Destination
) -> str:
    key = values.get("DEPLOYER_PRIVATE_KEY") or environ.get("DEPLOYER_PRIVATE_KEY") or environ.get("PRIVATE_KEY")
    if key:
        return str(key)
    if destination is Destination.PROD:
        raise ConfigurationError("Missing required deployer DEPLOYER_PRIVATE_KEY environment variable")
    return DEFAULT_ANVIL_PRIVATE_KEY


def _pick_wallet_address(
    values: Mapping[str, Any], environ: Mapping[str, str], destination: Destination
) -> str:
    address = values.get("WALLET_ADDRESS") or environ.get("WALLET_ADDRESS")
    if address:
        return str(address)
    if destination is Destination.PROD:
        raise ConfigurationError(
            "Missing required owner WALLET_ADDRESS environment variable to own all deployed contracts"
        )
    return DEFAULT_WALLET_ADDRESS


def load_network_config(
    network: Union[str, Network],
    prior_state: Optional[Mapping[str, Any]],
    destination: Union[str, Destination],
    app_config: AppConfig,
    environ: Optional[Mapping[str, str]] = None,
    *,
    force: bool = False,
) -> ResolvedNetworkConfig:
    """
    Resolve the configuration for one network.

    Args:
        network: Network name; must be in the allow-list.
        prior_state: Previously deployed values for this network. Merged last
            so scripts can see what already exists, except over list or null
            fields. Ignored when ``force``.
        destination: Active destination, controls strictness.
        app_config: Loaded application config (static per-network source).
        environ: Process environment; defaults to ``os.environ``.
        force: Do not seed from ``prior_state`` (redeploy everything).

    Raises:
        ValidationError: Unknown network or destination.
        ConfigurationError: A field required by the destination is missing.
    """
    network = parse_network(network)
    destination = Destination.parse(destination)
    environ = os.environ if environ is None else environ

    values: Dict[str, Any] = dict(app_config.networks.get(network.value, {}))
    values.update(scoped_keys(environ, network.value.upper()))

    # iterator shapes come from config and environment only; a deployed
    # artifact sharing a field's name must not turn a list into a scalar
    iterators = {
        key: IteratorField.from_value(value, name=key)
        for key, value in values.items()
        if value is None or isinstance(value, (list, tuple))
    }
    if prior_state and not force:
        values.update({key: value for key, value in prior_state.items() if key not in iterators})

    if destination is Destination.SANDBOX:
        default_rpc_port, default_scanner_port = SANDBOX_DEFAULT_PORTS.get(network, (None, None))
        rpc_port = values.get("RPC_PORT") or default_rpc_port
        scanner_port = values.get("OTTERSCAN_PORT") or default_scanner_port
        if not rpc_port or not scanner_port:
            raise ConfigurationError(f"network={network.value}: Missing RPC_PORT or OTTERSCAN_PORT")
        values["RPC_PORT"] = str(rpc_port)
        values["OTTERSCAN_PORT"] = str(scanner_port)
        values["RPC_URL"] = f"http://localhost:{rpc_port}"
        values["SCANNER_BASE_URL"] = f"http://localhost:{scanner_port}"
    else:
        missing = [name for name in ("RPC_URL", "SCANNER_BASE_URL") if not values.get(name)]
        if missing:
            raise ConfigurationError(
                f"network={network.value}: Missing {' or '.join(missing)} for destination {destination.value}"
            )

    private_key = _pick_private_key(values, environ, destination)
    wallet_address = _pick_wallet_address(values, environ, destination)
    values["WALLET_ADDRESS"] = wallet_address
    values.pop("DEPLOYER_PRIVATE_KEY", None)

    return ResolvedNetworkConfig(
        network=network,
        destination=destination,
        values=values,
        rpc_url=str(values["RPC_URL"]),
        scanner_base_url=str(values["SCANNER_BASE_URL"]),
        private_key=private_key,
        wallet_address=wallet_address,
        iterators=iterators,
    )
