"""High-level workflow orchestration across networks."""

from __future__ import annotations

import os
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .config import (
    AppConfig,
    ConfigurationError,
    Destination,
    Network,
    ResolvedNetworkConfig,
    ScriptStep,
    ValidationError,
    load_network_config,
)
from .env import clear_prefix, project_env
from .executor import DeploymentExecutor, ProcessSession, SubprocessError
from .iteration import Expansion, expand
from .rpc import RpcReadinessProber
from .state import DeployedState, DeployedStateStore
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DeploymentRequest:
    """User-provided deployment request captured from the CLI."""

    steps: List[ScriptStep]
    networks: List[Network]
    destination: Destination = Destination.SANDBOX
    force: bool = False


@dataclass
class DeploymentTask:
    """One concrete execution of a script on a network."""

    network: Network
    script_path: str
    index: Optional[int]
    env: Dict[str, str]


@dataclass
class NetworkOutcome:
    network: Network
    chain_id: Optional[int] = None
    executed: int = 0
    skipped: List[str] = field(default_factory=list)
    produced: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PreparedRun:
    """Validated request with every network's config resolved; nothing has run yet."""

    request: DeploymentRequest
    state: DeployedState
    configs: Dict[Network, ResolvedNetworkConfig]


@dataclass
class WorkflowResult:
    destination: Destination
    state: DeployedState
    outcomes: Dict[Network, NetworkOutcome]

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes.values())

    @property
    def failures(self) -> List[NetworkOutcome]:
        return [outcome for outcome in self.outcomes.values() if not outcome.ok]


class DeploymentWorkflow:
    """
    Fans a sequence of script steps out across the selected networks.

    Sandbox networks run in parallel worker threads (each owns its ports and
    its own ``state[network]`` entry); dev and prod accept a single network
    only. Within a network steps run strictly in the order given.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        store: Optional[DeployedStateStore] = None,
        session: Optional[ProcessSession] = None,
        prober: Optional[RpcReadinessProber] = None,
        executor: Optional[DeploymentExecutor] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        settings = config.deployment
        self.config = config
        self.store = store or DeployedStateStore(settings.state_dir)
        self.session = session or ProcessSession()
        self.prober = prober or RpcReadinessProber(
            method=settings.probe_method,
            interval=settings.probe_interval,
            request_timeout=settings.probe_request_timeout,
        )
        self.executor = executor or DeploymentExecutor(
            self.session,
            tool_binary=settings.tool_binary,
            contracts_dir=settings.contracts_dir,
            state_lock=self.store.lock,
        )
        self.environ = os.environ if environ is None else environ

    def run(self, request: DeploymentRequest) -> WorkflowResult:
        return self.execute(self.prepare(request))

    def prepare(self, request: DeploymentRequest) -> PreparedRun:
        """Validate the request and resolve all configs. No subprocess, no writes."""
        if not request.networks:
            raise ValidationError("No network selected")
        if request.destination.is_remote and len(request.networks) > 1:
            raise ValidationError(
                f"Refusing to deploy to {len(request.networks)} networks at once on "
                f"destination {request.destination.value}; pass exactly one --network"
            )
        if not request.steps:
            raise ValidationError("No deployment script selected")

        state = self.store.load(request.destination)
        for network in request.networks:
            entry = state.get(network.value)
            if entry is not None and not isinstance(entry, dict):
                raise ConfigurationError(
                    f"Deployed state for {network.value} on {request.destination.value} must be an object, "
                    f"got {type(entry).__name__}"
                )
        configs = {
            network: load_network_config(
                network,
                state.get(network.value),
                request.destination,
                self.config,
                self.environ,
                force=request.force,
            )
            for network in request.networks
        }
        return PreparedRun(request=request, state=state, configs=configs)

    def execute(self, prepared: PreparedRun) -> WorkflowResult:
        request = prepared.request
        outcomes = {network: NetworkOutcome(network=network) for network in request.networks}
        logger.info(
            "🚀 Deploying %s to %s (%s)",
            ", ".join(step.name for step in request.steps),
            ", ".join(n.value for n in request.networks),
            request.destination.value,
        )

        try:
            if request.destination is Destination.SANDBOX and len(request.networks) > 1:
                self._execute_parallel(prepared, outcomes)
            else:
                for network in request.networks:
                    self._run_network(prepared, prepared.configs[network], outcomes[network])
        finally:
            if self.config.deployment.flush_policy == "end_of_run":
                self.store.save(request.destination, prepared.state)

        result = WorkflowResult(destination=request.destination, state=prepared.state, outcomes=outcomes)
        for outcome in outcomes.values():
            if outcome.ok:
                logger.info(
                    "✅ network=%s: %d task(s) executed, %d step(s) skipped",
                    outcome.network.value,
                    outcome.executed,
                    len(outcome.skipped),
                )
            else:
                logger.error("❌ network=%s: %s", outcome.network.value, outcome.error)
        return result

    def _execute_parallel(self, prepared: PreparedRun, outcomes: Dict[Network, NetworkOutcome]) -> None:
        networks = prepared.request.networks
        workers = max(1, min(len(networks), self.config.deployment.max_parallel_networks))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="deploy") as pool:
            futures: Dict[Future, Network] = {
                pool.submit(self._run_network, prepared, prepared.configs[network], outcomes[network]): network
                for network in networks
            }
            # wait for every network before surfacing a crash from any of them
            errors = []
            for future, network in futures.items():
                exc = future.exception()
                if exc is not None:
                    logger.error("network=%s: worker crashed: %s", network.value, exc)
                    errors.append(exc)
            if errors:
                raise errors[0]

    def _run_network(
        self,
        prepared: PreparedRun,
        cfg: ResolvedNetworkConfig,
        outcome: NetworkOutcome,
    ) -> None:
        request = prepared.request
        network = cfg.network

        chain_id = self.prober.await_ready(cfg.rpc_url)
        outcome.chain_id = chain_id
        derived = {"CHAIN_ID": str(chain_id)}
        for name in self.config.deployment.state_passthrough_fields:
            if cfg.values.get(name) is not None:
                derived[name] = str(cfg.values[name])
        self._record(prepared.state, network, derived, outcome)

        for step in request.steps:
            if step.sandbox_only and request.destination is not Destination.SANDBOX:
                logger.info("network=%s: %s only runs in the sandbox, skipping", network.value, step.name)
                outcome.skipped.append(step.name)
                continue

            expansions = expand(cfg, step.iterator, step.name)
            if not expansions:
                outcome.skipped.append(step.name)
                continue

            for expansion in expansions:
                task = self._build_task(request, cfg, step, expansion, outcome)
                try:
                    produced = self.executor.run(
                        task.env,
                        task.script_path,
                        network,
                        prepared.state,
                        rpc_url=cfg.rpc_url,
                        private_key=cfg.private_key,
                    )
                except SubprocessError as exc:
                    outcome.error = str(exc)
                    self._flush_task(prepared)
                    return
                outcome.produced.update(produced)
                outcome.executed += 1
                self._flush_task(prepared)

    def _build_task(
        self,
        request: DeploymentRequest,
        cfg: ResolvedNetworkConfig,
        step: ScriptStep,
        expansion: Expansion,
        outcome: NetworkOutcome,
    ) -> DeploymentTask:
        env = {**cfg.env(), **project_env(outcome.produced), **expansion.overrides}
        if step.env_prefix:
            env = clear_prefix(env, step.env_prefix)
        env["DESTINATION"] = request.destination.value
        env["PRIVATE_KEY"] = cfg.private_key
        if expansion.index is not None:
            env["INDEX"] = str(expansion.index)
        return DeploymentTask(network=cfg.network, script_path=step.script_path, index=expansion.index, env=env)

    def _record(
        self,
        state: DeployedState,
        network: Network,
        values: Mapping[str, str],
        outcome: NetworkOutcome,
    ) -> None:
        with self.store.lock:
            state.setdefault(network.value, {}).update(values)
        outcome.produced.update(values)

    def _flush_task(self, prepared: PreparedRun) -> None:
        if self.config.deployment.flush_policy == "per_task":
            self.store.save(prepared.request.destination, prepared.state)
