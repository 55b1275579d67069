"""Command-line interface for chain-deployer."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .config import (
    AppConfig,
    ConfigurationError,
    Destination,
    Network,
    ScriptStep,
    load_config,
    load_network_config,
    parse_networks,
)
from .errors import DeployerError
from .executor import ProcessSession
from .rpc import RpcReadinessProber
from .sandbox import COMPOSE_ACTIONS, AnvilFunder, ComposeManager
from .state import DeployedStateStore
from .utils.logging import RunLog, get_logger
from .workflow import DeploymentRequest, DeploymentWorkflow, WorkflowResult

logger = get_logger(__name__)

DEFAULT_NETWORKS = f"{Network.ETHEREUM.value},{Network.CARTIO.value}"


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    networks: List[Network]
    destination: Destination


def _add_target_options(parser: argparse.ArgumentParser, *, with_destination: bool = True) -> None:
    if with_destination:
        parser.add_argument(
            "--destination",
            "-d",
            default=Destination.SANDBOX.value,
            help="docker (local sandbox chains, alias: sandbox), dev or prod (default: docker)",
        )
    parser.add_argument(
        "--network",
        "-n",
        default=DEFAULT_NETWORKS,
        help=(
            "Comma-separated networks. Allowed values: "
            f"{', '.join(n.value for n in Network)} (default: {DEFAULT_NETWORKS})"
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chain-deployer",
        description="Run contract deployment scripts across networks and keep a registry of what was deployed.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy_parser = subparsers.add_parser("deploy", help="Run one deployment script")
    deploy_parser.add_argument("--script", "-s", required=True, help="Script name or path to the .s.sol file")
    deploy_parser.add_argument(
        "--iterator",
        "-i",
        default=None,
        help="Config field holding a list of per-instance overrides; the script runs once per entry",
    )
    deploy_parser.add_argument(
        "--env-prefix",
        default=None,
        help="Strip <PREFIX>__ from environment keys before running the script",
    )
    deploy_parser.add_argument(
        "--force", action="store_true", help="Ignore previously deployed values when building the environment"
    )
    _add_target_options(deploy_parser)

    deploy_all_parser = subparsers.add_parser("deploy-all", help="Run the configured deploy_order sequence")
    deploy_all_parser.add_argument(
        "--force", action="store_true", help="Ignore previously deployed values when building the environment"
    )
    deploy_all_parser.add_argument(
        "--skip-docker", action="store_true", help="Do not (re)start the sandbox compose stacks first"
    )
    _add_target_options(deploy_all_parser)

    docker_parser = subparsers.add_parser("docker", help="Control the local sandbox compose stacks")
    docker_parser.add_argument("action", choices=[*COMPOSE_ACTIONS, "recreate"])
    _add_target_options(docker_parser, with_destination=False)

    fund_parser = subparsers.add_parser("fund", help="Send ETH to an address on sandbox chains")
    fund_parser.add_argument("--address", required=True, help="Receiver address")
    fund_parser.add_argument("--amount", default=None, help="Amount in wei (default from config)")
    _add_target_options(fund_parser, with_destination=False)

    state_parser = subparsers.add_parser("state", help="Print the deployed-artifact registry")
    _add_target_options(state_parser)

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    # network and destination names are checked before anything else happens
    networks = parse_networks(args.network)
    destination = Destination.parse(getattr(args, "destination", Destination.SANDBOX.value))
    config = load_config(args.config)
    return CLIContext(config=config, networks=networks, destination=destination)


def _sandbox_envs(context: CLIContext, networks: List[Network]) -> Dict[Network, Dict[str, str]]:
    return {
        network: load_network_config(network, None, Destination.SANDBOX, context.config).env()
        for network in networks
    }


def _report(result: WorkflowResult) -> int:
    for outcome in result.failures:
        print(f"❌ network={outcome.network.value}: {outcome.error}", file=sys.stderr)
    return 0 if result.ok else 1


def handle_deploy_command(args: argparse.Namespace, context: CLIContext, steps: List[ScriptStep]) -> int:
    log_dir = Path(context.config.deployment.log_dir)
    script = steps[0].name if len(steps) == 1 else ""
    session = ProcessSession()
    workflow = DeploymentWorkflow(context.config, session=session)
    request = DeploymentRequest(
        steps=steps,
        networks=context.networks,
        destination=context.destination,
        force=args.force,
    )
    # validation and config resolution happen before the run log file exists
    prepared = workflow.prepare(request)

    with RunLog.for_run(log_dir, args.command, script) as run_log:
        session.run_log = run_log
        if args.command == "deploy-all" and context.destination is Destination.SANDBOX and not args.skip_docker:
            compose = ComposeManager(session, context.config.sandbox)
            compose.apply("up", context.networks, {n: cfg.env() for n, cfg in prepared.configs.items()})

        result = workflow.execute(prepared)
        logger.info("📄 Full log: %s", run_log.log_file)
    return _report(result)


def handle_docker_command(args: argparse.Namespace, context: CLIContext) -> int:
    with RunLog.for_run(Path(context.config.deployment.log_dir), "docker", args.action) as run_log:
        compose = ComposeManager(ProcessSession(run_log), context.config.sandbox)
        if args.action == "recreate":
            compose.recreate(context.networks, _sandbox_envs(context, list(Network)))
        else:
            compose.apply(args.action, context.networks, _sandbox_envs(context, context.networks))
    return 0


def handle_fund_command(args: argparse.Namespace, context: CLIContext) -> int:
    settings = context.config.deployment
    prober = RpcReadinessProber(
        method=settings.probe_method,
        interval=settings.probe_interval,
        request_timeout=settings.probe_request_timeout,
    )
    amount = args.amount or context.config.sandbox.default_fund_amount
    with RunLog.for_run(Path(context.config.deployment.log_dir), "fund") as run_log:
        funder = AnvilFunder(ProcessSession(run_log), context.config.sandbox, prober)
        for network in context.networks:
            cfg = load_network_config(network, None, Destination.SANDBOX, context.config)
            funder.fund(cfg.rpc_url, args.address, amount)
    return 0


def handle_state_command(args: argparse.Namespace, context: CLIContext) -> int:
    store = DeployedStateStore(context.config.deployment.state_dir)
    state = store.load(context.destination)
    selected = {n.value: state[n.value] for n in context.networks if n.value in state}
    print(json.dumps(selected, indent=2, sort_keys=True))
    return 0


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)

    if args.command == "deploy":
        step = ScriptStep(script=args.script, iterator=args.iterator, env_prefix=args.env_prefix)
        return handle_deploy_command(args, context, [step])

    if args.command == "deploy-all":
        if not context.config.deploy_order:
            raise ConfigurationError("deploy_order is empty in the configuration file")
        return handle_deploy_command(args, context, context.config.deploy_order)

    if args.command == "docker":
        return handle_docker_command(args, context)

    if args.command == "fund":
        return handle_fund_command(args, context)

    if args.command == "state":
        return handle_state_command(args, context)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return dispatch_command(args)
    except DeployerError as exc:
        print(f"❌ Error: {exc}", file=sys.stderr)
        return 1
