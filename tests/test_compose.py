import json

import pytest

from chain_deployer.config import Network, SandboxSettings
from chain_deployer.executor import ProcessResult
from chain_deployer.sandbox import AnvilFunder, ComposeCommandError, ComposeManager


class RecordingSession:
    def __init__(self, fail_on_call: int = -1) -> None:
        self.calls = []
        self.fail_on_call = fail_on_call

    def run(self, command, *, cwd=None, env=None, extend_env=True, check=True):
        self.calls.append({"command": list(command), "cwd": cwd, "env": dict(env or {})})
        status = 1 if len(self.calls) - 1 == self.fail_on_call else 0
        return ProcessResult(list(command), "", "compose exploded" if status else "", status)


class StubProber:
    def __init__(self) -> None:
        self.endpoints = []

    def await_ready(self, endpoint):
        self.endpoints.append(endpoint)
        return 31337


@pytest.fixture
def settings():
    return SandboxSettings(compose_project="dahlia", docker_dir="/srv/docker")


class TestComposeManager:
    def test_up_runs_shared_stack_then_each_network(self, settings):
        session = RecordingSession()
        manager = ComposeManager(session, settings)  # type: ignore[arg-type]
        envs = {
            Network.ETHEREUM: {"RPC_PORT": "8546", "OTTERSCAN_PORT": "28546"},
            Network.CARTIO: {"RPC_PORT": "8548", "OTTERSCAN_PORT": "28548"},
        }

        manager.apply("up", [Network.ETHEREUM, Network.CARTIO], envs)

        assert len(session.calls) == 3
        shared, ethereum, cartio = session.calls
        assert shared["command"] == ["docker", "compose", "up", "--build", "--remove-orphans", "-d"]
        assert shared["cwd"] == "/srv/docker/dahlia"
        assert shared["env"] == {"COMPOSE_PROJECT_NAME": "dahlia"}

        assert ethereum["cwd"] == "/srv/docker/dahlia-network"
        assert ethereum["env"]["COMPOSE_PROJECT_NAME"] == "dahlia-ethereum"
        assert ethereum["env"]["RPC_PORT"] == "8546"
        otterscan = json.loads(ethereum["env"]["OTTERSCAN_CONFIG"])
        assert otterscan["erigonURL"] == "http://localhost:8546"
        assert otterscan["branding"]["networkTitle"] == "ethereum"

        assert cartio["env"]["COMPOSE_PROJECT_NAME"] == "dahlia-cartio"

    def test_down_clean_removes_volumes(self, settings):
        session = RecordingSession()
        ComposeManager(session, settings).apply("down-clean", [Network.SEPOLIA], {})  # type: ignore[arg-type]
        assert session.calls[1]["command"] == ["docker", "compose", "down", "--remove-orphans", "--volumes"]

    def test_recreate_tears_down_every_network_first(self, settings):
        session = RecordingSession()
        ComposeManager(session, settings).recreate([Network.ETHEREUM], {})  # type: ignore[arg-type]
        actions = [call["command"][2:] for call in session.calls]
        # shared + 3 networks down, then shared + ethereum up
        assert len(actions) == 6
        assert all(a[-1] == "--volumes" for a in actions[:4])
        assert actions[4][0] == "up"
        assert session.calls[5]["env"]["COMPOSE_PROJECT_NAME"] == "dahlia-ethereum"

    def test_failure_raises_compose_error(self, settings):
        session = RecordingSession(fail_on_call=1)
        manager = ComposeManager(session, settings)  # type: ignore[arg-type]
        with pytest.raises(ComposeCommandError) as excinfo:
            manager.apply("up", [Network.ETHEREUM, Network.CARTIO], {})
        assert "compose exploded" in str(excinfo.value)
        assert len(session.calls) == 2

    def test_unknown_action(self, settings):
        with pytest.raises(ValueError):
            ComposeManager(RecordingSession(), settings).apply("restart", [], {})  # type: ignore[arg-type]


class TestAnvilFunder:
    def test_impersonates_rich_account_then_sends(self, settings):
        session = RecordingSession()
        prober = StubProber()
        funder = AnvilFunder(session, settings, prober)  # type: ignore[arg-type]

        funder.fund("http://localhost:8546", "0xreceiver", "1000")

        assert prober.endpoints == ["http://localhost:8546"]
        impersonate, send = session.calls
        assert impersonate["command"][:2] == ["cast", "rpc"]
        assert "anvil_impersonateAccount" in impersonate["command"]
        assert settings.rich_account in impersonate["command"]
        assert send["command"][:2] == ["cast", "send"]
        assert send["command"][-1] == "--unlocked"
        assert "0xreceiver" in send["command"]
        assert "1000" in send["command"]
