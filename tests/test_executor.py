import threading
import unittest

from chain_deployer.config import Network
from chain_deployer.executor import DeploymentExecutor, ProcessResult, SubprocessError


class RecordingSession:
    def __init__(self, stdout: str = "", exit_status: int = 0, stderr: str = "") -> None:
        self.stdout = stdout
        self.exit_status = exit_status
        self.stderr = stderr
        self.calls = []

    def run(self, command, *, cwd=None, env=None, extend_env=True, check=True):
        self.calls.append({"command": list(command), "cwd": cwd, "env": dict(env or {}), "check": check})
        return ProcessResult(list(command), self.stdout, self.stderr, self.exit_status)


class DeploymentExecutorTests(unittest.TestCase):
    def test_command_shape(self) -> None:
        session = RecordingSession(stdout="Dahlia=0xabc\n")
        executor = DeploymentExecutor(session, tool_binary="forge", contracts_dir="/contracts")  # type: ignore[arg-type]
        state: dict = {}

        produced = executor.run(
            {"NETWORK": "ethereum"},
            "script/Dahlia.s.sol",
            Network.ETHEREUM,
            state,
            rpc_url="http://localhost:8546",
            private_key="0xkey",
        )

        call = session.calls[0]
        self.assertEqual(
            call["command"],
            [
                "forge",
                "script",
                "script/Dahlia.s.sol",
                "--rpc-url",
                "http://localhost:8546",
                "--broadcast",
                "--private-key",
                "0xkey",
            ],
        )
        self.assertEqual(call["cwd"], "/contracts")
        self.assertEqual(call["env"], {"NETWORK": "ethereum"})
        self.assertFalse(call["check"])
        self.assertEqual(produced, {"Dahlia": "0xabc"})
        self.assertEqual(state, {"ethereum": {"Dahlia": "0xabc"}})

    def test_matches_are_recorded_before_failure_is_raised(self) -> None:
        session = RecordingSession(
            stdout="  IrmFactory=0x1\nsomething else\nVariableIrm=0x2\n",
            exit_status=1,
            stderr="revert: out of gas\n",
        )
        executor = DeploymentExecutor(session, state_lock=threading.RLock())  # type: ignore[arg-type]
        state = {"ethereum": {"CHAIN_ID": "1"}}

        with self.assertRaises(SubprocessError) as ctx:
            executor.run({}, "script/Irm.s.sol", "ethereum", state, rpc_url="http://x", private_key="0xsecret")

        self.assertEqual(state["ethereum"], {"CHAIN_ID": "1", "IrmFactory": "0x1", "VariableIrm": "0x2"})
        self.assertEqual(ctx.exception.exit_code, 1)
        self.assertNotIn("0xsecret", str(ctx.exception))
        self.assertIn("out of gas", str(ctx.exception))

    def test_no_matches_leaves_state_untouched(self) -> None:
        session = RecordingSession(stdout="Compiling 3 files\n")
        executor = DeploymentExecutor(session)  # type: ignore[arg-type]
        state: dict = {}
        produced = executor.run({}, "script/Timelock.s.sol", Network.CARTIO, state, rpc_url="http://x", private_key="k")
        self.assertEqual(produced, {})
        self.assertEqual(state, {})


if __name__ == "__main__":
    unittest.main()
