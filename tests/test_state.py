import json
import tempfile
import unittest
from pathlib import Path

from chain_deployer.config import ConfigurationError, Destination
from chain_deployer.state import DeployedStateStore


class DeployedStateStoreTests(unittest.TestCase):
    def test_missing_file_loads_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = DeployedStateStore(Path(tmp) / "state")
            self.assertEqual(store.load(Destination.SANDBOX), {})

    def test_round_trip(self) -> None:
        samples = [
            {},
            {"ethereum": {}},
            {
                "ethereum": {"DAHLIA_ADDRESS": "0xabc", "CHAIN_ID": "1"},
                "cartio": {"IRM_FACTORY": "0xdef", "GRAPH_NODE_RPC_PORT": "8022"},
            },
            {"ethereum": {"ORACLES": {"a": "0x1", "b": {"feed": "0x2"}}, "PENDING": None}},
            {"ethereum": {"MARKETS": ["0x1", "0x2"]}, "schema": "2"},
        ]
        with tempfile.TemporaryDirectory() as tmp:
            store = DeployedStateStore(tmp)
            for sample in samples:
                store.save("sandbox", sample)
                self.assertEqual(store.load("sandbox"), sample)

    def test_destinations_use_separate_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = DeployedStateStore(tmp)
            store.save(Destination.SANDBOX, {"ethereum": {"A": "0x1"}})
            store.save(Destination.PROD, {"cartio": {"B": "0x2"}})

            self.assertEqual(store.load(Destination.SANDBOX), {"ethereum": {"A": "0x1"}})
            self.assertEqual(store.load(Destination.PROD), {"cartio": {"B": "0x2"}})
            self.assertEqual(store.load(Destination.DEV), {})
            self.assertTrue((Path(tmp) / "deployed-docker.json").exists())
            self.assertTrue((Path(tmp) / "deployed-prod.json").exists())

    def test_save_overwrites_and_leaves_no_temp_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = DeployedStateStore(tmp)
            store.save("dev", {"ethereum": {"A": "0x1", "B": "0x2"}})
            store.save("dev", {"ethereum": {"A": "0x3"}})

            self.assertEqual(store.load("dev"), {"ethereum": {"A": "0x3"}})
            self.assertEqual([p.name for p in Path(tmp).iterdir()], ["deployed-dev.json"])

    def test_values_stored_as_strings(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = DeployedStateStore(tmp)
            path = store.save("sandbox", {"ethereum": {"CHAIN_ID": 1}})
            payload = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(payload, {"ethereum": {"CHAIN_ID": "1"}})

    def test_sandbox_alias_shares_the_docker_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = DeployedStateStore(tmp)
            store.save("sandbox", {"cartio": {"A": "0x1"}})
            self.assertEqual(store.path_for(Destination.SANDBOX).name, "deployed-docker.json")
            self.assertEqual(store.load("docker"), {"cartio": {"A": "0x1"}})

    def test_invalid_json_is_a_configuration_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = DeployedStateStore(tmp)
            store.path_for("dev").write_text("{not json", encoding="utf-8")
            with self.assertRaises(ConfigurationError) as ctx:
                store.load("dev")
            self.assertIn("deployed-dev.json", str(ctx.exception))

    def test_non_object_document_is_a_configuration_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = DeployedStateStore(tmp)
            store.path_for("prod").write_text("[1, 2]\n", encoding="utf-8")
            with self.assertRaises(ConfigurationError):
                store.load("prod")


if __name__ == "__main__":
    unittest.main()
