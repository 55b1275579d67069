"""Tests for environment projection."""

from chain_deployer.env import clear_prefix, project_env, scoped_keys


class TestClearPrefix:
    """Tests for clear_prefix."""

    def test_strips_network_prefix(self):
        result = clear_prefix({"MAINNET__X": "1", "Y": "2"}, "MAINNET")
        assert result == {"X": "1", "Y": "2"}

    def test_second_application_is_noop(self):
        once = clear_prefix({"MAINNET__X": "1", "Y": "2"}, "MAINNET")
        assert clear_prefix(once, "MAINNET") == once

    def test_other_prefixes_untouched(self):
        env = {"CARTIO__RPC_URL": "https://rpc", "ETHEREUM__RPC_URL": "http://localhost"}
        result = clear_prefix(env, "CARTIO")
        assert result == {"RPC_URL": "https://rpc", "ETHEREUM__RPC_URL": "http://localhost"}

    def test_collision_last_write_wins(self):
        result = clear_prefix({"X": "plain", "WBERA_USDC__X": "scoped"}, "WBERA_USDC")
        assert result == {"X": "scoped"}

        result = clear_prefix({"WBERA_USDC__X": "scoped", "X": "plain"}, "WBERA_USDC")
        assert result == {"X": "plain"}

    def test_prefix_inside_key(self):
        # the marker may sit after another segment
        result = clear_prefix({"MARKET_STONE_WETH__LLTV": "80000"}, "STONE_WETH")
        assert result == {"MARKET_LLTV": "80000"}


class TestProjectEnv:
    """Tests for project_env and scoped_keys."""

    def test_keeps_scalars_only(self):
        config = {
            "RPC_PORT": 8546,
            "NAME": "vault",
            "ENABLED": True,
            "WrappedVault": [{"NAME": "x"}],
            "PointsFactory": None,
            "NESTED": {"a": 1},
        }
        assert project_env(config) == {"RPC_PORT": "8546", "NAME": "vault", "ENABLED": "true"}

    def test_scoped_keys_filters_and_clears(self):
        environ = {"CARTIO__RPC_URL": "https://rpc", "PATH": "/usr/bin", "SEPOLIA__RPC_URL": "x"}
        assert scoped_keys(environ, "CARTIO") == {"RPC_URL": "https://rpc"}
