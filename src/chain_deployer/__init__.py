"""chain-deployer: multi-network contract deployment driver."""

__version__ = "0.1.0"
