"""RPC utilities for chain-deployer."""

from .probe import JsonRpcClient, RpcProbeError, RpcReadinessProber

__all__ = ["JsonRpcClient", "RpcProbeError", "RpcReadinessProber"]
