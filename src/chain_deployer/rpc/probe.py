"""JSON-RPC liveness probing for target chains."""

from __future__ import annotations

import itertools
import time
from typing import Any, Callable, Optional

import requests

from ..utils.logging import get_logger

logger = get_logger(__name__)


class RpcProbeError(RuntimeError):
    """A liveness call failed; transient, the prober retries it."""

    pass


class JsonRpcClient:
    """Minimal JSON-RPC 2.0 client over ``requests.Session``."""

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def call(self, method: str, params: Optional[list] = None) -> Any:
        body = {"jsonrpc": "2.0", "method": method, "params": params or [], "id": next(self._ids)}
        try:
            response = self.session.post(self.endpoint, json=body, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise RpcProbeError(f"{method} against {self.endpoint} failed: {exc}") from exc

        if not isinstance(data, dict):
            raise RpcProbeError(f"{method} against {self.endpoint} returned a non-object response")
        if data.get("error"):
            raise RpcProbeError(f"{method} against {self.endpoint} returned error: {data['error']}")
        if "result" not in data:
            raise RpcProbeError(f"{method} against {self.endpoint} returned no result")
        return data["result"]

    def quantity(self, method: str) -> int:
        """Call a method returning a hex quantity (eth_chainId, eth_blockNumber)."""
        result = self.call(method)
        try:
            return int(result, 16) if isinstance(result, str) else int(result)
        except (TypeError, ValueError) as exc:
            raise RpcProbeError(f"{method} returned a non-numeric result: {result!r}") from exc

    def close(self) -> None:
        self.session.close()


class RpcReadinessProber:
    """
    Blocks until an RPC endpoint answers a liveness call.

    There is no attempt cap and no timeout: deployment only makes sense once
    the chain is live, so the prober keeps retrying at a fixed interval and
    logs every miss. Only the calling thread blocks.
    """

    def __init__(
        self,
        *,
        method: str = "eth_chainId",
        interval: float = 1.0,
        request_timeout: float = 5.0,
        client_factory: Optional[Callable[[str], Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.method = method
        self.interval = interval
        self.request_timeout = request_timeout
        self._client_factory = client_factory or (
            lambda endpoint: JsonRpcClient(endpoint, timeout=self.request_timeout)
        )
        self._sleep = sleep

    def await_ready(self, endpoint: str) -> int:
        """Return the first successful liveness value (chain id by default)."""
        client = self._client_factory(endpoint)
        attempt = 0
        try:
            while True:
                attempt += 1
                try:
                    value = client.quantity(self.method)
                except Exception as exc:  # any failure means "not live yet"
                    logger.warning(
                        "RPC %s is not ready yet (attempt %d): %s, retrying...", endpoint, attempt, exc
                    )
                    self._sleep(self.interval)
                    continue
                logger.info("✅ RPC %s is ready (%s=%s)", endpoint, self.method, value)
                return value
        finally:
            close = getattr(client, "close", None)
            if callable(close):
                close()
