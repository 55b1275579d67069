"""Funding of arbitrary addresses on sandbox (Anvil) chains."""

from __future__ import annotations

from ..config import SandboxSettings
from ..executor.session import ProcessSession
from ..rpc.probe import RpcReadinessProber
from ..utils.logging import get_logger

logger = get_logger(__name__)


class AnvilFunder:
    """Sends ETH from Anvil's pre-funded first account by impersonating it.

    See https://book.getfoundry.sh/tutorials/forking-mainnet-with-cast-anvil
    """

    def __init__(
        self,
        session: ProcessSession,
        settings: SandboxSettings,
        prober: RpcReadinessProber,
    ) -> None:
        self.session = session
        self.settings = settings
        self.prober = prober

    def fund(self, rpc_url: str, address: str, amount_wei: str) -> None:
        self.prober.await_ready(rpc_url)
        cast = self.settings.cast_binary
        rich = self.settings.rich_account
        self.session.run([cast, "rpc", "--rpc-url", rpc_url, "anvil_impersonateAccount", rich])
        self.session.run(
            [cast, "send", "--rpc-url", rpc_url, "--from", rich, address, "--value", str(amount_wei), "--unlocked"]
        )
        logger.info("💸 Sent %s wei to %s on %s", amount_wei, address, rpc_url)
