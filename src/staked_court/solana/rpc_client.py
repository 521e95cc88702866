from __future__ import annotations

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Finalized

from staked_court.config import AppSettings


class RpcClientFactory:
    """Builds the RPC client used to source finalized blockhashes for draws."""

    def __init__(self, settings: AppSettings) -> None:
        self._settings = settings

    def create(self) -> AsyncClient:
        return AsyncClient(self._settings.solana_rpc_url, commitment=Finalized)
