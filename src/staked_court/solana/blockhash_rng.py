from __future__ import annotations

import hashlib

from solana.rpc.async_api import AsyncClient
from solders.hash import Hash

from staked_court.errors import PreconditionError
from staked_court.observability.logging import get_logger

_WORD = 1 << 256


class BlockhashRNG:
    """Random numbers derived from the latest finalized Solana blockhash.

    The blockhash is fetched asynchronously with ``refresh``; draws made
    between two refreshes reuse it, so a number is stable once its blockhash
    is final.
    """

    def __init__(self, client: AsyncClient) -> None:
        self._client = client
        self._blockhash: Hash | None = None

    @property
    def blockhash(self) -> Hash | None:
        return self._blockhash

    async def refresh(self) -> Hash:
        response = await self._client.get_latest_blockhash()
        self._blockhash = response.value.blockhash
        get_logger("staked_court.rng").info("blockhash_refreshed", blockhash=str(self._blockhash))
        return self._blockhash

    def get_uncorrelated_rn(self, seed: int) -> int:
        if self._blockhash is None:
            raise PreconditionError("no blockhash has been fetched yet")
        material = bytes(self._blockhash) + (seed % _WORD).to_bytes(32, byteorder="big")
        return int.from_bytes(hashlib.sha256(material).digest(), byteorder="big")
