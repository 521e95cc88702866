from __future__ import annotations

import hashlib
from typing import Protocol

_WORD = 1 << 256


class RandomNumberGenerator(Protocol):
    def get_uncorrelated_rn(self, seed: int) -> int:
        ...


def mix_random_number(random_number: int, *nonces: int) -> int:
    """Derive one independent number per draw from a shared random number."""
    material = (random_number % _WORD).to_bytes(32, byteorder="big", signed=False)
    for nonce in nonces:
        material += (nonce % _WORD).to_bytes(32, byteorder="big", signed=False)
    return int.from_bytes(hashlib.sha256(material).digest(), byteorder="big")


class HashChainRNG:
    """Deterministic generator for simulations and tests.

    The same ``(entropy, seed)`` always yields the same number, which is what
    makes draws reproducible in the in-memory host.
    """

    def __init__(self, entropy: bytes = b"staked-court") -> None:
        self._entropy = entropy

    def get_uncorrelated_rn(self, seed: int) -> int:
        digest = hashlib.sha256(
            self._entropy + (seed % _WORD).to_bytes(32, byteorder="big", signed=False)
        ).digest()
        return int.from_bytes(digest, byteorder="big")
