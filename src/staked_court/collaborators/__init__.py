"""Interfaces of the systems the court talks to, with in-memory stand-ins."""

from staked_court.collaborators.arbitrable import Arbitrable, RecordingArbitrable
from staked_court.collaborators.clock import Clock, ManualClock, SystemClock
from staked_court.collaborators.rng import (
    HashChainRNG,
    RandomNumberGenerator,
    mix_random_number,
)
from staked_court.collaborators.token import FungibleToken, InMemoryToken

__all__ = [
    "Arbitrable",
    "Clock",
    "FungibleToken",
    "HashChainRNG",
    "InMemoryToken",
    "ManualClock",
    "RandomNumberGenerator",
    "RecordingArbitrable",
    "SystemClock",
    "mix_random_number",
]
