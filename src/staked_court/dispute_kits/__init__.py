"""Voting schemes the core delegates panel selection and coherence to."""

from staked_court.dispute_kits.base import DisputeKit
from staked_court.dispute_kits.classic import ClassicDisputeKit, hash_vote

__all__ = ["ClassicDisputeKit", "DisputeKit", "hash_vote"]
