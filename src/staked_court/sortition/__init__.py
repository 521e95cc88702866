"""Stake-weighted random selection."""

from staked_court.sortition.tree import SortitionSumTree, SortitionTrees

__all__ = ["SortitionSumTree", "SortitionTrees"]
