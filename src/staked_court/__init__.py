"""Stake-weighted sortition courts with plurality dispute resolution."""
