"""Randomized soak workload for multi-chain ledger clusters."""

__version__ = "0.1.0"
