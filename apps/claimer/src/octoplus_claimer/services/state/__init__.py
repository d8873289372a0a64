"""Claim state persistence package."""

from .periods import build_account_state, housekeeping_ttl, is_in_claim_window, next_period_boundary
from .store import DynamoStateStore, InMemoryStateStore, StateStore

__all__ = [
    "DynamoStateStore",
    "InMemoryStateStore",
    "StateStore",
    "build_account_state",
    "housekeeping_ttl",
    "is_in_claim_window",
    "next_period_boundary",
]
