from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class ClaimSnapshot:
    outcomes: Dict[str, int]
    notifications: Dict[str, int]
    state_writes: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "outcomes": dict(self.outcomes),
            "notifications": dict(self.notifications),
            "state_writes": dict(self.state_writes),
        }


class ClaimObservabilityStore:
    """Collect per-process voucher claim telemetry."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._outcomes: Dict[str, int] = defaultdict(int)
        self._notifications: Dict[str, int] = defaultdict(int)
        self._state_writes: Dict[str, int] = defaultdict(int)

    def record_outcome(self, outcome: str) -> None:
        with self._lock:
            self._outcomes[outcome] += 1

    def record_notification(self, *, delivered: bool) -> None:
        with self._lock:
            self._notifications["delivered" if delivered else "failed"] += 1

    def record_notification_skipped(self) -> None:
        with self._lock:
            self._notifications["no_recipients"] += 1

    def record_state_write(self, *, persisted: bool) -> None:
        with self._lock:
            self._state_writes["persisted" if persisted else "failed"] += 1

    def snapshot(self) -> ClaimSnapshot:
        with self._lock:
            return ClaimSnapshot(
                outcomes=dict(self._outcomes),
                notifications=dict(self._notifications),
                state_writes=dict(self._state_writes),
            )

    def reset(self) -> None:
        with self._lock:
            self._outcomes.clear()
            self._notifications.clear()
            self._state_writes.clear()


_STORE = ClaimObservabilityStore()


def get_claim_store() -> ClaimObservabilityStore:
    return _STORE


__all__ = ["ClaimObservabilityStore", "ClaimSnapshot", "get_claim_store"]
