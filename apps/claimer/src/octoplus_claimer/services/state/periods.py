"""Voucher period arithmetic.

A voucher period runs from one weekly reset boundary to the next. State
written for a voucher expires at the first boundary strictly after the moment
it was claimed, so the following scheduled run attempts a fresh claim.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

from octoplus_claimer.domain import AccountState, Voucher

MICROSECONDS_PER_MILLISECOND = 1000
SECONDS_PER_DAY = 24 * 60 * 60


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def next_period_boundary(now: datetime, *, weekday: int = 0, hour: int = 0) -> datetime:
    """First ``weekday`` at ``hour``:00 UTC strictly after ``now`` (Monday is 0)."""

    now = _as_utc(now)
    days_ahead = (weekday - now.weekday()) % 7
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0) + timedelta(days=days_ahead)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def _parse_clock(value: str) -> time:
    hours, _, minutes = value.partition(":")
    return time(int(hours), int(minutes or 0))


def is_in_claim_window(now: datetime, *, weekday: int = 0, start: str = "05:00", end: str = "06:30") -> bool:
    """Whether ``now`` falls inside the weekly window when vouchers are released."""

    now = _as_utc(now)
    if now.weekday() != weekday:
        return False
    current = time(now.hour, now.minute)
    return _parse_clock(start) <= current <= _parse_clock(end)


def housekeeping_ttl(now: datetime, *, days: int) -> int:
    """Unix-seconds expiry used by the table's TTL cleanup."""

    return int(_as_utc(now).timestamp()) + days * SECONDS_PER_DAY


def build_account_state(
    account_number: str,
    voucher: Voucher,
    *,
    now: datetime,
    ttl_days: int = 30,
    reset_weekday: int = 0,
    reset_hour: int = 0,
    email_sent: bool = False,
) -> AccountState:
    """Fresh state row for a voucher obtained at ``now``."""

    now = _as_utc(now)
    claimed_at = now.replace(microsecond=now.microsecond - now.microsecond % MICROSECONDS_PER_MILLISECOND)
    return AccountState(
        account_number=account_number,
        voucher_code=voucher.code,
        barcode=voucher.barcode,
        expires_at=next_period_boundary(claimed_at, weekday=reset_weekday, hour=reset_hour),
        claimed_at=claimed_at,
        email_sent=email_sent,
        ttl=housekeeping_ttl(claimed_at, days=ttl_days),
    )


__all__ = [
    "build_account_state",
    "housekeeping_ttl",
    "is_in_claim_window",
    "next_period_boundary",
]
