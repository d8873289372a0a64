"""Value objects passed between the credential, loyalty, state and notification layers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

OUT_OF_STOCK = "OUT_OF_STOCK"
MAX_CLAIMS_PER_PERIOD_REACHED = "MAX_CLAIMS_PER_PERIOD_REACHED"


def _from_epoch_ms(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def _to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


@dataclass(frozen=True, slots=True)
class AccountIdentity:
    """Validated handle used for every Octoplus API call."""

    account_id: str
    account_number: str
    api_key: str


@dataclass(frozen=True, slots=True)
class AccountCredentials:
    """Resolved credential bundle for one configured account."""

    identity: AccountIdentity
    nickname: str | None = None
    emails: tuple[str, ...] = ()

    @property
    def account_number(self) -> str:
        return self.identity.account_number


@dataclass(frozen=True, slots=True)
class OfferSummary:
    """One Octoplus offer together with its claimability for an account."""

    slug: str
    name: str
    can_claim: bool
    cannot_claim_reason: str | None = None
    claim_by: str | None = None


@dataclass(frozen=True, slots=True)
class OfferStatus:
    found: bool
    can_claim: bool = False
    cannot_claim_reason: str | None = None

    @classmethod
    def not_found(cls) -> "OfferStatus":
        return cls(found=False)


@dataclass(frozen=True, slots=True)
class ClaimReceipt:
    reward_id: str


@dataclass(frozen=True, slots=True)
class Voucher:
    """Redeemable voucher returned by a claim or recovered from claim history."""

    code: str
    barcode: str
    account_number: str
    expires_at: datetime | None = None
    reward_id: str | None = None

    def is_valid_at(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at > now


@dataclass(frozen=True, slots=True)
class AccountState:
    """Persisted claim record, one row per Octopus account number."""

    account_number: str
    voucher_code: str
    barcode: str
    expires_at: datetime
    claimed_at: datetime
    email_sent: bool
    ttl: int

    def is_fresh(self, now: datetime) -> bool:
        return self.expires_at > now

    def mark_email_sent(self) -> "AccountState":
        return replace(self, email_sent=True)

    def to_voucher(self) -> Voucher:
        return Voucher(
            code=self.voucher_code,
            barcode=self.barcode,
            account_number=self.account_number,
            expires_at=self.expires_at,
        )

    def to_item(self) -> dict[str, Any]:
        return {
            "accountNumber": self.account_number,
            "voucherCode": self.voucher_code,
            "barcode": self.barcode,
            "expiresAt": _to_epoch_ms(self.expires_at),
            "claimedAt": _to_epoch_ms(self.claimed_at),
            "emailSent": self.email_sent,
            "ttl": self.ttl,
        }

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "AccountState":
        voucher_code = str(item["voucherCode"] or "")
        barcode = str(item["barcode"] or "")
        if not voucher_code or not barcode:
            raise ValueError("voucherCode and barcode must not be empty")
        return cls(
            account_number=str(item["accountNumber"]),
            voucher_code=voucher_code,
            barcode=barcode,
            expires_at=_from_epoch_ms(item.get("expiresAt") or 0),
            claimed_at=_from_epoch_ms(item.get("claimedAt") or 0),
            email_sent=bool(item.get("emailSent", False)),
            ttl=int(item.get("ttl") or 0),
        )


class ClaimOutcome(str, Enum):
    """Terminal outcome of one reconciliation run."""

    SKIPPED = "none"
    EMAIL_SENT = "email_sent"
    CLAIMED = "claimed"
    RECOVERED_EXISTING = "recovered_existing"
    OFFER_NOT_FOUND = "offer_not_found"
    CLAIM_SUCCEEDED_VOUCHER_MISSING = "claim_succeeded_voucher_missing"
    OUT_OF_STOCK = "out_of_stock"
    MAX_CLAIMS_NO_VOUCHER = "max_claims_no_voucher"
    VOUCHER_EXPIRED = "voucher_expired"
    CANNOT_CLAIM = "cannot_claim"
    CONFIGURATION_ERROR = "configuration_error"
    REMOTE_ERROR = "remote_error"
    STORAGE_ERROR = "storage_error"
    ERROR = "error"

    @property
    def succeeded(self) -> bool:
        return self in _SUCCESS_OUTCOMES

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_OUTCOMES

    @property
    def is_execution_failure(self) -> bool:
        return self in _EXECUTION_FAILURES


_SUCCESS_OUTCOMES = frozenset(
    {
        ClaimOutcome.SKIPPED,
        ClaimOutcome.EMAIL_SENT,
        ClaimOutcome.CLAIMED,
        ClaimOutcome.RECOVERED_EXISTING,
    }
)

_RETRYABLE_OUTCOMES = frozenset(
    {
        ClaimOutcome.OUT_OF_STOCK,
        ClaimOutcome.CLAIM_SUCCEEDED_VOUCHER_MISSING,
        ClaimOutcome.REMOTE_ERROR,
        ClaimOutcome.STORAGE_ERROR,
    }
)

_EXECUTION_FAILURES = frozenset(
    {
        ClaimOutcome.CLAIM_SUCCEEDED_VOUCHER_MISSING,
        ClaimOutcome.CONFIGURATION_ERROR,
        ClaimOutcome.REMOTE_ERROR,
        ClaimOutcome.STORAGE_ERROR,
        ClaimOutcome.ERROR,
    }
)


@dataclass(slots=True)
class ClaimResult:
    """What a reconciliation run did, suitable for the invocation response."""

    outcome: ClaimOutcome
    account_number: str | None = None
    voucher_code: str | None = None
    email_sent: bool | None = None
    state_persisted: bool | None = None
    reason: str | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome.succeeded


__all__ = [
    "AccountCredentials",
    "AccountIdentity",
    "AccountState",
    "ClaimOutcome",
    "ClaimReceipt",
    "ClaimResult",
    "MAX_CLAIMS_PER_PERIOD_REACHED",
    "OUT_OF_STOCK",
    "OfferStatus",
    "OfferSummary",
    "Voucher",
]
