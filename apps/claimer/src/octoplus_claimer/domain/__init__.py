"""Claim domain value objects."""

from .models import (  # noqa: F401
    MAX_CLAIMS_PER_PERIOD_REACHED,
    OUT_OF_STOCK,
    AccountCredentials,
    AccountIdentity,
    AccountState,
    ClaimOutcome,
    ClaimReceipt,
    ClaimResult,
    OfferStatus,
    OfferSummary,
    Voucher,
)
