"""Per-account voucher claim reconciliation.

Each run decides, from stored state and the live offer status, whether to skip,
deliver a stored voucher, claim a new one, or recover a voucher that was
claimed elsewhere. State is always written before an email is attempted, and
``emailSent`` is marked before sending so a crash can never produce a second
email for the same voucher code. The cost is a possible missed email when the
send fails after the mark; that case is logged and not retried.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Sequence

from loguru import logger

from octoplus_claimer.core.settings import Settings, get_settings
from octoplus_claimer.domain import (
    MAX_CLAIMS_PER_PERIOD_REACHED,
    OUT_OF_STOCK,
    AccountCredentials,
    AccountState,
    ClaimOutcome,
    ClaimResult,
    Voucher,
)
from octoplus_claimer.errors import NotificationError, StorageError
from octoplus_claimer.observability.claims import ClaimObservabilityStore, get_claim_store
from octoplus_claimer.services.octoplus import LoyaltyClient
from octoplus_claimer.services.state import StateStore, build_account_state, is_in_claim_window

_RECOVERABLE_REASONS = (OUT_OF_STOCK, MAX_CLAIMS_PER_PERIOD_REACHED)


class CredentialResolver(Protocol):
    async def resolve(self, account_id: str) -> AccountCredentials:
        ...


class Notifier(Protocol):
    async def send(self, addresses: Sequence[str], voucher: Voucher, nickname: str | None = None) -> Any:
        ...


class ClaimReconciler:
    """Drives one account through the claim state machine."""

    def __init__(
        self,
        *,
        credentials: CredentialResolver,
        loyalty: LoyaltyClient,
        state_store: StateStore,
        notifier: Notifier,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        observability: ClaimObservabilityStore | None = None,
    ) -> None:
        self._credentials = credentials
        self._loyalty = loyalty
        self._state_store = state_store
        self._notifier = notifier
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._observability = observability or get_claim_store()

    async def reconcile(self, account_id: str, *, request_id: str | None = None) -> ClaimResult:
        """Run one reconciliation for ``account_id``.

        :class:`ConfigurationError`, :class:`RemoteError` and state read
        failures propagate; every other path ends in a :class:`ClaimResult`.
        """

        log = logger.bind(account_id=account_id, request_id=request_id)

        credentials = await self._credentials.resolve(account_id)
        account_number = credentials.account_number
        log = log.bind(account_number=account_number)

        now = self._clock()
        existing = await self._state_store.get(account_number)
        if existing is not None and existing.is_fresh(now):
            return await self._handle_fresh_state(credentials, existing, log)

        if existing is None:
            log.info("No stored voucher, checking offer")
        else:
            log.info("Stored voucher is stale, checking offer", expired_at=existing.expires_at.isoformat())

        offer_slug = self._settings.offer_slug
        identity = credentials.identity
        status = await self._loyalty.get_offer_status(identity, offer_slug)

        if not status.found:
            log.warning("Offer not found in benefits list", offer_slug=offer_slug)
            return ClaimResult(ClaimOutcome.OFFER_NOT_FOUND, account_number=account_number)

        if status.can_claim:
            return await self._claim(credentials, now, log)

        reason = status.cannot_claim_reason or "UNKNOWN"
        log.info("Offer cannot be claimed", reason=reason)
        if reason in _RECOVERABLE_REASONS:
            return await self._recover(credentials, reason, existing, now, log)

        log.error("Unexpected cannotClaimReason", reason=reason)
        return ClaimResult(ClaimOutcome.CANNOT_CLAIM, account_number=account_number, reason=reason)

    async def _handle_fresh_state(self, credentials: AccountCredentials, state: AccountState, log: Any) -> ClaimResult:
        log.info(
            "Valid voucher already stored",
            voucher_code=state.voucher_code,
            expires_at=state.expires_at.isoformat(),
            email_sent=state.email_sent,
        )
        if state.email_sent and not self._settings.force_email_send:
            return ClaimResult(
                ClaimOutcome.SKIPPED,
                account_number=state.account_number,
                voucher_code=state.voucher_code,
                email_sent=True,
                reason="Valid voucher exists and email already sent",
            )
        return await self._mark_sent_and_notify(
            credentials,
            state.to_voucher(),
            state,
            ClaimOutcome.EMAIL_SENT,
            log,
        )

    async def _claim(self, credentials: AccountCredentials, now: datetime, log: Any) -> ClaimResult:
        identity = credentials.identity
        offer_slug = self._settings.offer_slug
        log.info("Offer is claimable, claiming", offer_slug=offer_slug)
        receipt = await self._loyalty.claim_offer(identity, offer_slug)
        log.info("Offer claimed", reward_id=receipt.reward_id)

        vouchers = await self._loyalty.get_reward_vouchers(identity, receipt.reward_id)
        if not vouchers:
            log.error("Claim succeeded but no voucher was returned", reward_id=receipt.reward_id)
            return ClaimResult(
                ClaimOutcome.CLAIM_SUCCEEDED_VOUCHER_MISSING,
                account_number=credentials.account_number,
                error=f"Claim succeeded (reward {receipt.reward_id}) but no voucher was returned",
                details={"rewardId": receipt.reward_id},
            )

        voucher = vouchers[0]
        log.info("Claimed voucher", voucher_code=voucher.code)
        state = self._build_state(credentials, voucher, now)
        result = await self._mark_sent_and_notify(credentials, voucher, state, ClaimOutcome.CLAIMED, log)
        result.details["rewardId"] = receipt.reward_id
        return result

    async def _recover(
        self,
        credentials: AccountCredentials,
        reason: str,
        existing: AccountState | None,
        now: datetime,
        log: Any,
    ) -> ClaimResult:
        account_number = credentials.account_number
        vouchers = await self._loyalty.list_claimed_vouchers(credentials.identity, self._settings.offer_slug)

        if not vouchers:
            if reason == OUT_OF_STOCK:
                in_window = is_in_claim_window(
                    now,
                    weekday=self._settings.claim_window_weekday,
                    start=self._settings.claim_window_start,
                    end=self._settings.claim_window_end,
                )
                log.info("Out of stock and no existing voucher, will retry on next schedule", in_claim_window=in_window)
                return ClaimResult(
                    ClaimOutcome.OUT_OF_STOCK,
                    account_number=account_number,
                    details={"inClaimWindow": in_window},
                )
            log.warning("Max claims reached but no voucher found for this account")
            return ClaimResult(ClaimOutcome.MAX_CLAIMS_NO_VOUCHER, account_number=account_number)

        voucher = vouchers[0]
        discarded = ClaimOutcome.OUT_OF_STOCK if reason == OUT_OF_STOCK else ClaimOutcome.VOUCHER_EXPIRED
        if not voucher.is_valid_at(now):
            log.info(
                "Fetched voucher is expired, discarding",
                voucher_code=voucher.code,
                expires_at=voucher.expires_at.isoformat() if voucher.expires_at else None,
            )
            return ClaimResult(discarded, account_number=account_number)

        # One email per voucher code, even once the stored row has aged past its period.
        if existing is not None and existing.email_sent and existing.voucher_code == voucher.code:
            log.info("Fetched voucher was already emailed, discarding", voucher_code=voucher.code)
            return ClaimResult(discarded, account_number=account_number)

        log.info(
            "Recovered existing voucher",
            voucher_code=voucher.code,
            expires_at=voucher.expires_at.isoformat() if voucher.expires_at else None,
        )
        state = self._build_state(credentials, voucher, now)
        return await self._mark_sent_and_notify(credentials, voucher, state, ClaimOutcome.RECOVERED_EXISTING, log)

    def _build_state(self, credentials: AccountCredentials, voucher: Voucher, now: datetime) -> AccountState:
        return build_account_state(
            credentials.account_number,
            voucher,
            now=now,
            ttl_days=self._settings.state_ttl_days,
            reset_weekday=self._settings.period_reset_weekday,
            reset_hour=self._settings.period_reset_hour,
        )

    async def _mark_sent_and_notify(
        self,
        credentials: AccountCredentials,
        voucher: Voucher,
        state: AccountState,
        outcome: ClaimOutcome,
        log: Any,
    ) -> ClaimResult:
        marked = state.mark_email_sent()
        persisted = True
        if not state.email_sent:
            persisted = await self._save(marked, log)

        delivered: bool | None = None
        if credentials.emails:
            delivered = await self._notify(credentials, voucher, log)
        else:
            log.info("No email configured, marked as sent")
            self._observability.record_notification_skipped()

        return ClaimResult(
            outcome,
            account_number=credentials.account_number,
            voucher_code=voucher.code,
            email_sent=marked.email_sent,
            state_persisted=persisted,
            details={"notificationDelivered": delivered},
        )

    async def _save(self, state: AccountState, log: Any) -> bool:
        try:
            await self._state_store.put(state)
        except StorageError as exc:
            log.error(
                "State write failed after voucher was obtained",
                voucher_code=state.voucher_code,
                error=str(exc),
            )
            self._observability.record_state_write(persisted=False)
            return False
        self._observability.record_state_write(persisted=True)
        return True

    async def _notify(self, credentials: AccountCredentials, voucher: Voucher, log: Any) -> bool:
        try:
            await self._notifier.send(list(credentials.emails), voucher, credentials.nickname)
        except NotificationError as exc:
            log.error("Email send failed after state marked as sent, manual check needed", error=str(exc))
            self._observability.record_notification(delivered=False)
            return False
        except Exception as exc:
            log.exception("Email send failed after state marked as sent, manual check needed", error=str(exc))
            self._observability.record_notification(delivered=False)
            return False
        self._observability.record_notification(delivered=True)
        return True


__all__ = ["ClaimReconciler", "CredentialResolver", "Notifier"]
