import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from octoplus_claimer.core.settings import Settings  # noqa: E402
from octoplus_claimer.domain import ClaimReceipt, OfferStatus  # noqa: E402
from octoplus_claimer.observability.claims import ClaimObservabilityStore  # noqa: E402
from octoplus_claimer.services.claims import ClaimReconciler  # noqa: E402
from octoplus_claimer.services.notifications import InMemoryEmailBackend, VoucherNotifier  # noqa: E402
from octoplus_claimer.services.secrets.accounts import (  # noqa: E402
    AccountCredentialsProvider,
    CredentialCache,
    InMemoryParameterSource,
)
from octoplus_claimer.services.state import InMemoryStateStore  # noqa: E402

ACCOUNT_ID = "1"
ACCOUNT_NUMBER = "A-1B2C3D4E"
API_KEY = "sk_live_abcdefghijklmnop1234"
RECIPIENTS = ["ops@example.com", "barista-fan@example.com"]

# Monday 10 March 2025, inside the 05:00-06:30 UTC release window.
NOW = datetime(2025, 3, 10, 5, 30, tzinfo=timezone.utc)
NEXT_RESET = datetime(2025, 3, 17, 0, 0, tzinfo=timezone.utc)


def account_config(**overrides) -> str:
    config = {
        "apiKey": API_KEY,
        "accountNumber": ACCOUNT_NUMBER,
        "nickname": "Home",
        "emails": list(RECIPIENTS),
    }
    config.update(overrides)
    return json.dumps(config)


class StubLoyaltyClient:
    """Scripted loyalty API recording every call."""

    def __init__(
        self,
        *,
        status: OfferStatus | None = None,
        vouchers=None,
        reward_id: str = "4242",
        error: Exception | None = None,
    ) -> None:
        self.status = status or OfferStatus(found=True, can_claim=True)
        self.vouchers = list(vouchers or [])
        self.reward_id = reward_id
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def get_offer_status(self, identity, offer_slug):
        self.calls.append(("get_offer_status", offer_slug))
        if self.error is not None:
            raise self.error
        return self.status

    async def claim_offer(self, identity, offer_slug):
        self.calls.append(("claim_offer", offer_slug))
        return ClaimReceipt(reward_id=self.reward_id)

    async def list_claimed_vouchers(self, identity, offer_slug):
        self.calls.append(("list_claimed_vouchers", offer_slug))
        return list(self.vouchers)

    async def get_reward_vouchers(self, identity, reward_id):
        self.calls.append(("get_reward_vouchers", reward_id))
        return [voucher for voucher in self.vouchers if voucher.reward_id == reward_id]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stage="test",
        state_table_name="octoplus-claims-test",
        email_backend="memory",
        force_email_send=False,
    )


@pytest.fixture
def parameter_source() -> InMemoryParameterSource:
    return InMemoryParameterSource({f"/octoplus/test/account-{ACCOUNT_ID}/config": account_config()})


@pytest.fixture
def credentials_provider(parameter_source, settings) -> AccountCredentialsProvider:
    return AccountCredentialsProvider(
        parameter_source,
        path_prefix=settings.resolved_ssm_path_prefix,
        cache=CredentialCache(ttl=timedelta(seconds=settings.credential_cache_ttl_seconds)),
    )


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def email_backend() -> InMemoryEmailBackend:
    return InMemoryEmailBackend()


@pytest.fixture
def claim_store() -> ClaimObservabilityStore:
    return ClaimObservabilityStore()


@pytest.fixture
def make_reconciler(credentials_provider, state_store, email_backend, settings, claim_store):
    def _factory(loyalty, *, backend=None, config: Settings | None = None, notifier=None) -> ClaimReconciler:
        return ClaimReconciler(
            credentials=credentials_provider,
            loyalty=loyalty,
            state_store=state_store,
            notifier=notifier or VoucherNotifier(backend or email_backend, clock=lambda: NOW),
            settings=config or settings,
            clock=lambda: NOW,
            observability=claim_store,
        )

    return _factory
