from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import ClientError
from pydantic import ValidationError

from conftest import ACCOUNT_NUMBER, NEXT_RESET, NOW
from octoplus_claimer.core.settings import Settings
from octoplus_claimer.domain import AccountState, Voucher
from octoplus_claimer.errors import ConfigurationError, StorageError
from octoplus_claimer.services.state import (
    DynamoStateStore,
    InMemoryStateStore,
    build_account_state,
    housekeeping_ttl,
    is_in_claim_window,
    next_period_boundary,
)


class StubTable:
    def __init__(self, *, item: dict | None = None, error_code: str | None = None) -> None:
        self.item = item
        self.error_code = error_code
        self.get_requests: list[dict] = []
        self.put_requests: list[dict] = []

    def get_item(self, **kwargs):
        self.get_requests.append(kwargs)
        if self.error_code:
            raise ClientError({"Error": {"Code": self.error_code, "Message": "nope"}}, "GetItem")
        return {"Item": self.item} if self.item is not None else {}

    def put_item(self, **kwargs):
        if self.error_code:
            raise ClientError({"Error": {"Code": self.error_code, "Message": "nope"}}, "PutItem")
        self.put_requests.append(kwargs)
        return {}


def _state() -> AccountState:
    voucher = Voucher(code="ABC123", barcode="999888777", account_number=ACCOUNT_NUMBER)
    return build_account_state(ACCOUNT_NUMBER, voucher, now=NOW)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (NOW, NEXT_RESET),
        (datetime(2025, 3, 16, 23, 59, tzinfo=timezone.utc), datetime(2025, 3, 17, tzinfo=timezone.utc)),
        (datetime(2025, 3, 10, 0, 0, tzinfo=timezone.utc), datetime(2025, 3, 17, tzinfo=timezone.utc)),
        (datetime(2025, 3, 12, 18, 0, tzinfo=timezone.utc), datetime(2025, 3, 17, tzinfo=timezone.utc)),
    ],
)
def test_next_period_boundary_is_strictly_after_now(now, expected) -> None:
    assert next_period_boundary(now) == expected


def test_next_period_boundary_honours_custom_reset() -> None:
    boundary = next_period_boundary(NOW, weekday=2, hour=6)

    assert boundary == datetime(2025, 3, 12, 6, 0, tzinfo=timezone.utc)


def test_next_period_boundary_treats_naive_times_as_utc() -> None:
    assert next_period_boundary(datetime(2025, 3, 10, 5, 30)) == NEXT_RESET


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (datetime(2025, 3, 10, 5, 0, tzinfo=timezone.utc), True),
        (datetime(2025, 3, 10, 6, 30, tzinfo=timezone.utc), True),
        (datetime(2025, 3, 10, 4, 59, tzinfo=timezone.utc), False),
        (datetime(2025, 3, 10, 6, 31, tzinfo=timezone.utc), False),
        (datetime(2025, 3, 11, 5, 30, tzinfo=timezone.utc), False),
    ],
)
def test_claim_window(now, expected) -> None:
    assert is_in_claim_window(now) is expected


def test_build_account_state_sets_period_expiry_and_housekeeping_ttl() -> None:
    claimed = NOW + timedelta(microseconds=123456)
    voucher = Voucher(code="ABC123", barcode="999888777", account_number="A-OTHER000")

    state = build_account_state(ACCOUNT_NUMBER, voucher, now=claimed, ttl_days=10)

    assert state.account_number == ACCOUNT_NUMBER
    assert state.claimed_at == NOW + timedelta(microseconds=123000)
    assert state.expires_at == NEXT_RESET
    assert state.expires_at > state.claimed_at
    assert state.email_sent is False
    assert state.ttl == housekeeping_ttl(NOW, days=10) == int(NOW.timestamp()) + 10 * 86400


def test_account_state_item_uses_epoch_milliseconds() -> None:
    item = _state().to_item()

    assert item == {
        "accountNumber": ACCOUNT_NUMBER,
        "voucherCode": "ABC123",
        "barcode": "999888777",
        "expiresAt": int(NEXT_RESET.timestamp() * 1000),
        "claimedAt": int(NOW.timestamp() * 1000),
        "emailSent": False,
        "ttl": int(NOW.timestamp()) + 30 * 86400,
    }


def test_mark_email_sent_keeps_voucher() -> None:
    state = _state()
    marked = state.mark_email_sent()

    assert marked.email_sent is True
    assert marked.voucher_code == state.voucher_code
    assert state.email_sent is False


@pytest.mark.asyncio
async def test_dynamo_store_reads_item_by_account_number() -> None:
    item = _state().mark_email_sent().to_item()
    table = StubTable(item=item)
    store = DynamoStateStore("claims", table_factory=lambda: table)

    state = await store.get(ACCOUNT_NUMBER)

    assert table.get_requests == [{"Key": {"accountNumber": ACCOUNT_NUMBER}}]
    assert state is not None
    assert state.voucher_code == "ABC123"
    assert state.email_sent is True
    assert state.expires_at == NEXT_RESET


@pytest.mark.asyncio
async def test_dynamo_store_returns_none_for_unknown_account() -> None:
    store = DynamoStateStore("claims", table_factory=lambda: StubTable())

    assert await store.get(ACCOUNT_NUMBER) is None


@pytest.mark.asyncio
async def test_dynamo_store_overwrites_full_row() -> None:
    table = StubTable()
    store = DynamoStateStore("claims", table_factory=lambda: table)
    state = _state()

    await store.put(state)

    assert table.put_requests == [{"Item": state.to_item()}]


@pytest.mark.asyncio
async def test_dynamo_store_wraps_client_errors() -> None:
    store = DynamoStateStore("claims", table_factory=lambda: StubTable(error_code="ProvisionedThroughputExceededException"))

    with pytest.raises(StorageError, match="Failed to fetch state"):
        await store.get(ACCOUNT_NUMBER)
    with pytest.raises(StorageError, match="Failed to save state"):
        await store.put(_state())


@pytest.mark.asyncio
async def test_dynamo_store_rejects_malformed_item() -> None:
    store = DynamoStateStore("claims", table_factory=lambda: StubTable(item={"voucherCode": "ABC123"}))

    with pytest.raises(StorageError, match="malformed"):
        await store.get(ACCOUNT_NUMBER)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes",
    [
        {"voucherCode": ""},
        {"barcode": None},
        {"voucherCode": None, "barcode": ""},
    ],
)
async def test_dynamo_store_rejects_row_without_voucher(changes) -> None:
    item = {**_state().to_item(), **changes}
    store = DynamoStateStore("claims", table_factory=lambda: StubTable(item=item))

    with pytest.raises(StorageError, match="malformed"):
        await store.get(ACCOUNT_NUMBER)


@pytest.mark.asyncio
async def test_dynamo_store_rejects_row_missing_barcode() -> None:
    item = _state().to_item()
    del item["barcode"]
    store = DynamoStateStore("claims", table_factory=lambda: StubTable(item=item))

    with pytest.raises(StorageError, match="malformed"):
        await store.get(ACCOUNT_NUMBER)


def test_stored_state_voucher_keeps_expiry() -> None:
    voucher = _state().to_voucher()

    assert voucher.code == "ABC123"
    assert voucher.expires_at == NEXT_RESET


def test_dynamo_store_requires_table_name() -> None:
    with pytest.raises(ConfigurationError):
        DynamoStateStore("")


@pytest.mark.asyncio
async def test_in_memory_store_failure_switches() -> None:
    store = InMemoryStateStore()
    await store.put(_state())
    assert (await store.get(ACCOUNT_NUMBER)).voucher_code == "ABC123"

    store.fail_reads = True
    store.fail_writes = True
    with pytest.raises(StorageError):
        await store.get(ACCOUNT_NUMBER)
    with pytest.raises(StorageError):
        await store.put(_state())
    assert len(store.writes) == 1


@pytest.mark.parametrize("value", ["5am", "24:00", "05:60", "0530"])
def test_settings_reject_bad_claim_window_bounds(value) -> None:
    with pytest.raises(ValidationError):
        Settings(claim_window_start=value)
