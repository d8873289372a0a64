"""Per-account claim state persistence."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from octoplus_claimer.domain import AccountState
from octoplus_claimer.errors import ConfigurationError, StorageError


class StateStore(Protocol):
    """Durable get/put of one :class:`AccountState` row per account number."""

    async def get(self, account_number: str) -> AccountState | None:
        """Return the stored row or ``None``; raise :class:`StorageError` on failure."""

    async def put(self, state: AccountState) -> None:
        """Overwrite the full row; raise :class:`StorageError` on failure."""


class DynamoStateStore:
    """DynamoDB table keyed by ``accountNumber``."""

    def __init__(
        self,
        table_name: str,
        *,
        region_name: str | None = None,
        table_factory: Callable[[], Any] | None = None,
    ) -> None:
        if not table_name:
            raise ConfigurationError("STATE_TABLE_NAME must be configured")
        self._table_name = table_name
        self._table_factory = table_factory or (
            lambda: boto3.resource("dynamodb", region_name=region_name).Table(table_name)
        )
        self._table: Any | None = None

    async def get(self, account_number: str) -> AccountState | None:
        table = self._get_table()
        try:
            response = await asyncio.to_thread(table.get_item, Key={"accountNumber": account_number})
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "State read failed",
                account_number=account_number,
                table=self._table_name,
                error=str(exc),
            )
            raise StorageError(f"Failed to fetch state for {account_number}: {exc}") from exc

        item = response.get("Item")
        if not item:
            logger.info("No stored state", account_number=account_number)
            return None

        try:
            state = AccountState.from_item(item)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Stored state for {account_number} is malformed: {exc}") from exc
        logger.info(
            "Loaded stored state",
            account_number=account_number,
            voucher_code=state.voucher_code,
            expires_at=state.expires_at.isoformat(),
            email_sent=state.email_sent,
        )
        return state

    async def put(self, state: AccountState) -> None:
        table = self._get_table()
        try:
            await asyncio.to_thread(table.put_item, Item=state.to_item())
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "State write failed",
                account_number=state.account_number,
                table=self._table_name,
                error=str(exc),
            )
            raise StorageError(f"Failed to save state for {state.account_number}: {exc}") from exc
        logger.info(
            "Saved state",
            account_number=state.account_number,
            voucher_code=state.voucher_code,
            email_sent=state.email_sent,
        )

    def _get_table(self) -> Any:
        if self._table is None:
            self._table = self._table_factory()
        return self._table


class InMemoryStateStore:
    """Dict-backed store for tests and dry runs."""

    def __init__(self) -> None:
        self.items: dict[str, dict[str, Any]] = {}
        self.writes: list[AccountState] = []
        self.reads: list[str] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, account_number: str) -> AccountState | None:
        self.reads.append(account_number)
        if self.fail_reads:
            raise StorageError(f"Failed to fetch state for {account_number}")
        item = self.items.get(account_number)
        return AccountState.from_item(item) if item else None

    async def put(self, state: AccountState) -> None:
        if self.fail_writes:
            raise StorageError(f"Failed to save state for {state.account_number}")
        self.items[state.account_number] = state.to_item()
        self.writes.append(state)


__all__ = ["DynamoStateStore", "InMemoryStateStore", "StateStore"]
