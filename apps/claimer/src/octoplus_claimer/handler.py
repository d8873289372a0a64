"""Scheduled invocation entry point: one event, one account, one reconciliation."""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Mapping
from uuid import uuid4

from loguru import logger

from octoplus_claimer.core.logging import configure_logging
from octoplus_claimer.core.settings import Settings, get_settings
from octoplus_claimer.domain import ClaimOutcome, ClaimResult
from octoplus_claimer.errors import ConfigurationError, RemoteError, StorageError
from octoplus_claimer.observability.claims import ClaimObservabilityStore, get_claim_store
from octoplus_claimer.services.claims import ClaimReconciler, CredentialResolver, Notifier
from octoplus_claimer.services.notifications import VoucherNotifier, build_email_backend
from octoplus_claimer.services.octoplus import LoyaltyClient, OctoplusClient
from octoplus_claimer.services.secrets.accounts import build_default_credentials_provider
from octoplus_claimer.services.state import DynamoStateStore, StateStore


@lru_cache(maxsize=1)
def _configure_logging_once() -> None:
    config = get_settings()
    configure_logging(
        service_name=config.service_name,
        environment=config.environment,
        version=config.service_version,
    )


def build_reconciler(
    settings: Settings | None = None,
    *,
    loyalty: LoyaltyClient,
    credentials: CredentialResolver | None = None,
    state_store: StateStore | None = None,
    notifier: Notifier | None = None,
) -> ClaimReconciler:
    """Wire a reconciler against the configured AWS adapters.

    The loyalty client is always supplied by the caller because it owns an HTTP
    connection pool bound to the running event loop.
    """

    config = settings or get_settings()
    return ClaimReconciler(
        credentials=credentials or build_default_credentials_provider(),
        loyalty=loyalty,
        state_store=state_store or DynamoStateStore(config.state_table_name, region_name=config.aws_region),
        notifier=notifier or VoucherNotifier(build_email_backend(config)),
        settings=config,
    )


def _extract_account_id(event: Any) -> str:
    if not isinstance(event, Mapping):
        return ""
    value = event.get("accountNumber")
    if value is None:
        return ""
    return str(value).strip()


def _isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_response(
    result: ClaimResult,
    *,
    account_id: str,
    request_id: str,
    execution_ms: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Map a claim result onto the ``{statusCode, body}`` invocation payload."""

    outcome = result.outcome
    body: dict[str, Any] = {
        "success": result.success,
        "action": outcome.value,
        "accountNumber": result.account_number or account_id or None,
        "retryable": outcome.retryable,
    }
    optional = {
        "voucherCode": result.voucher_code,
        "emailSent": result.email_sent,
        "statePersisted": result.state_persisted,
        "reason": result.reason,
        "error": result.error,
    }
    body.update({key: value for key, value in optional.items() if value is not None})
    for key, value in result.details.items():
        body.setdefault(key, value)
    body["executionTime"] = f"{execution_ms}ms"
    body["timestamp"] = _isoformat(now or datetime.now(timezone.utc))
    body["requestId"] = request_id

    status_code = 500 if outcome.is_execution_failure else 200
    return {"statusCode": status_code, "body": json.dumps(body, default=str)}


async def invoke(
    event: Any,
    *,
    request_id: str,
    settings: Settings | None = None,
    reconciler: ClaimReconciler | None = None,
    observability: ClaimObservabilityStore | None = None,
) -> dict[str, Any]:
    """Run one reconciliation for the account named in ``event``.

    Every failure is converted into a terminal outcome so the caller always gets
    a response; ``retryable`` in the body tells the scheduler whether another
    attempt in this claim window is worthwhile.
    """

    started = time.perf_counter()
    store = observability or get_claim_store()
    account_id = _extract_account_id(event)
    log = logger.bind(account_id=account_id or None, request_id=request_id)
    log.info("Claim invocation started")

    loyalty_client: OctoplusClient | None = None
    try:
        if not account_id:
            raise ConfigurationError("Event is missing accountNumber")
        if reconciler is None:
            config = settings or get_settings()
            loyalty_client = OctoplusClient.from_settings(config)
            reconciler = build_reconciler(config, loyalty=loyalty_client)
        result = await reconciler.reconcile(account_id, request_id=request_id)
    except ConfigurationError as exc:
        log.error("Claim invocation failed: configuration error", error=str(exc))
        result = ClaimResult(ClaimOutcome.CONFIGURATION_ERROR, error=str(exc))
    except RemoteError as exc:
        log.error(
            "Claim invocation failed: Octoplus API error",
            error=str(exc),
            operation=exc.operation,
            status_code=exc.status_code,
        )
        result = ClaimResult(ClaimOutcome.REMOTE_ERROR, error=str(exc))
    except StorageError as exc:
        log.error("Claim invocation failed: state store error", error=str(exc))
        result = ClaimResult(ClaimOutcome.STORAGE_ERROR, error=str(exc))
    except Exception as exc:
        log.exception("Claim invocation failed unexpectedly", error=str(exc))
        result = ClaimResult(ClaimOutcome.ERROR, error=str(exc) or exc.__class__.__name__)
    finally:
        if loyalty_client is not None:
            await loyalty_client.aclose()

    store.record_outcome(result.outcome.value)
    execution_ms = int((time.perf_counter() - started) * 1000)
    response = build_response(result, account_id=account_id, request_id=request_id, execution_ms=execution_ms)
    log.bind(action=result.outcome.value, status_code=response["statusCode"]).info(
        "Claim invocation finished",
        execution_ms=execution_ms,
    )
    return response


def handler(event: Any, context: Any = None) -> dict[str, Any]:
    """Synchronous entry point for the scheduled runtime."""

    _configure_logging_once()
    request_id = getattr(context, "aws_request_id", None) or str(uuid4())
    return asyncio.run(invoke(event, request_id=request_id))


__all__ = ["build_reconciler", "build_response", "handler", "invoke"]
