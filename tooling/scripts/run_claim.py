#!/usr/bin/env python3
"""Run the voucher claimer locally for one or more configured accounts.

Each account id is processed as its own invocation, exactly as the scheduler
would fire them, and the invocation response is printed.

Example:
    python tooling/scripts/run_claim.py --account 1 --account 2

Use `--dry-run` to capture voucher emails with the in-memory backend instead of
sending them, and `--memory-state` to skip the DynamoDB table entirely.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from uuid import uuid4

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Claim the weekly Octoplus voucher for configured accounts")
    parser.add_argument(
        "--account",
        dest="accounts",
        action="append",
        required=True,
        help="Account id configured in Parameter Store (repeatable).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use the in-memory email backend instead of real delivery.",
    )
    parser.add_argument(
        "--memory-state",
        action="store_true",
        help="Keep claim state in memory for this run instead of DynamoDB.",
    )
    return parser.parse_args()


async def _run(accounts: list[str], *, dry_run: bool, memory_state: bool) -> list[dict]:
    repo_root = Path(__file__).resolve().parents[2]
    claimer_src = repo_root / "apps" / "claimer" / "src"
    if str(claimer_src) not in sys.path:
        sys.path.insert(0, str(claimer_src))

    from octoplus_claimer.core.settings import get_settings  # type: ignore import-position
    from octoplus_claimer.errors import ConfigurationError  # type: ignore import-position
    from octoplus_claimer.handler import build_reconciler, invoke  # type: ignore import-position
    from octoplus_claimer.services.notifications import (  # type: ignore import-position
        InMemoryEmailBackend,
        VoucherNotifier,
    )
    from octoplus_claimer.services.octoplus import OctoplusClient  # type: ignore import-position
    from octoplus_claimer.services.state import InMemoryStateStore  # type: ignore import-position

    settings = get_settings()
    notifier = VoucherNotifier(InMemoryEmailBackend()) if dry_run else None
    state_store = InMemoryStateStore() if memory_state else None

    responses: list[dict] = []
    loyalty = OctoplusClient.from_settings(settings)
    try:
        try:
            reconciler = build_reconciler(
                settings,
                loyalty=loyalty,
                state_store=state_store,
                notifier=notifier,
            )
        except ConfigurationError as exc:
            logger.error("Claimer is not configured", error=str(exc))
            return responses
        for account_id in accounts:
            response = await invoke({"accountNumber": account_id}, request_id=f"local-{uuid4()}", reconciler=reconciler)
            responses.append(response)
            print(json.dumps({"statusCode": response["statusCode"], **json.loads(response["body"])}, indent=2))
    finally:
        await loyalty.aclose()
    return responses


def main() -> int:
    args = parse_args()
    responses = asyncio.run(_run(args.accounts, dry_run=args.dry_run, memory_state=args.memory_state))
    if not responses:
        return 2
    failures = sum(1 for response in responses if response["statusCode"] != 200)
    logger.success(
        "Claim run completed",
        accounts=len(responses),
        failures=failures,
        dry_run=args.dry_run,
    )
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
