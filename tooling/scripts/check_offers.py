#!/usr/bin/env python3
"""List every Octoplus offer visible to one account, grouped by claimability.

Example:
    python tooling/scripts/check_offers.py --account 1
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

ALREADY_CLAIMED = "MAX_CLAIMS_PER_PERIOD_REACHED"
OUT_OF_STOCK = "OUT_OF_STOCK"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show current Octoplus offers for an account")
    parser.add_argument("--account", required=True, help="Account id configured in Parameter Store.")
    return parser.parse_args()


def _print_group(title: str, offers: list, *, show_reason: bool = False) -> None:
    print(f"\n=== {title} ({len(offers)}) ===")
    for offer in offers:
        print(f"- {offer.name} ({offer.slug})")
        if show_reason:
            print(f"  Reason: {offer.cannot_claim_reason}")
        if offer.claim_by:
            print(f"  Claim by: {offer.claim_by}")


async def _run(account_id: str) -> int:
    repo_root = Path(__file__).resolve().parents[2]
    claimer_src = repo_root / "apps" / "claimer" / "src"
    if str(claimer_src) not in sys.path:
        sys.path.insert(0, str(claimer_src))

    from octoplus_claimer.services.octoplus import OctoplusClient  # type: ignore import-position
    from octoplus_claimer.services.secrets.accounts import (  # type: ignore import-position
        build_default_credentials_provider,
    )

    credentials = await build_default_credentials_provider().resolve(account_id)
    client = OctoplusClient.from_settings()
    try:
        offers = await client.list_offers(credentials.identity)
    finally:
        await client.aclose()

    claimable = [offer for offer in offers if offer.can_claim]
    already_claimed = [offer for offer in offers if offer.cannot_claim_reason == ALREADY_CLAIMED]
    out_of_stock = [offer for offer in offers if offer.cannot_claim_reason == OUT_OF_STOCK]
    not_yet_available = [
        offer
        for offer in offers
        if offer.cannot_claim_reason and offer.cannot_claim_reason not in (ALREADY_CLAIMED, OUT_OF_STOCK)
    ]
    reasons = sorted({offer.cannot_claim_reason for offer in offers if offer.cannot_claim_reason})

    print(f"Found {len(offers)} offers for {credentials.account_number}")
    print(f"cannotClaimReason values: {', '.join(reasons) or 'none'}")
    _print_group("NOT YET AVAILABLE", not_yet_available, show_reason=True)
    _print_group("CLAIMABLE NOW", claimable)
    _print_group("ALREADY CLAIMED THIS PERIOD", already_claimed)
    _print_group("OUT OF STOCK", out_of_stock)
    return len(offers)


def main() -> int:
    args = parse_args()
    count = asyncio.run(_run(args.account))
    logger.success("Offer check completed", account_id=args.account, offers=count)
    return 0


if __name__ == "__main__":
    sys.exit(main())
