"""Octoplus loyalty operations: offer status, claiming and claim history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, MutableMapping, Protocol, Sequence

import httpx
from loguru import logger

from octoplus_claimer.core.settings import Settings, get_settings
from octoplus_claimer.domain import AccountIdentity, ClaimReceipt, OfferStatus, OfferSummary, Voucher
from octoplus_claimer.errors import RemoteError

from . import queries
from .graphql import OctoplusGraphQLTransport


class LoyaltyClient(Protocol):
    """Remote operations the reconciler needs from the loyalty API."""

    async def get_offer_status(self, identity: AccountIdentity, offer_slug: str) -> OfferStatus:
        ...

    async def claim_offer(self, identity: AccountIdentity, offer_slug: str) -> ClaimReceipt:
        ...

    async def list_claimed_vouchers(self, identity: AccountIdentity, offer_slug: str) -> list[Voucher]:
        ...

    async def get_reward_vouchers(self, identity: AccountIdentity, reward_id: str) -> list[Voucher]:
        ...


class OctoplusClient:
    """Kraken GraphQL implementation of :class:`LoyaltyClient`."""

    def __init__(
        self,
        transport: OctoplusGraphQLTransport,
        *,
        offer_groups_page_size: int = 50,
    ) -> None:
        self._transport = transport
        self._offer_groups_page_size = offer_groups_page_size
        self._tokens: MutableMapping[str, str] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> "OctoplusClient":
        config = settings or get_settings()
        transport = OctoplusGraphQLTransport(
            endpoint=config.octoplus_graphql_url,
            http_client=http_client,
            timeout_seconds=config.octoplus_timeout_seconds,
        )
        return cls(transport, offer_groups_page_size=config.octoplus_offer_groups_page_size)

    async def authenticate(self, identity: AccountIdentity) -> str:
        """Exchange the account API key for a Kraken token, cached for this client."""

        cached = self._tokens.get(identity.api_key)
        if cached:
            return cached

        data = await self._transport.execute(queries.obtain_token(identity.api_key))
        token = (data.get("obtainKrakenToken") or {}).get("token")
        if not isinstance(token, str) or not token:
            raise RemoteError("Authentication returned no token", operation="obtainKrakenToken")
        self._tokens[identity.api_key] = token
        return token

    async def list_offers(self, identity: AccountIdentity) -> list[OfferSummary]:
        """Return every offer visible to the account together with its claimability."""

        token = await self.authenticate(identity)
        data = await self._transport.execute(
            queries.offer_groups(identity.account_number, first=self._offer_groups_page_size),
            token=token,
        )
        groups = data.get("octoplusOfferGroups")
        if not isinstance(groups, Mapping):
            raise RemoteError("Offer groups missing from response", operation="getPartnerOfferGroups")

        offers: list[OfferSummary] = []
        for edge in groups.get("edges") or []:
            node = (edge or {}).get("node") or {}
            for offer in node.get("octoplusOffers") or []:
                summary = _parse_offer(offer)
                if summary is not None:
                    offers.append(summary)
        return offers

    async def get_offer_status(self, identity: AccountIdentity, offer_slug: str) -> OfferStatus:
        offers = await self.list_offers(identity)
        for offer in offers:
            if offer.slug == offer_slug:
                return OfferStatus(
                    found=True,
                    can_claim=offer.can_claim,
                    cannot_claim_reason=None if offer.can_claim else offer.cannot_claim_reason,
                )
        logger.info(
            "Offer not present in Octoplus catalog",
            account_number=identity.account_number,
            offer_slug=offer_slug,
            offers_seen=len(offers),
        )
        return OfferStatus.not_found()

    async def claim_offer(self, identity: AccountIdentity, offer_slug: str) -> ClaimReceipt:
        token = await self.authenticate(identity)
        data = await self._transport.execute(
            queries.claim_reward(identity.account_number, offer_slug),
            token=token,
        )
        reward_id = (data.get("claimOctoplusReward") or {}).get("rewardId")
        if reward_id in (None, ""):
            raise RemoteError("Claim returned no reward id", operation="claimOctoplusReward")
        return ClaimReceipt(reward_id=str(reward_id))

    async def list_claimed_vouchers(self, identity: AccountIdentity, offer_slug: str) -> list[Voucher]:
        """Vouchers claimed for ``offer_slug``, most recent reward first."""

        token = await self.authenticate(identity)
        data = await self._transport.execute(queries.claimed_rewards(identity.account_number), token=token)
        rewards = data.get("octoplusRewards")
        if rewards is None:
            return []
        if not isinstance(rewards, list):
            raise RemoteError("Claimed rewards payload is not a list", operation="getOctoplusRewards")

        matching = [
            reward
            for reward in rewards
            if isinstance(reward, Mapping) and ((reward.get("offer") or {}).get("slug") == offer_slug)
        ]
        matching.sort(key=_reward_sort_key, reverse=True)
        return list(_iter_vouchers(matching, default_account_number=identity.account_number))

    async def get_reward_vouchers(self, identity: AccountIdentity, reward_id: str) -> list[Voucher]:
        """Vouchers attached to one claimed reward; empty while the reward has none yet."""

        token = await self.authenticate(identity)
        data = await self._transport.execute(queries.reward_by_id(reward_id), token=token)
        rewards = data.get("octoplusRewards")
        if rewards is None:
            return []
        if not isinstance(rewards, list):
            raise RemoteError("Reward payload is not a list", operation="getOctoplusRewardsById")

        matching = [
            reward
            for reward in rewards
            if isinstance(reward, Mapping) and str(reward.get("id")) == reward_id
        ]
        return list(_iter_vouchers(matching, default_account_number=identity.account_number))

    async def aclose(self) -> None:
        await self._transport.aclose()


def _parse_offer(payload: Any) -> OfferSummary | None:
    if not isinstance(payload, Mapping):
        return None
    slug = payload.get("slug")
    if not isinstance(slug, str):
        return None
    ability = payload.get("claimAbility") or {}
    return OfferSummary(
        slug=slug,
        name=str(payload.get("name") or slug),
        can_claim=bool(ability.get("canClaimOffer")),
        cannot_claim_reason=ability.get("cannotClaimReason") or None,
        claim_by=payload.get("claimBy"),
    )


def _reward_sort_key(reward: Mapping[str, Any]) -> int:
    try:
        return int(reward.get("id") or 0)
    except (TypeError, ValueError):
        return 0


def _iter_vouchers(
    rewards: Sequence[Mapping[str, Any]],
    *,
    default_account_number: str,
) -> Iterable[Voucher]:
    for reward in rewards:
        account_number = str(reward.get("accountNumber") or default_account_number)
        reward_id = reward.get("id")
        for voucher in reward.get("vouchers") or []:
            if not isinstance(voucher, Mapping):
                continue
            code = voucher.get("code")
            if not code:
                continue
            yield Voucher(
                code=str(code),
                barcode=str(voucher.get("barcodeValue") or code),
                account_number=account_number,
                expires_at=parse_timestamp(voucher.get("expiresAt")),
                reward_id=str(reward_id) if reward_id is not None else None,
            )


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 API timestamp into an aware UTC datetime."""

    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Unparseable voucher expiry", expires_at=value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = ["LoyaltyClient", "OctoplusClient", "parse_timestamp"]
