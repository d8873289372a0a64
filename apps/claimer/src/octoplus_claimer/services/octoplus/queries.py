"""GraphQL documents used against the Octopus Energy Kraken API."""

from __future__ import annotations

from .graphql import GraphQLRequest

OBTAIN_TOKEN_MUTATION = """
mutation obtainKrakenToken($apiKey: String!) {
    obtainKrakenToken(input: {APIKey: $apiKey}) {
        token
    }
}
"""

OFFER_GROUPS_QUERY = """
query getPartnerOfferGroups($accountNumber: String!, $first: Int!) {
    octoplusOfferGroups(accountNumber: $accountNumber, first: $first) {
        edges {
            node {
                octoplusOffers {
                    slug
                    name
                    claimAbility {
                        canClaimOffer
                        cannotClaimReason
                    }
                    claimBy
                }
            }
        }
    }
}
"""

CLAIM_REWARD_MUTATION = """
mutation claimOctoplusReward($accountNumber: String!, $offerSlug: String!) {
    claimOctoplusReward(accountNumber: $accountNumber, offerSlug: $offerSlug) {
        rewardId
    }
}
"""

CLAIMED_REWARDS_QUERY = """
query getOctoplusRewards($accountNumber: String!) {
    octoplusRewards(accountNumber: $accountNumber) {
        id
        accountNumber
        status
        vouchers {
            ... on OctoplusVoucherType {
                code
                barcodeValue
                barcodeFormat
                expiresAt
                type
            }
        }
        offer {
            slug
            name
        }
    }
}
"""


REWARD_BY_ID_QUERY = """
query getOctoplusRewardsById($rewardId: Int) {
    octoplusRewards(rewardId: $rewardId) {
        id
        accountNumber
        status
        vouchers {
            ... on OctoplusVoucherType {
                code
                barcodeValue
                barcodeFormat
                expiresAt
                type
            }
        }
        offer {
            slug
            name
        }
    }
}
"""


def obtain_token(api_key: str) -> GraphQLRequest:
    return GraphQLRequest(
        operation_name="obtainKrakenToken",
        query=OBTAIN_TOKEN_MUTATION,
        variables={"apiKey": api_key},
    )


def offer_groups(account_number: str, *, first: int) -> GraphQLRequest:
    return GraphQLRequest(
        operation_name="getPartnerOfferGroups",
        query=OFFER_GROUPS_QUERY,
        variables={"accountNumber": account_number, "first": first},
    )


def claim_reward(account_number: str, offer_slug: str) -> GraphQLRequest:
    return GraphQLRequest(
        operation_name="claimOctoplusReward",
        query=CLAIM_REWARD_MUTATION,
        variables={"accountNumber": account_number, "offerSlug": offer_slug},
    )


def claimed_rewards(account_number: str) -> GraphQLRequest:
    return GraphQLRequest(
        operation_name="getOctoplusRewards",
        query=CLAIMED_REWARDS_QUERY,
        variables={"accountNumber": account_number},
    )


def reward_by_id(reward_id: str) -> GraphQLRequest:
    return GraphQLRequest(
        operation_name="getOctoplusRewardsById",
        query=REWARD_BY_ID_QUERY,
        variables={"rewardId": int(reward_id) if reward_id.isdigit() else reward_id},
    )


__all__ = [
    "claim_reward",
    "claimed_rewards",
    "reward_by_id",
    "obtain_token",
    "offer_groups",
]
