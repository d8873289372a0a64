"""Octoplus loyalty API client package."""

from .client import LoyaltyClient, OctoplusClient
from .graphql import GraphQLRequest, OctoplusGraphQLTransport

__all__ = [
    "GraphQLRequest",
    "LoyaltyClient",
    "OctoplusClient",
    "OctoplusGraphQLTransport",
]
