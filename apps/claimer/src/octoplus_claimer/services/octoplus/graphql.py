"""Transport for the Octopus Energy GraphQL endpoint."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, MutableMapping

import httpx
from loguru import logger

from octoplus_claimer.errors import RemoteError


@dataclass(frozen=True, slots=True)
class GraphQLRequest:
    """A single GraphQL operation, as posted to the API."""

    operation_name: str
    query: str
    variables: Mapping[str, Any] = field(default_factory=dict)

    def as_payload(self) -> dict[str, Any]:
        return {
            "operationName": self.operation_name,
            "variables": dict(self.variables),
            "query": self.query,
        }


class OctoplusGraphQLTransport:
    """Posts GraphQL requests and unwraps the ``data`` envelope."""

    def __init__(
        self,
        *,
        endpoint: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        if not endpoint:
            raise ValueError("Octoplus GraphQL endpoint must be configured")
        self._endpoint = endpoint
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = http_client is None

    async def execute(self, request: GraphQLRequest, *, token: str | None = None) -> Mapping[str, Any]:
        """Execute ``request`` and return its ``data`` mapping.

        Any transport failure, non-2xx status or non-empty ``errors`` array is
        raised as :class:`RemoteError`.
        """

        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = token

        try:
            response = await self._client.post(self._endpoint, json=request.as_payload(), headers=headers)
        except httpx.HTTPError as exc:
            logger.warning(
                "Octoplus request failed",
                operation=request.operation_name,
                error=str(exc),
            )
            raise RemoteError(
                f"{request.operation_name} request failed: {exc}",
                operation=request.operation_name,
            ) from exc

        body = _parse_body(response, request.operation_name)
        if response.status_code < 200 or response.status_code >= 300:
            raise RemoteError(
                f"{request.operation_name} returned HTTP {response.status_code}: {json.dumps(body, default=str)}",
                operation=request.operation_name,
                status_code=response.status_code,
            )

        errors = body.get("errors")
        if errors:
            raise RemoteError(
                f"{request.operation_name} returned GraphQL errors: {json.dumps(errors, default=str)}",
                operation=request.operation_name,
                status_code=response.status_code,
            )

        data = body.get("data")
        if not isinstance(data, Mapping):
            raise RemoteError(
                f"{request.operation_name} returned no data",
                operation=request.operation_name,
                status_code=response.status_code,
            )
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _parse_body(response: httpx.Response, operation: str) -> MutableMapping[str, Any]:
    try:
        parsed = response.json()
    except ValueError as exc:
        raise RemoteError(
            f"{operation} returned a non-JSON body (HTTP {response.status_code})",
            operation=operation,
            status_code=response.status_code,
        ) from exc
    if not isinstance(parsed, dict):
        raise RemoteError(
            f"{operation} returned an unexpected payload shape",
            operation=operation,
            status_code=response.status_code,
        )
    return parsed


__all__ = ["GraphQLRequest", "OctoplusGraphQLTransport"]
