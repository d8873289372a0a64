"""Account credential resolution from SSM Parameter Store."""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Mapping, MutableMapping, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from octoplus_claimer.core.logging import mask_secret
from octoplus_claimer.core.settings import Settings, get_settings
from octoplus_claimer.domain import AccountCredentials, AccountIdentity
from octoplus_claimer.errors import ConfigurationError

ACCOUNT_NUMBER_PATTERN = re.compile(r"^A-[A-Z0-9]{8}$")
API_KEY_PREFIX = "sk_"
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParameterSource(Protocol):
    """Key-value store holding one JSON config document per account."""

    async def fetch(self, name: str) -> str | None:
        """Return the raw parameter value or ``None`` when it does not exist."""


class SsmParameterSource:
    """Reads SecureString parameters through boto3."""

    def __init__(self, client_factory: Callable[[], Any] | None = None, *, region_name: str | None = None) -> None:
        self._client_factory = client_factory or (lambda: boto3.client("ssm", region_name=region_name))
        self._client: Any | None = None

    async def fetch(self, name: str) -> str | None:
        client = self._get_client()
        try:
            response = await asyncio.to_thread(client.get_parameter, Name=name, WithDecryption=True)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ParameterNotFound":
                return None
            raise ConfigurationError(f"Failed to fetch SSM parameter {name} ({code})") from exc
        except BotoCoreError as exc:
            raise ConfigurationError(f"Failed to fetch SSM parameter {name} ({exc})") from exc
        return (response.get("Parameter") or {}).get("Value")

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory()
        return self._client


class InMemoryParameterSource:
    """Parameter source backed by a dict, for tests and local runs."""

    def __init__(self, parameters: Mapping[str, str] | None = None) -> None:
        self.parameters: dict[str, str] = dict(parameters or {})
        self.calls: list[str] = []

    async def fetch(self, name: str) -> str | None:
        self.calls.append(name)
        return self.parameters.get(name)


@dataclass(slots=True)
class _CacheEntry:
    credentials: AccountCredentials
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class CredentialCache:
    """TTL-bounded cache of resolved credentials keyed by account id."""

    def __init__(self, *, ttl: timedelta, clock: Clock = _utcnow) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: MutableMapping[str, _CacheEntry] = {}

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, account_id: str) -> AccountCredentials | None:
        entry = self._entries.get(account_id)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            self._entries.pop(account_id, None)
            return None
        return entry.credentials

    def put(self, account_id: str, credentials: AccountCredentials) -> None:
        self._entries[account_id] = _CacheEntry(credentials=credentials, expires_at=self._clock() + self._ttl)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class AccountCredentialsProvider:
    """Resolves an account id to validated Octoplus credentials."""

    def __init__(
        self,
        source: ParameterSource,
        *,
        path_prefix: str,
        cache: CredentialCache | None = None,
    ) -> None:
        self._source = source
        self._path_prefix = path_prefix.rstrip("/")
        if cache is None:
            cache = CredentialCache(ttl=timedelta(seconds=get_settings().credential_cache_ttl_seconds))
        self._cache = cache

    @property
    def cache(self) -> CredentialCache:
        return self._cache

    def parameter_name(self, account_id: str) -> str:
        return f"{self._path_prefix}/account-{account_id}/config"

    async def resolve(self, account_id: str) -> AccountCredentials:
        if not account_id or not str(account_id).strip():
            raise ConfigurationError("Account identifier is required")
        account_id = str(account_id).strip()

        cached = self._cache.get(account_id)
        if cached is not None:
            logger.debug("Using cached credentials", account_id=account_id)
            return cached

        name = self.parameter_name(account_id)
        raw = await self._source.fetch(name)
        if not raw:
            raise ConfigurationError(f"Config parameter {name} not found or empty")

        credentials = parse_account_config(account_id, raw)
        self._cache.put(account_id, credentials)
        logger.info(
            "Resolved account credentials",
            account_id=account_id,
            account_number=credentials.account_number,
            api_key=mask_secret(credentials.identity.api_key),
            nickname=credentials.nickname,
            recipients=len(credentials.emails),
        )
        return credentials


def parse_account_config(account_id: str, raw: str) -> AccountCredentials:
    """Validate a JSON account config document.

    ``apiKey`` must start with ``sk_`` and ``accountNumber`` must look like
    ``A-XXXXXXXX``. Email addresses that fail a syntax check are dropped.
    """

    try:
        config = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in config for account {account_id}: {exc}") from exc
    if not isinstance(config, dict):
        raise ConfigurationError(f"Config for account {account_id} must be a JSON object")

    api_key = config.get("apiKey")
    account_number = config.get("accountNumber")
    if not isinstance(api_key, str) or not api_key:
        raise ConfigurationError(f"API key not found in config for account {account_id}")
    if not isinstance(account_number, str) or not account_number:
        raise ConfigurationError(f"Account number not found in config for account {account_id}")
    if not api_key.startswith(API_KEY_PREFIX):
        raise ConfigurationError(f'Invalid API key format for account {account_id} (must start with "{API_KEY_PREFIX}")')
    if not ACCOUNT_NUMBER_PATTERN.match(account_number):
        raise ConfigurationError(
            f"Invalid account number format for account {account_id} (expected format: A-XXXXXXXX)"
        )

    nickname = config.get("nickname")
    return AccountCredentials(
        identity=AccountIdentity(account_id=account_id, account_number=account_number, api_key=api_key),
        nickname=nickname.strip() if isinstance(nickname, str) and nickname.strip() else None,
        emails=tuple(_valid_emails(config.get("emails"))),
    )


def _valid_emails(value: object) -> list[str]:
    if isinstance(value, str):
        candidates = value.split(",")
    elif isinstance(value, (list, tuple)):
        candidates = [item for item in value if isinstance(item, str)]
    else:
        return []
    emails: list[str] = []
    for candidate in candidates:
        email = candidate.strip()
        if email and EMAIL_PATTERN.match(email) and email not in emails:
            emails.append(email)
    return emails


def build_credentials_provider(settings: Settings | None = None) -> AccountCredentialsProvider:
    config = settings or get_settings()
    return AccountCredentialsProvider(
        SsmParameterSource(region_name=config.aws_region),
        path_prefix=config.resolved_ssm_path_prefix,
        cache=CredentialCache(ttl=timedelta(seconds=config.credential_cache_ttl_seconds)),
    )


@lru_cache(maxsize=1)
def build_default_credentials_provider() -> AccountCredentialsProvider:
    """Provider shared across warm invocations of the same process."""

    return build_credentials_provider()


__all__ = [
    "AccountCredentialsProvider",
    "CredentialCache",
    "InMemoryParameterSource",
    "ParameterSource",
    "SsmParameterSource",
    "build_credentials_provider",
    "build_default_credentials_provider",
    "parse_account_config",
]
