from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "octoplus-claimer"
    service_version: str = "0.1.0"
    stage: str = "dev"
    aws_region: str = "eu-west-1"

    # Credential store (SSM Parameter Store)
    ssm_path_prefix: str | None = None
    credential_cache_ttl_seconds: int = 300

    # State store (DynamoDB)
    state_table_name: str = ""
    state_ttl_days: int = 30

    # Voucher period: state goes stale at the next reset boundary (UTC)
    period_reset_weekday: int = Field(default=0, ge=0, le=6)
    period_reset_hour: int = Field(default=0, ge=0, le=23)

    # Claim window (informational only, the external schedule drives runs)
    claim_window_weekday: int = Field(default=0, ge=0, le=6)
    claim_window_start: str = "05:00"
    claim_window_end: str = "06:30"

    # Octoplus API
    octoplus_graphql_url: str = "https://api.octopus.energy/v1/graphql/"
    octoplus_timeout_seconds: float = 15.0
    octoplus_offer_groups_page_size: int = 50
    offer_slug: str = "caffe-nero"

    # Email / notification settings
    email_backend: Literal["ses", "smtp", "memory"] = "ses"
    force_email_send: bool = False
    ses_sender_email: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_sender_email: str | None = None

    @field_validator("claim_window_start", "claim_window_end")
    @classmethod
    def _validate_clock_time(cls, value: str) -> str:
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit()) or int(hours) > 23 or int(minutes) > 59:
            raise ValueError(f"Expected HH:MM, got {value!r}")
        return value

    @property
    def resolved_ssm_path_prefix(self) -> str:
        return (self.ssm_path_prefix or f"/octoplus/{self.stage}").rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
