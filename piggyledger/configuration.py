"""Mini README: Centralised configuration models and helpers for piggyledger.

Structure:
    * PiggyLedgerSettings - Pydantic model describing runtime configuration.
    * get_settings - cached accessor for environment-aware settings.

Usage:
    Import ``get_settings`` to read ``PIGGYLEDGER_*`` environment variables
    (or a local ``.env`` file) for the server bind address, the client's
    server URL and device identifier, request timeouts and the poll interval.
    The configuration is cached so validation runs once per process.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PiggyLedgerSettings(BaseSettings):
    """Runtime configuration for the ledger server and its clients."""

    model_config = SettingsConfigDict(
        env_prefix="PIGGYLEDGER_",
        env_file=".env",
        case_sensitive=False,
    )

    environment: str = Field(
        "development",
        description="Environment label controlling debug toggles and logging levels.",
    )
    log_level: str = Field(
        "INFO",
        description="Root logging level applied by the CLI entry points.",
    )
    interface_host: str = Field(
        "0.0.0.0",
        description="Network interface for the ledger API to bind to.",
    )
    interface_port: int = Field(
        8000,
        description="Port the ledger API exposes.",
        ge=1,
        le=65535,
    )
    server_url: str = Field(
        "http://127.0.0.1:8000",
        description="Base URL clients and pollers use to reach the ledger API.",
    )
    device_id: str = Field(
        "demo-01",
        description="Device identifier used by the CLI clients when none is given.",
        min_length=1,
    )
    request_timeout_seconds: float = Field(
        10.0,
        description=(
            "Upper bound on a single client request. A request exceeding it"
            " fails as a transport error and releases the client's busy lock."
        ),
        gt=0,
    )
    poll_interval_seconds: float = Field(
        5.0,
        description="Delay between version checks performed by the poller.",
        gt=0,
    )
    receipt_capacity: int = Field(
        64,
        description=(
            "Idempotency receipts remembered per device. Zero disables replay"
            " of duplicated submissions."
        ),
        ge=0,
    )

    @field_validator("server_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        """Normalise the base URL so paths can be appended directly."""

        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("server_url must not be empty")
        return value


@lru_cache()
def get_settings() -> PiggyLedgerSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return PiggyLedgerSettings()
