# src/casket/core/config.py
"""
Configuration schema and loading for casket deployments.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.

Ticket and token lifetimes are policy, not model constants: every ceiling
lives here and is enforced by the ticket issuer and credential store.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

_DAY = 24 * 3600


class DatabaseSettings(BaseModel):
    """Backing key-value store connection (SQLAlchemy URL)."""

    model_config = {"frozen": True}

    # NOTE: str instead of Path - Path mangles DSNs like "postgresql://u:p@h/db"
    url: str = Field(
        default="sqlite:///./casket.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class ContentStoreSettings(BaseModel):
    """Blob store configuration."""

    model_config = {"frozen": True}

    backend: Literal["filesystem", "memory"] = Field(
        default="filesystem", description="Storage backend type"
    )
    base_path: Path = Field(
        default=Path(".casket/content"),
        description="Base path for filesystem backend",
    )


class TicketSettings(BaseModel):
    """Ticket lifetime policy.

    Requested lifetimes are clamped to the ceiling for the ticket type;
    a caller never gets more than the server allows.
    """

    model_config = {"frozen": True}

    max_read_ttl_seconds: int = Field(
        default=3600, gt=0, description="Ceiling for read ticket lifetime"
    )
    max_write_ttl_seconds: int = Field(
        default=300, gt=0, description="Ceiling for write ticket lifetime"
    )
    default_read_ttl_seconds: int = Field(
        default=3600, gt=0, description="Read ticket lifetime when none requested"
    )
    default_write_ttl_seconds: int = Field(
        default=300, gt=0, description="Write ticket lifetime when none requested"
    )

    @model_validator(mode="after")
    def validate_defaults_within_ceiling(self) -> "TicketSettings":
        """Defaults may not exceed the ceilings."""
        if self.default_read_ttl_seconds > self.max_read_ttl_seconds:
            raise ValueError(
                f"default_read_ttl_seconds ({self.default_read_ttl_seconds}) "
                f"exceeds max_read_ttl_seconds ({self.max_read_ttl_seconds})"
            )
        if self.default_write_ttl_seconds > self.max_write_ttl_seconds:
            raise ValueError(
                f"default_write_ttl_seconds ({self.default_write_ttl_seconds}) "
                f"exceeds max_write_ttl_seconds ({self.max_write_ttl_seconds})"
            )
        return self


class CredentialSettings(BaseModel):
    """User and agent token lifetimes, plus retention of expired rows."""

    model_config = {"frozen": True}

    user_token_ttl_seconds: int = Field(
        default=3600, gt=0, description="User token lifetime if the IdP gives none"
    )
    agent_token_default_ttl_seconds: int = Field(
        default=30 * _DAY, gt=0, description="Agent token lifetime when none requested"
    )
    agent_token_max_ttl_seconds: int = Field(
        default=90 * _DAY, gt=0, description="Ceiling for agent token lifetime"
    )
    retention_grace_seconds: int = Field(
        default=7 * _DAY,
        ge=0,
        description="How long expired rows are kept before retention cleanup",
    )

    @model_validator(mode="after")
    def validate_agent_default(self) -> "CredentialSettings":
        if self.agent_token_default_ttl_seconds > self.agent_token_max_ttl_seconds:
            raise ValueError(
                "agent_token_default_ttl_seconds cannot exceed agent_token_max_ttl_seconds"
            )
        return self


class NodeSettings(BaseModel):
    """DAG node limits."""

    model_config = {"frozen": True}

    chunk_threshold: int = Field(
        default=1024 * 1024,
        gt=0,
        description="Maximum raw chunk size in bytes (default 1 MiB)",
    )
    max_traversal_nodes: int = Field(
        default=100_000,
        gt=0,
        description="Safety limit on the size of a DAG closure",
    )
    resolve_batch_size: int = Field(
        default=100,
        gt=0,
        description="Keys per ownership lookup round-trip",
    )


class SecuritySettings(BaseModel):
    """Secret handling."""

    model_config = {"frozen": True}

    fingerprint_key: str | None = Field(
        default=None,
        min_length=16,
        description="HMAC key for secret fingerprints (else CASKET_FINGERPRINT_KEY)",
    )


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    json_output: bool = Field(default=False, description="Render JSON lines")


class CasketSettings(BaseModel):
    """Top-level casket configuration.

    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    content_store: ContentStoreSettings = Field(default_factory=ContentStoreSettings)
    tickets: TicketSettings = Field(default_factory=TicketSettings)
    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    nodes: NodeSettings = Field(default_factory=NodeSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: Path) -> CasketSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (CASKET_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: CASKET_DATABASE__URL for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="CASKET",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; lowercase for Pydantic and drop internals
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {
        k.lower(): _lower_keys(v)
        for k, v in dynaconf_settings.as_dict().items()
        if k not in internal_keys
    }
    return CasketSettings(**raw_config)


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def resolve_config(settings: CasketSettings) -> dict[str, Any]:
    """Convert validated settings to a JSON-safe dict (explicit + defaults).

    The fingerprint key is redacted.
    """
    resolved = settings.model_dump(mode="json")
    if resolved["security"]["fingerprint_key"] is not None:
        resolved["security"]["fingerprint_key"] = "***"
    return resolved
