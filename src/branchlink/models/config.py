"""Configuration models."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TICKET_PATTERN = r"[A-Za-z]+-\d+"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings are prefixed with BRANCHLINK_ (e.g., BRANCHLINK_STALE_AFTER_DAYS).
    """

    model_config = SettingsConfigDict(
        env_prefix="BRANCHLINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    state_dir: Optional[Path] = Field(
        default=None,
        description="Directory for the association state file (defaults to <repo>/.git/branchlink)",
    )

    # Detection
    ticket_pattern: str = Field(
        default=DEFAULT_TICKET_PATTERN,
        description="Regex matching a ticket identifier inside a branch name",
    )

    # Diagnostics
    stale_after_days: int = Field(
        default=30,
        description="Days without use before an association is reported as old",
    )
    analytics_limit: int = Field(default=10, description="Entries per analytics list")

    # Checkout
    changed_files_limit: int = Field(
        default=5,
        description="Changed files listed in a checkout decision request",
    )

    # Store retry
    store_retry_backoff_seconds: float = Field(
        default=0.2,
        description="Delay before the single retry of a failed store write",
    )

    # Start work
    branch_naming_convention: str = Field(
        default="conventional",
        description="conventional, simple, ticket-only or custom",
    )
    custom_branch_template: Optional[str] = Field(
        default=None,
        description="Template for the custom convention, e.g. {type}/{identifier}-{slug}",
    )

    # Logging
    log_level: str = "INFO"
