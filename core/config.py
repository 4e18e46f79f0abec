"""Finalization and archive configuration."""

import os
from pathlib import Path

from pydantic import BaseModel, Field


class FinalizationConfig(BaseModel):
    """
    Invoice numbering, archive and finalization settings.

    storage_root must live outside any publicly served directory: archived
    PDFs are only reachable through the download/view endpoints.
    """

    storage_root: Path = Field(
        default=Path("invoices"),
        description="Root directory of the archived PDF store",
    )
    render_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound on one PDF render",
        gt=0,
        le=300,
    )
    conflict_wait_seconds: float = Field(
        default=2.0,
        description="How long a losing finalize waits for the winner's state flip",
        ge=0,
        le=30,
    )
    default_prefix: str = Field(
        default="FAC",
        description="Invoice number prefix for new issuers",
        min_length=1,
        max_length=10,
    )
    sequence_padding: int = Field(
        default=4,
        description="Zero-padding width of the yearly sequence",
        ge=1,
        le=10,
    )
    history_limit: int = Field(
        default=50,
        description="Default number of audit entries returned",
        ge=1,
        le=1000,
    )

    @classmethod
    def from_env(cls) -> "FinalizationConfig":
        """Build from INVOICE_* environment variables, falling back to defaults."""
        overrides = {}
        env_map = {
            "INVOICE_STORAGE_ROOT": "storage_root",
            "INVOICE_RENDER_TIMEOUT_SECONDS": "render_timeout_seconds",
            "INVOICE_CONFLICT_WAIT_SECONDS": "conflict_wait_seconds",
            "INVOICE_DEFAULT_PREFIX": "default_prefix",
        }
        for env_name, field_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                overrides[field_name] = value
        return cls(**overrides)
