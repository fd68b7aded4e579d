"""Configuration management for the mailbox mover."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal, Sequence

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()

DEFAULT_BATCH_SIZE_BYTES = 96_636_764_160  # 90 GiB
DEFAULT_WAIT_SECONDS = 300
DEFAULT_AUDIT_DELIMITER = ";"


def _split_list(value: str | Sequence[str] | None) -> list[str]:
    """Turn delimiter-separated env strings into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,]", value)
    else:
        items = list(value)
    return [item.strip() for item in items if item.strip()]


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    graph_tenant_id: str | None = Field(None, alias="GRAPH_TENANT_ID")
    graph_client_id: str = Field(..., alias="GRAPH_CLIENT_ID")
    graph_client_secret: str | None = Field(None, alias="GRAPH_CLIENT_SECRET")
    graph_auth_mode: Literal["client_credentials", "device_code"] = Field(
        "device_code", alias="GRAPH_AUTH_MODE"
    )
    graph_authority: str | None = Field(None, alias="GRAPH_AUTHORITY")
    graph_scopes_raw: str = Field("Mail.ReadWrite;Mail.ReadWrite.Shared", alias="GRAPH_SCOPES")
    graph_page_size: int = Field(100, alias="GRAPH_PAGE_SIZE", gt=0, le=1000)
    graph_token_cache: Path = Field(Path("data/msal_token_cache.bin"), alias="GRAPH_TOKEN_CACHE")

    batch_size_bytes: int = Field(DEFAULT_BATCH_SIZE_BYTES, alias="BATCH_SIZE_BYTES", gt=0)
    batch_wait_seconds: int = Field(DEFAULT_WAIT_SECONDS, alias="BATCH_WAIT_SECONDS", ge=0)
    check_target_empty: bool = Field(True, alias="CHECK_TARGET_EMPTY")
    confirm_batches: bool = Field(True, alias="CONFIRM_BATCHES")
    quota_gate_timeout_seconds: float | None = Field(
        None, alias="QUOTA_GATE_TIMEOUT_SECONDS", gt=0
    )

    audit_log_path: Path | None = Field(None, alias="AUDIT_LOG_PATH")
    audit_delimiter: str = Field(DEFAULT_AUDIT_DELIMITER, alias="AUDIT_DELIMITER")
    acting_user: str | None = Field(None, alias="ACTING_USER")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_authentication(self):
        if self.graph_auth_mode == "client_credentials":
            if not self.graph_client_secret:
                raise ValueError("GRAPH_CLIENT_SECRET is required for client_credentials mode.")
            if not (self.graph_tenant_id or self.graph_authority):
                raise ValueError(
                    "GRAPH_TENANT_ID or GRAPH_AUTHORITY must be provided for client_credentials mode."
                )
        return self

    @field_validator(
        "graph_tenant_id",
        "graph_client_secret",
        "graph_authority",
        "quota_gate_timeout_seconds",
        "audit_log_path",
        "acting_user",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("audit_delimiter")
    @classmethod
    def _single_character_delimiter(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("AUDIT_DELIMITER must be exactly one character.")
        return value

    @property
    def authority_url(self) -> str:
        if self.graph_authority:
            return self.graph_authority.rstrip("/")
        if self.graph_tenant_id:
            return f"https://login.microsoftonline.com/{self.graph_tenant_id}"
        return "https://login.microsoftonline.com/organizations"

    @property
    def graph_scopes(self) -> list[str]:
        """Scopes requested for delegated Graph auth."""
        return _split_list(self.graph_scopes_raw) or ["Mail.ReadWrite"]

    @property
    def audit_enabled(self) -> bool:
        return self.audit_log_path is not None
