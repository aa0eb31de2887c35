"""Runtime settings for workflow-doctor entry points (CLI and MCP server).

The graph engine itself takes no configuration: catalog and autofix are
passed in explicitly. These settings only decide what the entry points pass.
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_doctor.knowledge.catalog import NodeCatalog, default_catalog

_VALID_TRANSPORTS = ("stdio",)


class DoctorSettings(BaseSettings):
    """Settings read from environment variables (or a .env file).

    Environment variables:
      WORKFLOW_DOCTOR_LOG_LEVEL    — Python log level (default: WARNING)
      WORKFLOW_DOCTOR_CATALOG_PATH — JSON catalog snapshot replacing the
                                     bundled table (default: unset)
      WORKFLOW_DOCTOR_AUTOFIX      — run the repair pipeline by default
                                     (default: true)
      MCP_TRANSPORT                — "stdio" (the only transport served)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = Field(default="WARNING", validation_alias="WORKFLOW_DOCTOR_LOG_LEVEL")
    catalog_path: str | None = Field(default=None, validation_alias="WORKFLOW_DOCTOR_CATALOG_PATH")
    autofix: bool = Field(default=True, validation_alias="WORKFLOW_DOCTOR_AUTOFIX")
    transport: str = Field(default="stdio", validation_alias="MCP_TRANSPORT")

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_level(cls, v: object) -> str:
        return str(v or "WARNING").upper()

    @field_validator("catalog_path", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: object) -> str | None:
        """Treat an empty WORKFLOW_DOCTOR_CATALOG_PATH as unset."""
        if not v:
            return None
        return str(v)

    @field_validator("transport", mode="before")
    @classmethod
    def check_transport(cls, v: object) -> str:
        transport = str(v or "stdio").lower()
        if transport not in _VALID_TRANSPORTS:
            raise ValueError(f"MCP_TRANSPORT must be one of {_VALID_TRANSPORTS}, got {v!r}")
        return transport

    @classmethod
    def from_env(cls) -> "DoctorSettings":
        return cls()

    def load_catalog(self) -> NodeCatalog:
        """Snapshot catalog when WORKFLOW_DOCTOR_CATALOG_PATH is set, else the default."""
        if self.catalog_path:
            return NodeCatalog.from_snapshot(self.catalog_path)
        return default_catalog()

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=self.log_level,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
