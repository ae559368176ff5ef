"""
Application configuration loaded from environment variables.
"""

import uuid
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from teamgate_shared.schemas.common import OwnershipMode, RbacMode


class Settings(BaseSettings):
    """Teamgate server configuration."""

    model_config = SettingsConfigDict(env_prefix="TG_", env_file=".env", extra="ignore")

    # Deployment mode
    deployment_mode: Literal["single-tenant", "multi-tenant"] = "single-tenant"

    # Authorization
    rbac_mode: RbacMode = RbacMode.CATALOG
    ownership_mode: Optional[OwnershipMode] = None

    # Database
    database_url: str = "sqlite+aiosqlite:///./teamgate.db"
    sqlite_begin_mode: Literal["DEFERRED", "IMMEDIATE", "EXCLUSIVE"] = "IMMEDIATE"
    sqlite_busy_timeout_seconds: float = 30.0

    # Invitations
    invitation_ttl_days: int = Field(default=7, ge=1, le=90)
    invitation_sweep_interval_seconds: int = Field(default=3600, ge=0)  # 0 disables
    public_base_url: str = "http://localhost:8000"

    # Local principal used when single-tenant requests carry no identity
    local_principal_id: uuid.UUID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")
    local_principal_email: str = "admin@localhost"
    local_principal_name: str = "Local Admin"

    # Logging
    log_level: str = "info"
    log_format: Literal["json", "text"] = "json"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]

    @model_validator(mode="after")
    def _check_ownership_mode(self) -> "Settings":
        if (
            self.deployment_mode == "multi-tenant"
            and self.ownership_mode == OwnershipMode.ALWAYS
        ):
            raise ValueError(
                "ownership_mode=always is only allowed in single-tenant deployments"
            )
        return self

    @property
    def is_single_tenant(self) -> bool:
        return self.deployment_mode == "single-tenant"

    @property
    def resolved_ownership_mode(self) -> OwnershipMode:
        if self.ownership_mode is not None:
            return self.ownership_mode
        return OwnershipMode.ALWAYS if self.is_single_tenant else OwnershipMode.FIELD

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    return Settings()
