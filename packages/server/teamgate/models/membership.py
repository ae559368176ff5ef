"""Workspace membership (one row per workspace/principal pair)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Membership(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "workspace_members"
    __table_args__ = (
        sa.UniqueConstraint(
            "workspace_id", "principal_id", name="uq_workspace_members_workspace_principal"
        ),
    )

    workspace_id: uuid.UUID = Field(
        foreign_key="workspaces.id", ondelete="CASCADE", nullable=False, index=True
    )
    principal_id: uuid.UUID = Field(nullable=False, index=True)
    role_id: uuid.UUID = Field(
        foreign_key="roles.id", ondelete="RESTRICT", nullable=False, index=True
    )
    invited_by: Optional[uuid.UUID] = None
    # Explicit permission overlay, read only by the fixed role catalog
    permissions: list[str] = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
