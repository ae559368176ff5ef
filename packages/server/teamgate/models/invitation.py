"""Workspace invitations."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin

_PENDING_ONLY = sa.text("status = 'pending'")


class Invitation(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "workspace_invitations"
    __table_args__ = (
        # At most one pending invitation per address per workspace
        sa.Index(
            "uq_workspace_invitations_pending_email",
            "workspace_id",
            "email",
            unique=True,
            postgresql_where=_PENDING_ONLY,
            sqlite_where=_PENDING_ONLY,
        ),
    )

    workspace_id: uuid.UUID = Field(
        foreign_key="workspaces.id", ondelete="CASCADE", nullable=False, index=True
    )
    invited_by: Optional[uuid.UUID] = None
    email: str = Field(nullable=False, max_length=320)  # lower-cased on write
    role_id: uuid.UUID = Field(foreign_key="roles.id", ondelete="RESTRICT", nullable=False)
    status: str = Field(default="pending", nullable=False, max_length=20)
    token: str = Field(nullable=False, unique=True, index=True, max_length=128)
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
