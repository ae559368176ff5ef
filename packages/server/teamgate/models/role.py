"""Roles, permissions and the grant table between them."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Permission(SQLModel, table=True):
    __tablename__ = "permissions"

    id: uuid.UUID = Field(primary_key=True, nullable=False)
    key: str = Field(nullable=False, unique=True, index=True, max_length=100)
    description: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )


class Role(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "roles"

    name: str = Field(nullable=False, unique=True, index=True, max_length=100)
    description: Optional[str] = None
    is_system: bool = Field(default=False, nullable=False)


class RolePermission(SQLModel, table=True):
    __tablename__ = "role_permissions"

    role_id: uuid.UUID = Field(foreign_key="roles.id", primary_key=True, ondelete="CASCADE")
    permission_id: uuid.UUID = Field(
        foreign_key="permissions.id", primary_key=True, ondelete="CASCADE"
    )
