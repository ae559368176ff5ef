"""
Request identity and FastAPI dependencies.

Identity proofing happens upstream; the identity proxy forwards the verified
principal as ``X-Principal-Id`` / ``X-Principal-Email`` / ``X-Principal-Name``.
In single-tenant deployments a request without these headers runs as the
configured local principal, which bypasses permission checks.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from typing import Optional

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from teamgate.core.database import transaction
from teamgate.core.errors import AuthenticationRequiredError
from teamgate.core.rbac.evaluator import AuthContext
from teamgate.services.registry import Services

log = structlog.get_logger()


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_session(
    services: Services = Depends(get_services),
) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for a transactional session."""
    async with transaction(services.sessions) as session:
        yield session


async def get_optional_auth_context(
    services: Services = Depends(get_services),
    x_principal_id: Optional[str] = Header(default=None),
    x_principal_email: Optional[str] = Header(default=None),
    x_principal_name: Optional[str] = Header(default=None),
) -> Optional[AuthContext]:
    settings = services.settings
    if x_principal_id:
        try:
            principal_id = uuid.UUID(x_principal_id)
        except ValueError:
            raise AuthenticationRequiredError("Malformed principal id") from None
        ctx = AuthContext(
            principal_id=principal_id,
            email=x_principal_email,
            display_name=x_principal_name,
        )
    elif settings.is_single_tenant:
        ctx = AuthContext(
            principal_id=settings.local_principal_id,
            email=settings.local_principal_email,
            display_name=settings.local_principal_name,
            local_admin=True,
        )
    else:
        return None

    structlog.contextvars.bind_contextvars(principal_id=str(ctx.principal_id))
    return ctx


async def get_auth_context(
    ctx: Optional[AuthContext] = Depends(get_optional_auth_context),
) -> AuthContext:
    """Any identified principal; workspace checks happen in the services."""
    if ctx is None:
        raise AuthenticationRequiredError()
    return ctx
