"""Outbound invitation notification.

Delivery (email, chat) is an external collaborator; the engine only needs
``send_workspace_invitation``. ``LogNotifier`` is the default and writes the
invitation to the structured log.
"""

from __future__ import annotations

import uuid
from typing import Optional, Protocol

import structlog

log = structlog.get_logger()


class Notifier(Protocol):
    async def send_workspace_invitation(
        self,
        *,
        workspace_id: uuid.UUID,
        email: str,
        accept_url: str,
        role: str,
        inviter_name: Optional[str],
    ) -> None: ...


class LogNotifier:
    async def send_workspace_invitation(
        self,
        *,
        workspace_id: uuid.UUID,
        email: str,
        accept_url: str,
        role: str,
        inviter_name: Optional[str],
    ) -> None:
        log.info(
            "invitation.notify",
            workspace_id=str(workspace_id),
            email=email,
            role=role,
            inviter=inviter_name,
            accept_url=accept_url,
        )
