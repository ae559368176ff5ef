"""
Background task: expire pending invitations whose deadline has passed.

Runs in-process on a fixed interval (``TG_INVITATION_SWEEP_INTERVAL_SECONDS``).
An external scheduler can await ``expire_pending_invitations`` directly.
Accept re-checks expiry under its own row lock, so the sweep is only
bookkeeping.
"""

from __future__ import annotations

import asyncio

import structlog

from teamgate.services.invitations import InvitationEngine

log = structlog.get_logger()


async def expire_pending_invitations(ctx: dict) -> int:
    """Flip lapsed pending invitations to expired.

    Returns the number of invitations expired.
    """
    engine: InvitationEngine = ctx["invitations"]
    return await engine.expire_stale()


async def run_periodic_sweep(engine: InvitationEngine, interval_seconds: float) -> None:
    """Sweep forever; cancelled on application shutdown."""
    ctx = {"invitations": engine}
    while True:
        try:
            await expire_pending_invitations(ctx)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error("invitation_sweep.failed", error=str(exc))
        await asyncio.sleep(interval_seconds)

