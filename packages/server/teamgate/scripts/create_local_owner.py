"""
Create a workspace owned by a given principal, for local testing.

Bootstraps the schema (SQLite only) and the role catalog first, so it also
works against an empty database.
"""

import argparse
import asyncio
import uuid
from typing import Optional

from teamgate.core.config import get_settings
from teamgate.core.database import create_engine, create_session_factory, init_db
from teamgate.core.logging import configure_logging
from teamgate.core.rbac.evaluator import AuthContext
from teamgate.services.registry import build_services


async def create_owner(
    workspace_name: str,
    principal_id: Optional[uuid.UUID],
    description: Optional[str] = None,
) -> uuid.UUID:
    settings = get_settings()
    engine = create_engine(settings)
    try:
        if settings.is_sqlite:
            await init_db(engine)
        services = build_services(settings, create_session_factory(engine))
        await services.sync_catalog()

        owner = AuthContext(principal_id=principal_id or settings.local_principal_id)
        workspace = await services.workspaces.create_workspace(
            workspace_name, description, creator=owner
        )
        print(f"Created workspace {workspace.name!r} ({workspace.id})")
        print(f"Owner: {owner.principal_id}")
        return workspace.id
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a workspace with a local owner.")
    parser.add_argument("--name", default="Default Workspace", help="Workspace name")
    parser.add_argument("--description", default=None, help="Workspace description")
    parser.add_argument(
        "--principal-id",
        type=uuid.UUID,
        default=None,
        help="Owner principal id (defaults to TG_LOCAL_PRINCIPAL_ID)",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level, "text")
    asyncio.run(create_owner(args.name, args.principal_id, args.description))


if __name__ == "__main__":
    main()
