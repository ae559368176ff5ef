"""
Domain errors.

Every error raised by the engine derives from ``TeamgateError`` and carries the
HTTP status and stable code the API layer renders.
"""

from __future__ import annotations

from typing import Optional


class TeamgateError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# -- 401 / 403 ---------------------------------------------------------------

class AuthenticationRequiredError(TeamgateError):
    status_code = 401
    code = "authentication_required"
    default_message = "Authentication required"


class PermissionDeniedError(TeamgateError):
    status_code = 403
    code = "permission_denied"
    default_message = "Permission denied"


# -- 404 ---------------------------------------------------------------------

class NotFoundError(TeamgateError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class WorkspaceNotFoundError(NotFoundError):
    code = "workspace_not_found"
    default_message = "Workspace not found"


class RoleNotFoundError(NotFoundError):
    code = "role_not_found"
    default_message = "Role not found"


class PermissionNotFoundError(NotFoundError):
    code = "permission_not_found"
    default_message = "Permission not found"


class MemberNotFoundError(NotFoundError):
    code = "member_not_found"
    default_message = "Member not found"


class InvitationNotFoundError(NotFoundError):
    code = "invitation_not_found"
    default_message = "Invitation not found"


# -- 409 ---------------------------------------------------------------------

class ConflictError(TeamgateError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class AlreadyMemberError(ConflictError):
    code = "already_member"
    default_message = "Principal is already a member of this workspace"


class LastOwnerError(ConflictError):
    code = "last_owner"
    default_message = "Cannot remove the last owner of a workspace"


class LastOwnerRoleChangeError(ConflictError):
    code = "last_owner_role_change"
    default_message = "Cannot change the role of the last owner of a workspace"


class RoleInUseError(ConflictError):
    code = "role_in_use"
    default_message = "Role is still assigned to members or pending invitations"


class RoleNameTakenError(ConflictError):
    code = "role_name_taken"
    default_message = "A role with this name already exists"


class PendingInvitationExistsError(ConflictError):
    code = "pending_invitation_exists"
    default_message = "A pending invitation already exists for this email"


# -- 400 ---------------------------------------------------------------------

class BadRequestError(TeamgateError):
    status_code = 400
    code = "bad_request"
    default_message = "Bad request"


class SystemRoleDeleteError(BadRequestError):
    code = "system_role_delete"
    default_message = "System roles cannot be deleted"


class SystemRoleImmutableError(BadRequestError):
    code = "system_role_immutable"
    default_message = "System roles cannot be modified"


class FixedRoleCatalogError(BadRequestError):
    code = "fixed_role_catalog"
    default_message = "Roles are fixed in this deployment"


class PermissionOverlayUnsupportedError(BadRequestError):
    code = "permission_overlay_unsupported"
    default_message = "Explicit member permissions are not supported in this deployment"


class SelfActionError(BadRequestError):
    code = "self_action"
    default_message = "Cannot perform this action on yourself"


class InvitationExpiredError(BadRequestError):
    code = "invitation_expired"
    default_message = "Invitation has expired"


class InvitationInvalidError(BadRequestError):
    code = "invitation_invalid"
    default_message = "Invitation is no longer valid"


# -- 500 ---------------------------------------------------------------------

class StorageError(TeamgateError):
    code = "storage_error"
    default_message = "Storage operation failed"
