from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RbacMode(str, Enum):
    CATALOG = "catalog"
    FIXED = "fixed"


class OwnershipMode(str, Enum):
    ALWAYS = "always"
    FIELD = "field"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REVOKED = "revoked"
    EXPIRED = "expired"


# Allowed transitions; terminal states map to an empty list
INVITATION_TRANSITIONS: dict[InvitationStatus, list[InvitationStatus]] = {
    InvitationStatus.PENDING: [
        InvitationStatus.ACCEPTED,
        InvitationStatus.REVOKED,
        InvitationStatus.EXPIRED,
    ],
    InvitationStatus.ACCEPTED: [],
    InvitationStatus.REVOKED: [],
    InvitationStatus.EXPIRED: [],
}


class ErrorDetail(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: ErrorDetail
    request_id: Optional[str] = None
