from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    ORGANIZATION_ADMIN = "OrganizationAdmin"
    ORGANIZATION_USER = "OrganizationUser"
    READ_ONLY_USER = "ReadOnlyUser"


# Loose spellings accepted from clients (invite forms, admin tooling)
ROLE_ALIASES: dict[str, Role] = {
    "admin": Role.ORGANIZATION_ADMIN,
    "organizationadmin": Role.ORGANIZATION_ADMIN,
    "user": Role.ORGANIZATION_USER,
    "organizationuser": Role.ORGANIZATION_USER,
    "readonly": Role.READ_ONLY_USER,
    "readonlyuser": Role.READ_ONLY_USER,
}


def parse_role(value: "str | Role") -> Role:
    """Resolve a role from its canonical value or a known alias.

    Raises ValueError for anything else.
    """
    if isinstance(value, Role):
        return value
    key = value.strip().replace("_", "").replace("-", "").lower()
    try:
        return ROLE_ALIASES[key]
    except KeyError:
        raise ValueError(f"Unknown role '{value}'") from None


class Capability(str, Enum):
    ADMIN = "Admin"
    MANAGE_USERS = "ManageUsers"
    MANAGE_TRANSCRIPTIONS = "ManageTranscriptions"
    VIEW_TRANSCRIPTIONS = "ViewTranscriptions"
    EXPORT_TRANSCRIPTIONS = "ExportTranscriptions"
    MEMBER = "Member"


class DenyReason(str, Enum):
    USER_INACTIVE = "UserInactive"
    NOT_A_MEMBER = "NotAMember"
    ORGANIZATION_INACTIVE = "OrganizationInactive"
    MEMBERSHIP_INACTIVE = "MembershipInactive"
    INSUFFICIENT_PERMISSION = "InsufficientPermission"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: ErrorBody


class MessageResponse(BaseModel):
    message: str
