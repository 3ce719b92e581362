"""
Error taxonomy for the auth core.

Every failure a caller can observe is an ``AuthError`` subclass carrying a
stable ``code``, an HTTP status hint and a client-safe message. Services
raise them; ``sermon_auth.main`` installs a single handler that renders the
``{"error": {"code", "message", "status"}}`` envelope.
"""

from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    code: str = "auth_error"
    status_code: int = 400
    message: str = "Request could not be completed"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "status": self.status_code,
            }
        }


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password"


class AccountInactive(AuthError):
    code = "account_inactive"
    status_code = 403
    message = "Account is deactivated"


class EmailNotVerified(AuthError):
    code = "email_not_verified"
    status_code = 403
    message = "Email address has not been verified"


class EmailAlreadyRegistered(AuthError):
    code = "email_already_registered"
    status_code = 409
    message = "An account with this email already exists"


class WeakPassword(AuthError):
    code = "weak_password"
    status_code = 422
    message = "Password does not meet the strength policy"

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or None)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["error"]["problems"] = self.problems
        return body


class PasswordResetTokenInvalid(AuthError):
    code = "password_reset_token_invalid"
    status_code = 400
    message = "Password reset token is invalid or has expired"


class EmailVerificationTokenInvalid(AuthError):
    code = "email_verification_token_invalid"
    status_code = 400
    message = "Email verification token is invalid or has expired"


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

class TokenError(AuthError):
    status_code = 401


class TokenExpired(TokenError):
    code = "token_expired"
    message = "Token has expired"


class TokenMalformed(TokenError):
    code = "token_invalid"
    message = "Token is invalid"


class TokenBadSignature(TokenMalformed):
    """Signature mismatch; reported to clients exactly like a malformed token."""


class TokenRevoked(TokenError):
    code = "token_revoked"
    message = "Token has been revoked"


class InvalidRefreshToken(TokenRevoked):
    message = "Refresh token is invalid, expired or already used"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class NotAMember(AuthError):
    code = "not_a_member"
    status_code = 404
    message = "Organization not found"


class MembershipInactive(AuthError):
    code = "membership_inactive"
    status_code = 403
    message = "Membership is not active"


class OrganizationInactive(AuthError):
    code = "organization_inactive"
    status_code = 403
    message = "Organization is deactivated"


class InsufficientPermission(AuthError):
    code = "insufficient_permission"
    status_code = 403
    message = "Insufficient permission for this operation"


class LastAdminRequired(AuthError):
    code = "last_admin_required"
    status_code = 409
    message = "An organization must keep at least one active administrator"


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class InvitationInvalid(AuthError):
    code = "invitation_invalid"
    status_code = 404
    message = "Invitation not found"


class InvitationExpired(AuthError):
    code = "invitation_expired"
    status_code = 410
    message = "Invitation has expired"


class InvitationAlreadyAccepted(AuthError):
    code = "invitation_already_accepted"
    status_code = 409
    message = "Invitation has already been accepted"


class AlreadyMember(AuthError):
    code = "already_member"
    status_code = 409
    message = "User is already a member of this organization"


class UserLimitReached(AuthError):
    code = "user_limit_reached"
    status_code = 409
    message = "Organization has reached its user limit"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

class OrganizationNotFound(AuthError):
    code = "organization_not_found"
    status_code = 404
    message = "Organization not found"


class OrganizationSlugTaken(AuthError):
    code = "organization_slug_taken"
    status_code = 409
    message = "Organization slug is already in use"


class UserNotFound(AuthError):
    code = "user_not_found"
    status_code = 404
    message = "User not found"
