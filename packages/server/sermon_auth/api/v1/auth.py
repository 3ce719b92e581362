"""
Authentication endpoints.

- Email/password registration & login
- Token rotation (refresh), logout and single-session revoke
- Password reset, password change, email verification
- Invitation acceptance
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sermon_auth.core.auth import AuthenticatedUser, get_current_user
from sermon_auth.core.config import get_settings
from sermon_auth.core.database import get_session
from sermon_auth.models.user import User
from sermon_auth.services import accounts, invitations, memberships, sessions
from sermon_auth.services.auth import login as login_user
from sermon_auth.services.notifications import NotificationSender, get_notifier
from sermon_auth.services.tokens import TokenPair, refresh_tokens
from sermon_auth_shared.schemas.auth import (
    AuthUserInfo,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    RevokeRequest,
    TokenPairResponse,
    UserOrganizationItem,
    UserOrganizationsResponse,
    VerifyEmailRequest,
)
from sermon_auth_shared.schemas.common import MessageResponse
from sermon_auth_shared.schemas.invitations import (
    AcceptInvitationRequest,
    AcceptInvitationResponse,
)

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()


def _user_info(user: User) -> AuthUserInfo:
    return AuthUserInfo(
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        is_email_verified=user.is_email_verified,
    )


def _login_response(pair: TokenPair) -> LoginResponse:
    return LoginResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
        user=_user_info(pair.user),
        organization_id=pair.organization_id,
        role=pair.role,
    )


# ---------------------------------------------------------------------------
# Registration & login
# ---------------------------------------------------------------------------

@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSender = Depends(get_notifier),
):
    """Register a new user with email/password. The account starts unverified."""
    user = await accounts.register_user(body, session)
    await accounts.request_email_verification(user, session, notifier)
    return RegisterResponse(
        user=_user_info(user),
        message="Registration successful. Check your email to verify your address.",
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive an access/refresh token pair."""
    pair = await login_user(body.email, body.password, session, organization_id=body.organization_id)
    return _login_response(pair)


# ---------------------------------------------------------------------------
# Tokens & sessions
# ---------------------------------------------------------------------------

@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    body: RefreshRequest,
    session: AsyncSession = Depends(get_session),
):
    """Rotate a refresh token. The presented refresh token cannot be used again."""
    pair = await refresh_tokens(body.access_token, body.refresh_token, session)
    return TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Revoke every session of the current user, including the presented access token."""
    await sessions.logout(auth.user_id, session, claims=auth.claims)
    return MessageResponse(message="Logged out")


@router.post("/revoke", response_model=MessageResponse)
async def revoke(
    body: RevokeRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Revoke a single refresh token (sign out one device)."""
    await sessions.logout_session(body.refresh_token, session, user_id=auth.user_id)
    return MessageResponse(message="Session revoked")


# ---------------------------------------------------------------------------
# Passwords & verification
# ---------------------------------------------------------------------------

@router.post("/forgot-password", response_model=MessageResponse, status_code=202)
async def forgot_password(
    body: ForgotPasswordRequest,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSender = Depends(get_notifier),
):
    """Start a password reset. The response never reveals whether the email is registered."""
    await accounts.request_password_reset(body.email, session, notifier)
    return MessageResponse(
        message="If an account exists for this email, a password reset link has been sent."
    )


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    session: AsyncSession = Depends(get_session),
):
    await accounts.reset_password(body.token, body.new_password, session)
    return MessageResponse(message="Password has been reset")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await accounts.change_password(auth.user_id, body.current_password, body.new_password, session)
    return MessageResponse(message="Password changed")


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    body: VerifyEmailRequest,
    session: AsyncSession = Depends(get_session),
):
    await accounts.verify_email(body.token, session)
    return MessageResponse(message="Email verified")


# ---------------------------------------------------------------------------
# Organizations & invitations
# ---------------------------------------------------------------------------

@router.get("/organizations", response_model=UserOrganizationsResponse)
async def my_organizations(
    auth: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List the organizations the current user is an active member of."""
    orgs = await memberships.list_user_organizations(auth.user_id, session)
    return UserOrganizationsResponse(data=[UserOrganizationItem(**o) for o in orgs])


@router.post("/accept-invitation", response_model=AcceptInvitationResponse)
async def accept_invitation(
    body: AcceptInvitationRequest,
    session: AsyncSession = Depends(get_session),
    notifier: NotificationSender = Depends(get_notifier),
):
    """Accept an invitation, set a password and receive tokens scoped to the organization."""
    result = await invitations.accept_invitation(
        body.invitation_token, body.password, session, notifier
    )
    return AcceptInvitationResponse(
        organization_id=result.organization.id,
        organization_name=result.organization.name,
        role=result.role,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        token_type=result.tokens.token_type,
        expires_in=result.tokens.expires_in,
    )
