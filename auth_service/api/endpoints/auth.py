"""
Passwordless authentication endpoints.

Users sign in with a 6-digit code sent by email or SMS; admin console
accounts use a separate email flow. Successful verification returns a
short-lived access token and a long-lived refresh token.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from auth_service.core.auth_flow import AuthFlow, SessionTokens
from auth_service.core.deps import get_auth_flow, get_client_ip, get_current_claims, get_user_agent
from auth_service.core.identity import AccountPolicy
from auth_service.core.security import AccessTokenClaims
from auth_service.models.verification_code import ActorType, ChannelType
from auth_service.schemas.auth import (
    AccountResponse,
    AdminSendCodeRequest,
    AdminVerifyCodeRequest,
    ClaimsResponse,
    LogoutRequest,
    MessageResponse,
    OrgMembershipResponse,
    RefreshResponse,
    RefreshTokenRequest,
    SendCodeResponse,
    SendPhoneCodeRequest,
    SendUserCodeRequest,
    SessionTokenResponse,
    StrictModeFields,
    VerifyPhoneCodeRequest,
    VerifyUserCodeRequest,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)

CODE_SENT_MESSAGE = "If the address can receive messages, a verification code has been sent"


def _policy(request: StrictModeFields) -> AccountPolicy:
    return AccountPolicy(require_existing=request.require_existing, required_role=request.require_role or None)


def _session_response(session: SessionTokens) -> SessionTokenResponse:
    return SessionTokenResponse(
        access_token=session.access.token,
        expires_at=session.access.expires_at,
        refresh_token=session.refresh.secret,
        refresh_expires_at=session.refresh.expires_at,
        is_new_account=session.created,
        user=AccountResponse.model_validate(session.user),
    )


# ============================================================================
# User flow
# ============================================================================

@router.post("/send-user-verification", response_model=SendCodeResponse)
def send_user_verification(
    request: SendUserCodeRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    ip_address: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    """
    Send a sign-in code to an email address.

    Unknown addresses are allowed (the account is created on first
    successful verification) unless require_existing or require_role is set.

    Raises:
        429: Rate limit exceeded for this IP
        403: Strict mode requirements not met
        503: Code could not be delivered
    """
    issued = flow.request_code(
        request.email,
        ChannelType.EMAIL,
        ip_address,
        user_agent=user_agent,
        policy=_policy(request),
    )
    return SendCodeResponse(message=CODE_SENT_MESSAGE, expires_at=issued.expires_at)


@router.post("/verify-user-code", response_model=SessionTokenResponse)
def verify_user_code(
    request: VerifyUserCodeRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    ip_address: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    """
    Verify an emailed code and start a session.

    Raises:
        401: Invalid, expired, or locked code
        403: Strict mode requirements not met (the code is consumed)
    """
    session = flow.submit_code(
        request.email,
        ChannelType.EMAIL,
        request.code,
        ip_address,
        user_agent=user_agent,
        policy=_policy(request),
    )
    return _session_response(session)


@router.post("/send-phone-verification", response_model=SendCodeResponse)
def send_phone_verification(
    request: SendPhoneCodeRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    ip_address: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    """Send a sign-in code by SMS to an E.164 phone number."""
    issued = flow.request_code(
        request.phone,
        ChannelType.PHONE,
        ip_address,
        user_agent=user_agent,
        policy=_policy(request),
    )
    return SendCodeResponse(message=CODE_SENT_MESSAGE, expires_at=issued.expires_at)


@router.post("/verify-phone-code", response_model=SessionTokenResponse)
def verify_phone_code(
    request: VerifyPhoneCodeRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    ip_address: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    session = flow.submit_code(
        request.phone,
        ChannelType.PHONE,
        request.code,
        ip_address,
        user_agent=user_agent,
        policy=_policy(request),
    )
    return _session_response(session)


# ============================================================================
# Admin console flow
# ============================================================================

@router.post("/admin/send-verification", response_model=SendCodeResponse)
def admin_send_verification(
    request: AdminSendCodeRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    ip_address: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    """
    Send an admin console sign-in code.

    Only active accounts with an allow-listed role may request one.

    Raises:
        403: Account not eligible for admin access
    """
    issued = flow.request_code(
        request.email,
        ChannelType.EMAIL,
        ip_address,
        user_agent=user_agent,
        actor_type=ActorType.ADMIN,
    )
    return SendCodeResponse(message="Verification code sent", expires_at=issued.expires_at)


@router.post("/admin/verify-code", response_model=SessionTokenResponse)
def admin_verify_code(
    request: AdminVerifyCodeRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    ip_address: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    session = flow.submit_code(
        request.email,
        ChannelType.EMAIL,
        request.code,
        ip_address,
        user_agent=user_agent,
        actor_type=ActorType.ADMIN,
    )
    return _session_response(session)


# ============================================================================
# Tokens
# ============================================================================

@router.post("/token/refresh", response_model=RefreshResponse)
def refresh_token(
    request: RefreshTokenRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    ip_address: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    """
    Exchange a refresh token for a new access token.

    With rotate=true the presented refresh token is revoked and a new one is
    returned; other refresh tokens of the account from the same IP are revoked too.

    Raises:
        401: Refresh token unknown, revoked, or expired
    """
    result = flow.refresh_access_token(
        request.refresh_token,
        rotate=request.rotate,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    rotated = result.refresh
    return RefreshResponse(
        access_token=result.access.token,
        expires_at=result.access.expires_at,
        refresh_token=rotated.secret if rotated else None,
        refresh_expires_at=rotated.expires_at if rotated else None,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: LogoutRequest,
    flow: AuthFlow = Depends(get_auth_flow),
    ip_address: str = Depends(get_client_ip),
):
    """Revoke a refresh token."""
    flow.revoke_refresh_token(request.refresh_token, ip_address=ip_address)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=ClaimsResponse)
def read_claims(claims: AccessTokenClaims = Depends(get_current_claims)):
    """Return the claims carried by the bearer access token."""
    return ClaimsResponse(
        user_id=claims.user_id,
        identity=claims.identity,
        channel=claims.channel,
        role=claims.role,
        email=claims.email,
        phone=claims.phone,
        org_memberships=[
            OrgMembershipResponse(org_id=m.org_id, org_type=m.org_type, org_role=m.org_role, name=m.name)
            for m in claims.org_memberships
        ],
        issued_at=claims.issued_at,
        expires_at=claims.expires_at,
    )


# ============================================================================
# Retired password endpoints
# ============================================================================

PASSWORD_AUTH_RETIRED = "Password authentication has been retired. Sign in with a verification code."


@router.post("/signup", status_code=status.HTTP_410_GONE, include_in_schema=False)
def signup():
    raise HTTPException(status_code=status.HTTP_410_GONE, detail=PASSWORD_AUTH_RETIRED)


@router.post("/login", status_code=status.HTTP_410_GONE, include_in_schema=False)
def login():
    raise HTTPException(status_code=status.HTTP_410_GONE, detail=PASSWORD_AUTH_RETIRED)
