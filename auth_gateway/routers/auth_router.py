# auth_gateway/routers/auth_router.py
import logging

from fastapi import APIRouter, Depends, Response

from ..application.ports.user_repo import UserDto
from ..application.services.auth_flow import AuthFlow, OtpChallenge, SessionGrant
from ..application.services.session_issuer import SessionClaims
from ..dependencies import get_auth_flow, get_bearer_token, get_current_claims
from ..exceptions import auth_error_exception
from ..schemas import (
    AuthResponse, LoginRequest, RegisterRequest, ResendOTPRequest, UserResponse, VerifyOTPRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _user_data(user: UserDto) -> dict:
    return UserResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone_number=user.phone_number,
        status=user.status.value,
        roles=user.role_names,
        otp_enabled=user.otp_enabled,
    ).model_dump()


def _session_response(grant: SessionGrant, response: Response, max_age: int) -> AuthResponse:
    response.set_cookie(
        key="access_token",
        value=grant.token,
        httponly=True,
        secure=True,
        samesite="lax",
        max_age=max_age,
    )
    return AuthResponse(
        success=True,
        message="Login successful",
        data={
            "access_token": grant.token,
            "token_type": "bearer",
            "role": grant.primary_role,
            "roles": grant.roles,
            "permissions": sorted(grant.permissions),
            "user": _user_data(grant.user),
        },
    )


def _challenge_response(challenge: OtpChallenge, message: str) -> AuthResponse:
    return AuthResponse(
        success=True,
        message=message,
        data={
            "otp_required": True,
            "challenge_token": challenge.challenge_token,
            "phone": challenge.phone_hint,
            "otp_expires_in": challenge.expires_in,
        },
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterRequest, flow: AuthFlow = Depends(get_auth_flow)):
    result = flow.register(
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        contact_number=payload.contact_number,
        middle_name=payload.middle_name,
        address=payload.address,
    )
    if not result.ok:
        raise auth_error_exception(result.error)
    logger.info(f"User registered: {result.value.id}")
    return AuthResponse(
        success=True,
        message="Registration submitted. Your account is pending approval.",
        data={"user": _user_data(result.value)},
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, response: Response, flow: AuthFlow = Depends(get_auth_flow)):
    result = flow.login(payload.email, payload.password)
    if not result.ok:
        raise auth_error_exception(result.error)
    if isinstance(result.value, OtpChallenge):
        return _challenge_response(result.value, "OTP sent successfully")
    return _session_response(result.value, response, flow.sessions.expire_minutes * 60)


@router.post("/resend-otp", response_model=AuthResponse)
def resend_otp(payload: ResendOTPRequest, flow: AuthFlow = Depends(get_auth_flow)):
    result = flow.resend_otp(payload.challenge_token)
    if not result.ok:
        raise auth_error_exception(result.error)
    return _challenge_response(result.value, "OTP resent successfully")


@router.post("/verify-otp", response_model=AuthResponse)
def verify_otp(payload: VerifyOTPRequest, response: Response, flow: AuthFlow = Depends(get_auth_flow)):
    result = flow.verify_login_otp(payload.challenge_token, payload.code)
    if not result.ok:
        raise auth_error_exception(result.error)
    return _session_response(result.value, response, flow.sessions.expire_minutes * 60)


@router.get("/profile", response_model=AuthResponse)
def profile(token: str = Depends(get_bearer_token), flow: AuthFlow = Depends(get_auth_flow)):
    result = flow.get_profile(token)
    if not result.ok:
        raise auth_error_exception(result.error)
    return AuthResponse(success=True, message="Profile retrieved", data={"user": _user_data(result.value)})


@router.post("/logout", response_model=AuthResponse)
def logout(response: Response, claims: SessionClaims = Depends(get_current_claims)):
    # Tokens are stateless; dropping the cookie is all the server can do.
    response.delete_cookie("access_token")
    logger.info(f"User logged out: {claims.user_id}")
    return AuthResponse(success=True, message="Logged out successfully", data={})
