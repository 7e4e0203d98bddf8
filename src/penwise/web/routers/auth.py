from fastapi import APIRouter
from pydantic import Field

from penwise.core.wire import CamelModel
from penwise.web.deps import AddressDep, AppDep
from penwise.web.openapi import ErrorResponse, MessageResponse, ValidationErrorResponse

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(CamelModel):
    """Credentials for opening a session."""

    email_address: str = Field(..., description="Registered email address")
    password: str = Field(..., min_length=8, description="Account password")


class LoginResponse(CamelModel):
    """Token pair, or an OTP challenge when two-factor authentication is on."""

    user_id: str = Field(..., description="Authenticated user ID")
    token: str | None = Field(None, description="Access token (absent while an OTP is pending)")
    refresh_token: str | None = Field(None, description="Refresh token (absent while an OTP is pending)")
    message: str | None = Field(None, description="OTP delivery message when two-factor is on")


class VerifyOtpRequest(CamelModel):
    user_id: str = Field(..., min_length=1, description="User the OTP was issued to")
    otp_value: str = Field(..., min_length=1, description="One-time password")


class VerifyOtpResponse(CamelModel):
    success: bool = True
    message: str = "OTP Verified!"
    status: str = "OK"
    token: str = Field(..., description="Access token")
    refresh_token: str = Field(..., description="Refresh token")


class ResendOtpRequest(CamelModel):
    user_id: str = Field(..., min_length=1, description="User to send a new OTP to")


class RefreshTokenRequest(CamelModel):
    user_id: str = Field(..., min_length=1, description="Session owner")
    refresh_token: str = Field(..., min_length=1, description="Refresh token issued at login")


class RefreshTokenResponse(CamelModel):
    message: str = "Token generated successfully!"
    access_token: str = Field(..., description="New access token")
    refresh_token: str = Field(..., description="Refresh token to present next time")


class LogoutRequest(CamelModel):
    user_id: str | None = Field(None, description="Session owner")


class ResetPasswordRequest(CamelModel):
    email_address: str = Field(..., description="Account email address")
    password: str = Field(..., description="New password")


@router.post(
    "/login",
    response_model_exclude_none=True,
    summary="Authenticate user",
    description="Check credentials. Returns a token pair, or issues an OTP when two-factor is enabled.",
    operation_id="login",
    responses={
        200: {"description": "Authenticated or OTP issued"},
        400: {"model": ValidationErrorResponse, "description": "Malformed request"},
        401: {"model": ErrorResponse, "description": "Invalid credentials, locked account or expired password"},
        404: {"model": ErrorResponse, "description": "User does not exist"},
        429: {"model": ErrorResponse, "description": "Too many OTP requests"},
    },
)
async def login(login_data: LoginRequest, app: AppDep, address: AddressDep) -> LoginResponse:
    result = await app.login(login_data.email_address, login_data.password, address)
    if result.tokens is None:
        return LoginResponse(user_id=result.user_id, message=f"Your One Time Password is: {result.otp}")
    return LoginResponse(
        user_id=result.user_id, token=result.tokens.token, refresh_token=result.tokens.refresh_token
    )


@router.post(
    "/verifyOtp",
    summary="Verify OTP",
    description="Complete a pending two-factor challenge and receive the token pair.",
    operation_id="verifyOtp",
    responses={
        200: {"description": "OTP verified"},
        400: {"model": ErrorResponse, "description": "Invalid OTP"},
        401: {"model": ErrorResponse, "description": "No active or expired session"},
        409: {"model": ErrorResponse, "description": "OTP already used or expired"},
    },
)
async def verify_otp(verify_data: VerifyOtpRequest, app: AppDep) -> VerifyOtpResponse:
    tokens = await app.verify_otp(verify_data.user_id, verify_data.otp_value)
    return VerifyOtpResponse(token=tokens.token, refresh_token=tokens.refresh_token)


@router.post(
    "/resendOtp",
    summary="Resend OTP",
    description="Issue a fresh OTP for the user's current session.",
    operation_id="resendOtp",
    responses={
        200: {"description": "New OTP issued"},
        404: {"model": ErrorResponse, "description": "User or session not found"},
        429: {"model": ErrorResponse, "description": "Resend limit reached"},
    },
)
async def resend_otp(resend_data: ResendOtpRequest, app: AppDep) -> MessageResponse:
    otp = await app.resend_otp(resend_data.user_id)
    return MessageResponse(message=f"Your One Time Password is: {otp}")


@router.post(
    "/refreshToken",
    summary="Refresh access token",
    description="Exchange the session's refresh token for a new access token.",
    operation_id="refreshToken",
    status_code=201,
    responses={
        201: {"description": "Token generated"},
        401: {"model": ErrorResponse, "description": "Expired or invalid session"},
        404: {"model": ErrorResponse, "description": "No active session"},
    },
)
async def refresh_token(refresh_data: RefreshTokenRequest, app: AppDep) -> RefreshTokenResponse:
    tokens = await app.refresh_token(refresh_data.user_id, refresh_data.refresh_token)
    return RefreshTokenResponse(access_token=tokens.token, refresh_token=tokens.refresh_token)


@router.post(
    "/logout",
    summary="End session",
    description="Delete the user's session. Logging out without a session still succeeds.",
    operation_id="logout",
    responses={
        200: {"description": "Logged out"},
        400: {"model": ErrorResponse, "description": "userId missing"},
    },
)
async def logout(logout_data: LogoutRequest, app: AppDep) -> MessageResponse:
    await app.logout(logout_data.user_id)
    return MessageResponse(message="logout successful")


@router.post(
    "/resetPassword",
    summary="Reset password",
    description="Replace the account password, unlock the account and reactivate it.",
    operation_id="resetPassword",
    status_code=201,
    responses={
        201: {"description": "Password changed"},
        400: {"model": ErrorResponse, "description": "Password does not meet requirements"},
        404: {"model": ErrorResponse, "description": "User does not exist"},
    },
)
async def reset_password(reset_data: ResetPasswordRequest, app: AppDep) -> MessageResponse:
    await app.reset_password(reset_data.email_address, reset_data.password)
    return MessageResponse(message="Password has been changed")
