from fastapi import APIRouter
from pydantic import Field

from penwise.core.modules.user.models import PreferencesUpdate, PreferencesView, UserRole, UserView
from penwise.core.wire import CamelModel
from penwise.web.deps import AppDep, ClaimsDep
from penwise.web.openapi import ErrorResponse, ValidationErrorResponse

router = APIRouter(prefix="/user", tags=["users"])


class RegisterUserRequest(CamelModel):
    """Request to create a new account."""

    name: str = Field(..., min_length=1, description="Display name")
    email_address: str = Field(..., description="Email address, used to log in")
    password: str = Field(..., description="Password")
    role: UserRole = Field(UserRole.USER, description="Account role")


class RegisterUserResponse(CamelModel):
    message: str = "User registered"
    user: UserView


class PreferencesResponse(CamelModel):
    message: str = "Preferences successfully updated!"
    preferences: PreferencesView


@router.post(
    "/register",
    summary="Register user",
    description="Create an account with an active password record.",
    operation_id="registerUser",
    status_code=201,
    responses={
        201: {"description": "User registered"},
        400: {"model": ValidationErrorResponse, "description": "Invalid email or weak password"},
        409: {"model": ErrorResponse, "description": "User already exists"},
    },
)
async def register_user(register_data: RegisterUserRequest, app: AppDep) -> RegisterUserResponse:
    user = await app.register_user(
        register_data.name, register_data.email_address, register_data.password, register_data.role
    )
    return RegisterUserResponse(user=user)


@router.post(
    "/preferences",
    summary="Update preferences",
    description="Replace the caller's preferences, creating them on first use.",
    operation_id="updatePreferences",
    responses={
        200: {"description": "Preferences updated"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def update_preferences(update: PreferencesUpdate, app: AppDep, claims: ClaimsDep) -> PreferencesResponse:
    return PreferencesResponse(preferences=await app.update_preferences(claims, update))
