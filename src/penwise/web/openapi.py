from typing import Any

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from pydantic import BaseModel, Field

# Endpoints reachable without an access token
PUBLIC_ENDPOINTS = {
    ("GET", "/health"),
    ("POST", "/auth/login"),
    ("POST", "/auth/verifyOtp"),
    ("POST", "/auth/resendOtp"),
    ("POST", "/auth/refreshToken"),
    ("POST", "/auth/logout"),
    ("POST", "/auth/resetPassword"),
    ("POST", "/user/register"),
}


def set_custom_openapi(app: FastAPI) -> None:
    def custom_openapi() -> dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title="Penwise API",
            version="0.1.0",
            summary="Journaling backend with OTP sessions and queued entry analysis",
            routes=app.routes,
        )

        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "BearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "Access token returned by login, verifyOtp or refreshToken",
            },
        }
        openapi_schema["security"] = [{"BearerAuth": []}]

        for path, path_item in openapi_schema["paths"].items():
            for method, operation in path_item.items():
                if (method.upper(), path) in PUBLIC_ENDPOINTS:
                    operation["security"] = []

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi  # type: ignore[method-assign]


class ErrorResponse(BaseModel):
    """Standard error response format."""

    message: str = Field(..., description="Human-readable error message")
    type: str = Field(..., description="Machine-readable error type")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"message": "Invalid credentials", "type": "authentication_error"},
                {"message": "User does not exist", "type": "not_found"},
                {"message": "Too Many OTP requests, try again later!", "type": "rate_limited"},
            ]
        }
    }


class ValidationErrorResponse(BaseModel):
    """Request body validation failure."""

    message: str = Field(..., description="Always 'Validation error'")
    errors: dict[str, str] = Field(..., description="Field path to error message")


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str = Field(..., description="Human-readable outcome")
