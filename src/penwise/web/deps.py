from typing import Annotated, cast

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from penwise.app import App
from penwise.core.modules.session.models import AccessClaims
from penwise.errors import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="BearerAuth")


async def get_app(request: Request) -> App:
    return cast(App, request.app.state.app)


async def get_claims(
    app: Annotated[App, Depends(get_app)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> AccessClaims:
    """Resolve the caller from the Authorization Bearer access token."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Invalid token")
    return app.authenticate(credentials.credentials)


def client_address(request: Request) -> str | None:
    return request.client.host if request.client else None


# Type aliases for dependencies
AppDep = Annotated[App, Depends(get_app)]
ClaimsDep = Annotated[AccessClaims, Depends(get_claims)]
AddressDep = Annotated[str | None, Depends(client_address)]
