"""FastAPI dependencies shared by the API routes.

This module provides reusable FastAPI dependencies for:
- Application settings
- UnitOfWork factory from app state
- Bearer token authentication
"""

from typing import Annotated, Callable

from fastapi import Depends, Header, Request

from sparklab.core.config import Settings
from sparklab.services.auth_token import (
    AuthenticatedUser,
    parse_bearer_token,
    verify_access_token,
)
from sparklab.uow import UnitOfWork


def get_settings() -> Settings:
    """Get application settings instance.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()  # type: ignore[call-arg]  # Pydantic loads from env vars


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.profiles.get_by_id(user_id)
    """
    return request.app.state.uow_factory


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    """Authenticate the caller from the Authorization: Bearer header.

    Raises:
        AuthenticationError: Missing header or invalid token (mapped to 401)
    """
    token = parse_bearer_token(authorization)
    return verify_access_token(token, settings.auth_jwt_secret, settings.auth_jwt_audience)


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
