"""Bearer token verification for the managed auth platform.

Sign-up, sign-in and session refresh happen on the auth platform. This service only
verifies the access tokens it issues: HS256 JWTs signed with the project secret,
audience "authenticated", subject = user id.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog
from jose import JWTError, jwt

from sparklab.services.exceptions import AuthenticationError

logger = structlog.get_logger()

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller identity extracted from a verified access token."""

    id: UUID
    email: str = ""


def parse_bearer_token(authorization: str | None) -> str:
    """Extract the token from an Authorization header value.

    Raises:
        AuthenticationError: If the header is missing or carries no token
    """
    if not authorization:
        raise AuthenticationError("Missing authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid token")
    return token.strip()


def verify_access_token(token: str, secret: str, audience: str) -> AuthenticatedUser:
    """Verify an access token and return the caller it identifies.

    Checks signature, expiry and audience, then requires a UUID subject.

    Args:
        token: Encoded JWT
        secret: Shared signing secret of the auth project
        audience: Expected "aud" claim

    Returns:
        AuthenticatedUser with id from "sub" and optional email

    Raises:
        AuthenticationError: If any check fails
    """
    if not secret:
        logger.error("auth.secret_not_configured")
        raise AuthenticationError("Invalid token")

    try:
        claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], audience=audience)
    except JWTError as e:
        logger.warning("auth.token_rejected", error=str(e), error_type=type(e).__name__)
        raise AuthenticationError("Invalid token") from e

    try:
        user_id = UUID(str(claims.get("sub")))
    except ValueError as e:
        logger.warning("auth.invalid_subject")
        raise AuthenticationError("Invalid token") from e

    email = claims.get("email") or ""
    return AuthenticatedUser(id=user_id, email=email if isinstance(email, str) else "")
