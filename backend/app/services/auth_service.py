"""Authentication service.

Users sign in through the frontend's auth provider, which issues HS256
JWT access tokens carrying the user id in ``sub``. This service mints
tokens (seed scripts, tests) and resolves a bearer token to a User.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.user import User

logger = logging.getLogger(__name__)


class AuthServiceError(Exception):
    """Base exception for auth service errors."""

    pass


class InvalidTokenError(AuthServiceError):
    """Raised when token is invalid or expired."""

    pass


class AuthService:
    """Service class for authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def create_access_token(user_id: int) -> tuple[str, int]:
        """Create a JWT access token for a user.

        Args:
            user_id: User's database ID

        Returns:
            Tuple of (token string, lifetime in seconds)
        """
        now = datetime.now(UTC)
        expire = now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

        payload = {
            "sub": str(user_id),
            "type": "access",
            "exp": int(expire.timestamp()),
            "iat": int(now.timestamp()),
        }

        token = jwt.encode(
            payload,
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )
        return token, settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @staticmethod
    def decode_access_token(token: str) -> int:
        """Decode and validate an access token.

        Returns:
            The user id from ``sub``

        Raises:
            InvalidTokenError: If token is invalid, expired or not an access token
        """
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
            )
        except JWTError as e:
            logger.warning(f"Token decode error: {e}")
            raise InvalidTokenError("Invalid or expired token")

        if payload.get("type", "access") != "access":
            raise InvalidTokenError("Invalid token type")
        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise InvalidTokenError("Token has no valid subject")

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def validate_access_token(self, token: str) -> User:
        """Validate an access token and return the associated user.

        Raises:
            InvalidTokenError: If token is invalid or the user is gone
        """
        user = await self.get_user_by_id(self.decode_access_token(token))
        if not user:
            raise InvalidTokenError("User not found")
        return user


def get_auth_service(db: AsyncSession) -> AuthService:
    return AuthService(db)
