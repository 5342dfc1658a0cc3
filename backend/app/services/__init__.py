"""Services for handling business logic and external integrations."""

from app.services.r2_storage import R2StorageError, R2StorageService, get_r2_service
from app.services.token_service import (
    TokenService,
    InsufficientTokensError,
    get_token_service,
)

__all__ = [
    "R2StorageService",
    "R2StorageError",
    "get_r2_service",
    "TokenService",
    "InsufficientTokensError",
    "get_token_service",
]
