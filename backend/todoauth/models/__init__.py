# Todo Auth Models
from todoauth.models.base import BaseModel
from todoauth.models.refresh_token import RefreshToken
from todoauth.models.user import User

__all__ = [
    "BaseModel",
    "RefreshToken",
    "User",
]
