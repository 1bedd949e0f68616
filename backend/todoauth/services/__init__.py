# Todo Auth Services
from todoauth.services.auth import AuthResult, AuthService, ClientInfo
from todoauth.services.lockout import LockoutPolicy
from todoauth.services.proxy import ServiceProxy
from todoauth.services.refresh_tokens import RefreshTokenLedger
from todoauth.services.revocation import RevocationStore
from todoauth.services.tokens import TokenCodec, TokenType
from todoauth.services.users import UserService

__all__ = [
    "AuthResult",
    "AuthService",
    "ClientInfo",
    "LockoutPolicy",
    "RefreshTokenLedger",
    "RevocationStore",
    "ServiceProxy",
    "TokenCodec",
    "TokenType",
    "UserService",
]
