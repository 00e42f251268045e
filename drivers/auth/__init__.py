"""Provider authentication - strategies, cached tokens and the auth manager."""

from drivers.auth.manager import AuthManager, AuthState
from drivers.auth.strategies import (
    AuthContext,
    AuthKind,
    AuthStrategy,
    BasicStatic,
    JwtObtainRefresh,
    OAuth2PasswordRefresh,
    SessionToken,
    SoapHeader,
)
from drivers.auth.tokens import TokenRecord

__all__ = [
    "AuthManager",
    "AuthState",
    "AuthContext",
    "AuthKind",
    "AuthStrategy",
    "BasicStatic",
    "JwtObtainRefresh",
    "OAuth2PasswordRefresh",
    "SessionToken",
    "SoapHeader",
    "TokenRecord",
]
