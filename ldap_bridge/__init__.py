"""LDAP authentication bridge for a host application's user store."""

from .errors import AuthError, AuthErrorKind, AuthResult
from .provider import LdapAuthenticationProvider

__all__ = [
    "AuthError",
    "AuthErrorKind",
    "AuthResult",
    "LdapAuthenticationProvider",
]
