"""Directory (LDAP) access: connections, trust, referrals, lookups.

Public API:
    - DirectoryConfig, TlsMode, DirectoryEntry, ServerAddress, ResolvedIdentity, AuthenticationOutcome
    - DirectoryConnector
    - UserResolver
    - AdminDeterminer
"""

from .models import (
    ADMIN_FILTER_DISABLED,
    AuthenticationOutcome,
    DirectoryConfig,
    DirectoryEntry,
    ResolvedIdentity,
    ServerAddress,
    TlsMode,
)
from .connection import DirectoryConnector
from .resolver import UserResolver
from .admin import AdminDeterminer

__all__ = [
    "ADMIN_FILTER_DISABLED",
    "AuthenticationOutcome",
    "DirectoryConfig",
    "DirectoryEntry",
    "ResolvedIdentity",
    "ServerAddress",
    "TlsMode",
    "DirectoryConnector",
    "UserResolver",
    "AdminDeterminer",
]
