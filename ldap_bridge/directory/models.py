from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from ldap3.utils.ciDict import CaseInsensitiveDict

ADMIN_FILTER_DISABLED = "_disabled_"


class TlsMode(str, Enum):
    NONE = "none"
    LDAPS = "ldaps"
    START_TLS = "starttls"


@dataclass(frozen=True)
class DirectoryConfig:
    """Immutable snapshot of the directory settings for one operation."""

    host: str
    port: int
    tls_mode: TlsMode = TlsMode.NONE
    skip_ssl_verify: bool = False
    root_ca_path: str = ""
    client_cert_path: str = ""
    client_key_path: str = ""

    bind_dn: str = ""
    bind_password: str = field(default="", repr=False)

    base_dn: str = ""
    search_filter: str = ""
    admin_base_dn: str = ""
    admin_filter: str = ""

    username_attributes: tuple[str, ...] = ("uid",)
    username_attribute: str = "uid"
    password_attribute: str = ""
    case_insensitive_username: bool = False
    allow_pass_change: bool = False

    connect_timeout: float | None = None
    receive_timeout: float | None = None

    @property
    def use_ssl(self) -> bool:
        return self.tls_mode is TlsMode.LDAPS

    @property
    def use_start_tls(self) -> bool:
        return self.tls_mode is TlsMode.START_TLS

    @property
    def effective_admin_base_dn(self) -> str:
        return self.admin_base_dn or self.base_dn

    @property
    def admin_filter_enabled(self) -> bool:
        return bool(self.admin_filter) and self.admin_filter != ADMIN_FILTER_DISABLED


@dataclass(frozen=True)
class ServerAddress:
    host: str
    port: int
    use_ssl: bool


@dataclass(frozen=True)
class DirectoryEntry:
    """A search result: DN plus attribute values (names are case-insensitive).

    ``server`` is the referred server the entry was read from, ``None`` for
    the configured one.
    """

    dn: str
    attributes: Mapping[str, tuple[str, ...]] = field(default_factory=CaseInsensitiveDict)
    server: ServerAddress | None = None

    def values(self, name: str) -> tuple[str, ...] | None:
        """All values of ``name``, or ``None`` when the entry lacks it."""
        if name in self.attributes:
            return self.attributes[name]
        return None

    def first(self, name: str) -> str | None:
        vals = self.values(name)
        return vals[0] if vals else None


@dataclass(frozen=True)
class ResolvedIdentity:
    entry: DirectoryEntry
    username: str | None


@dataclass(frozen=True)
class AuthenticationOutcome:
    username: str
    is_admin: bool
    dn: str
