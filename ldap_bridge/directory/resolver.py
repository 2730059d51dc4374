from __future__ import annotations

import logging

from ldap3.core.exceptions import LDAPException

from ..errors import AuthError, AuthErrorKind
from .connection import DirectoryConnector
from .models import DirectoryConfig, DirectoryEntry, ResolvedIdentity
from .referrals import DirectorySearchError, ReferralChaser

logger = logging.getLogger(__name__)


def _fold_char(ch: str) -> str:
    # one-to-one mappings only: "ß" stays "ß" rather than becoming "SS"
    upper = ch.upper()
    return upper if len(upper) == 1 else ch


def usernames_equal(a: str, b: str, case_insensitive: bool) -> bool:
    """Ordinal comparison, optionally ignoring case character by character."""
    if not case_insensitive:
        return a == b
    return len(a) == len(b) and all(_fold_char(x) == _fold_char(y) for x, y in zip(a, b))


def match_entry(
    entries: list[DirectoryEntry],
    username: str,
    attributes: tuple[str, ...],
    case_insensitive: bool,
) -> DirectoryEntry | None:
    """First entry (in result order) with any value of any attribute equal to ``username``."""
    for entry in entries:
        for attr in attributes:
            for value in entry.values(attr) or ():
                if usernames_equal(username, value, case_insensitive):
                    return entry
    return None


class UserResolver:
    def __init__(self, cfg: DirectoryConfig, connector: DirectoryConnector) -> None:
        self.cfg = cfg
        self.connector = connector

    def search_candidates(self) -> list[DirectoryEntry]:
        """Run the configured user filter with the service account."""
        cfg = self.cfg
        requested = list(cfg.username_attributes)
        if cfg.username_attribute and cfg.username_attribute.lower() not in (a.lower() for a in requested):
            requested.append(cfg.username_attribute)

        chaser = ReferralChaser(self.connector, cfg.bind_dn, cfg.bind_password)
        with self.connector.connect() as conn:
            logger.debug("Search: %s %s @ %s", cfg.base_dn, cfg.search_filter, cfg.host)
            try:
                return chaser.search(conn, cfg.base_dn, cfg.search_filter, requested)
            except (DirectorySearchError, LDAPException) as e:
                logger.error("Failed to filter users with: %s (%s)", cfg.search_filter, e)
                raise AuthError(
                    AuthErrorKind.CONNECTION_FAILED, f"error applying user filter {cfg.search_filter!r}: {e}"
                ) from e

    def pick(self, candidates: list[DirectoryEntry], username: str) -> DirectoryEntry:
        cfg = self.cfg
        entry = match_entry(candidates, username, cfg.username_attributes, cfg.case_insensitive_username)
        if entry is None:
            logger.error("Found no users matching %s in LDAP search", username)
            raise AuthError(AuthErrorKind.USER_NOT_FOUND, f"no entry matches {username!r}")
        return entry

    def find_entry(self, username: str) -> DirectoryEntry:
        return self.pick(self.search_candidates(), username)

    def identity_of(self, entry: DirectoryEntry) -> ResolvedIdentity:
        canonical = entry.first(self.cfg.username_attribute)
        if canonical is None:
            logger.warning("LDAP attribute %s not found for user %s", self.cfg.username_attribute, entry.dn)
        return ResolvedIdentity(entry=entry, username=canonical)

    def resolve(self, username: str) -> ResolvedIdentity:
        """Search, match and extract the canonical username (``None`` if absent)."""
        return self.identity_of(self.find_entry(username))
