from __future__ import annotations

import logging

from ldap3.core.exceptions import LDAPException

from ..errors import AuthError, AuthErrorKind
from .connection import DirectoryConnector
from .models import DirectoryConfig, DirectoryEntry
from .referrals import DirectorySearchError, ReferralChaser
from .utils import substitute_username

logger = logging.getLogger(__name__)


class AdminDeterminer:
    """Decides the administrator flag from a second, privileged search."""

    def __init__(self, cfg: DirectoryConfig, connector: DirectoryConnector) -> None:
        self.cfg = cfg
        self.connector = connector

    def admin_filter_for(self, login_username: str) -> str:
        return substitute_username(self.cfg.admin_filter, login_username)

    def is_admin(self, entry: DirectoryEntry, login_username: str) -> bool:
        cfg = self.cfg
        if not cfg.admin_filter_enabled:
            return False

        admin_filter = self.admin_filter_for(login_username)
        base_dn = cfg.effective_admin_base_dn
        try:
            chaser = ReferralChaser(self.connector, cfg.bind_dn, cfg.bind_password)
            with self.connector.connect() as conn:
                results = chaser.search(conn, base_dn, admin_filter)
        except (AuthError, DirectorySearchError, LDAPException) as e:
            # a directory error must never quietly demote or promote anyone
            logger.error("Failed to check for admin with: %s under %s (%s)", admin_filter, base_dn, e)
            raise AuthError(
                AuthErrorKind.ADMIN_CHECK_FAILED, f"admin filter {admin_filter!r} under {base_dn!r} failed: {e}"
            ) from e

        for result in results:
            logger.info("Admin checking: %s", result.dn)
            if result.dn == entry.dn:
                return True
        return False
