"""LDAP authentication provider: the surface a host application talks to.

One call = one configuration snapshot. The provider never compares a
password itself: a successful bind as the user's DN is the authentication.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from ldap3 import MODIFY_REPLACE
from ldap3.core.exceptions import LDAPException

from . import diagnostics
from .directory import (
    AdminDeterminer,
    AuthenticationOutcome,
    DirectoryConfig,
    DirectoryConnector,
    ResolvedIdentity,
    UserResolver,
)
from .directory.connection import server_overrides
from .directory.referrals import DirectorySearchError, ReferralChaser
from .errors import AuthError, AuthErrorKind, AuthResult
from .models import UserRecord
from .settings import LdapSettings
from .users import UserStore

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[DirectoryConfig], DirectoryConnector]


class AuthState(str, Enum):
    START = "start"
    SERVICE_BIND = "service_bind"
    RESOLVE_USER = "resolve_user"
    VERIFY_CREDENTIAL = "verify_credential"
    ADMIN_CHECK = "admin_check"
    RECONCILE_USER_RECORD = "reconcile_user_record"
    DONE = "done"


@dataclass
class ResetInstruction:
    action: str
    pin_file: str
    pin_expiration_date: datetime | None = None


class LdapAuthenticationProvider:
    name = "LDAP-Authentication"
    is_enabled = True

    def __init__(
        self,
        settings_loader: Callable[[], LdapSettings],
        user_store: UserStore,
        *,
        connector_factory: ConnectorFactory = DirectoryConnector,
    ) -> None:
        self._settings_loader = settings_loader
        self._user_store = user_store
        self._connector_factory = connector_factory

    @property
    def provider_id(self) -> str:
        cls = type(self)
        return f"{cls.__module__}.{cls.__qualname__}"

    def _snapshot(self) -> tuple[LdapSettings, DirectoryConnector]:
        settings = self._settings_loader()
        return settings, self._connector_factory(settings.to_directory_config())

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> AuthResult:
        """Check ``username``/``password`` and bring the local record in line.

        Returns a successful :class:`AuthResult` with the canonical username
        and admin flag (``payload`` is the :class:`AuthenticationOutcome`),
        or a failed one carrying the :class:`AuthErrorKind`.
        """
        settings, connector = self._snapshot()
        state = AuthState.START
        try:
            state = AuthState.SERVICE_BIND
            resolver = UserResolver(connector.cfg, connector)
            candidates = resolver.search_candidates()

            state = AuthState.RESOLVE_USER
            identity = resolver.identity_of(resolver.pick(candidates, username))
            logger.debug("Setting username: %s", identity.username)
            if not identity.username:
                raise AuthError(
                    AuthErrorKind.MISCONFIGURED,
                    f"{identity.entry.dn} has no {connector.cfg.username_attribute!r} value",
                )

            state = AuthState.VERIFY_CREDENTIAL
            connector.verify_credentials(identity.entry.dn, password, identity.entry.server)

            state = AuthState.ADMIN_CHECK
            is_admin = AdminDeterminer(connector.cfg, connector).is_admin(identity.entry, username)

            state = AuthState.RECONCILE_USER_RECORD
            self._reconcile(settings, connector.cfg, identity.username, is_admin)
        except AuthError as e:
            logger.error("Authentication of %s failed at %s: %s (%s)", username, state.value, e.kind.value, e.detail)
            return AuthResult.failed(e.kind)

        outcome = AuthenticationOutcome(username=identity.username, is_admin=is_admin, dn=identity.entry.dn)
        logger.debug("Authentication of %s reached %s as %s", username, AuthState.DONE.value, outcome.username)
        return AuthResult(success=True, username=outcome.username, is_admin=is_admin, payload=outcome)

    def _reconcile(self, settings: LdapSettings, cfg: DirectoryConfig, username: str, is_admin: bool) -> None:
        store = self._user_store
        record = store.find_by_username(username)

        if record is None:
            if not settings.create_users_from_ldap:
                logger.error("User not configured for LDAP Uid: %s", username)
                raise AuthError(
                    AuthErrorKind.PROVISIONING_DISABLED,
                    f"automatic user creation is disabled and there is no user for {username!r}",
                )
            logger.info("Creating new user %s - is admin? %s", username, is_admin)
            record = store.create(username)
            record.auth_provider_id = self.provider_id
            record.password_reset_provider_id = self.provider_id
            record.is_administrator = is_admin
            record.enable_all_folders = settings.enable_all_folders
            if not settings.enable_all_folders:
                record.enabled_folders = settings.enabled_folders
            store.update(record)
            return

        # the directory decides the admin flag on every login, but only when asked to
        if cfg.admin_filter_enabled and record.is_administrator != is_admin:
            logger.debug("Updating user %s admin status to: %s", username, is_admin)
            record.is_administrator = is_admin
            store.update(record)

    def has_password(self, user: UserRecord) -> bool:
        return True

    # ------------------------------------------------------------------
    # Credential maintenance
    # ------------------------------------------------------------------

    def change_password(self, user: UserRecord, new_password: str) -> AuthResult:
        """Replace the password attribute using the service account's rights."""
        settings, connector = self._snapshot()
        cfg = connector.cfg
        if not cfg.allow_pass_change:
            return AuthResult.failed(AuthErrorKind.NOT_SUPPORTED)
        if not cfg.password_attribute:
            logger.error("Password attribute is not set")
            return AuthResult.failed(AuthErrorKind.MISCONFIGURED)

        try:
            entry = UserResolver(cfg, connector).find_entry(user.username)
            with connector.connect(**server_overrides(entry.server)) as conn:
                try:
                    conn.modify(entry.dn, {cfg.password_attribute: [(MODIFY_REPLACE, [new_password])]})
                except LDAPException as e:
                    logger.error("Failed to change %s of %s: %s", cfg.password_attribute, entry.dn, e)
                    raise AuthError(AuthErrorKind.CONNECTION_FAILED, f"modify of {entry.dn} failed: {e}") from e
        except AuthError as e:
            logger.error("Password change for %s failed: %s (%s)", user.username, e.kind.value, e.detail)
            return AuthResult.failed(e.kind)

        logger.info("Changed LDAP password of %s", entry.dn)
        return AuthResult(success=True, username=user.username)

    def start_forgot_password(self, user: UserRecord, is_in_network: bool = False) -> AuthResult:
        settings, _ = self._snapshot()
        reset_url = settings.password_reset_url
        if not reset_url:
            return AuthResult.failed(AuthErrorKind.NOT_SUPPORTED)

        reset_url = re.sub(r"\$userId", lambda _m: str(user.id), reset_url, flags=re.IGNORECASE)
        reset_url = re.sub(r"\$userName", lambda _m: user.username, reset_url, flags=re.IGNORECASE)
        return AuthResult(
            success=True,
            username=user.username,
            payload=ResetInstruction(action="pin_code", pin_file=reset_url),
        )

    def redeem_reset_pin(self, pin: str) -> AuthResult:
        return AuthResult.failed(AuthErrorKind.NOT_SUPPORTED)

    # ------------------------------------------------------------------
    # Tooling
    # ------------------------------------------------------------------

    def get_filtered_users(self, search_filter: str) -> list[str]:
        """DNs of the entries matching ``search_filter`` under the base DN."""
        _, connector = self._snapshot()
        cfg = connector.cfg
        chaser = ReferralChaser(connector, cfg.bind_dn, cfg.bind_password)
        with connector.connect() as conn:
            try:
                entries = chaser.search(conn, cfg.base_dn, search_filter, cfg.username_attributes)
            except DirectorySearchError as e:
                logger.warning("Failed to filter users with: %s (%s)", search_filter, e)
                raise AuthError(AuthErrorKind.CONNECTION_FAILED, str(e)) from e
        return [e.dn for e in entries]

    def locate_user(self, username: str) -> ResolvedIdentity:
        _, connector = self._snapshot()
        return UserResolver(connector.cfg, connector).resolve(username)

    def test_server_bind(self) -> diagnostics.ServerTestResponse:
        _, connector = self._snapshot()
        return diagnostics.test_server_bind(connector)

    def test_filters(self) -> diagnostics.FilterTestResponse:
        _, connector = self._snapshot()
        return diagnostics.test_filters(connector)
