from __future__ import annotations

import logging
import ssl
from contextlib import contextmanager
from typing import Callable, Iterator

from ldap3 import ANONYMOUS, NONE, SIMPLE, SYNC, Connection, Server
from ldap3.core.exceptions import LDAPBindError, LDAPException

from ..errors import AuthError, AuthErrorKind
from .models import DirectoryConfig, ServerAddress
from .trust import TrustPolicy, build_tls, evaluate_server_certificate, load_ca_bundle, trust_policy_for

logger = logging.getLogger(__name__)

ServerFactory = Callable[[str, int, bool], Server]


class UntrustedServerCertificate(Exception):
    pass


def server_overrides(server: ServerAddress | None) -> dict:
    """``connect()`` keyword arguments aiming at ``server``; empty for the configured one."""
    if server is None:
        return {}
    return {"host": server.host, "port": server.port, "use_ssl": server.use_ssl}


# Everything that can go wrong between socket open and a completed bind.
CONNECT_ERRORS = (LDAPException, OSError, ValueError, UntrustedServerCertificate)


class DirectoryConnector:
    """Opens bound ldap3 connections for one :class:`DirectoryConfig`.

    Every connection handed out is fully bound; a failure at any step (socket,
    TLS, trust, bind) unbinds before the error propagates, so callers never
    see a half-initialized handle.
    """

    def __init__(
        self,
        cfg: DirectoryConfig,
        *,
        client_strategy: str = SYNC,
        server_factory: ServerFactory | None = None,
    ) -> None:
        self.cfg = cfg
        self._client_strategy = client_strategy
        self._server_factory = server_factory

    def _server(self, host: str, port: int, use_ssl: bool) -> Server:
        if self._server_factory is not None:
            return self._server_factory(host, port, use_ssl)
        # get_info=NONE: no rootDSE/schema reads on every unit of work
        return Server(
            host=host,
            port=port,
            use_ssl=use_ssl,
            tls=build_tls(self.cfg, host),
            get_info=NONE,
            connect_timeout=self.cfg.connect_timeout,
        )

    def make_connection(
        self,
        bind_dn: str,
        bind_password: str,
        *,
        host: str | None = None,
        port: int | None = None,
        use_ssl: bool | None = None,
    ) -> Connection:
        """An unopened connection; :meth:`connect` is what callers normally want."""
        cfg = self.cfg
        server = self._server(
            host or cfg.host,
            port or cfg.port,
            cfg.use_ssl if use_ssl is None else use_ssl,
        )
        return Connection(
            server,
            user=bind_dn or None,
            password=bind_password if bind_dn else None,
            authentication=SIMPLE if bind_dn else ANONYMOUS,
            auto_bind=False,
            auto_referrals=False,
            raise_exceptions=True,
            client_strategy=self._client_strategy,
            receive_timeout=self.cfg.receive_timeout,
        )

    @contextmanager
    def connect(
        self,
        bind_dn: str | None = None,
        bind_password: str | None = None,
        *,
        login: bool | None = None,
        host: str | None = None,
        port: int | None = None,
        use_ssl: bool | None = None,
    ) -> Iterator[Connection]:
        """Yield a bound connection and always release it afterwards.

        Without ``bind_dn`` the service account from the config is used and
        failures are :attr:`AuthErrorKind.CONNECTION_FAILED`. With an explicit
        DN the bind is a login attempt and failures are
        :attr:`AuthErrorKind.INVALID_CREDENTIALS` (override with ``login``).
        """
        conn = self.open_bound(bind_dn, bind_password, login=login, host=host, port=port, use_ssl=use_ssl)
        try:
            yield conn
        finally:
            self.release(conn)

    def open_bound(
        self,
        bind_dn: str | None = None,
        bind_password: str | None = None,
        *,
        login: bool | None = None,
        host: str | None = None,
        port: int | None = None,
        use_ssl: bool | None = None,
    ) -> Connection:
        cfg = self.cfg
        if login is None:
            login = bind_dn is not None
        if bind_dn is None:
            bind_dn, bind_password = cfg.bind_dn, cfg.bind_password
        failure = AuthErrorKind.INVALID_CREDENTIALS if login else AuthErrorKind.CONNECTION_FAILED

        if login and not bind_password:
            # a simple bind with a DN and no password is an unauthenticated bind
            logger.warning("Rejected bind as user %s: empty password", bind_dn)
            raise AuthError(failure, f"empty password for {bind_dn}")

        target_host = host or cfg.host
        target_port = port or cfg.port
        target_ssl = cfg.use_ssl if use_ssl is None else use_ssl

        conn: Connection | None = None
        try:
            conn = self.make_connection(
                bind_dn, bind_password or "", host=target_host, port=target_port, use_ssl=target_ssl
            )
            conn.open()
            tls_active = target_ssl
            if cfg.use_start_tls and not target_ssl:
                conn.start_tls()
                tls_active = True
            if tls_active:
                self.check_trust(conn, target_host)

            logger.debug("Trying bind as user %s", bind_dn or "<anonymous>")
            if not conn.bind():
                raise LDAPBindError(str((conn.result or {}).get("description", "bind failed")))
        except CONNECT_ERRORS as e:
            if conn is not None:
                self.release(conn)
            logger.error(
                "Failed to connect or bind to %s:%s as user %s: %s",
                target_host, target_port, bind_dn or "<anonymous>", e,
            )
            raise AuthError(failure, f"bind as {bind_dn or '<anonymous>'} at {target_host}:{target_port} failed: {e}") from e
        return conn

    def verify_credentials(self, dn: str, password: str, server: ServerAddress | None = None) -> None:
        """Bind as ``dn``; raises ``AuthError(INVALID_CREDENTIALS)`` on failure.

        ``server`` is where the entry was found when that was a referred server.
        """
        with self.connect(dn, password, login=True, **server_overrides(server)):
            pass

    def check_trust(self, conn: Connection, host: str) -> None:
        """Apply the trust policy to the peer certificate of a TLS connection."""
        policy = trust_policy_for(self.cfg)
        if policy is TrustPolicy.DEFAULT:
            return
        sock = conn.socket
        der = None
        chain: list[bytes] = []
        if isinstance(sock, ssl.SSLSocket):
            der = sock.getpeercert(binary_form=True)
            get_chain = getattr(sock, "get_unverified_chain", None)  # Python 3.13+
            if get_chain is not None:
                chain = [c for c in (get_chain() or []) if isinstance(c, bytes)]
        ca_bundle = load_ca_bundle(self.cfg.root_ca_path) if policy is TrustPolicy.CUSTOM_CA else None
        decision = evaluate_server_certificate(der, chain, host, policy, ca_bundle)
        if not decision.accepted:
            raise UntrustedServerCertificate(f"certificate of {host} rejected: {', '.join(decision.statuses)}")

    @staticmethod
    def release(conn: Connection) -> None:
        try:
            conn.unbind()
        except (LDAPException, OSError) as e:
            logger.debug("Ignoring error while closing LDAP connection: %s", e)
