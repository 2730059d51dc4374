"""Operator-facing checks of the directory settings.

Not part of the login path: nothing here touches user records.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from ldap3 import NO_ATTRIBUTES, SUBTREE
from ldap3.core.exceptions import LDAPBindError

from .directory.connection import CONNECT_ERRORS, DirectoryConnector
from .directory.referrals import DirectorySearchError, ReferralChaser
from .directory.utils import substitute_username
from .errors import AuthError, AuthErrorKind

logger = logging.getLogger(__name__)

NOT_STARTED = "Not started"
STARTED = "Testing..."
SUCCESS = "Success"


@dataclass
class ServerTestResponse:
    connect: str = NOT_STARTED
    start_tls: str = NOT_STARTED
    bind: str = NOT_STARTED
    base_search: str = NOT_STARTED
    error: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FilterTestResponse:
    users: int = 0
    admins: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def test_server_bind(connector: DirectoryConnector) -> ServerTestResponse:
    """Walk connect, StartTLS, bind and a base search, reporting each step.

    The step that fails carries the error message; later steps stay
    "Not started".
    """
    cfg = connector.cfg
    response = ServerTestResponse()
    step = "connect"
    conn = None
    try:
        response.connect = STARTED
        conn = connector.make_connection(cfg.bind_dn, cfg.bind_password)
        conn.open()
        if cfg.use_ssl:
            connector.check_trust(conn, cfg.host)
        response.connect = SUCCESS

        if cfg.use_start_tls:
            step = "start_tls"
            response.start_tls = STARTED
            conn.start_tls()
            connector.check_trust(conn, cfg.host)
            response.start_tls = SUCCESS

        step = "bind"
        response.bind = STARTED
        if not conn.bind():
            raise LDAPBindError(str((conn.result or {}).get("description", "bind failed")))
        response.bind = SUCCESS if cfg.bind_dn else "Anonymous"

        step = "base_search"
        response.base_search = STARTED
        conn.search(
            search_base=cfg.base_dn,
            search_filter="(objectClass=*)",
            search_scope=SUBTREE,
            attributes=[NO_ATTRIBUTES],
        )
        count = sum(1 for item in (conn.response or []) if item.get("type") == "searchResEntry")
        response.base_search = f"Found {count} Entities"
    except CONNECT_ERRORS as e:
        logger.warning("Ldap Test Failed to Connect or Bind to server at step %s: %s", step, e)
        setattr(response, step, str(e) or type(e).__name__)
        response.error = str(e) or type(e).__name__
    finally:
        if conn is not None:
            connector.release(conn)
    return response


def test_filters(connector: DirectoryConnector) -> FilterTestResponse:
    """Count the entries matched by the user filter and by the admin filter.

    ``{username}`` in the admin filter becomes ``*`` so every potential
    administrator is counted.
    """
    cfg = connector.cfg
    response = FilterTestResponse()
    chaser = ReferralChaser(connector, cfg.bind_dn, cfg.bind_password)
    with connector.connect() as conn:
        try:
            response.users = len(chaser.search(conn, cfg.base_dn, cfg.search_filter))
            if cfg.admin_filter_enabled:
                admin_filter = substitute_username(cfg.admin_filter, "*", escape=False)
                response.admins = len(chaser.search(conn, cfg.effective_admin_base_dn, admin_filter))
        except DirectorySearchError as e:
            logger.warning("Ldap filter test failed: %s", e)
            raise AuthError(AuthErrorKind.CONNECTION_FAILED, str(e)) from e
    return response
