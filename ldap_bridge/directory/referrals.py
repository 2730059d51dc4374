"""Subtree searches that follow referrals with the originating credentials.

ldap3's own referral chasing is switched off on every connection we open:
it would re-bind with whatever the referral connection inherits and can turn
a failed bind into an anonymous, empty result. Here every referred server
gets a fresh connection through :class:`DirectoryConnector` bound with the
same DN and password as the original search, and any failure along the way
is raised.
"""
from __future__ import annotations

import logging
from typing import Sequence
from urllib.parse import urlsplit

from ldap3 import NO_ATTRIBUTES, SUBTREE, Connection
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import RESULT_REFERRAL, RESULT_SUCCESS
from ldap3.utils.uri import parse_uri

from ..errors import AuthError
from .connection import DirectoryConnector
from .models import DirectoryEntry, ServerAddress
from .utils import entries_from_response

logger = logging.getLogger(__name__)

DEFAULT_HOP_LIMIT = 10


def _explicit_port(url: str) -> int | None:
    try:
        return urlsplit(url).port
    except ValueError:
        return None


class DirectorySearchError(Exception):
    pass


class ReferralHopLimitExceeded(DirectorySearchError):
    pass


class ReferralChaser:
    def __init__(
        self,
        connector: DirectoryConnector,
        bind_dn: str,
        bind_password: str,
        hop_limit: int = DEFAULT_HOP_LIMIT,
    ) -> None:
        self.connector = connector
        self.bind_dn = bind_dn
        self.bind_password = bind_password
        self.hop_limit = hop_limit

    def search(
        self,
        conn: Connection,
        base_dn: str,
        search_filter: str,
        attributes: Sequence[str] = (),
        _hops: int = 0,
        _server: ServerAddress | None = None,
    ) -> list[DirectoryEntry]:
        """Subtree search on ``conn``; referred servers are searched too.

        Entries are returned in result order, entries from a referral taking
        the place of the reference that pointed to them. Each entry records
        the server it came from, so later binds go where the DN lives.
        """
        attrs = list(attributes) if attributes else [NO_ATTRIBUTES]
        try:
            conn.search(
                search_base=base_dn,
                search_filter=search_filter or "(objectClass=*)",
                search_scope=SUBTREE,
                attributes=attrs,
            )
        except LDAPException as e:
            raise DirectorySearchError(f"search {search_filter!r} under {base_dn!r} failed: {e}") from e

        result = conn.result or {}
        code = result.get("result", RESULT_SUCCESS)

        if code == RESULT_REFERRAL:
            return self._follow(result.get("referrals") or [], base_dn, search_filter, attributes, _hops)
        if code != RESULT_SUCCESS:
            raise DirectorySearchError(
                f"search {search_filter!r} under {base_dn!r} failed: {result.get('description')} ({code})"
            )

        entries: list[DirectoryEntry] = []
        for item in conn.response or []:
            kind = item.get("type")
            if kind == "searchResEntry":
                entries.extend(entries_from_response([item], _server))
            elif kind == "searchResRef":
                entries.extend(self._follow(item.get("uri") or [], base_dn, search_filter, attributes, _hops))
        return entries

    def _follow(
        self,
        urls: Sequence[str],
        base_dn: str,
        search_filter: str,
        attributes: Sequence[str],
        hops: int,
    ) -> list[DirectoryEntry]:
        """Search one referral; ``urls`` are alternatives, first that works wins."""
        if hops + 1 > self.hop_limit:
            raise ReferralHopLimitExceeded(f"referral hop limit {self.hop_limit} exceeded at {list(urls)}")
        if not urls:
            raise DirectorySearchError("referral without any URL")

        last_error: Exception | None = None
        for url in urls:
            try:
                ref = parse_uri(url)
            except ValueError as e:
                logger.warning("Ignoring malformed referral %r: %s", url, e)
                last_error = e
                continue
            if not ref or not ref.get("host"):
                logger.warning("Ignoring referral without host: %r", url)
                continue

            # an ldap:// referral does not downgrade a LDAPS configuration
            use_ssl = bool(ref.get("ssl")) or self.connector.cfg.use_ssl
            port = _explicit_port(url) or (636 if use_ssl else 389)
            target = ServerAddress(ref["host"], port, use_ssl)
            target_base = ref.get("base") or base_dn
            logger.info("Following referral to %s:%s (ssl=%s, base %s)", target.host, target.port, use_ssl, target_base)
            try:
                with self.connector.connect(
                    self.bind_dn,
                    self.bind_password,
                    login=False,
                    host=target.host,
                    port=target.port,
                    use_ssl=target.use_ssl,
                ) as ref_conn:
                    return self.search(ref_conn, target_base, search_filter, attributes, hops + 1, target)
            except AuthError as e:
                logger.error("Bind at referred server %s failed: %s", ref["host"], e.detail)
                last_error = e

        raise DirectorySearchError(f"could not follow referral {list(urls)}: {last_error}")
