from __future__ import annotations

import re
from typing import Any, Iterable

from ldap3.utils.ciDict import CaseInsensitiveDict

from .models import DirectoryEntry, ServerAddress

USERNAME_TOKEN = "{username}"
_USERNAME_TOKEN_RE = re.compile(re.escape(USERNAME_TOKEN), re.IGNORECASE)


def escape_ldap_filter_value(value: str) -> str:
    """RFC 4515 escaping for LDAP filter values."""
    out: list[str] = []
    for ch in value:
        if ch == "\\":
            out.append("\\5c")
        elif ch == "*":
            out.append("\\2a")
        elif ch == "(":
            out.append("\\28")
        elif ch == ")":
            out.append("\\29")
        elif ch == "\x00":
            out.append("\\00")
        else:
            out.append(ch)
    return "".join(out)


def substitute_username(filter_template: str, username: str, *, escape: bool = True) -> str:
    """Replace every ``{username}`` token (any case) in an LDAP filter."""
    value = escape_ldap_filter_value(username) if escape else username
    # callable replacement: backslashes from escaping must not be read as group refs
    return _USERNAME_TOKEN_RE.sub(lambda _m: value, filter_template)


def split_attribute_list(text: str) -> tuple[str, ...]:
    """``"uid, cn,mail"`` -> ``("uid", "cn", "mail")``; whitespace is insignificant."""
    cleaned = re.sub(r"\s+", "", text or "")
    return tuple(a for a in cleaned.split(",") if a)


def _as_strings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(_to_str(v) for v in value)
    return (_to_str(value),)


def _to_str(v: Any) -> str:
    if isinstance(v, bytes):
        return v.decode("utf-8", errors="replace")
    return str(v)


def entry_from_response(item: dict, server: ServerAddress | None = None) -> DirectoryEntry:
    """Convert one ldap3 ``searchResEntry`` response dict."""
    attrs: CaseInsensitiveDict = CaseInsensitiveDict()
    for name, value in (item.get("attributes") or {}).items():
        attrs[name] = _as_strings(value)
    return DirectoryEntry(dn=item.get("dn", ""), attributes=attrs, server=server)


def entries_from_response(
    response: Iterable[dict] | None, server: ServerAddress | None = None
) -> list[DirectoryEntry]:
    return [entry_from_response(r, server) for r in (response or []) if r.get("type") == "searchResEntry"]
