from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from ..crypto import open_secret, seal_secret
from .schema import CURRENT_SCHEMA_VERSION, LdapSettings

logger = logging.getLogger(__name__)

_SEALED_KEY = "bind_password_enc"


def load_settings(path: str | os.PathLike, *, secret: str | None = None) -> LdapSettings:
    """Read settings from ``path``; a missing file yields the defaults."""
    p = Path(path)
    if not p.is_file():
        logger.info("No settings file at %s, using defaults", p)
        return LdapSettings()

    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"settings file {p} does not contain an object")

    sealed = raw.pop(_SEALED_KEY, "")
    raw.pop("bind_password", None)
    if sealed:
        raw["bind_password"] = open_secret(sealed, secret)

    version = int(raw.get("schema_version") or 0)
    if version > CURRENT_SCHEMA_VERSION:
        logger.warning("Settings file %s was written by a newer version (%d)", p, version)
    raw["schema_version"] = CURRENT_SCHEMA_VERSION

    try:
        return LdapSettings.model_validate(raw)
    except ValidationError:
        logger.error("Invalid settings in %s", p)
        raise


def save_settings(
    path: str | os.PathLike,
    data: LdapSettings,
    *,
    keep_secrets_if_blank: bool = True,
    secret: str | None = None,
) -> None:
    """Persist ``data``; the bind password is stored sealed, never in clear."""
    p = Path(path)
    payload = data.model_dump(mode="json", exclude={"bind_password"})
    payload["schema_version"] = CURRENT_SCHEMA_VERSION

    if data.bind_password or not keep_secrets_if_blank:
        payload[_SEALED_KEY] = seal_secret(data.bind_password or "", secret)
    elif p.is_file():
        previous = json.loads(p.read_text(encoding="utf-8"))
        payload[_SEALED_KEY] = previous.get(_SEALED_KEY, "")

    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    os.chmod(tmp, 0o600)
    os.replace(tmp, p)
