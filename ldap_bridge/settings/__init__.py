"""Typed configuration (schema) and its file persistence (storage)."""

from .schema import CURRENT_SCHEMA_VERSION, LdapSettings
from .storage import load_settings, save_settings

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "LdapSettings",
    "load_settings",
    "save_settings",
]
