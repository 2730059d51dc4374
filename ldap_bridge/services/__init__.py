"""Application service layer used by the routers."""

from .audit import audit_login

__all__ = ["audit_login"]
