from __future__ import annotations

import logging

from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker

from .db import create_session_factory, sqlite_url
from .env_settings import get_env
from .log_config import setup_logging
from .provider import LdapAuthenticationProvider
from .routers import ldap_api
from .settings import load_settings
from .users import SqlUserStore

logger = logging.getLogger(__name__)


def create_app(
    provider: LdapAuthenticationProvider | None = None,
    session_factory: sessionmaker | None = None,
) -> FastAPI:
    """Build the HTTP app; everything not passed in comes from the environment."""
    env = get_env()
    setup_logging(env.log_level, env.log_retention_days, env.log_dir or None)

    if session_factory is None:
        session_factory = create_session_factory(sqlite_url(env.sqlite_path))
    if provider is None:
        provider = LdapAuthenticationProvider(
            lambda: load_settings(env.settings_path, secret=env.secret_key),
            SqlUserStore(session_factory),
        )

    app = FastAPI(title="LDAP Bridge")
    app.state.session_factory = session_factory
    app.state.provider = provider
    app.include_router(ldap_api.router)
    logger.info("LDAP bridge ready, settings file: %s", env.settings_path)
    return app
