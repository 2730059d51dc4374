from __future__ import annotations

import pytest
from ldap3 import MOCK_SYNC, NONE, Connection, Server

from ldap_bridge.db import create_session_factory
from ldap_bridge.directory import DirectoryConfig, DirectoryConnector
from ldap_bridge.settings import LdapSettings
from ldap_bridge.users import SqlUserStore

BASE_DN = "dc=test"
SERVICE_DN = "cn=svc,dc=test"
SERVICE_PASSWORD = "svc-secret"
ALICE_DN = "uid=alice,dc=test"
BOB_DN = "uid=bob,dc=test"


class FakeDirectory:
    """In-memory DIT shared by every connection built on ``server``."""

    def __init__(self, host: str = "ldap.test") -> None:
        self.server = Server(host, get_info=NONE)
        self._conn = Connection(self.server, client_strategy=MOCK_SYNC)

    def add(self, dn: str, attributes: dict) -> None:
        self._conn.strategy.add_entry(dn, attributes)

    def modify(self, dn: str, changes: dict) -> None:
        if not self._conn.bound:
            self._conn.bind()
        self._conn.modify(dn, changes)

    def connector(self, cfg: DirectoryConfig) -> DirectoryConnector:
        return DirectoryConnector(cfg, client_strategy=MOCK_SYNC, server_factory=lambda host, port, ssl: self.server)


@pytest.fixture
def directory() -> FakeDirectory:
    d = FakeDirectory()
    d.add(BASE_DN, {"objectClass": ["domain"], "dc": "test"})
    d.add(SERVICE_DN, {"objectClass": ["applicationProcess"], "cn": "svc", "userPassword": SERVICE_PASSWORD})
    d.add(
        ALICE_DN,
        {
            "objectClass": ["person", "inetOrgPerson"],
            "uid": "alice",
            "cn": "Alice Liddell",
            "mail": "alice@lab.example",
            "userPassword": "secret",
        },
    )
    d.add(
        BOB_DN,
        {
            "objectClass": ["person", "inetOrgPerson"],
            "uid": "bob",
            "cn": "Bob Builder",
            "mail": ["bob@lab.example", "robert@lab.example"],
            "userPassword": "builder",
        },
    )
    return d


def make_config(**overrides) -> DirectoryConfig:
    values = dict(
        host="ldap.test",
        port=389,
        bind_dn=SERVICE_DN,
        bind_password=SERVICE_PASSWORD,
        base_dn=BASE_DN,
        search_filter="(objectClass=person)",
        username_attributes=("uid", "mail"),
        username_attribute="uid",
        password_attribute="userPassword",
    )
    values.update(overrides)
    return DirectoryConfig(**values)


def make_settings(**overrides) -> LdapSettings:
    values = dict(
        server="ldap.test",
        port=389,
        use_ssl=False,
        bind_user=SERVICE_DN,
        bind_password=SERVICE_PASSWORD,
        base_dn=BASE_DN,
        search_filter="(uid=alice)",
        admin_filter="",
        search_attributes="uid",
        username_attribute="uid",
        create_users_from_ldap=True,
    )
    values.update(overrides)
    return LdapSettings(**values)


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite://")


@pytest.fixture
def user_store(session_factory) -> SqlUserStore:
    return SqlUserStore(session_factory)
