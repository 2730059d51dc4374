import json

import pytest
from pydantic import ValidationError

from ldap_bridge.directory import TlsMode
from ldap_bridge.settings import LdapSettings, load_settings, save_settings


def test_defaults():
    s = LdapSettings()
    assert s.server == "ldap-server.contoso.com"
    assert s.port == 389
    assert s.tls_mode is TlsMode.LDAPS
    assert s.username_attributes == ("uid", "cn", "mail", "displayName")
    assert s.admin_filter == "(enabledService=JellyfinAdministrator)"
    assert s.create_users_from_ldap is True


def test_search_attributes_whitespace_is_insignificant():
    s = LdapSettings(search_attributes=" uid ,\tmail,, cn ")
    assert s.search_attributes == "uid, mail, cn"
    assert s.to_directory_config().username_attributes == ("uid", "mail", "cn")


def test_search_attributes_required():
    with pytest.raises(ValidationError):
        LdapSettings(search_attributes=" , ")


def test_ldaps_and_start_tls_are_exclusive():
    with pytest.raises(ValidationError):
        LdapSettings(use_ssl=True, use_start_tls=True)
    assert LdapSettings(use_ssl=False, use_start_tls=True).tls_mode is TlsMode.START_TLS
    assert LdapSettings(use_ssl=False).tls_mode is TlsMode.NONE


def test_client_certificate_needs_key():
    with pytest.raises(ValidationError):
        LdapSettings(client_cert_path="/etc/ldap/client.pem")


def test_port_range():
    with pytest.raises(ValidationError):
        LdapSettings(port=0)


def test_directory_config_hides_password():
    cfg = LdapSettings(bind_password="hunter2", admin_base_dn=" ").to_directory_config()
    assert cfg.bind_password == "hunter2"
    assert "hunter2" not in repr(cfg)
    assert cfg.effective_admin_base_dn == cfg.base_dn


def test_missing_file_gives_defaults(tmp_path):
    assert load_settings(tmp_path / "absent.json", secret="k") == LdapSettings()


def test_round_trip_seals_password(tmp_path):
    path = tmp_path / "ldap.json"
    original = LdapSettings(server="dc1.corp.test", bind_password="hunter2", enabled_folders=["films"])

    save_settings(path, original, secret="k")

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert "bind_password" not in raw
    assert "hunter2" not in path.read_text(encoding="utf-8")
    assert load_settings(path, secret="k") == original


def test_blank_password_keeps_stored_one(tmp_path):
    path = tmp_path / "ldap.json"
    save_settings(path, LdapSettings(bind_password="hunter2"), secret="k")
    save_settings(path, LdapSettings(bind_password="", server="dc2.corp.test"), secret="k")

    loaded = load_settings(path, secret="k")
    assert loaded.server == "dc2.corp.test"
    assert loaded.bind_password == "hunter2"


def test_password_under_other_key_is_dropped(tmp_path):
    path = tmp_path / "ldap.json"
    save_settings(path, LdapSettings(bind_password="hunter2"), secret="k")
    assert load_settings(path, secret="other").bind_password == ""
