from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from ..directory.models import DirectoryConfig, TlsMode
from ..directory.utils import split_attribute_list

CURRENT_SCHEMA_VERSION = 1


class LdapSettings(BaseModel):
    """Host-persisted configuration surface of the bridge."""

    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION)

    # connection
    server: str = Field(default="ldap-server.contoso.com", max_length=255)
    port: int = Field(default=389, ge=1, le=65535)
    use_ssl: bool = Field(default=True)
    use_start_tls: bool = Field(default=False)
    skip_ssl_verify: bool = Field(default=False)
    root_ca_path: str = Field(default="")
    client_cert_path: str = Field(default="")
    client_key_path: str = Field(default="")
    connect_timeout: float | None = Field(default=None, gt=0)
    receive_timeout: float | None = Field(default=None, gt=0)

    # service account
    bind_user: str = Field(default="CN=BindUser,DC=contoso,DC=com")
    bind_password: str = Field(default="password")  # plaintext; storage decides how to persist

    # searches
    base_dn: str = Field(default="o=domains,dc=contoso,dc=com")
    search_filter: str = Field(default="(memberOf=CN=JellyfinUsers,DC=contoso,DC=com)")
    admin_base_dn: str = Field(default="")
    admin_filter: str = Field(default="(enabledService=JellyfinAdministrator)")
    search_attributes: str = Field(default="uid, cn, mail, displayName")
    username_attribute: str = Field(default="uid")
    password_attribute: str = Field(default="userPassword")
    case_insensitive_username: bool = Field(default=False)

    # local accounts
    create_users_from_ldap: bool = Field(default=True)
    allow_pass_change: bool = Field(default=False)
    enable_all_folders: bool = Field(default=False)
    enabled_folders: list[str] = Field(default_factory=list)
    password_reset_url: str = Field(default="")

    @field_validator(
        "server",
        "root_ca_path",
        "client_cert_path",
        "client_key_path",
        "bind_user",
        "base_dn",
        "search_filter",
        "admin_base_dn",
        "admin_filter",
        "username_attribute",
        "password_attribute",
        "password_reset_url",
    )
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("enabled_folders")
    @classmethod
    def _strip_list(cls, v: list[str]) -> list[str]:
        return [(x or "").strip() for x in (v or []) if (x or "").strip()]

    @field_validator("search_attributes")
    @classmethod
    def _validate_attributes(cls, v: str) -> str:
        attrs = split_attribute_list(v)
        if not attrs:
            raise ValueError("At least one username search attribute is required.")
        return ", ".join(attrs)

    @model_validator(mode="after")
    def _check_tls_mode(self) -> "LdapSettings":
        if self.use_ssl and self.use_start_tls:
            raise ValueError("LDAPS and StartTLS cannot both be enabled.")
        if bool(self.client_cert_path) != bool(self.client_key_path):
            raise ValueError("Client certificate and key must be configured together.")
        return self

    @property
    def tls_mode(self) -> TlsMode:
        if self.use_ssl:
            return TlsMode.LDAPS
        if self.use_start_tls:
            return TlsMode.START_TLS
        return TlsMode.NONE

    @property
    def username_attributes(self) -> tuple[str, ...]:
        return split_attribute_list(self.search_attributes)

    def to_directory_config(self) -> DirectoryConfig:
        return DirectoryConfig(
            host=self.server,
            port=self.port,
            tls_mode=self.tls_mode,
            skip_ssl_verify=self.skip_ssl_verify,
            root_ca_path=self.root_ca_path,
            client_cert_path=self.client_cert_path,
            client_key_path=self.client_key_path,
            bind_dn=self.bind_user,
            bind_password=self.bind_password,
            base_dn=self.base_dn,
            search_filter=self.search_filter,
            admin_base_dn=self.admin_base_dn,
            admin_filter=self.admin_filter,
            username_attributes=self.username_attributes,
            username_attribute=self.username_attribute,
            password_attribute=self.password_attribute,
            case_insensitive_username=self.case_insensitive_username,
            allow_pass_change=self.allow_pass_change,
            connect_timeout=self.connect_timeout,
            receive_timeout=self.receive_timeout,
        )
