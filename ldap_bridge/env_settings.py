from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LDAP_BRIDGE_", env_file=".env", extra="ignore")

    secret_key: str = Field("change-me", description="Key material for sealing the bind password at rest.")
    sqlite_path: str = Field("data/users.db")
    settings_path: str = Field("data/ldap_settings.json")

    log_level: str = Field("INFO")
    log_dir: str = Field("data/logs")
    log_retention_days: int = Field(30)


@lru_cache(maxsize=1)
def get_env() -> EnvSettings:
    return EnvSettings()
