"""Application settings loaded from environment / .env file."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Metadata store ────────────────────────────────────
    db_host: str = "127.0.0.1"
    db_port: int = 9876
    db_username: str = ""
    db_password: str = ""
    db_keyspace: str = "xeon_console"
    db_connect_timeout: float = 10.0

    # ── Instance pools ────────────────────────────────────
    # JSON lists of {host, port, username, password}; unquoted keys are accepted
    free_instances: str = ""
    paid_instances: str = ""

    # ── Quotas ────────────────────────────────────────────
    max_databases_per_user: int = 0  # 0 = unlimited
    free_instance_storage: int = 500  # MB
    paid_instance_storage: int = 100  # GB

    # ── Naming ────────────────────────────────────────────
    name_prefix: str = "xeon_"

    # ── Security ──────────────────────────────────────────
    admin_token: str = ""  # empty disables the admin API

    # ── Service ───────────────────────────────────────────
    log_level: str = "INFO"
    allowed_origins: str = "*"


@lru_cache
def get_settings() -> Settings:
    return Settings()
