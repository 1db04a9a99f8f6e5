"""Settings loaded from ``TODO_*`` environment variables."""

import logging
import os
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

logger = logging.getLogger(__name__)

ENV_PREFIX = "TODO"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./todos.db"
    storage: str = "sql"
    secret_key: str = field(default_factory=lambda: secrets.token_urlsafe(32))
    algorithm: str = "HS256"
    token_ttl_seconds: int = 3600
    bcrypt_rounds: int = 12
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    rate_limit_enabled: bool = True
    login_rate_limit: str = "5/minute"
    register_rate_limit: str = "10/minute"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        secret_key = os.getenv(_k("SECRET_KEY"))
        if not secret_key:
            # Tokens will not survive a restart.
            logger.warning("%s not set; using a random per-process key", _k("SECRET_KEY"))
            secret_key = secrets.token_urlsafe(32)

        storage = _env(_k("STORAGE"), "sql").lower()
        if storage not in {"sql", "memory"}:
            raise ValueError(f"{_k('STORAGE')} must be 'sql' or 'memory', got {storage!r}")

        return cls(
            database_url=_env(_k("DATABASE_URL"), cls.database_url),
            storage=storage,
            secret_key=secret_key,
            token_ttl_seconds=_env_int(_k("TOKEN_TTL_SECONDS"), cls.token_ttl_seconds),
            bcrypt_rounds=_env_int(_k("BCRYPT_ROUNDS"), cls.bcrypt_rounds),
            cors_origins=_env_list(_k("CORS_ORIGINS"), ["*"]),
            rate_limit_enabled=_env_bool(_k("RATE_LIMIT_ENABLED"), cls.rate_limit_enabled),
            login_rate_limit=_env(_k("LOGIN_RATE_LIMIT"), cls.login_rate_limit),
            register_rate_limit=_env(_k("REGISTER_RATE_LIMIT"), cls.register_rate_limit),
            log_level=_env(_k("LOG_LEVEL"), cls.log_level).upper(),
            host=_env(_k("HOST"), cls.host),
            port=_env_int(_k("PORT"), cls.port),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
