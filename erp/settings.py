from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


_DRIVERS = {
    "mysql": "mysql+pymysql",
    "postgres": "postgresql+psycopg",
    "postgresql": "postgresql+psycopg",
}


class DatabaseSettings(BaseModel):
    """
    Connection and pool settings.

    Notes:
    - ``url`` wins when set; otherwise the URL is assembled from the discrete fields.
    - Pool limits are the backpressure knobs: callers block (up to
      ``pool_timeout_seconds``) once ``max_open_conns`` connections are checked out.
    """

    dialect: Literal["sqlite", "mysql", "postgres", "postgresql"] = "sqlite"
    url: str | None = None
    host: str = "localhost"
    port: int = 0
    username: str = ""
    password: str = ""
    dbname: str = "erp.db"

    max_open_conns: int = Field(default=20, ge=1)
    max_idle_conns: int = Field(default=10, ge=1)
    max_lifetime_minutes: int = Field(default=60, ge=1)
    pool_timeout_seconds: float = Field(default=30.0, gt=0)
    echo: bool = False

    def resolved_url(self) -> str:
        if self.url:
            return self.url

        if self.dialect == "sqlite":
            if self.dbname == ":memory:":
                return "sqlite://"
            repo_root = Path(__file__).resolve().parents[1]
            db_path = Path(self.dbname)
            if not db_path.is_absolute():
                db_path = repo_root / db_path
            return f"sqlite:///{db_path}"

        url = URL.create(
            _DRIVERS[self.dialect],
            username=self.username or None,
            password=self.password or None,
            host=self.host,
            port=self.port or None,
            database=self.dbname,
        )
        return url.render_as_string(hide_password=False)


class JWTSettings(BaseModel):
    secret: str = "change-me-please-change-me-please"
    expiry_hours: int = Field(default=24, ge=1)
    algorithm: str = "HS256"


class ServerSettings(BaseModel):
    mode: Literal["debug", "release"] = "release"
    port: int = 8080
    shutdown_timeout_seconds: float = 10.0


class CORSSettings(BaseModel):
    """
    Cross-origin policy. Credentials are only allowed together with an explicit
    origin list; browsers reject them for the wildcard origin.
    """

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    allow_methods: list[str] = Field(default_factory=lambda: ["*"])
    allow_headers: list[str] = Field(default_factory=lambda: ["*"])
    allow_credentials: bool = False

    @property
    def credentials_allowed(self) -> bool:
        return self.allow_credentials and "*" not in self.allow_origins


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Every field can be overridden via env vars, e.g. ``APP_JWT__SECRET`` or
      ``APP_DATABASE__MAX_OPEN_CONNS``.
    - ``load_settings(path)`` reads the same shape from a YAML file.
    """

    model_config = SettingsConfigDict(env_prefix="APP_", env_nested_delimiter="__", extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)

    super_account: str = "admin"
    auto_migrate: bool = True
    auto_rbac_point: bool = True

    permission_cache_ttl_seconds: float = 600.0
    permission_cache_cleanup_seconds: float = 1800.0
    token_cleanup_seconds: float = 600.0

    log_level: str = "INFO"
    config_path: str | None = None

    @property
    def debug(self) -> bool:
        return self.server.mode == "debug"

    @property
    def token_ttl_seconds(self) -> float:
        return self.jwt.expiry_hours * 3600.0


def load_settings(path: Path) -> Settings:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Config must be a mapping at top level: {path}")

    return Settings.model_validate(raw)


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    if settings.config_path:
        return load_settings(Path(settings.config_path))
    return settings
