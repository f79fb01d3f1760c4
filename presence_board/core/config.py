from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: str
    cors_allow_origins: list[str]
    database_url: str
    jwt_secret: str
    access_token_expire_minutes: int
    status_profile: Literal["attendance", "self-report"]
    timezone: str
    auto_create_schema: bool
    log_level: str
    bootstrap_admin_username: str | None
    bootstrap_admin_password: str | None

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _load_settings() -> Settings:
    load_dotenv()

    cors = os.getenv("CORS_ALLOW_ORIGINS")
    cors_allow_origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    if cors:
        try:
            cors_allow_origins = list(json.loads(cors))
        except ValueError:
            cors_allow_origins = [x.strip() for x in cors.split(",") if x.strip()]

    database_url = os.getenv("DATABASE_URL")
    jwt_secret = os.getenv("JWT_SECRET")
    if not database_url:
        raise RuntimeError("DATABASE_URL env var is required")
    if not jwt_secret:
        raise RuntimeError("JWT_SECRET env var is required")

    status_profile = os.getenv("STATUS_PROFILE", "attendance").strip()
    if status_profile not in ("attendance", "self-report"):
        raise RuntimeError(f"STATUS_PROFILE must be 'attendance' or 'self-report', got {status_profile!r}")

    timezone = os.getenv("TIMEZONE", "Asia/Tokyo").strip()
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise RuntimeError(f"Unknown TIMEZONE {timezone!r}") from exc

    return Settings(
        app_name=os.getenv("APP_NAME", "Presence Board API"),
        environment=os.getenv("ENVIRONMENT", "dev"),
        cors_allow_origins=cors_allow_origins,
        database_url=database_url,
        jwt_secret=jwt_secret,
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440")),
        status_profile=status_profile,
        timezone=timezone,
        auto_create_schema=_env_bool("AUTO_CREATE_SCHEMA"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        bootstrap_admin_username=os.getenv("BOOTSTRAP_ADMIN_USERNAME"),
        bootstrap_admin_password=os.getenv("BOOTSTRAP_ADMIN_PASSWORD"),
    )


settings = _load_settings()
