"""Runtime settings loaded from the process environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


SERVICE_NAME = "bytehub"
VERSION = "0.4.0"

DEFAULT_SQLITE_PATH = "./data/bytehub.sqlite"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    """Secrets, storage location, and tuning knobs for one process."""

    github_webhook_secret: str
    discord_public_key: str
    discord_bot_token: str
    discord_application_id: str
    discord_invite: str | None
    sqlite_path: Path
    discord_client: str
    rate_limit_window_s: int
    rate_limit_max_requests: int
    host: str
    port: int
    log_level: str

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "Settings":
        source = os.environ if env is None else env
        return cls(
            github_webhook_secret=_clean(source.get("GITHUB_WEBHOOK_SECRET")),
            discord_public_key=_clean(source.get("DISCORD_PUBLIC_KEY")),
            discord_bot_token=_clean(source.get("DISCORD_BOT_TOKEN")),
            discord_application_id=_clean(source.get("DISCORD_APPLICATION_ID")),
            discord_invite=_clean(source.get("DISCORD_INVITE")) or None,
            sqlite_path=Path(source.get("BYTEHUB_SQLITE_PATH") or DEFAULT_SQLITE_PATH),
            discord_client=(_clean(source.get("BYTEHUB_DISCORD_CLIENT")) or "in_memory").lower(),
            rate_limit_window_s=_int(source.get("BYTEHUB_RATE_LIMIT_WINDOW_S"), 60, minimum=1),
            rate_limit_max_requests=_int(source.get("BYTEHUB_RATE_LIMIT_MAX"), 5, minimum=1),
            host=_clean(source.get("HOST")) or "0.0.0.0",
            port=_int(source.get("PORT"), 3000, minimum=1),
            log_level=(_clean(source.get("BYTEHUB_LOG_LEVEL")) or "INFO").upper(),
        )

    def redacted(self) -> dict[str, str]:
        return {
            "github_webhook_secret": _redact(self.github_webhook_secret),
            "discord_public_key": _redact(self.discord_public_key),
            "discord_bot_token": _redact(self.discord_bot_token),
            "discord_application_id": self.discord_application_id or "unset",
            "discord_invite": self.discord_invite or "unset",
            "sqlite_path": str(self.sqlite_path),
            "discord_client": self.discord_client,
            "rate_limit": f"{self.rate_limit_max_requests}/{self.rate_limit_window_s}s",
            "bind": f"{self.host}:{self.port}",
            "log_level": self.log_level,
        }

    def ensure_directories(self) -> None:
        if str(self.sqlite_path) != ":memory:":
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)


def get_settings(env: dict[str, str] | None = None) -> Settings:
    """Build settings from the environment and create the storage directory."""

    settings = Settings.from_env(env)
    settings.ensure_directories()
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _clean(value: str | None) -> str:
    if value is None:
        return ""
    return value.strip()


def _int(value: str | None, default: int, minimum: int = 0) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


def _redact(secret: str) -> str:
    if not secret:
        return "unset"
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"
