from __future__ import annotations

from pathlib import Path

from bytehub.shared.settings import DEFAULT_SQLITE_PATH, Settings, get_settings


def test_defaults_from_empty_environment() -> None:
    settings = Settings.from_env({})

    assert settings.github_webhook_secret == ""
    assert settings.discord_public_key == ""
    assert settings.sqlite_path == Path(DEFAULT_SQLITE_PATH)
    assert settings.discord_client == "in_memory"
    assert (settings.rate_limit_window_s, settings.rate_limit_max_requests) == (60, 5)
    assert (settings.host, settings.port) == ("0.0.0.0", 3000)
    assert settings.log_level == "INFO"
    assert settings.discord_invite is None


def test_values_are_trimmed_and_numbers_validated() -> None:
    settings = Settings.from_env(
        {
            "GITHUB_WEBHOOK_SECRET": "  s3cret  ",
            "BYTEHUB_DISCORD_CLIENT": "API",
            "BYTEHUB_RATE_LIMIT_WINDOW_S": "30",
            "BYTEHUB_RATE_LIMIT_MAX": "0",
            "PORT": "not-a-port",
            "BYTEHUB_LOG_LEVEL": "debug",
        }
    )

    assert settings.github_webhook_secret == "s3cret"
    assert settings.discord_client == "api"
    assert settings.rate_limit_window_s == 30
    assert settings.rate_limit_max_requests == 5
    assert settings.port == 3000
    assert settings.log_level == "DEBUG"


def test_redacted_hides_secrets() -> None:
    settings = Settings.from_env(
        {
            "GITHUB_WEBHOOK_SECRET": "abcdefghijklmnop",
            "DISCORD_BOT_TOKEN": "short",
            "DISCORD_APPLICATION_ID": "777",
        }
    )
    redacted = settings.redacted()

    assert redacted["github_webhook_secret"] == "abcd...mnop"
    assert redacted["discord_bot_token"] == "***"
    assert redacted["discord_public_key"] == "unset"
    assert redacted["discord_application_id"] == "777"
    assert redacted["rate_limit"] == "5/60s"


def test_get_settings_creates_storage_directory(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "bytehub.sqlite"

    settings = get_settings({"BYTEHUB_SQLITE_PATH": str(db_path)})

    assert settings.sqlite_path == db_path
    assert db_path.parent.is_dir()
