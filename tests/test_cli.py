import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from bytehub.cli import app
from bytehub.discord.registration import load_command_definitions
from bytehub.governance.store import ByteHubDB


ENV_KEYS = (
    "DISCORD_BOT_TOKEN",
    "DISCORD_APPLICATION_ID",
    "GITHUB_WEBHOOK_SECRET",
    "HOST",
    "PORT",
    "BYTEHUB_LOG_LEVEL",
)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "placeholder")
        monkeypatch.delenv(key)
    db_path = tmp_path / "bytehub.sqlite"
    monkeypatch.setenv("BYTEHUB_SQLITE_PATH", str(db_path))
    return db_path


def _invoke(runner: CliRunner, tmp_path: Path, *args: str):
    return runner.invoke(app, ["--env-file", str(tmp_path / "missing.env"), *args])


def test_command_definitions_are_guild_only() -> None:
    commands = load_command_definitions()

    assert [command["name"] for command in commands] == [
        "submit-project",
        "approve",
        "deny",
        "whitelist-user",
        "list",
        "setup-server",
        "repair",
    ]
    assert all(command["dm_permission"] is False for command in commands)
    assert all(command["contexts"] == [0] for command in commands)


def test_load_command_definitions_rejects_bad_files(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_command_definitions(tmp_path / "absent.yaml")

    bad = tmp_path / "bad.yaml"
    bad.write_text("name: list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_command_definitions(bad)


def test_register_commands_dry_run_prints_payload(
    runner: CliRunner, clean_env: Path, tmp_path: Path
) -> None:
    result = _invoke(runner, tmp_path, "register-commands", "--dry-run")

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert len(payload) == 7
    assert payload[0]["options"][0] == {
        "name": "repo",
        "description": "GitHub repo (e.g. owner/repo-name)",
        "type": 3,
        "required": True,
    }


def test_register_commands_requires_credentials(
    runner: CliRunner, clean_env: Path, tmp_path: Path
) -> None:
    result = _invoke(runner, tmp_path, "register-commands")
    assert result.exit_code == 2


def test_serve_print_startup(
    runner: CliRunner, clean_env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PORT", "8123")

    result = _invoke(runner, tmp_path, "serve", "--print-startup")

    assert result.exit_code == 0
    assert "uvicorn bytehub.server.app:app --host 0.0.0.0 --port 8123" in result.stdout


def test_show_config_redacts_secrets(
    runner: CliRunner, clean_env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", "abcdefghijklmnop")

    result = _invoke(runner, tmp_path, "show-config")

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["github_webhook_secret"] == "abcd...mnop"
    assert payload["sqlite_path"] == str(clean_env)
    assert "abcdefghijklmnop" not in result.stdout


def test_env_file_is_loaded(runner: CliRunner, clean_env: Path, tmp_path: Path) -> None:
    env_file = tmp_path / "bytehub.env"
    env_file.write_text("PORT=9001\n", encoding="utf-8")

    result = runner.invoke(app, ["--env-file", str(env_file), "show-config"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["bind"] == "0.0.0.0:9001"


def test_rules_add_and_list(runner: CliRunner, clean_env: Path, tmp_path: Path) -> None:
    db = ByteHubDB(clean_env)
    db.submit_project("octo/widgets")
    db.close()

    added = _invoke(
        runner,
        tmp_path,
        "rules",
        "add",
        "--repo",
        "Octo/Widgets",
        "--conditions",
        '{"labels": ["bounty"]}',
        "--actions",
        '{"post_forum": false, "post_announce": true, "template": "{title}"}',
        "--priority",
        "5",
    )
    assert added.exit_code == 0
    rule = json.loads(added.stdout)
    assert rule["repo"] == "octo/widgets"

    listed = _invoke(runner, tmp_path, "rules", "list", "--repo", "octo/widgets")
    assert listed.exit_code == 0
    assert json.loads(listed.stdout) == [
        {
            "rule_id": rule["rule_id"],
            "priority": 5,
            "conditions": {"labels": ["bounty"]},
            "actions": {"post_forum": False, "post_announce": True, "template": "{title}"},
        }
    ]


def test_rules_add_rejects_bad_input(runner: CliRunner, clean_env: Path, tmp_path: Path) -> None:
    invalid = _invoke(
        runner, tmp_path, "rules", "add", "--repo", "octo/widgets", "--conditions", '{"color": 1}'
    )
    assert invalid.exit_code == 2

    unknown = _invoke(runner, tmp_path, "rules", "add", "--repo", "nobody/nothing")
    assert unknown.exit_code == 1
