"""ByteHub CLI."""

from __future__ import annotations

import json
from pathlib import Path

import typer
import uvicorn
from dotenv import load_dotenv
from pydantic import ValidationError

from bytehub.discord.client_api import DiscordAPIClient
from bytehub.discord.registration import (
    DEFAULT_DEFINITIONS_PATH,
    load_command_definitions,
    register_commands,
)
from bytehub.governance.rules import RuleActions, RuleConditions
from bytehub.governance.store import ByteHubDB
from bytehub.server.app import startup_command
from bytehub.shared.errors import ByteHubError
from bytehub.shared.settings import Settings, configure_logging, get_settings


app = typer.Typer(add_completion=False, help="ByteHub: GitHub events routed into Discord")
rules_app = typer.Typer(add_completion=False, help="Manage per-project routing rules")
app.add_typer(rules_app, name="rules")


@app.callback()
def main(
    env_file: Path = typer.Option(Path(".env"), "--env-file", help="dotenv file to load"),
) -> None:
    if env_file.exists():
        load_dotenv(env_file, override=False)


def _settings() -> Settings:
    settings = get_settings()
    configure_logging(settings.log_level)
    return settings


@app.command()
def serve(
    print_startup: bool = typer.Option(False, "--print-startup"),
    reload: bool = typer.Option(False, "--reload"),
) -> None:
    """Run the webhook server with uvicorn."""

    settings = _settings()
    if print_startup:
        typer.echo(startup_command(settings))
        return

    uvicorn.run(
        "bytehub.server.app:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command("register-commands")
def register_commands_command(
    definitions: Path = typer.Option(DEFAULT_DEFINITIONS_PATH, "--definitions"),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Register slash commands for the configured application."""

    commands = load_command_definitions(definitions)
    if dry_run:
        typer.echo(json.dumps(commands, indent=2))
        return

    settings = _settings()
    if not settings.discord_bot_token or not settings.discord_application_id:
        typer.echo("DISCORD_BOT_TOKEN and DISCORD_APPLICATION_ID are required", err=True)
        raise typer.Exit(code=2)

    client = DiscordAPIClient(
        token=settings.discord_bot_token,
        application_id=settings.discord_application_id,
    )
    try:
        count = register_commands(client, commands)
    except ByteHubError as exc:
        typer.echo(f"❌ Failed to register commands: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"✅ Registered {count} commands")


@app.command()
def show_config() -> None:
    """Print the effective settings with secrets redacted."""

    typer.echo(json.dumps(Settings.from_env().redacted(), indent=2))


@rules_app.command("add")
def rules_add(
    repo: str = typer.Option(..., "--repo"),
    conditions: str = typer.Option("{}", "--conditions", help="JSON rule conditions"),
    actions: str = typer.Option("{}", "--actions", help="JSON rule actions"),
    priority: int = typer.Option(0, "--priority"),
) -> None:
    try:
        parsed_conditions = RuleConditions.model_validate_json(conditions)
        parsed_actions = RuleActions.model_validate_json(actions)
    except ValidationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    db = ByteHubDB(_settings().sqlite_path)
    try:
        rule = db.add_rule(repo, parsed_conditions, parsed_actions, priority=priority)
    except ByteHubError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        db.close()
    typer.echo(json.dumps({"rule_id": rule.rule_id, "repo": rule.github_repo}, indent=2))


@rules_app.command("list")
def rules_list(repo: str = typer.Option(..., "--repo")) -> None:
    db = ByteHubDB(_settings().sqlite_path)
    try:
        rules = db.list_rules(repo)
    finally:
        db.close()
    typer.echo(
        json.dumps(
            [
                {
                    "rule_id": rule.rule_id,
                    "priority": rule.priority,
                    "conditions": rule.conditions.model_dump(exclude_none=True),
                    "actions": rule.actions.model_dump(exclude_none=True),
                }
                for rule in rules
            ],
            indent=2,
        )
    )


if __name__ == "__main__":
    app()
