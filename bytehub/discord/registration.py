"""Load slash-command definitions and register them with Discord."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from bytehub.discord.client_api import DiscordAPIClient


DEFAULT_DEFINITIONS_PATH = Path(__file__).resolve().parent / "command_definitions.yaml"

GUILD_CONTEXT = 0


def load_command_definitions(path: Path = DEFAULT_DEFINITIONS_PATH) -> list[dict[str, Any]]:
    if not path.exists():
        raise FileNotFoundError(f"Command definitions not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or []
    if not isinstance(raw, list):
        raise ValueError(f"{path} must contain a list of commands")

    commands = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ValueError(f"{path}: every command needs a name")
        command = dict(entry)
        command["dm_permission"] = False
        command["contexts"] = [GUILD_CONTEXT]
        commands.append(command)
    return commands


def register_commands(
    client: DiscordAPIClient, commands: list[dict[str, Any]] | None = None
) -> int:
    """PUT the full command set, replacing whatever was registered before."""

    payload = commands if commands is not None else load_command_definitions()
    registered = client.put_application_commands(payload)
    return len(registered) if isinstance(registered, list) else 0
