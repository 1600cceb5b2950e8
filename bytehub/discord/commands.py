"""Slash-command handling for Discord interactions.

``setup-server``, ``approve`` and ``repair`` touch many channels and can outlast
Discord's three-second response window, so they are acknowledged with a
deferred response and finished in the background; the outcome is delivered as
an ephemeral follow-up. Every other command answers inline.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Coroutine

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bytehub.discord.client import (
    FLAG_EPHEMERAL,
    DiscordClient,
    is_moderator,
    missing_permissions,
    parse_permissions,
)
from bytehub.discord.rate_limit import RateLimiter
from bytehub.governance.models import ServerConfig, normalize_repo
from bytehub.governance.store import ByteHubDB
from bytehub.router.channels import (
    APPROVALS_NAME,
    MOD_CATEGORY_NAME,
    PROJECT_REVIEW_NAME,
    ensure_announcements,
    ensure_category,
    ensure_child_channel,
    ensure_project_forum,
)
from bytehub.shared.errors import (
    AlreadyApproved,
    ByteHubError,
    InvalidPayload,
    MissingPermissions,
    NotFound,
    ProjectAlreadyExists,
    Unauthorized,
)
from bytehub.shared.ids import Snowflake


logger = logging.getLogger(__name__)

INTERACTION_PING = 1
INTERACTION_APPLICATION_COMMAND = 2

RESPONSE_PONG = 1
RESPONSE_CHANNEL_MESSAGE = 4
RESPONSE_DEFERRED_CHANNEL_MESSAGE = 5

DEFERRED_COMMANDS = frozenset({"setup-server", "approve", "repair"})

SETUP_REQUIRED_MESSAGE = "Server not set up. Run /setup-server first."

Spawn = Callable[[Coroutine[Any, Any, None]], object]


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CommandOption(_Model):
    name: str
    value: Any = None


class InteractionData(_Model):
    name: str
    options: list[CommandOption] = Field(default_factory=list)

    def option(self, name: str) -> str:
        for option in self.options:
            if option.name == name and option.value is not None:
                value = str(option.value).strip()
                if value:
                    return value
        raise InvalidPayload(f"missing {name}")


class InteractionUser(_Model):
    id: str
    username: str = ""


class Member(_Model):
    user: InteractionUser | None = None
    roles: list[str] = Field(default_factory=list)
    permissions: str | None = None

    @property
    def permission_bits(self) -> int:
        return parse_permissions(self.permissions)


class Interaction(_Model):
    kind: int = Field(alias="type")
    id: str = ""
    token: str = ""
    guild_id: str | None = None
    data: InteractionData | None = None
    member: Member | None = None

    @property
    def user_id(self) -> str:
        if self.member is not None and self.member.user is not None:
            return self.member.user.id
        return ""


def parse_interaction(body: bytes) -> Interaction:
    try:
        return Interaction.model_validate_json(body)
    except ValidationError as exc:
        raise InvalidPayload(f"interaction: {exc.error_count()} validation error(s)") from exc


def pong() -> dict[str, Any]:
    return {"type": RESPONSE_PONG}


def ephemeral_message(content: str) -> dict[str, Any]:
    return {
        "type": RESPONSE_CHANNEL_MESSAGE,
        "data": {"content": content, "flags": FLAG_EPHEMERAL},
    }


def deferred_ephemeral() -> dict[str, Any]:
    return {"type": RESPONSE_DEFERRED_CHANNEL_MESSAGE, "data": {"flags": FLAG_EPHEMERAL}}


def render_error(exc: Exception) -> str:
    if isinstance(exc, AlreadyApproved):
        return f"ℹ️ Project `{exc.repo}` is already approved. Nothing to do."
    if isinstance(exc, ProjectAlreadyExists):
        return f"ℹ️ Project `{exc.repo}` has already been submitted."
    if isinstance(exc, Unauthorized):
        return "❌ Error: you need the Administrator or Manage Server permission."
    if isinstance(exc, ByteHubError):
        return f"❌ Error: {exc.message}"
    return f"❌ Error: {exc}"


def require_moderator(member: Member | None) -> None:
    if member is None or not is_moderator(member.permission_bits):
        raise Unauthorized()


def require_guild(guild_id: str | None) -> Snowflake:
    if guild_id is None or not guild_id.strip():
        raise InvalidPayload("missing guild_id")
    parsed = Snowflake.parse(guild_id)
    if parsed is None:
        raise InvalidPayload("invalid guild_id")
    return parsed


class CommandHandler:
    def __init__(
        self,
        db: ByteHubDB,
        client: DiscordClient,
        rate_limiter: RateLimiter,
        spawn: Spawn,
    ) -> None:
        self.db = db
        self.client = client
        self.rate_limiter = rate_limiter
        self.spawn = spawn

    async def handle(self, interaction: Interaction) -> dict[str, Any]:
        if interaction.kind == INTERACTION_PING:
            return pong()
        if interaction.kind != INTERACTION_APPLICATION_COMMAND:
            raise InvalidPayload(f"unsupported interaction type {interaction.kind}")
        if interaction.data is None:
            raise InvalidPayload("missing data")

        name = interaction.data.name
        self.db.append_audit_event(
            "command_invoked",
            {
                "command": name,
                "guild_id": interaction.guild_id or "",
                "user_id": interaction.user_id,
            },
        )
        try:
            if name in DEFERRED_COMMANDS:
                return self._defer(interaction, interaction.data)
            return ephemeral_message(await self.run_inline(interaction, interaction.data))
        except ByteHubError as exc:
            logger.info("command %s rejected: %s", name, exc.message)
            return ephemeral_message(render_error(exc))

    def _defer(self, interaction: Interaction, data: InteractionData) -> dict[str, Any]:
        guild_id = require_guild(interaction.guild_id)
        require_moderator(interaction.member)
        decision = self.rate_limiter.check(str(guild_id))
        if not decision.allowed:
            self.db.append_audit_event(
                "command_rate_limited",
                {
                    "command": data.name,
                    "guild_id": str(guild_id),
                    "retry_after_s": decision.retry_after_s,
                },
            )
            return ephemeral_message(
                "⏳ Too many admin commands for this server, "
                f"try again in {decision.retry_after_s} seconds."
            )
        self.spawn(self._complete(interaction.token, data, guild_id))
        return deferred_ephemeral()

    async def _complete(self, token: str, data: InteractionData, guild_id: Snowflake) -> None:
        try:
            content = await self.run_deferred(data, guild_id)
        except ByteHubError as exc:
            logger.info("command %s failed: %s", data.name, exc.message)
            content = render_error(exc)
        except Exception as exc:
            logger.exception("command %s crashed", data.name)
            content = render_error(exc)

        try:
            await self.client.send_followup(token, content)
        except Exception as exc:
            # The moderator can re-run the command; nothing else to do here.
            logger.exception("follow-up for %s could not be delivered", data.name)
            self.db.append_audit_event(
                "followup_failed",
                {"command": data.name, "guild_id": str(guild_id), "error": str(exc)},
            )

    async def run_deferred(self, data: InteractionData, guild_id: Snowflake) -> str:
        if data.name == "setup-server":
            return await self.do_setup_server(guild_id)
        if data.name == "approve":
            return await self.do_approve(data.option("repo"), guild_id)
        if data.name == "repair":
            return await self.do_repair(guild_id)
        return "Unknown command"

    async def run_inline(self, interaction: Interaction, data: InteractionData) -> str:
        if data.name == "submit-project":
            project = self.db.submit_project(data.option("repo"))
            return f"Project `{project.github_repo}` submitted for approval."
        if data.name == "deny":
            require_moderator(interaction.member)
            repo = normalize_repo(data.option("repo"))
            self.db.deny_project(repo)
            return f"Project `{repo}` denied and removed."
        if data.name == "whitelist-user":
            require_moderator(interaction.member)
            username = data.option("username")
            self.db.add_whitelisted_user(username)
            return f"User `{username}` added to whitelist."
        if data.name == "list":
            require_moderator(interaction.member)
            return self._list_projects()
        return "Unknown command"

    def _list_projects(self) -> str:
        projects = self.db.list_projects()
        if not projects:
            return "No projects registered."
        approved = [f"• `{p.github_repo}`" for p in projects if p.is_approved]
        pending = [f"• `{p.github_repo}`" for p in projects if not p.is_approved]
        sections = []
        if approved:
            sections.append("**✅ Approved:**\n" + "\n".join(approved))
        if pending:
            sections.append("**⏳ Pending:**\n" + "\n".join(pending))
        return "\n\n".join(sections)

    async def _require_bot_permissions(self, guild_id: Snowflake) -> None:
        bits = await self.client.get_self_permissions(guild_id)
        missing = missing_permissions(bits)
        if missing:
            raise MissingPermissions(missing)

    def _require_config(self, guild_id: Snowflake) -> ServerConfig:
        config = self.db.get_server_config(str(guild_id))
        if config is None:
            raise NotFound(SETUP_REQUIRED_MESSAGE)
        return config

    async def do_setup_server(self, guild_id: Snowflake) -> str:
        await self._require_bot_permissions(guild_id)
        existing = self.db.get_server_config(str(guild_id))
        channels = await self.client.list_guild_channels(guild_id)

        announcements = await ensure_announcements(
            self.client,
            guild_id,
            channels,
            stored_id=existing.announcements_snowflake if existing else None,
        )
        github = await ensure_category(
            self.client,
            guild_id,
            channels,
            stored_id=existing.github_category_snowflake if existing else None,
        )
        mod = await ensure_category(
            self.client,
            guild_id,
            channels,
            stored_id=existing.mod_category_snowflake if existing else None,
            name=MOD_CATEGORY_NAME,
            private=True,
        )
        review = await ensure_child_channel(
            self.client,
            guild_id,
            channels,
            mod.channel_id,
            PROJECT_REVIEW_NAME,
            stored_id=existing.project_review_snowflake if existing else None,
            private=True,
        )
        approvals = await ensure_child_channel(
            self.client,
            guild_id,
            channels,
            mod.channel_id,
            APPROVALS_NAME,
            stored_id=existing.approvals_snowflake if existing else None,
            private=True,
        )

        self.db.save_server_config(
            ServerConfig(
                guild_id=str(guild_id),
                announcements_id=str(announcements.channel_id),
                github_category_id=str(github.channel_id),
                mod_category_id=str(mod.channel_id),
                project_review_id=str(review.channel_id),
                approvals_id=str(approvals.channel_id),
            )
        )
        logger.info("server setup complete for guild %s", guild_id)
        return (
            "✅ **Server setup complete!**\n\n"
            "**Channels:**\n"
            f"• <#{announcements.channel_id}> - Announcements\n"
            f"• <#{github.channel_id}> - GitHub (Category)\n"
            f"• <#{review.channel_id}> - Mod (project-review)\n"
            f"• <#{approvals.channel_id}> - Mod (approvals)"
        )

    async def do_approve(self, repo: str, guild_id: Snowflake) -> str:
        await self._require_bot_permissions(guild_id)
        config = self._require_config(guild_id)
        project = self.db.get_project(repo)
        if project is None:
            raise NotFound(f"Project `{normalize_repo(repo)}` not found")
        if project.is_approved:
            raise AlreadyApproved(project.github_repo)

        channels = await self.client.list_guild_channels(guild_id)
        category = await ensure_category(
            self.client, guild_id, channels, stored_id=config.github_category_snowflake
        )
        if category.channel_id != config.github_category_snowflake:
            self.db.save_server_config(
                replace(config, github_category_id=str(category.channel_id))
            )
        forum = await ensure_project_forum(
            self.client,
            guild_id,
            channels,
            project.github_repo,
            project.forum_snowflake,
            category.channel_id,
        )
        approved = self.db.approve_project_with_forum(
            project.github_repo, str(forum.channel_id), str(guild_id)
        )
        logger.info(
            "approved %s in guild %s (forum %s)", approved.github_repo, guild_id, forum.channel_id
        )
        action = "Created forum" if forum.created else "Reusing existing forum"
        return f"✅ Project `{approved.github_repo}` approved!\n\n{action}: <#{forum.channel_id}>"

    async def do_repair(self, guild_id: Snowflake) -> str:
        await self._require_bot_permissions(guild_id)
        config = self._require_config(guild_id)
        channels = await self.client.list_guild_channels(guild_id)
        repairs: list[str] = []
        updated = config

        announcements = await ensure_announcements(
            self.client, guild_id, channels, stored_id=config.announcements_snowflake
        )
        if announcements.action != "reused":
            updated = replace(updated, announcements_id=str(announcements.channel_id))
            repairs.append(f"Announcements channel → <#{announcements.channel_id}>")
            self.db.append_audit_event(
                "announcements_repaired",
                {
                    "guild_id": str(guild_id),
                    "old_channel_id": config.announcements_id,
                    "new_channel_id": str(announcements.channel_id),
                },
            )

        category = await ensure_category(
            self.client, guild_id, channels, stored_id=config.github_category_snowflake
        )
        if category.action != "reused":
            updated = replace(updated, github_category_id=str(category.channel_id))
            repairs.append(f"GitHub category → <#{category.channel_id}>")

        if config.mod_category_id:
            mod = await ensure_category(
                self.client,
                guild_id,
                channels,
                stored_id=config.mod_category_snowflake,
                name=MOD_CATEGORY_NAME,
                private=True,
            )
            if mod.action != "reused":
                updated = replace(updated, mod_category_id=str(mod.channel_id))
                repairs.append(f"Mod category → <#{mod.channel_id}>")
            for field_name, channel_name in (
                ("project_review_id", PROJECT_REVIEW_NAME),
                ("approvals_id", APPROVALS_NAME),
            ):
                stored = Snowflake.parse(getattr(config, field_name))
                child = await ensure_child_channel(
                    self.client,
                    guild_id,
                    channels,
                    mod.channel_id,
                    channel_name,
                    stored_id=stored,
                    private=True,
                )
                if child.action != "reused":
                    updated = replace(updated, **{field_name: str(child.channel_id)})
                    repairs.append(f"#{channel_name} → <#{child.channel_id}>")

        if updated != config:
            self.db.save_server_config(updated)

        for project in self.db.list_projects_by_guild(str(guild_id)):
            if not project.is_approved:
                continue
            forum = await ensure_project_forum(
                self.client,
                guild_id,
                channels,
                project.github_repo,
                project.forum_snowflake,
                category.channel_id,
            )
            if forum.action == "reused":
                continue
            self.db.update_forum_id(project.github_repo, str(forum.channel_id))
            self.db.append_audit_event(
                "forum_repaired",
                {
                    "repo": project.github_repo,
                    "guild_id": str(guild_id),
                    "old_forum_id": project.forum_channel_id,
                    "new_forum_id": str(forum.channel_id),
                },
            )
            repairs.append(f"Forum for `{project.github_repo}` → <#{forum.channel_id}>")

        if not repairs:
            return "✅ Nothing to repair"
        logger.info("repaired %d item(s) in guild %s", len(repairs), guild_id)
        return "🔧 **Repairs performed:**\n" + "\n".join(f"• {item}" for item in repairs)
