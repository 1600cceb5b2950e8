"""Find-or-create helpers shared by the dispatcher and the admin commands.

Every helper works against a channel listing the caller fetched once, and
appends anything it creates to that listing so later lookups in the same
reconciliation see it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from bytehub.discord.client import (
    Channel,
    ChannelType,
    DiscordClient,
    match_containing,
    match_exact,
)
from bytehub.governance.models import project_short_name
from bytehub.shared.ids import Snowflake


logger = logging.getLogger(__name__)

GITHUB_CATEGORY_NAME = "GitHub"
ANNOUNCEMENTS_NAME = "announcements"
ANNOUNCEMENT_KINDS = (ChannelType.GUILD_TEXT, ChannelType.GUILD_ANNOUNCEMENT)
MOD_CATEGORY_NAME = "Mod"
PROJECT_REVIEW_NAME = "project-review"
APPROVALS_NAME = "approvals"

EnsureAction = Literal["reused", "found", "created"]


@dataclass(frozen=True)
class EnsureResult:
    channel_id: Snowflake
    action: EnsureAction

    @property
    def created(self) -> bool:
        return self.action == "created"


def activity_thread_name(github_repo: str) -> str:
    return f"📦 {project_short_name(github_repo)} Activity"


def resolve(
    channels: list[Channel],
    channel_id: Snowflake | None,
    kinds: tuple[ChannelType, ...] | None = None,
) -> Snowflake | None:
    """Return ``channel_id`` if it is present in ``channels`` with an accepted kind."""

    if channel_id is None:
        return None
    for channel in channels:
        if channel.id == channel_id and (kinds is None or channel.kind in kinds):
            return channel.id
    return None


async def ensure_category(
    client: DiscordClient,
    guild_id: Snowflake,
    channels: list[Channel],
    stored_id: Snowflake | None = None,
    name: str = GITHUB_CATEGORY_NAME,
    private: bool = False,
) -> EnsureResult:
    reused = resolve(channels, stored_id, (ChannelType.GUILD_CATEGORY,))
    if reused is not None:
        return EnsureResult(reused, "reused")
    found = match_exact(channels, name, kind=ChannelType.GUILD_CATEGORY)
    if found is not None:
        return EnsureResult(found, "found")
    if private:
        created = await client.create_private_category(guild_id, name)
    else:
        created = await client.create_category(guild_id, name)
    channels.append(Channel(id=created, name=name, kind=ChannelType.GUILD_CATEGORY))
    logger.info("created category %r (%s) in guild %s", name, created, guild_id)
    return EnsureResult(created, "created")


async def ensure_project_forum(
    client: DiscordClient,
    guild_id: Snowflake,
    channels: list[Channel],
    github_repo: str,
    stored_id: Snowflake | None,
    category_id: Snowflake,
) -> EnsureResult:
    """Reuse the stored forum when it still resolves, else create a new one.

    A forum is never adopted by name: two projects may share a short name.
    """

    reused = resolve(channels, stored_id, (ChannelType.GUILD_FORUM,))
    if reused is not None:
        return EnsureResult(reused, "reused")
    name = project_short_name(github_repo)
    created = await client.create_forum_channel(guild_id, category_id, name)
    channels.append(
        Channel(id=created, name=name, kind=ChannelType.GUILD_FORUM, parent_id=category_id)
    )
    logger.info("created forum %r (%s) for %s", name, created, github_repo)
    return EnsureResult(created, "created")


async def ensure_announcements(
    client: DiscordClient,
    guild_id: Snowflake,
    channels: list[Channel],
    stored_id: Snowflake | None = None,
) -> EnsureResult:
    reused = resolve(channels, stored_id, ANNOUNCEMENT_KINDS)
    if reused is not None:
        return EnsureResult(reused, "reused")
    postable = [channel for channel in channels if channel.kind in ANNOUNCEMENT_KINDS]
    found = match_containing(postable, ANNOUNCEMENTS_NAME)
    if found is not None:
        return EnsureResult(found, "found")
    created = await client.create_text_channel(guild_id, ANNOUNCEMENTS_NAME)
    channels.append(Channel(id=created, name=ANNOUNCEMENTS_NAME, kind=ChannelType.GUILD_TEXT))
    logger.info("created announcements channel %s in guild %s", created, guild_id)
    return EnsureResult(created, "created")


async def ensure_child_channel(
    client: DiscordClient,
    guild_id: Snowflake,
    channels: list[Channel],
    category_id: Snowflake,
    name: str,
    stored_id: Snowflake | None = None,
    private: bool = False,
) -> EnsureResult:
    reused = resolve(channels, stored_id, (ChannelType.GUILD_TEXT,))
    if reused is not None:
        return EnsureResult(reused, "reused")
    for channel in channels:
        if (
            channel.name == name
            and channel.parent_id == category_id
            and channel.kind == ChannelType.GUILD_TEXT
        ):
            return EnsureResult(channel.id, "found")
    created = await client.create_channel_in_category(guild_id, category_id, name, private=private)
    channels.append(
        Channel(id=created, name=name, kind=ChannelType.GUILD_TEXT, parent_id=category_id)
    )
    return EnsureResult(created, "created")
