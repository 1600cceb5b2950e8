"""Discord client contract, channel types, permission bits, and factory."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Protocol

from bytehub.shared.ids import Snowflake
from bytehub.shared.settings import Settings


class ChannelType(IntEnum):
    GUILD_TEXT = 0
    GUILD_CATEGORY = 4
    GUILD_ANNOUNCEMENT = 5
    PUBLIC_THREAD = 11
    GUILD_FORUM = 15


PERMISSIONS: dict[str, int] = {
    "ADMINISTRATOR": 1 << 3,
    "MANAGE_CHANNELS": 1 << 4,
    "MANAGE_GUILD": 1 << 5,
    "VIEW_CHANNEL": 1 << 10,
    "SEND_MESSAGES": 1 << 11,
    "EMBED_LINKS": 1 << 14,
    "READ_MESSAGE_HISTORY": 1 << 16,
    "MANAGE_THREADS": 1 << 34,
    "CREATE_PUBLIC_THREADS": 1 << 35,
    "SEND_MESSAGES_IN_THREADS": 1 << 38,
}

REQUIRED_BOT_PERMISSIONS = (
    "MANAGE_CHANNELS",
    "VIEW_CHANNEL",
    "SEND_MESSAGES",
    "EMBED_LINKS",
    "READ_MESSAGE_HISTORY",
    "MANAGE_THREADS",
    "CREATE_PUBLIC_THREADS",
    "SEND_MESSAGES_IN_THREADS",
)

# Bitfield of everything in REQUIRED_BOT_PERMISSIONS (326417599504).
REQUIRED_BOT_PERMISSION_BITS = sum(PERMISSIONS[name] for name in REQUIRED_BOT_PERMISSIONS)

FLAG_EPHEMERAL = 1 << 6
FLAG_PINNED = 1 << 1


@dataclass(frozen=True)
class Channel:
    id: Snowflake
    name: str
    kind: int
    parent_id: Snowflake | None = None


@dataclass(frozen=True)
class EmbedSpec:
    title: str
    description: str
    color: int
    footer: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "type": "rich",
            "title": self.title,
            "description": self.description,
            "color": self.color,
        }
        if self.footer:
            payload["footer"] = {"text": self.footer}
        return payload


def missing_permissions(bits: int) -> list[str]:
    if bits & PERMISSIONS["ADMINISTRATOR"]:
        return []
    return [name for name in REQUIRED_BOT_PERMISSIONS if not bits & PERMISSIONS[name]]


def is_moderator(bits: int) -> bool:
    return bool(bits & (PERMISSIONS["ADMINISTRATOR"] | PERMISSIONS["MANAGE_GUILD"]))


def parse_permissions(raw: object) -> int:
    """Discord serializes permission bitfields as decimal strings."""

    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return 0


def match_exact(
    channels: Iterable[Channel], name: str, kind: ChannelType | None = None
) -> Snowflake | None:
    for channel in channels:
        if kind is not None and channel.kind != kind:
            continue
        if channel.name == name:
            return channel.id
    return None


def match_containing(
    channels: Iterable[Channel], keyword: str, kind: ChannelType | None = None
) -> Snowflake | None:
    needle = keyword.lower()
    for channel in channels:
        if kind is not None and channel.kind != kind:
            continue
        if needle in channel.name.lower():
            return channel.id
    return None


class DiscordClient(Protocol):
    """Everything ByteHub needs from Discord; all calls may suspend on I/O."""

    @property
    def application_id(self) -> str: ...

    async def list_guild_channels(self, guild_id: Snowflake) -> list[Channel]: ...

    async def find_channel_by_name(self, guild_id: Snowflake, name: str) -> Snowflake | None: ...

    async def find_channel_containing(
        self, guild_id: Snowflake, keyword: str
    ) -> Snowflake | None: ...

    async def find_category_by_name(self, guild_id: Snowflake, name: str) -> Snowflake | None: ...

    async def find_category_containing(
        self, guild_id: Snowflake, keyword: str
    ) -> Snowflake | None: ...

    async def create_text_channel(self, guild_id: Snowflake, name: str) -> Snowflake: ...

    async def create_category(self, guild_id: Snowflake, name: str) -> Snowflake: ...

    async def create_private_category(self, guild_id: Snowflake, name: str) -> Snowflake: ...

    async def create_forum_channel(
        self, guild_id: Snowflake, category_id: Snowflake, name: str
    ) -> Snowflake: ...

    async def create_channel_in_category(
        self,
        guild_id: Snowflake,
        category_id: Snowflake,
        name: str,
        private: bool = False,
    ) -> Snowflake: ...

    async def find_active_thread_by_name(
        self, guild_id: Snowflake, parent_id: Snowflake, name: str
    ) -> Snowflake | None: ...

    async def find_active_threads_by_name(
        self, guild_id: Snowflake, parent_id: Snowflake, name: str
    ) -> list[Snowflake]: ...

    async def create_forum_thread(
        self, channel_id: Snowflake, name: str, content: str
    ) -> Snowflake: ...

    async def create_forum_thread_with_embed(
        self, channel_id: Snowflake, thread_name: str, embed: EmbedSpec
    ) -> Snowflake: ...

    async def send_message(self, channel_id: Snowflake, content: str) -> None: ...

    async def send_message_with_embed(self, channel_id: Snowflake, embed: EmbedSpec) -> None: ...

    async def lock_thread(self, thread_id: Snowflake) -> None: ...

    async def pin_and_lock_thread(self, thread_id: Snowflake) -> None: ...

    async def get_self_permissions(self, guild_id: Snowflake) -> int: ...

    async def send_followup(
        self, interaction_token: str, content: str, ephemeral: bool = True
    ) -> None: ...


def build_client_from_settings(settings: Settings) -> DiscordClient:
    if settings.discord_client == "api":
        from bytehub.discord.client_api import DiscordAPIClient

        return DiscordAPIClient(
            token=settings.discord_bot_token,
            application_id=settings.discord_application_id,
        )

    from bytehub.discord.client_inmemory import InMemoryDiscordClient

    return InMemoryDiscordClient(application_id=settings.discord_application_id or "1")


def build_client_from_env(env: dict[str, str] | None = None) -> DiscordClient:
    return build_client_from_settings(Settings.from_env(env))


__all__ = [
    "Channel",
    "ChannelType",
    "DiscordClient",
    "EmbedSpec",
    "FLAG_EPHEMERAL",
    "FLAG_PINNED",
    "PERMISSIONS",
    "REQUIRED_BOT_PERMISSIONS",
    "REQUIRED_BOT_PERMISSION_BITS",
    "build_client_from_env",
    "build_client_from_settings",
    "is_moderator",
    "match_containing",
    "match_exact",
    "missing_permissions",
    "parse_permissions",
]
