"""In-memory Discord client for deterministic tests and local runs."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from bytehub.discord.client import (
    REQUIRED_BOT_PERMISSION_BITS,
    Channel,
    ChannelType,
    EmbedSpec,
    match_containing,
    match_exact,
)
from bytehub.shared.errors import DiscordError
from bytehub.shared.ids import Snowflake


@dataclass
class ThreadRecord:
    id: Snowflake
    guild_id: Snowflake
    parent_id: Snowflake
    name: str
    locked: bool = False
    pinned: bool = False
    archived: bool = False


@dataclass(frozen=True)
class PostedMessage:
    channel_id: Snowflake
    content: str = ""
    embed: EmbedSpec | None = None


@dataclass(frozen=True)
class Followup:
    interaction_token: str
    content: str
    ephemeral: bool


@dataclass
class InMemoryDiscordClient:
    """Models guild channels, forum threads, and posted messages.

    ``fail_operations`` names methods that raise ``DiscordError`` so tests can
    exercise the fault-isolation paths; ``calls`` counts every method invocation.
    """

    application_id: str = "1"
    default_permissions: int = REQUIRED_BOT_PERMISSION_BITS
    permissions: dict[Snowflake, int] = field(default_factory=dict)
    fail_operations: set[str] = field(default_factory=set)
    channels: dict[Snowflake, list[Channel]] = field(default_factory=dict)
    threads: dict[Snowflake, ThreadRecord] = field(default_factory=dict)
    messages: list[PostedMessage] = field(default_factory=list)
    followups: list[Followup] = field(default_factory=list)
    calls: Counter = field(default_factory=Counter)
    next_id: int = 1000

    # Channels

    async def list_guild_channels(self, guild_id: Snowflake) -> list[Channel]:
        self._enter("list_guild_channels")
        return list(self.channels.get(guild_id, []))

    async def find_channel_by_name(self, guild_id: Snowflake, name: str) -> Snowflake | None:
        self._enter("find_channel_by_name")
        return match_exact(self.channels.get(guild_id, []), name)

    async def find_channel_containing(self, guild_id: Snowflake, keyword: str) -> Snowflake | None:
        self._enter("find_channel_containing")
        return match_containing(self.channels.get(guild_id, []), keyword)

    async def find_category_by_name(self, guild_id: Snowflake, name: str) -> Snowflake | None:
        self._enter("find_category_by_name")
        return match_exact(
            self.channels.get(guild_id, []), name, kind=ChannelType.GUILD_CATEGORY
        )

    async def find_category_containing(
        self, guild_id: Snowflake, keyword: str
    ) -> Snowflake | None:
        self._enter("find_category_containing")
        return match_containing(
            self.channels.get(guild_id, []), keyword, kind=ChannelType.GUILD_CATEGORY
        )

    async def create_text_channel(self, guild_id: Snowflake, name: str) -> Snowflake:
        self._enter("create_text_channel")
        return self.seed_channel(guild_id, name, ChannelType.GUILD_TEXT)

    async def create_category(self, guild_id: Snowflake, name: str) -> Snowflake:
        self._enter("create_category")
        return self.seed_channel(guild_id, name, ChannelType.GUILD_CATEGORY)

    async def create_private_category(self, guild_id: Snowflake, name: str) -> Snowflake:
        self._enter("create_private_category")
        return self.seed_channel(guild_id, name, ChannelType.GUILD_CATEGORY)

    async def create_forum_channel(
        self, guild_id: Snowflake, category_id: Snowflake, name: str
    ) -> Snowflake:
        self._enter("create_forum_channel")
        return self.seed_channel(guild_id, name, ChannelType.GUILD_FORUM, parent_id=category_id)

    async def create_channel_in_category(
        self,
        guild_id: Snowflake,
        category_id: Snowflake,
        name: str,
        private: bool = False,
    ) -> Snowflake:
        self._enter("create_channel_in_category")
        return self.seed_channel(guild_id, name, ChannelType.GUILD_TEXT, parent_id=category_id)

    # Threads and messages

    async def find_active_thread_by_name(
        self, guild_id: Snowflake, parent_id: Snowflake, name: str
    ) -> Snowflake | None:
        self._enter("find_active_thread_by_name")
        matches = self._active_threads(guild_id, parent_id, name)
        return matches[0] if matches else None

    async def find_active_threads_by_name(
        self, guild_id: Snowflake, parent_id: Snowflake, name: str
    ) -> list[Snowflake]:
        self._enter("find_active_threads_by_name")
        return self._active_threads(guild_id, parent_id, name)

    async def create_forum_thread(
        self, channel_id: Snowflake, name: str, content: str
    ) -> Snowflake:
        self._enter("create_forum_thread")
        thread_id = self._new_thread(channel_id, name)
        self.messages.append(PostedMessage(channel_id=thread_id, content=content))
        return thread_id

    async def create_forum_thread_with_embed(
        self, channel_id: Snowflake, thread_name: str, embed: EmbedSpec
    ) -> Snowflake:
        self._enter("create_forum_thread_with_embed")
        thread_id = self._new_thread(channel_id, thread_name)
        self.messages.append(PostedMessage(channel_id=thread_id, embed=embed))
        return thread_id

    async def send_message(self, channel_id: Snowflake, content: str) -> None:
        self._enter("send_message")
        self._require_target(channel_id)
        self.messages.append(PostedMessage(channel_id=channel_id, content=content))

    async def send_message_with_embed(self, channel_id: Snowflake, embed: EmbedSpec) -> None:
        self._enter("send_message_with_embed")
        self._require_target(channel_id)
        self.messages.append(PostedMessage(channel_id=channel_id, embed=embed))

    async def lock_thread(self, thread_id: Snowflake) -> None:
        self._enter("lock_thread")
        thread = self._require_thread(thread_id)
        thread.locked = True
        thread.archived = False

    async def pin_and_lock_thread(self, thread_id: Snowflake) -> None:
        self._enter("pin_and_lock_thread")
        thread = self._require_thread(thread_id)
        for other in self.threads.values():
            if other.id == thread_id or other.archived:
                continue
            if other.parent_id == thread.parent_id and other.pinned:
                raise DiscordError("forum already has a pinned thread")
        thread.locked = True
        thread.pinned = True
        thread.archived = False

    # Guild and interactions

    async def get_self_permissions(self, guild_id: Snowflake) -> int:
        self._enter("get_self_permissions")
        return self.permissions.get(guild_id, self.default_permissions)

    async def send_followup(
        self, interaction_token: str, content: str, ephemeral: bool = True
    ) -> None:
        self._enter("send_followup")
        self.followups.append(
            Followup(interaction_token=interaction_token, content=content, ephemeral=ephemeral)
        )

    # Test helpers

    def seed_channel(
        self,
        guild_id: Snowflake,
        name: str,
        kind: ChannelType,
        parent_id: Snowflake | None = None,
    ) -> Snowflake:
        channel_id = self._allocate_id()
        self.channels.setdefault(guild_id, []).append(
            Channel(id=channel_id, name=name, kind=kind, parent_id=parent_id)
        )
        return channel_id

    def delete_channel(self, channel_id: Snowflake) -> None:
        """Simulate an out-of-band deletion (a moderator removing a channel)."""

        for guild_id, channels in self.channels.items():
            self.channels[guild_id] = [channel for channel in channels if channel.id != channel_id]
        self.threads = {
            thread_id: thread
            for thread_id, thread in self.threads.items()
            if thread_id != channel_id and thread.parent_id != channel_id
        }

    def seed_thread(self, parent_id: Snowflake, name: str) -> Snowflake:
        return self._new_thread(parent_id, name)

    def archive_thread(self, thread_id: Snowflake) -> None:
        self._require_thread(thread_id).archived = True

    def channels_named(self, guild_id: Snowflake, name: str) -> list[Channel]:
        return [channel for channel in self.channels.get(guild_id, []) if channel.name == name]

    def threads_in(self, parent_id: Snowflake) -> list[ThreadRecord]:
        return [thread for thread in self.threads.values() if thread.parent_id == parent_id]

    def messages_in(self, channel_id: Snowflake) -> list[PostedMessage]:
        return [message for message in self.messages if message.channel_id == channel_id]

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if operation in self.fail_operations:
            raise DiscordError(f"{operation} failed (simulated)")

    def _allocate_id(self) -> Snowflake:
        self.next_id += 1
        return Snowflake(self.next_id)

    def _guild_of(self, channel_id: Snowflake) -> Snowflake | None:
        for guild_id, channels in self.channels.items():
            if any(channel.id == channel_id for channel in channels):
                return guild_id
        return None

    def _new_thread(self, parent_id: Snowflake, name: str) -> Snowflake:
        guild_id = self._guild_of(parent_id)
        if guild_id is None:
            raise DiscordError(f"Unknown Channel {parent_id}")
        thread_id = self._allocate_id()
        self.threads[thread_id] = ThreadRecord(
            id=thread_id, guild_id=guild_id, parent_id=parent_id, name=name
        )
        return thread_id

    def _active_threads(
        self, guild_id: Snowflake, parent_id: Snowflake, name: str
    ) -> list[Snowflake]:
        return [
            thread.id
            for thread in self.threads.values()
            if not thread.archived
            and thread.guild_id == guild_id
            and thread.parent_id == parent_id
            and thread.name == name
        ]

    def _require_thread(self, thread_id: Snowflake) -> ThreadRecord:
        thread = self.threads.get(thread_id)
        if thread is None:
            raise DiscordError(f"Unknown Channel {thread_id}")
        return thread

    def _require_target(self, channel_id: Snowflake) -> None:
        if channel_id not in self.threads and self._guild_of(channel_id) is None:
            raise DiscordError(f"Unknown Channel {channel_id}")
