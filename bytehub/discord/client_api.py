"""Discord REST API client implementation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests

from bytehub.discord.client import (
    FLAG_EPHEMERAL,
    FLAG_PINNED,
    PERMISSIONS,
    Channel,
    ChannelType,
    EmbedSpec,
    match_containing,
    match_exact,
    parse_permissions,
)
from bytehub.shared.errors import DiscordError
from bytehub.shared.ids import Snowflake


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (https://github.com/bytehub, 0.4)"


class DiscordAPIClient:
    """Blocking ``requests`` calls run on a worker thread per request.

    Failures surface as ``DiscordError`` carrying Discord's own message. Nothing
    is retried here; a rate-limited call reports ``retry_after_s`` and the
    operator re-runs the command.
    """

    def __init__(
        self,
        token: str,
        application_id: str,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout_s: float = 15,
    ) -> None:
        self.token = token
        self._application_id = application_id
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    @property
    def application_id(self) -> str:
        return self._application_id

    # Channels

    async def list_guild_channels(self, guild_id: Snowflake) -> list[Channel]:
        rows = await self._request("GET", f"/guilds/{guild_id}/channels")
        if not isinstance(rows, list):
            return []
        return [channel for channel in (_channel_from_row(row) for row in rows) if channel]

    async def find_channel_by_name(self, guild_id: Snowflake, name: str) -> Snowflake | None:
        return match_exact(await self.list_guild_channels(guild_id), name)

    async def find_channel_containing(self, guild_id: Snowflake, keyword: str) -> Snowflake | None:
        return match_containing(await self.list_guild_channels(guild_id), keyword)

    async def find_category_by_name(self, guild_id: Snowflake, name: str) -> Snowflake | None:
        channels = await self.list_guild_channels(guild_id)
        return match_exact(channels, name, kind=ChannelType.GUILD_CATEGORY)

    async def find_category_containing(
        self, guild_id: Snowflake, keyword: str
    ) -> Snowflake | None:
        channels = await self.list_guild_channels(guild_id)
        return match_containing(channels, keyword, kind=ChannelType.GUILD_CATEGORY)

    async def create_text_channel(self, guild_id: Snowflake, name: str) -> Snowflake:
        return await self._create_channel(guild_id, {"name": name, "type": ChannelType.GUILD_TEXT})

    async def create_category(self, guild_id: Snowflake, name: str) -> Snowflake:
        return await self._create_channel(
            guild_id, {"name": name, "type": ChannelType.GUILD_CATEGORY}
        )

    async def create_private_category(self, guild_id: Snowflake, name: str) -> Snowflake:
        return await self._create_channel(
            guild_id,
            {
                "name": name,
                "type": ChannelType.GUILD_CATEGORY,
                "permission_overwrites": [_everyone_deny_view(guild_id)],
            },
        )

    async def create_forum_channel(
        self, guild_id: Snowflake, category_id: Snowflake, name: str
    ) -> Snowflake:
        return await self._create_channel(
            guild_id,
            {"name": name, "type": ChannelType.GUILD_FORUM, "parent_id": str(category_id)},
        )

    async def create_channel_in_category(
        self,
        guild_id: Snowflake,
        category_id: Snowflake,
        name: str,
        private: bool = False,
    ) -> Snowflake:
        payload: dict[str, Any] = {
            "name": name,
            "type": ChannelType.GUILD_TEXT,
            "parent_id": str(category_id),
        }
        if private:
            payload["permission_overwrites"] = [_everyone_deny_view(guild_id)]
        return await self._create_channel(guild_id, payload)

    # Threads and messages

    async def find_active_thread_by_name(
        self, guild_id: Snowflake, parent_id: Snowflake, name: str
    ) -> Snowflake | None:
        matches = await self.find_active_threads_by_name(guild_id, parent_id, name)
        return matches[0] if matches else None

    async def find_active_threads_by_name(
        self, guild_id: Snowflake, parent_id: Snowflake, name: str
    ) -> list[Snowflake]:
        response = await self._request("GET", f"/guilds/{guild_id}/threads/active")
        threads = response.get("threads", []) if isinstance(response, dict) else []
        matches = []
        for row in threads:
            thread = _channel_from_row(row)
            if thread and thread.parent_id == parent_id and thread.name == name:
                matches.append(thread.id)
        return matches

    async def create_forum_thread(
        self, channel_id: Snowflake, name: str, content: str
    ) -> Snowflake:
        return await self._create_thread(channel_id, name, {"content": content})

    async def create_forum_thread_with_embed(
        self, channel_id: Snowflake, thread_name: str, embed: EmbedSpec
    ) -> Snowflake:
        return await self._create_thread(channel_id, thread_name, {"embeds": [embed.to_payload()]})

    async def send_message(self, channel_id: Snowflake, content: str) -> None:
        await self._request("POST", f"/channels/{channel_id}/messages", json={"content": content})

    async def send_message_with_embed(self, channel_id: Snowflake, embed: EmbedSpec) -> None:
        await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            json={"embeds": [embed.to_payload()]},
        )

    async def lock_thread(self, thread_id: Snowflake) -> None:
        await self._request(
            "PATCH", f"/channels/{thread_id}", json={"archived": False, "locked": True}
        )

    async def pin_and_lock_thread(self, thread_id: Snowflake) -> None:
        # Forums allow a single pinned thread; only the activity thread uses this.
        await self.lock_thread(thread_id)
        await self._request("PATCH", f"/channels/{thread_id}", json={"flags": FLAG_PINNED})

    # Guild and interactions

    async def get_self_permissions(self, guild_id: Snowflake) -> int:
        member = await self._request("GET", f"/guilds/{guild_id}/members/{self.application_id}")
        roles = await self._request("GET", f"/guilds/{guild_id}/roles")
        member_roles = set(member.get("roles", [])) if isinstance(member, dict) else set()
        bits = 0
        for role in roles if isinstance(roles, list) else []:
            role_id = str(role.get("id", ""))
            if role_id in member_roles or role_id == str(guild_id):
                bits |= parse_permissions(role.get("permissions"))
        logger.debug("bot permissions in guild %s: %d", guild_id, bits)
        return bits

    async def send_followup(
        self, interaction_token: str, content: str, ephemeral: bool = True
    ) -> None:
        payload: dict[str, Any] = {"content": content}
        if ephemeral:
            payload["flags"] = FLAG_EPHEMERAL
        await self._request(
            "POST",
            f"/webhooks/{self.application_id}/{interaction_token}",
            json=payload,
            authorize=False,
        )

    def put_application_commands(self, commands: list[dict[str, Any]]) -> Any:
        return self._request_sync(
            "PUT", f"/applications/{self.application_id}/commands", json=commands
        )

    # Transport

    async def _create_channel(self, guild_id: Snowflake, payload: dict[str, Any]) -> Snowflake:
        row = await self._request("POST", f"/guilds/{guild_id}/channels", json=payload)
        return _require_id(row, f"create channel {payload.get('name')!r}")

    async def _create_thread(
        self, channel_id: Snowflake, name: str, message: dict[str, Any]
    ) -> Snowflake:
        row = await self._request(
            "POST",
            f"/channels/{channel_id}/threads",
            json={"name": name, "message": message},
        )
        return _require_id(row, f"create thread {name!r}")

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        authorize: bool = True,
    ) -> Any:
        return await asyncio.to_thread(self._request_sync, method, path, json, authorize)

    def _request_sync(
        self,
        method: str,
        path: str,
        json: Any = None,
        authorize: bool = True,
    ) -> Any:
        headers = {"User-Agent": USER_AGENT}
        if authorize and self.token:
            headers["Authorization"] = f"Bot {self.token}"
        try:
            response = self.session.request(
                method=method,
                url=f"{self.base_url}{path}",
                headers=headers,
                json=json,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise DiscordError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 429:
            raise DiscordError(
                f"{method} {path} rate limited",
                retry_after_s=_parse_retry_after(response),
            )
        if response.status_code >= 400:
            raise DiscordError(
                f"{method} {path} returned {response.status_code}: {_error_message(response)}"
            )
        if not response.content:
            return {}
        return response.json()


def _channel_from_row(row: Any) -> Channel | None:
    if not isinstance(row, dict):
        return None
    channel_id = Snowflake.parse(row.get("id"))
    if channel_id is None:
        return None
    return Channel(
        id=channel_id,
        name=str(row.get("name") or ""),
        kind=int(row.get("type", ChannelType.GUILD_TEXT)),
        parent_id=Snowflake.parse(row.get("parent_id")),
    )


def _require_id(row: Any, action: str) -> Snowflake:
    channel_id = Snowflake.parse(row.get("id")) if isinstance(row, dict) else None
    if channel_id is None:
        raise DiscordError(f"{action}: response carried no channel id")
    return channel_id


def _everyone_deny_view(guild_id: Snowflake) -> dict[str, Any]:
    # The @everyone role shares the guild's id.
    return {"id": str(guild_id), "type": 0, "allow": "0", "deny": str(PERMISSIONS["VIEW_CHANNEL"])}


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] if response.text else "no body"
    if isinstance(payload, dict):
        return str(payload.get("message") or payload)
    return str(payload)


def _parse_retry_after(response: requests.Response) -> float | None:
    value = (response.headers or {}).get("Retry-After")
    if not value:
        try:
            value = response.json().get("retry_after")
        except (ValueError, AttributeError):
            return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None
