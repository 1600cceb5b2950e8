from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import pytest
import requests

from bytehub.discord.client import (
    PERMISSIONS,
    REQUIRED_BOT_PERMISSION_BITS,
    ChannelType,
    EmbedSpec,
    build_client_from_env,
    is_moderator,
    missing_permissions,
)
from bytehub.discord.client_api import DiscordAPIClient
from bytehub.discord.client_inmemory import InMemoryDiscordClient
from bytehub.shared.errors import DiscordError
from bytehub.shared.ids import Snowflake


@dataclass
class FakeResponse:
    status_code: int
    payload: Any
    headers: dict[str, str] | None = None

    @property
    def content(self) -> bytes:
        if self.payload is None:
            return b""
        return b"json"

    @property
    def text(self) -> str:
        return "" if self.payload is None else str(self.payload)

    def json(self) -> Any:
        if self.payload is None:
            raise ValueError("no body")
        return self.payload


class FakeSession:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = responses
        self.calls: list[dict[str, Any]] = []

    def request(self, **kwargs: Any) -> FakeResponse:
        self.calls.append(kwargs)
        if not self.responses:
            raise RuntimeError("No fake response left")
        return self.responses.pop(0)


class BrokenSession:
    def request(self, **kwargs: Any) -> FakeResponse:
        raise requests.ConnectionError("connection refused")


def _client(responses: list[FakeResponse]) -> tuple[DiscordAPIClient, FakeSession]:
    session = FakeSession(responses)
    client = DiscordAPIClient(
        token="bot-token",
        application_id="777",
        base_url="https://discord.test/api/v10",
        session=session,  # type: ignore[arg-type]
    )
    return client, session


def test_build_client_from_env_defaults_to_inmemory() -> None:
    assert isinstance(build_client_from_env(env={}), InMemoryDiscordClient)


def test_build_client_from_env_explicit_empty_env_ignores_process(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("BYTEHUB_DISCORD_CLIENT", "api")
    assert isinstance(build_client_from_env(env={}), InMemoryDiscordClient)


def test_build_client_from_env_api() -> None:
    client = build_client_from_env(
        env={
            "BYTEHUB_DISCORD_CLIENT": "api",
            "DISCORD_BOT_TOKEN": "t",
            "DISCORD_APPLICATION_ID": "777",
        }
    )
    assert isinstance(client, DiscordAPIClient)
    assert client.application_id == "777"


def test_required_permission_bits_and_moderator_check() -> None:
    assert REQUIRED_BOT_PERMISSION_BITS == 326417599504
    assert missing_permissions(REQUIRED_BOT_PERMISSION_BITS) == []
    assert missing_permissions(PERMISSIONS["ADMINISTRATOR"]) == []
    assert "MANAGE_CHANNELS" in missing_permissions(0)
    assert is_moderator(0x8) is True
    assert is_moderator(0x20) is True
    assert is_moderator(PERMISSIONS["MANAGE_CHANNELS"]) is False


def test_list_guild_channels_parses_rows_and_skips_bad_ids() -> None:
    client, session = _client(
        [
            FakeResponse(
                200,
                [
                    {"id": "10", "name": "announcements", "type": 0},
                    {"id": "11", "name": "GitHub", "type": 4},
                    {"id": "12", "name": "widgets", "type": 15, "parent_id": "11"},
                    {"id": "0", "name": "broken", "type": 0},
                ],
            )
        ]
    )

    channels = asyncio.run(client.list_guild_channels(Snowflake(42)))

    assert [channel.id.value for channel in channels] == [10, 11, 12]
    assert channels[2].kind == ChannelType.GUILD_FORUM
    assert channels[2].parent_id == Snowflake(11)
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://discord.test/api/v10/guilds/42/channels"
    assert call["headers"]["Authorization"] == "Bot bot-token"
    assert call["timeout"] == 15


def test_find_category_by_name_is_exact_and_type_restricted() -> None:
    rows = [
        {"id": "10", "name": "GitHub", "type": 0},
        {"id": "11", "name": "GitHub", "type": 4},
    ]
    client, _ = _client([FakeResponse(200, rows), FakeResponse(200, rows)])

    assert asyncio.run(client.find_category_by_name(Snowflake(42), "GitHub")) == Snowflake(11)
    assert asyncio.run(client.find_category_by_name(Snowflake(42), "github")) is None


def test_create_forum_thread_with_embed_posts_message_payload() -> None:
    client, session = _client([FakeResponse(201, {"id": "900", "name": "CI Passed"})])
    embed = EmbedSpec(title="✅ CI: CI", description="ok", color=0x2ECC71)

    thread_id = asyncio.run(
        client.create_forum_thread_with_embed(Snowflake(12), "CI Passed", embed)
    )

    assert thread_id == Snowflake(900)
    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"].endswith("/channels/12/threads")
    assert call["json"] == {
        "name": "CI Passed",
        "message": {"embeds": [embed.to_payload()]},
    }


def test_pin_and_lock_patches_thread_twice() -> None:
    client, session = _client([FakeResponse(200, {"id": "900"}), FakeResponse(200, {"id": "900"})])

    asyncio.run(client.pin_and_lock_thread(Snowflake(900)))

    assert [call["json"] for call in session.calls] == [
        {"archived": False, "locked": True},
        {"flags": 2},
    ]
    assert all(call["method"] == "PATCH" for call in session.calls)


def test_find_active_thread_filters_by_parent_and_name() -> None:
    client, _ = _client(
        [
            FakeResponse(
                200,
                {
                    "threads": [
                        {"id": "1", "name": "CI Passed", "type": 11, "parent_id": "99"},
                        {"id": "2", "name": "CI Passed", "type": 11, "parent_id": "12"},
                    ]
                },
            )
        ]
    )
    found = asyncio.run(
        client.find_active_thread_by_name(Snowflake(42), Snowflake(12), "CI Passed")
    )
    assert found == Snowflake(2)


def test_find_active_threads_returns_every_match() -> None:
    rows = {
        "threads": [
            {"id": "1", "name": "📦 widgets Activity", "type": 11, "parent_id": "12"},
            {"id": "2", "name": "CI Passed", "type": 11, "parent_id": "12"},
            {"id": "3", "name": "📦 widgets Activity", "type": 11, "parent_id": "12"},
        ]
    }
    client, session = _client([FakeResponse(200, rows)])

    matches = asyncio.run(
        client.find_active_threads_by_name(Snowflake(42), Snowflake(12), "📦 widgets Activity")
    )

    assert matches == [Snowflake(1), Snowflake(3)]
    assert session.calls[0]["url"].endswith("/guilds/42/threads/active")


def test_self_permissions_or_member_roles_and_everyone() -> None:
    client, session = _client(
        [
            FakeResponse(200, {"roles": ["500"]}),
            FakeResponse(
                200,
                [
                    {"id": "42", "permissions": str(PERMISSIONS["VIEW_CHANNEL"])},
                    {"id": "500", "permissions": str(PERMISSIONS["MANAGE_CHANNELS"])},
                    {"id": "501", "permissions": str(PERMISSIONS["ADMINISTRATOR"])},
                ],
            ),
        ]
    )

    bits = asyncio.run(client.get_self_permissions(Snowflake(42)))

    assert bits == PERMISSIONS["VIEW_CHANNEL"] | PERMISSIONS["MANAGE_CHANNELS"]
    assert session.calls[0]["url"].endswith("/guilds/42/members/777")


def test_followup_is_ephemeral_and_unauthenticated() -> None:
    client, session = _client([FakeResponse(200, {"id": "1"})])

    asyncio.run(client.send_followup("tok", "done"))

    call = session.calls[0]
    assert call["url"] == "https://discord.test/api/v10/webhooks/777/tok"
    assert call["json"] == {"content": "done", "flags": 64}
    assert "Authorization" not in call["headers"]


def test_error_status_surfaces_discord_message_verbatim() -> None:
    client, _ = _client([FakeResponse(403, {"message": "Missing Access", "code": 50001})])

    with pytest.raises(DiscordError) as excinfo:
        asyncio.run(client.create_text_channel(Snowflake(42), "announcements"))

    assert "Missing Access" in excinfo.value.message
    assert excinfo.value.status == 502


def test_rate_limited_call_reports_retry_after() -> None:
    client, _ = _client([FakeResponse(429, {"retry_after": 2.5}, headers={})])

    with pytest.raises(DiscordError) as excinfo:
        asyncio.run(client.send_message(Snowflake(10), "hi"))

    assert excinfo.value.retry_after_s == 2.5


def test_transport_errors_become_discord_errors() -> None:
    client = DiscordAPIClient(
        token="t",
        application_id="1",
        session=BrokenSession(),  # type: ignore[arg-type]
    )

    with pytest.raises(DiscordError):
        asyncio.run(client.list_guild_channels(Snowflake(42)))


def test_put_application_commands_is_synchronous() -> None:
    client, session = _client([FakeResponse(200, [{"id": "1"}, {"id": "2"}])])

    registered = client.put_application_commands([{"name": "list"}, {"name": "repair"}])

    assert len(registered) == 2
    assert session.calls[0]["method"] == "PUT"
    assert session.calls[0]["url"].endswith("/applications/777/commands")
