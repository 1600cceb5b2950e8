"""Governed projects and per-guild channel configuration."""

from __future__ import annotations

from dataclasses import dataclass

from bytehub.shared.ids import Snowflake


def normalize_repo(github_repo: str) -> str:
    """Canonical form of a repo id: trimmed and lowercased, once, at the store."""

    return github_repo.strip().lower()


def project_short_name(github_repo: str) -> str:
    repo = github_repo.strip()
    return repo.rsplit("/", 1)[-1] or repo


@dataclass(frozen=True)
class Project:
    github_repo: str
    name: str
    forum_channel_id: str = ""
    thread_id: str | None = None
    guild_id: str = ""
    is_approved: bool = False

    @property
    def forum_snowflake(self) -> Snowflake | None:
        return Snowflake.parse(self.forum_channel_id)

    @property
    def thread_snowflake(self) -> Snowflake | None:
        return Snowflake.parse(self.thread_id)

    @property
    def guild_snowflake(self) -> Snowflake | None:
        return Snowflake.parse(self.guild_id)


@dataclass(frozen=True)
class ServerConfig:
    """Where a guild's announcements, project forums, and mod channels live.

    ``github_category_id`` is the shared category that holds every project
    forum in the guild.
    """

    guild_id: str
    announcements_id: str
    github_category_id: str
    mod_category_id: str | None = None
    project_review_id: str | None = None
    approvals_id: str | None = None

    @property
    def announcements_snowflake(self) -> Snowflake | None:
        return Snowflake.parse(self.announcements_id)

    @property
    def github_category_snowflake(self) -> Snowflake | None:
        return Snowflake.parse(self.github_category_id)

    @property
    def mod_category_snowflake(self) -> Snowflake | None:
        return Snowflake.parse(self.mod_category_id)

    @property
    def project_review_snowflake(self) -> Snowflake | None:
        return Snowflake.parse(self.project_review_id)

    @property
    def approvals_snowflake(self) -> Snowflake | None:
        return Snowflake.parse(self.approvals_id)
