"""Reconciliation engine: route one GitHub event into a guild's channels.

Per event, in order:

1. look up the approved project for the event's repository (none => ignored)
2. make sure the project's forum exists, recreating it on drift
3. post to the pinned activity thread
4. post to the milestone sidebar thread
5. post to the guild's announcements channel

A failure in step 2 aborts the event. Steps 3-5 are isolated from each other:
a failing step is logged and audited and the remaining steps still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable

from bytehub.discord.client import Channel, ChannelType, DiscordClient, EmbedSpec
from bytehub.discord.formatters import apply_template, format_event
from bytehub.github.events import GitHubEvent
from bytehub.governance.filters import is_bot_actor, sidebar_category, triage
from bytehub.governance.models import Project
from bytehub.governance.rules import evaluate_rules
from bytehub.governance.store import ByteHubDB
from bytehub.router.channels import (
    activity_thread_name,
    ensure_announcements,
    ensure_category,
    ensure_project_forum,
    resolve,
)
from bytehub.shared.errors import StoreError
from bytehub.shared.ids import Snowflake


logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    repo: str
    status: str
    activity_posts: int = 0
    sidebar_posts: int = 0
    announcement_posts: int = 0
    repaired: list[str] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo": self.repo,
            "status": self.status,
            "activity_posts": self.activity_posts,
            "sidebar_posts": self.sidebar_posts,
            "announcement_posts": self.announcement_posts,
            "repaired": list(self.repaired),
            "failed_steps": list(self.failed_steps),
        }


@dataclass(frozen=True)
class _Routing:
    post: bool
    announce: bool
    template: str | None = None


class Dispatcher:
    def __init__(self, db: ByteHubDB, client: DiscordClient) -> None:
        self.db = db
        self.client = client

    async def dispatch(self, event: GitHubEvent) -> DispatchResult:
        repo = event.repo_full_name
        project = self.db.get_approved_project(repo)
        if project is None:
            logger.info("ignoring %s for %s: no approved project", event.event_key, repo)
            return DispatchResult(repo=repo, status="ignored")

        guild_id = project.guild_snowflake
        if guild_id is None:
            raise StoreError(f"approved project {repo} has no usable guild id")

        result = DispatchResult(repo=repo, status="dispatched")
        channels = await self.client.list_guild_channels(guild_id)
        forum_id = await self._ensure_forum(project, guild_id, channels, result)

        decision = triage(event)
        routing = self._routing(project, event, decision.post, decision.announce)
        embed = format_event(event)
        routed_embed = apply_template(embed, routing.template, event)

        if decision.log and not is_bot_actor(event.actor):
            await self._isolated(
                "activity_thread",
                result,
                event,
                lambda: self._post_activity(project, guild_id, forum_id, embed, result),
            )
        if routing.post:
            await self._isolated(
                "sidebar_thread",
                result,
                event,
                lambda: self._post_sidebar(event, guild_id, forum_id, routed_embed, result),
            )
        if routing.announce:
            await self._isolated(
                "announcements",
                result,
                event,
                lambda: self._post_announcement(project, guild_id, channels, routed_embed, result),
            )

        logger.info(
            "dispatched %s for %s: activity=%d sidebar=%d announce=%d failed=%s",
            event.event_key,
            repo,
            result.activity_posts,
            result.sidebar_posts,
            result.announcement_posts,
            result.failed_steps or "none",
        )
        return result

    def _routing(
        self, project: Project, event: GitHubEvent, post: bool, announce: bool
    ) -> _Routing:
        rules = self.db.list_rules(project.github_repo)
        if not rules:
            return _Routing(post=post, announce=announce)
        match = evaluate_rules(rules, event, actor_whitelisted=self.db.is_whitelisted(event.actor))
        if match is None:
            logger.info("no rule matched %s for %s", event.event_key, project.github_repo)
            return _Routing(post=False, announce=False)
        return _Routing(
            post=post and match.actions.post_forum,
            announce=announce and match.actions.post_announce,
            template=match.actions.template,
        )

    async def _ensure_forum(
        self,
        project: Project,
        guild_id: Snowflake,
        channels: list[Channel],
        result: DispatchResult,
    ) -> Snowflake:
        stored = project.forum_snowflake
        reused = resolve(channels, stored, (ChannelType.GUILD_FORUM,))
        if reused is not None:
            return reused

        config = self.db.get_server_config(project.guild_id)
        stored_category = config.github_category_snowflake if config else None
        category = await ensure_category(self.client, guild_id, channels, stored_id=stored_category)
        if config is not None and category.channel_id != stored_category:
            self.db.save_server_config(
                replace(config, github_category_id=str(category.channel_id))
            )
            result.repaired.append("github_category")

        forum = await ensure_project_forum(
            self.client, guild_id, channels, project.github_repo, stored, category.channel_id
        )
        self.db.update_forum_id(project.github_repo, str(forum.channel_id))
        self.db.append_audit_event(
            "forum_repaired",
            {
                "repo": project.github_repo,
                "guild_id": project.guild_id,
                "old_forum_id": project.forum_channel_id,
                "new_forum_id": str(forum.channel_id),
            },
        )
        logger.warning(
            "forum for %s did not resolve (%r); now %s",
            project.github_repo,
            project.forum_channel_id,
            forum.channel_id,
        )
        result.repaired.append("forum")
        return forum.channel_id

    async def _post_activity(
        self,
        project: Project,
        guild_id: Snowflake,
        forum_id: Snowflake,
        embed: EmbedSpec,
        result: DispatchResult,
    ) -> None:
        name = activity_thread_name(project.github_repo)
        matches = await self.client.find_active_threads_by_name(guild_id, forum_id, name)
        stored = project.thread_snowflake
        if stored is not None and stored in matches:
            await self.client.send_message_with_embed(stored, embed)
            result.activity_posts += 1
            return

        if matches:
            # A thread with this name already exists: adopt it.
            thread_id = matches[0]
            await self.client.send_message_with_embed(thread_id, embed)
        else:
            thread_id = await self.client.create_forum_thread_with_embed(forum_id, name, embed)
        result.activity_posts += 1
        self.db.update_thread_id(project.github_repo, str(thread_id))
        if project.thread_id:
            self.db.append_audit_event(
                "thread_repaired",
                {
                    "repo": project.github_repo,
                    "old_thread_id": project.thread_id,
                    "new_thread_id": str(thread_id),
                },
            )
            result.repaired.append("activity_thread")
        await self.client.pin_and_lock_thread(thread_id)

    async def _post_sidebar(
        self,
        event: GitHubEvent,
        guild_id: Snowflake,
        forum_id: Snowflake,
        embed: EmbedSpec,
        result: DispatchResult,
    ) -> None:
        category = sidebar_category(event)
        if category is None:
            return
        found = await self.client.find_active_thread_by_name(guild_id, forum_id, category)
        if found is not None:
            await self.client.send_message_with_embed(found, embed)
            result.sidebar_posts += 1
            return
        thread_id = await self.client.create_forum_thread_with_embed(forum_id, category, embed)
        result.sidebar_posts += 1
        # The single pin slot belongs to the activity thread.
        await self.client.lock_thread(thread_id)

    async def _post_announcement(
        self,
        project: Project,
        guild_id: Snowflake,
        channels: list[Channel],
        embed: EmbedSpec,
        result: DispatchResult,
    ) -> None:
        config = self.db.get_server_config(project.guild_id)
        if config is None:
            logger.info("guild %s has no server config; skipping announcement", project.guild_id)
            return
        stored = config.announcements_snowflake
        ensured = await ensure_announcements(self.client, guild_id, channels, stored_id=stored)
        if ensured.channel_id != stored:
            self.db.save_server_config(replace(config, announcements_id=str(ensured.channel_id)))
            self.db.append_audit_event(
                "announcements_repaired",
                {
                    "guild_id": project.guild_id,
                    "old_channel_id": config.announcements_id,
                    "new_channel_id": str(ensured.channel_id),
                },
            )
            result.repaired.append("announcements")
        await self.client.send_message_with_embed(ensured.channel_id, embed)
        result.announcement_posts += 1

    async def _isolated(
        self,
        step: str,
        result: DispatchResult,
        event: GitHubEvent,
        run: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await run()
        except Exception as exc:
            logger.exception("%s failed for %s (%s)", step, result.repo, event.event_key)
            result.failed_steps.append(step)
            self.db.append_audit_event(
                "dispatch_step_failed",
                {
                    "repo": result.repo,
                    "step": step,
                    "event": event.event_key,
                    "error": str(exc),
                },
            )
