"""Embed formatting for routed GitHub events."""

from __future__ import annotations

from dataclasses import replace

from bytehub.discord.client import EmbedSpec
from bytehub.github.events import (
    GitHubEvent,
    IssueEvent,
    PullRequestEvent,
    ReleaseEvent,
    WorkflowRunEvent,
)
from bytehub.governance.filters import has_bounty_label


COLOR_SUCCESS = 0x2ECC71
COLOR_FAILURE = 0xE74C3C
COLOR_SKIPPED = 0x95A5A6
COLOR_PR = 0x9B59B6
COLOR_BOUNTY = 0xF1C40F
COLOR_ISSUE = 0x3498DB

MAX_DESCRIPTION_CHARS = 4096
MAX_TITLE_CHARS = 256


def format_event(event: GitHubEvent) -> EmbedSpec:
    if isinstance(event, WorkflowRunEvent):
        return format_workflow(event)
    if isinstance(event, PullRequestEvent):
        return format_pull_request(event)
    if isinstance(event, IssueEvent):
        return format_issue(event)
    if isinstance(event, ReleaseEvent):
        return format_release(event)
    return _embed(f"GitHub {event.event_key}", event.repository.full_name, COLOR_SKIPPED)


def format_workflow(event: WorkflowRunEvent) -> EmbedSpec:
    conclusion = event.conclusion
    if conclusion == "success":
        emoji, color = "✅", COLOR_SUCCESS
    elif conclusion == "failure":
        emoji, color = "❌", COLOR_FAILURE
    else:
        emoji, color = "⏭️", COLOR_SKIPPED
    name = event.workflow_run.name or "Workflow"
    description = (
        f"**{event.repository.full_name}** - {conclusion}\n"
        f"Branch: `{event.branch or 'unknown'}`\n\n"
        f"[View Run]({event.workflow_run.html_url})"
    )
    return _embed(f"{emoji} CI: {name}", description, color)


def format_pull_request(event: PullRequestEvent) -> EmbedSpec:
    pr = event.pull_request
    bounty = has_bounty_label(event)
    emoji = "🪙" if bounty else "🧩"
    if event.action == "closed":
        verb = "merged" if event.is_merged else "closed"
    else:
        verb = event.action or "updated"
    labels = event.labels
    label_str = f" [{', '.join(labels)}]" if labels else ""
    description = f"**{pr.title}**\nby @{event.actor}\n\n[View PR]({pr.html_url})"
    return _embed(
        f"{emoji} PR #{pr.number} {verb}{label_str}",
        description,
        COLOR_BOUNTY if bounty else COLOR_PR,
    )


def format_issue(event: IssueEvent) -> EmbedSpec:
    issue = event.issue
    bounty = has_bounty_label(event)
    emoji = "🪙" if bounty else "📋"
    verb = (event.action or "updated").capitalize()
    description = (
        f"{verb} by @{event.actor}\n"
        f"Labels: {', '.join(event.labels) or 'none'}\n\n"
        f"[View Issue]({issue.html_url})"
    )
    return _embed(
        f"{emoji} Issue #{issue.number}: {issue.title}",
        description,
        COLOR_BOUNTY if bounty else COLOR_ISSUE,
    )


def format_release(event: ReleaseEvent) -> EmbedSpec:
    release = event.release
    description = (
        f"**{event.repository.full_name}** released `{release.tag_name}`\n\n"
        f"{release.body or ''}\n\n"
        f"[View Release]({release.html_url})"
    )
    return _embed(
        f"🚀 Release {release.tag_name}",
        description,
        COLOR_SUCCESS,
        footer=f"by @{event.actor}",
    )


def apply_template(embed: EmbedSpec, template: str | None, event: GitHubEvent) -> EmbedSpec:
    """Replace the description with a rule template.

    Placeholders: ``{repo}``, ``{actor}``, ``{action}``, ``{title}``, ``{url}``.
    A template with unknown placeholders leaves the embed unchanged.
    """

    if not template:
        return embed
    title, url = _title_and_url(event)
    try:
        rendered = template.format(
            repo=event.repository.full_name,
            actor=event.actor,
            action=event.action,
            title=title,
            url=url,
        )
    except (KeyError, IndexError, ValueError):
        return embed
    return replace(embed, description=_truncate(rendered, MAX_DESCRIPTION_CHARS))


def _title_and_url(event: GitHubEvent) -> tuple[str, str]:
    if isinstance(event, PullRequestEvent):
        return event.pull_request.title, event.pull_request.html_url
    if isinstance(event, IssueEvent):
        return event.issue.title, event.issue.html_url
    if isinstance(event, ReleaseEvent):
        return event.release.name or event.release.tag_name, event.release.html_url
    if isinstance(event, WorkflowRunEvent):
        return event.workflow_run.name or "Workflow", event.workflow_run.html_url
    return "", ""


def _embed(title: str, description: str, color: int, footer: str | None = None) -> EmbedSpec:
    return EmbedSpec(
        title=_truncate(title, MAX_TITLE_CHARS),
        description=_truncate(description, MAX_DESCRIPTION_CHARS),
        color=color,
        footer=footer,
    )


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"
