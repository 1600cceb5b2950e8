"""Event triage: which sinks an inbound GitHub event is routed to.

Three independent decisions, all pure:

* ``should_log``      -> the project's pinned activity thread
* ``should_post``     -> a reusable per-milestone sidebar thread
* ``should_announce`` -> the guild's announcements channel
"""

from __future__ import annotations

from dataclasses import dataclass

from bytehub.github.events import (
    GitHubEvent,
    IssueEvent,
    PullRequestEvent,
    ReleaseEvent,
    WorkflowRunEvent,
)


BOT_LOGINS = ("dependabot", "renovate", "github-actions")
MAIN_BRANCHES = frozenset({"main", "master"})
LOGGED_CONCLUSIONS = frozenset({"success", "failure"})
BOUNTY_LABEL = "bounty"

CATEGORY_CI_PASSED = "CI Passed"
CATEGORY_CI_FAILED = "CI Failed"
CATEGORY_PR_OPENED = "PR Opened"
CATEGORY_PR_MERGED = "PR Merged"
CATEGORY_PR_LABELED = "PR Labeled"
CATEGORY_PR_BOUNTY = "PR with bounty"
CATEGORY_ISSUE_OPENED = "Issue Opened"
CATEGORY_ISSUE_LABELED = "Issue Labeled"
CATEGORY_ISSUE_BOUNTY = "Issue with bounty"
CATEGORY_RELEASES = "Releases"


@dataclass(frozen=True)
class Triage:
    log: bool
    post: bool
    announce: bool


def is_bot_actor(login: str) -> bool:
    lowered = login.lower()
    return any(bot in lowered for bot in BOT_LOGINS)


def has_bounty_label(event: GitHubEvent) -> bool:
    return BOUNTY_LABEL in event.labels


def should_log(event: GitHubEvent) -> bool:
    if isinstance(event, WorkflowRunEvent):
        return event.action == "completed" and event.conclusion in LOGGED_CONCLUSIONS
    return isinstance(event, (PullRequestEvent, IssueEvent, ReleaseEvent))


def should_post(event: GitHubEvent) -> bool:
    if isinstance(event, WorkflowRunEvent):
        return should_log(event) and event.branch in MAIN_BRANCHES
    if isinstance(event, PullRequestEvent):
        if is_bot_actor(event.actor):
            return False
        if event.action == "closed":
            return event.is_merged
        return event.action in {"opened", "labeled"}
    if isinstance(event, IssueEvent):
        return event.action in {"opened", "labeled"}
    if isinstance(event, ReleaseEvent):
        return event.action == "published"
    return False


def should_announce(event: GitHubEvent) -> bool:
    if isinstance(event, ReleaseEvent):
        return True
    if isinstance(event, (IssueEvent, PullRequestEvent)):
        return has_bounty_label(event)
    return False


def triage(event: GitHubEvent) -> Triage:
    return Triage(
        log=should_log(event),
        post=should_post(event),
        announce=should_announce(event),
    )


def sidebar_category(event: GitHubEvent) -> str | None:
    """Name of the sidebar thread an event belongs to, if any."""

    if isinstance(event, WorkflowRunEvent):
        if event.conclusion == "success":
            return CATEGORY_CI_PASSED
        if event.conclusion == "failure":
            return CATEGORY_CI_FAILED
        return None
    if isinstance(event, PullRequestEvent):
        if has_bounty_label(event):
            return CATEGORY_PR_BOUNTY
        if event.action == "opened":
            return CATEGORY_PR_OPENED
        if event.action == "closed" and event.is_merged:
            return CATEGORY_PR_MERGED
        if event.action == "labeled":
            return CATEGORY_PR_LABELED
        return None
    if isinstance(event, IssueEvent):
        if has_bounty_label(event):
            return CATEGORY_ISSUE_BOUNTY
        if event.action == "opened":
            return CATEGORY_ISSUE_OPENED
        if event.action == "labeled":
            return CATEGORY_ISSUE_LABELED
        return None
    if isinstance(event, ReleaseEvent):
        return CATEGORY_RELEASES
    return None
