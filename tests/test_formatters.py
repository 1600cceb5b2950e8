from __future__ import annotations

from bytehub.discord.formatters import (
    COLOR_BOUNTY,
    COLOR_FAILURE,
    COLOR_ISSUE,
    COLOR_PR,
    COLOR_SKIPPED,
    COLOR_SUCCESS,
    MAX_DESCRIPTION_CHARS,
    apply_template,
    format_event,
)
from bytehub.github.events import IssueEvent, PullRequestEvent, ReleaseEvent, WorkflowRunEvent


BASE = {"repository": {"full_name": "octo/widgets"}, "sender": {"login": "alice"}}


def test_workflow_colors_follow_conclusion() -> None:
    def run(conclusion):
        return WorkflowRunEvent.model_validate(
            {
                **BASE,
                "action": "completed",
                "workflow_run": {"id": 1, "name": "CI", "conclusion": conclusion},
            }
        )

    passed = format_event(run("success"))
    failed = format_event(run("failure"))
    skipped = format_event(run("skipped"))

    assert passed.title == "✅ CI: CI"
    assert passed.color == COLOR_SUCCESS
    assert failed.title == "❌ CI: CI"
    assert failed.color == COLOR_FAILURE
    assert skipped.color == COLOR_SKIPPED


def test_pull_request_merged_and_bounty() -> None:
    merged = PullRequestEvent.model_validate(
        {
            **BASE,
            "action": "closed",
            "pull_request": {"number": 12, "title": "Gears", "merged": True},
        }
    )
    bounty = PullRequestEvent.model_validate(
        {
            **BASE,
            "action": "opened",
            "pull_request": {"number": 13, "title": "Cogs", "labels": [{"name": "bounty"}]},
        }
    )

    assert format_event(merged).title == "🧩 PR #12 merged"
    assert format_event(merged).color == COLOR_PR
    assert format_event(bounty).title == "🪙 PR #13 opened [bounty]"
    assert format_event(bounty).color == COLOR_BOUNTY


def test_issue_title_and_color() -> None:
    event = IssueEvent.model_validate(
        {**BASE, "action": "opened", "issue": {"number": 3, "title": "Wobbly gear"}}
    )
    embed = format_event(event)
    assert embed.title == "📋 Issue #3: Wobbly gear"
    assert embed.color == COLOR_ISSUE
    assert "Opened by @alice" in embed.description


def test_release_body_and_footer() -> None:
    event = ReleaseEvent.model_validate(
        {
            **BASE,
            "action": "published",
            "release": {
                "tag_name": "v1.0.0",
                "body": "Notes",
                "html_url": "https://github.com/octo/widgets/releases/v1.0.0",
            },
        }
    )
    embed = format_event(event)

    assert embed.title == "🚀 Release v1.0.0"
    assert embed.description.startswith("**octo/widgets** released `v1.0.0`")
    assert "[View Release](https://github.com/octo/widgets/releases/v1.0.0)" in embed.description
    assert embed.footer == "by @alice"
    assert embed.to_payload()["footer"] == {"text": "by @alice"}


def test_long_descriptions_are_truncated() -> None:
    event = ReleaseEvent.model_validate(
        {**BASE, "action": "published", "release": {"tag_name": "v2", "body": "x" * 10_000}}
    )
    embed = format_event(event)
    assert len(embed.description) == MAX_DESCRIPTION_CHARS
    assert embed.description.endswith("…")


def test_template_overrides_description() -> None:
    event = PullRequestEvent.model_validate(
        {
            **BASE,
            "action": "opened",
            "pull_request": {"number": 1, "title": "Gears", "html_url": "https://x/pr/1"},
        }
    )
    embed = format_event(event)

    templated = apply_template(embed, "{actor} {action} {title} in {repo}: {url}", event)
    assert templated.description == "alice opened Gears in octo/widgets: https://x/pr/1"
    assert templated.title == embed.title

    assert apply_template(embed, None, event) == embed
    assert apply_template(embed, "{unknown}", event) == embed
