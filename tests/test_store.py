from __future__ import annotations

from pathlib import Path

import pytest

from bytehub.governance.models import ServerConfig
from bytehub.governance.rules import RuleActions, RuleConditions
from bytehub.governance.store import ByteHubDB
from bytehub.shared.errors import AlreadyApproved, NotFound, ProjectAlreadyExists


def test_submit_normalizes_repo_and_rejects_case_duplicates() -> None:
    db = ByteHubDB()
    project = db.submit_project("  Octo/Widgets ")

    assert project.github_repo == "octo/widgets"
    assert project.name == "widgets"
    assert project.is_approved is False
    assert db.get_project("OCTO/WIDGETS") == db.get_project("octo/widgets")

    with pytest.raises(ProjectAlreadyExists):
        db.submit_project("octo/WIDGETS")
    assert len(db.list_projects()) == 1


def test_approve_sets_forum_and_guild_once() -> None:
    db = ByteHubDB()
    db.submit_project("octo/widgets")
    assert db.get_approved_project("octo/widgets") is None

    approved = db.approve_project_with_forum("Octo/Widgets", "300", "42")
    assert approved.is_approved is True
    assert approved.forum_channel_id == "300"
    assert approved.guild_id == "42"

    with pytest.raises(AlreadyApproved) as excinfo:
        db.approve_project_with_forum("octo/widgets", "999", "43")
    assert excinfo.value.kind == "already_approved"
    unchanged = db.get_project("octo/widgets")
    assert unchanged is not None
    assert (unchanged.forum_channel_id, unchanged.guild_id) == ("300", "42")


def test_approve_unknown_project_is_not_found() -> None:
    db = ByteHubDB()
    with pytest.raises(NotFound):
        db.approve_project_with_forum("nobody/nothing", "300", "42")


def test_approve_requires_forum_and_guild() -> None:
    db = ByteHubDB()
    db.submit_project("octo/widgets")
    with pytest.raises(ValueError):
        db.approve_project_with_forum("octo/widgets", "", "42")


def test_forum_and_thread_ids_update_independently() -> None:
    db = ByteHubDB()
    db.submit_project("octo/widgets")
    db.approve_project_with_forum("octo/widgets", "300", "42")

    assert db.update_thread_id("octo/widgets", "555") is True
    assert db.update_forum_id("Octo/Widgets", "301") is True
    assert db.update_forum_id("missing/repo", "1") is False

    project = db.get_project("octo/widgets")
    assert project is not None
    assert project.forum_channel_id == "301"
    assert project.thread_id == "555"
    assert [p.github_repo for p in db.list_projects_by_guild("42")] == ["octo/widgets"]


def test_deny_removes_project_and_rules() -> None:
    db = ByteHubDB()
    db.submit_project("octo/widgets")
    db.add_rule("octo/widgets", RuleConditions(), RuleActions())

    db.deny_project("OCTO/widgets")

    assert db.get_project("octo/widgets") is None
    assert db.list_rules("octo/widgets") == []
    with pytest.raises(NotFound):
        db.deny_project("octo/widgets")


def test_server_config_upserts() -> None:
    db = ByteHubDB()
    db.save_server_config(ServerConfig(guild_id="42", announcements_id="1", github_category_id="2"))
    db.save_server_config(
        ServerConfig(
            guild_id="42",
            announcements_id="10",
            github_category_id="2",
            mod_category_id="3",
            project_review_id="4",
            approvals_id="5",
        )
    )

    config = db.get_server_config("42")
    assert config is not None
    assert config.announcements_id == "10"
    assert config.approvals_id == "5"
    assert db.get_server_config("43") is None


def test_rules_round_trip_in_priority_order() -> None:
    db = ByteHubDB()
    db.submit_project("octo/widgets")
    low = db.add_rule("octo/widgets", RuleConditions(merged=True), RuleActions(), priority=1)
    high = db.add_rule(
        "octo/widgets",
        RuleConditions(labels=["bounty"]),
        RuleActions(post_announce=True, template="{repo}: {title}"),
        priority=9,
    )

    rules = db.list_rules("octo/widgets")
    assert [rule.rule_id for rule in rules] == [high.rule_id, low.rule_id]
    assert rules[0].conditions.labels == ["bounty"]
    assert rules[0].actions.template == "{repo}: {title}"

    with pytest.raises(NotFound):
        db.add_rule("nobody/nothing", RuleConditions(), RuleActions())


def test_whitelist_is_case_insensitive() -> None:
    db = ByteHubDB()
    assert db.add_whitelisted_user("Alice") is True
    assert db.add_whitelisted_user("alice") is False
    assert db.is_whitelisted("ALICE") is True
    assert db.is_whitelisted("bob") is False


def test_audit_events_are_recorded_in_order() -> None:
    db = ByteHubDB()
    db.append_audit_event("webhook_received", {"repo": "octo/widgets"})
    db.append_audit_event("forum_repaired", {"repo": "octo/widgets", "new_forum_id": "9"})

    events = db.list_audit_events()
    assert [event["event_type"] for event in events] == ["webhook_received", "forum_repaired"]
    assert db.list_audit_events("forum_repaired")[0]["payload"]["new_forum_id"] == "9"


def test_file_backed_store_persists_across_connections(tmp_path: Path) -> None:
    path = tmp_path / "bytehub.sqlite"
    first = ByteHubDB(path)
    first.submit_project("octo/widgets")
    first.close()

    second = ByteHubDB(path)
    assert second.get_project("octo/widgets") is not None
    second.close()
