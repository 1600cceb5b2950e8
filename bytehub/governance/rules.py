"""Per-project routing rules.

A project with no rules is routed purely by the triage filters. Once a project
has rules, the first matching rule (highest priority first) decides whether the
sidebar and announcement sinks fire; no match drops both.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

from bytehub.github.events import GitHubEvent


class RuleConditions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_type: str | None = None
    labels: list[str] | None = None
    actor_whitelisted: bool | None = None
    merged: bool | None = None


class RuleActions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    post_forum: bool = True
    post_announce: bool = False
    template: str | None = Field(default=None, min_length=1)


@dataclass(frozen=True)
class Rule:
    rule_id: int
    github_repo: str
    priority: int
    conditions: RuleConditions
    actions: RuleActions


@dataclass(frozen=True)
class RuleMatch:
    rule_id: int
    actions: RuleActions


def rule_matches(rule: Rule, event: GitHubEvent, actor_whitelisted: bool) -> bool:
    conditions = rule.conditions
    if conditions.event_type is not None and conditions.event_type != event.event_key:
        return False
    if conditions.labels:
        present = set(event.labels)
        if not all(label in present for label in conditions.labels):
            return False
    if (
        conditions.actor_whitelisted is not None
        and conditions.actor_whitelisted != actor_whitelisted
    ):
        return False
    if conditions.merged is not None and conditions.merged != event.is_merged:
        return False
    return True


def evaluate_rules(
    rules: Iterable[Rule],
    event: GitHubEvent,
    actor_whitelisted: bool = False,
) -> RuleMatch | None:
    ordered = sorted(rules, key=lambda rule: (-rule.priority, rule.rule_id))
    for rule in ordered:
        if rule_matches(rule, event, actor_whitelisted):
            return RuleMatch(rule_id=rule.rule_id, actions=rule.actions)
    return None
