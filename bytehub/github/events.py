"""Pydantic bindings for the GitHub webhook payloads ByteHub routes.

Only the fields the router and formatters read are declared; everything else
GitHub sends is ignored.
"""

from __future__ import annotations

from typing import ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bytehub.shared.errors import InvalidPayload


EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Repository(_Payload):
    full_name: str = Field(min_length=1)
    name: str = ""


class User(_Payload):
    login: str


class Label(_Payload):
    name: str


class Release(_Payload):
    tag_name: str
    name: str | None = None
    body: str | None = None
    html_url: str = ""


class PullRequest(_Payload):
    number: int
    title: str = ""
    html_url: str = ""
    merged: bool | None = None
    labels: list[Label] = Field(default_factory=list)


class Issue(_Payload):
    number: int
    title: str = ""
    html_url: str = ""
    labels: list[Label] = Field(default_factory=list)


class WorkflowRun(_Payload):
    id: int
    name: str | None = None
    conclusion: str | None = None
    head_branch: str | None = None
    html_url: str = ""


class GitHubEvent(_Payload):
    """Fields every routed event shares."""

    event_type: ClassVar[str] = ""

    action: str = ""
    repository: Repository
    sender: User

    @property
    def event_key(self) -> str:
        return f"{self.event_type}.{self.action}"

    @property
    def repo_full_name(self) -> str:
        return self.repository.full_name.strip().lower()

    @property
    def actor(self) -> str:
        return self.sender.login

    @property
    def labels(self) -> list[str]:
        return []

    @property
    def is_merged(self) -> bool:
        return False


class ReleaseEvent(GitHubEvent):
    event_type: ClassVar[str] = "release"

    release: Release


class PullRequestEvent(GitHubEvent):
    event_type: ClassVar[str] = "pull_request"

    pull_request: PullRequest

    @property
    def labels(self) -> list[str]:
        return [label.name for label in self.pull_request.labels]

    @property
    def is_merged(self) -> bool:
        return bool(self.pull_request.merged)


class IssueEvent(GitHubEvent):
    event_type: ClassVar[str] = "issues"

    issue: Issue

    @property
    def labels(self) -> list[str]:
        return [label.name for label in self.issue.labels]


class WorkflowRunEvent(GitHubEvent):
    event_type: ClassVar[str] = "workflow_run"

    workflow_run: WorkflowRun

    @property
    def conclusion(self) -> str:
        return self.workflow_run.conclusion or "unknown"

    @property
    def branch(self) -> str:
        return self.workflow_run.head_branch or ""


ParsedEvent = Union[ReleaseEvent, PullRequestEvent, IssueEvent, WorkflowRunEvent]

EVENT_MODELS: dict[str, type[GitHubEvent]] = {
    model.event_type: model
    for model in (ReleaseEvent, PullRequestEvent, IssueEvent, WorkflowRunEvent)
}


def parse_event(event_type: str, body: bytes) -> ParsedEvent | None:
    """Bind ``body`` to the model for ``event_type``.

    Returns ``None`` for event types ByteHub does not route. Call only after the
    signature has been verified.
    """

    model = EVENT_MODELS.get(event_type.strip().lower())
    if model is None:
        return None
    try:
        return model.model_validate_json(body)  # type: ignore[return-value]
    except ValidationError as exc:
        raise InvalidPayload(f"{event_type}: {exc.error_count()} validation error(s)") from exc
