"""Error taxonomy shared by the webhook surface, commands, and reconciliation.

Each error carries the HTTP status it maps to and a stable ``kind`` string so
callers can tell a conflict apart from an upstream failure without parsing
messages.
"""

from __future__ import annotations


class ByteHubError(RuntimeError):
    status = 500
    kind = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class InvalidSignature(ByteHubError):
    status = 401
    kind = "invalid_signature"

    def __init__(self, message: str = "invalid signature") -> None:
        super().__init__(message)


class InvalidPayload(ByteHubError):
    status = 400
    kind = "invalid_payload"

    def __init__(self, detail: str) -> None:
        super().__init__(f"invalid payload: {detail}")
        self.detail = detail


class Unauthorized(ByteHubError):
    status = 401
    kind = "unauthorized"

    def __init__(self, message: str = "unauthorized") -> None:
        super().__init__(message)


class NotFound(ByteHubError):
    status = 404
    kind = "not_found"


class ProjectAlreadyExists(ByteHubError):
    status = 409
    kind = "project_already_exists"

    def __init__(self, repo: str) -> None:
        super().__init__(f"Project `{repo}` already exists")
        self.repo = repo


class AlreadyApproved(ByteHubError):
    status = 409
    kind = "already_approved"

    def __init__(self, repo: str) -> None:
        super().__init__(f"Project `{repo}` is already approved")
        self.repo = repo


class MissingPermissions(ByteHubError):
    status = 403
    kind = "missing_permissions"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing permissions: {', '.join(missing)}")
        self.missing = list(missing)


class DiscordError(ByteHubError):
    status = 502
    kind = "discord_api_error"

    def __init__(self, detail: str, retry_after_s: float | None = None) -> None:
        super().__init__(f"discord api error: {detail}")
        self.detail = detail
        self.retry_after_s = retry_after_s


class StoreError(ByteHubError):
    kind = "store_error"


__all__ = [
    "AlreadyApproved",
    "ByteHubError",
    "DiscordError",
    "InvalidPayload",
    "InvalidSignature",
    "MissingPermissions",
    "NotFound",
    "ProjectAlreadyExists",
    "StoreError",
    "Unauthorized",
]
