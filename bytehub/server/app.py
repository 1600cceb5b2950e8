"""ByteHub application surface with a minimal ASGI HTTP layer."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Coroutine

from bytehub.discord.client import DiscordClient, build_client_from_settings
from bytehub.discord.commands import CommandHandler, parse_interaction
from bytehub.discord.rate_limit import RateLimiter
from bytehub.discord.verify import (
    SIGNATURE_HEADER as DISCORD_SIGNATURE_HEADER,
    TIMESTAMP_HEADER as DISCORD_TIMESTAMP_HEADER,
    verify_discord_signature,
)
from bytehub.github.events import DELIVERY_HEADER, EVENT_HEADER, parse_event
from bytehub.github.verify import SIGNATURE_HEADER as GITHUB_SIGNATURE_HEADER
from bytehub.github.verify import verify_github_signature
from bytehub.governance.store import ByteHubDB
from bytehub.router.dispatch import Dispatcher
from bytehub.shared.errors import ByteHubError, InvalidPayload, InvalidSignature
from bytehub.shared.settings import SERVICE_NAME, VERSION, Settings


logger = logging.getLogger(__name__)

RATE_LIMIT_CLEANUP_THRESHOLD = 1000


class ServerApp:
    """Webhook and interaction handlers over one store, client, and rate limiter."""

    def __init__(
        self,
        settings: Settings | None = None,
        db: ByteHubDB | None = None,
        client: DiscordClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        if db is None:
            self.settings.ensure_directories()
            db = ByteHubDB(self.settings.sqlite_path)
        self.db = db
        if client is None:
            client = build_client_from_settings(self.settings)
        self.client = client
        if rate_limiter is None:
            rate_limiter = RateLimiter(
                window_s=self.settings.rate_limit_window_s,
                max_requests=self.settings.rate_limit_max_requests,
            )
        self.rate_limiter = rate_limiter
        self.dispatcher = Dispatcher(db=self.db, client=self.client)
        self.commands = CommandHandler(
            db=self.db,
            client=self.client,
            rate_limiter=self.rate_limiter,
            spawn=self.spawn_background,
        )
        self._background: set[asyncio.Task[None]] = set()

    def health(self) -> dict[str, Any]:
        return {"status": "ok", "service": SERVICE_NAME, "version": VERSION}

    async def handle_github_webhook(self, headers: dict[str, str], body: bytes) -> dict[str, Any]:
        signature = headers.get(GITHUB_SIGNATURE_HEADER)
        if not verify_github_signature(self.settings.github_webhook_secret, body, signature):
            logger.warning("rejected github webhook: invalid signature")
            self.db.append_audit_event(
                "webhook_rejected",
                {"source": "github", "delivery": headers.get(DELIVERY_HEADER, "")},
            )
            raise InvalidSignature()

        event_type = (headers.get(EVENT_HEADER) or "").strip()
        if not event_type:
            raise InvalidPayload(f"missing {EVENT_HEADER} header")

        event = parse_event(event_type, body)
        if event is None:
            logger.info("ignoring unknown github event type %r", event_type)
            return {"status": "ignored", "event": event_type}

        self.db.append_audit_event(
            "webhook_received",
            {
                "event": event.event_key,
                "repo": event.repo_full_name,
                "delivery": headers.get(DELIVERY_HEADER, ""),
            },
        )
        try:
            result = await self.dispatcher.dispatch(event)
        except Exception as exc:
            # Authenticated events always answer 200.
            logger.exception("dispatch of %s for %s failed", event.event_key, event.repo_full_name)
            return {
                "status": "failed",
                "event": event.event_key,
                "repo": event.repo_full_name,
                "error": str(exc),
            }
        return {"event": event.event_key, **result.to_dict()}

    async def handle_interaction(self, headers: dict[str, str], body: bytes) -> dict[str, Any]:
        if not verify_discord_signature(
            self.settings.discord_public_key,
            headers.get(DISCORD_TIMESTAMP_HEADER),
            body,
            headers.get(DISCORD_SIGNATURE_HEADER),
        ):
            logger.warning("rejected discord interaction: invalid signature")
            self.db.append_audit_event("webhook_rejected", {"source": "discord"})
            raise InvalidSignature()

        interaction = parse_interaction(body)
        response = await self.commands.handle(interaction)
        if self.rate_limiter.tracked_guilds() > RATE_LIMIT_CLEANUP_THRESHOLD:
            self.rate_limiter.cleanup()
        return response

    def spawn_background(self, work: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(work)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain_background(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


class ASGIServer:
    """Minimal ASGI adapter exposing the ByteHub routes."""

    def __init__(self, service: ServerApp | None = None) -> None:
        self._service = service

    @property
    def service(self) -> ServerApp:
        if self._service is None:
            self._service = create_app()
        return self._service

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope.get("type") == "lifespan":
            await self._lifespan(receive, send)
            return
        if scope.get("type") != "http":
            await self._send_json(send, 500, {"error": "unsupported_scope"})
            return

        method = scope.get("method", "GET")
        path = scope.get("path", "")
        headers = self._parse_headers(scope.get("headers", []))
        body = await self._read_body(receive)

        try:
            if method == "GET" and path == "/":
                await self._send_text(send, 200, f"{SERVICE_NAME} {VERSION} is running")
                return

            if method == "GET" and path == "/health":
                await self._send_json(send, 200, self.service.health())
                return

            if method == "POST" and path == "/webhooks/github":
                await self._send_json(
                    send, 200, await self.service.handle_github_webhook(headers, body)
                )
                return

            if method == "POST" and path == "/webhooks/discord":
                await self._send_json(
                    send, 200, await self.service.handle_interaction(headers, body)
                )
                return

            await self._send_json(send, 404, {"error": "not_found"})
        except ByteHubError as exc:
            await self._send_json(send, exc.status, exc.to_payload())
        except ValueError as exc:
            await self._send_json(send, 400, {"error": "invalid_request", "message": str(exc)})
        except Exception as exc:  # pragma: no cover - defensive response mapping
            logger.exception("unhandled error on %s %s", method, path)
            await self._send_json(send, 500, {"error": "internal_error", "message": str(exc)})

    async def _lifespan(self, receive: Any, send: Any) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                if self._service is not None:
                    await self._service.drain_background()
                await send({"type": "lifespan.shutdown.complete"})
                return

    def _parse_headers(self, raw_headers: list[tuple[bytes, bytes]]) -> dict[str, str]:
        return {
            key.decode("latin-1").lower(): value.decode("latin-1") for key, value in raw_headers
        }

    async def _read_body(self, receive: Any) -> bytes:
        chunks: list[bytes] = []
        while True:
            message = await receive()
            if message["type"] != "http.request":
                continue
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        return b"".join(chunks)

    async def _send_json(self, send: Any, status: int, payload: dict[str, Any]) -> None:
        await self._send(send, status, json.dumps(payload).encode("utf-8"), b"application/json")

    async def _send_text(self, send: Any, status: int, text: str) -> None:
        await self._send(send, status, text.encode("utf-8"), b"text/plain; charset=utf-8")

    async def _send(self, send: Any, status: int, body: bytes, content_type: bytes) -> None:
        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [(b"content-type", content_type)],
            }
        )
        await send({"type": "http.response.body", "body": body})


def create_app(settings: Settings | None = None) -> ServerApp:
    return ServerApp(settings=settings)


app = ASGIServer()


def startup_command(settings: Settings | None = None) -> str:
    settings = settings or Settings.from_env()
    return f"uvicorn bytehub.server.app:app --host {settings.host} --port {settings.port}"


def main() -> int:
    parser = argparse.ArgumentParser(description="ByteHub ASGI server entrypoint")
    parser.add_argument(
        "--print-startup",
        action="store_true",
        help="print the supported uvicorn startup command and exit",
    )
    args = parser.parse_args()

    if args.print_startup:
        print(startup_command())
        return 0

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
