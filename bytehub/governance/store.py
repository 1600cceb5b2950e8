"""SQLite persistence for projects, server config, rules, and audit events."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

from bytehub.governance.models import Project, ServerConfig, normalize_repo, project_short_name
from bytehub.governance.rules import Rule, RuleActions, RuleConditions
from bytehub.shared.errors import AlreadyApproved, NotFound, ProjectAlreadyExists


class ByteHubDB:
    """Small SQLite wrapper owning every persisted ByteHub record.

    Repo identifiers are lowercased on the way in, so lookups are
    case-insensitive and mixed-case duplicates cannot exist.
    """

    def __init__(self, db_path: Path | str = ":memory:") -> None:
        self.db_path = str(db_path)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                github_repo TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                forum_channel_id TEXT NOT NULL DEFAULT '',
                thread_id TEXT,
                guild_id TEXT NOT NULL DEFAULT '',
                is_approved INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS server_config (
                guild_id TEXT PRIMARY KEY,
                announcements_id TEXT NOT NULL,
                github_category_id TEXT NOT NULL,
                mod_category_id TEXT,
                project_review_id TEXT,
                approvals_id TEXT,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                github_repo TEXT NOT NULL,
                priority INTEGER NOT NULL DEFAULT 0,
                conditions_json TEXT NOT NULL,
                actions_json TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS whitelist (
                github_username TEXT PRIMARY KEY
            );

            CREATE TABLE IF NOT EXISTS audit_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_type TEXT NOT NULL,
                event_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_projects_guild ON projects(guild_id)")
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_rules_repo ON rules(github_repo)")
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # Projects

    def submit_project(self, github_repo: str) -> Project:
        repo = normalize_repo(github_repo)
        if not repo:
            raise ValueError("github_repo is required")
        try:
            self.conn.execute(
                "INSERT INTO projects (github_repo, name) VALUES (?, ?)",
                (repo, project_short_name(repo)),
            )
        except sqlite3.IntegrityError as exc:
            raise ProjectAlreadyExists(repo) from exc
        self.conn.commit()
        return Project(github_repo=repo, name=project_short_name(repo))

    def get_project(self, github_repo: str) -> Project | None:
        row = self.conn.execute(
            "SELECT * FROM projects WHERE github_repo = ?", (normalize_repo(github_repo),)
        ).fetchone()
        return _project_from_row(row) if row is not None else None

    def get_approved_project(self, github_repo: str) -> Project | None:
        project = self.get_project(github_repo)
        if project is None or not project.is_approved:
            return None
        return project

    def list_projects(self) -> list[Project]:
        rows = self.conn.execute("SELECT * FROM projects ORDER BY github_repo").fetchall()
        return [_project_from_row(row) for row in rows]

    def list_projects_by_guild(self, guild_id: str) -> list[Project]:
        rows = self.conn.execute(
            "SELECT * FROM projects WHERE guild_id = ? ORDER BY github_repo", (guild_id,)
        ).fetchall()
        return [_project_from_row(row) for row in rows]

    def approve_project_with_forum(
        self, github_repo: str, forum_channel_id: str, guild_id: str
    ) -> Project:
        repo = normalize_repo(github_repo)
        if not forum_channel_id or not guild_id:
            raise ValueError("forum_channel_id and guild_id are required to approve")
        cur = self.conn.execute(
            """
            UPDATE projects
            SET is_approved = 1, forum_channel_id = ?, guild_id = ?
            WHERE github_repo = ? AND is_approved = 0
            """,
            (forum_channel_id, guild_id, repo),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            existing = self.get_project(repo)
            if existing is None:
                raise NotFound(f"Project `{repo}` not found")
            raise AlreadyApproved(repo)
        project = self.get_project(repo)
        if project is None:
            raise NotFound(f"Project `{repo}` not found")
        return project

    def deny_project(self, github_repo: str) -> None:
        repo = normalize_repo(github_repo)
        cur = self.conn.execute("DELETE FROM projects WHERE github_repo = ?", (repo,))
        if cur.rowcount == 0:
            self.conn.rollback()
            raise NotFound(f"Project `{repo}` not found")
        self.conn.execute("DELETE FROM rules WHERE github_repo = ?", (repo,))
        self.conn.commit()

    def update_forum_id(self, github_repo: str, forum_channel_id: str) -> bool:
        cur = self.conn.execute(
            "UPDATE projects SET forum_channel_id = ? WHERE github_repo = ?",
            (forum_channel_id, normalize_repo(github_repo)),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def update_thread_id(self, github_repo: str, thread_id: str) -> bool:
        cur = self.conn.execute(
            "UPDATE projects SET thread_id = ? WHERE github_repo = ?",
            (thread_id, normalize_repo(github_repo)),
        )
        self.conn.commit()
        return cur.rowcount > 0

    # Server config

    def get_server_config(self, guild_id: str) -> ServerConfig | None:
        row = self.conn.execute(
            "SELECT * FROM server_config WHERE guild_id = ?", (guild_id,)
        ).fetchone()
        if row is None:
            return None
        return ServerConfig(
            guild_id=row["guild_id"],
            announcements_id=row["announcements_id"],
            github_category_id=row["github_category_id"],
            mod_category_id=row["mod_category_id"],
            project_review_id=row["project_review_id"],
            approvals_id=row["approvals_id"],
        )

    def save_server_config(self, config: ServerConfig) -> None:
        self.conn.execute(
            """
            INSERT INTO server_config (
                guild_id, announcements_id, github_category_id,
                mod_category_id, project_review_id, approvals_id
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
              announcements_id=excluded.announcements_id,
              github_category_id=excluded.github_category_id,
              mod_category_id=excluded.mod_category_id,
              project_review_id=excluded.project_review_id,
              approvals_id=excluded.approvals_id,
              updated_at=CURRENT_TIMESTAMP
            """,
            (
                config.guild_id,
                config.announcements_id,
                config.github_category_id,
                config.mod_category_id,
                config.project_review_id,
                config.approvals_id,
            ),
        )
        self.conn.commit()

    # Rules and whitelist

    def add_rule(
        self,
        github_repo: str,
        conditions: RuleConditions,
        actions: RuleActions,
        priority: int = 0,
    ) -> Rule:
        repo = normalize_repo(github_repo)
        if self.get_project(repo) is None:
            raise NotFound(f"Project `{repo}` not found")
        cur = self.conn.execute(
            """
            INSERT INTO rules (github_repo, priority, conditions_json, actions_json)
            VALUES (?, ?, ?, ?)
            """,
            (
                repo,
                priority,
                conditions.model_dump_json(exclude_none=True),
                actions.model_dump_json(exclude_none=True),
            ),
        )
        self.conn.commit()
        return Rule(
            rule_id=int(cur.lastrowid),
            github_repo=repo,
            priority=priority,
            conditions=conditions,
            actions=actions,
        )

    def list_rules(self, github_repo: str) -> list[Rule]:
        rows = self.conn.execute(
            "SELECT * FROM rules WHERE github_repo = ? ORDER BY priority DESC, id ASC",
            (normalize_repo(github_repo),),
        ).fetchall()
        return [
            Rule(
                rule_id=row["id"],
                github_repo=row["github_repo"],
                priority=row["priority"],
                conditions=RuleConditions.model_validate_json(row["conditions_json"]),
                actions=RuleActions.model_validate_json(row["actions_json"]),
            )
            for row in rows
        ]

    def add_whitelisted_user(self, github_username: str) -> bool:
        username = github_username.strip().lower()
        if not username:
            raise ValueError("github_username is required")
        cur = self.conn.execute(
            "INSERT INTO whitelist (github_username) VALUES (?) ON CONFLICT DO NOTHING",
            (username,),
        )
        self.conn.commit()
        return cur.rowcount > 0

    def is_whitelisted(self, github_username: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM whitelist WHERE github_username = ?",
            (github_username.strip().lower(),),
        ).fetchone()
        return row is not None

    # Audit

    def append_audit_event(self, event_type: str, payload: dict[str, Any]) -> None:
        self.conn.execute(
            "INSERT INTO audit_events (event_type, event_json) VALUES (?, ?)",
            (event_type, json.dumps(payload, sort_keys=True)),
        )
        self.conn.commit()

    def list_audit_events(self, event_type: str = "") -> list[dict[str, Any]]:
        if event_type:
            rows = self.conn.execute(
                "SELECT * FROM audit_events WHERE event_type = ? ORDER BY id", (event_type,)
            ).fetchall()
        else:
            rows = self.conn.execute("SELECT * FROM audit_events ORDER BY id").fetchall()
        return [
            {
                "id": row["id"],
                "event_type": row["event_type"],
                "payload": json.loads(row["event_json"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]


def _project_from_row(row: sqlite3.Row) -> Project:
    return Project(
        github_repo=row["github_repo"],
        name=row["name"],
        forum_channel_id=row["forum_channel_id"] or "",
        thread_id=row["thread_id"],
        guild_id=row["guild_id"] or "",
        is_approved=bool(row["is_approved"]),
    )
