"""
Destination document store.

SQLite-backed store for spaces, space members, pages and backlinks. All page
writes of an import run go through ``transaction()``, which commits or rolls
back as a unit; nested use becomes a savepoint.
"""

import itertools
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Union

from importers.ordering_manager import key_between
from models import Backlink

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS spaces (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT NOT NULL,
        key TEXT,
        description TEXT NOT NULL DEFAULT '',
        workspace_id TEXT NOT NULL,
        creator_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        deleted_at TEXT,
        UNIQUE (workspace_id, slug)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS space_members (
        space_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        role TEXT NOT NULL,
        added_by_id TEXT,
        created_at TEXT NOT NULL,
        PRIMARY KEY (space_id, user_id),
        FOREIGN KEY (space_id) REFERENCES spaces(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pages (
        id TEXT PRIMARY KEY,
        slug_id TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        content_json TEXT NOT NULL,
        text_content TEXT NOT NULL,
        native_doc BLOB,
        icon TEXT,
        position TEXT NOT NULL,
        parent_page_id TEXT,
        space_id TEXT NOT NULL,
        workspace_id TEXT NOT NULL,
        creator_id TEXT NOT NULL,
        last_updated_by_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        deleted_at TEXT,
        CHECK (parent_page_id IS NULL OR parent_page_id <> id),
        FOREIGN KEY (parent_page_id) REFERENCES pages(id) ON DELETE CASCADE,
        FOREIGN KEY (space_id) REFERENCES spaces(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS backlinks (
        source_page_id TEXT NOT NULL,
        target_page_id TEXT NOT NULL,
        workspace_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (source_page_id, target_page_id),
        CHECK (source_page_id <> target_page_id),
        FOREIGN KEY (source_page_id) REFERENCES pages(id) ON DELETE CASCADE,
        FOREIGN KEY (target_page_id) REFERENCES pages(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_pages_space_parent ON pages (space_id, parent_page_id)",
)

SPACE_ROLE_ADMIN = 'admin'


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PageRecord:
    """One row of the ``pages`` table as written by an import."""

    id: str
    slug_id: str
    title: str
    content_json: str
    text_content: str
    native_doc: Optional[bytes]
    position: str
    parent_page_id: Optional[str]
    space_id: str
    workspace_id: str
    creator_id: str
    icon: Optional[str] = None


class DocumentStore:
    """Owns one SQLite connection and the schema above."""

    _savepoint_counter = itertools.count(1)

    def __init__(self, path: Union[str, Path] = ':memory:', logger: Optional[logging.Logger] = None):
        """
        Open (and create if needed) the store.

        Args:
            path: Database file, or ``:memory:``
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.document_store')
        self.path = str(path)

        if self.path != ':memory:':
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._create_schema()

    def _create_schema(self) -> None:
        for statement in SCHEMA_STATEMENTS:
            self._conn.execute(statement)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> 'DocumentStore':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    @contextmanager
    def transaction(self) -> Iterator['DocumentStore']:
        """Run statements atomically; nested calls use savepoints."""
        if self._conn.in_transaction:
            savepoint = f"sp_{next(self._savepoint_counter)}"
            self._conn.execute(f"SAVEPOINT {savepoint}")
            try:
                yield self
            except BaseException:
                self._conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                raise
            else:
                self._conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            return

        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self
        except BaseException:
            self._conn.execute("ROLLBACK")
            self.logger.debug("Transaction rolled back")
            raise
        else:
            self._conn.execute("COMMIT")

    # Spaces

    def create_space(
        self,
        space_id: str,
        name: str,
        slug: str,
        workspace_id: str,
        creator_id: str,
        key: Optional[str] = None,
        description: str = ''
    ) -> Dict[str, Any]:
        now = utc_now()
        with self.transaction():
            self._conn.execute(
                "INSERT INTO spaces (id, name, slug, key, description, workspace_id, creator_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (space_id, name, slug, key, description or '', workspace_id, creator_id, now)
            )
        self.logger.debug(f"Created space {space_id} ({slug})")
        return self.get_space(space_id)

    def get_space(self, space_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute("SELECT * FROM spaces WHERE id = ?", (space_id,)).fetchone()
        return dict(row) if row is not None else None

    def list_space_slugs(self, workspace_id: str) -> Set[str]:
        """Slugs taken in a workspace, including soft-deleted spaces."""
        rows = self._conn.execute("SELECT slug FROM spaces WHERE workspace_id = ?", (workspace_id,))
        return {row['slug'] for row in rows}

    def soft_delete_space(self, space_id: str) -> None:
        """Mark a space and its pages deleted without removing rows."""
        now = utc_now()
        with self.transaction():
            self._conn.execute(
                "UPDATE spaces SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL", (now, space_id)
            )
            self._conn.execute(
                "UPDATE pages SET deleted_at = ? WHERE space_id = ? AND deleted_at IS NULL", (now, space_id)
            )
        self.logger.info(f"Soft-deleted space {space_id}")

    def add_space_member(
        self,
        space_id: str,
        user_id: str,
        role: str = SPACE_ROLE_ADMIN,
        added_by_id: Optional[str] = None
    ) -> None:
        with self.transaction():
            self._conn.execute(
                "INSERT INTO space_members (space_id, user_id, role, added_by_id, created_at) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT (space_id, user_id) DO UPDATE SET role = excluded.role",
                (space_id, user_id, role, added_by_id, utc_now())
            )

    def get_space_members(self, space_id: str) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            "SELECT * FROM space_members WHERE space_id = ? ORDER BY user_id", (space_id,)
        )
        return [dict(row) for row in rows]

    # Pages

    def next_page_position(self, space_id: str) -> str:
        """Order key after the last live root page of a space."""
        row = self._conn.execute(
            "SELECT position FROM pages "
            "WHERE space_id = ? AND parent_page_id IS NULL AND deleted_at IS NULL "
            "ORDER BY position COLLATE BINARY DESC LIMIT 1",
            (space_id,)
        ).fetchone()
        last = row['position'] if row is not None else None
        return key_between(last, None)

    def insert_page(self, record: PageRecord) -> None:
        now = utc_now()
        self._conn.execute(
            "INSERT INTO pages (id, slug_id, title, content_json, text_content, native_doc, icon, position, "
            "parent_page_id, space_id, workspace_id, creator_id, last_updated_by_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id, record.slug_id, record.title, record.content_json, record.text_content,
                record.native_doc, record.icon, record.position, record.parent_page_id, record.space_id,
                record.workspace_id, record.creator_id, record.creator_id, now, now
            )
        )

    def get_pages(self, space_id: str, include_deleted: bool = False) -> List[Dict[str, Any]]:
        """Pages of a space ordered by parent then position."""
        query = "SELECT * FROM pages WHERE space_id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        query += " ORDER BY parent_page_id, position COLLATE BINARY"
        return [dict(row) for row in self._conn.execute(query, (space_id,))]

    def get_page(self, page_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute("SELECT * FROM pages WHERE id = ?", (page_id,)).fetchone()
        return dict(row) if row is not None else None

    def count_pages(self, space_id: Optional[str] = None) -> int:
        if space_id is None:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM pages").fetchone()
        else:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM pages WHERE space_id = ?", (space_id,)).fetchone()
        return row['n']

    # Backlinks

    def insert_backlinks(self, backlinks: Iterable[Backlink], workspace_id: str) -> int:
        """Insert backlinks, ignoring pairs that already exist. Returns rows inserted."""
        now = utc_now()
        rows = [(b.source_page_id, b.target_page_id, workspace_id, now) for b in backlinks]
        if not rows:
            return 0

        before = self._conn.total_changes
        self._conn.executemany(
            "INSERT OR IGNORE INTO backlinks (source_page_id, target_page_id, workspace_id, created_at) "
            "VALUES (?, ?, ?, ?)",
            rows
        )
        return self._conn.total_changes - before

    def get_backlinks(self, page_ids: Optional[Iterable[str]] = None) -> List[Backlink]:
        rows = self._conn.execute(
            "SELECT source_page_id, target_page_id FROM backlinks ORDER BY source_page_id, target_page_id"
        ).fetchall()
        wanted = set(page_ids) if page_ids is not None else None
        return [
            Backlink(source_page_id=row['source_page_id'], target_page_id=row['target_page_id'])
            for row in rows
            if wanted is None or row['source_page_id'] in wanted
        ]


__all__ = ['DocumentStore', 'PageRecord', 'SPACE_ROLE_ADMIN']
