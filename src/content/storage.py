"""
SQLite-backed persistent storage for Post objects.

Uses sqlite-utils with a JSON blob column plus indexed columns for the
query patterns the publisher needs (owner, status, scheduled_for).

Status transitions made by the publisher go through ``compare_and_set`` so
that two concurrent publish attempts on the same post cannot both commit.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from pathlib import Path
from typing import Optional

import sqlite_utils

from src.content.models import Post, PostStatus, as_utc, utcnow

logger = logging.getLogger(__name__)

# DB schema version: bump when adding indexed columns
_SCHEMA_VERSION = 1


class PostStore:
    """Persistent storage for Post objects backed by SQLite."""

    TABLE = "posts"
    META_TABLE = "meta"

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite_utils.Database(db_path)
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema setup
    # ------------------------------------------------------------------

    def _ensure_schema(self) -> None:
        if self.TABLE not in self._db.table_names():
            self._db[self.TABLE].create(
                {
                    "id": str,
                    "user_id": str,
                    "status": str,
                    "platforms": str,       # selector name, e.g. snapchat_instagram
                    "scheduled_for": str,
                    "published_at": str,
                    "created_at": str,
                    "data": str,            # full JSON blob
                },
                pk="id",
                not_null={"id", "status"},
            )
            self._db[self.TABLE].create_index(["user_id", "created_at"])
            self._db[self.TABLE].create_index(["status", "scheduled_for"])
            logger.debug("Created posts table")

        if self.META_TABLE not in self._db.table_names():
            self._db[self.META_TABLE].insert(
                {"key": "schema_version", "value": str(_SCHEMA_VERSION)}
            )

    @staticmethod
    def _to_row(post: Post) -> dict:
        return {
            "id": post.id,
            "user_id": post.user_id,
            "status": post.status.value,
            "platforms": post.target,
            "scheduled_for": _iso(post.scheduled_for),
            "published_at": _iso(post.published_at),
            "created_at": _iso(post.created_at),
            "data": json.dumps(post.to_dict(), ensure_ascii=False),
        }

    @staticmethod
    def _from_row(row: dict) -> Post:
        return Post.from_dict(json.loads(row["data"]))

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def save(self, post: Post) -> None:
        """Insert or replace a post (last write wins)."""
        self._db[self.TABLE].insert(self._to_row(post), replace=True)

    def get(self, post_id: str) -> Optional[Post]:
        """Return a Post by id, or None if not found."""
        try:
            return self._from_row(self._db[self.TABLE].get(post_id))
        except sqlite_utils.db.NotFoundError:
            return None

    def delete(self, post_id: str) -> bool:
        """Delete a post. Returns True if it existed."""
        if self.get(post_id) is None:
            return False
        self._db[self.TABLE].delete(post_id)
        return True

    def compare_and_set(self, post: Post, expected_status: PostStatus) -> bool:
        """
        Write ``post`` only if the stored row still has ``expected_status``.

        Returns False (and writes nothing) when another writer moved the post
        to a different status in the meantime.
        """
        row = self._to_row(post)
        with self._db.conn:
            cursor = self._db.conn.execute(
                f"""
                UPDATE {self.TABLE}
                SET user_id = ?, status = ?, platforms = ?, scheduled_for = ?,
                    published_at = ?, created_at = ?, data = ?
                WHERE id = ? AND status = ?
                """,
                [
                    row["user_id"],
                    row["status"],
                    row["platforms"],
                    row["scheduled_for"],
                    row["published_at"],
                    row["created_at"],
                    row["data"],
                    post.id,
                    expected_status.value,
                ],
            )
        updated = cursor.rowcount == 1
        if not updated:
            logger.warning(
                "Post %s is no longer %s; status write skipped", post.id, expected_status.value
            )
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_by_owner(
        self,
        user_id: str,
        status: Optional[PostStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Post]:
        where, params = self._owner_filter(user_id, status)
        rows = self._db[self.TABLE].rows_where(
            where, params, order_by="created_at DESC", limit=limit, offset=offset
        )
        return [self._from_row(r) for r in rows]

    def count_by_owner(self, user_id: str, status: Optional[PostStatus] = None) -> int:
        where, params = self._owner_filter(user_id, status)
        return self._db.execute(
            f"SELECT COUNT(*) FROM {self.TABLE} WHERE {where}", params
        ).fetchone()[0]

    def list_due(self, now: Optional[dt.datetime] = None) -> list[Post]:
        """Scheduled posts whose ``scheduled_for`` is now or in the past, oldest first."""
        now_iso = _iso(now or utcnow())
        rows = self._db[self.TABLE].rows_where(
            "status = ? AND scheduled_for IS NOT NULL AND scheduled_for <= ?",
            [PostStatus.SCHEDULED.value, now_iso],
            order_by="scheduled_for ASC",
        )
        return [self._from_row(r) for r in rows]

    def list_published(self, limit: Optional[int] = None) -> list[Post]:
        """Published posts, most recently published first."""
        rows = self._db[self.TABLE].rows_where(
            "status = ?",
            [PostStatus.PUBLISHED.value],
            order_by="published_at DESC",
            limit=limit,
        )
        return [self._from_row(r) for r in rows]

    def stats(self, user_id: Optional[str] = None) -> dict[str, int]:
        """Return count per status."""
        where = "WHERE user_id = ?" if user_id else ""
        params = [user_id] if user_id else []
        result: dict[str, int] = {}
        for row in self._db.execute(
            f"SELECT status, COUNT(*) FROM {self.TABLE} {where} GROUP BY status", params
        ).fetchall():
            result[row[0]] = row[1]
        return result

    @staticmethod
    def _owner_filter(user_id: str, status: Optional[PostStatus]) -> tuple[str, list]:
        if status is None:
            return "user_id = ?", [user_id]
        return "user_id = ? AND status = ?", [user_id, status.value]

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._db.close()

    def __enter__(self) -> "PostStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _iso(value: Optional[dt.datetime]) -> Optional[str]:
    """UTC, fixed-width ISO 8601 so that string order is time order."""
    if value is None:
        return None
    return as_utc(value).astimezone(dt.timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_store: Optional[PostStore] = None


def get_store() -> PostStore:
    """Return the application-wide PostStore (lazy init)."""
    global _store
    if _store is None:
        from config.settings import settings  # noqa: PLC0415

        _store = PostStore(settings.database_path)
    return _store
