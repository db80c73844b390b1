"""
SQLite-backed storage for users, their connected-account credentials and
monthly usage counters.

Credential and usage writes are read-modify-write cycles on the user's JSON
document; each one runs inside a ``BEGIN IMMEDIATE`` transaction so that a
credential is always replaced as a whole tuple (last write wins) and usage
increments are never lost.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import sqlite_utils

from src.accounts.models import AccountCredential, Usage, User
from src.content.models import Platform
from src.publish.errors import NotFound

logger = logging.getLogger(__name__)


class UserStore:
    """Persistent storage for User objects backed by SQLite."""

    TABLE = "users"

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite_utils.Database(db_path)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        if self.TABLE not in self._db.table_names():
            self._db[self.TABLE].create(
                {"id": str, "email": str, "plan": str, "data": str},
                pk="id",
                not_null={"id", "email"},
            )
            self._db[self.TABLE].create_index(["email"])

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def save(self, user: User) -> None:
        self._db[self.TABLE].insert(
            {
                "id": user.id,
                "email": user.email.lower(),
                "plan": user.plan.value,
                "data": json.dumps(user.to_dict(), ensure_ascii=False),
            },
            replace=True,
        )

    def get(self, user_id: str) -> Optional[User]:
        try:
            row = self._db[self.TABLE].get(user_id)
        except sqlite_utils.db.NotFoundError:
            return None
        return User.from_dict(json.loads(row["data"]))

    def get_by_email(self, email: str) -> Optional[User]:
        rows = list(self._db[self.TABLE].rows_where("email = ?", [email.lower()], limit=1))
        if not rows:
            return None
        return User.from_dict(json.loads(rows[0]["data"]))

    # ------------------------------------------------------------------
    # Atomic updates
    # ------------------------------------------------------------------

    def update_credential(
        self, user_id: str, platform: Platform, credential: AccountCredential
    ) -> None:
        """Replace the whole credential for one platform."""
        with self._immediate() as conn:
            user = self._load(conn, user_id)
            user.accounts[platform] = credential
            self._store(conn, user)
        logger.debug("Stored %s credential for user %s", platform.value, user_id)

    def increment_usage(self, user_id: str, now: Optional[dt.datetime] = None) -> Usage:
        """Add one published post to the user's monthly counter (rolling the month over first)."""
        with self._immediate() as conn:
            user = self._load(conn, user_id)
            usage = user.usage.rolled_over(now)
            user.usage = Usage(
                posts_this_month=usage.posts_this_month + 1,
                last_reset=usage.last_reset,
            )
            self._store(conn, user)
        logger.info("User %s usage: %d post(s) this month", user_id, user.usage.posts_this_month)
        return user.usage

    @contextmanager
    def _immediate(self) -> Iterator:
        conn = self._db.conn
        if not conn.in_transaction:
            conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    def _load(self, conn, user_id: str) -> User:  # type: ignore[no-untyped-def]
        row = conn.execute(f"SELECT data FROM {self.TABLE} WHERE id = ?", [user_id]).fetchone()
        if row is None:
            raise NotFound(f"User not found: {user_id!r}")
        return User.from_dict(json.loads(row[0]))

    def _store(self, conn, user: User) -> None:  # type: ignore[no-untyped-def]
        conn.execute(
            f"UPDATE {self.TABLE} SET plan = ?, data = ? WHERE id = ?",
            [user.plan.value, json.dumps(user.to_dict(), ensure_ascii=False), user.id],
        )

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._db.close()

    def __enter__(self) -> "UserStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_store: Optional[UserStore] = None


def get_user_store() -> UserStore:
    """Return the application-wide UserStore (lazy init)."""
    global _store
    if _store is None:
        from config.settings import settings  # noqa: PLC0415

        _store = UserStore(settings.database_path)
    return _store
