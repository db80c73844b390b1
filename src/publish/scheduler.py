"""
Scheduled publishing sweep.

An external cron job calls ``ScheduledPublishRunner.run(secret)`` on a fixed
interval.  Every post with ``status = scheduled`` and ``scheduled_for <= now``
goes through the orchestrator independently; any failure (missing owner,
precondition rejection, platform failure, unexpected error) is recorded in
the sweep summary and the sweep moves on.

Reprocessing guard: the due query only returns ``scheduled`` posts, and the
orchestrator's commit is conditional on the post still being ``scheduled``.
Two overlapping sweeps can still both call the platforms for the same post;
only one of them commits.
"""

from __future__ import annotations

import datetime as dt
import hmac
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from src.content.models import PostStatus, utcnow
from src.publish.errors import NotAuthorized, PublishError
from src.publish.orchestrator import PublishOrchestrator, get_orchestrator

if TYPE_CHECKING:
    from src.accounts.storage import UserStore
    from src.content.storage import PostStore

logger = logging.getLogger(__name__)


@dataclass
class SweepSummary:
    total: int = 0
    published: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.published

    def record_failure(self, post_id: str, error: str) -> None:
        self.failed += 1
        self.errors.append({"post_id": post_id, "error": error})

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "published": self.published,
            "failed": self.failed,
            "errors": list(self.errors),
        }


class ScheduledPublishRunner:
    def __init__(
        self,
        orchestrator: PublishOrchestrator,
        posts: "PostStore",
        users: "UserStore",
        secret: str = "",
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._orchestrator = orchestrator
        self._posts = posts
        self._users = users
        self._secret = secret
        self._clock = clock

    def verify_secret(self, provided: Optional[str]) -> None:
        """Constant-time check of the cron secret; no configured secret rejects everyone."""
        if not self._secret or not provided:
            raise NotAuthorized("Cron secret missing")
        if not hmac.compare_digest(provided.encode(), self._secret.encode()):
            raise NotAuthorized("Invalid cron secret")

    def run(self, secret: Optional[str], now: Optional[dt.datetime] = None) -> SweepSummary:
        self.verify_secret(secret)
        now = now or self._clock()
        due = self._posts.list_due(now)
        summary = SweepSummary(total=len(due))
        logger.info("Scheduled sweep at %s: %d post(s) due", now.isoformat(), len(due))

        for post in due:
            user = self._users.get(post.user_id) if post.user_id else None
            if user is None:
                logger.warning("Scheduled post %s has no owner, skipping", post.id)
                summary.record_failure(post.id, "Post owner not found")
                continue

            try:
                report = self._orchestrator.publish(post, user)
            except PublishError as exc:
                logger.warning("Scheduled post %s not published: %s", post.id, exc.message)
                summary.record_failure(post.id, exc.message)
                continue
            except Exception as exc:
                logger.exception("Unexpected error publishing scheduled post %s", post.id)
                summary.record_failure(post.id, str(exc))
                continue

            if report.status == PostStatus.PUBLISHED:
                summary.published += 1
            else:
                summary.record_failure(post.id, report.message)

        logger.info(
            "Scheduled sweep done: %d published, %d failed of %d",
            summary.published,
            summary.failed,
            summary.total,
        )
        return summary


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_runner: Optional[ScheduledPublishRunner] = None


def get_runner() -> ScheduledPublishRunner:
    """Return the application-wide ScheduledPublishRunner (lazy init)."""
    global _runner
    if _runner is None:
        from config.settings import settings  # noqa: PLC0415
        from src.accounts.storage import get_user_store  # noqa: PLC0415
        from src.content.storage import get_store  # noqa: PLC0415

        _runner = ScheduledPublishRunner(
            orchestrator=get_orchestrator(),
            posts=get_store(),
            users=get_user_store(),
            secret=settings.cron_secret,
        )
    return _runner
