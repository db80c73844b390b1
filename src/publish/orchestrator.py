"""
Multi-platform publish orchestration.

One call to ``PublishOrchestrator.publish`` takes a draft or scheduled post
through:

  1. precondition checks (typed rejections, no state change)
  2. per-platform token check + adapter publish, each isolated
  3. status resolution over all attempts
  4. a single conditional commit of the post (compare-and-swap on the status
     the attempt started from), then the usage increment

Status resolution:
  every target succeeded      → published, usage +1
  at least one succeeded      → published, usage +1, failures listed
  every target failed         → failed, error recorded, usage unchanged
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from src.accounts.models import User
from src.content.models import (
    Platform,
    Post,
    PostError,
    PostStatus,
    ordered,
    utcnow,
)
from src.publish.base import PublishAdapter, PublishPayload
from src.publish.errors import (
    ConcurrentPublish,
    NotConnected,
    PreconditionRejected,
    PublishError,
)
from src.publish.tokens import TokenManager, get_token_manager

if TYPE_CHECKING:
    from src.accounts.storage import UserStore
    from src.content.storage import PostStore

logger = logging.getLogger(__name__)

PUBLISHABLE_STATUSES = frozenset({PostStatus.DRAFT, PostStatus.SCHEDULED})

ALL_FAILED_MESSAGE = "Failed to publish to all platforms"
ALL_FAILED_CODE = "PUBLISH_FAILED"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class PlatformOutcome:
    platform: Platform
    success: bool
    post_id: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "post_id": self.post_id}
        return {"success": False, "error": self.error, "code": self.code}


@dataclass
class PublishReport:
    post: Post
    outcomes: list[PlatformOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[Platform]:
        return [o.platform for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[Platform]:
        return [o.platform for o in self.outcomes if not o.success]

    @property
    def status(self) -> PostStatus:
        return self.post.status

    @property
    def errors(self) -> list[dict[str, str]]:
        return [
            {"platform": o.platform.value, "error": o.error or ""}
            for o in self.outcomes
            if not o.success
        ]

    @property
    def message(self) -> str:
        if not self.succeeded:
            return self.post.error.message if self.post.error else ALL_FAILED_MESSAGE
        live = _names(self.succeeded)
        if not self.failed:
            return f"Post published to {live} successfully"
        return f"Post published to {live}; failed on {_names(self.failed)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": bool(self.succeeded),
            "message": self.message,
            "status": self.status.value,
            "results": {o.platform.value: o.to_dict() for o in self.outcomes},
            "errors": self.errors,
            "post": self.post.to_dict(),
        }


def _names(platforms: list[Platform]) -> str:
    return " and ".join(p.value.capitalize() for p in platforms)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class PublishOrchestrator:
    def __init__(
        self,
        adapters: dict[Platform, PublishAdapter],
        tokens: TokenManager,
        posts: "PostStore",
        users: "UserStore",
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._adapters = adapters
        self._tokens = tokens
        self._posts = posts
        self._users = users
        self._clock = clock

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def check_preconditions(self, post: Post, user: User, now: Optional[dt.datetime] = None) -> None:
        """Raise ``PreconditionRejected`` for the first failing check, in order."""
        if post.status == PostStatus.PUBLISHED:
            raise PreconditionRejected("Post is already published", "ALREADY_PUBLISHED")
        if post.status not in PUBLISHABLE_STATUSES:
            raise PreconditionRejected(
                f"Only draft or scheduled posts can be published (status: {post.status.value})",
                "INVALID_STATUS",
            )

        for platform in ordered(post.platforms):
            if not user.account_for(platform).is_connected:
                raise NotConnected(platform.value)

        if Platform.YOUTUBE in post.platforms and not post.is_video:
            raise PreconditionRejected("YouTube only supports video content", "INVALID_MEDIA_TYPE")

        if not user.has_quota(now):
            raise PreconditionRejected(
                f"You have reached your monthly post limit ({user.limits.posts_per_month}). "
                "Please upgrade your plan.",
                "LIMIT_REACHED",
            )

        if not post.has_media:
            raise PreconditionRejected("Media is required to publish", "MEDIA_REQUIRED")

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def publish(self, post: Post, user: User) -> PublishReport:
        """
        Publish ``post`` to every platform it targets.

        Raises ``PreconditionRejected`` before any platform call, or
        ``ConcurrentPublish`` if another attempt committed the post first.
        Platform failures never raise: they are reported per platform.
        """
        now = self._clock()
        self.check_preconditions(post, user, now)

        started_from = post.status
        payload = PublishPayload.from_post(post)
        report = PublishReport(post=post.model_copy(deep=True))

        for platform in ordered(post.platforms):
            report.outcomes.append(self._attempt(platform, user, payload))

        self._resolve(report, now)

        # the caller's post only changes once the resolved state is committed
        if not self._posts.compare_and_set(report.post, started_from):
            raise ConcurrentPublish(
                f"Post {post.id} left status {started_from.value!r} during this publish attempt"
            )
        for name in Post.model_fields:
            setattr(post, name, getattr(report.post, name))
        report.post = post

        if report.succeeded:
            user.usage = self._users.increment_usage(user.id, now)

        logger.info(
            "Post %s → %s (ok: %s, failed: %s)",
            post.id,
            post.status.value,
            [p.value for p in report.succeeded],
            [p.value for p in report.failed],
        )
        return report

    def _attempt(self, platform: Platform, user: User, payload: PublishPayload) -> PlatformOutcome:
        adapter = self._adapters.get(platform)
        try:
            if adapter is None:
                raise PublishError(f"No publisher configured for {platform.value}", "NO_ADAPTER")
            grant = self._tokens.ensure_valid_token(user, platform)
            result = adapter.publish(grant.token, grant.credential, payload)
        except PublishError as exc:
            logger.warning("Publishing post %s to %s failed: %s", payload.post_id, platform.value, exc)
            return PlatformOutcome(platform, success=False, error=exc.message, code=exc.code)
        except Exception as exc:
            logger.exception("Unexpected error publishing post %s to %s", payload.post_id, platform.value)
            return PlatformOutcome(platform, success=False, error=str(exc), code="UNEXPECTED_ERROR")

        logger.info("Post %s live on %s as %s", payload.post_id, platform.value, result.post_id)
        return PlatformOutcome(platform, success=True, post_id=result.post_id)

    @staticmethod
    def _resolve(report: PublishReport, now: dt.datetime) -> None:
        post = report.post
        for outcome in report.outcomes:
            if outcome.success and outcome.post_id:
                post.set_platform_post_id(outcome.platform, outcome.post_id)

        if report.succeeded:
            post.transition_to(PostStatus.PUBLISHED)
            post.published_at = now
            post.error = None
            return

        post.transition_to(PostStatus.FAILED)
        if len(report.outcomes) == 1:
            only = report.outcomes[0]
            post.error = PostError(message=only.error or ALL_FAILED_MESSAGE, code=only.code, timestamp=now)
        else:
            post.error = PostError(message=ALL_FAILED_MESSAGE, code=ALL_FAILED_CODE, timestamp=now)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_orchestrator: Optional[PublishOrchestrator] = None


def default_adapters() -> dict[Platform, PublishAdapter]:
    from src.publish.instagram import InstagramPublisher  # noqa: PLC0415
    from src.publish.snapchat import SnapchatPublisher  # noqa: PLC0415
    from src.publish.youtube import YouTubePublisher  # noqa: PLC0415

    return {
        Platform.SNAPCHAT: SnapchatPublisher(),
        Platform.INSTAGRAM: InstagramPublisher(),
        Platform.YOUTUBE: YouTubePublisher(),
    }


def get_orchestrator() -> PublishOrchestrator:
    """Return the application-wide PublishOrchestrator (lazy init)."""
    global _orchestrator
    if _orchestrator is None:
        from src.accounts.storage import get_user_store  # noqa: PLC0415
        from src.content.storage import get_store  # noqa: PLC0415

        _orchestrator = PublishOrchestrator(
            adapters=default_adapters(),
            tokens=get_token_manager(),
            posts=get_store(),
            users=get_user_store(),
        )
    return _orchestrator
