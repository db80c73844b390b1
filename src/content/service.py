"""
Owner-scoped post lifecycle.

Provides the high-level API used by the CLI post commands:
  - create / list / show / edit / delete posts
  - publish now (delegates to the orchestrator)
  - read-path analytics refresh
  - dashboard statistics
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Union

from src.accounts.models import PlanLimits, User
from src.content.models import MediaType, Platform, Post, PostStatus
from src.content.storage import PostStore, get_store
from src.publish.errors import (
    NotAuthorized,
    NotFound,
    PreconditionRejected,
    PublishError,
)

if TYPE_CHECKING:
    from src.publish.analytics import AnalyticsSyncer
    from src.publish.orchestrator import PublishOrchestrator, PublishReport
    from src.publish.tokens import TokenManager
    from src.publish.youtube import YouTubeClient

logger = logging.getLogger(__name__)

RECENT_PUBLISHED_LIMIT = 10


# ---------------------------------------------------------------------------
# Dashboard statistics
# ---------------------------------------------------------------------------


@dataclass
class DashboardStats:
    by_status: dict[str, int]
    total_views: int
    total_impressions: int
    posts_this_month: int
    plan_limits: PlanLimits

    @property
    def total(self) -> int:
        return sum(self.by_status.values())

    @property
    def published(self) -> int:
        return self.by_status.get(PostStatus.PUBLISHED.value, 0)

    @property
    def scheduled(self) -> int:
        return self.by_status.get(PostStatus.SCHEDULED.value, 0)

    @property
    def drafts(self) -> int:
        return self.by_status.get(PostStatus.DRAFT.value, 0)

    @property
    def failed(self) -> int:
        return self.by_status.get(PostStatus.FAILED.value, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_posts": self.total,
            "published_posts": self.published,
            "scheduled_posts": self.scheduled,
            "draft_posts": self.drafts,
            "failed_posts": self.failed,
            "total_views": self.total_views,
            "total_impressions": self.total_impressions,
            "posts_this_month": self.posts_this_month,
            "plan_limits": self.plan_limits.model_dump(),
        }


@dataclass
class PostPage:
    posts: list[Post]
    total: int
    page: int
    per_page: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.per_page) if self.per_page else 0


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PostService:
    """High-level post workflow built on top of PostStore."""

    def __init__(
        self,
        store: Optional[PostStore] = None,
        *,
        orchestrator: Optional["PublishOrchestrator"] = None,
        syncer: Optional["AnalyticsSyncer"] = None,
        tokens: Optional["TokenManager"] = None,
        youtube_factory: Optional[Callable[[str], "YouTubeClient"]] = None,
    ) -> None:
        self.store = store or get_store()
        self._orchestrator = orchestrator
        self._syncer = syncer
        self._tokens = tokens
        self._youtube_factory = youtube_factory

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_post(
        self,
        user: User,
        title: str,
        content: str,
        *,
        media_url: Optional[str] = None,
        media_type: MediaType = MediaType.NONE,
        platforms: Union[str, Iterable[Platform]] = "snapchat",
        scheduled_for: Optional[dt.datetime] = None,
    ) -> Post:
        """Create a draft, or a scheduled post when ``scheduled_for`` is given."""
        post = Post(
            user_id=user.id,
            title=title,
            content=content,
            media_url=media_url or None,
            media_type=media_type,
            platforms=platforms,  # type: ignore[arg-type]
            status=PostStatus.SCHEDULED if scheduled_for else PostStatus.DRAFT,
            scheduled_for=scheduled_for,
        )
        self.store.save(post)
        logger.info("Created %s post %s for user %s", post.status.value, post.id, user.id)
        return post

    def get_for_owner(self, user: User, post_id: str) -> Post:
        post = self.store.get(post_id)
        if post is None:
            raise NotFound(f"Post not found: {post_id!r}")
        if post.user_id != user.id:
            raise NotAuthorized(f"Post {post_id!r} belongs to another user")
        return post

    def list_for_owner(
        self,
        user: User,
        status: Optional[PostStatus] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> PostPage:
        page = max(page, 1)
        posts = self.store.list_by_owner(
            user.id, status=status, limit=per_page, offset=(page - 1) * per_page
        )
        total = self.store.count_by_owner(user.id, status=status)
        return PostPage(posts=posts, total=total, page=page, per_page=per_page)

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    def update_post(
        self,
        user: User,
        post_id: str,
        *,
        status: Optional[PostStatus] = None,
        **changes: Any,
    ) -> Post:
        """
        Edit a post that has not been published yet.

        Setting ``scheduled_for`` moves the post to scheduled.  ``status`` may
        move a failed post back to draft or scheduled.
        """
        post = self.get_for_owner(user, post_id)
        if post.status == PostStatus.PUBLISHED:
            raise PreconditionRejected("Cannot edit published posts", "POST_LOCKED")
        if status not in (None, PostStatus.DRAFT, PostStatus.SCHEDULED):
            raise PreconditionRejected(
                "Status can only be set to draft or scheduled", "INVALID_STATUS"
            )

        changes = {k: v for k, v in changes.items() if v is not None}
        if changes:
            try:
                post.apply_edit(**changes)
            except ValueError as exc:
                raise PreconditionRejected(str(exc), "INVALID_EDIT") from exc

        target = status
        if changes.get("scheduled_for") is not None:
            target = PostStatus.SCHEDULED
        if target is not None and target != post.status:
            if target == PostStatus.SCHEDULED and post.scheduled_for is None:
                raise PreconditionRejected("A scheduled post needs a scheduled time", "INVALID_EDIT")
            try:
                post.transition_to(target)
            except ValueError as exc:
                raise PreconditionRejected(str(exc), "INVALID_STATUS") from exc

        self.store.save(post)
        logger.info("Updated post %s (%s)", post.id, ", ".join(sorted(changes)) or "status")
        return post

    def delete_post(self, user: User, post_id: str) -> None:
        """Delete the post; removing its YouTube video is attempted but never blocks deletion."""
        post = self.get_for_owner(user, post_id)
        if post.youtube_video_id:
            self._cleanup_youtube(user, post)
        self.store.delete(post.id)
        logger.info("Deleted post %s", post.id)

    def _cleanup_youtube(self, user: User, post: Post) -> None:
        if not user.account_for(Platform.YOUTUBE).is_connected:
            logger.info("YouTube not connected; leaving video %s in place", post.youtube_video_id)
            return
        try:
            grant = self.tokens.ensure_valid_token(user, Platform.YOUTUBE)
            with self.youtube_factory(grant.token) as client:
                client.delete_video(post.youtube_video_id or "")
        except Exception:
            logger.warning("Could not delete YouTube video %s", post.youtube_video_id, exc_info=True)

    # ------------------------------------------------------------------
    # Publish / analytics
    # ------------------------------------------------------------------

    def publish_post(self, user: User, post_id: str) -> "PublishReport":
        post = self.get_for_owner(user, post_id)
        return self.orchestrator.publish(post, user)

    def get_with_analytics(self, user: User, post_id: str, force: bool = False) -> Post:
        """Return the post, refreshing its metrics first when they are stale."""
        post = self.get_for_owner(user, post_id)
        if post.status != PostStatus.PUBLISHED or not user.limits.analytics:
            return post
        if not (post.instagram_post_id or post.youtube_video_id):
            return post
        try:
            self.syncer.sync(post, user, force=force)
        except PublishError as exc:
            logger.warning("Analytics refresh for post %s failed: %s", post.id, exc)
        return post

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def dashboard(self, user: User) -> DashboardStats:
        recent = self.store.list_by_owner(
            user.id, status=PostStatus.PUBLISHED, limit=RECENT_PUBLISHED_LIMIT
        )
        views = sum(p.analytics.snapchat.views + p.analytics.youtube.views for p in recent)
        impressions = sum(
            p.analytics.snapchat.impressions + p.analytics.instagram.impressions for p in recent
        )
        return DashboardStats(
            by_status=self.store.stats(user.id),
            total_views=views,
            total_impressions=impressions,
            posts_this_month=user.usage.rolled_over().posts_this_month,
            plan_limits=user.limits,
        )

    # ------------------------------------------------------------------
    # Collaborators (lazy)
    # ------------------------------------------------------------------

    @property
    def orchestrator(self) -> "PublishOrchestrator":
        if self._orchestrator is None:
            from src.publish.orchestrator import get_orchestrator  # noqa: PLC0415

            self._orchestrator = get_orchestrator()
        return self._orchestrator

    @property
    def syncer(self) -> "AnalyticsSyncer":
        if self._syncer is None:
            from src.publish.analytics import get_syncer  # noqa: PLC0415

            self._syncer = get_syncer()
        return self._syncer

    @property
    def tokens(self) -> "TokenManager":
        if self._tokens is None:
            from src.publish.tokens import get_token_manager  # noqa: PLC0415

            self._tokens = get_token_manager()
        return self._tokens

    @property
    def youtube_factory(self) -> Callable[[str], "YouTubeClient"]:
        if self._youtube_factory is None:
            from src.publish.youtube import YouTubeClient  # noqa: PLC0415

            self._youtube_factory = YouTubeClient
        return self._youtube_factory
