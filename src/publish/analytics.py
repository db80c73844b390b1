"""
Post analytics sync.

Pulls post-level metrics from the platforms that expose them and merges
them into ``Post.analytics``:

  Instagram  like_count, comments_count  (+ impressions, reach, saved,
             engagement insights when available; missing ones count as 0)
  YouTube    viewCount, likeCount, commentCount

Every sync stamps ``analytics.last_synced``.  Callers pass a freshness
window: a post synced more recently than that is returned unchanged, which
keeps call volume inside the platforms' hourly rate limits.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from src.accounts.models import User
from src.content.models import (
    InstagramMetrics,
    Platform,
    Post,
    PostAnalytics,
    YouTubeMetrics,
    utcnow,
)
from src.publish.errors import NotConnected, NotPublished, PlatformAPIError, PublishError
from src.publish.instagram import InstagramClient
from src.publish.tokens import TokenManager, get_token_manager
from src.publish.youtube import YouTubeClient

if TYPE_CHECKING:
    from src.accounts.storage import UserStore
    from src.content.storage import PostStore

logger = logging.getLogger(__name__)

SYNCABLE_PLATFORMS: tuple[Platform, ...] = (Platform.INSTAGRAM, Platform.YOUTUBE)


@dataclass
class SyncSummary:
    total: int = 0
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "synced": self.synced,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


class AnalyticsSyncer:
    def __init__(
        self,
        tokens: TokenManager,
        posts: "PostStore",
        users: "UserStore",
        *,
        read_max_age: dt.timedelta = dt.timedelta(minutes=30),
        batch_max_age: dt.timedelta = dt.timedelta(minutes=60),
        instagram_factory: Callable[..., InstagramClient] = InstagramClient,
        youtube_factory: Callable[[str], YouTubeClient] = YouTubeClient,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._tokens = tokens
        self._posts = posts
        self._users = users
        self.read_max_age = read_max_age
        self.batch_max_age = batch_max_age
        self._instagram_factory = instagram_factory
        self._youtube_factory = youtube_factory
        self._clock = clock

    # ------------------------------------------------------------------
    # Single post
    # ------------------------------------------------------------------

    def sync(
        self,
        post: Post,
        user: User,
        *,
        force: bool = False,
        max_age: Optional[dt.timedelta] = None,
    ) -> PostAnalytics:
        """
        Refresh ``post``'s metrics and persist them.

        Returns the stored analytics untouched when they are younger than
        ``max_age`` (read-path window by default) and ``force`` is not set.
        Raises NotPublished if the post has no id on a syncable platform and
        NotConnected if none of those platforms is connected.  Disconnected
        platforms are skipped; a YouTube stats failure keeps the previous
        YouTube numbers as long as Instagram was fetched.
        """
        now = self._clock()
        if not force and post.analytics.is_fresh(max_age or self.read_max_age, now):
            logger.debug("Analytics for post %s are fresh, skipping sync", post.id)
            return post.analytics

        platforms = [p for p in SYNCABLE_PLATFORMS if post.platform_post_id(p)]
        if not platforms:
            raise NotPublished(f"Post {post.id} has not been published to Instagram or YouTube")
        connected = [p for p in platforms if user.account_for(p).is_connected]
        if not connected:
            raise NotConnected(platforms[0].value)
        for platform in platforms:
            if platform not in connected:
                logger.info("%s not connected, skipping its metrics for post %s", platform.value, post.id)

        analytics = post.analytics.model_copy(deep=True)
        synced: list[Platform] = []
        if Platform.INSTAGRAM in connected:
            analytics.instagram = self._fetch_instagram(post, user)
            synced.append(Platform.INSTAGRAM)
        if Platform.YOUTUBE in connected:
            # YouTube stats are a supplement: they only fail the sync when nothing else was fetched
            try:
                analytics.youtube = self._fetch_youtube(post, user, analytics.youtube)
            except Exception:
                if not synced:
                    raise
                logger.warning("YouTube stats for post %s unavailable", post.id, exc_info=True)
            else:
                synced.append(Platform.YOUTUBE)
        analytics.last_synced = now

        post.analytics = analytics
        post.touch()
        self._posts.save(post)
        logger.info("Synced analytics for post %s (%s)", post.id, [p.value for p in synced])
        return analytics

    def _fetch_instagram(self, post: Post, user: User) -> InstagramMetrics:
        grant = self._tokens.ensure_valid_token(user, Platform.INSTAGRAM)
        media_id = post.instagram_post_id or ""
        with self._instagram_factory(grant.token, grant.credential.business_account_id) as client:
            counts = client.get_media_counts(media_id)
            try:
                insights = client.get_media_insights(media_id)
            except PlatformAPIError as exc:
                logger.info("Insights unavailable for Instagram media %s: %s", media_id, exc)
                insights = {}

        return InstagramMetrics(
            likes=counts["likes"],
            comments=counts["comments"],
            saves=insights.get("saved", 0),
            reach=insights.get("reach", 0),
            impressions=insights.get("impressions", 0),
            engagement=insights.get("engagement", insights.get("total_interactions", 0)),
        )

    def _fetch_youtube(self, post: Post, user: User, current: YouTubeMetrics) -> YouTubeMetrics:
        grant = self._tokens.ensure_valid_token(user, Platform.YOUTUBE)
        with self._youtube_factory(grant.token) as client:
            stats = client.get_video_statistics(post.youtube_video_id or "")
        return YouTubeMetrics(
            views=stats["views"],
            likes=stats["likes"],
            comments=stats["comments"],
            watch_time=current.watch_time,
        )

    # ------------------------------------------------------------------
    # Batch sweep
    # ------------------------------------------------------------------

    def sync_all(self, max_age: Optional[dt.timedelta] = None, limit: Optional[int] = None) -> SyncSummary:
        """Sync every published post with a platform id; one bad post never stops the sweep."""
        max_age = max_age or self.batch_max_age
        summary = SyncSummary()
        now = self._clock()

        for post in self._posts.list_published(limit=limit):
            if not any(post.platform_post_id(p) for p in SYNCABLE_PLATFORMS):
                continue
            summary.total += 1

            if post.analytics.is_fresh(max_age, now):
                summary.skipped += 1
                continue

            user = self._users.get(post.user_id) if post.user_id else None
            if user is None:
                summary.failed += 1
                summary.errors.append({"post_id": post.id, "error": "Owner not found"})
                continue

            try:
                self.sync(post, user, force=True)
            except NotConnected as exc:
                logger.info("Skipping post %s: %s", post.id, exc.message)
                summary.skipped += 1
            except PublishError as exc:
                logger.warning("Analytics sync failed for post %s: %s", post.id, exc)
                summary.failed += 1
                summary.errors.append({"post_id": post.id, "error": str(exc)})
            except Exception as exc:
                logger.exception("Unexpected error syncing analytics for post %s", post.id)
                summary.failed += 1
                summary.errors.append({"post_id": post.id, "error": str(exc)})
            else:
                summary.synced += 1

        logger.info(
            "Analytics sweep: %d total, %d synced, %d skipped, %d failed",
            summary.total,
            summary.synced,
            summary.skipped,
            summary.failed,
        )
        return summary


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_syncer: Optional[AnalyticsSyncer] = None


def get_syncer() -> AnalyticsSyncer:
    """Return the application-wide AnalyticsSyncer (lazy init)."""
    global _syncer
    if _syncer is None:
        from config.settings import settings  # noqa: PLC0415
        from src.accounts.storage import get_user_store  # noqa: PLC0415
        from src.content.storage import get_store  # noqa: PLC0415

        _syncer = AnalyticsSyncer(
            tokens=get_token_manager(),
            posts=get_store(),
            users=get_user_store(),
            read_max_age=dt.timedelta(minutes=settings.analytics_read_max_age_minutes),
            batch_max_age=dt.timedelta(minutes=settings.analytics_batch_max_age_minutes),
        )
    return _syncer
