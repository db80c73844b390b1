"""
Tests for src/publish/analytics.py

Platform clients and the token manager are mocked; posts live in a real
SQLite store.
"""

from __future__ import annotations

import datetime as dt
from unittest.mock import MagicMock

import pytest

from src.accounts.models import AccountCredential, User
from src.accounts.storage import UserStore
from src.content.models import (
    MediaType,
    Platform,
    Post,
    PostAnalytics,
    PostStatus,
    YouTubeMetrics,
)
from src.content.storage import PostStore
from src.publish.analytics import AnalyticsSyncer
from src.publish.errors import NotConnected, NotPublished, PlatformAPIError
from src.publish.tokens import TokenGrant

NOW = dt.datetime(2026, 3, 10, 12, 0, tzinfo=dt.timezone.utc)


# ---------------------------------------------------------------------------
# Helpers / fixtures
# ---------------------------------------------------------------------------


def _client() -> MagicMock:
    client = MagicMock()
    client.__enter__.return_value = client
    return client


@pytest.fixture
def instagram() -> MagicMock:
    client = _client()
    client.get_media_counts.return_value = {"likes": 12, "comments": 3}
    client.get_media_insights.return_value = {
        "impressions": 500,
        "reach": 400,
        "saved": 7,
        "engagement": 22,
    }
    return client


@pytest.fixture
def youtube() -> MagicMock:
    client = _client()
    client.get_video_statistics.return_value = {"views": 1000, "likes": 50, "comments": 4}
    return client


@pytest.fixture
def tokens() -> MagicMock:
    tokens = MagicMock()
    tokens.ensure_valid_token.side_effect = lambda user, platform: TokenGrant(
        user.account_for(platform), f"TOKEN-{platform.value}"
    )
    return tokens


@pytest.fixture
def syncer(tokens, post_store: PostStore, user_store: UserStore, instagram, youtube) -> AnalyticsSyncer:
    return AnalyticsSyncer(
        tokens,
        post_store,
        user_store,
        instagram_factory=MagicMock(return_value=instagram),
        youtube_factory=MagicMock(return_value=youtube),
        clock=lambda: NOW,
    )


def _user(user_store: UserStore, connected=(Platform.INSTAGRAM, Platform.YOUTUBE)) -> User:
    user = User(
        email="creator@example.com",
        accounts={
            p: AccountCredential(is_connected=True, access_token="T", business_account_id="IG1")
            for p in connected
        },
    )
    user_store.save(user)
    return user


def _published(post_store: PostStore, user_id, **kwargs) -> Post:
    defaults = dict(
        user_id=user_id,
        title="Live",
        content="Body",
        media_url="https://cdn/v.mp4",
        media_type=MediaType.VIDEO,
        platforms="instagram+youtube",
        status=PostStatus.PUBLISHED,
        published_at=NOW - dt.timedelta(days=1),
        instagram_post_id="17900",
        youtube_video_id="vid123",
    )
    defaults.update(kwargs)
    post = Post(**defaults)
    post_store.save(post)
    return post


# ---------------------------------------------------------------------------
# sync (single post)
# ---------------------------------------------------------------------------


class TestSync:
    def test_merges_both_platforms(self, syncer, post_store, user_store) -> None:
        user = _user(user_store)
        post = _published(post_store, user.id)

        analytics = syncer.sync(post, user)

        assert analytics.instagram.likes == 12
        assert analytics.instagram.saves == 7
        assert analytics.instagram.engagement == 22
        assert analytics.youtube.views == 1000
        assert analytics.last_synced == NOW
        assert post_store.get(post.id).analytics.instagram.impressions == 500

    def test_fresh_analytics_are_not_refetched(self, syncer, post_store, user_store, instagram) -> None:
        user = _user(user_store)
        post = _published(
            post_store, user.id, analytics=PostAnalytics(last_synced=NOW - dt.timedelta(minutes=10))
        )

        syncer.sync(post, user)

        instagram.get_media_counts.assert_not_called()

    def test_force_ignores_freshness(self, syncer, post_store, user_store, instagram) -> None:
        user = _user(user_store)
        post = _published(
            post_store, user.id, analytics=PostAnalytics(last_synced=NOW - dt.timedelta(minutes=10))
        )

        syncer.sync(post, user, force=True)

        instagram.get_media_counts.assert_called_once_with("17900")

    def test_stale_analytics_are_refetched(self, syncer, post_store, user_store, instagram) -> None:
        user = _user(user_store)
        post = _published(
            post_store, user.id, analytics=PostAnalytics(last_synced=NOW - dt.timedelta(minutes=31))
        )

        syncer.sync(post, user)

        instagram.get_media_counts.assert_called_once()

    def test_missing_insights_count_as_zero(self, syncer, post_store, user_store, instagram) -> None:
        instagram.get_media_insights.side_effect = PlatformAPIError("instagram", "Unsupported metric")
        user = _user(user_store)
        post = _published(post_store, user.id, platforms="instagram", youtube_video_id=None)

        analytics = syncer.sync(post, user)

        assert analytics.instagram.likes == 12
        assert analytics.instagram.impressions == 0
        assert analytics.instagram.reach == 0

    def test_youtube_watch_time_is_kept(self, syncer, post_store, user_store) -> None:
        user = _user(user_store)
        post = _published(
            post_store,
            user.id,
            platforms="youtube",
            instagram_post_id=None,
            analytics=PostAnalytics(youtube=YouTubeMetrics(watch_time=90)),
        )

        analytics = syncer.sync(post, user)

        assert analytics.youtube.watch_time == 90
        assert analytics.youtube.likes == 50

    def test_snapchat_only_post_is_not_published(self, syncer, post_store, user_store) -> None:
        user = _user(user_store)
        post = _published(
            post_store, user.id, platforms="snapchat", instagram_post_id=None, youtube_video_id=None,
            snapchat_post_id="S1",
        )
        with pytest.raises(NotPublished):
            syncer.sync(post, user)

    def test_disconnected_youtube_is_skipped(self, syncer, post_store, user_store, youtube) -> None:
        user = _user(user_store, connected=(Platform.INSTAGRAM,))
        post = _published(post_store, user.id)

        analytics = syncer.sync(post, user)

        youtube.get_video_statistics.assert_not_called()
        assert analytics.instagram.likes == 12
        stored = post_store.get(post.id).analytics
        assert stored.instagram.likes == 12
        assert stored.last_synced == NOW

    def test_no_connected_platform(self, syncer, post_store, user_store, instagram) -> None:
        user = _user(user_store, connected=())
        post = _published(post_store, user.id)

        with pytest.raises(NotConnected):
            syncer.sync(post, user)

        instagram.get_media_counts.assert_not_called()
        assert post_store.get(post.id).analytics.last_synced is None

    def test_youtube_failure_keeps_instagram_metrics(self, syncer, post_store, user_store, youtube) -> None:
        youtube.get_video_statistics.side_effect = PlatformAPIError(
            "youtube", "Video not found", code="404", status_code=404
        )
        user = _user(user_store)
        post = _published(
            post_store, user.id, analytics=PostAnalytics(youtube=YouTubeMetrics(views=80, watch_time=5))
        )

        analytics = syncer.sync(post, user)

        assert analytics.instagram.likes == 12
        assert analytics.youtube.views == 80
        assert analytics.youtube.watch_time == 5
        assert post_store.get(post.id).analytics.last_synced == NOW

    def test_youtube_only_failure_propagates(self, syncer, post_store, user_store, youtube) -> None:
        youtube.get_video_statistics.side_effect = PlatformAPIError("youtube", "Video not found", code="404")
        user = _user(user_store)
        post = _published(post_store, user.id, platforms="youtube", instagram_post_id=None)

        with pytest.raises(PlatformAPIError):
            syncer.sync(post, user)

        assert post_store.get(post.id).analytics.last_synced is None


# ---------------------------------------------------------------------------
# sync_all (batch sweep)
# ---------------------------------------------------------------------------


class TestSyncAll:
    def test_summary_counts(self, syncer, post_store, user_store, instagram) -> None:
        user = _user(user_store)
        stale = _published(post_store, user.id, platforms="instagram", youtube_video_id=None)
        _published(
            post_store,
            user.id,
            analytics=PostAnalytics(last_synced=NOW - dt.timedelta(minutes=45)),
        )
        orphan = _published(post_store, None)
        _published(post_store, user.id, platforms="snapchat", instagram_post_id=None, youtube_video_id=None)

        summary = syncer.sync_all()

        assert summary.to_dict() == {
            "total": 3,
            "synced": 1,
            "skipped": 1,
            "failed": 1,
            "errors": [{"post_id": orphan.id, "error": "Owner not found"}],
        }
        assert post_store.get(stale.id).analytics.last_synced == NOW

    def test_one_failure_does_not_stop_the_sweep(self, syncer, post_store, user_store, instagram) -> None:
        user = _user(user_store)
        _published(post_store, user.id, platforms="instagram", youtube_video_id=None)
        _published(post_store, user.id, platforms="instagram", youtube_video_id=None)
        instagram.get_media_counts.side_effect = [
            PlatformAPIError("instagram", "Media not found", code="100"),
            {"likes": 1, "comments": 0},
        ]

        summary = syncer.sync_all()

        assert summary.synced == 1
        assert summary.failed == 1
        assert "Media not found" in summary.errors[0]["error"]

    def test_disconnected_owner_is_skipped(self, syncer, post_store, user_store) -> None:
        user = _user(user_store, connected=())
        _published(post_store, user.id)

        summary = syncer.sync_all()

        assert summary.skipped == 1
        assert summary.failed == 0

    def test_instagram_only_connection_counts_as_synced(self, syncer, post_store, user_store) -> None:
        user = _user(user_store, connected=(Platform.INSTAGRAM,))
        post = _published(post_store, user.id)

        summary = syncer.sync_all()

        assert summary.to_dict() == {
            "total": 1,
            "synced": 1,
            "skipped": 0,
            "failed": 0,
            "errors": [],
        }
        assert post_store.get(post.id).analytics.instagram.likes == 12
