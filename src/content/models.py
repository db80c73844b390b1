"""
Post data models.

State machine:
  draft ⇄ scheduled → published
    └──────┴───────→ failed → draft | scheduled (manual re-edit)

``published`` is terminal: title, content and media are frozen from then on,
only analytics and the error block may still change.
"""

from __future__ import annotations

import datetime as dt
import uuid
from enum import Enum
from typing import Iterable, Optional, Union

from pydantic import BaseModel, Field, field_serializer, field_validator


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: dt.datetime) -> dt.datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PostStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    FAILED = "failed"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    NONE = "none"


class Platform(str, Enum):
    SNAPCHAT = "snapchat"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"


# Canonical order: attempts, display and storage all follow it.
PLATFORM_ORDER: tuple[Platform, ...] = (
    Platform.SNAPCHAT,
    Platform.INSTAGRAM,
    Platform.YOUTUBE,
)

_ALL_SELECTOR = "all"


# ---------------------------------------------------------------------------
# Platform selectors
# ---------------------------------------------------------------------------


def parse_platforms(selector: Union[str, Iterable[Union[str, Platform]]]) -> frozenset[Platform]:
    """
    Turn a target selector into a set of platforms.

    Accepts ``"all"``, a single platform name, an underscore/plus/comma
    joined combination (``"snapchat_instagram"``, ``"instagram+youtube"``)
    or an iterable of names.
    """
    if isinstance(selector, str):
        text = selector.strip().lower()
        if text == _ALL_SELECTOR:
            return frozenset(PLATFORM_ORDER)
        for sep in ("+", ","):
            text = text.replace(sep, "_")
        names: Iterable[Union[str, Platform]] = [p for p in text.split("_") if p]
    else:
        names = selector

    platforms = frozenset(Platform(n) for n in names)
    if not platforms:
        raise ValueError("At least one target platform is required.")
    return platforms


def ordered(platforms: Iterable[Platform]) -> list[Platform]:
    wanted = set(platforms)
    return [p for p in PLATFORM_ORDER if p in wanted]


def selector_name(platforms: Iterable[Platform]) -> str:
    """Inverse of :func:`parse_platforms` (``"snapchat_instagram"``, ``"all"``)."""
    names = [p.value for p in ordered(platforms)]
    if len(names) == len(PLATFORM_ORDER):
        return _ALL_SELECTOR
    return "_".join(names)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class SnapchatMetrics(BaseModel):
    views: int = 0
    impressions: int = 0
    reach: int = 0


class InstagramMetrics(BaseModel):
    likes: int = 0
    comments: int = 0
    saves: int = 0
    reach: int = 0
    impressions: int = 0
    engagement: int = 0


class YouTubeMetrics(BaseModel):
    views: int = 0
    likes: int = 0
    comments: int = 0
    watch_time: int = 0


class PostAnalytics(BaseModel):
    snapchat: SnapchatMetrics = Field(default_factory=SnapchatMetrics)
    instagram: InstagramMetrics = Field(default_factory=InstagramMetrics)
    youtube: YouTubeMetrics = Field(default_factory=YouTubeMetrics)
    last_synced: Optional[dt.datetime] = None

    def is_fresh(self, max_age: dt.timedelta, now: Optional[dt.datetime] = None) -> bool:
        """True if the last sync happened less than ``max_age`` ago."""
        if self.last_synced is None:
            return False
        now = now or utcnow()
        return as_utc(now) - as_utc(self.last_synced) < max_age


class PostError(BaseModel):
    message: str
    code: Optional[str] = None
    timestamp: dt.datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Post
# ---------------------------------------------------------------------------

_EDITABLE_FIELDS = {"title", "content", "media_url", "media_type", "platforms", "scheduled_for"}

_ALLOWED_TRANSITIONS: dict[PostStatus, set[PostStatus]] = {
    PostStatus.DRAFT: {PostStatus.SCHEDULED, PostStatus.PUBLISHED, PostStatus.FAILED},
    PostStatus.SCHEDULED: {PostStatus.DRAFT, PostStatus.PUBLISHED, PostStatus.FAILED},
    PostStatus.FAILED: {PostStatus.DRAFT, PostStatus.SCHEDULED},
    PostStatus.PUBLISHED: set(),
}


class Post(BaseModel):
    """One logical post, fanned out to every platform in ``platforms``."""

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    user_id: Optional[str] = None

    # Content
    title: str = Field(max_length=200)
    content: str
    media_url: Optional[str] = None
    media_type: MediaType = MediaType.NONE

    # Target / lifecycle
    platforms: frozenset[Platform] = frozenset({Platform.SNAPCHAT})
    status: PostStatus = PostStatus.DRAFT
    scheduled_for: Optional[dt.datetime] = None
    published_at: Optional[dt.datetime] = None

    # Per-platform results
    snapchat_post_id: Optional[str] = None
    instagram_post_id: Optional[str] = None
    youtube_video_id: Optional[str] = None

    analytics: PostAnalytics = Field(default_factory=PostAnalytics)
    error: Optional[PostError] = None

    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    @field_validator("platforms", mode="before")
    @classmethod
    def _coerce_platforms(cls, v: object) -> frozenset[Platform]:
        return parse_platforms(v)  # type: ignore[arg-type]

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v: object) -> PostStatus:
        if isinstance(v, str):
            return PostStatus(v)
        return v  # type: ignore[return-value]

    @field_serializer("platforms")
    def _serialize_platforms(self, platforms: frozenset[Platform]) -> list[str]:
        return [p.value for p in ordered(platforms)]

    # ------------------------------------------------------------------
    # Derived properties
    # ------------------------------------------------------------------

    @property
    def has_media(self) -> bool:
        return bool(self.media_url) and self.media_type != MediaType.NONE

    @property
    def is_video(self) -> bool:
        return self.has_media and self.media_type == MediaType.VIDEO

    @property
    def target(self) -> str:
        return selector_name(self.platforms)

    def is_due(self, now: Optional[dt.datetime] = None) -> bool:
        """True if the post is scheduled and its time has come."""
        if self.status != PostStatus.SCHEDULED or self.scheduled_for is None:
            return False
        return as_utc(self.scheduled_for) <= as_utc(now or utcnow())

    # ------------------------------------------------------------------
    # Per-platform ids
    # ------------------------------------------------------------------

    def platform_post_id(self, platform: Platform) -> Optional[str]:
        return getattr(self, _ID_FIELDS[platform])

    def set_platform_post_id(self, platform: Platform, post_id: str) -> None:
        setattr(self, _ID_FIELDS[platform], post_id)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def touch(self) -> None:
        self.updated_at = utcnow()

    def transition_to(self, new_status: PostStatus) -> None:
        """Apply a state transition with validation."""
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Invalid transition: {self.status.value} → {new_status.value}. "
                f"Allowed: {sorted(s.value for s in _ALLOWED_TRANSITIONS[self.status])}"
            )
        self.status = new_status
        self.touch()

    def apply_edit(self, **changes: object) -> None:
        """Update editable fields; published posts are frozen."""
        if self.status == PostStatus.PUBLISHED:
            raise ValueError("Cannot edit published posts")
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Not editable: {sorted(unknown)}")

        data = self.model_dump()
        data.update(changes)
        validated = Post.model_validate(data)
        for name in changes:
            setattr(self, name, getattr(validated, name))
        self.touch()

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict) -> "Post":
        return cls.model_validate(data)


_ID_FIELDS: dict[Platform, str] = {
    Platform.SNAPCHAT: "snapchat_post_id",
    Platform.INSTAGRAM: "instagram_post_id",
    Platform.YOUTUBE: "youtube_video_id",
}
