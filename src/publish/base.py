"""
Common interface for platform publish adapters.

Every adapter turns one ``PublishPayload`` into a platform post through its
own protocol and returns a ``PlatformResult``.  Any failure is raised as a
``PlatformPublishFailed`` that keeps the platform's raw error detail.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from src.accounts.models import AccountCredential
from src.content.models import MediaType, Platform, Post


@dataclass
class PublishPayload:
    """The platform-independent part of a post that adapters need."""

    post_id: str
    title: str
    content: str
    media_url: Optional[str] = None
    media_type: MediaType = MediaType.NONE

    @classmethod
    def from_post(cls, post: Post) -> "PublishPayload":
        return cls(
            post_id=post.id,
            title=post.title,
            content=post.content,
            media_url=post.media_url if post.has_media else None,
            media_type=post.media_type,
        )

    @property
    def is_video(self) -> bool:
        return self.media_type == MediaType.VIDEO


@dataclass
class PlatformResult:
    platform: Platform
    post_id: str
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


class PublishAdapter(ABC):
    """One implementation per platform."""

    platform: Platform

    @abstractmethod
    def publish(
        self,
        token: str,
        credential: AccountCredential,
        payload: PublishPayload,
    ) -> PlatformResult:
        """Publish ``payload`` with a valid access token."""
        ...
