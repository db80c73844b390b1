"""
Instagram Graph API publishing client.

Docs: https://developers.facebook.com/docs/instagram-api/guides/content-publishing
Rate limits: 200 API calls/hour per user, 25 posts per 24-hour period

Flow (image):
  1. POST /{ig_user_id}/media  image_url, caption      → container_id
  2. POST /{ig_user_id}/media_publish  creation_id     → media_id

Flow (video, published as a Reel shared to the feed):
  1. POST /{ig_user_id}/media  media_type=REELS, video_url, caption, share_to_feed
  2. GET  /{container_id}?fields=status_code  until FINISHED | ERROR (bounded)
  3. POST /{ig_user_id}/media_publish  creation_id     → media_id
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx

from src.accounts.models import AccountCredential
from src.content.models import Platform
from src.publish.base import PlatformResult, PublishAdapter, PublishPayload
from src.publish.errors import (
    PlatformAPIError,
    PlatformPublishFailed,
    ProcessingTimeout,
)
from src.publish.polling import PollPolicy, poll

logger = logging.getLogger(__name__)

_PLATFORM = Platform.INSTAGRAM.value
_CAPTION_MAX = 2200

STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_FINISHED = "FINISHED"
STATUS_ERROR = "ERROR"

# Insights that may legitimately be missing shortly after publishing or for
# accounts without the required capability.
INSIGHT_METRICS: tuple[str, ...] = ("impressions", "reach", "saved", "engagement")


class InstagramClient:
    """
    Thin wrapper around the Instagram Content Publishing API.

    Usage::

        client = InstagramClient(page_token, "17841400000000000")
        container_id = client.create_video_container("https://cdn.example.com/v.mp4", "Caption")
        status = client.get_container_status(container_id)
        media_id = client.publish_container(container_id)
    """

    def __init__(
        self,
        access_token: str,
        account_id: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        if base_url is None:
            from config.settings import settings

            base_url = settings.instagram_graph_base
        self.token = access_token
        self.account_id = account_id
        self._http = httpx.Client(base_url=base_url, timeout=timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _post(self, path: str, data: dict) -> dict:
        """POST to the Graph API and return parsed JSON, raising on error."""
        data["access_token"] = self.token
        try:
            resp = self._http.post(path, data=data)
        except httpx.HTTPError as exc:
            raise PlatformAPIError(_PLATFORM, f"Request to {path} failed: {exc}") from exc
        return self._parse(resp)

    def _get(self, path: str, params: dict) -> dict:
        params["access_token"] = self.token
        try:
            resp = self._http.get(path, params=params)
        except httpx.HTTPError as exc:
            raise PlatformAPIError(_PLATFORM, f"Request to {path} failed: {exc}") from exc
        return self._parse(resp)

    @staticmethod
    def _parse(resp: httpx.Response) -> dict:
        try:
            body = resp.json()
        except ValueError as exc:
            raise PlatformAPIError(
                _PLATFORM,
                f"Non-JSON response (HTTP {resp.status_code})",
                status_code=resp.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise PlatformAPIError(
                _PLATFORM,
                f"Unexpected response (HTTP {resp.status_code})",
                detail=body,
                status_code=resp.status_code,
            )
        if "error" in body:
            error = body["error"]
            if not isinstance(error, dict):
                raise PlatformAPIError(_PLATFORM, str(error), detail=error, status_code=resp.status_code)
            raise PlatformAPIError(
                _PLATFORM,
                error.get("message", str(error)),
                code=str(error["code"]) if error.get("code") is not None else None,
                detail=error,
                status_code=resp.status_code,
            )
        return body

    def _require_account(self) -> str:
        if not self.account_id:
            raise PlatformAPIError(_PLATFORM, "Instagram business account id is missing")
        return self.account_id

    @staticmethod
    def _require_id(body: dict, step: str) -> str:
        value = body.get("id")
        if not value:
            raise PlatformAPIError(_PLATFORM, f"{step}: response carried no id", detail=body)
        return str(value)

    # ------------------------------------------------------------------
    # Container creation
    # ------------------------------------------------------------------

    def create_image_container(self, image_url: str, caption: str = "") -> str:
        """Create a single-image container. Returns the container_id (not yet published)."""
        body = self._post(
            f"/{self._require_account()}/media",
            {"image_url": image_url, "caption": caption},
        )
        container_id = self._require_id(body, "Create image container")
        logger.info("Created image container: %s", container_id)
        return container_id

    def create_video_container(self, video_url: str, caption: str = "") -> str:
        """Create a Reels container for a video. Returns the container_id."""
        body = self._post(
            f"/{self._require_account()}/media",
            {
                "media_type": "REELS",
                "video_url": video_url,
                "caption": caption,
                "share_to_feed": "true",
            },
        )
        container_id = self._require_id(body, "Create video container")
        logger.info("Created video container: %s", container_id)
        return container_id

    def get_container_status(self, container_id: str) -> Optional[str]:
        """Return the container's ``status_code`` (IN_PROGRESS, FINISHED, ERROR, ...)."""
        body = self._get(f"/{container_id}", {"fields": "status_code"})
        return body.get("status_code")

    def publish_container(self, container_id: str) -> str:
        """
        Publish a previously created media container.

        Returns the media_id (the published post's ID).
        """
        body = self._post(
            f"/{self._require_account()}/media_publish",
            {"creation_id": container_id},
        )
        post_id = self._require_id(body, "Publish container")
        logger.info("Published container %s → post %s", container_id, post_id)
        return post_id

    # ------------------------------------------------------------------
    # Insights / Analytics
    # ------------------------------------------------------------------

    def get_media_counts(self, media_id: str) -> dict[str, int]:
        """Return ``{"likes": ..., "comments": ...}`` for a published post."""
        body = self._get(f"/{media_id}", {"fields": "like_count,comments_count"})
        return {
            "likes": int(body.get("like_count") or 0),
            "comments": int(body.get("comments_count") or 0),
        }

    def get_media_insights(
        self,
        media_id: str,
        metrics: tuple[str, ...] = INSIGHT_METRICS,
    ) -> dict[str, int]:
        """
        Fetch performance metrics for a published post.

        Returns a dict like ``{"impressions": 1200, "reach": 950, ...}``.
        """
        body = self._get(
            f"/{media_id}/insights",
            {"metric": ",".join(metrics)},
        )
        result: dict[str, int] = {}
        for item in body.get("data", []):
            values = item.get("values") or [{}]
            result[item["name"]] = int(values[0].get("value", 0) or 0)
        return result

    # ------------------------------------------------------------------
    # Context manager / cleanup
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "InstagramClient":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Publish adapter
# ---------------------------------------------------------------------------


class InstagramPublisher(PublishAdapter):
    """Container → (poll) → publish, for one image or video post."""

    platform = Platform.INSTAGRAM

    def __init__(
        self,
        poll_policy: Optional[PollPolicy] = None,
        *,
        client_factory: Callable[..., InstagramClient] = InstagramClient,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_policy is None:
            from config.settings import settings

            poll_policy = PollPolicy(
                max_attempts=settings.instagram_poll_max_attempts,
                interval=settings.instagram_poll_interval_seconds,
                pending=frozenset({STATUS_IN_PROGRESS}),
                succeeded=frozenset({STATUS_FINISHED}),
                failed=frozenset({STATUS_ERROR}),
            )
        self.poll_policy = poll_policy
        self._client_factory = client_factory
        self._sleep = sleep

    def publish(
        self,
        token: str,
        credential: AccountCredential,
        payload: PublishPayload,
    ) -> PlatformResult:
        if not payload.media_url:
            raise PlatformPublishFailed(_PLATFORM, "Instagram requires an image or video")
        if not credential.business_account_id:
            raise PlatformPublishFailed(
                _PLATFORM, "No Instagram business account linked to this connection"
            )

        caption = payload.content[:_CAPTION_MAX]
        with self._client_factory(token, credential.business_account_id) as client:
            try:
                if payload.is_video:
                    container_id = client.create_video_container(payload.media_url, caption)
                    self._wait_until_ready(client, container_id)
                else:
                    container_id = client.create_image_container(payload.media_url, caption)
                post_id = client.publish_container(container_id)
            except PlatformAPIError as exc:
                raise PlatformPublishFailed.from_api_error(exc) from exc

        return PlatformResult(
            platform=self.platform,
            post_id=post_id,
            raw={"container_id": container_id},
        )

    def _wait_until_ready(self, client: InstagramClient, container_id: str) -> None:
        outcome = poll(
            lambda: client.get_container_status(container_id),
            self.poll_policy,
            sleep=self._sleep,
            label=f"Instagram container {container_id}",
        )
        if outcome.failed:
            raise PlatformPublishFailed(
                _PLATFORM,
                "Video processing failed",
                code=STATUS_ERROR,
                detail={"container_id": container_id, "status_code": outcome.status},
            )
        if outcome.timed_out:
            raise ProcessingTimeout(
                _PLATFORM,
                f"Video processing timeout after {outcome.attempts} attempt(s)",
                detail={"container_id": container_id, "status_code": outcome.status},
            )

