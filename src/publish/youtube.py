"""
YouTube Data API v3 client (google-api-python-client).

Upload is a single ``videos.insert`` call: the externally hosted video is
streamed into a spooled temp file and handed to a resumable
``MediaIoBaseUpload``.  Nothing is kept on disk after the call.
"""

from __future__ import annotations

import logging
import re
import tempfile
import time
from typing import IO, Any, Callable, Optional

import httpx
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from src.accounts.models import AccountCredential
from src.content.models import Platform
from src.publish.base import PlatformResult, PublishAdapter, PublishPayload
from src.publish.errors import PlatformAPIError, PlatformPublishFailed

logger = logging.getLogger(__name__)

_PLATFORM = Platform.YOUTUBE.value

TITLE_MAX = 100
MAX_TAGS = 15
CATEGORY_PEOPLE_AND_BLOGS = "22"

# Downloads above this size spill from memory to a temp file.
_SPOOL_MAX_BYTES = 32 * 1024 * 1024

_HASHTAG_RE = re.compile(r"#(\w+)")


def extract_hashtags(text: str, limit: int = MAX_TAGS) -> list[str]:
    """``#word`` tokens from ``text`` without the ``#``, de-duplicated, in order."""
    tags: list[str] = []
    for tag in _HASHTAG_RE.findall(text or ""):
        if tag not in tags:
            tags.append(tag)
        if len(tags) >= limit:
            break
    return tags


class YouTubeClient:
    """
    Thin wrapper around the YouTube Data API for one channel's access token.

    Usage::

        with YouTubeClient(access_token) as yt:
            video_id = yt.upload_video("https://cdn.example.com/v.mp4", "Title", "Desc")
    """

    def __init__(
        self,
        access_token: str,
        *,
        service: Any = None,
        http: Optional[httpx.Client] = None,
        timeout: float = 300.0,
    ) -> None:
        self.token = access_token
        self._service = service
        self._http = http or httpx.Client(timeout=timeout, follow_redirects=True)

    @property
    def service(self) -> Any:
        if self._service is None:
            self._service = build(
                "youtube",
                "v3",
                credentials=Credentials(token=self.token),
                cache_discovery=False,
            )
        return self._service

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(self, request: Any, action: str) -> dict:
        started = time.monotonic()
        try:
            response = request.execute()
        except HttpError as exc:
            raise PlatformAPIError(
                _PLATFORM,
                f"{action} failed: {exc.reason}",
                code=str(exc.resp.status),
                detail=exc.error_details or exc.content.decode("utf-8", "replace"),
                status_code=exc.resp.status,
            ) from exc
        logger.debug("YouTube %s took %.0f ms", action, (time.monotonic() - started) * 1000)
        return response or {}

    def _download(self, url: str) -> IO[bytes]:
        """Stream ``url`` into a spooled temp file positioned at the start."""
        buffer = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_BYTES)
        try:
            with self._http.stream("GET", url) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_bytes():
                    buffer.write(chunk)
        except httpx.HTTPError as exc:
            buffer.close()
            raise PlatformAPIError(_PLATFORM, f"Could not fetch video from {url}: {exc}") from exc
        buffer.seek(0)
        return buffer

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------

    def upload_video(
        self,
        video_url: str,
        title: str,
        description: str = "",
        tags: Optional[list[str]] = None,
        privacy_status: str = "public",
        category_id: str = CATEGORY_PEOPLE_AND_BLOGS,
    ) -> tuple[str, dict]:
        """Upload a hosted video. Returns ``(video_id, response)``."""
        logger.info("Uploading video to YouTube: %s", video_url)
        body = {
            "snippet": {
                "title": title[:TITLE_MAX],
                "description": description,
                "tags": tags or [],
                "categoryId": category_id,
            },
            "status": {"privacyStatus": privacy_status},
        }
        with self._download(video_url) as fh:
            media = MediaIoBaseUpload(fh, mimetype="video/*", chunksize=-1, resumable=True)
            response = self._execute(
                self.service.videos().insert(part="snippet,status", body=body, media_body=media),
                "Video upload",
            )

        video_id = response.get("id")
        if not video_id:
            raise PlatformAPIError(
                _PLATFORM, "Upload succeeded but no video id was returned", detail=response
            )
        logger.info("YouTube upload successful: %s", video_id)
        return str(video_id), response

    def delete_video(self, video_id: str) -> None:
        self._execute(self.service.videos().delete(id=video_id), "Video delete")
        logger.info("Deleted YouTube video %s", video_id)

    def get_video_statistics(self, video_id: str) -> dict[str, int]:
        """Return ``{"views": ..., "likes": ..., "comments": ...}``."""
        response = self._execute(
            self.service.videos().list(part="statistics", id=video_id),
            "Video statistics",
        )
        items = response.get("items") or []
        if not items:
            raise PlatformAPIError(_PLATFORM, f"Video not found: {video_id}", code="404")
        stats = items[0].get("statistics", {})
        return {
            "views": int(stats.get("viewCount", 0)),
            "likes": int(stats.get("likeCount", 0)),
            "comments": int(stats.get("commentCount", 0)),
        }

    # ------------------------------------------------------------------
    # Context manager / cleanup
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "YouTubeClient":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Publish adapter
# ---------------------------------------------------------------------------


class YouTubePublisher(PublishAdapter):
    platform = Platform.YOUTUBE

    def __init__(
        self,
        privacy_status: Optional[str] = None,
        *,
        client_factory: Callable[[str], YouTubeClient] = YouTubeClient,
    ) -> None:
        if privacy_status is None:
            from config.settings import settings

            privacy_status = settings.youtube_default_privacy
        self.privacy_status = privacy_status
        self._client_factory = client_factory

    def publish(
        self,
        token: str,
        credential: AccountCredential,
        payload: PublishPayload,
    ) -> PlatformResult:
        if not payload.is_video or not payload.media_url:
            raise PlatformPublishFailed(
                _PLATFORM, "YouTube only supports video content", code="INVALID_MEDIA_TYPE"
            )

        with self._client_factory(token) as client:
            try:
                video_id, response = client.upload_video(
                    payload.media_url,
                    title=payload.title,
                    description=payload.content,
                    tags=extract_hashtags(payload.content),
                    privacy_status=self.privacy_status,
                )
            except PlatformAPIError as exc:
                raise PlatformPublishFailed.from_api_error(exc) from exc

        return PlatformResult(platform=self.platform, post_id=video_id, raw=response)
