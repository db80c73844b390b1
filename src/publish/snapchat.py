"""
Snapchat Marketing / Public Profile API publishing client.

Docs: https://marketingapi.snapchat.com/docs/

Two publish variants, picked from the connected credential:

  Ad account connected (Marketing API):
    1. POST /v1/adaccounts/{ad_account_id}/media      → media_id
    2. POST /v1/adaccounts/{ad_account_id}/creatives  → creative_id (the publish)

  No ad account (Public Profile):
    1. POST /v1/me/public_content                     → content id (the publish)

The API has returned the new object's id under several shapes over time, so
ids are read through ordered path lists: the first non-empty match wins.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Sequence, Union

import httpx

from src.accounts.models import AccountCredential
from src.content.models import Platform
from src.publish.base import PlatformResult, PublishAdapter, PublishPayload
from src.publish.errors import PlatformAPIError, PlatformPublishFailed

logger = logging.getLogger(__name__)

_API_BASE = "https://adsapi.snapchat.com/v1"
_PLATFORM = Platform.SNAPCHAT.value

HEADLINE_MAX = 34

JsonPath = tuple[Union[str, int], ...]

# Precedence order for id extraction: earlier paths win.
MEDIA_ID_PATHS: tuple[JsonPath, ...] = (
    ("media", 0, "media", "id"),
    ("media", 0, "id"),
    ("media_id",),
    ("id",),
)
CREATIVE_ID_PATHS: tuple[JsonPath, ...] = (
    ("creatives", 0, "creative", "id"),
    ("creatives", 0, "id"),
    ("creative", "id"),
    ("id",),
)
PUBLIC_CONTENT_ID_PATHS: tuple[JsonPath, ...] = (
    ("public_content", "id"),
    ("public_content", 0, "id"),
    ("data", "id"),
    ("snap_id",),
    ("id",),
)


def extract_first_id(body: Any, paths: Sequence[JsonPath]) -> Optional[str]:
    """Return the first non-empty value found along ``paths``, or None."""
    for path in paths:
        value = _dig(body, path)
        if value not in (None, ""):
            return str(value)
    return None


def _dig(node: Any, path: JsonPath) -> Any:
    for key in path:
        if isinstance(key, int):
            if not isinstance(node, list) or len(node) <= key:
                return None
        elif not isinstance(node, dict):
            return None
        node = node[key] if isinstance(key, int) else node.get(key)
    return node


class SnapchatClient:
    """
    Thin wrapper around the Snapchat Marketing API (bearer-token JSON calls).

    Usage::

        client = SnapchatClient(access_token)
        media_id = client.upload_media(ad_account_id, "Launch", "VIDEO", "https://…/v.mp4")
        creative_id = client.create_creative(ad_account_id, name="Launch",
                                             headline="New drop", media_id=media_id)
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = _API_BASE,
        timeout: float = 30.0,
    ) -> None:
        self.token = access_token
        self._http = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        started = time.monotonic()
        try:
            resp = self._http.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            raise PlatformAPIError(_PLATFORM, f"Request to {path} failed: {exc}") from exc
        logger.debug(
            "Snapchat %s %s → HTTP %d in %.0f ms",
            method,
            path,
            resp.status_code,
            (time.monotonic() - started) * 1000,
        )

        try:
            body = resp.json()
        except ValueError:
            body = {"raw": resp.text}
        if not isinstance(body, dict):
            raise PlatformAPIError(
                _PLATFORM,
                f"Unexpected response (HTTP {resp.status_code})",
                detail=body,
                status_code=resp.status_code,
            )

        if resp.status_code >= 400 or str(body.get("request_status", "")).upper() == "ERROR":
            raise PlatformAPIError(
                _PLATFORM,
                _error_message(body) or f"HTTP {resp.status_code}",
                code=str(body.get("error") or body.get("request_status") or resp.status_code),
                detail=body,
                status_code=resp.status_code,
            )
        return body

    # ------------------------------------------------------------------
    # Marketing API
    # ------------------------------------------------------------------

    def upload_media(self, ad_account_id: str, name: str, media_type: str, url: str) -> str:
        """Register externally hosted media with the ad account. Returns the media id."""
        body = self._request(
            "POST",
            f"/adaccounts/{ad_account_id}/media",
            {"media": [{"name": name, "type": media_type, "media_url": url}]},
        )
        media_id = extract_first_id(body, MEDIA_ID_PATHS)
        if media_id is None:
            raise PlatformAPIError(_PLATFORM, "Media upload returned no media id", detail=body)
        logger.info("Uploaded Snapchat media: %s", media_id)
        return media_id

    def create_creative(
        self,
        ad_account_id: str,
        *,
        name: str,
        headline: str,
        media_id: str,
        brand_name: str = "Creator OS",
        call_to_action: str = "VIEW",
        creative_type: str = "WEB_VIEW",
    ) -> tuple[str, dict]:
        """Create a creative referencing uploaded media. Returns ``(creative_id, body)``."""
        body = self._request(
            "POST",
            f"/adaccounts/{ad_account_id}/creatives",
            {
                "creatives": [
                    {
                        "name": name,
                        "brand_name": brand_name,
                        "headline": headline,
                        "shareable": True,
                        "type": creative_type,
                        "top_snap_media_id": media_id,
                        "call_to_action": call_to_action,
                    }
                ]
            },
        )
        creative_id = extract_first_id(body, CREATIVE_ID_PATHS)
        if creative_id is None:
            raise PlatformAPIError(_PLATFORM, "Creative creation returned no id", detail=body)
        logger.info("Created Snapchat creative: %s", creative_id)
        return creative_id, body

    # ------------------------------------------------------------------
    # Public Profile API
    # ------------------------------------------------------------------

    def post_public_content(
        self, headline: str, media_url: str, media_type: str
    ) -> tuple[str, dict]:
        """Post media to the user's public profile. Returns ``(content_id, body)``."""
        body = self._request(
            "POST",
            "/me/public_content",
            {"headline": headline, "media_url": media_url, "media_type": media_type},
        )
        content_id = extract_first_id(body, PUBLIC_CONTENT_ID_PATHS)
        if content_id is None:
            raise PlatformAPIError(_PLATFORM, "Public profile post returned no id", detail=body)
        logger.info("Posted to Snapchat public profile: %s", content_id)
        return content_id, body

    # ------------------------------------------------------------------
    # Context manager / cleanup
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "SnapchatClient":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _error_message(body: dict) -> Optional[str]:
    for key in ("debug_message", "error_description", "display_message", "message"):
        if body.get(key):
            return str(body[key])
    for key in ("media", "creatives"):
        for item in body.get(key) or []:
            if isinstance(item, dict) and item.get("sub_request_error_reason"):
                return str(item["sub_request_error_reason"])
    return None


# ---------------------------------------------------------------------------
# Publish adapter
# ---------------------------------------------------------------------------


class SnapchatPublisher(PublishAdapter):
    """Creative (ad account) or public-profile post; the creation call is the publish."""

    platform = Platform.SNAPCHAT

    def __init__(
        self,
        brand_name: Optional[str] = None,
        *,
        client_factory: Callable[[str], SnapchatClient] = SnapchatClient,
    ) -> None:
        if brand_name is None:
            from config.settings import settings

            brand_name = settings.snapchat_brand_name
        self.brand_name = brand_name
        self._client_factory = client_factory

    def publish(
        self,
        token: str,
        credential: AccountCredential,
        payload: PublishPayload,
    ) -> PlatformResult:
        if not payload.media_url:
            raise PlatformPublishFailed(_PLATFORM, "Snapchat requires an image or video")

        media_type = "VIDEO" if payload.is_video else "IMAGE"
        headline = (payload.content or payload.title)[:HEADLINE_MAX]

        with self._client_factory(token) as client:
            try:
                if credential.ad_account_id:
                    media_id = client.upload_media(
                        credential.ad_account_id, payload.title, media_type, payload.media_url
                    )
                    post_id, body = client.create_creative(
                        credential.ad_account_id,
                        name=payload.title,
                        headline=headline,
                        media_id=media_id,
                        brand_name=self.brand_name,
                    )
                    raw = {"media_id": media_id, "response": body}
                else:
                    post_id, body = client.post_public_content(
                        headline, payload.media_url, media_type
                    )
                    raw = {"response": body}
            except PlatformAPIError as exc:
                raise PlatformPublishFailed.from_api_error(exc) from exc

        return PlatformResult(platform=self.platform, post_id=post_id, raw=raw)
