"""
OAuth access-token lifecycle for connected platform accounts.

``TokenManager.refresh_if_needed`` is side-effect free apart from the
platform's refresh call: it takes a credential and returns a ``TokenGrant``
holding the credential to use (new or unchanged) and its access token.
``ensure_valid_token`` wraps it for callers that want the result persisted:
a refreshed credential is written back as one full tuple, so two racing
refreshes leave the later one in place and never a mix of both.

Refresh endpoints:
  Snapchat   POST accounts.snapchat.com/login/oauth2/access_token  grant_type=refresh_token
  Instagram  GET  graph.facebook.com/{v}/oauth/access_token        grant_type=fb_exchange_token
  YouTube    POST oauth2.googleapis.com/token                      grant_type=refresh_token
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import httpx

from src.accounts.models import AccountCredential
from src.content.models import Platform, as_utc, utcnow
from src.publish.errors import NotConnected, TokenRefreshFailed

if TYPE_CHECKING:
    from src.accounts.models import User
    from src.accounts.storage import UserStore

logger = logging.getLogger(__name__)

SNAPCHAT_TOKEN_URL = "https://accounts.snapchat.com/login/oauth2/access_token"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

INSTAGRAM_DEFAULT_EXPIRES_IN = 60 * 24 * 3600
YOUTUBE_DEFAULT_EXPIRES_IN = 3600
SNAPCHAT_DEFAULT_EXPIRES_IN = 3600

# Graph API: "Error validating access token" (expired, revoked or password change)
_GRAPH_INVALID_TOKEN = 190


@dataclass(frozen=True)
class TokenGrant:
    credential: AccountCredential
    token: str
    refreshed: bool = False


# ---------------------------------------------------------------------------
# Per-platform refreshers
# ---------------------------------------------------------------------------


class TokenRefresher(ABC):
    """Calls one platform's refresh endpoint and returns the new credential."""

    platform: Platform
    lookahead: dt.timedelta

    def __init__(self, http: Optional[httpx.Client] = None, timeout: float = 30.0) -> None:
        self._http = http or httpx.Client(timeout=timeout)

    @abstractmethod
    def refresh(self, credential: AccountCredential, now: dt.datetime) -> AccountCredential:
        ...

    def _send(self, method: str, url: str, **kwargs) -> dict:  # type: ignore[no-untyped-def]
        started = time.monotonic()
        try:
            resp = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TokenRefreshFailed(
                self.platform.value, f"Token refresh request failed: {exc}"
            ) from exc
        logger.debug(
            "%s token refresh → HTTP %d in %.0f ms",
            self.platform.value,
            resp.status_code,
            (time.monotonic() - started) * 1000,
        )
        try:
            body = resp.json()
        except ValueError:
            body = {"raw": resp.text}
        if resp.status_code >= 400 or "error" in body:
            raise self._failure(body, resp.status_code)
        if not body.get("access_token"):
            raise TokenRefreshFailed(
                self.platform.value,
                "Token refresh response carried no access_token",
                detail=body,
                status_code=resp.status_code,
            )
        return body

    def _failure(self, body: dict, status_code: int) -> TokenRefreshFailed:
        """OAuth2 error body (``error`` / ``error_description``); ``invalid_grant`` is permanent."""
        error = body.get("error")
        message = body.get("error_description") or (error if isinstance(error, str) else None)
        return TokenRefreshFailed(
            self.platform.value,
            message or f"Token refresh failed (HTTP {status_code})",
            code=error if isinstance(error, str) else None,
            detail=body,
            status_code=status_code,
            revoked=error == "invalid_grant",
        )

    def _require_refresh_token(self, credential: AccountCredential) -> str:
        if not credential.refresh_token:
            raise TokenRefreshFailed(
                self.platform.value,
                f"No refresh token stored; please reconnect your {self.platform.value.capitalize()} account",
            )
        return credential.refresh_token

    def close(self) -> None:
        self._http.close()


class SnapchatRefresher(TokenRefresher):
    platform = Platform.SNAPCHAT

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        lookahead: dt.timedelta = dt.timedelta(minutes=5),
        http: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(http)
        self.client_id = client_id
        self.client_secret = client_secret
        self.lookahead = lookahead

    def refresh(self, credential: AccountCredential, now: dt.datetime) -> AccountCredential:
        body = self._send(
            "POST",
            SNAPCHAT_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._require_refresh_token(credential),
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        expires_in = int(body.get("expires_in") or SNAPCHAT_DEFAULT_EXPIRES_IN)
        return credential.with_tokens(
            body["access_token"],
            now + dt.timedelta(seconds=expires_in),
            refresh_token=body.get("refresh_token"),
        )


class InstagramRefresher(TokenRefresher):
    """Long-lived tokens are re-exchanged for a fresh ~60 day token; there is no refresh token."""

    platform = Platform.INSTAGRAM

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        graph_base: str,
        lookahead: dt.timedelta = dt.timedelta(days=7),
        http: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(http)
        self.app_id = app_id
        self.app_secret = app_secret
        self.graph_base = graph_base.rstrip("/")
        self.lookahead = lookahead

    def refresh(self, credential: AccountCredential, now: dt.datetime) -> AccountCredential:
        body = self._send(
            "GET",
            f"{self.graph_base}/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "fb_exchange_token": credential.access_token,
            },
        )
        expires_in = int(body.get("expires_in") or INSTAGRAM_DEFAULT_EXPIRES_IN)
        return credential.with_tokens(body["access_token"], now + dt.timedelta(seconds=expires_in))

    def _failure(self, body: dict, status_code: int) -> TokenRefreshFailed:
        error = body.get("error")
        if not isinstance(error, dict):
            return super()._failure(body, status_code)
        return TokenRefreshFailed(
            self.platform.value,
            error.get("message") or f"Token refresh failed (HTTP {status_code})",
            code=str(error["code"]) if error.get("code") is not None else None,
            detail=error,
            status_code=status_code,
            revoked=error.get("code") == _GRAPH_INVALID_TOKEN,
        )


class YouTubeRefresher(TokenRefresher):
    platform = Platform.YOUTUBE

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        lookahead: dt.timedelta = dt.timedelta(minutes=5),
        http: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(http)
        self.client_id = client_id
        self.client_secret = client_secret
        self.lookahead = lookahead

    def refresh(self, credential: AccountCredential, now: dt.datetime) -> AccountCredential:
        body = self._send(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._require_refresh_token(credential),
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        expires_in = int(body.get("expires_in") or YOUTUBE_DEFAULT_EXPIRES_IN)
        return credential.with_tokens(
            body["access_token"],
            now + dt.timedelta(seconds=expires_in),
            refresh_token=body.get("refresh_token"),
        )


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class TokenManager:
    def __init__(
        self,
        refreshers: dict[Platform, TokenRefresher],
        users: Optional["UserStore"] = None,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._refreshers = refreshers
        self._users = users
        self._clock = clock

    def refresh_if_needed(
        self,
        platform: Platform,
        credential: AccountCredential,
        now: Optional[dt.datetime] = None,
    ) -> TokenGrant:
        """
        Return the credential to publish with.

        The stored token is returned unchanged while its expiry is outside
        the platform's lookahead window.  A missing expiry counts as expired.
        Raises NotConnected or TokenRefreshFailed; never persists anything.
        """
        if not credential.is_connected or not credential.access_token:
            raise NotConnected(platform.value)

        refresher = self._refreshers.get(platform)
        if refresher is None:
            raise TokenRefreshFailed(platform.value, f"No token refresher for {platform.value}")

        now = as_utc(now or self._clock())
        if not credential.expires_within(refresher.lookahead, now):
            return TokenGrant(credential=credential, token=credential.access_token)

        logger.info(
            "%s token expires at %s (lookahead %s), refreshing",
            platform.value,
            credential.expires_at,
            refresher.lookahead,
        )
        fresh = refresher.refresh(credential, now)
        return TokenGrant(credential=fresh, token=fresh.access_token or "", refreshed=True)

    def ensure_valid_token(self, user: "User", platform: Platform) -> TokenGrant:
        """
        Refresh if needed and persist the outcome on the user's record.

        A refreshed credential is stored as a whole.  A refresh the platform
        rejects as permanent (revoked grant) stores the credential as
        disconnected before the error propagates; any other refresh failure
        leaves the stored credential untouched.
        """
        credential = user.account_for(platform)
        try:
            grant = self.refresh_if_needed(platform, credential)
        except TokenRefreshFailed as exc:
            if exc.revoked:
                logger.warning(
                    "%s access revoked for user %s, marking account disconnected",
                    platform.value,
                    user.id,
                )
                self._persist(user, platform, credential.disconnected())
            raise

        if grant.refreshed:
            self._persist(user, platform, grant.credential)
        return grant

    def _persist(self, user: "User", platform: Platform, credential: AccountCredential) -> None:
        user.accounts[platform] = credential
        if self._users is not None:
            self._users.update_credential(user.id, platform, credential)

    def close(self) -> None:
        for refresher in self._refreshers.values():
            refresher.close()


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_manager: Optional[TokenManager] = None


def get_token_manager() -> TokenManager:
    """Return the application-wide TokenManager (lazy init)."""
    global _manager
    if _manager is None:
        from config.settings import settings  # noqa: PLC0415
        from src.accounts.storage import get_user_store  # noqa: PLC0415

        _manager = TokenManager(
            refreshers={
                Platform.SNAPCHAT: SnapchatRefresher(
                    settings.snapchat_client_id,
                    settings.snapchat_client_secret,
                    lookahead=dt.timedelta(seconds=settings.snapchat_token_lookahead_seconds),
                ),
                Platform.INSTAGRAM: InstagramRefresher(
                    settings.instagram_app_id,
                    settings.instagram_app_secret,
                    settings.instagram_graph_base,
                    lookahead=dt.timedelta(days=settings.instagram_token_lookahead_days),
                ),
                Platform.YOUTUBE: YouTubeRefresher(
                    settings.youtube_client_id,
                    settings.youtube_client_secret,
                    lookahead=dt.timedelta(seconds=settings.youtube_token_lookahead_seconds),
                ),
            },
            users=get_user_store(),
        )
    return _manager
