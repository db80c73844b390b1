"""
Tests for src/publish/tokens.py

Refresh endpoints are mocked through the refresher's httpx client.
"""

from __future__ import annotations

import datetime as dt
from unittest.mock import MagicMock

import pytest

from src.accounts.models import AccountCredential, User
from src.accounts.storage import UserStore
from src.content.models import Platform
from src.publish.errors import NotConnected, TokenRefreshFailed
from src.publish.tokens import (
    GOOGLE_TOKEN_URL,
    SNAPCHAT_TOKEN_URL,
    InstagramRefresher,
    SnapchatRefresher,
    TokenManager,
    YouTubeRefresher,
)

NOW = dt.datetime(2026, 3, 10, 12, 0, tzinfo=dt.timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _response(payload: dict, status_code: int = 200) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = payload
    return mock


def _http(*responses: MagicMock) -> MagicMock:
    http = MagicMock()
    http.request.side_effect = list(responses)
    return http


def _credential(expires_in: dt.timedelta, **kwargs) -> AccountCredential:
    defaults = dict(
        is_connected=True,
        access_token="OLD",
        refresh_token="R1",
        expires_at=NOW + expires_in,
    )
    defaults.update(kwargs)
    return AccountCredential(**defaults)


def _manager(refresher, users=None) -> TokenManager:
    return TokenManager({refresher.platform: refresher}, users=users, clock=lambda: NOW)


# ---------------------------------------------------------------------------
# refresh_if_needed
# ---------------------------------------------------------------------------


class TestRefreshIfNeeded:
    def test_valid_token_returned_unchanged(self):
        http = _http()
        manager = _manager(YouTubeRefresher("cid", "secret", http=http))
        cred = _credential(dt.timedelta(hours=1))

        grant = manager.refresh_if_needed(Platform.YOUTUBE, cred, NOW)

        assert grant.token == "OLD"
        assert grant.credential is cred
        assert not grant.refreshed
        http.request.assert_not_called()

    def test_not_connected(self):
        manager = _manager(YouTubeRefresher("cid", "secret", http=_http()))
        with pytest.raises(NotConnected, match="Youtube"):
            manager.refresh_if_needed(Platform.YOUTUBE, AccountCredential(), NOW)

    def test_expiring_within_lookahead_refreshes(self):
        http = _http(_response({"access_token": "NEW", "expires_in": 3600}))
        manager = _manager(
            YouTubeRefresher("cid", "secret", lookahead=dt.timedelta(seconds=1), http=http)
        )
        cred = _credential(dt.timedelta(seconds=1))

        grant = manager.refresh_if_needed(Platform.YOUTUBE, cred, NOW)

        assert grant.refreshed
        assert grant.token == "NEW"
        assert grant.credential.expires_at == NOW + dt.timedelta(seconds=3600)
        assert grant.credential.expires_at > NOW

    def test_missing_expiry_refreshes(self):
        http = _http(_response({"access_token": "NEW"}))
        manager = _manager(YouTubeRefresher("cid", "secret", http=http))
        cred = _credential(dt.timedelta(0), expires_at=None)

        grant = manager.refresh_if_needed(Platform.YOUTUBE, cred, NOW)

        assert grant.refreshed
        assert grant.credential.expires_at == NOW + dt.timedelta(seconds=3600)

    def test_does_not_mutate_input(self):
        http = _http(_response({"access_token": "NEW", "expires_in": 3600}))
        manager = _manager(YouTubeRefresher("cid", "secret", http=http))
        cred = _credential(-dt.timedelta(minutes=1))

        manager.refresh_if_needed(Platform.YOUTUBE, cred, NOW)

        assert cred.access_token == "OLD"


# ---------------------------------------------------------------------------
# Platform refreshers
# ---------------------------------------------------------------------------


class TestSnapchatRefresher:
    def test_rotates_refresh_token(self):
        http = _http(_response({"access_token": "NEW", "refresh_token": "R2", "expires_in": 1800}))
        refresher = SnapchatRefresher("cid", "secret", http=http)

        fresh = refresher.refresh(_credential(dt.timedelta(0)), NOW)

        assert fresh.refresh_token == "R2"
        assert fresh.expires_at == NOW + dt.timedelta(seconds=1800)
        method, url = http.request.call_args[0]
        assert (method, url) == ("POST", SNAPCHAT_TOKEN_URL)
        data = http.request.call_args[1]["data"]
        assert data["grant_type"] == "refresh_token"
        assert data["refresh_token"] == "R1"

    def test_invalid_grant_is_revocation(self):
        http = _http(_response({"error": "invalid_grant", "error_description": "Revoked"}, 400))
        refresher = SnapchatRefresher("cid", "secret", http=http)

        with pytest.raises(TokenRefreshFailed) as exc_info:
            refresher.refresh(_credential(dt.timedelta(0)), NOW)
        assert exc_info.value.revoked
        assert exc_info.value.message == "Revoked"

    def test_server_error_is_not_revocation(self):
        http = _http(_response({"error": "server_error"}, 500))
        refresher = SnapchatRefresher("cid", "secret", http=http)

        with pytest.raises(TokenRefreshFailed) as exc_info:
            refresher.refresh(_credential(dt.timedelta(0)), NOW)
        assert not exc_info.value.revoked

    def test_missing_refresh_token(self):
        refresher = SnapchatRefresher("cid", "secret", http=_http())
        with pytest.raises(TokenRefreshFailed, match="reconnect"):
            refresher.refresh(_credential(dt.timedelta(0), refresh_token=None), NOW)


class TestInstagramRefresher:
    def test_exchanges_current_token(self):
        http = _http(_response({"access_token": "LONG2"}))
        refresher = InstagramRefresher(
            "app", "secret", "https://graph.facebook.com/v18.0", http=http
        )

        fresh = refresher.refresh(_credential(dt.timedelta(days=3), refresh_token=None), NOW)

        assert fresh.access_token == "LONG2"
        assert fresh.expires_at == NOW + dt.timedelta(days=60)
        method, url = http.request.call_args[0]
        assert (method, url) == ("GET", "https://graph.facebook.com/v18.0/oauth/access_token")
        params = http.request.call_args[1]["params"]
        assert params["grant_type"] == "fb_exchange_token"
        assert params["fb_exchange_token"] == "OLD"

    def test_seven_day_lookahead(self):
        http = _http(_response({"access_token": "LONG2", "expires_in": 5184000}))
        manager = _manager(InstagramRefresher("app", "secret", "https://graph", http=http))

        grant = manager.refresh_if_needed(Platform.INSTAGRAM, _credential(dt.timedelta(days=6)), NOW)

        assert grant.refreshed

    def test_graph_190_is_revocation(self):
        http = _http(
            _response({"error": {"message": "Session expired", "code": 190, "type": "OAuthException"}}, 400)
        )
        refresher = InstagramRefresher("app", "secret", "https://graph", http=http)

        with pytest.raises(TokenRefreshFailed) as exc_info:
            refresher.refresh(_credential(dt.timedelta(0)), NOW)
        assert exc_info.value.revoked
        assert exc_info.value.code == "190"


class TestYouTubeRefresher:
    def test_keeps_refresh_token_when_not_returned(self):
        http = _http(_response({"access_token": "NEW", "expires_in": 3599}))
        refresher = YouTubeRefresher("cid", "secret", http=http)

        fresh = refresher.refresh(_credential(dt.timedelta(0)), NOW)

        assert fresh.refresh_token == "R1"
        assert http.request.call_args[0] == ("POST", GOOGLE_TOKEN_URL)


# ---------------------------------------------------------------------------
# ensure_valid_token (persisting)
# ---------------------------------------------------------------------------


class TestEnsureValidToken:
    def _user(self, user_store: UserStore, cred: AccountCredential) -> User:
        user = User(email="c@example.com", accounts={Platform.YOUTUBE: cred})
        user_store.save(user)
        return user

    def test_persists_refreshed_tuple(self, user_store: UserStore):
        http = _http(_response({"access_token": "NEW", "expires_in": 3600, "refresh_token": "R2"}))
        manager = _manager(YouTubeRefresher("cid", "secret", http=http), users=user_store)
        user = self._user(user_store, _credential(-dt.timedelta(minutes=1), channel_id="UC1"))

        grant = manager.ensure_valid_token(user, Platform.YOUTUBE)

        stored = user_store.get(user.id).account_for(Platform.YOUTUBE)
        assert grant.token == "NEW"
        assert (stored.access_token, stored.refresh_token) == ("NEW", "R2")
        assert stored.expires_at == NOW + dt.timedelta(seconds=3600)
        assert stored.channel_id == "UC1"
        assert user.account_for(Platform.YOUTUBE).access_token == "NEW"

    def test_valid_token_writes_nothing(self, user_store: UserStore):
        users = MagicMock(wraps=user_store)
        manager = _manager(YouTubeRefresher("cid", "secret", http=_http()), users=users)
        user = self._user(user_store, _credential(dt.timedelta(hours=1)))

        manager.ensure_valid_token(user, Platform.YOUTUBE)

        users.update_credential.assert_not_called()

    def test_revoked_grant_disconnects_account(self, user_store: UserStore):
        http = _http(_response({"error": "invalid_grant"}, 400))
        manager = _manager(YouTubeRefresher("cid", "secret", http=http), users=user_store)
        user = self._user(user_store, _credential(-dt.timedelta(minutes=1)))

        with pytest.raises(TokenRefreshFailed):
            manager.ensure_valid_token(user, Platform.YOUTUBE)

        assert not user_store.get(user.id).account_for(Platform.YOUTUBE).is_connected

    def test_transient_failure_keeps_connection(self, user_store: UserStore):
        http = _http(_response({"error": "temporarily_unavailable"}, 503))
        manager = _manager(YouTubeRefresher("cid", "secret", http=http), users=user_store)
        user = self._user(user_store, _credential(-dt.timedelta(minutes=1)))

        with pytest.raises(TokenRefreshFailed):
            manager.ensure_valid_token(user, Platform.YOUTUBE)

        stored = user_store.get(user.id).account_for(Platform.YOUTUBE)
        assert stored.is_connected
        assert stored.access_token == "OLD"

    def test_double_refresh_last_write_wins(self, user_store: UserStore):
        http = _http(
            _response({"access_token": "FIRST", "expires_in": 3600}),
            _response({"access_token": "SECOND", "expires_in": 7200}),
        )
        manager = _manager(YouTubeRefresher("cid", "secret", http=http), users=user_store)
        cred = _credential(-dt.timedelta(minutes=1))
        racer_a = self._user(user_store, cred)
        racer_b = user_store.get(racer_a.id)

        manager.ensure_valid_token(racer_a, Platform.YOUTUBE)
        manager.ensure_valid_token(racer_b, Platform.YOUTUBE)

        stored = user_store.get(racer_a.id).account_for(Platform.YOUTUBE)
        assert stored.access_token == "SECOND"
        assert stored.expires_at == NOW + dt.timedelta(seconds=7200)
