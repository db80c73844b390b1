"""
Tests for src/publish/youtube.py

The Data API service object and the media download are mocked.
"""

from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import httpx
import pytest
from googleapiclient.errors import HttpError

from src.accounts.models import AccountCredential
from src.content.models import MediaType
from src.publish.base import PublishPayload
from src.publish.errors import PlatformAPIError, PlatformPublishFailed
from src.publish.youtube import (
    YouTubeClient,
    YouTubePublisher,
    extract_hashtags,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(status: int, content: bytes) -> HttpError:
    resp = MagicMock()
    resp.status = status
    resp.reason = "Forbidden"
    return HttpError(resp, content)


def _make_client(service: MagicMock) -> YouTubeClient:
    return YouTubeClient("TOKEN", service=service, http=MagicMock())


def _payload(media_type: MediaType = MediaType.VIDEO, **kwargs) -> PublishPayload:
    defaults = dict(
        post_id="p1",
        title="My video",
        content="Behind the scenes #vlog #travel #vlog",
        media_url="https://cdn.example.com/v.mp4",
        media_type=media_type,
    )
    defaults.update(kwargs)
    return PublishPayload(**defaults)


# ---------------------------------------------------------------------------
# extract_hashtags
# ---------------------------------------------------------------------------


class TestExtractHashtags:
    def test_dedupes_in_order(self) -> None:
        assert extract_hashtags("#b text #a #b") == ["b", "a"]

    def test_no_tags(self) -> None:
        assert extract_hashtags("plain text") == []
        assert extract_hashtags("") == []

    def test_capped(self) -> None:
        text = " ".join(f"#t{i}" for i in range(30))
        tags = extract_hashtags(text)
        assert len(tags) == 15
        assert tags[0] == "t0"


# ---------------------------------------------------------------------------
# YouTubeClient
# ---------------------------------------------------------------------------


class TestYouTubeClient:
    def test_upload_video(self) -> None:
        service = MagicMock()
        service.videos.return_value.insert.return_value.execute.return_value = {"id": "vid123"}
        client = _make_client(service)

        with patch.object(client, "_download", return_value=io.BytesIO(b"data")):
            video_id, response = client.upload_video(
                "https://cdn/v.mp4", "T" * 150, "Desc", tags=["vlog"], privacy_status="unlisted"
            )

        assert video_id == "vid123"
        kwargs = service.videos.return_value.insert.call_args[1]
        assert kwargs["part"] == "snippet,status"
        assert len(kwargs["body"]["snippet"]["title"]) == 100
        assert kwargs["body"]["snippet"]["tags"] == ["vlog"]
        assert kwargs["body"]["snippet"]["categoryId"] == "22"
        assert kwargs["body"]["status"]["privacyStatus"] == "unlisted"

    def test_upload_without_id(self) -> None:
        service = MagicMock()
        service.videos.return_value.insert.return_value.execute.return_value = {}
        client = _make_client(service)

        with patch.object(client, "_download", return_value=io.BytesIO(b"data")):
            with pytest.raises(PlatformAPIError, match="no video id"):
                client.upload_video("https://cdn/v.mp4", "Title")

    def test_http_error_is_translated(self) -> None:
        service = MagicMock()
        service.videos.return_value.insert.return_value.execute.side_effect = _http_error(
            403, b'{"error": {"message": "quotaExceeded", "errors": [{"reason": "quotaExceeded"}]}}'
        )
        client = _make_client(service)

        with patch.object(client, "_download", return_value=io.BytesIO(b"data")):
            with pytest.raises(PlatformAPIError, match="Video upload failed") as exc_info:
                client.upload_video("https://cdn/v.mp4", "Title")

        assert exc_info.value.code == "403"
        assert exc_info.value.status_code == 403

    def test_download_streams_to_buffer(self) -> None:
        http = MagicMock()
        resp = http.stream.return_value.__enter__.return_value
        resp.iter_bytes.return_value = [b"ab", b"cd"]
        client = YouTubeClient("TOKEN", service=MagicMock(), http=http)

        with client._download("https://cdn/v.mp4") as fh:
            assert fh.read() == b"abcd"
        resp.raise_for_status.assert_called_once()

    def test_download_failure(self) -> None:
        http = MagicMock()
        http.stream.side_effect = httpx.ConnectError("unreachable")
        client = YouTubeClient("TOKEN", service=MagicMock(), http=http)

        with pytest.raises(PlatformAPIError, match="Could not fetch video"):
            client._download("https://cdn/v.mp4")

    def test_statistics(self) -> None:
        service = MagicMock()
        service.videos.return_value.list.return_value.execute.return_value = {
            "items": [{"statistics": {"viewCount": "10", "likeCount": "2"}}]
        }
        assert _make_client(service).get_video_statistics("vid123") == {
            "views": 10,
            "likes": 2,
            "comments": 0,
        }

    def test_statistics_missing_video(self) -> None:
        service = MagicMock()
        service.videos.return_value.list.return_value.execute.return_value = {"items": []}
        with pytest.raises(PlatformAPIError) as exc_info:
            _make_client(service).get_video_statistics("gone")
        assert exc_info.value.code == "404"

    def test_delete(self) -> None:
        service = MagicMock()
        _make_client(service).delete_video("vid123")
        service.videos.return_value.delete.assert_called_once_with(id="vid123")


# ---------------------------------------------------------------------------
# YouTubePublisher
# ---------------------------------------------------------------------------


class TestYouTubePublisher:
    def _factory(self) -> tuple[MagicMock, MagicMock]:
        client = MagicMock()
        client.__enter__.return_value = client
        return client, MagicMock(return_value=client)

    def test_publishes_video_with_hashtags(self) -> None:
        client, factory = self._factory()
        client.upload_video.return_value = ("vid123", {"id": "vid123"})
        cred = AccountCredential(is_connected=True, access_token="T", channel_id="UC1")

        result = YouTubePublisher("public", client_factory=factory).publish("T", cred, _payload())

        assert result.post_id == "vid123"
        kwargs = client.upload_video.call_args[1]
        assert kwargs["tags"] == ["vlog", "travel"]
        assert kwargs["description"] == "Behind the scenes #vlog #travel #vlog"
        assert kwargs["privacy_status"] == "public"

    def test_image_fails_fast(self) -> None:
        client, factory = self._factory()
        cred = AccountCredential(is_connected=True, access_token="T")

        with pytest.raises(PlatformPublishFailed) as exc_info:
            YouTubePublisher("public", client_factory=factory).publish(
                "T", cred, _payload(MediaType.IMAGE)
            )

        assert exc_info.value.code == "INVALID_MEDIA_TYPE"
        factory.assert_not_called()

    def test_api_error_becomes_publish_failure(self) -> None:
        client, factory = self._factory()
        client.upload_video.side_effect = PlatformAPIError("youtube", "quota", code="403")
        cred = AccountCredential(is_connected=True, access_token="T")

        with pytest.raises(PlatformPublishFailed) as exc_info:
            YouTubePublisher("public", client_factory=factory).publish("T", cred, _payload())
        assert exc_info.value.code == "403"
