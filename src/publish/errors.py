"""
Publishing error taxonomy.

  PublishError
  ├── PreconditionRejected      caller-facing rejection, never stored as a post failure
  │   └── NotConnected
  ├── NotFound / NotAuthorized  ownership checks at the data-access boundary
  ├── NotPublished              analytics requested for a post with no platform id
  ├── ConcurrentPublish         another attempt already moved the post out of its status
  └── PlatformError             platform-tagged, carries the raw platform error detail
      ├── PlatformAPIError      a raw API call failed
      ├── TokenRefreshFailed
      └── PlatformPublishFailed
          └── ProcessingTimeout
"""

from __future__ import annotations

from typing import Any, Optional


class PublishError(Exception):
    """Base class for every error raised by the publishing core."""

    code: str = "PUBLISH_ERROR"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class PreconditionRejected(PublishError):
    code = "PRECONDITION_FAILED"


class NotConnected(PreconditionRejected):
    code = "NOT_CONNECTED"

    def __init__(self, platform: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Please connect your {platform.capitalize()} account first"
        )
        self.platform = platform


class NotFound(PublishError):
    code = "NOT_FOUND"


class NotAuthorized(PublishError):
    code = "NOT_AUTHORIZED"


class NotPublished(PublishError):
    code = "NOT_PUBLISHED"


class ConcurrentPublish(PublishError):
    code = "CONCURRENT_PUBLISH"


class PlatformError(PublishError):
    """An error tagged with the platform it came from."""

    code = "PLATFORM_ERROR"

    def __init__(
        self,
        platform: str,
        message: str,
        code: Optional[str] = None,
        detail: Any = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, code)
        self.platform = platform
        self.detail = detail
        self.status_code = status_code

    def __str__(self) -> str:
        return f"[{self.platform}] {self.message}"


class PlatformAPIError(PlatformError):
    code = "API_ERROR"


class TokenRefreshFailed(PlatformError):
    code = "TOKEN_REFRESH_FAILED"

    def __init__(self, *args: Any, revoked: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.revoked = revoked


class PlatformPublishFailed(PlatformError):
    code = "PUBLISH_FAILED"

    @classmethod
    def from_api_error(cls, exc: PlatformError) -> "PlatformPublishFailed":
        return cls(
            exc.platform,
            exc.message,
            code=exc.code,
            detail=exc.detail,
            status_code=exc.status_code,
        )


class ProcessingTimeout(PlatformPublishFailed):
    code = "PROCESSING_TIMEOUT"
