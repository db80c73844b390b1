"""
Publishing package: Snapchat, Instagram, YouTube adapters, token lifecycle,
orchestration, scheduled sweep and analytics sync.
"""

from src.publish.analytics import AnalyticsSyncer, SyncSummary
from src.publish.base import PlatformResult, PublishAdapter, PublishPayload
from src.publish.errors import (
    ConcurrentPublish,
    NotAuthorized,
    NotConnected,
    NotFound,
    NotPublished,
    PlatformAPIError,
    PlatformError,
    PlatformPublishFailed,
    PreconditionRejected,
    ProcessingTimeout,
    PublishError,
    TokenRefreshFailed,
)
from src.publish.instagram import InstagramClient, InstagramPublisher
from src.publish.orchestrator import PlatformOutcome, PublishOrchestrator, PublishReport
from src.publish.polling import PollOutcome, PollPolicy, poll
from src.publish.scheduler import ScheduledPublishRunner, SweepSummary
from src.publish.snapchat import SnapchatClient, SnapchatPublisher
from src.publish.tokens import TokenGrant, TokenManager
from src.publish.youtube import YouTubeClient, YouTubePublisher

__all__ = [
    "AnalyticsSyncer",
    "SyncSummary",
    "PlatformResult",
    "PublishAdapter",
    "PublishPayload",
    "PublishError",
    "PreconditionRejected",
    "NotConnected",
    "NotFound",
    "NotAuthorized",
    "NotPublished",
    "ConcurrentPublish",
    "PlatformError",
    "PlatformAPIError",
    "TokenRefreshFailed",
    "PlatformPublishFailed",
    "ProcessingTimeout",
    "InstagramClient",
    "InstagramPublisher",
    "SnapchatClient",
    "SnapchatPublisher",
    "YouTubeClient",
    "YouTubePublisher",
    "PlatformOutcome",
    "PublishOrchestrator",
    "PublishReport",
    "PollOutcome",
    "PollPolicy",
    "poll",
    "ScheduledPublishRunner",
    "SweepSummary",
    "TokenGrant",
    "TokenManager",
]
