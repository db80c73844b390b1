"""
User, connected-account credential and usage models.

Credentials are treated as values: token refreshes produce a new
``AccountCredential`` (see ``with_tokens``) that the caller persists as a
whole, never a partially updated one.
"""

from __future__ import annotations

import datetime as dt
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.content.models import Platform, as_utc, utcnow

UNLIMITED = -1


class Plan(str, Enum):
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"


class PlanLimits(BaseModel):
    posts_per_month: int
    scheduled_posts: int
    analytics: bool

    @property
    def unlimited_posts(self) -> bool:
        return self.posts_per_month == UNLIMITED


PLAN_LIMITS: dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(posts_per_month=10, scheduled_posts=5, analytics=False),
    Plan.PRO: PlanLimits(posts_per_month=100, scheduled_posts=50, analytics=True),
    Plan.BUSINESS: PlanLimits(
        posts_per_month=UNLIMITED, scheduled_posts=UNLIMITED, analytics=True
    ),
}


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class AccountCredential(BaseModel):
    """OAuth credential plus the identifiers needed to address publish calls."""

    is_connected: bool = False
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[dt.datetime] = None

    # Snapchat
    ad_account_id: Optional[str] = None
    organization_id: Optional[str] = None
    # Instagram
    business_account_id: Optional[str] = None
    page_id: Optional[str] = None
    # YouTube
    channel_id: Optional[str] = None

    def expires_within(self, window: dt.timedelta, now: Optional[dt.datetime] = None) -> bool:
        """True if the token is expired, has no known expiry, or expires inside ``window``."""
        if self.expires_at is None:
            return True
        now = as_utc(now or utcnow())
        return as_utc(self.expires_at) <= now + window

    def with_tokens(
        self,
        access_token: str,
        expires_at: dt.datetime,
        refresh_token: Optional[str] = None,
    ) -> "AccountCredential":
        """Return a copy carrying a new token tuple; the refresh token is kept unless rotated."""
        return self.model_copy(
            update={
                "access_token": access_token,
                "expires_at": expires_at,
                "refresh_token": refresh_token or self.refresh_token,
            }
        )

    def disconnected(self) -> "AccountCredential":
        return self.model_copy(update={"is_connected": False})


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


class Usage(BaseModel):
    posts_this_month: int = 0
    last_reset: dt.datetime = Field(default_factory=utcnow)

    def rolled_over(self, now: Optional[dt.datetime] = None) -> "Usage":
        """Return the usage reset to zero if ``now`` is in a later calendar month."""
        now = as_utc(now or utcnow())
        last = as_utc(self.last_reset)
        if (now.year, now.month) != (last.year, last.month):
            return Usage(posts_this_month=0, last_reset=now)
        return self


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


class User(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    email: str
    name: str = ""
    plan: Plan = Plan.FREE
    accounts: dict[Platform, AccountCredential] = Field(default_factory=dict)
    usage: Usage = Field(default_factory=Usage)
    created_at: dt.datetime = Field(default_factory=utcnow)

    @property
    def limits(self) -> PlanLimits:
        return PLAN_LIMITS.get(self.plan, PLAN_LIMITS[Plan.FREE])

    def account_for(self, platform: Platform) -> AccountCredential:
        return self.accounts.get(platform) or AccountCredential()

    def has_quota(self, now: Optional[dt.datetime] = None) -> bool:
        """True if the plan allows one more published post this month."""
        if self.limits.unlimited_posts:
            return True
        return self.usage.rolled_over(now).posts_this_month < self.limits.posts_per_month

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls.model_validate(data)
