"""Pydantic schemas for CreatorLogic.

These models are the domain records passed between the normaliser, the
stores and the services, and they double as request payloads and response
bodies for FastAPI.  They are separate from the ORM models in
``models.py``; the remote store converts between the two with
``model_dump(mode="json")`` and ``model_validate``.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoleEnum(str, enum.Enum):
    """Enumeration of user roles."""

    admin = "admin"
    user = "user"


class JobKind(str, enum.Enum):
    discovery = "discovery"
    analytics = "analytics"


class JobState(str, enum.Enum):
    """Job lifecycle states, in forward order.

    ``timed_out`` is set when the poll budget runs out and ``aborted`` when
    the engine shuts down (or restarts) with the job still in flight.
    """

    pending = "pending"
    submitted = "submitted"
    polling = "polling"
    completed = "completed"
    failed = "failed"
    timed_out = "timed_out"
    aborted = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {JobState.completed, JobState.failed, JobState.timed_out, JobState.aborted}
)


class PartnershipStatus(str, enum.Enum):
    live = "live"
    scheduled = "scheduled"
    draft = "draft"
    completed = "completed"


class Platform(str, enum.Enum):
    instagram = "instagram"
    tiktok = "tiktok"
    youtube = "youtube"


# ---------------------------------------------------------------------------
# Normalised scrape records
# ---------------------------------------------------------------------------

class Creator(BaseModel):
    """A candidate influencer profile from a discovery run."""

    id: str
    username: str
    full_name: str = ""
    avatar_url: str = ""
    is_verified: bool = False
    is_private: bool = False
    is_business_account: bool = False
    biography: str = ""
    external_url: Optional[str] = None
    category: Optional[str] = None
    email: Optional[str] = None
    follower_count: int = Field(default=0, ge=0)
    following_count: int = Field(default=0, ge=0)
    post_count: int = Field(default=0, ge=0)
    profile_link: str = ""


class MusicAttribution(BaseModel):
    artist_name: Optional[str] = None
    track_name: Optional[str] = None


class ContentPost(BaseModel):
    """One published reel or post with its engagement metrics."""

    id: str
    type: Optional[str] = None
    short_code: str = ""
    caption: str = ""
    hashtags: List[str] = Field(default_factory=list)
    url: str = ""
    input_url: Optional[str] = None
    comment_count: int = 0
    like_count: int = 0
    share_count: Optional[int] = None
    timestamp: Optional[datetime] = None
    view_count: Optional[int] = None
    play_count: Optional[int] = None
    duration_seconds: Optional[float] = None
    thumbnail_url: str = ""
    music: Optional[MusicAttribution] = None

    @property
    def reach(self) -> int:
        """Play count when known (it includes autoplays), else view count."""
        if self.play_count is not None:
            return self.play_count
        return self.view_count or 0


# ---------------------------------------------------------------------------
# Jobs and history
# ---------------------------------------------------------------------------

class HistoryRecord(BaseModel):
    """Durable summary of one job, independent of the in-memory job table."""

    id: str
    created_at: datetime = Field(default_factory=_utcnow)
    kind: JobKind
    seed_username: str
    status: JobState = JobState.pending
    result_count: int = 0
    emails_found: int = 0
    follower_count: Optional[int] = None
    owner_id: Optional[str] = None
    owner_email: Optional[str] = None


class JobStatusView(BaseModel):
    job_id: str
    kind: Optional[JobKind] = None
    status: JobState
    progress: int = Field(ge=0, le=100)
    logs: List[str] = Field(default_factory=list)
    result_count: int = 0
    # Populated only when status is completed.
    results: Optional[List[dict]] = None


class DiscoveryRequest(BaseModel):
    seed_username: str
    limit: int = Field(default=50, ge=1, le=500)


class AnalyticsRequest(BaseModel):
    seed_username: str
    force_refresh: bool = False


class JobCreated(BaseModel):
    job_id: str


# ---------------------------------------------------------------------------
# Partnerships and attribution
# ---------------------------------------------------------------------------

class PartnershipBase(BaseModel):
    creator_name: str
    video_url: str
    cost_usd: float = Field(default=0.0, ge=0)
    status: PartnershipStatus = PartnershipStatus.draft
    posted_date: date
    platform: Platform = Platform.instagram


class PartnershipCreate(PartnershipBase):
    pass


class PartnershipUpdate(BaseModel):
    creator_name: Optional[str] = None
    video_url: Optional[str] = None
    cost_usd: Optional[float] = Field(default=None, ge=0)
    status: Optional[PartnershipStatus] = None
    posted_date: Optional[date] = None
    platform: Optional[Platform] = None


class Partnership(PartnershipBase):
    """A tracked sponsored-content deal and its latest metrics."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    views: int = Field(default=0, ge=0)
    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)

    @property
    def cpm(self) -> Optional[float]:
        """Cost per thousand views."""
        if not self.views:
            return None
        return self.cost_usd / self.views * 1000

    @property
    def cpv(self) -> Optional[float]:
        """Cost per view."""
        if not self.views:
            return None
        return self.cost_usd / self.views


class PartnershipRead(Partnership):
    cpm_usd: Optional[float] = None
    cpv_usd: Optional[float] = None

    @classmethod
    def from_partnership(cls, partnership: Partnership) -> "PartnershipRead":
        return cls(
            **partnership.model_dump(),
            cpm_usd=partnership.cpm,
            cpv_usd=partnership.cpv,
        )


class RefreshStarted(BaseModel):
    started: bool


class DailyMetric(BaseModel):
    date: date
    installs: int
    uninstalls: int
    retention_pct: int
    attributed_views: int


# ---------------------------------------------------------------------------
# App Store credentials
# ---------------------------------------------------------------------------

class AppStoreCredentials(BaseModel):
    issuer_id: str
    key_id: str
    private_key: str
    vendor_number: Optional[str] = None
    app_name: Optional[str] = None


class AppStoreCredentialsRead(BaseModel):
    issuer_id: str
    key_id: str
    vendor_number: Optional[str] = None
    app_name: Optional[str] = None


class AppVerification(BaseModel):
    app_name: str
    app_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    email: Optional[str] = None


class UserBase(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None


class UserCreate(UserBase):
    password: str = Field(min_length=8)


class UserRead(UserBase):
    id: str
    role: RoleEnum
    created_at: datetime

    model_config = {
        "from_attributes": True
    }
