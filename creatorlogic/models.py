"""Database models for CreatorLogic.

These ORM classes back the remote durable store: job history, job result
blobs, partnerships and App Store credentials, each scoped by the owning
user's id for multi-tenant isolation.  The user table itself is used by the
auth layer.

The store models convert to and from the plain JSON-ready dicts that the
local cache holds (``to_record`` / ``from_record``), so both tiers of the
dual store exchange the same shape.

SQLAlchemy 2.0 type annotations are used throughout to provide static typing
and clarity.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Date, DateTime, Enum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .schemas import (
    HistoryRecord,
    JobKind,
    JobState,
    Partnership,
    PartnershipStatus,
    Platform,
    RoleEnum,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class User(Base):
    """Represents a user of the CreatorLogic dashboard."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(length=36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(length=320), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(length=255))
    full_name: Mapped[str | None] = mapped_column(String(length=100), nullable=True)
    role: Mapped[RoleEnum] = mapped_column(Enum(RoleEnum), default=RoleEnum.user)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


# ---------------------------------------------------------------------------
# Job history and results
# ---------------------------------------------------------------------------

class SearchJob(Base):
    """One history record per discovery or analytics job."""

    __tablename__ = "search_jobs"

    id: Mapped[str] = mapped_column(String(length=36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(length=36), index=True)
    owner_email: Mapped[str | None] = mapped_column(String(length=320), nullable=True)
    kind: Mapped[JobKind] = mapped_column(Enum(JobKind))
    seed_username: Mapped[str] = mapped_column(String(length=100), index=True)
    status: Mapped[JobState] = mapped_column(Enum(JobState), default=JobState.pending)
    result_count: Mapped[int] = mapped_column(Integer, default=0)
    emails_found: Mapped[int] = mapped_column(Integer, default=0)
    follower_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def to_record(self) -> Dict[str, Any]:
        return HistoryRecord(
            id=self.id,
            created_at=_aware(self.created_at),
            kind=self.kind,
            seed_username=self.seed_username,
            status=self.status,
            result_count=self.result_count,
            emails_found=self.emails_found,
            follower_count=self.follower_count,
            owner_id=self.owner_id,
            owner_email=self.owner_email,
        ).model_dump(mode="json")

    @classmethod
    def from_record(cls, record: Dict[str, Any], owner_id: str) -> "SearchJob":
        history = HistoryRecord.model_validate(record)
        return cls(
            id=history.id,
            owner_id=owner_id,
            owner_email=history.owner_email,
            kind=history.kind,
            seed_username=history.seed_username,
            status=history.status,
            result_count=history.result_count,
            emails_found=history.emails_found,
            follower_count=history.follower_count,
            created_at=history.created_at,
        )


class SearchResult(Base):
    """Normalised results of one job, stored as a single JSON blob."""

    __tablename__ = "search_results"

    id: Mapped[str] = mapped_column(String(length=36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(length=36), index=True)
    data: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def to_record(self) -> Dict[str, Any]:
        return {"id": self.id, "owner_id": self.owner_id, "items": list(self.data or [])}

    @classmethod
    def from_record(cls, record: Dict[str, Any], owner_id: str) -> "SearchResult":
        return cls(id=record["id"], owner_id=owner_id, data=list(record.get("items") or []))


# ---------------------------------------------------------------------------
# Partnerships
# ---------------------------------------------------------------------------

class PartnershipRecord(Base):
    """A tracked sponsored-content deal."""

    __tablename__ = "partnerships"

    id: Mapped[str] = mapped_column(String(length=36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(length=36), index=True)
    creator_name: Mapped[str] = mapped_column(String(length=100))
    video_url: Mapped[str] = mapped_column(Text)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[PartnershipStatus] = mapped_column(
        Enum(PartnershipStatus), default=PartnershipStatus.draft
    )
    posted_date: Mapped[date] = mapped_column(Date, index=True)
    platform: Mapped[Platform] = mapped_column(Enum(Platform), default=Platform.instagram)

    views: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    comments: Mapped[int] = mapped_column(Integer, default=0)
    shares: Mapped[int] = mapped_column(Integer, default=0)

    def to_record(self) -> Dict[str, Any]:
        record = Partnership(
            id=self.id,
            creator_name=self.creator_name,
            video_url=self.video_url,
            cost_usd=self.cost_usd,
            status=self.status,
            posted_date=self.posted_date,
            platform=self.platform,
            views=self.views,
            likes=self.likes,
            comments=self.comments,
            shares=self.shares,
        ).model_dump(mode="json")
        record["owner_id"] = self.owner_id
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any], owner_id: str) -> "PartnershipRecord":
        partnership = Partnership.model_validate(record)
        return cls(owner_id=owner_id, **partnership.model_dump())


# ---------------------------------------------------------------------------
# App Store credentials
# ---------------------------------------------------------------------------

class AppStoreCredentialRecord(Base):
    """App Store Connect API key for one owner."""

    __tablename__ = "app_store_credentials"

    # One credential set per owner, so the owner id is the key.
    id: Mapped[str] = mapped_column(String(length=36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(length=36), index=True)
    issuer_id: Mapped[str] = mapped_column(String(length=100))
    key_id: Mapped[str] = mapped_column(String(length=100))
    private_key: Mapped[str] = mapped_column(Text)
    vendor_number: Mapped[Optional[str]] = mapped_column(String(length=50), nullable=True)
    app_name: Mapped[Optional[str]] = mapped_column(String(length=255), nullable=True)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "issuer_id": self.issuer_id,
            "key_id": self.key_id,
            "private_key": self.private_key,
            "vendor_number": self.vendor_number,
            "app_name": self.app_name,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], owner_id: str) -> "AppStoreCredentialRecord":
        return cls(
            id=record["id"],
            owner_id=owner_id,
            issuer_id=record["issuer_id"],
            key_id=record["key_id"],
            private_key=record["private_key"],
            vendor_number=record.get("vendor_number"),
            app_name=record.get("app_name"),
        )
