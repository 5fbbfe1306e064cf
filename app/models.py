from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db import Base


class VerificationStatus:
    PENDING = "PENDING"
    CRAWLING = "CRAWLING"
    APPROVED = "APPROVED"
    AWAITING_ADMIN = "AWAITING_ADMIN"
    EXPIRED = "EXPIRED"
    DENIED = "DENIED"

    ALL = (PENDING, CRAWLING, APPROVED, AWAITING_ADMIN, EXPIRED, DENIED)
    ACTIVE = (PENDING, CRAWLING, AWAITING_ADMIN)
    TERMINAL = (APPROVED, EXPIRED, DENIED)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), default="", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    verification_requests = relationship(
        "VerificationRequest",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="VerificationRequest.user_id",
    )
    artist_profile = relationship("ArtistProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")


class VerificationRequest(Base):
    __tablename__ = "verification_requests"
    __table_args__ = (
        Index("ix_verification_requests_user_status", "user_id", "status"),
        Index("ix_verification_requests_user_submitted", "user_id", "submitted_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    claim_code = Column(String(64), nullable=False, index=True)
    target_url = Column(String(512), nullable=True)
    status = Column(String(32), default=VerificationStatus.PENDING, nullable=False, index=True)
    # Creation time; the rate-limit window and the expiry deadline both count from here.
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    crawled_at = Column(DateTime, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    denial_reason = Column(Text, nullable=True)
    crawler_response_json = Column(Text, nullable=True)

    user = relationship("User", back_populates="verification_requests", foreign_keys=[user_id])


class CrawlCacheEntry(Base):
    __tablename__ = "crawl_cache"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(1024), unique=True, nullable=False, index=True)
    content = Column(Text, default="", nullable=False)
    crawled_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)


class ArtistProfile(Base):
    __tablename__ = "artist_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    artist_name = Column(String(255), default="", nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="artist_profile")
