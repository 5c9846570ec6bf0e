"""Publisher, website, and publisher-website link models."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import relationship

from .base import Base, UTCDateTime, new_id, utcnow


class Publisher(Base):
    """A contact who may offer paid placements.

    account_status: shadow (AI-created, unverified, no login), active, suspended.
    """

    __tablename__ = "publishers"
    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False)
    contact_name = Column(String(255))
    company_name = Column(String(255))
    phone = Column(String(100))

    account_status = Column(String(20), nullable=False, default="shadow")
    status = Column(String(20), default="pending")
    email_verified = Column(Boolean, nullable=False, default=False)
    confidence_score = Column(Float)

    source = Column(String(50))
    source_metadata = Column(JSON, default=dict)

    invitation_token = Column(String(64))
    invitation_expires_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    offerings = relationship("PublisherOffering", back_populates="publisher")

    __table_args__ = (
        Index("ix_publishers_email", "email"),
        Index("ix_publishers_email_status", "email", "account_status"),
        Index("ix_publishers_invitation_token", "invitation_token"),
    )


class Website(Base):
    """A domain a publisher can place content on. One row per normalized domain."""

    __tablename__ = "websites"
    id = Column(String(36), primary_key=True, default=new_id)
    domain = Column(String(255), nullable=False)
    status = Column(String(20), default="pending")
    source = Column(String(50))
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_websites_domain", "domain", unique=True),)


class PublisherWebsite(Base):
    """Confirmed publisher ↔ website link (existing publishers)."""

    __tablename__ = "publisher_websites"
    id = Column(String(36), primary_key=True, default=new_id)
    publisher_id = Column(
        String(36), ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False
    )
    website_id = Column(
        String(36), ForeignKey("websites.id", ondelete="CASCADE"), nullable=False
    )
    added_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_publisher_websites_pair", "publisher_id", "website_id", unique=True),
    )


class ShadowPublisherWebsite(Base):
    """AI-extracted, unverified publisher ↔ website link for shadow publishers."""

    __tablename__ = "shadow_publisher_websites"
    id = Column(String(36), primary_key=True, default=new_id)
    publisher_id = Column(
        String(36), ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False
    )
    website_id = Column(
        String(36), ForeignKey("websites.id", ondelete="CASCADE"), nullable=False
    )
    confidence = Column(Float)
    source = Column(String(50))  # email_extraction, email_domain, manual
    extraction_method = Column(String(100))  # ai_extracted, ai_schema_based, manual_entry
    verified = Column(Boolean, default=False)
    migration_status = Column(String(20), default="pending")
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_shadow_websites_pair", "publisher_id", "website_id", unique=True),
        Index("ix_shadow_websites_verified", "verified"),
    )
