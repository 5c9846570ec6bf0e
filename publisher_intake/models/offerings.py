"""Offering, offering-website relationship, and pricing rule models.

Prices are integer cents everywhere. Never store money as Float.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import Base, UTCDateTime, new_id, utcnow

OFFERING_TYPES = ("guest_post", "link_insertion", "listicle_placement", "sponsored_review")
AVAILABILITY_STATES = ("pending_verification", "available", "limited", "unavailable")


class PublisherOffering(Base):
    """A priced service a publisher provides."""

    __tablename__ = "publisher_offerings"
    id = Column(String(36), primary_key=True, default=new_id)
    publisher_id = Column(
        String(36), ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False
    )

    offering_type = Column(String(50), nullable=False)
    offering_name = Column(String(255))

    base_price = Column(Integer, nullable=False, default=0)  # cents
    currency = Column(String(3), nullable=False, default="USD")
    turnaround_days = Column(Integer)
    current_availability = Column(String(30), default="pending_verification")

    express_available = Column(Boolean, default=False)
    express_price = Column(Integer)  # cents
    express_days = Column(Integer)

    min_word_count = Column(Integer)
    max_word_count = Column(Integer)
    niches = Column(JSON, default=list)
    languages = Column(JSON, default=list)
    attributes = Column(JSON, default=dict)

    is_active = Column(Boolean, default=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    publisher = relationship("Publisher", back_populates="offerings")
    pricing_rules = relationship(
        "PublisherPricingRule", back_populates="offering", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_offerings_publisher_type", "publisher_id", "offering_type"),
        Index("ix_offerings_active", "is_active"),
    )


class PublisherOfferingRelationship(Base):
    """Links an offering to the website it applies to."""

    __tablename__ = "publisher_offering_relationships"
    id = Column(String(36), primary_key=True, default=new_id)
    publisher_id = Column(
        String(36), ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False
    )
    offering_id = Column(
        String(36), ForeignKey("publisher_offerings.id", ondelete="CASCADE"), nullable=False
    )
    website_id = Column(
        String(36), ForeignKey("websites.id", ondelete="CASCADE"), nullable=False
    )
    is_primary = Column(Boolean, default=True)
    is_active = Column(Boolean, default=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_offering_rel_pair", "offering_id", "website_id", unique=True),
        Index("ix_offering_rel_publisher", "publisher_id"),
    )


class PublisherPricingRule(Base):
    """Conditional price adjustment attached to one offering."""

    __tablename__ = "publisher_pricing_rules"
    id = Column(String(36), primary_key=True, default=new_id)
    offering_id = Column(
        String(36), ForeignKey("publisher_offerings.id", ondelete="CASCADE"), nullable=False
    )

    rule_type = Column(String(50), nullable=False)
    rule_name = Column(String(255), nullable=False)
    description = Column(Text)

    conditions = Column(JSON, nullable=False, default=dict)
    actions = Column(JSON, nullable=False, default=dict)

    priority = Column(Integer, default=10)
    is_cumulative = Column(Boolean, default=False)
    auto_apply = Column(Boolean, default=True)
    requires_approval = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    offering = relationship("PublisherOffering", back_populates="pricing_rules")

    __table_args__ = (
        Index(
            "ix_pricing_rules_natural_key",
            "offering_id",
            "rule_type",
            "rule_name",
            unique=True,
        ),
    )
