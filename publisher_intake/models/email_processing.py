"""Email processing models — inbound log, review queue, automation audit trail."""

from sqlalchemy import (
    JSON,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)

from .base import Base, UTCDateTime, new_id, utcnow


class EmailProcessingLog(Base):
    """One inbound publisher email and what the pipeline made of it."""

    __tablename__ = "email_processing_logs"
    id = Column(String(36), primary_key=True, default=new_id)

    campaign_id = Column(String(255))
    campaign_type = Column(String(50))  # outreach, follow_up, bulk

    email_from = Column(String(255), nullable=False)
    email_subject = Column(String(500))
    email_message_id = Column(String(255))
    received_at = Column(UTCDateTime)
    raw_content = Column(Text, nullable=False)

    parsed_data = Column(JSON, default=dict)
    confidence_score = Column(Float)
    parsing_errors = Column(JSON)

    status = Column(String(50), default="pending")  # pending, processing, parsed, failed, retrying
    error_message = Column(Text)
    processed_at = Column(UTCDateTime)
    processing_duration_ms = Column(Integer)

    qualification_status = Column(String(50), default="pending")  # pending, qualified, disqualified
    disqualification_reason = Column(String(100))

    publisher_id = Column(String(36), ForeignKey("publishers.id", ondelete="SET NULL"))

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_email_logs_status", "status"),
        Index("ix_email_logs_email_from", "email_from"),
        Index("ix_email_logs_message_id", "email_message_id"),
        Index("ix_email_logs_created", "created_at"),
    )


class EmailReviewQueue(Base):
    """A unit of human (or delayed automatic) review for one processed email."""

    __tablename__ = "email_review_queue"
    id = Column(String(36), primary_key=True, default=new_id)
    log_id = Column(
        String(36), ForeignKey("email_processing_logs.id", ondelete="CASCADE"), nullable=False
    )
    publisher_id = Column(String(36), ForeignKey("publishers.id", ondelete="SET NULL"))

    priority = Column(Integer, default=50)  # 0-100, higher = more urgent
    status = Column(String(50), default="pending")  # pending, in_review, approved, rejected, auto_approved
    queue_reason = Column(String(100))

    suggested_actions = Column(JSON, default=dict)
    missing_fields = Column(JSON, default=list)
    review_notes = Column(Text)

    reviewed_at = Column(UTCDateTime)
    auto_approve_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_review_queue_status", "status"),
        Index("ix_review_queue_priority", "priority"),
        Index("ix_review_queue_auto_approve", "auto_approve_at"),
    )


class PublisherAutomationLog(Base):
    """Append-only audit trail of every automation decision."""

    __tablename__ = "publisher_automation_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    email_log_id = Column(String(36), ForeignKey("email_processing_logs.id", ondelete="SET NULL"))
    publisher_id = Column(String(36), ForeignKey("publishers.id", ondelete="SET NULL"))

    action = Column(String(100), nullable=False)
    action_status = Column(String(50), default="success")  # success, failed, partial

    previous_data = Column(JSON)
    new_data = Column(JSON)
    fields_updated = Column(JSON)

    confidence = Column(Float)
    match_method = Column(String(50))  # email_exact, email_best_candidate, prior_extraction, shadow_reuse, new_creation
    details = Column("metadata", JSON, default=dict)

    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_automation_logs_publisher", "publisher_id"),
        Index("ix_automation_logs_email", "email_log_id"),
        Index("ix_automation_logs_action", "action"),
    )


@event.listens_for(PublisherAutomationLog, "before_update")
def _reject_audit_mutation(mapper, connection, target):
    raise ValueError("publisher_automation_logs rows are append-only")
