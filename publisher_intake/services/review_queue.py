"""Review queue scheduler — priority, auto-approval timers and confidence routing.

Business Rules:
  - priority = round((1 - confidence) * 100) + 5 per missing field, clamped
    to 0-100. Lower confidence means more urgent human attention.
  - auto_approve_at = now + auto_approval_delay_hours when the entry may be
    promoted automatically. The promotion sweep itself lives elsewhere.
  - One pending entry per publisher: a repeat email refreshes the pending
    entry instead of stacking a duplicate.
  - Queue and approval bookkeeping never aborts the email. Failures are
    logged and swallowed; the reconciled data stays persisted.
  - Routing for new shadow publishers:
      >= auto_approve   publisher activated immediately (no queue entry); if
                        activation fails it stays a shadow and is queued
                        as auto_approve_failed
      >= medium_review  queued with an auto-approve timer
      >= low_review     queued for manual review
      otherwise         queued with the very_low_confidence flag

Called by: services/email_pipeline.py
Depends on: models, services/automation_log.py
"""

from datetime import datetime, timedelta, timezone

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from publisher_intake.config import PipelineConfig
from publisher_intake.models import EmailReviewQueue, Publisher
from publisher_intake.schemas.parsed_email import ParsedEmail
from publisher_intake.services.automation_log import log_automation, log_failure

MISSING_FIELD_WEIGHT = 5


def calculate_review_priority(confidence: float, missing_fields: list[str] | None = None) -> int:
    confidence = max(0.0, min(1.0, confidence or 0.0))
    priority = round((1 - confidence) * 100) + MISSING_FIELD_WEIGHT * len(missing_fields or [])
    return max(0, min(100, priority))


def _suggested_actions(parsed: ParsedEmail, publisher_id: str | None, very_low: bool) -> dict:
    return {
        "publisher_id": publisher_id,
        "confidence": parsed.overall_confidence,
        "strategy": parsed.strategy,
        "websites": [w.domain for w in parsed.websites],
        "offerings": [
            {"offering_type": o.offering_type, "offering_name": o.offering_name, "base_price": o.base_price}
            for o in parsed.offerings
        ],
        "extraction_notes": parsed.extraction_notes,
        "very_low_confidence": very_low,
    }


def enqueue(
    db: Session,
    email_log_id: str,
    parsed: ParsedEmail,
    reason: str,
    auto_approve: bool = False,
    publisher_id: str | None = None,
    config: PipelineConfig | None = None,
    very_low_confidence: bool = False,
) -> EmailReviewQueue | None:
    """Insert (or refresh) a pending review entry. Never raises."""
    config = config or PipelineConfig()
    try:
        priority = calculate_review_priority(parsed.overall_confidence, parsed.missing_fields)
        auto_approve_at = (
            datetime.now(timezone.utc) + timedelta(hours=config.auto_approval_delay_hours)
            if auto_approve
            else None
        )
        actions = _suggested_actions(parsed, publisher_id, very_low_confidence)

        with db.begin_nested():
            query = db.query(EmailReviewQueue).filter(EmailReviewQueue.status == "pending")
            if publisher_id:
                query = query.filter(EmailReviewQueue.publisher_id == publisher_id)
            else:
                query = query.filter(EmailReviewQueue.log_id == email_log_id)
            entry = query.first()

            if entry is not None:
                entry.priority = priority
                entry.queue_reason = reason
                entry.suggested_actions = actions
                entry.missing_fields = list(parsed.missing_fields)
                if entry.auto_approve_at is None or not auto_approve:
                    entry.auto_approve_at = auto_approve_at
                db.flush()
                logger.info("Refreshed review entry {} ({}, priority {})", entry.id, reason, priority)
                return entry

            entry = EmailReviewQueue(
                log_id=email_log_id,
                publisher_id=publisher_id,
                priority=priority,
                status="pending",
                queue_reason=reason,
                suggested_actions=actions,
                missing_fields=list(parsed.missing_fields),
                auto_approve_at=auto_approve_at,
            )
            db.add(entry)
            db.flush()
            log_automation(
                db,
                "queued",
                email_log_id=email_log_id,
                publisher_id=publisher_id,
                confidence=parsed.overall_confidence,
                details={
                    "queue_id": entry.id,
                    "reason": reason,
                    "priority": priority,
                    "auto_approve": auto_approve,
                    "very_low_confidence": very_low_confidence,
                },
            )
        logger.info("Queued email {} for review ({}, priority {})", email_log_id, reason, priority)
        return entry
    except Exception:
        logger.exception("Failed to queue email {} for review ({})", email_log_id, reason)
        return None


def auto_approve_publisher(
    db: Session, publisher: Publisher, parsed: ParsedEmail, email_log_id: str | None
) -> bool:
    """Activate a high-confidence shadow publisher and record the decision.

    Runs in its own savepoint. A failure leaves the publisher a shadow and
    returns False; reconciled rows are untouched.
    """
    previous = {"account_status": publisher.account_status, "status": publisher.status}
    try:
        with db.begin_nested():
            publisher.account_status = "active"
            publisher.status = "active"
            db.flush()
            log_automation(
                db,
                "auto_approved",
                email_log_id=email_log_id,
                publisher_id=publisher.id,
                previous_data=previous,
                new_data={"account_status": "active", "status": "active"},
                fields_updated=["account_status", "status"],
                confidence=parsed.overall_confidence,
                details={"reason": "high_confidence"},
            )
    except SQLAlchemyError as e:
        logger.exception("Auto-approval failed for publisher {}", publisher.id)
        log_failure(
            db, "auto_approved", e,
            email_log_id=email_log_id, publisher_id=publisher.id, details={"previous": previous},
        )
        return False
    logger.info("Auto-approved publisher {} (confidence {:.2f})", publisher.id, parsed.overall_confidence)
    return True


def route_by_confidence(
    db: Session,
    publisher: Publisher,
    parsed: ParsedEmail,
    email_log_id: str,
    config: PipelineConfig,
) -> str:
    """Route a new shadow publisher by overall confidence. Returns the decision."""
    if publisher.account_status == "active":
        logger.info("Publisher {} was already approved, not re-routed", publisher.id)
        return "already_approved"
    confidence = parsed.overall_confidence
    if confidence >= config.auto_approve:
        if auto_approve_publisher(db, publisher, parsed, email_log_id):
            return "auto_approved"
        # Stays a shadow; a reviewer picks it up instead
        enqueue(db, email_log_id, parsed, "auto_approve_failed", publisher_id=publisher.id, config=config)
        return "auto_approve_failed"
    if confidence >= config.medium_review:
        decision, auto = "medium_confidence", True
    elif confidence >= config.low_review:
        decision, auto = "low_confidence", False
    else:
        decision, auto = "very_low_confidence", False

    enqueue(
        db,
        email_log_id,
        parsed,
        decision,
        auto_approve=auto,
        publisher_id=publisher.id,
        config=config,
        very_low_confidence=decision == "very_low_confidence",
    )
    return decision
