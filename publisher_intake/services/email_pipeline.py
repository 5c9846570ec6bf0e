"""Publisher email pipeline — one inbound email from raw body to reconciled records.

Purpose:
  Orchestrates Cleaner → Extractor → Qualification → Resolver → Reconciler →
  Review routing for a single email, keyed by its EmailProcessingLog id.
  Each email is an independent unit of work; reprocessing is safe because
  every write downstream is idempotent.

Business Rules:
  - Extraction failures propagate to the caller after the log row is marked
    failed. Nothing else has been written at that point, so a retry is safe.
  - Disqualified emails are recorded on the log (status + reason) and queued
    for a glance, but never create publisher / website / offering rows.
  - A hard failure resolving the publisher aborts the email: automation
    `error` row, log marked failed, None returned.
  - Existing publishers are updated in place and skip the review queue; new
    shadow publishers are routed by confidence.

Called by: routers/webhooks.py (background task), scripts/reprocess_emails.py
Depends on: every services/* module
"""

import time
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from publisher_intake.config import PipelineConfig, settings
from publisher_intake.exceptions import PublisherResolutionError
from publisher_intake.models import EmailProcessingLog
from publisher_intake.services.automation_log import log_automation, log_failure
from publisher_intake.services.extraction import Extractor, get_extractor
from publisher_intake.services.offering_reconciler import reconcile_offerings
from publisher_intake.services.publisher_resolver import resolve_publisher
from publisher_intake.services.qualification import qualify
from publisher_intake.services.review_queue import enqueue, route_by_confidence


def record_inbound_email(
    db: Session,
    email_from: str,
    raw_content: str,
    subject: str | None = None,
    campaign_type: str | None = "outreach",
    campaign_id: str | None = None,
    message_id: str | None = None,
    received_at: datetime | None = None,
) -> EmailProcessingLog:
    """Create the processing log row for an inbound email.

    A repeated delivery with the same message id returns the existing row.
    """
    if message_id:
        existing = (
            db.query(EmailProcessingLog)
            .filter(EmailProcessingLog.email_message_id == message_id)
            .first()
        )
        if existing:
            logger.info("Duplicate delivery of message {} → log {}", message_id, existing.id)
            return existing

    log = EmailProcessingLog(
        email_from=(email_from or "").strip().lower(),
        email_subject=subject,
        email_message_id=message_id,
        campaign_id=campaign_id,
        campaign_type=campaign_type,
        raw_content=raw_content or "",
        received_at=received_at or datetime.now(timezone.utc),
        status="pending",
        qualification_status="pending",
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _finish(log: EmailProcessingLog | None, status: str, started: float, **fields) -> None:
    if log is None:
        return
    log.status = status
    log.processed_at = datetime.now(timezone.utc)
    log.processing_duration_ms = _elapsed_ms(started)
    for key, value in fields.items():
        setattr(log, key, value)


def _abort(db: Session, log: EmailProcessingLog | None, log_ref: str | None, exc: Exception, started: float) -> None:
    """Roll back the email's partial work and leave a failed trail behind."""
    db.rollback()
    _finish(log, "failed", started, error_message=str(exc)[:2000])
    log_failure(db, "error", exc, email_log_id=log_ref)
    db.commit()


async def process_publisher_email(
    db: Session,
    email_log_id: str,
    email_body: str,
    sender_email: str,
    subject: str | None = None,
    campaign_type: str = "outreach",
    *,
    extractor: Extractor | None = None,
    config: PipelineConfig | None = None,
) -> str | None:
    """Run the full pipeline for one email.

    Returns:
        The resolved publisher id, or None when the email was disqualified or
        publisher resolution failed.

    Raises:
        CompletionError / ExtractionError: extraction failed after retries.
    """
    config = config or PipelineConfig.from_settings(settings)
    extractor = extractor or get_extractor()
    started = time.monotonic()

    log = db.get(EmailProcessingLog, email_log_id)
    log_ref = email_log_id if log is not None else None
    if log is None:
        logger.warning("Email log {} not found — processing without a log row", email_log_id)
    else:
        log.status = "processing"
        log.campaign_type = log.campaign_type or campaign_type
        db.commit()

    # 1-2. Clean + extract
    try:
        parsed = await extractor.extract(email_body, sender_email, subject)
    except Exception as e:
        logger.error("Extraction failed for email {} from {}: {}", email_log_id, sender_email, e)
        db.rollback()
        if log is not None:
            _finish(log, "failed", started, error_message=str(e)[:2000], parsing_errors=[str(e)])
            db.commit()
        raise

    # 3. Qualify
    result = qualify(email_body, parsed)
    if log is not None:
        log.parsed_data = parsed.model_dump(mode="json")
        log.confidence_score = parsed.overall_confidence
        log.parsing_errors = list(parsed.errors) or None
        log.qualification_status = result.status
        log.disqualification_reason = result.reason
    if not result.is_qualified:
        logger.info("Email {} from {} disqualified: {} ({})", email_log_id, sender_email, result.reason, result.notes)
        _finish(log, "parsed", started)
        db.commit()
        if log is not None:
            enqueue(db, email_log_id, parsed, f"disqualified_{result.reason}", config=config)
            db.commit()
        return None

    # 4. Resolve
    try:
        resolved = resolve_publisher(db, parsed, log_ref, config)
    except PublisherResolutionError as e:
        logger.error("Publisher resolution failed for email {}: {}", email_log_id, e)
        _abort(db, log, log_ref, e, started)
        return None

    publisher = resolved.publisher
    try:
        # 5. Reconcile
        summary = reconcile_offerings(db, publisher, parsed, resolved.is_existing, log_ref, config)

        # 6. Route
        if resolved.is_existing:
            log_automation(
                db,
                "existing_publisher_updated",
                email_log_id=log_ref,
                publisher_id=publisher.id,
                confidence=parsed.overall_confidence,
                match_method=resolved.match_method,
                details={"campaign_type": campaign_type, **summary.as_dict()},
            )
            decision = "existing_publisher"
        else:
            decision = route_by_confidence(db, publisher, parsed, log_ref, config)
            log_automation(
                db,
                "shadow_publisher_processed",
                email_log_id=log_ref,
                publisher_id=publisher.id,
                confidence=parsed.overall_confidence,
                match_method=resolved.match_method,
                details={"routing": decision, **summary.as_dict()},
            )

        # 7. Done
        _finish(log, "parsed", started, publisher_id=publisher.id)
        db.commit()
    except Exception as e:
        logger.exception("Processing failed for email {} after resolution", email_log_id)
        _abort(db, log, log_ref, e, started)
        return None

    logger.info(
        "Processed email {} from {} → publisher {} ({}, {} ms)",
        email_log_id, sender_email, publisher.id, decision, _elapsed_ms(started),
    )
    return publisher.id


async def reprocess_email_log(
    db: Session,
    log: EmailProcessingLog,
    *,
    extractor: Extractor | None = None,
    config: PipelineConfig | None = None,
) -> str | None:
    """Re-run the pipeline for a stored email log."""
    log.status = "retrying"
    log.error_message = None
    db.commit()
    return await process_publisher_email(
        db,
        log.id,
        log.raw_content,
        log.email_from,
        log.email_subject,
        log.campaign_type or "outreach",
        extractor=extractor,
        config=config,
    )
