"""Publisher resolver — find the publisher an email belongs to, or create a shadow.

Purpose:
  Map the sender of a qualified email to a publisher row without ever merging
  two different people.

Business Rules:
  - Matching is exact, case-normalized email only. Never by domain, never by
    fuzzy name similarity: a false merge corrupts another user's data, a
    duplicate shadow record is merely untidy.
  - strict policy: email match restricted to active + email_verified
  - best_candidate policy: email match regardless of status, ordered
    active > shadow > anything else, then verified > unverified
  - One resolve call uses exactly one policy
  - A matched publisher is "existing" unless it is still a shadow. Under
    strict, a publisher this pipeline created for the exact same email (a
    shadow, or a shadow since auto-approved) is reused on the shadow path
    rather than duplicated, so reprocessing an email never creates a second
    record.
  - No match → shadow publisher: unverified, no login, hashed random
    invitation token with an expiry window

Called by: services/email_pipeline.py
Depends on: models (Publisher), services/automation_log.py
"""

import hashlib
import os
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from loguru import logger
from sqlalchemy import and_, case, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from publisher_intake.config import PipelineConfig
from publisher_intake.exceptions import PublisherResolutionError
from publisher_intake.models import Publisher
from publisher_intake.schemas.parsed_email import ParsedEmail
from publisher_intake.services.automation_log import log_automation

MATCH_POLICIES = ("strict", "best_candidate")


@dataclass
class ResolvedPublisher:
    publisher: Publisher
    is_existing: bool
    match_method: str


def generate_secure_token() -> str:
    """sha256 over 32 random bytes, the current time and the process id."""
    material = secrets.token_bytes(32) + str(time.time_ns()).encode() + str(os.getpid()).encode()
    return hashlib.sha256(material).hexdigest()


def find_existing_publisher(db: Session, email: str, policy: str = "strict") -> Publisher | None:
    """Exact email lookup under the given match policy."""
    if policy not in MATCH_POLICIES:
        raise ValueError(f"unknown match policy {policy!r}")
    email = (email or "").strip().lower()
    if not email:
        return None

    query = db.query(Publisher).filter(Publisher.email == email)
    if policy == "strict":
        return (
            query.filter(Publisher.account_status == "active", Publisher.email_verified.is_(True))
            .order_by(Publisher.created_at)
            .first()
        )

    status_rank = case(
        (Publisher.account_status == "active", 1),
        (Publisher.account_status == "shadow", 2),
        else_=3,
    )
    verified_rank = case((Publisher.email_verified.is_(True), 1), else_=2)
    return query.order_by(status_rank, verified_rank, Publisher.created_at).first()


def find_pipeline_publisher(db: Session, email: str) -> Publisher | None:
    """Publisher this pipeline already created for exactly this email.

    Either still a shadow, or a shadow that was auto-approved to active.
    """
    email = (email or "").strip().lower()
    if not email:
        return None
    return (
        db.query(Publisher)
        .filter(
            Publisher.email == email,
            or_(
                Publisher.account_status == "shadow",
                and_(Publisher.account_status == "active", Publisher.source == "email_extraction"),
            ),
        )
        .order_by(Publisher.created_at)
        .first()
    )


def create_shadow_publisher(
    db: Session,
    parsed: ParsedEmail,
    email_log_id: str | None,
    config: PipelineConfig,
) -> Publisher:
    """Insert a shadow publisher and its `created` audit row.

    Raises:
        PublisherResolutionError: the insert failed.
    """
    email = parsed.sender.email.strip().lower()
    try:
        with db.begin_nested():
            publisher = Publisher(
                email=email,
                contact_name=parsed.sender.name,
                company_name=parsed.sender.company,
                phone=parsed.sender.phone,
                account_status="shadow",
                status="pending",
                email_verified=False,
                confidence_score=parsed.overall_confidence,
                source="email_extraction",
                source_metadata={
                    "email_log_id": email_log_id,
                    "strategy": parsed.strategy,
                    "extraction_notes": parsed.extraction_notes,
                },
                invitation_token=generate_secure_token(),
                invitation_expires_at=datetime.now(timezone.utc)
                + timedelta(days=config.invitation_expiry_days),
            )
            db.add(publisher)
            db.flush()
    except SQLAlchemyError as e:
        logger.error("Shadow publisher creation failed for {}: {}", email, e)
        raise PublisherResolutionError(f"could not create shadow publisher for {email}: {e}") from e

    log_automation(
        db,
        "created",
        email_log_id=email_log_id,
        publisher_id=publisher.id,
        confidence=parsed.overall_confidence,
        match_method="new_creation",
        new_data={"email": email, "contact_name": publisher.contact_name, "company_name": publisher.company_name},
        details={"strategy": parsed.strategy, "websites": [w.domain for w in parsed.websites]},
    )
    logger.info("Created shadow publisher {} for {}", publisher.id, email)
    return publisher


def resolve_publisher(
    db: Session,
    parsed: ParsedEmail,
    email_log_id: str | None,
    config: PipelineConfig,
    policy: str | None = None,
) -> ResolvedPublisher:
    """Existing publisher for the sender, or a newly created shadow."""
    policy = policy or config.match_policy
    try:
        existing = find_existing_publisher(db, parsed.sender.email, policy)
        method = "email_exact" if policy == "strict" else "email_best_candidate"
        if existing is None and policy == "strict":
            existing = find_pipeline_publisher(db, parsed.sender.email)
            method = "prior_extraction"
    except SQLAlchemyError as e:
        raise PublisherResolutionError(f"publisher lookup failed for {parsed.sender.email}: {e}") from e

    if existing is not None:
        is_existing = existing.account_status != "shadow" and method != "prior_extraction"
        if existing.account_status == "shadow":
            method = "shadow_reuse"
        logger.info(
            "Matched {} to publisher {} ({}, policy={})",
            parsed.sender.email, existing.id, existing.account_status, policy,
        )
        return ResolvedPublisher(existing, is_existing, method)

    publisher = create_shadow_publisher(db, parsed, email_log_id, config)
    return ResolvedPublisher(publisher, False, "new_creation")
