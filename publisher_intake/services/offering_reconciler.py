"""Offering reconciler — upsert websites, offerings, links and pricing rules.

Purpose:
  Persist a qualified ParsedEmail against a resolved publisher without
  duplicating rows or letting low-confidence data clobber good data.

Business Rules:
  - Every create is preceded by an existence check on its natural key:
      website           normalized domain
      website link      (publisher_id, website_id)
      offering          (publisher_id, offering_type[, offering_name])
      offering link     (offering_id, website_id)
      pricing rule      (offering_id, rule_type, rule_name)
  - Shadow publishers: first write wins. Offerings are created inactive and
    pending_verification and are never updated from a later email.
  - Existing publishers: offerings update in place only above
    config.offering_update; base_price / currency / turnaround_days only above
    config.offering_field_write. New offerings are active and available.
  - Contact / company name of an existing publisher updates only above
    config.sender_update
  - Each website, offering and rule step runs in its own SAVEPOINT. A failure
    is logged, written to the automation log as failed, and its siblings
    carry on.

Called by: services/email_pipeline.py
Depends on: models, services/automation_log.py, utils/domain.py
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import bindparam, text
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import Session

from publisher_intake.config import PipelineConfig
from publisher_intake.models import (
    Publisher,
    PublisherOffering,
    PublisherOfferingRelationship,
    PublisherPricingRule,
    PublisherWebsite,
    ShadowPublisherWebsite,
    Website,
)
from publisher_intake.models.base import UTCDateTime, new_id
from publisher_intake.schemas.parsed_email import (
    ExtractedOffering,
    ExtractedPricingRule,
    ParsedEmail,
)
from publisher_intake.services.automation_log import log_automation, log_failure
from publisher_intake.utils.domain import normalize_or_raw

# Minimal column set that every deployed websites table has
_MINIMAL_WEBSITE_INSERT = text(
    "INSERT INTO websites (id, domain, status, created_at, updated_at) "
    "VALUES (:id, :domain, :status, :now, :now)"
).bindparams(bindparam("now", type_=UTCDateTime()))


@dataclass
class ReconcileSummary:
    website_ids: list[str] = field(default_factory=list)
    websites_created: int = 0
    links_created: int = 0
    offering_ids: list[str] = field(default_factory=list)
    offerings_created: int = 0
    offerings_updated: int = 0
    offerings_unchanged: int = 0
    relationships_created: int = 0
    rules_created: int = 0
    sender_updated: bool = False
    failures: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "websites": len(self.website_ids),
            "websites_created": self.websites_created,
            "links_created": self.links_created,
            "offerings_created": self.offerings_created,
            "offerings_updated": self.offerings_updated,
            "offerings_unchanged": self.offerings_unchanged,
            "relationships_created": self.relationships_created,
            "rules_created": self.rules_created,
            "sender_updated": self.sender_updated,
            "failures": list(self.failures),
        }


# ── Websites ─────────────────────────────────────────────────────────


def _insert_website_minimal(db: Session, domain: str, status: str) -> Website:
    """Raw minimal-column insert, used when the ORM insert hits a column mismatch."""
    website_id = new_id()
    now = datetime.now(timezone.utc)
    with db.begin_nested():
        db.execute(_MINIMAL_WEBSITE_INSERT, {"id": website_id, "domain": domain, "status": status, "now": now})
    logger.warning("Website {} inserted with the minimal column fallback", domain)
    return db.get(Website, website_id)


def get_or_create_website(db: Session, domain: str, status: str) -> tuple[Website, bool]:
    """Website row for a normalized domain. Returns (website, created)."""
    website = db.query(Website).filter(Website.domain == domain).first()
    if website:
        return website, False

    try:
        with db.begin_nested():
            website = Website(domain=domain, status=status, source="email_extraction")
            db.add(website)
            db.flush()
        return website, True
    except IntegrityError:
        # Another email created it between the check and the insert
        website = db.query(Website).filter(Website.domain == domain).first()
        if website is None:
            raise
        return website, False
    except (ProgrammingError, OperationalError) as e:
        logger.warning("ORM website insert failed for {} ({}), trying minimal insert", domain, e)
        return _insert_website_minimal(db, domain, status), True


def _link_website(db: Session, publisher: Publisher, website: Website, is_existing: bool, confidence: float) -> bool:
    if is_existing:
        exists = (
            db.query(PublisherWebsite)
            .filter_by(publisher_id=publisher.id, website_id=website.id)
            .first()
        )
        if exists:
            return False
        db.add(PublisherWebsite(publisher_id=publisher.id, website_id=website.id))
    else:
        exists = (
            db.query(ShadowPublisherWebsite)
            .filter_by(publisher_id=publisher.id, website_id=website.id)
            .first()
        )
        if exists:
            return False
        db.add(
            ShadowPublisherWebsite(
                publisher_id=publisher.id,
                website_id=website.id,
                confidence=confidence,
                source="email_extraction",
                extraction_method="ai_extracted",
                verified=False,
                migration_status="pending",
            )
        )
    db.flush()
    return True


# ── Offerings ────────────────────────────────────────────────────────


def find_offering(
    db: Session, publisher_id: str, offering: ExtractedOffering, match_name: bool = True
) -> PublisherOffering | None:
    """Oldest offering of this type for the publisher, narrowed by name when match_name."""
    query = db.query(PublisherOffering).filter(
        PublisherOffering.publisher_id == publisher_id,
        PublisherOffering.offering_type == offering.offering_type,
    )
    if match_name and offering.offering_name:
        query = query.filter(PublisherOffering.offering_name == offering.offering_name)
    return query.order_by(PublisherOffering.created_at).first()


def _new_offering(publisher_id: str, offering: ExtractedOffering, is_existing: bool) -> PublisherOffering:
    return PublisherOffering(
        publisher_id=publisher_id,
        offering_type=offering.offering_type,
        offering_name=offering.offering_name,
        base_price=offering.base_price,
        currency=offering.currency,
        turnaround_days=offering.turnaround_days,
        current_availability="available" if is_existing else "pending_verification",
        express_available=offering.express_available,
        express_price=offering.express_price,
        express_days=offering.express_days,
        min_word_count=offering.min_word_count,
        max_word_count=offering.max_word_count,
        niches=list(offering.niches),
        languages=list(offering.languages),
        attributes=dict(offering.attributes),
        is_active=is_existing,
    )


def apply_offering_update(
    row: PublisherOffering, offering: ExtractedOffering, config: PipelineConfig
) -> tuple[dict, dict]:
    """Confidence-gated in-place update. Returns (previous, new) for changed fields."""
    previous: dict = {}
    new: dict = {}
    if offering.confidence <= config.offering_update:
        return previous, new

    def _set(name, value):
        if value is None or getattr(row, name) == value:
            return
        previous[name] = getattr(row, name)
        new[name] = value
        setattr(row, name, value)

    if offering.confidence > config.offering_field_write:
        if offering.base_price > 0:
            _set("base_price", offering.base_price)
        _set("currency", offering.currency)
        _set("turnaround_days", offering.turnaround_days)

    if offering.express_price:
        _set("express_available", True)
        _set("express_price", offering.express_price)
        _set("express_days", offering.express_days)
    _set("min_word_count", offering.min_word_count)
    _set("max_word_count", offering.max_word_count)
    if offering.niches:
        _set("niches", list(offering.niches))

    if offering.attributes:
        merged = {**(row.attributes or {}), **offering.attributes}
        if merged != (row.attributes or {}):
            previous["attributes"] = row.attributes
            new["attributes"] = merged
            row.attributes = merged
    return previous, new


def _link_offering(db: Session, publisher_id: str, row: PublisherOffering, website: Website, primary: bool) -> bool:
    exists = (
        db.query(PublisherOfferingRelationship)
        .filter_by(offering_id=row.id, website_id=website.id)
        .first()
    )
    if exists:
        return False
    db.add(
        PublisherOfferingRelationship(
            publisher_id=publisher_id,
            offering_id=row.id,
            website_id=website.id,
            is_primary=primary,
            is_active=bool(row.is_active),
        )
    )
    db.flush()
    return True


# ── Pricing rules ────────────────────────────────────────────────────


def upsert_pricing_rule(db: Session, offering_id: str, rule: ExtractedPricingRule) -> bool:
    """Insert a rule unless (offering_id, rule_type, rule_name) already exists."""
    exists = (
        db.query(PublisherPricingRule)
        .filter_by(offering_id=offering_id, rule_type=rule.rule_type, rule_name=rule.rule_name)
        .first()
    )
    if exists:
        return False
    db.add(
        PublisherPricingRule(
            offering_id=offering_id,
            rule_type=rule.rule_type,
            rule_name=rule.rule_name,
            description=rule.description,
            conditions=dict(rule.conditions),
            actions=dict(rule.actions),
            priority=rule.priority,
            is_cumulative=rule.is_cumulative,
            auto_apply=rule.auto_apply,
        )
    )
    db.flush()
    return True


# ── Entry point ──────────────────────────────────────────────────────


def _update_sender(db: Session, publisher: Publisher, parsed: ParsedEmail, config: PipelineConfig, email_log_id) -> bool:
    sender = parsed.sender
    if sender.confidence <= config.sender_update:
        return False
    previous, new = {}, {}
    for attr, value in (("contact_name", sender.name), ("company_name", sender.company)):
        if value and getattr(publisher, attr) != value:
            previous[attr] = getattr(publisher, attr)
            new[attr] = value
            setattr(publisher, attr, value)
    if not new:
        return False
    db.flush()
    log_automation(
        db,
        "updated",
        email_log_id=email_log_id,
        publisher_id=publisher.id,
        previous_data=previous,
        new_data=new,
        fields_updated=list(new),
        confidence=sender.confidence,
    )
    return True


def reconcile_offerings(
    db: Session,
    publisher: Publisher,
    parsed: ParsedEmail,
    is_existing: bool,
    email_log_id: str | None,
    config: PipelineConfig,
) -> ReconcileSummary:
    """Upsert every website, offering, offering link and pricing rule in parsed."""
    summary = ReconcileSummary()

    def _fail(step: str, exc: Exception, **details):
        logger.warning("Reconcile {} failed for publisher {}: {}", step, publisher.id, exc)
        summary.failures.append(f"{step}: {exc}")
        log_failure(db, f"reconcile_{step}", exc, email_log_id=email_log_id, publisher_id=publisher.id, details=details)

    if is_existing:
        try:
            with db.begin_nested():
                summary.sender_updated = _update_sender(db, publisher, parsed, config, email_log_id)
        except SQLAlchemyError as e:
            _fail("sender", e)

    # Websites and publisher links
    websites_by_domain: dict[str, Website] = {}
    for extracted in parsed.websites:
        domain = normalize_or_raw(extracted.domain)
        try:
            with db.begin_nested():
                website, created = get_or_create_website(db, domain, "active" if is_existing else "pending")
                if _link_website(db, publisher, website, is_existing, extracted.confidence):
                    summary.links_created += 1
            websites_by_domain[domain] = website
            summary.website_ids.append(website.id)
            summary.websites_created += int(created)
        except SQLAlchemyError as e:
            _fail("website", e, domain=domain)

    # Offerings, offering links and rules
    for offering in parsed.offerings:
        if offering.website_domain:
            target = normalize_or_raw(offering.website_domain)
            targets = [websites_by_domain[target]] if target in websites_by_domain else []
            if not targets:
                try:
                    with db.begin_nested():
                        website, created = get_or_create_website(db, target, "active" if is_existing else "pending")
                        _link_website(db, publisher, website, is_existing, offering.confidence)
                    websites_by_domain[target] = website
                    summary.websites_created += int(created)
                    targets = [website]
                except SQLAlchemyError as e:
                    _fail("website", e, domain=target)
        else:
            targets = list(websites_by_domain.values())

        try:
            with db.begin_nested():
                # Shadow offerings are one per type unless the offering targets its own site
                match_name = is_existing or bool(offering.website_domain)
                row = find_offering(db, publisher.id, offering, match_name)
                if row is None:
                    row = _new_offering(publisher.id, offering, is_existing)
                    db.add(row)
                    db.flush()
                    summary.offerings_created += 1
                elif is_existing:
                    previous, new = apply_offering_update(row, offering, config)
                    if new:
                        db.flush()
                        summary.offerings_updated += 1
                        log_automation(
                            db,
                            "offering_updated",
                            email_log_id=email_log_id,
                            publisher_id=publisher.id,
                            previous_data=previous,
                            new_data=new,
                            fields_updated=list(new),
                            confidence=offering.confidence,
                            details={"offering_id": row.id, "offering_type": row.offering_type},
                        )
                    else:
                        summary.offerings_unchanged += 1
                else:
                    summary.offerings_unchanged += 1

                for i, website in enumerate(targets):
                    if _link_offering(db, publisher.id, row, website, primary=(i == 0)):
                        summary.relationships_created += 1
            summary.offering_ids.append(row.id)
        except SQLAlchemyError as e:
            _fail("offering", e, offering_type=offering.offering_type, offering_name=offering.offering_name)
            continue

        rules = list(offering.pricing_rules) + [
            r for r in parsed.pricing_rules if r.for_offering_type == offering.offering_type
        ]
        for rule in rules:
            try:
                with db.begin_nested():
                    if upsert_pricing_rule(db, row.id, rule):
                        summary.rules_created += 1
            except IntegrityError:
                logger.debug("Pricing rule {}/{} already present for {}", rule.rule_type, rule.rule_name, row.id)
            except SQLAlchemyError as e:
                _fail("pricing_rule", e, offering_id=row.id, rule_type=rule.rule_type, rule_name=rule.rule_name)

    logger.info(
        "Reconciled publisher {} ({}): {}",
        publisher.id, "existing" if is_existing else "shadow", summary.as_dict(),
    )
    return summary
