"""
conftest.py — Shared Test Fixtures for the publisher intake pipeline

Provides an in-memory SQLite database with working SAVEPOINTs, a FastAPI
TestClient bound to the test session, a fake extractor, and factory
helpers for publishers, email logs and parsed emails.

Business Rules:
- All tests run against an isolated in-memory DB (no prod data risk)
- No test reaches the completion endpoint; extractors are faked or
  completion_json is patched
- Each test function gets a fresh schema (create_all / drop_all)

Called by: all test files via pytest autodiscovery
Depends on: publisher_intake.models (Base), publisher_intake.database
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = "test-key-for-testing"
os.environ["WEBHOOK_SECRET"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from publisher_intake.config import PipelineConfig
from publisher_intake.database import enable_sqlite_savepoints
from publisher_intake.models import Base, EmailProcessingLog, Publisher
from publisher_intake.schemas.parsed_email import (
    ExtractedOffering,
    ExtractedPricingRule,
    ExtractedWebsite,
    ParsedEmail,
    SenderInfo,
)

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture()
def client(db_session: Session) -> TestClient:
    """FastAPI TestClient with get_db overridden to the test session."""
    from publisher_intake.database import get_db
    from publisher_intake.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ── Factories ────────────────────────────────────────────────────────


def make_parsed(
    email: str = "editor@techblog.io",
    *,
    name: str | None = "Dana Editor",
    company: str | None = "TechBlog Media",
    domains=("techblog.io",),
    offerings=None,
    pricing_rules=None,
    confidence: float = 0.8,
    missing_fields=None,
    sender_confidence: float = 0.9,
) -> ParsedEmail:
    """A ParsedEmail with one $250 guest post unless told otherwise."""
    if offerings is None:
        offerings = [make_offering()]
    return ParsedEmail(
        sender=SenderInfo(email=email, name=name, company=company, confidence=sender_confidence),
        websites=[ExtractedWebsite(domain=d, confidence=0.8) for d in domains],
        offerings=offerings,
        pricing_rules=pricing_rules or [],
        overall_confidence=confidence,
        missing_fields=list(missing_fields or []),
    )


def make_offering(
    offering_type: str = "guest_post",
    base_price: int = 25000,
    confidence: float = 0.8,
    **kwargs,
) -> ExtractedOffering:
    return ExtractedOffering(
        offering_type=offering_type,
        base_price=base_price,
        confidence=confidence,
        **kwargs,
    )


def make_rule(rule_type: str = "bulk_discount", rule_name: str = "5+ posts", **kwargs) -> ExtractedPricingRule:
    kwargs.setdefault("conditions", {"min_quantity": 5})
    kwargs.setdefault("actions", {"discount_percent": 10})
    return ExtractedPricingRule(rule_type=rule_type, rule_name=rule_name, **kwargs)


def make_publisher(
    db: Session,
    email: str = "editor@techblog.io",
    account_status: str = "active",
    email_verified: bool = True,
    **kwargs,
) -> Publisher:
    publisher = Publisher(
        email=email,
        account_status=account_status,
        status="active" if account_status == "active" else "pending",
        email_verified=email_verified,
        **kwargs,
    )
    db.add(publisher)
    db.commit()
    return publisher


def make_email_log(
    db: Session,
    email_from: str = "editor@techblog.io",
    raw_content: str = "Guest posts are $250.",
    **kwargs,
) -> EmailProcessingLog:
    log = EmailProcessingLog(
        email_from=email_from,
        raw_content=raw_content,
        status=kwargs.pop("status", "pending"),
        **kwargs,
    )
    db.add(log)
    db.commit()
    return log


class FakeExtractor:
    """Extractor double returning a fixed ParsedEmail (or raising)."""

    name = "fake"

    def __init__(self, parsed: ParsedEmail | None = None, error: Exception | None = None):
        self.parsed = parsed
        self.error = error
        self.calls = []

    async def extract(self, email_body, sender_email, subject=None):
        self.calls.append((email_body, sender_email, subject))
        if self.error is not None:
            raise self.error
        return self.parsed.model_copy(deep=True)
