"""
test_publisher_resolver.py — Tests for services/publisher_resolver.py

Covers: strict vs best_candidate matching, shadow creation (token, expiry,
audit row), shadow reuse on reprocessing, the no-false-merge property,
and hard-failure translation to PublisherResolutionError.

Called by: pytest
Depends on: publisher_intake.services.publisher_resolver, conftest factories
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from conftest import make_parsed, make_publisher
from sqlalchemy.exc import OperationalError

from publisher_intake.config import PipelineConfig
from publisher_intake.exceptions import PublisherResolutionError
from publisher_intake.models import Publisher, PublisherAutomationLog
from publisher_intake.services.publisher_resolver import (
    find_existing_publisher,
    generate_secure_token,
    resolve_publisher,
)

# ── Token ────────────────────────────────────────────────────────────


def test_secure_token_is_sha256_hex_and_unique():
    tokens = {generate_secure_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) == 64 and int(t, 16) >= 0 for t in tokens)


# ── Strict policy ────────────────────────────────────────────────────


class TestStrict:
    def test_matches_active_verified(self, db_session, config):
        pub = make_publisher(db_session, "editor@techblog.io")
        resolved = resolve_publisher(db_session, make_parsed("Editor@TechBlog.io"), None, config)
        assert resolved.publisher.id == pub.id
        assert resolved.is_existing is True
        assert resolved.match_method == "email_exact"

    def test_ignores_unverified_active(self, db_session, config):
        make_publisher(db_session, "editor@techblog.io", email_verified=False)
        assert find_existing_publisher(db_session, "editor@techblog.io", "strict") is None

    def test_ignores_suspended(self, db_session, config):
        make_publisher(db_session, "editor@techblog.io", account_status="suspended")
        assert find_existing_publisher(db_session, "editor@techblog.io", "strict") is None

    def test_reuses_existing_shadow(self, db_session, config):
        shadow = make_publisher(db_session, "editor@techblog.io", account_status="shadow", email_verified=False)
        resolved = resolve_publisher(db_session, make_parsed(), None, config)
        assert resolved.publisher.id == shadow.id
        assert resolved.is_existing is False
        assert resolved.match_method == "shadow_reuse"
        assert db_session.query(Publisher).count() == 1


# ── Best-candidate policy ────────────────────────────────────────────


class TestBestCandidate:
    def test_prefers_active_over_shadow(self, db_session):
        make_publisher(db_session, "editor@techblog.io", account_status="shadow", email_verified=False)
        active = make_publisher(db_session, "editor@techblog.io", account_status="active", email_verified=False)
        found = find_existing_publisher(db_session, "editor@techblog.io", "best_candidate")
        assert found.id == active.id

    def test_prefers_verified_within_status(self, db_session):
        make_publisher(db_session, "editor@techblog.io", email_verified=False)
        verified = make_publisher(db_session, "editor@techblog.io", email_verified=True)
        found = find_existing_publisher(db_session, "editor@techblog.io", "best_candidate")
        assert found.id == verified.id

    def test_matches_unverified_active(self, db_session):
        pub = make_publisher(db_session, "editor@techblog.io", email_verified=False)
        resolved = resolve_publisher(
            db_session, make_parsed(), None, PipelineConfig(match_policy="best_candidate")
        )
        assert resolved.publisher.id == pub.id
        assert resolved.is_existing is True
        assert resolved.match_method == "email_best_candidate"

    def test_policy_argument_overrides_config(self, db_session, config):
        pub = make_publisher(db_session, "editor@techblog.io", email_verified=False)
        resolved = resolve_publisher(db_session, make_parsed(), None, config, policy="best_candidate")
        assert resolved.publisher.id == pub.id

    def test_unknown_policy(self, db_session):
        with pytest.raises(ValueError):
            find_existing_publisher(db_session, "a@b.com", "fuzzy")


# ── Shadow creation ──────────────────────────────────────────────────


class TestShadowCreation:
    def test_creates_shadow(self, db_session, config):
        parsed = make_parsed("new@publisher.com", confidence=0.66)
        resolved = resolve_publisher(db_session, parsed, None, config)
        pub = resolved.publisher

        assert resolved.is_existing is False
        assert resolved.match_method == "new_creation"
        assert pub.account_status == "shadow"
        assert pub.email_verified is False
        assert pub.email == "new@publisher.com"
        assert pub.contact_name == "Dana Editor"
        assert pub.confidence_score == 0.66
        assert len(pub.invitation_token) == 64

        expires = pub.invitation_expires_at
        expected = datetime.now(timezone.utc) + timedelta(days=config.invitation_expiry_days)
        assert abs((expires - expected).total_seconds()) < 60

    def test_creation_is_audited(self, db_session, config):
        resolved = resolve_publisher(db_session, make_parsed("new@publisher.com"), None, config)
        row = db_session.query(PublisherAutomationLog).filter_by(action="created").one()
        assert row.publisher_id == resolved.publisher.id
        assert row.match_method == "new_creation"
        assert row.action_status == "success"

    def test_second_resolve_reuses_shadow(self, db_session, config):
        first = resolve_publisher(db_session, make_parsed("new@publisher.com"), None, config)
        second = resolve_publisher(db_session, make_parsed("NEW@publisher.com"), None, config)
        assert first.publisher.id == second.publisher.id
        assert db_session.query(Publisher).count() == 1

    def test_auto_approved_shadow_is_reused(self, db_session, config):
        first = resolve_publisher(db_session, make_parsed("new@publisher.com"), None, config)
        first.publisher.account_status = "active"
        db_session.commit()

        second = resolve_publisher(db_session, make_parsed("new@publisher.com"), None, config)
        assert second.publisher.id == first.publisher.id
        assert second.is_existing is False
        assert second.match_method == "prior_extraction"

    def test_manual_unverified_active_is_not_reused(self, db_session, config):
        make_publisher(db_session, "new@publisher.com", email_verified=False, source="manual")
        resolved = resolve_publisher(db_session, make_parsed("new@publisher.com"), None, config)
        assert resolved.match_method == "new_creation"


# ── No false merges ──────────────────────────────────────────────────


class TestNoFalseMerge:
    @pytest.mark.parametrize("policy", ["strict", "best_candidate"])
    def test_same_company_and_domain_different_emails(self, db_session, config, policy):
        a = make_parsed("alice@techblog.io", company="TechBlog Media", domains=("techblog.io",))
        b = make_parsed("bob@techblog.io", company="TechBlog Media", domains=("techblog.io",))

        first = resolve_publisher(db_session, a, None, config, policy=policy)
        second = resolve_publisher(db_session, b, None, config, policy=policy)

        assert first.publisher.id != second.publisher.id
        assert db_session.query(Publisher).count() == 2

    def test_existing_publisher_same_domain_not_matched(self, db_session, config):
        make_publisher(db_session, "owner@techblog.io", company_name="TechBlog Media")
        resolved = resolve_publisher(db_session, make_parsed("intern@techblog.io"), None, config)
        assert resolved.is_existing is False
        assert resolved.publisher.email == "intern@techblog.io"


# ── Failures ─────────────────────────────────────────────────────────


class TestFailures:
    def test_lookup_failure_raises_resolution_error(self, db_session, config):
        err = OperationalError("SELECT", {}, Exception("db gone"))
        with patch(
            "publisher_intake.services.publisher_resolver.find_existing_publisher", side_effect=err
        ):
            with pytest.raises(PublisherResolutionError):
                resolve_publisher(db_session, make_parsed(), None, config)

    def test_insert_failure_raises_resolution_error(self, db_session, config):
        err = OperationalError("INSERT", {}, Exception("disk full"))
        with patch.object(db_session, "flush", side_effect=err):
            with pytest.raises(PublisherResolutionError):
                resolve_publisher(db_session, make_parsed("new@publisher.com"), None, config)
