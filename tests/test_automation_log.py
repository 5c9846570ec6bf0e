"""Tests for the append-only automation audit log."""

import pytest
from conftest import make_email_log, make_publisher

from publisher_intake.models import PublisherAutomationLog
from publisher_intake.services.automation_log import log_automation, log_failure


def test_log_automation_inserts_row(db_session):
    pub = make_publisher(db_session)
    log = make_email_log(db_session)

    row = log_automation(
        db_session,
        "updated",
        email_log_id=log.id,
        publisher_id=pub.id,
        previous_data={"contact_name": None},
        new_data={"contact_name": "Dana"},
        fields_updated=["contact_name"],
        confidence=0.9,
        match_method="email_exact",
    )
    db_session.commit()

    stored = db_session.get(PublisherAutomationLog, row.id)
    assert stored.action == "updated"
    assert stored.action_status == "success"
    assert stored.new_data == {"contact_name": "Dana"}
    assert stored.details == {}
    assert stored.created_at is not None


def test_log_failure_records_error_metadata(db_session):
    try:
        raise RuntimeError("store unavailable")
    except RuntimeError as e:
        row = log_failure(db_session, "reconcile_website", e, details={"domain": "techblog.io"})

    assert row.action_status == "failed"
    assert row.details["error"] == "store unavailable"
    assert row.details["error_type"] == "RuntimeError"
    assert "RuntimeError: store unavailable" in row.details["traceback"]
    assert row.details["domain"] == "techblog.io"


def test_rows_cannot_be_updated(db_session):
    row = log_automation(db_session, "created")
    db_session.commit()

    row.action_status = "failed"
    with pytest.raises(ValueError, match="append-only"):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(PublisherAutomationLog, row.id).action_status == "success"


def test_corrections_are_new_rows(db_session):
    log_automation(db_session, "created")
    log_automation(db_session, "created", status="failed")
    db_session.commit()
    assert db_session.query(PublisherAutomationLog).count() == 2
