"""
test_reprocess_script.py — Tests for scripts/reprocess_emails.py

Covers: status selection, dry-run listing, reprocessing with a fake
extractor (processed / disqualified / failed tallies), and the CLI exit code.

Called by: pytest
Depends on: scripts/reprocess_emails.py, conftest factories
"""

from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeExtractor, make_email_log, make_offering, make_parsed

from publisher_intake.exceptions import CompletionError
from publisher_intake.models import Publisher
from scripts import reprocess_emails
from scripts.reprocess_emails import main, reprocess, select_logs

OFFER = "Guest posts are $250 per article."


@pytest.fixture()
def logs(db_session):
    return {
        "failed": make_email_log(db_session, "a@alpha.com", OFFER, status="failed"),
        "pending": make_email_log(db_session, "b@beta.com", OFFER, status="pending"),
        "parsed": make_email_log(db_session, "c@gamma.com", OFFER, status="parsed"),
    }


def test_select_logs_filters_by_status(db_session, logs):
    selected = select_logs(db_session, ["failed", "pending"], limit=10)
    assert {log.id for log in selected} == {logs["failed"].id, logs["pending"].id}


def test_select_logs_respects_limit(db_session, logs):
    assert len(select_logs(db_session, ["failed", "pending", "parsed"], limit=2)) == 2


@pytest.mark.asyncio
async def test_dry_run_touches_nothing(db_session, logs, capsys):
    with patch.object(reprocess_emails, "get_extractor") as factory:
        report = await reprocess(db_session, ["failed"], 10, dry_run=True)

    assert report == {"selected": 1, "processed": 0, "disqualified": 0, "failed": 0}
    factory.assert_not_called()
    assert logs["failed"].id in capsys.readouterr().out
    assert logs["failed"].status == "failed"


@pytest.mark.asyncio
async def test_reprocess_tallies_outcomes(db_session, logs):
    extractor = FakeExtractor(make_parsed("a@alpha.com", domains=("alpha.com",)))
    with patch.object(reprocess_emails, "get_extractor", return_value=extractor) as factory:
        report = await reprocess(db_session, ["failed"], 10, strategy="multi_stage")

    factory.assert_called_once_with("multi_stage")
    assert report["processed"] == 1
    assert db_session.query(Publisher).count() == 1
    assert logs["failed"].status == "parsed"


@pytest.mark.asyncio
async def test_disqualified_logs_counted(db_session, logs):
    extractor = FakeExtractor(make_parsed(offerings=[make_offering(base_price=0)]))
    with patch.object(reprocess_emails, "get_extractor", return_value=extractor):
        report = await reprocess(db_session, ["pending"], 10)
    assert report["disqualified"] == 1
    assert report["processed"] == 0


@pytest.mark.asyncio
async def test_extraction_failures_counted_and_skipped(db_session, logs):
    extractor = FakeExtractor(error=CompletionError("timeout", attempts=3))
    with patch.object(reprocess_emails, "get_extractor", return_value=extractor):
        report = await reprocess(db_session, ["failed", "pending"], 10)

    assert report["failed"] == 2
    assert len(extractor.calls) == 2
    assert logs["failed"].status == "failed"


def test_main_dry_run_exit_code(db_session, logs, capsys):
    with patch.object(reprocess_emails, "SessionLocal", return_value=db_session), patch.object(
        reprocess_emails, "close_clients", new_callable=AsyncMock
    ), patch.object(reprocess_emails, "setup_logging"):
        code = main(["--dry-run", "--status", "pending"])

    out = capsys.readouterr().out
    assert code == 0
    assert "DRY RUN" in out
    assert logs["pending"].id in out


def test_main_rejects_unknown_status():
    with pytest.raises(SystemExit):
        main(["--status", "archived"])
