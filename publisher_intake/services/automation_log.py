"""Append-only audit writer for automation decisions.

Rows are only ever inserted. The mapper refuses updates (see
models/email_processing.py), so corrections are new rows.
"""

import traceback

from loguru import logger
from sqlalchemy.orm import Session

from publisher_intake.models import PublisherAutomationLog


def log_automation(
    db: Session,
    action: str,
    *,
    email_log_id: str | None = None,
    publisher_id: str | None = None,
    status: str = "success",
    previous_data: dict | None = None,
    new_data: dict | None = None,
    fields_updated: list[str] | None = None,
    confidence: float | None = None,
    match_method: str | None = None,
    details: dict | None = None,
) -> PublisherAutomationLog:
    """Insert one audit row and flush it. The caller owns the commit."""
    row = PublisherAutomationLog(
        email_log_id=email_log_id,
        publisher_id=publisher_id,
        action=action,
        action_status=status,
        previous_data=previous_data,
        new_data=new_data,
        fields_updated=fields_updated,
        confidence=confidence,
        match_method=match_method,
        details=details or {},
    )
    db.add(row)
    db.flush()
    logger.debug("Automation log: {} [{}] publisher={} email={}", action, status, publisher_id, email_log_id)
    return row


def log_failure(
    db: Session,
    action: str,
    exc: BaseException,
    *,
    email_log_id: str | None = None,
    publisher_id: str | None = None,
    details: dict | None = None,
) -> PublisherAutomationLog:
    """Record a failed step with its message and traceback."""
    payload = dict(details or {})
    payload["error"] = str(exc)
    payload["error_type"] = type(exc).__name__
    payload["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))[-4000:]
    return log_automation(
        db,
        action,
        email_log_id=email_log_id,
        publisher_id=publisher_id,
        status="failed",
        details=payload,
    )
