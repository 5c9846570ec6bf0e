"""
routers/webhooks.py — Inbound publisher email webhook

Records each inbound reply as an EmailProcessingLog and runs the pipeline
in a background task so the sender's webhook gets an immediate 202.

Business Rules:
- X-Webhook-Secret must match settings.webhook_secret (timing-safe) when a
  secret is configured
- A repeated delivery with the same message_id reuses the existing log row
- Background processing opens its own session; the request session is
  closed by the time it runs
- Extraction failures are already recorded on the log row by the pipeline;
  the background task only logs them

Called by: main.py (router mount)
Depends on: services/email_pipeline.py, schemas/webhooks.py
"""

import hmac

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from ..config import settings
from ..database import SessionLocal, get_db
from ..exceptions import IntakeError
from ..schemas.webhooks import PublisherEmailPayload, WebhookAccepted, WebhookHealth
from ..services.email_pipeline import process_publisher_email, record_inbound_email

router = APIRouter(tags=["webhooks"])


def verify_webhook_secret(x_webhook_secret: str | None = Header(None)) -> None:
    expected = settings.webhook_secret
    if not expected:
        return
    if not hmac.compare_digest(expected, x_webhook_secret or ""):
        raise HTTPException(401, "Invalid webhook secret")


async def run_pipeline_in_background(
    email_log_id: str,
    email_body: str,
    sender_email: str,
    subject: str | None,
    campaign_type: str,
) -> None:
    db = SessionLocal()
    try:
        await process_publisher_email(
            db, email_log_id, email_body, sender_email, subject, campaign_type
        )
    except IntakeError as e:
        logger.error("Background processing of email {} failed: {}", email_log_id, e)
    except Exception:
        logger.exception("Unexpected failure processing email {}", email_log_id)
    finally:
        db.close()


@router.post(
    "/api/webhooks/publisher-email",
    status_code=202,
    response_model=WebhookAccepted,
    dependencies=[Depends(verify_webhook_secret)],
)
async def receive_publisher_email(
    payload: PublisherEmailPayload,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Record an inbound publisher reply and queue it for processing."""
    log = record_inbound_email(
        db,
        email_from=payload.email_from,
        raw_content=payload.content,
        subject=payload.subject,
        campaign_type=payload.campaign_type,
        campaign_id=payload.campaign_id,
        message_id=payload.message_id,
        received_at=payload.received_at,
    )
    if log.status in ("parsed", "processing"):
        logger.info("Email log {} already {} — not reprocessing", log.id, log.status)
        return WebhookAccepted(status="duplicate", email_log_id=log.id)

    background_tasks.add_task(
        run_pipeline_in_background,
        log.id,
        log.raw_content,
        log.email_from,
        log.email_subject,
        log.campaign_type or "outreach",
    )
    logger.info("Accepted email from {} as log {}", log.email_from, log.id)
    return WebhookAccepted(email_log_id=log.id)


@router.get("/api/webhooks/publisher-email", response_model=WebhookHealth)
async def publisher_email_health():
    """Health check for the webhook sender's configuration screen."""
    return WebhookHealth(
        extraction_strategy=settings.extraction_strategy,
        match_policy=settings.publisher_match_policy,
    )
