"""
routers/review_queue.py — Read-only view of the email review queue

Called by: main.py (router mount)
Depends on: models.EmailReviewQueue, schemas/webhooks.py
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import EmailReviewQueue
from ..schemas.webhooks import ReviewQueueItem, ReviewQueueResponse

router = APIRouter(tags=["review-queue"])


@router.get("/api/review-queue", response_model=ReviewQueueResponse)
async def list_review_queue(
    status: str = Query("pending", max_length=50),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Queue entries for a status, most urgent first."""
    query = db.query(EmailReviewQueue).filter(EmailReviewQueue.status == status)
    total = query.count()
    rows = (
        query.order_by(EmailReviewQueue.priority.desc(), EmailReviewQueue.created_at)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return ReviewQueueResponse(
        items=[ReviewQueueItem.model_validate(r) for r in rows],
        total=total,
    )
