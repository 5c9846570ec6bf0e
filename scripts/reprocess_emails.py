#!/usr/bin/env python3
"""Re-run the publisher email pipeline for failed or stuck email logs.

Safe to repeat: every write the pipeline makes is an existence-checked
upsert, so reprocessing never duplicates publishers, websites, offerings or
pricing rules.

Preview (default statuses: failed, pending):
    python scripts/reprocess_emails.py --dry-run

Reprocess up to 20 failed logs with the multi-stage extractor:
    python scripts/reprocess_emails.py --status failed --limit 20 --strategy multi_stage
"""

import argparse
import asyncio
import sys

from loguru import logger
from sqlalchemy.orm import Session

from publisher_intake.database import SessionLocal
from publisher_intake.exceptions import IntakeError
from publisher_intake.http_client import close_clients
from publisher_intake.logging_config import setup_logging
from publisher_intake.models import EmailProcessingLog
from publisher_intake.services.email_pipeline import reprocess_email_log
from publisher_intake.services.extraction import get_extractor

DEFAULT_STATUSES = ("failed", "pending")


def select_logs(db: Session, statuses, limit: int) -> list[EmailProcessingLog]:
    return (
        db.query(EmailProcessingLog)
        .filter(EmailProcessingLog.status.in_(list(statuses)))
        .order_by(EmailProcessingLog.created_at)
        .limit(limit)
        .all()
    )


async def reprocess(db: Session, statuses, limit: int, dry_run: bool = False, strategy: str | None = None) -> dict:
    logs = select_logs(db, statuses, limit)
    report = {"selected": len(logs), "processed": 0, "disqualified": 0, "failed": 0}
    if dry_run:
        for log in logs:
            print(f"  would reprocess {log.id}  {log.status:8s}  {log.email_from}")
        return report

    extractor = get_extractor(strategy)
    for log in logs:
        try:
            publisher_id = await reprocess_email_log(db, log, extractor=extractor)
        except IntakeError as e:
            logger.warning("Reprocessing {} failed: {}", log.id, e)
            report["failed"] += 1
            continue
        if publisher_id:
            report["processed"] += 1
        else:
            report["disqualified"] += 1
    return report


async def _amain(args) -> dict:
    db = SessionLocal()
    try:
        return await reprocess(db, args.status, args.limit, dry_run=args.dry_run, strategy=args.strategy)
    finally:
        db.close()
        await close_clients()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Reprocess publisher email logs")
    parser.add_argument("--status", action="append", choices=["failed", "pending", "retrying", "processing"],
                        help="Log status to select (repeatable). Default: failed + pending")
    parser.add_argument("--limit", type=int, default=50, help="Maximum logs to reprocess")
    parser.add_argument("--strategy", choices=["schema", "multi_stage"], help="Override EXTRACTION_STRATEGY")
    parser.add_argument("--dry-run", action="store_true", help="List matching logs without processing")
    args = parser.parse_args(argv)
    args.status = args.status or list(DEFAULT_STATUSES)

    setup_logging()
    print(f"{'DRY RUN' if args.dry_run else 'REPROCESS'} — statuses={','.join(args.status)} limit={args.limit}\n")
    report = asyncio.run(_amain(args))

    print("\n── Summary ──")
    for key, value in report.items():
        print(f"  {key:14s} {value}")
    return 1 if report["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
