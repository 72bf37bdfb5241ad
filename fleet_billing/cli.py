"""Command line entry point: serve the API or run a billing job once."""

import argparse
import asyncio
import json
from datetime import date
from typing import Optional, Sequence

import structlog

from fleet_billing.core.config import settings
from fleet_billing.core.dependencies import build_installment_processor, build_reminder_service
from fleet_billing.core.logging import setup_logging
from fleet_billing.infrastructure.database import db_manager

logger = structlog.get_logger(__name__)


async def process_installments(run_date: Optional[date] = None) -> dict:
    db_manager.init()
    try:
        async with db_manager.session() as session:
            processor = build_installment_processor(session)
            summary = await processor.run(today=run_date)
        return summary.to_dict()
    finally:
        await db_manager.close()


async def send_reminders(run_date: Optional[date] = None, days_ahead: Optional[int] = None) -> dict:
    db_manager.init()
    try:
        async with db_manager.session() as session:
            reminder_service = build_reminder_service(session)
            summary = await reminder_service.send_reminders(today=run_date, days_ahead=days_ahead)
        return {
            "due_date": summary.due_date,
            "candidates": summary.candidates,
            "sent": summary.sent,
            "skipped": summary.skipped,
            "failed": summary.failed,
        }
    finally:
        await db_manager.close()


async def init_db() -> dict:
    db_manager.init()
    try:
        await db_manager.create_schema()
    finally:
        await db_manager.close()
    return {"schema": "created"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fleet-billing", description=__doc__)
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--port", type=int, default=settings.port)
    serve.add_argument("--reload", action="store_true")

    process = subparsers.add_parser("process-installments", help="Charge due installments once")
    process.add_argument("--date", type=date.fromisoformat, dest="run_date", help="Run date (YYYY-MM-DD)")

    remind = subparsers.add_parser("send-reminders", help="Send upcoming installment reminders once")
    remind.add_argument("--date", type=date.fromisoformat, dest="run_date", help="Run date (YYYY-MM-DD)")
    remind.add_argument("--days-ahead", type=int, default=None)

    subparsers.add_parser("init-db", help="Create any missing billing tables")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("fleet_billing.main:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    setup_logging()

    if args.command == "process-installments":
        result = asyncio.run(process_installments(args.run_date))
    elif args.command == "send-reminders":
        result = asyncio.run(send_reminders(args.run_date, args.days_ahead))
    else:
        result = asyncio.run(init_db())

    logger.info("job_finished", command=args.command)
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
