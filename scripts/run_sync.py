"""
Run one reconciliation pass from the command line (cron, manual recovery).

Usage:
    python -m scripts.run_sync                  # full sync (import then export)
    python -m scripts.run_sync --mode import    # sheet -> database only
    python -m scripts.run_sync --mode export    # database -> sheet only
    python -m scripts.run_sync --no-email       # skip the result email
"""
import argparse
import asyncio
import json
import logging
import sys

from clientsync.config import get_settings
from clientsync.database import dispose_engine, get_session_factory
from clientsync.errors import StoreConnectionError
from clientsync.schemas.sync import SyncKind, SyncResult
from clientsync.services.portal import build_portal
from clientsync.utils.logging import configure_structured_logging
from clientsync.utils.redis import close_redis

logger = logging.getLogger(__name__)

MODES = {
    "full": SyncKind.FULL,
    "import": SyncKind.IMPORT,
    "export": SyncKind.EXPORT,
}


async def run(mode: str, send_email: bool) -> int:
    settings = get_settings()
    if not send_email:
        settings = settings.model_copy(update={"sendgrid_api_key": ""})
    portal = build_portal(settings, get_session_factory())
    try:
        try:
            await portal.clients.connect()
        except StoreConnectionError as e:
            result = SyncResult(kind=MODES[mode]).fail(f"Sync failed: {str(e)}")
        else:
            result = await portal.scheduler.run_pass(MODES[mode])
    finally:
        await dispose_engine()
        await close_redis()

    print(json.dumps(result.to_api(), indent=2))
    if not result.success:
        logger.error("Sync failed: %s", result.message)
        return 1
    logger.info("Sync finished: %s", result.message)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one client sheet sync pass")
    parser.add_argument("--mode", choices=sorted(MODES), default="full")
    parser.add_argument("--no-email", action="store_true", help="Do not send the result email")
    args = parser.parse_args()
    configure_structured_logging(get_settings().log_level, json_output=False)
    sys.exit(asyncio.run(run(args.mode, not args.no_email)))


if __name__ == "__main__":
    main()
