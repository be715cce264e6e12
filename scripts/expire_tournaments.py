#!/usr/bin/env python3
"""
Run the expiry/cleanup sweeps once.

Meant for cron, as an alternative to hitting GET /api/tournaments/expire:

    */1 * * * * python scripts/expire_tournaments.py

Expires stale waiting tournaments, cancels games with no first move and
abandons games running past the stale cutoff. Refunds are recorded and the
payout endpoint (if configured) is notified after commit.
"""

import argparse
import logging

from pollux.db import get_session
from pollux.games.prizes import PrizeNotifier
from pollux.logging_config import configure_logging
from pollux.tournaments.expiry import cleanup_all_expired

logger = logging.getLogger("pollux.scripts.expire_tournaments")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Expire waiting tournaments and clean up dead games.")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change, then roll back.")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL for this run.")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    configure_logging(level=args.log_level)

    with get_session() as session:
        summary = cleanup_all_expired(session)
        if args.dry_run:
            session.rollback()
            logger.info("Dry run, nothing persisted")
        else:
            session.commit()
            PrizeNotifier().notify(summary.distributions)

        print(
            f"Expired: {len(summary.expired_tournaments)} | "
            f"First-move timeouts: {len(summary.first_move_timeouts)} | "
            f"Abandoned: {len(summary.abandoned_games)}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
