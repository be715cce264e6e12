#!/usr/bin/env python3
"""
Abandon games stuck in progress.

A game still running past --minutes (default: STALE_GAME_MINUTES) has its
clocks enforced first; anything still running is cancelled as abandoned,
its tournament cancelled and both entry fees refunded.
"""

import argparse
import logging
from datetime import timedelta

from pollux.config import settings
from pollux.db import TournamentGame, get_session, utc_now
from pollux.games.lifecycle import GameService
from pollux.logging_config import configure_logging
from pollux.statuses import IN_PROGRESS
from pollux.tournaments.expiry import abandon_stale_games

logger = logging.getLogger("pollux.scripts.cleanup_stale_games")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Abandon in-progress games older than the stale cutoff.")
    parser.add_argument(
        "--minutes",
        type=int,
        default=settings.stale_game_minutes,
        help="Age in minutes after which a running game is stale.",
    )
    parser.add_argument("--dry-run", action="store_true", help="List stale games without changing them.")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    configure_logging()

    now = utc_now()

    with get_session() as session:
        if args.dry_run:
            cutoff = now - timedelta(minutes=args.minutes)
            stale = (
                session.query(TournamentGame)
                .filter(TournamentGame.status == IN_PROGRESS, TournamentGame.created_at < cutoff)
                .order_by(TournamentGame.created_at)
                .all()
            )
            for game in stale:
                print(f"{game.id}  created {game.created_at:%Y-%m-%d %H:%M}  {game.player_white} vs {game.player_black}")
            print(f"{len(stale)} stale game(s)")
            return 0

        games = GameService(session)
        abandoned = abandon_stale_games(session, now, games, stale_minutes=args.minutes)
        session.commit()
        games.dispatch_notifications()

    print(f"Abandoned {len(abandoned)} game(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
