"""
Player profile and settings service.

Profiles are keyed by wallet address and created lazily the first time a
wallet logs in. They carry two independent ratings:
- bot_elo: a ladder rank moved by one point per bot game, never below 1,
  used to pick a bot opponent of similar strength
- multiplayer_elo: a standard ELO rating updated after tournament games
"""

import logging
import random
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pollux.config import settings
from pollux.db.models import PlayerProfile, PlayerSettings, utc_now
from pollux.errors import NotFoundError, ValidationError
from pollux.players.elo import EloCalculator, EloUpdate

logger = logging.getLogger(__name__)

BOT_RESULTS = ("win", "loss", "draw")
SETTINGS_FIELDS = ("confirm_moves", "highlight_legal_moves", "auto_queen_promotion")

BOT_RANK_SPREAD = 10
BOT_RANK_MIN = 1
BOT_RANK_MAX = 1000


def random_bot_rank(player_rank: int, rng: Optional[random.Random] = None) -> int:
    """
    Pick a bot rank within BOT_RANK_SPREAD of the player's rank.

    e.g. rank 20 -> uniform in 10..30, rank 3 -> uniform in 1..13.
    """
    rng = rng or random
    low = max(BOT_RANK_MIN, player_rank - BOT_RANK_SPREAD)
    high = min(BOT_RANK_MAX, player_rank + BOT_RANK_SPREAD)
    return rng.randint(low, high)


class PlayerProfileService:
    """
    Reads and mutates player profiles and settings.

    Usage:
        service = PlayerProfileService(db_session)
        profile = service.get_or_create_profile("rPlayerAddress...")
        service.update_bot_stats(profile.wallet_address, "win")
    """

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Profiles
    # =========================================================================

    def get_or_create_profile(self, wallet_address: str) -> PlayerProfile:
        """Return the wallet's profile, creating it and its settings if needed."""
        if not wallet_address:
            raise ValidationError("Wallet address required")

        profile = self.db.get(PlayerProfile, wallet_address)
        if profile:
            return profile

        logger.info("Creating profile for %s", wallet_address)
        profile = PlayerProfile(
            wallet_address=wallet_address,
            multiplayer_elo=settings.default_multiplayer_elo,
        )
        try:
            with self.db.begin_nested():
                self.db.add(profile)
        except IntegrityError:
            # Created concurrently by another request
            profile = self.db.get(PlayerProfile, wallet_address)
            if profile is None:
                raise
            return profile

        if self.db.get(PlayerSettings, wallet_address) is None:
            self.db.add(PlayerSettings(wallet_address=wallet_address))
            self.db.flush()

        return profile

    def get_player_stats(self, wallet_address: str) -> PlayerProfile:
        profile = self.db.get(PlayerProfile, wallet_address)
        if profile is None:
            raise NotFoundError("Profile not found", {"walletAddress": wallet_address})
        return profile

    def update_bot_stats(self, wallet_address: str, result: str) -> PlayerProfile:
        """
        Record the outcome of a bot game.

        Args:
            wallet_address: Player's wallet address
            result: 'win', 'loss' or 'draw'

        Returns:
            The updated profile
        """
        if result not in BOT_RESULTS:
            raise ValidationError(f"result must be one of {', '.join(BOT_RESULTS)}")

        profile = self.get_player_stats(wallet_address)
        before = profile.bot_elo

        if result == "win":
            profile.bot_elo = before + 1
            profile.bot_wins += 1
        elif result == "loss":
            profile.bot_elo = max(BOT_RANK_MIN, before - 1)
            profile.bot_losses += 1
        else:
            profile.bot_draws += 1

        profile.total_games += 1
        profile.updated_at = utc_now()
        self.db.flush()

        logger.info(
            "Bot %s for %s: rank %d -> %d", result, wallet_address, before, profile.bot_elo
        )
        return profile

    def record_multiplayer_result(
        self,
        white_address: str,
        black_address: str,
        result: str,
    ) -> EloUpdate:
        """Apply an ELO update and win/loss/draw counters to both players."""
        white = self.get_or_create_profile(white_address)
        black = self.get_or_create_profile(black_address)

        update = EloCalculator().calculate(white.multiplayer_elo, black.multiplayer_elo, result)
        white.multiplayer_elo = float(update.white_after)
        black.multiplayer_elo = float(update.black_after)

        if result == "tie":
            white.multiplayer_draws += 1
            black.multiplayer_draws += 1
        elif result == "white":
            white.multiplayer_wins += 1
            black.multiplayer_losses += 1
        else:
            black.multiplayer_wins += 1
            white.multiplayer_losses += 1

        now = utc_now()
        for profile in (white, black):
            profile.total_games += 1
            profile.updated_at = now
        self.db.flush()

        logger.info("Multiplayer rating update: %r", update)
        return update

    # =========================================================================
    # Settings
    # =========================================================================

    def get_player_settings(self, wallet_address: str) -> PlayerSettings:
        player_settings = self.db.get(PlayerSettings, wallet_address)
        if player_settings is None:
            raise NotFoundError("Settings not found", {"walletAddress": wallet_address})
        return player_settings

    def update_player_settings(self, wallet_address: str, **changes: bool) -> PlayerSettings:
        """Update any of the known preference flags; other keys are rejected."""
        unknown = set(changes) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        player_settings = self.get_player_settings(wallet_address)
        for field, value in changes.items():
            if value is not None:
                setattr(player_settings, field, bool(value))
        player_settings.updated_at = utc_now()
        self.db.flush()
        return player_settings
