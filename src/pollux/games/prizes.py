"""
Prize and refund bookkeeping.

Every terminal transition that moves money writes PrizeDistribution rows
in the same transaction as the state change. After the transaction commits,
the rows are handed to PrizeNotifier, which POSTs them to an external
payout endpoint. That call is best effort: failures are logged, never
retried, and never surface to the player.
"""

import logging
from decimal import Decimal, ROUND_DOWN
from typing import Iterable, Optional

import requests
from sqlalchemy.orm import Session

from pollux.config import settings
from pollux.db.models import PrizeDistribution, Tournament, TournamentPlayer

logger = logging.getLogger(__name__)

AMOUNT_QUANTUM = Decimal("0.000001")


def _share(total: Decimal, parts: int) -> Decimal:
    return (Decimal(total) / parts).quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)


def record_prize(
    db: Session,
    tournament: Tournament,
    winners: list[str],
    distribution_type: str,
    reason: Optional[str] = None,
) -> list[PrizeDistribution]:
    """
    Record the prize pool as owed to the winner(s).

    A single winner takes the whole pool; several winners (a split
    result) share it equally.
    """
    if not winners:
        return []

    amount = _share(tournament.prize_pool, len(winners))
    rows = [
        PrizeDistribution(
            tournament_id=tournament.id,
            recipient_address=address,
            amount=amount,
            currency=tournament.currency,
            issuer=tournament.issuer,
            status="pending",
            distribution_type=distribution_type,
            reason=reason,
        )
        for address in winners
    ]
    db.add_all(rows)
    db.flush()

    logger.info(
        "Prize %s %s recorded for tournament %s (%s): %s",
        amount, tournament.currency, tournament.id, distribution_type, ", ".join(winners),
    )
    return rows


def record_refunds(
    db: Session,
    tournament: Tournament,
    entries: Iterable[TournamentPlayer],
    reason: str,
) -> list[PrizeDistribution]:
    """
    Record an entry-fee refund for each player row.

    Refunds are keyed on the entry (the tournament_players row), not the
    wallet: a wallet that left and rejoined paid twice and is owed twice.
    Entries that already have a refund are skipped, so a sweep and an
    explicit refund request never double-pay the same entry.
    """
    already = {
        entry_id
        for (entry_id,) in db.query(PrizeDistribution.entry_id).filter(
            PrizeDistribution.tournament_id == tournament.id,
            PrizeDistribution.distribution_type == "refund",
        )
    }

    rows = []
    for entry in entries:
        if entry.id in already:
            continue
        already.add(entry.id)
        rows.append(
            PrizeDistribution(
                tournament_id=tournament.id,
                recipient_address=entry.player_address,
                amount=Decimal(tournament.entry_fee),
                currency=tournament.currency,
                issuer=tournament.issuer,
                status="pending",
                distribution_type="refund",
                reason=reason,
                entry_id=entry.id,
            )
        )

    if rows:
        db.add_all(rows)
        db.flush()
        logger.info(
            "Recorded %d refund(s) for tournament %s: %s", len(rows), tournament.id, reason
        )
    return rows


def distribution_payload(row: PrizeDistribution) -> dict:
    return {
        "tournamentId": row.tournament_id,
        "recipient": row.recipient_address,
        "amount": str(row.amount),
        "currency": row.currency,
        "issuer": row.issuer,
        "type": row.distribution_type,
        "reason": row.reason,
    }


class PrizeNotifier:
    """
    Best-effort client for the payout endpoint.

    Usage:
        notifier = PrizeNotifier()
        notifier.notify(rows)  # after the transaction has committed
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None,
    ):
        self.url = url if url is not None else settings.prize_distribution_url
        self.timeout = timeout or settings.prize_request_timeout_seconds
        self.http = http or requests.Session()

    def notify(self, rows: list[PrizeDistribution]) -> bool:
        """POST the distributions; returns True when the endpoint accepted them."""
        if not rows:
            return False
        if not self.url:
            logger.debug("No prize distribution endpoint configured, %d row(s) left pending", len(rows))
            return False

        body = {"distributions": [distribution_payload(row) for row in rows]}
        try:
            response = self.http.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Prize distribution call failed (%d row(s)): %s", len(rows), exc)
            return False

        logger.info("Prize distribution endpoint notified of %d row(s)", len(rows))
        return True
