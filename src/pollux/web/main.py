"""
HTTP JSON API for Pollux.

Handlers are thin: parse the body, call a service, commit, then hand any
new prize/refund rows to the payout notifier. Services raise PolluxError
subclasses, which the exception handlers below turn into
``{"error": ..., ...}`` envelopes.

Run locally:
    uvicorn pollux.web.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from pollux import __version__
from pollux.config import settings
from pollux.db.models import PlayerProfile, PlayerSettings
from pollux.db.session import get_db
from pollux.errors import PolluxError, UnauthorizedError, ValidationError
from pollux.games.lifecycle import GameService
from pollux.games.prizes import PrizeNotifier
from pollux.logging_config import configure_logging
from pollux.players.profiles import PlayerProfileService, random_bot_rank
from pollux.tournaments.expiry import cleanup_all_expired
from pollux.tournaments.matchmaking import TournamentService
from pollux.wallet.xaman import XamanClient, parse_webhook
from pollux.web.schemas import (
    BotResultRequest,
    CleanupRequest,
    ForfeitRequest,
    JoinRequest,
    MoveRequest,
    PaymentRequest,
    PayloadLookupRequest,
    RefundRequest,
    ResignRequest,
    SettingsUpdate,
    SigninRequest,
    TournamentPlayerRequest,
)

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store, no-cache, must-revalidate", "Pragma": "no-cache"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Pollux API %s starting (network: %s)", __version__, settings.xahau_network)
    yield


app = FastAPI(title="Pollux Chess", version=__version__, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error envelopes
# =============================================================================

@app.exception_handler(PolluxError)
async def pollux_error_handler(request: Request, exc: PolluxError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        ".".join(str(part) for part in error["loc"] if part != "body")
        for error in exc.errors()
    ]
    return JSONResponse({"error": "Missing required fields", "details": details}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# =============================================================================
# Dependencies
# =============================================================================

def get_prize_notifier() -> PrizeNotifier:
    return PrizeNotifier()


def get_xaman_client() -> XamanClient:
    return XamanClient()


def get_game_service(
    db: Session = Depends(get_db),
    notifier: PrizeNotifier = Depends(get_prize_notifier),
) -> GameService:
    return GameService(db, notifier)


def _commit(db: Session, games: GameService) -> None:
    db.commit()
    games.dispatch_notifications()


def _serialize_profile(profile: PlayerProfile) -> dict:
    return {
        "walletAddress": profile.wallet_address,
        "botElo": profile.bot_elo,
        "multiplayerElo": profile.multiplayer_elo,
        "botWins": profile.bot_wins,
        "botLosses": profile.bot_losses,
        "botDraws": profile.bot_draws,
        "multiplayerWins": profile.multiplayer_wins,
        "multiplayerLosses": profile.multiplayer_losses,
        "multiplayerDraws": profile.multiplayer_draws,
        "totalGames": profile.total_games,
        "createdAt": profile.created_at.isoformat() if profile.created_at else None,
    }


def _serialize_settings(player_settings: PlayerSettings) -> dict:
    return {
        "walletAddress": player_settings.wallet_address,
        "confirmMoves": player_settings.confirm_moves,
        "highlightLegalMoves": player_settings.highlight_legal_moves,
        "autoQueenPromotion": player_settings.auto_queen_promotion,
    }


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


# =============================================================================
# Tournaments
# =============================================================================

@app.post("/api/tournaments/join")
def join_tournament(
    body: JoinRequest,
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    result = TournamentService(db, games).join(
        player_address=body.player_address,
        tournament_size=body.tournament_size,
        entry_fee=body.entry_fee,
        currency=body.currency,
        issuer=body.issuer,
        signer_address=body.signer_address,
        tx_hash=body.tx_hash,
    )
    _commit(db, games)
    return JSONResponse(result.to_dict())


@app.post("/api/tournaments/leave")
def leave_tournament(
    body: TournamentPlayerRequest,
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    remaining = TournamentService(db, games).leave(body.player_address, body.tournament_id)
    _commit(db, games)
    return JSONResponse({
        "success": True,
        "message": "Left tournament successfully",
        "remainingPlayers": remaining,
    })


@app.post("/api/tournaments/cleanup")
def cleanup_player(
    body: CleanupRequest,
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    removed = TournamentService(db, games).remove_player_everywhere(body.player_address)
    _commit(db, games)
    if not removed:
        return JSONResponse({"success": True, "message": "No active tournaments", "removed": 0})
    return JSONResponse({
        "success": True,
        "message": "Player cleaned up from all tournaments",
        "removed": len(removed),
        "tournamentIds": removed,
    })


def _run_cleanup(db: Session, notifier: PrizeNotifier) -> JSONResponse:
    summary = cleanup_all_expired(db, games=GameService(db, notifier))
    db.commit()
    notifier.notify(summary.distributions)
    return JSONResponse(summary.to_dict())


@app.post("/api/tournaments/expire")
def expire_tournaments(
    db: Session = Depends(get_db),
    notifier: PrizeNotifier = Depends(get_prize_notifier),
):
    return _run_cleanup(db, notifier)


@app.get("/api/tournaments/expire")
def expire_tournaments_cron(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    notifier: PrizeNotifier = Depends(get_prize_notifier),
):
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise UnauthorizedError("Unauthorized")
    return _run_cleanup(db, notifier)


@app.post("/api/tournaments/forfeit")
def forfeit_tournament(
    body: ForfeitRequest,
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    result = games.forfeit_tournament(body.player_address, body.tournament_id, body.reason)
    _commit(db, games)
    return JSONResponse(result.to_dict())


@app.post("/api/tournaments/refund")
def refund_entry(
    body: RefundRequest,
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    refund = TournamentService(db, games).request_refund(
        body.player_address, body.tournament_id, body.reason
    )
    _commit(db, games)
    return JSONResponse({
        "success": True,
        "message": "Refund recorded",
        "playerAddress": refund.recipient_address,
        "tournamentId": refund.tournament_id,
        "amount": str(refund.amount),
        "currency": refund.currency,
        "status": refund.status,
    })


@app.get("/api/tournaments/check-tournament")
def check_tournament(
    tournament_id: Optional[str] = Query(None, alias="id"),
    db: Session = Depends(get_db),
):
    if not tournament_id:
        return JSONResponse({"exists": False}, status_code=400)

    exists, status = TournamentService(db).check_tournament(tournament_id)
    if not exists:
        return JSONResponse({"exists": False})
    return JSONResponse({"exists": True, "tournamentId": tournament_id, "status": status})


@app.get("/api/tournaments/check-player")
def check_player(
    address: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    if not address:
        raise ValidationError("Address required")

    active = games.check_player(address)
    _commit(db, games)
    return JSONResponse(active.to_dict())


@app.get("/api/tournaments/verify-wallet")
def verify_wallet(
    tournament_id: Optional[str] = Query(None, alias="tournamentId"),
    address: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    is_valid, message = TournamentService(db).verify_wallet_match(tournament_id, address)
    return JSONResponse({"isValid": is_valid, "message": message})


# =============================================================================
# Games
# =============================================================================

@app.get("/api/games/{game_id}")
def get_game(game_id: str, games: GameService = Depends(get_game_service)):
    return JSONResponse(games.snapshot(games.get_game(game_id)))


@app.post("/api/games/{game_id}/moves")
def submit_move(
    game_id: str,
    body: MoveRequest,
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    outcome = games.submit_move(game_id, body.player_address, body.move)
    _commit(db, games)
    return JSONResponse({
        "success": True,
        "applied": outcome.applied,
        "reason": outcome.reason,
        "game": games.snapshot(outcome.game),
    })


@app.post("/api/games/{game_id}/timeout")
def check_timeout(
    game_id: str,
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    check = games.check_timeout(game_id)
    _commit(db, games)
    return JSONResponse({
        "changed": check.changed,
        "reason": check.reason,
        "game": games.snapshot(check.game),
    })


@app.post("/api/games/{game_id}/resign")
def resign_game(
    game_id: str,
    body: ResignRequest,
    db: Session = Depends(get_db),
    games: GameService = Depends(get_game_service),
):
    game = games.resign(game_id, body.player_address)
    _commit(db, games)
    return JSONResponse({"success": True, "game": games.snapshot(game)})


# =============================================================================
# Profiles
# =============================================================================

@app.get("/api/profiles/{address}")
def get_profile(address: str, db: Session = Depends(get_db)):
    profile = PlayerProfileService(db).get_or_create_profile(address)
    db.commit()
    return JSONResponse(_serialize_profile(profile))


@app.post("/api/profiles/{address}/bot-result")
def record_bot_result(address: str, body: BotResultRequest, db: Session = Depends(get_db)):
    profile = PlayerProfileService(db).update_bot_stats(address, body.result)
    db.commit()
    return JSONResponse(_serialize_profile(profile))


@app.get("/api/profiles/{address}/settings")
def get_settings_for_player(address: str, db: Session = Depends(get_db)):
    service = PlayerProfileService(db)
    service.get_or_create_profile(address)
    player_settings = service.get_player_settings(address)
    db.commit()
    return JSONResponse(_serialize_settings(player_settings))


@app.patch("/api/profiles/{address}/settings")
def update_settings_for_player(address: str, body: SettingsUpdate, db: Session = Depends(get_db)):
    service = PlayerProfileService(db)
    service.get_or_create_profile(address)
    player_settings = service.update_player_settings(address, **body.model_dump(exclude_none=True))
    db.commit()
    return JSONResponse(_serialize_settings(player_settings))


@app.get("/api/profiles/{address}/bot-rank")
def get_bot_rank(address: str, db: Session = Depends(get_db)):
    profile = PlayerProfileService(db).get_player_stats(address)
    return JSONResponse({"playerRank": profile.bot_elo, "botRank": random_bot_rank(profile.bot_elo)})


# =============================================================================
# Wallet (Xaman)
# =============================================================================

@app.post("/api/auth/xaman/create-payload")
def create_payload(body: PaymentRequest, client: XamanClient = Depends(get_xaman_client)):
    ref = client.create_payment_payload(
        body.amount,
        currency=body.currency,
        issuer=body.issuer,
        memo=body.memo,
        network=body.network,
        return_url=body.return_url or f"{settings.base_url}/",
    )
    return JSONResponse(ref.to_dict())


@app.post("/api/payment")
def create_payment(body: PaymentRequest, client: XamanClient = Depends(get_xaman_client)):
    ref = client.create_payment_payload(
        body.amount,
        currency=body.currency,
        issuer=body.issuer,
        memo=body.memo,
        network=body.network,
        return_url=body.return_url,
    )
    return JSONResponse(ref.to_dict())


@app.post("/api/auth/xaman/create-signin")
def create_signin(
    body: Optional[SigninRequest] = None,
    client: XamanClient = Depends(get_xaman_client),
):
    body = body or SigninRequest()
    ref = client.create_signin_payload(return_url=body.return_url, network=body.network)
    return JSONResponse(ref.to_dict())


@app.post("/api/auth/xaman/get-payload")
def get_payload(body: PayloadLookupRequest, client: XamanClient = Depends(get_xaman_client)):
    return JSONResponse(client.get_payload(body.uuid))


@app.get("/api/auth/xaman/verify-signin/{uuid}")
def verify_signin(uuid: str, client: XamanClient = Depends(get_xaman_client)):
    status = client.verify_signin(uuid)
    return JSONResponse(status.to_dict(), headers=NO_STORE)


@app.post("/api/auth/xaman/webhook")
def xaman_webhook(payload: Optional[dict[str, Any]] = Body(None)):
    event = parse_webhook(payload or {})
    logger.info(
        "Xaman webhook: payload=%s signed=%s account=%s",
        event.uuid, event.signed, event.account,
    )
    return JSONResponse({"ok": True, "message": "Webhook received"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pollux.web.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
