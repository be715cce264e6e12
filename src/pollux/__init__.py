"""
Pollux - Chess wagering backend on Xahau

Players pay an entry fee from their Xaman wallet, get matched into a
tournament of the same size and fee, and play a timed game for the pool.

Main components:
- tournaments: Matchmaking, leave/cleanup and the expiry sweeps
- games: Game lifecycle, draw tiebreak, prize and refund bookkeeping
- players: Profiles, settings and ratings
- wallet: Xahau network selection and the Xaman payload client
- db: SQLAlchemy models and sessions
- web: FastAPI JSON API
"""

__version__ = "1.0.0"
