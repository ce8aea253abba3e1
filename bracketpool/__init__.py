"""
bracketpool - Tournament brackets with prediction pools

Run a single-elimination bracket, let users predict every match for
round-weighted points, and optionally escrow an entry fee that is paid out
pro-rata to prediction accuracy.
"""

__version__ = "0.1.0"

from .bracket import (
    MAX_TEAMS,
    NO_EXPIRATION,
    BracketEngine,
    CompetitionState,
    MatchOutcome,
    matches_in_round,
    round_start,
    round_window,
)

from .predictions import (
    BASIS_POINTS,
    DEFAULT_POINTS_PER_ROUND,
    PredictionLedger,
    PredictionRecord,
)

from .escrow import (
    EscrowLedger,
    EscrowRewardManager,
)

from .errors import (
    AuthenticationError,
    BracketPoolError,
    BracketValidationError,
    CompetitionNotFoundError,
    ConfigurationError,
    EconomicError,
    ErrorCode,
    LedgerError,
    LifecycleError,
    NotOwnerError,
    UnsupportedOperationError,
    UserNotFoundError,
)

from .router import Router

__all__ = [
    # Version
    "__version__",
    # Bracket
    "MAX_TEAMS",
    "NO_EXPIRATION",
    "BracketEngine",
    "CompetitionState",
    "MatchOutcome",
    "matches_in_round",
    "round_start",
    "round_window",
    # Predictions
    "BASIS_POINTS",
    "DEFAULT_POINTS_PER_ROUND",
    "PredictionLedger",
    "PredictionRecord",
    # Escrow
    "EscrowLedger",
    "EscrowRewardManager",
    # Errors
    "AuthenticationError",
    "BracketPoolError",
    "BracketValidationError",
    "CompetitionNotFoundError",
    "ConfigurationError",
    "EconomicError",
    "ErrorCode",
    "LedgerError",
    "LifecycleError",
    "NotOwnerError",
    "UnsupportedOperationError",
    "UserNotFoundError",
    # Routing
    "Router",
]
