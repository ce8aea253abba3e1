"""
bracketpool/errors.py - Error taxonomy for bracket, prediction and escrow operations.

Every failure is a named precondition. Each exception carries an ErrorCode so
callers (the router, the CLI) can branch on the kind without string matching.
"""

from enum import Enum


class ErrorCode(str, Enum):
    # Configuration (creation time)
    INVALID_START_TIME = "invalid_start_time"
    TEAM_COUNT_MISMATCH = "team_count_mismatch"
    TOO_MANY_TEAMS = "too_many_teams"
    NOT_POWER_OF_TWO = "not_power_of_two"
    UNKNOWN_VARIANT = "unknown_variant"
    CUSTODY_MISMATCH = "custody_mismatch"
    INVALID_FEE = "invalid_fee"

    # Lifecycle
    ALREADY_LIVE = "already_live"
    NOT_LIVE = "not_live"
    NOT_COMPLETED = "not_completed"
    NOT_EXPIRED = "not_expired"
    EXPIRED = "expired"

    # Validation
    MATCH_OUT_OF_RANGE = "match_out_of_range"
    MATCH_ALREADY_COMPLETED = "match_already_completed"
    RESULTS_LENGTH_MISMATCH = "results_length_mismatch"
    PREDICTION_LENGTH_MISMATCH = "prediction_length_mismatch"
    NO_ROUNDS_REMAINING = "no_rounds_remaining"
    INVALID_TEAM_ID = "invalid_team_id"

    # Economic
    INCORRECT_FEE = "incorrect_fee"
    NO_REGISTRATION_FEE = "no_registration_fee"
    NOT_REGISTERED = "not_registered"
    NOTHING_TO_CLAIM = "nothing_to_claim"
    ALREADY_CLAIMED = "already_claimed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    UNREGISTERED_ACCOUNT = "unregistered_account"
    NO_GAS_PAYER = "no_gas_payer"

    # Lookup
    UNKNOWN_COMPETITION = "unknown_competition"
    UNKNOWN_USER = "unknown_user"

    # Access
    NOT_OWNER = "not_owner"
    INVALID_SIGNATURE = "invalid_signature"
    STALE_REQUEST = "stale_request"
    UNSUPPORTED_OPERATION = "unsupported_operation"


class BracketPoolError(Exception):
    """Base class. Subclasses set a default code; callers may override it."""

    default_code: ErrorCode | None = None

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        self.code = code or self.default_code


class ConfigurationError(BracketPoolError, ValueError):
    """Raised when a competition is created with invalid parameters."""


class LifecycleError(BracketPoolError, RuntimeError):
    """Raised when an operation runs in the wrong competition state."""


class BracketValidationError(BracketPoolError, ValueError):
    """Raised for bad match ids, result vectors or prediction vectors."""


class EconomicError(BracketPoolError):
    """Raised for fee, registration and claim failures."""


class CompetitionNotFoundError(BracketPoolError, KeyError):
    """Raised when a competition id is not in the registry."""

    default_code = ErrorCode.UNKNOWN_COMPETITION

    def __str__(self) -> str:
        # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class UserNotFoundError(BracketPoolError, KeyError):
    """Raised when a user has no entry in a prediction index."""

    default_code = ErrorCode.UNKNOWN_USER

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class NotOwnerError(BracketPoolError):
    """Raised when someone other than the owner attempts an owner-only mutation."""

    default_code = ErrorCode.NOT_OWNER


class UnsupportedOperationError(BracketPoolError):
    """Raised when a variant does not support the requested operation."""

    default_code = ErrorCode.UNSUPPORTED_OPERATION


class LedgerError(BracketPoolError):
    """Raised by ledger implementations when a transfer can't be made."""

    default_code = ErrorCode.INSUFFICIENT_FUNDS


class AuthenticationError(BracketPoolError):
    """Raised when a signed request can't be tied to a caller."""

    default_code = ErrorCode.INVALID_SIGNATURE
