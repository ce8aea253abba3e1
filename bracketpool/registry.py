"""
bracketpool/registry.py - Competition variants and the tag -> class registry.

Three variants, each a thin wrapper over the core components:

  bracket           BracketEngine only
  predictable       + PredictionLedger
  paid-predictable  + EscrowRewardManager

Every wrapper exposes the same method set. Operations a variant doesn't
support raise UnsupportedOperationError, so the router can forward any call
without knowing which variant it holds.
"""

import logging
from dataclasses import dataclass
from typing import Any

from .bracket import BracketEngine, CompetitionState
from .clock import Clock
from .errors import ConfigurationError, ErrorCode, UnsupportedOperationError
from .escrow import EscrowLedger, EscrowRewardManager
from .events import NotificationSink
from .ledger import DEFAULT_DENOMINATION, CustodialAccountFactory, Ledger
from .predictions import DEFAULT_POINTS_PER_ROUND, PredictionLedger, PredictionRecord

logger = logging.getLogger(__name__)

VARIANT_BRACKET = "bracket"
VARIANT_PREDICTABLE = "predictable"
VARIANT_PAID = "paid-predictable"


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class Services:
    """Collaborators every variant may need. Built once by the router."""

    clock: Clock
    ledger: Ledger | None = None
    custody: CustodialAccountFactory | None = None
    points_per_round: int = DEFAULT_POINTS_PER_ROUND
    denomination: str = DEFAULT_DENOMINATION


@dataclass
class CreateParams:
    name: str
    num_teams: int
    start_epoch: int
    expiration_epoch: int
    team_names: list[str]
    banner: str = ""
    fee: int = 0
    points_per_round: int | None = None


# ============================================================================
# Variants
# ============================================================================


class BracketCompetition:
    """Bracket with no prediction game."""

    variant = VARIANT_BRACKET

    def __init__(self, owner: str, engine: BracketEngine):
        self.owner = owner
        self.engine = engine

    @property
    def state(self) -> CompetitionState:
        return self.engine.state

    @classmethod
    def create(
        cls,
        owner: str,
        competition_id: int,
        params: CreateParams,
        services: Services,
        sink: NotificationSink | None = None,
    ) -> "BracketCompetition":
        engine = BracketEngine.create(
            competition_id,
            params.name,
            params.num_teams,
            params.start_epoch,
            params.expiration_epoch,
            params.team_names,
            params.banner,
            services.clock,
            sink,
        )
        return cls(owner, engine)

    @classmethod
    def load(
        cls,
        owner: str,
        data: dict[str, Any],
        services: Services,
        sink: NotificationSink | None = None,
    ) -> "BracketCompetition":
        engine = BracketEngine(CompetitionState.from_dict(data["bracket"]), services.clock, sink)
        return cls(owner, engine)

    def to_dict(self) -> dict[str, Any]:
        return {"variant": self.variant, "bracket": self.state.to_dict()}

    # Owner operations

    def start(self) -> None:
        self.engine.start()

    def set_team_names(self, names: list[str]) -> None:
        self.engine.set_team_names(names)

    def complete_match(self, match_id: int, winner_id: int) -> None:
        self.engine.complete_match(match_id, winner_id)

    def advance_round(self) -> None:
        self.engine.advance_round()

    def advance_round_with_results(self, results: list[int]) -> None:
        self.engine.advance_round_with_results(results)

    # Prediction game

    def submit_prediction(self, user: str, predictions: list[int]) -> None:
        raise self._unsupported("predictions")

    def score(self, user: str) -> int:
        raise self._unsupported("scoring")

    def total_score(self) -> int:
        raise self._unsupported("scoring")

    def score_percent(self, user: str) -> int:
        raise self._unsupported("scoring")

    def leaderboard(self) -> list[tuple[str, int]]:
        raise self._unsupported("scoring")

    def predictions_of(self, user: str) -> list[int]:
        raise self._unsupported("predictions")

    # Escrow

    def refund(self, user: str) -> None:
        raise self._unsupported("refunds")

    def claim(self, user: str) -> int:
        raise self._unsupported("claims")

    def pending_rewards(self, user: str) -> int:
        raise self._unsupported("rewards")

    def _unsupported(self, what: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"Competition {self.state.competition_id} ({self.variant}) does not support {what}"
        )


class PredictableCompetition(BracketCompetition):
    """Bracket plus a free prediction game."""

    variant = VARIANT_PREDICTABLE

    def __init__(self, owner: str, engine: BracketEngine, predictions: PredictionLedger):
        super().__init__(owner, engine)
        self.predictions = predictions

    @classmethod
    def create(cls, owner, competition_id, params, services, sink=None):
        base = BracketCompetition.create(owner, competition_id, params, services, sink)
        record = PredictionRecord(
            points_per_round=params.points_per_round or services.points_per_round
        )
        return cls(owner, base.engine, PredictionLedger(record, base.engine, sink))

    @classmethod
    def load(cls, owner, data, services, sink=None):
        base = BracketCompetition.load(owner, data, services, sink)
        record = PredictionRecord.from_dict(data["predictions"])
        return cls(owner, base.engine, PredictionLedger(record, base.engine, sink))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["predictions"] = self.predictions.record.to_dict()
        return data

    def submit_prediction(self, user: str, predictions: list[int]) -> None:
        self.predictions.submit_prediction(user, predictions)

    def score(self, user: str) -> int:
        return self.predictions.score(user)

    def total_score(self) -> int:
        return self.predictions.total_score()

    def score_percent(self, user: str) -> int:
        return self.predictions.score_percent(user)

    def leaderboard(self) -> list[tuple[str, int]]:
        return self.predictions.leaderboard()

    def predictions_of(self, user: str) -> list[int]:
        return self.predictions.predictions_of(user)


class PaidPredictableCompetition(PredictableCompetition):
    """Prediction game with an escrowed entry fee and pro-rata payouts."""

    variant = VARIANT_PAID

    def __init__(
        self,
        owner: str,
        engine: BracketEngine,
        predictions: PredictionLedger,
        escrow: EscrowRewardManager,
    ):
        super().__init__(owner, engine, predictions)
        self.escrow = escrow

    @classmethod
    def create(cls, owner, competition_id, params, services, sink=None):
        ledger, custody = _require_money(services)
        base = PredictableCompetition.create(owner, competition_id, params, services, sink)
        pool = custody.derive(owner, competition_id)
        escrow = EscrowRewardManager.initialize(params.fee, pool, ledger, services.denomination)
        manager = EscrowRewardManager(escrow, base.predictions, base.engine, ledger, pool, sink)
        return cls(owner, base.engine, base.predictions, manager)

    @classmethod
    def load(cls, owner, data, services, sink=None):
        ledger, custody = _require_money(services)
        base = PredictableCompetition.load(owner, data, services, sink)
        pool = custody.derive(owner, base.state.competition_id)
        escrow = EscrowLedger.from_dict(data["escrow"])
        if pool.address != escrow.pool_address:
            raise ConfigurationError(
                f"Custodial seed does not reproduce pool {escrow.pool_address} "
                f"for competition {base.state.competition_id}",
                ErrorCode.CUSTODY_MISMATCH,
            )
        manager = EscrowRewardManager(escrow, base.predictions, base.engine, ledger, pool, sink)
        return cls(owner, base.engine, base.predictions, manager)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["escrow"] = self.escrow.escrow.to_dict()
        return data

    def submit_prediction(self, user: str, predictions: list[int]) -> None:
        self.escrow.register(user, predictions)

    def refund(self, user: str) -> None:
        self.escrow.refund(user)

    def claim(self, user: str) -> int:
        return self.escrow.claim(user)

    def pending_rewards(self, user: str) -> int:
        return self.escrow.pending_rewards(user)


def _require_money(services: Services) -> tuple[Ledger, CustodialAccountFactory]:
    if services.ledger is None or services.custody is None:
        raise UnsupportedOperationError(
            "Paid competitions need a ledger and a custodial seed "
            "(set BRACKETPOOL_CUSTODY_SECRET)"
        )
    return services.ledger, services.custody


# ============================================================================
# Registry State
# ============================================================================

_variants: dict[str, type[BracketCompetition]] = {}


def register_variant(tag: str, variant_class: type[BracketCompetition]) -> None:
    _variants[tag] = variant_class


def get_variant(tag: str) -> type[BracketCompetition]:
    """Resolve a stored variant tag to its wrapper class.

    Raises:
        ConfigurationError: unknown tag (UNKNOWN_VARIANT).
    """
    variant_class = _variants.get(tag)
    if variant_class is None:
        available = ", ".join(sorted(_variants))
        raise ConfigurationError(
            f"Unknown competition variant: {tag!r}. Available: {available}",
            ErrorCode.UNKNOWN_VARIANT,
        )
    return variant_class


def list_variants() -> list[str]:
    return sorted(_variants)


def _register_builtins() -> None:
    register_variant(VARIANT_BRACKET, BracketCompetition)
    register_variant(VARIANT_PREDICTABLE, PredictableCompetition)
    register_variant(VARIANT_PAID, PaidPredictableCompetition)


# Register built-ins on import
_register_builtins()
