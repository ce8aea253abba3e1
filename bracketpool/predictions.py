"""
bracketpool/predictions.py - Per-match predictions and round-weighted scoring.

Two views of the same data are kept in step:

    forward   user -> [predicted winner for slot 0, slot 1, ...]
    reverse   slot -> predicted winner -> {users}

Scoring walks the reverse view, so a completed match costs one dict lookup
regardless of how many users played. Both views are only ever written by
_move(), which updates them together.

Every round is worth the same total (points_per_round). Later rounds have
fewer matches, so each match in them is worth more.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

from .bracket import BracketEngine, round_window
from .errors import (
    BracketValidationError,
    ErrorCode,
    LifecycleError,
    UserNotFoundError,
)
from .events import NotificationSink, PredictionSaved

logger = logging.getLogger(__name__)

DEFAULT_POINTS_PER_ROUND = 100

# 10000 == 100.00%
BASIS_POINTS = 10_000


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class PredictionRecord:
    points_per_round: int = DEFAULT_POINTS_PER_ROUND
    picks: dict[int, dict[int, set[str]]] = field(default_factory=dict)
    predictions: dict[str, list[int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "points_per_round": self.points_per_round,
            "picks": {
                str(match_id): {str(team): sorted(users) for team, users in buckets.items()}
                for match_id, buckets in self.picks.items()
            },
            "predictions": {user: list(vec) for user, vec in self.predictions.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PredictionRecord":
        return cls(
            points_per_round=data.get("points_per_round", DEFAULT_POINTS_PER_ROUND),
            picks={
                int(match_id): {int(team): set(users) for team, users in buckets.items()}
                for match_id, buckets in data.get("picks", {}).items()
            },
            predictions={user: list(vec) for user, vec in data.get("predictions", {}).items()},
        )


# ============================================================================
# Ledger
# ============================================================================


class PredictionLedger:
    """Prediction storage and scoring for one competition.

    Reads bracket state through the engine; never mutates it.
    """

    def __init__(
        self,
        record: PredictionRecord,
        engine: BracketEngine,
        sink: NotificationSink | None = None,
    ):
        self.record = record
        self._engine = engine
        self._sink = sink

    @property
    def competition_id(self) -> int:
        return self._engine.state.competition_id

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_prediction(self, user: str, predictions: list[int]) -> None:
        """Store or replace a user's full bracket of picks.

        Only allowed before the competition goes live.

        Raises:
            LifecycleError: competition has started.
            BracketValidationError: wrong length or an unknown team id.
        """
        state = self._engine.state
        if state.has_started:
            raise LifecycleError(
                f"Competition {state.competition_id} is live; predictions are closed",
                ErrorCode.ALREADY_LIVE,
            )
        expected = state.num_teams - 1
        if len(predictions) != expected:
            raise BracketValidationError(
                f"Expected {expected} predictions, got {len(predictions)}",
                ErrorCode.PREDICTION_LENGTH_MISMATCH,
            )
        for team_id in predictions:
            if not 0 <= team_id < state.num_teams:
                raise BracketValidationError(
                    f"Predicted team {team_id} out of range for {state.num_teams} teams",
                    ErrorCode.INVALID_TEAM_ID,
                )

        previous = self.record.predictions.get(user)
        self._move(user, previous, list(predictions))

        if previous is None:
            logger.info(f"Competition {state.competition_id}: new prediction from {user}")
        else:
            logger.debug(f"Competition {state.competition_id}: prediction updated for {user}")

        if self._sink is not None:
            self._sink.emit(PredictionSaved(state.competition_id, user, list(predictions)))

    def withdraw(self, user: str) -> list[int]:
        """Remove a user from both views.

        Returns the predictions that were removed.
        """
        previous = self.record.predictions.get(user)
        if previous is None:
            raise UserNotFoundError(
                f"No prediction from {user} in competition {self.competition_id}"
            )
        self._move(user, previous, None)
        return previous

    def _move(self, user: str, old: list[int] | None, new: list[int] | None) -> None:
        """Single writer for the forward and reverse views.

        Slots whose pick is unchanged are left alone.
        """
        slots = len(old) if old is not None else len(new)
        for slot in range(slots):
            old_team = old[slot] if old is not None else None
            new_team = new[slot] if new is not None else None
            if old_team == new_team:
                continue
            buckets = self.record.picks.setdefault(slot, {})
            if old_team is not None:
                users = buckets.get(old_team)
                if users is not None:
                    users.discard(user)
                    if not users:
                        del buckets[old_team]
            if new_team is not None:
                buckets.setdefault(new_team, set()).add(user)
            if not buckets:
                del self.record.picks[slot]

        if new is None:
            self.record.predictions.pop(user, None)
        else:
            self.record.predictions[user] = new

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_registered(self, user: str) -> bool:
        return user in self.record.predictions

    def predictions_of(self, user: str) -> list[int]:
        try:
            return list(self.record.predictions[user])
        except KeyError:
            raise UserNotFoundError(
                f"No prediction from {user} in competition {self.competition_id}"
            ) from None

    def predictors(self, match_id: int, team_id: int) -> set[str]:
        return set(self.record.picks.get(match_id, {}).get(team_id, ()))

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score(self, user: str) -> int:
        """Points earned by a user across all fully decided rounds."""
        total = 0
        for match_id, winner_id, points in self._scored_matches():
            if user in self.record.picks.get(match_id, {}).get(winner_id, ()):
                total += points
        return total

    def total_score(self) -> int:
        """Points earned by everyone across all fully decided rounds."""
        total = 0
        for match_id, winner_id, points in self._scored_matches():
            total += points * len(self.record.picks.get(match_id, {}).get(winner_id, ()))
        return total

    def score_percent(self, user: str) -> int:
        """User's share of all points in basis points. 0 when nobody has scored."""
        total = self.total_score()
        if total == 0:
            return 0
        return self.score(user) * BASIS_POINTS // total

    def leaderboard(self) -> list[tuple[str, int]]:
        """Registered users by score, highest first (ties by address)."""
        scores = [(user, self.score(user)) for user in self.record.predictions]
        return sorted(scores, key=lambda item: (-item[1], item[0]))

    def _points_per_match(self, match_count: int) -> int:
        # A round with no matches (past the final, or a one-team bracket)
        # is worth nothing rather than dividing by zero.
        if match_count == 0:
            return 0
        return self.record.points_per_round // match_count

    def _scored_matches(self) -> Iterator[tuple[int, int, int]]:
        """Yield (match_id, winner_id, points_per_match) for decided matches.

        Only rounds that have been advanced past are included; a match
        completed inside the round still in progress does not count yet.
        """
        state = self._engine.state
        end = self._engine.scored_range_end()
        round_number = 1
        window = round_window(state.num_teams, round_number)
        points = self._points_per_match(len(window))

        for match_id in range(end):
            if match_id >= window.stop:
                round_number += 1
                window = round_window(state.num_teams, round_number)
                points = self._points_per_match(len(window))
            outcome = state.bracket[match_id]
            if outcome.is_completed:
                yield match_id, outcome.winner_id, points
