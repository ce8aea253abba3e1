"""
bracketpool/bracket.py - Single-elimination bracket state machine.

The bracket is one flat list of match slots, earliest round first and the
final last. Round r (1-indexed) owns the window

    [num_teams - num_teams / 2^(r-1),  num_teams - num_teams / 2^r)

so an 8-team bracket is [0..3] quarterfinals, [4..5] semis, [6] final.
Nothing is stored per round; every window is derived from rounds_remaining.

States: NotStarted -> Live -> Completed. Expired is derived from the clock
(now >= expiration_epoch while not finished) and never stored.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .clock import Clock
from .errors import (
    BracketValidationError,
    ConfigurationError,
    ErrorCode,
    LifecycleError,
)
from .events import MatchCompleted, NotificationSink

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

MAX_TEAMS = 256

# expiration_epoch == 0 means "never expires"
NO_EXPIRATION = 2**64 - 1


# ============================================================================
# Round arithmetic
# ============================================================================


def is_power_of_two(n: int) -> bool:
    return n >= 1 and n & (n - 1) == 0


def total_rounds_for(num_teams: int) -> int:
    """log2(num_teams) for a power of two."""
    return num_teams.bit_length() - 1


def matches_in_round(num_teams: int, round_number: int) -> int:
    """num_teams / 2^round. Zero past the final."""
    return num_teams >> round_number


def round_start(num_teams: int, round_number: int) -> int:
    """First bracket index of a round."""
    return num_teams - (num_teams >> (round_number - 1))


def round_window(num_teams: int, round_number: int) -> range:
    start = round_start(num_teams, round_number)
    return range(start, start + matches_in_round(num_teams, round_number))


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class MatchOutcome:
    """One bracket slot. winner_id is meaningless until is_completed."""

    winner_id: int = 0
    is_completed: bool = False


@dataclass
class CompetitionState:
    competition_id: int
    name: str
    num_teams: int
    total_rounds: int
    rounds_remaining: int
    starting_epoch: int
    expiration_epoch: int
    team_names: list[str]
    bracket: list[MatchOutcome]
    banner: str = ""
    has_started: bool = False
    has_finished: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "competition_id": self.competition_id,
            "name": self.name,
            "banner": self.banner,
            "num_teams": self.num_teams,
            "total_rounds": self.total_rounds,
            "rounds_remaining": self.rounds_remaining,
            "starting_epoch": self.starting_epoch,
            "expiration_epoch": self.expiration_epoch,
            "has_started": self.has_started,
            "has_finished": self.has_finished,
            "team_names": list(self.team_names),
            "bracket": [[m.winner_id, m.is_completed] for m in self.bracket],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompetitionState":
        return cls(
            competition_id=data["competition_id"],
            name=data["name"],
            banner=data.get("banner", ""),
            num_teams=data["num_teams"],
            total_rounds=data["total_rounds"],
            rounds_remaining=data["rounds_remaining"],
            starting_epoch=data["starting_epoch"],
            expiration_epoch=data["expiration_epoch"],
            has_started=data["has_started"],
            has_finished=data["has_finished"],
            team_names=list(data["team_names"]),
            bracket=[MatchOutcome(winner_id=w, is_completed=c) for w, c in data["bracket"]],
        )


# ============================================================================
# Engine
# ============================================================================


class BracketEngine:
    """Drives a CompetitionState through its lifecycle.

    The engine holds no state of its own beyond the CompetitionState it wraps,
    so the router can load a state, hand it to an engine, and save it back.
    """

    def __init__(
        self,
        state: CompetitionState,
        clock: Clock,
        sink: NotificationSink | None = None,
    ):
        self.state = state
        self._clock = clock
        self._sink = sink

    @classmethod
    def create(
        cls,
        competition_id: int,
        name: str,
        num_teams: int,
        start_epoch: int,
        expiration_epoch: int,
        team_names: list[str],
        banner: str,
        clock: Clock,
        sink: NotificationSink | None = None,
    ) -> "BracketEngine":
        """Validate creation parameters and build an unstarted bracket.

        Raises:
            ConfigurationError: start not in the future, wrong number of team
                names, more than MAX_TEAMS, or num_teams not a power of two.
        """
        now = clock.now()
        if start_epoch <= now:
            raise ConfigurationError(
                f"Start time {start_epoch} must be in the future (now={now})",
                ErrorCode.INVALID_START_TIME,
            )
        if len(team_names) != num_teams:
            raise ConfigurationError(
                f"Expected {num_teams} team names, got {len(team_names)}",
                ErrorCode.TEAM_COUNT_MISMATCH,
            )
        if num_teams > MAX_TEAMS:
            raise ConfigurationError(
                f"At most {MAX_TEAMS} teams allowed, got {num_teams}",
                ErrorCode.TOO_MANY_TEAMS,
            )
        if not is_power_of_two(num_teams):
            raise ConfigurationError(
                f"Team count must be a power of two, got {num_teams}",
                ErrorCode.NOT_POWER_OF_TWO,
            )

        total_rounds = total_rounds_for(num_teams)
        state = CompetitionState(
            competition_id=competition_id,
            name=name,
            banner=banner,
            num_teams=num_teams,
            total_rounds=total_rounds,
            rounds_remaining=total_rounds,
            starting_epoch=start_epoch,
            expiration_epoch=expiration_epoch or NO_EXPIRATION,
            team_names=list(team_names),
            bracket=[MatchOutcome() for _ in range(num_teams - 1)],
        )
        logger.info(
            f"Created competition {competition_id} {name!r}: "
            f"{num_teams} teams, {total_rounds} rounds"
        )
        return cls(state, clock, sink)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def is_live(self) -> bool:
        return self.state.has_started and not self.state.has_finished

    def is_expired(self, now: int | None = None) -> bool:
        if now is None:
            now = self._clock.now()
        return now >= self.state.expiration_epoch and not self.state.has_finished

    def current_round(self) -> int:
        """1-indexed round in progress. total_rounds + 1 once finished."""
        return self.state.total_rounds - self.state.rounds_remaining + 1

    def current_round_window(self) -> range:
        return round_window(self.state.num_teams, self.current_round())

    def scored_range_end(self) -> int:
        """Exclusive end of the bracket prefix covered by fully decided rounds."""
        if self.state.has_finished:
            return self.state.num_teams - 1
        return round_start(self.state.num_teams, self.current_round())

    def winner_of(self, match_id: int) -> int | None:
        outcome = self.state.bracket[match_id]
        return outcome.winner_id if outcome.is_completed else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def start(self) -> None:
        now = self._clock.now()
        if self.is_expired(now):
            raise LifecycleError(
                f"Competition {self.state.competition_id} expired at "
                f"{self.state.expiration_epoch}",
                ErrorCode.EXPIRED,
            )
        self.state.has_started = True
        # Record when it actually went live, not when it was scheduled
        self.state.starting_epoch = now
        logger.info(f"Competition {self.state.competition_id} started at {now}")

    def set_team_names(self, names: list[str]) -> None:
        self._require_not_started()
        if len(names) != self.state.num_teams:
            raise ConfigurationError(
                f"Expected {self.state.num_teams} team names, got {len(names)}",
                ErrorCode.TEAM_COUNT_MISMATCH,
            )
        self.state.team_names = list(names)

    def complete_match(self, match_id: int, winner_id: int) -> None:
        self._require_live()
        if self.is_expired():
            raise LifecycleError(
                f"Competition {self.state.competition_id} has expired",
                ErrorCode.EXPIRED,
            )
        window = self.current_round_window()
        if match_id not in window:
            raise BracketValidationError(
                f"Match {match_id} is outside round {self.current_round()} "
                f"(matches {window.start}..{window.stop - 1})",
                ErrorCode.MATCH_OUT_OF_RANGE,
            )
        if self.state.bracket[match_id].is_completed:
            raise BracketValidationError(
                f"Match {match_id} already completed",
                ErrorCode.MATCH_ALREADY_COMPLETED,
            )
        self._check_team_id(winner_id)
        self._record(match_id, winner_id)

    def advance_round(self) -> None:
        self._require_live()
        self._require_rounds_remaining()
        window = self.current_round_window()
        pending = [i for i in window if not self.state.bracket[i].is_completed]
        if pending:
            raise LifecycleError(
                f"Round {self.current_round()} has incomplete matches: {pending}",
                ErrorCode.NOT_COMPLETED,
            )
        self._advance()

    def advance_round_with_results(self, results: list[int]) -> None:
        """Fill in any undecided matches of the current round, then advance.

        Matches already completed keep their recorded winner; the matching
        entry in results is ignored for them.
        """
        self._require_live()
        self._require_rounds_remaining()
        window = self.current_round_window()
        if len(results) != len(window):
            raise BracketValidationError(
                f"Round {self.current_round()} has {len(window)} matches, "
                f"got {len(results)} results",
                ErrorCode.RESULTS_LENGTH_MISMATCH,
            )
        for match_id, winner_id in zip(window, results):
            if not self.state.bracket[match_id].is_completed:
                self._check_team_id(winner_id)

        for match_id, winner_id in zip(window, results):
            if not self.state.bracket[match_id].is_completed:
                self._record(match_id, winner_id)
        self._advance()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _record(self, match_id: int, winner_id: int) -> None:
        self.state.bracket[match_id] = MatchOutcome(winner_id=winner_id, is_completed=True)
        logger.debug(f"Competition {self.state.competition_id}: match {match_id} -> team {winner_id}")
        if self._sink is not None:
            self._sink.emit(MatchCompleted(self.state.competition_id, match_id, winner_id))

    def _advance(self) -> None:
        finished_round = self.current_round()
        self.state.rounds_remaining -= 1
        if self.state.rounds_remaining == 0:
            self.state.has_finished = True
            logger.info(f"Competition {self.state.competition_id} completed")
        else:
            logger.info(
                f"Competition {self.state.competition_id}: round {finished_round} done, "
                f"{self.state.rounds_remaining} remaining"
            )

    def _require_not_started(self) -> None:
        if self.state.has_started:
            raise LifecycleError(
                f"Competition {self.state.competition_id} has already started",
                ErrorCode.ALREADY_LIVE,
            )

    def _require_live(self) -> None:
        if not self.is_live():
            raise LifecycleError(
                f"Competition {self.state.competition_id} is not live",
                ErrorCode.NOT_LIVE,
            )

    def _require_rounds_remaining(self) -> None:
        if self.state.rounds_remaining == 0:
            raise BracketValidationError(
                f"Competition {self.state.competition_id} has no rounds remaining",
                ErrorCode.NO_ROUNDS_REMAINING,
            )

    def _check_team_id(self, team_id: int) -> None:
        if not 0 <= team_id < self.state.num_teams:
            raise BracketValidationError(
                f"Team id {team_id} out of range for {self.state.num_teams} teams",
                ErrorCode.INVALID_TEAM_ID,
            )
