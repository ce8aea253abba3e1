"""
bracketpool/router.py - Entry point for every competition operation.

The router resolves a competition id to (owner, variant), loads the stored
document into the matching wrapper, runs one operation and saves the result.
Each call is all-or-nothing: if the operation raises, nothing is saved and
any notifications it produced are dropped.

Operations on the same competition must not run concurrently; the router
does no locking of its own.
"""

import logging
from typing import Any, Callable

from .bracket import CompetitionState
from .clock import Clock, SystemClock
from .errors import CompetitionNotFoundError, NotOwnerError
from .events import BufferedSink, LoggingSink, NotificationSink
from .identity import SignedRequest, verify_request
from .ledger import DEFAULT_DENOMINATION, CustodialAccountFactory, Ledger
from .predictions import DEFAULT_POINTS_PER_ROUND
from .registry import BracketCompetition, CreateParams, Services, get_variant
from .store import CompetitionStore

logger = logging.getLogger(__name__)


class Router:
    def __init__(
        self,
        store: CompetitionStore,
        clock: Clock | None = None,
        ledger: Ledger | None = None,
        custody: CustodialAccountFactory | None = None,
        sink: NotificationSink | None = None,
        points_per_round: int = DEFAULT_POINTS_PER_ROUND,
        denomination: str = DEFAULT_DENOMINATION,
    ):
        self._store = store
        self._sink = sink or LoggingSink()
        self._services = Services(
            clock=clock or SystemClock(),
            ledger=ledger,
            custody=custody,
            points_per_round=points_per_round,
            denomination=denomination,
        )

    def authenticate(self, request: SignedRequest) -> str:
        """Recover the caller address from a signed request.

        Pass the result as `caller` to the operation the request names.
        """
        return verify_request(request, self._services.clock.now())

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def create_competition(
        self,
        caller: str,
        variant: str,
        name: str,
        num_teams: int,
        start_epoch: int,
        expiration_epoch: int,
        team_names: list[str],
        banner: str = "",
        fee: int = 0,
        points_per_round: int | None = None,
    ) -> int:
        """Create a competition owned by the caller. Returns its id."""
        variant_class = get_variant(variant)
        params = CreateParams(
            name=name,
            num_teams=num_teams,
            start_epoch=start_epoch,
            expiration_epoch=expiration_epoch,
            team_names=list(team_names),
            banner=banner,
            fee=fee,
            points_per_round=points_per_round,
        )
        buffer = BufferedSink(self._sink)
        competition_id = self._store.next_competition_id()
        competition = variant_class.create(caller, competition_id, params, self._services, buffer)
        self._store.save(caller, competition_id, competition.variant, competition.to_dict())
        buffer.flush()
        logger.info(f"Registered competition {competition_id} ({variant}) for {caller}")
        return competition_id

    def lookup(self, competition_id: int) -> tuple[str, str]:
        """(owner, variant tag) for a competition id."""
        entry = self._store.lookup(competition_id)
        if entry is None:
            raise CompetitionNotFoundError(f"Unknown competition: {competition_id}")
        return entry

    def list_competitions(self, owner: str | None = None) -> list[dict[str, Any]]:
        return self._store.list_competitions(owner)

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def start(self, caller: str, competition_id: int) -> None:
        self._mutate(competition_id, lambda c: c.start(), owner=caller)

    def set_team_names(self, caller: str, competition_id: int, names: list[str]) -> None:
        self._mutate(competition_id, lambda c: c.set_team_names(names), owner=caller)

    def complete_match(
        self, caller: str, competition_id: int, match_id: int, winner_id: int
    ) -> None:
        self._mutate(
            competition_id, lambda c: c.complete_match(match_id, winner_id), owner=caller
        )

    def advance_round(self, caller: str, competition_id: int) -> None:
        self._mutate(competition_id, lambda c: c.advance_round(), owner=caller)

    def advance_round_with_results(
        self, caller: str, competition_id: int, results: list[int]
    ) -> None:
        self._mutate(
            competition_id, lambda c: c.advance_round_with_results(results), owner=caller
        )

    # ------------------------------------------------------------------
    # Participant operations
    # ------------------------------------------------------------------

    def submit_prediction(self, caller: str, competition_id: int, predictions: list[int]) -> None:
        self._mutate(competition_id, lambda c: c.submit_prediction(caller, predictions))

    def refund(self, caller: str, competition_id: int) -> None:
        self._mutate(competition_id, lambda c: c.refund(caller))

    def claim(self, caller: str, competition_id: int) -> int:
        return self._mutate(competition_id, lambda c: c.claim(caller))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self, competition_id: int) -> CompetitionState:
        return self._open(competition_id).state

    def score(self, competition_id: int, user: str) -> int:
        return self._open(competition_id).score(user)

    def total_score(self, competition_id: int) -> int:
        return self._open(competition_id).total_score()

    def score_percent(self, competition_id: int, user: str) -> int:
        return self._open(competition_id).score_percent(user)

    def pending_rewards(self, competition_id: int, user: str) -> int:
        return self._open(competition_id).pending_rewards(user)

    def leaderboard(self, competition_id: int) -> list[tuple[str, int]]:
        return self._open(competition_id).leaderboard()

    def predictions_of(self, competition_id: int, user: str) -> list[int]:
        return self._open(competition_id).predictions_of(user)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _open(
        self, competition_id: int, sink: NotificationSink | None = None
    ) -> BracketCompetition:
        owner, variant = self.lookup(competition_id)
        data = self._store.load(owner, competition_id)
        if data is None:
            raise CompetitionNotFoundError(
                f"Competition {competition_id} is registered to {owner} but has no state"
            )
        return get_variant(variant).load(owner, data, self._services, sink)

    def _mutate(
        self,
        competition_id: int,
        operation: Callable[[BracketCompetition], Any],
        owner: str | None = None,
    ) -> Any:
        """Load, apply, save, then publish events. Nothing sticks on failure."""
        buffer = BufferedSink(self._sink)
        competition = self._open(competition_id, buffer)
        if owner is not None and owner.lower() != competition.owner.lower():
            raise NotOwnerError(
                f"{owner} does not own competition {competition_id}"
            )
        try:
            result = operation(competition)
        except Exception:
            buffer.discard()
            raise
        self._store.save(
            competition.owner, competition_id, competition.variant, competition.to_dict()
        )
        buffer.flush()
        return result
