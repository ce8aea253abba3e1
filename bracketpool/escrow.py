"""
bracketpool/escrow.py - Entry-fee escrow and pro-rata reward claims.

Fees are paid by the user straight into the competition's custodial pool;
registration then checks that exactly one fee arrived. The reserve is the
accounted total of fees collected and not refunded. Claims pay
reserve * score_percent / 10000 out of the pool without touching the reserve:
every claimant's share is computed against the same total.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .bracket import BracketEngine
from .errors import ConfigurationError, EconomicError, ErrorCode, LifecycleError
from .events import Claimed, FeePaid, NotificationSink, Refunded
from .ledger import DEFAULT_DENOMINATION, CustodialAccount, Ledger
from .predictions import BASIS_POINTS, PredictionLedger

logger = logging.getLogger(__name__)


@dataclass
class EscrowLedger:
    fee: int
    pool_address: str
    denomination: str = DEFAULT_DENOMINATION
    reserve: int = 0
    claimed: dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fee": self.fee,
            "pool_address": self.pool_address,
            "denomination": self.denomination,
            "reserve": self.reserve,
            "claimed": dict(self.claimed),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EscrowLedger":
        return cls(
            fee=data["fee"],
            pool_address=data["pool_address"],
            denomination=data.get("denomination", DEFAULT_DENOMINATION),
            reserve=data.get("reserve", 0),
            claimed=dict(data.get("claimed", {})),
        )


class EscrowRewardManager:
    """Fee registration, refunds and reward claims for one paid competition."""

    def __init__(
        self,
        escrow: EscrowLedger,
        predictions: PredictionLedger,
        engine: BracketEngine,
        ledger: Ledger,
        pool: CustodialAccount,
        sink: NotificationSink | None = None,
    ):
        self.escrow = escrow
        self._predictions = predictions
        self._engine = engine
        self._ledger = ledger
        self._pool = pool
        self._sink = sink

    @staticmethod
    def initialize(
        fee: int,
        pool: CustodialAccount,
        ledger: Ledger,
        denomination: str = DEFAULT_DENOMINATION,
    ) -> EscrowLedger:
        """Open an empty escrow on a fresh custodial pool."""
        if fee < 0:
            raise ConfigurationError(
                f"Fee must be non-negative, got {fee}", ErrorCode.INVALID_FEE
            )
        ledger.register_denomination(pool.address, denomination)
        logger.info(f"Escrow pool {pool.address} opened, fee {fee} {denomination}")
        return EscrowLedger(fee=fee, pool_address=pool.address, denomination=denomination)

    @property
    def competition_id(self) -> int:
        return self._engine.state.competition_id

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, user: str, predictions: list[int]) -> None:
        """Register (or re-submit) a paid prediction.

        A new registrant must already have sent exactly one fee to the pool.
        A returning registrant must not have sent anything.

        Raises:
            LifecycleError: competition has started.
            EconomicError: pool balance doesn't match (INCORRECT_FEE).
        """
        if self._engine.state.has_started:
            raise LifecycleError(
                f"Competition {self.competition_id} is live; registration is closed",
                ErrorCode.ALREADY_LIVE,
            )

        fee = self.escrow.fee
        is_new = not self._predictions.is_registered(user)
        if fee:
            balance = self._ledger.balance_of(self.escrow.pool_address, self.escrow.denomination)
            expected = self.escrow.reserve + fee if is_new else self.escrow.reserve
            if balance != expected:
                raise EconomicError(
                    f"Pool holds {balance} {self.escrow.denomination}, expected {expected}",
                    ErrorCode.INCORRECT_FEE,
                )

        self._predictions.submit_prediction(user, predictions)

        if fee and is_new:
            self.escrow.reserve += fee
            logger.info(
                f"Competition {self.competition_id}: {user} paid {fee}, "
                f"reserve now {self.escrow.reserve}"
            )
            self._emit(FeePaid(self.competition_id, user, fee))
        self.escrow.claimed[user] = False

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def refund(self, user: str) -> None:
        """Return a registrant's fee from a competition that expired unfinished."""
        fee = self.escrow.fee
        if fee == 0:
            raise EconomicError(
                f"Competition {self.competition_id} has no registration fee",
                ErrorCode.NO_REGISTRATION_FEE,
            )
        if not self._engine.is_expired():
            raise LifecycleError(
                f"Competition {self.competition_id} has not expired",
                ErrorCode.NOT_EXPIRED,
            )
        if not self._predictions.is_registered(user):
            raise EconomicError(
                f"{user} is not registered in competition {self.competition_id}",
                ErrorCode.NOT_REGISTERED,
            )

        self._ledger.transfer(self._pool, user, fee, self.escrow.denomination)
        self._predictions.withdraw(user)
        self.escrow.claimed.pop(user, None)
        self.escrow.reserve -= fee
        logger.info(
            f"Competition {self.competition_id}: refunded {fee} to {user}, "
            f"reserve now {self.escrow.reserve}"
        )
        self._emit(Refunded(self.competition_id, user, fee))

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def pending_rewards(self, user: str) -> int:
        """What claim() would pay right now. 0 when nothing is claimable."""
        if not self._engine.state.has_finished:
            return 0
        if self.escrow.claimed.get(user, True):
            return 0
        return self._reward_for(user)

    def claim(self, user: str) -> int:
        """Pay a registrant their share of the pool. Once per user.

        Returns the amount paid.
        """
        if not self._engine.state.has_finished:
            raise LifecycleError(
                f"Competition {self.competition_id} has not completed",
                ErrorCode.NOT_COMPLETED,
            )
        if user not in self.escrow.claimed:
            raise EconomicError(
                f"{user} is not registered in competition {self.competition_id}",
                ErrorCode.NOT_REGISTERED,
            )
        if self.escrow.claimed[user]:
            raise EconomicError(
                f"{user} already claimed from competition {self.competition_id}",
                ErrorCode.ALREADY_CLAIMED,
            )
        pending = self._reward_for(user)
        if pending == 0:
            raise EconomicError(
                f"Nothing to claim for {user} in competition {self.competition_id}",
                ErrorCode.NOTHING_TO_CLAIM,
            )

        self._ledger.transfer(self._pool, user, pending, self.escrow.denomination)
        self.escrow.claimed[user] = True
        logger.info(f"Competition {self.competition_id}: {user} claimed {pending}")
        self._emit(Claimed(self.competition_id, user, pending))
        return pending

    def _reward_for(self, user: str) -> int:
        return self.escrow.reserve * self._predictions.score_percent(user) // BASIS_POINTS

    def _emit(self, event) -> None:
        if self._sink is not None:
            self._sink.emit(event)
