#!/usr/bin/env python3
"""
bracketpool/cli.py - Command line interface for bracketpool

Usage:
    bracketpool create --name NAME --teams A,B,C,D --start +3600 [options]
    bracketpool start <id>
    bracketpool complete <id> <match> <winner>
    bracketpool advance <id> [--results 0,2]
    bracketpool predict <id> <pick> [<pick> ...]
    bracketpool show <id>
    bracketpool leaderboard <id>

Commands that change state are signed with the configured wallet key
([wallet] private_key in config.toml, or --key) and the router acts as
the address recovered from the signature. The same wallet pays gas for
on-chain payouts.
"""

import argparse
import logging
import sys
from pathlib import Path

from .bracket import NO_EXPIRATION, round_window
from .clock import SystemClock
from .config import BracketPoolConfig, WalletConfig, custody_secret, load_config
from .errors import BracketPoolError
from .identity import caller_from_config, load_account, make_request
from .ledger import DEFAULT_DENOMINATION, CustodialAccountFactory, Web3Ledger
from .predictions import BASIS_POINTS
from .registry import VARIANT_PAID, VARIANT_PREDICTABLE, list_variants
from .router import Router
from .store import SqliteStore

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


# ============================================================================
# Setup
# ============================================================================


def build_router(config: BracketPoolConfig, db_path: str | None = None) -> Router:
    """Wire a Router from config: SQLite store, optional chain ledger and custody.

    The chain ledger pays gas from the configured wallet key.
    """
    store = SqliteStore(db_path or config.store_path)

    ledger = None
    if config.chain is not None:
        ledger = Web3Ledger(
            rpc_url=config.chain.rpc_url,
            chain_id=config.chain.chain_id,
            denomination=config.chain.denomination,
            gas_payer=load_account(config),
        )

    secret = custody_secret()
    custody = CustodialAccountFactory(secret) if secret else None

    return Router(
        store,
        clock=SystemClock(),
        ledger=ledger,
        custody=custody,
        points_per_round=config.points_per_round,
        denomination=config.chain.denomination if config.chain else DEFAULT_DENOMINATION,
    )


def _parse_epoch(value: str, now: int) -> int:
    """Absolute epoch seconds, or +N for N seconds from now."""
    if value.startswith("+"):
        return now + int(value[1:])
    return int(value)


def _parse_ints(value: str) -> list[int]:
    return [int(part) for part in value.split(",") if part.strip()]


# ============================================================================
# Commands
# ============================================================================


def cmd_create(args, router: Router, caller: str) -> int:
    now = SystemClock().now()
    teams = [t.strip() for t in args.teams.split(",")]
    expires = _parse_epoch(args.expires, now) if args.expires else 0
    competition_id = router.create_competition(
        caller,
        args.variant,
        args.name,
        len(teams),
        _parse_epoch(args.start, now),
        expires,
        teams,
        banner=args.banner or "",
        fee=args.fee,
        points_per_round=args.points,
    )
    print(f"Created competition {competition_id}")
    return 0


def cmd_start(args, router: Router, caller: str) -> int:
    router.start(caller, args.id)
    print(f"Competition {args.id} is live")
    return 0


def cmd_set_names(args, router: Router, caller: str) -> int:
    router.set_team_names(caller, args.id, [n.strip() for n in args.names.split(",")])
    print(f"Team names updated for competition {args.id}")
    return 0


def cmd_complete(args, router: Router, caller: str) -> int:
    router.complete_match(caller, args.id, args.match, args.winner)
    state = router.get_state(args.id)
    print(f"Match {args.match}: {state.team_names[args.winner]} wins")
    return 0


def cmd_advance(args, router: Router, caller: str) -> int:
    if args.results:
        router.advance_round_with_results(caller, args.id, _parse_ints(args.results))
    else:
        router.advance_round(caller, args.id)
    state = router.get_state(args.id)
    if state.has_finished:
        champion = state.team_names[state.bracket[-1].winner_id] if state.bracket else state.team_names[0]
        print(f"🏆 Competition {args.id} complete. Champion: {champion}")
    else:
        print(f"Competition {args.id}: {state.rounds_remaining} round(s) remaining")
    return 0


def cmd_predict(args, router: Router, caller: str) -> int:
    router.submit_prediction(caller, args.id, args.picks)
    print(f"Prediction saved for {caller}")
    return 0


def cmd_refund(args, router: Router, caller: str) -> int:
    router.refund(caller, args.id)
    print(f"Refunded {caller}")
    return 0


def cmd_claim(args, router: Router, caller: str) -> int:
    amount = router.claim(caller, args.id)
    print(f"Claimed {amount}")
    return 0


def cmd_show(args, router: Router, caller: str | None) -> int:
    owner, variant = router.lookup(args.id)
    state = router.get_state(args.id)

    if state.has_finished:
        status = "completed"
    elif state.has_started:
        status = "live"
    else:
        status = "not started"

    print(f"\n{state.name} (#{state.competition_id}, {variant})")
    print(f"   Owner: {owner}")
    print(f"   Status: {status}")
    print(f"   Teams: {state.num_teams}, rounds remaining: {state.rounds_remaining}/{state.total_rounds}")
    if state.expiration_epoch != NO_EXPIRATION:
        print(f"   Expires: {state.expiration_epoch}")
    print()
    for round_number in range(1, state.total_rounds + 1):
        print(f"   Round {round_number}")
        for match_id in round_window(state.num_teams, round_number):
            outcome = state.bracket[match_id]
            winner = state.team_names[outcome.winner_id] if outcome.is_completed else "-"
            print(f"     [{match_id}] {winner}")
    print()
    return 0


def cmd_score(args, router: Router, caller: str | None) -> int:
    user = args.user or caller
    if user is None:
        logger.error("No user: pass --user or configure a wallet")
        return 1
    score = router.score(args.id, user)
    percent = router.score_percent(args.id, user)
    print(f"{user}: {score} points ({percent * 100 / BASIS_POINTS:.2f}%)")
    _, variant = router.lookup(args.id)
    if variant == VARIANT_PAID:
        print(f"   Pending rewards: {router.pending_rewards(args.id, user)}")
    return 0


def cmd_leaderboard(args, router: Router, caller: str | None) -> int:
    rows = router.leaderboard(args.id)
    if not rows:
        print("No predictions yet.")
        return 0
    for rank, (user, score) in enumerate(rows, start=1):
        print(f"{rank:>3}. {user}  {score}")
    return 0


def cmd_list(args, router: Router, caller: str | None) -> int:
    for entry in router.list_competitions(args.owner):
        print(f"{entry['competition_id']:>4}  {entry['variant']:<17} {entry['owner']}")
    return 0


# Commands that change state are signed; reads aren't.
_NEEDS_CALLER = {
    cmd_create, cmd_start, cmd_set_names, cmd_complete, cmd_advance,
    cmd_predict, cmd_refund, cmd_claim,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bracketpool",
        description="Tournament brackets with prediction pools",
    )
    parser.add_argument("--config", type=Path, default=None, help="Config file (default: ~/.bracketpool/config.toml)")
    parser.add_argument("--db", default=None, help="SQLite database path (overrides config)")
    parser.add_argument("--key", default=None, help="Private key to sign with (default: [wallet] private_key)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # create command
    create_parser = subparsers.add_parser("create", help="Create a competition")
    create_parser.add_argument("--name", required=True, help="Competition name")
    create_parser.add_argument("--teams", required=True, help="Comma-separated team names (power of two)")
    create_parser.add_argument("--start", required=True, help="Start epoch, or +SECONDS from now")
    create_parser.add_argument("--expires", default=None, help="Expiration epoch, or +SECONDS (default: never)")
    create_parser.add_argument("--variant", default=VARIANT_PREDICTABLE, choices=list_variants(), help="Competition type")
    create_parser.add_argument("--fee", type=int, default=0, help="Entry fee in base units (paid variant)")
    create_parser.add_argument("--points", type=int, default=None, help="Points per round (default: from config)")
    create_parser.add_argument("--banner", default=None, help="Banner image URI")
    create_parser.set_defaults(func=cmd_create)

    # start command
    start_parser = subparsers.add_parser("start", help="Put a competition live")
    start_parser.add_argument("id", type=int, help="Competition id")
    start_parser.set_defaults(func=cmd_start)

    # set-names command
    names_parser = subparsers.add_parser("set-names", help="Replace team names before start")
    names_parser.add_argument("id", type=int, help="Competition id")
    names_parser.add_argument("names", help="Comma-separated team names")
    names_parser.set_defaults(func=cmd_set_names)

    # complete command
    complete_parser = subparsers.add_parser("complete", help="Record a match winner")
    complete_parser.add_argument("id", type=int, help="Competition id")
    complete_parser.add_argument("match", type=int, help="Bracket index of the match")
    complete_parser.add_argument("winner", type=int, help="Winning team id")
    complete_parser.set_defaults(func=cmd_complete)

    # advance command
    advance_parser = subparsers.add_parser("advance", help="Close the current round")
    advance_parser.add_argument("id", type=int, help="Competition id")
    advance_parser.add_argument("--results", default=None, help="Comma-separated winners for the whole round")
    advance_parser.set_defaults(func=cmd_advance)

    # predict command
    predict_parser = subparsers.add_parser("predict", help="Submit a full bracket of picks")
    predict_parser.add_argument("id", type=int, help="Competition id")
    predict_parser.add_argument("picks", type=int, nargs="+", help="Predicted winner per match")
    predict_parser.set_defaults(func=cmd_predict)

    # refund command
    refund_parser = subparsers.add_parser("refund", help="Refund an entry fee from an expired competition")
    refund_parser.add_argument("id", type=int, help="Competition id")
    refund_parser.set_defaults(func=cmd_refund)

    # claim command
    claim_parser = subparsers.add_parser("claim", help="Claim prediction rewards")
    claim_parser.add_argument("id", type=int, help="Competition id")
    claim_parser.set_defaults(func=cmd_claim)

    # show command
    show_parser = subparsers.add_parser("show", help="Show a competition's bracket")
    show_parser.add_argument("id", type=int, help="Competition id")
    show_parser.set_defaults(func=cmd_show)

    # score command
    score_parser = subparsers.add_parser("score", help="Show a user's score")
    score_parser.add_argument("id", type=int, help="Competition id")
    score_parser.add_argument("--user", default=None, help="Address to score (default: caller)")
    score_parser.set_defaults(func=cmd_score)

    # leaderboard command
    lb_parser = subparsers.add_parser("leaderboard", help="Rank predictors by score")
    lb_parser.add_argument("id", type=int, help="Competition id")
    lb_parser.set_defaults(func=cmd_leaderboard)

    # list command
    list_parser = subparsers.add_parser("list", help="List competitions")
    list_parser.add_argument("--owner", default=None, help="Only this owner's competitions")
    list_parser.set_defaults(func=cmd_list)

    args = parser.parse_args(argv)
    config = load_config(args.config)
    if args.key:
        config.wallet = WalletConfig(private_key=args.key)

    try:
        account = load_account(config)
    except ValueError as e:
        logger.error(f"Invalid private key: {e}")
        return 1
    if account is None and args.func in _NEEDS_CALLER:
        logger.error("No signing key: pass --key or set [wallet] private_key in config.toml")
        return 1

    router = build_router(config, args.db)
    try:
        if args.func in _NEEDS_CALLER:
            competition_id = getattr(args, "id", 0)
            request = make_request(account, args.command, competition_id, SystemClock().now())
            caller = router.authenticate(request)
        else:
            caller = caller_from_config(config)
        return args.func(args, router, caller)
    except BracketPoolError as e:
        code = e.code.value if e.code else "error"
        logger.error(f"{code}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
