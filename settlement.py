"""
Settlement of bets when a match finishes.

`update_match_status` persists a match result and, on FINISHED, runs
`resolve_bets_for_match`: every PENDING bet in the store is scanned, the legs
on the finished match are evaluated and the bet is paid out through
`apply_payout`. The pass is O(bets x selections) and runs inside one storage
transaction. A failure on one bet is logged and reported, never fatal to the
pass.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple, Union

from config import Settings
from errors import (
    BetNotFoundError,
    InvalidScoreError,
    InvalidStateError,
    MarketNotFoundError,
    MatchNotFoundError,
    SportsbookError,
)
from evaluator import Leg, aggregate_bet
from models import Bet, BetStatus, Match, MatchStatus, SettlementFailure, SettlementReport
from storage import Storage

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
#  Payout
# ═══════════════════════════════════════════════════════════════════════════════


def apply_payout(storage: Storage, bet_id: int, new_status: BetStatus, push_refunds_stake: bool = True) -> bool:
    """
    Move a PENDING bet to its final status and credit the owner.

    WON credits potential_win, PUSH credits the stake back when
    push_refunds_stake is set, LOST credits nothing. Returns False without
    touching anything if the bet was already settled.
    """
    new_status = BetStatus(new_status)
    if new_status == BetStatus.PENDING:
        raise InvalidStateError("Cannot settle a bet to PENDING")

    with storage.transaction():
        bet = storage.get_bet(bet_id)
        if bet is None:
            raise BetNotFoundError(bet_id)
        if not storage.transition_bet_status(bet_id, BetStatus.PENDING, new_status):
            logger.info(f"Bet {bet_id} already {bet.status.value}, payout skipped")
            return False

        credit = 0.0
        if new_status == BetStatus.WON:
            credit = bet.potential_win
        elif new_status == BetStatus.PUSH and push_refunds_stake:
            credit = bet.stake
        if credit:
            user = storage.adjust_user_balance(bet.user_id, credit)
            logger.info(f"Credited {credit:.2f} to user {user.id} for bet {bet_id} ({new_status.value})")
    return True


def resolve_bet(storage: Storage, bet_id: int, status: Union[str, BetStatus], settings: Optional[Settings] = None) -> bool:
    """Manual resolution of a single bet."""
    settings = settings or Settings()
    try:
        new_status = BetStatus(status)
    except ValueError as exc:
        raise InvalidStateError(f"Unknown bet status '{status}'") from exc
    return apply_payout(storage, bet_id, new_status, settings.push_refunds_stake)


# ═══════════════════════════════════════════════════════════════════════════════
#  Settlement pass
# ═══════════════════════════════════════════════════════════════════════════════


def _collect_legs(storage: Storage, bet: Bet) -> Tuple[List[Leg], List[int]]:
    legs: List[Leg] = []
    missing: List[int] = []
    for selection in storage.get_bet_selections(bet.id):
        market = storage.get_market(selection.market_id)
        if market is None:
            missing.append(selection.market_id)
            continue
        legs.append((selection, market))
    return legs, missing


def _finished_matches(storage: Storage) -> Dict[int, Match]:
    return {m.id: m for m in storage.list_matches() if m.status == MatchStatus.FINISHED}


def _settle_one(
    storage: Storage,
    bet: Bet,
    match: Match,
    finished: Optional[Dict[int, Match]],
    settings: Settings,
) -> Optional[BetStatus]:
    legs, missing = _collect_legs(storage, bet)
    if not any(market.match_id == match.id for _, market in legs):
        return None
    if missing:
        raise MarketNotFoundError(missing[0])

    new_status = aggregate_bet(
        bet,
        legs,
        match,
        finished_matches=finished,
        require_all_legs=settings.settle_requires_all_legs,
    )
    if new_status is None:
        return None
    if not apply_payout(storage, bet.id, new_status, settings.push_refunds_stake):
        return None
    return new_status


def resolve_bets_for_match(storage: Storage, match_id: int, settings: Optional[Settings] = None) -> SettlementReport:
    settings = settings or Settings()
    report = SettlementReport(match_id=match_id)

    match = storage.get_match(match_id)
    if match is None:
        raise MatchNotFoundError(match_id)
    if match.status != MatchStatus.FINISHED or not match.has_final_score:
        logger.warning(f"Match {match_id} is not finished with a final score, nothing to settle")
        return report

    finished = _finished_matches(storage) if settings.settle_requires_all_legs else None

    with storage.transaction():
        for bet in storage.get_bets():
            if bet.status != BetStatus.PENDING:
                continue
            report.scanned += 1
            try:
                new_status = _settle_one(storage, bet, match, finished, settings)
            except SportsbookError as exc:
                logger.warning(f"Bet {bet.id} skipped while settling match {match_id}: {exc}")
                report.failures.append(SettlementFailure(bet_id=bet.id, reason=str(exc)))
                continue
            except Exception as exc:
                logger.exception(f"Unexpected error settling bet {bet.id} for match {match_id}")
                report.failures.append(SettlementFailure(bet_id=bet.id, reason=f"Unexpected error: {exc}"))
                continue

            if new_status is None:
                report.untouched += 1
                continue
            report.settled[bet.id] = new_status
            logger.info(f"Bet {bet.id} settled {new_status.value} on match {match_id}")

    logger.info(
        f"Settled match {match_id} ({match.home_score}-{match.away_score}): "
        f"{len(report.settled)} settled, {report.untouched} untouched, "
        f"{len(report.failures)} failed of {report.scanned} pending"
    )
    return report


# ═══════════════════════════════════════════════════════════════════════════════
#  Match status transitions
# ═══════════════════════════════════════════════════════════════════════════════


def _validate_scores(
    home: Optional[int], away: Optional[int], ht_home: Optional[int], ht_away: Optional[int],
) -> None:
    for label, value in (("home", home), ("away", away), ("half-time home", ht_home), ("half-time away", ht_away)):
        if value is not None and value < 0:
            raise InvalidScoreError(f"{label} score cannot be negative")
    if home is not None and ht_home is not None and ht_home > home:
        raise InvalidScoreError("half-time home score exceeds final home score")
    if away is not None and ht_away is not None and ht_away > away:
        raise InvalidScoreError("half-time away score exceeds final away score")


def update_match_status(
    storage: Storage,
    match_id: int,
    status: Union[str, MatchStatus],
    home_score: Optional[int] = None,
    away_score: Optional[int] = None,
    ht_home_score: Optional[int] = None,
    ht_away_score: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> Tuple[Match, Optional[SettlementReport]]:
    """
    Persist a status/score change; FINISHED also settles the match's bets.

    Scores passed as None keep their stored value. Finishing again with new
    scores re-runs the pass, but bets settled the first time are left alone.
    """
    try:
        status = MatchStatus(status)
    except ValueError as exc:
        raise InvalidStateError(f"Unknown match status '{status}'") from exc

    with storage.transaction():
        current = storage.get_match(match_id)
        if current is None:
            raise MatchNotFoundError(match_id)

        final_home = home_score if home_score is not None else current.home_score
        final_away = away_score if away_score is not None else current.away_score
        _validate_scores(
            final_home,
            final_away,
            ht_home_score if ht_home_score is not None else current.ht_home_score,
            ht_away_score if ht_away_score is not None else current.ht_away_score,
        )
        if status == MatchStatus.FINISHED:
            if final_home is None or final_away is None:
                raise InvalidScoreError("Both home and away scores are required to finish a match")
            if current.status == MatchStatus.FINISHED:
                logger.warning(f"Match {match_id} finished again; previously settled bets are not re-settled")

        match = storage.update_match_status(
            match_id, status, home_score, away_score, ht_home_score, ht_away_score,
        )
        report = None
        if status == MatchStatus.FINISHED:
            report = resolve_bets_for_match(storage, match_id, settings)
    return match, report


def finish_match(
    storage: Storage,
    match_id: int,
    home_score: int,
    away_score: int,
    ht_home_score: Optional[int] = None,
    ht_away_score: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> Tuple[Match, SettlementReport]:
    match, report = update_match_status(
        storage, match_id, MatchStatus.FINISHED,
        home_score, away_score, ht_home_score, ht_away_score, settings,
    )
    return match, report
