from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from errors import InvalidBetError, MarketLockedError, MarketNotFoundError, UserNotFoundError
from models import Bet, Market
from storage import Storage

logger = logging.getLogger(__name__)


def calculate_total_odds(odds: Iterable[float]) -> float:
    """Product of the leg odds; 0 for an empty slip."""
    values = list(odds)
    if not values:
        return 0.0
    total = 1.0
    for value in values:
        total *= value
    return total


def calculate_potential_win(stake: float, total_odds: float) -> float:
    return stake * total_odds


def _load_markets(storage: Storage, market_ids: Sequence[int]) -> List[Market]:
    markets: List[Market] = []
    for market_id in market_ids:
        market = storage.get_market(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        if market.is_locked:
            raise MarketLockedError(market_id)
        markets.append(market)
    return markets


def place_bet(storage: Storage, user_id: int, stake: float, market_ids: Sequence[int]) -> Bet:
    """
    Create an accumulator on the given markets and debit the stake.

    Leg odds are copied from the markets now; total odds and potential win are
    stored on the bet and never recomputed at settlement.
    """
    if stake <= 0:
        raise InvalidBetError("Stake must be positive")
    if not market_ids:
        raise InvalidBetError("At least one selection is required")

    with storage.transaction():
        if storage.get_user(user_id) is None:
            raise UserNotFoundError(user_id)
        markets = _load_markets(storage, market_ids)
        total_odds = calculate_total_odds(m.odds for m in markets)
        potential_win = calculate_potential_win(stake, total_odds)

        storage.adjust_user_balance(user_id, -stake)
        bet = storage.create_bet(
            user_id=user_id,
            stake=stake,
            total_odds=total_odds,
            potential_win=potential_win,
            selections=[(m.id, m.odds) for m in markets],
        )

    logger.info(
        f"User {user_id} placed bet {bet.id}: {len(markets)} leg(s), stake={stake:.2f}, "
        f"odds={total_odds:.2f}, potential={potential_win:.2f}"
    )
    return bet


def delete_bet(storage: Storage, bet_id: int) -> bool:
    """Remove a bet and its selections, whatever its status. No balance change."""
    deleted = storage.delete_bet(bet_id)
    if deleted:
        logger.info(f"Deleted bet {bet_id}")
    return deleted
