from __future__ import annotations

from functools import partial
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from models import Bet, BetSelection, BetStatus, Market, MarketType, Match, MatchStatus, Outcome

Score = Tuple[int, int]
Leg = Tuple[BetSelection, Market]

# ═══════════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _result_category(home: int, away: int) -> str:
    if home > away:
        return "HOME"
    if home < away:
        return "AWAY"
    return "DRAW"


def _second_half_score(ft: Score, ht: Score) -> Score:
    return ft[0] - ht[0], ft[1] - ht[1]


def _period_score(ft: Score, ht: Score, period: str) -> Score:
    if period == "HT":
        return ht
    if period == "2H":
        return _second_half_score(ft, ht)
    return ft


def _tag(market_type: Union[str, MarketType]) -> str:
    if isinstance(market_type, MarketType):
        return market_type.value
    return str(market_type)


W = Outcome.WIN
L = Outcome.LOSE
PUSH = Outcome.PUSH


# ═══════════════════════════════════════════════════════════════════════════════
#  Period-parametrised rules
# ═══════════════════════════════════════════════════════════════════════════════


def _match_winner(ft: Score, ht: Score, period: str, pick: str) -> bool:
    sc = _period_score(ft, ht, period)
    return _result_category(sc[0], sc[1]) == pick


def _over(ft: Score, ht: Score, period: str, line: float) -> bool:
    sc = _period_score(ft, ht, period)
    return sc[0] + sc[1] > line


def _under(ft: Score, ht: Score, period: str, line: float) -> bool:
    sc = _period_score(ft, ht, period)
    return sc[0] + sc[1] < line


def _btts(ft: Score, ht: Score, period: str, yes: bool) -> bool:
    sc = _period_score(ft, ht, period)
    both = sc[0] > 0 and sc[1] > 0
    return both if yes else not both


def _double_chance(ft: Score, ht: Score, pick: str) -> bool:
    valid = {"1X": {"HOME", "DRAW"}, "X2": {"DRAW", "AWAY"}, "12": {"HOME", "AWAY"}}
    return _result_category(ft[0], ft[1]) in valid[pick]


def _handicap(ft: Score, ht: Score, pick: str, goals: int) -> bool:
    """Whole-goal handicap on the favourite; an exact line is a loss, never a push."""
    if pick == "HOME":
        return ft[0] - goals > ft[1]
    return ft[0] < ft[1] - goals


def _win_both_halves(ft: Score, ht: Score, pick: str) -> bool:
    sh = _second_half_score(ft, ht)
    return _result_category(*ht) == pick and _result_category(*sh) == pick


def _win_either_half(ft: Score, ht: Score, pick: str) -> bool:
    sh = _second_half_score(ft, ht)
    return _result_category(*ht) == pick or _result_category(*sh) == pick


# ═══════════════════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════════════════

MARKET_RULES: Dict[MarketType, Callable[[Score, Score], bool]] = {
    # FT 1X2
    MarketType.HOME: partial(_match_winner, period="FT", pick="HOME"),
    MarketType.DRAW: partial(_match_winner, period="FT", pick="DRAW"),
    MarketType.AWAY: partial(_match_winner, period="FT", pick="AWAY"),
    # FT totals
    MarketType.OVER_1_5: partial(_over, period="FT", line=1.5),
    MarketType.UNDER_1_5: partial(_under, period="FT", line=1.5),
    MarketType.OVER_2_5: partial(_over, period="FT", line=2.5),
    MarketType.UNDER_2_5: partial(_under, period="FT", line=2.5),
    MarketType.OVER_3_5: partial(_over, period="FT", line=3.5),
    MarketType.UNDER_3_5: partial(_under, period="FT", line=3.5),
    # FT BTTS
    MarketType.BTTS_YES: partial(_btts, period="FT", yes=True),
    MarketType.BTTS_NO: partial(_btts, period="FT", yes=False),
    # draw no bet (draw handled by is_push)
    MarketType.DNB_1: partial(_match_winner, period="FT", pick="HOME"),
    MarketType.DNB_2: partial(_match_winner, period="FT", pick="AWAY"),
    # double chance
    MarketType.DC_1X: partial(_double_chance, pick="1X"),
    MarketType.DC_12: partial(_double_chance, pick="12"),
    MarketType.DC_X2: partial(_double_chance, pick="X2"),
    # HT
    MarketType.HT_1: partial(_match_winner, period="HT", pick="HOME"),
    MarketType.HT_X: partial(_match_winner, period="HT", pick="DRAW"),
    MarketType.HT_2: partial(_match_winner, period="HT", pick="AWAY"),
    MarketType.HT_OVER_0_5: partial(_over, period="HT", line=0.5),
    MarketType.HT_UNDER_0_5: partial(_under, period="HT", line=0.5),
    MarketType.HT_OVER_1_5: partial(_over, period="HT", line=1.5),
    MarketType.HT_UNDER_1_5: partial(_under, period="HT", line=1.5),
    MarketType.HT_BTTS_YES: partial(_btts, period="HT", yes=True),
    MarketType.HT_BTTS_NO: partial(_btts, period="HT", yes=False),
    # handicap
    MarketType.HANDICAP_1_MINUS_1: partial(_handicap, pick="HOME", goals=1),
    MarketType.HANDICAP_1_MINUS_2: partial(_handicap, pick="HOME", goals=2),
    MarketType.HANDICAP_2_MINUS_1: partial(_handicap, pick="AWAY", goals=1),
    MarketType.HANDICAP_2_MINUS_2: partial(_handicap, pick="AWAY", goals=2),
    # cross-half
    MarketType.WIN_BOTH_HALVES_1: partial(_win_both_halves, pick="HOME"),
    MarketType.WIN_BOTH_HALVES_2: partial(_win_both_halves, pick="AWAY"),
    MarketType.WIN_EITHER_HALF_1: partial(_win_either_half, pick="HOME"),
    MarketType.WIN_EITHER_HALF_2: partial(_win_either_half, pick="AWAY"),
}

PUSH_MARKETS = {MarketType.DNB_1.value, MarketType.DNB_2.value}

# keyed by the stored tag so plain strings resolve
_RULES_BY_TAG = {market.value: rule for market, rule in MARKET_RULES.items()}

SUPPORTED_MARKETS = sorted(_RULES_BY_TAG)


# ═══════════════════════════════════════════════════════════════════════════════
#  Selection evaluation
# ═══════════════════════════════════════════════════════════════════════════════


def evaluate(
    market_type: Union[str, MarketType],
    home_score: int,
    away_score: int,
    ht_home_score: int = 0,
    ht_away_score: int = 0,
) -> Outcome:
    """WIN or LOSE for a market tag. Unknown tags always LOSE."""
    rule = _RULES_BY_TAG.get(_tag(market_type))
    if rule is None:
        return L
    won = rule((home_score, away_score), (ht_home_score, ht_away_score))
    return W if won else L


def is_push(market_type: Union[str, MarketType], home_score: int, away_score: int) -> bool:
    return _tag(market_type) in PUSH_MARKETS and home_score == away_score


def settle_market(
    market_type: Union[str, MarketType],
    home_score: int,
    away_score: int,
    ht_home_score: int = 0,
    ht_away_score: int = 0,
) -> Outcome:
    if is_push(market_type, home_score, away_score):
        return PUSH
    return evaluate(market_type, home_score, away_score, ht_home_score, ht_away_score)


def settle_market_for_match(market: Market, match: Match) -> Outcome:
    if not match.has_final_score:
        raise ValueError(f"Match {match.id} has no final score")
    return settle_market(
        market.type,
        match.home_score,
        match.away_score,
        match.ht_home_score or 0,
        match.ht_away_score or 0,
    )


# ═══════════════════════════════════════════════════════════════════════════════
#  Bet aggregation
# ═══════════════════════════════════════════════════════════════════════════════


def _fold_status(all_won: bool, any_push: bool) -> BetStatus:
    if not all_won:
        return BetStatus.LOST
    return BetStatus.PUSH if any_push else BetStatus.WON


def _is_settleable(match: Optional[Match]) -> bool:
    return match is not None and match.status == MatchStatus.FINISHED and match.has_final_score


def _aggregate_all_legs(legs: Sequence[Leg], matches: Mapping[int, Match]) -> Optional[BetStatus]:
    any_push = False
    waiting = False
    for _, market in legs:
        leg_match = matches.get(market.match_id)
        if not _is_settleable(leg_match):
            waiting = True
            continue
        outcome = settle_market_for_match(market, leg_match)
        if outcome == PUSH:
            any_push = True
        elif outcome == L:
            return BetStatus.LOST
    if waiting:
        return None
    return _fold_status(True, any_push)


def aggregate_bet(
    bet: Bet,
    legs: Sequence[Leg],
    match: Match,
    finished_matches: Optional[Mapping[int, Match]] = None,
    require_all_legs: bool = False,
) -> Optional[BetStatus]:
    """
    Decide a bet's new status after `match` finished, or None to leave it as is.

    Only legs on `match` are looked at by default, so an accumulator can be
    decided before its other matches are played. With require_all_legs the
    legs of every finished match in `finished_matches` count and the bet
    waits for the rest unless one of them already lost.
    """
    if bet.status != BetStatus.PENDING:
        return None
    if not any(market.match_id == match.id for _, market in legs):
        return None

    if require_all_legs:
        matches = dict(finished_matches or {})
        matches[match.id] = match
        return _aggregate_all_legs(legs, matches)

    all_won = True
    any_push = False
    for _, market in legs:
        if market.match_id != match.id:
            continue
        outcome = settle_market_for_match(market, match)
        if outcome == PUSH:
            any_push = True
        elif outcome == L:
            all_won = False
            break
    return _fold_status(all_won, any_push)
