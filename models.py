from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


class MatchStatus(str, Enum):
    UPCOMING = "UPCOMING"
    LIVE = "LIVE"
    FINISHED = "FINISHED"


class BetStatus(str, Enum):
    PENDING = "PENDING"
    WON = "WON"
    LOST = "LOST"
    PUSH = "PUSH"


class Outcome(str, Enum):
    WIN = "WIN"
    LOSE = "LOSE"
    PUSH = "PUSH"


class MarketType(str, Enum):
    # ── 1X2 ──
    HOME = "1"
    DRAW = "X"
    AWAY = "2"
    # ── total goals ──
    OVER_1_5 = "OVER_1_5"
    UNDER_1_5 = "UNDER_1_5"
    OVER_2_5 = "OVER_2_5"
    UNDER_2_5 = "UNDER_2_5"
    OVER_3_5 = "OVER_3_5"
    UNDER_3_5 = "UNDER_3_5"
    # ── both teams to score ──
    BTTS_YES = "BTTS_YES"
    BTTS_NO = "BTTS_NO"
    # ── draw no bet ──
    DNB_1 = "DNB_1"
    DNB_2 = "DNB_2"
    # ── double chance ──
    DC_1X = "DC_1X"
    DC_12 = "DC_12"
    DC_X2 = "DC_X2"
    # ── half-time ──
    HT_1 = "HT_1"
    HT_X = "HT_X"
    HT_2 = "HT_2"
    HT_OVER_0_5 = "HT_OVER_0_5"
    HT_UNDER_0_5 = "HT_UNDER_0_5"
    HT_OVER_1_5 = "HT_OVER_1_5"
    HT_UNDER_1_5 = "HT_UNDER_1_5"
    HT_BTTS_YES = "HT_BTTS_YES"
    HT_BTTS_NO = "HT_BTTS_NO"
    # ── handicap ──
    HANDICAP_1_MINUS_1 = "HANDICAP_1_MINUS_1"
    HANDICAP_1_MINUS_2 = "HANDICAP_1_MINUS_2"
    HANDICAP_2_MINUS_1 = "HANDICAP_2_MINUS_1"
    HANDICAP_2_MINUS_2 = "HANDICAP_2_MINUS_2"
    # ── cross-half ──
    WIN_BOTH_HALVES_1 = "WIN_BOTH_HALVES_1"
    WIN_BOTH_HALVES_2 = "WIN_BOTH_HALVES_2"
    WIN_EITHER_HALF_1 = "WIN_EITHER_HALF_1"
    WIN_EITHER_HALF_2 = "WIN_EITHER_HALF_2"
    # ── stored but never settled as a win ──
    CORRECT_SCORE = "CORRECT_SCORE"
    CUSTOM = "CUSTOM"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: int
    username: str
    password: str
    balance: float = 0.0


@dataclass
class League:
    id: int
    name: str
    country: str
    is_active: bool = True


@dataclass
class Team:
    id: int
    name: str
    short_name: str
    country: str
    logo: Optional[str] = None
    league: Optional[str] = None   # league name, informational only


@dataclass
class Match:
    id: int
    league_id: int
    start_time: datetime
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    home_team_name: Optional[str] = None
    away_team_name: Optional[str] = None
    status: MatchStatus = MatchStatus.UPCOMING
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    ht_home_score: Optional[int] = None
    ht_away_score: Optional[int] = None
    is_custom: bool = False
    external_fixture_id: Optional[int] = None   # result-feed fixture id

    @property
    def has_final_score(self) -> bool:
        return self.home_score is not None and self.away_score is not None


@dataclass
class Market:
    id: int
    match_id: int
    type: str
    odds: float
    is_locked: bool = False


@dataclass
class Bet:
    id: int
    user_id: int
    stake: float
    total_odds: float
    potential_win: float
    status: BetStatus = BetStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    settled_at: Optional[datetime] = None


@dataclass
class BetSelection:
    id: int
    bet_id: int
    market_id: int
    odds: float


@dataclass
class FixtureScore:
    fixture_id: int
    status_short: str
    home_goals: Optional[int]
    away_goals: Optional[int]
    halftime_home: Optional[int] = None
    halftime_away: Optional[int] = None


@dataclass
class SettlementFailure:
    bet_id: int
    reason: str


@dataclass
class SettlementReport:
    match_id: int
    scanned: int = 0
    settled: Dict[int, BetStatus] = field(default_factory=dict)
    untouched: int = 0
    failures: List[SettlementFailure] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "scanned": self.scanned,
            "settled": {str(bet_id): status.value for bet_id, status in self.settled.items()},
            "untouched": self.untouched,
            "failures": [{"bet_id": f.bet_id, "reason": f.reason} for f in self.failures],
        }
