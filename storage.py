"""
Repository layer: the `Storage` protocol the settlement core consumes, and an
in-memory implementation.

MemStorage keeps one map per record type behind a re-entrant lock. Records are
never mutated in place (updates store a `dataclasses.replace` copy), so a
transaction can snapshot the maps with shallow copies and restore them if the
block raises.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from errors import BetNotFoundError, InsufficientBalanceError, UserNotFoundError
from models import Bet, BetSelection, BetStatus, League, Market, Match, MatchStatus, Team, User

logger = logging.getLogger(__name__)


class Storage(Protocol):
    # users
    def get_user(self, user_id: int) -> Optional[User]: ...
    def get_user_by_username(self, username: str) -> Optional[User]: ...
    def create_user(self, username: str, password: str, balance: float) -> User: ...
    def update_user_balance(self, user_id: int, balance: float) -> Optional[User]: ...
    def adjust_user_balance(self, user_id: int, delta: float) -> User: ...

    # leagues and teams
    def get_leagues(self) -> List[League]: ...
    def get_leagues_by_country(self, country: str) -> List[League]: ...
    def get_league(self, league_id: int) -> Optional[League]: ...
    def create_league(self, name: str, country: str, is_active: bool = True) -> League: ...
    def get_teams(self) -> List[Team]: ...
    def get_teams_by_country(self, country: str) -> List[Team]: ...
    def get_team(self, team_id: int) -> Optional[Team]: ...
    def create_team(
        self, name: str, short_name: str, country: str,
        logo: Optional[str] = None, league: Optional[str] = None,
    ) -> Team: ...
    def update_team_logo(self, team_id: int, logo: str) -> Optional[Team]: ...

    # matches
    def list_matches(self) -> List[Match]: ...
    def get_match(self, match_id: int) -> Optional[Match]: ...
    def create_match(self, **fields) -> Match: ...
    def update_match_status(
        self,
        match_id: int,
        status: MatchStatus,
        home_score: Optional[int] = None,
        away_score: Optional[int] = None,
        ht_home_score: Optional[int] = None,
        ht_away_score: Optional[int] = None,
    ) -> Optional[Match]: ...
    def delete_match(self, match_id: int) -> bool: ...

    # markets
    def get_market(self, market_id: int) -> Optional[Market]: ...
    def get_markets_by_match_id(self, match_id: int) -> List[Market]: ...
    def create_market(self, match_id: int, type: str, odds: float, is_locked: bool = False) -> Market: ...
    def toggle_market_lock(self, market_id: int, is_locked: bool) -> Optional[Market]: ...

    # bets
    def get_bets(self) -> List[Bet]: ...
    def get_bets_by_user_id(self, user_id: int) -> List[Bet]: ...
    def get_bet(self, bet_id: int) -> Optional[Bet]: ...
    def get_bet_selections(self, bet_id: int) -> List[BetSelection]: ...
    def create_bet(
        self, user_id: int, stake: float, total_odds: float, potential_win: float,
        selections: Iterable[Tuple[int, float]],
    ) -> Bet: ...
    def delete_bet(self, bet_id: int) -> bool: ...
    def transition_bet_status(self, bet_id: int, expected: BetStatus, new: BetStatus) -> bool: ...

    def transaction(self): ...


class MemStorage:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._leagues: Dict[int, League] = {}
        self._teams: Dict[int, Team] = {}
        self._matches: Dict[int, Match] = {}
        self._markets: Dict[int, Market] = {}
        self._bets: Dict[int, Bet] = {}
        self._selections: Dict[int, BetSelection] = {}
        self._next_ids: Dict[str, int] = {
            "user": 1, "league": 1, "team": 1, "match": 1, "market": 1, "bet": 1, "selection": 1,
        }

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value

    # ── transactions ─────────────────────────────────────────────────────────

    def _snapshot(self) -> tuple:
        return (
            dict(self._users),
            dict(self._leagues),
            dict(self._teams),
            dict(self._matches),
            dict(self._markets),
            dict(self._bets),
            dict(self._selections),
            dict(self._next_ids),
        )

    def _restore(self, snapshot: tuple) -> None:
        (self._users, self._leagues, self._teams, self._matches, self._markets,
         self._bets, self._selections, self._next_ids) = snapshot

    @contextmanager
    def transaction(self) -> Iterator["MemStorage"]:
        """Hold the store lock for the block; roll every map back if it raises."""
        with self._lock:
            snapshot = self._snapshot()
            try:
                yield self
            except Exception:
                logger.warning("Rolling back storage transaction")
                self._restore(snapshot)
                raise

    # ── users ────────────────────────────────────────────────────────────────

    def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    def create_user(self, username: str, password: str, balance: float) -> User:
        with self._lock:
            user = User(id=self._next_id("user"), username=username, password=password, balance=balance)
            self._users[user.id] = user
            return user

    def update_user_balance(self, user_id: int, balance: float) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = replace(user, balance=balance)
            self._users[user_id] = updated
            return updated

    def adjust_user_balance(self, user_id: int, delta: float) -> User:
        """Atomic read-modify-write of a balance. Debits may not go below zero."""
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise UserNotFoundError(user_id)
            if delta < 0 and user.balance + delta < 0:
                raise InsufficientBalanceError(user_id, user.balance, -delta)
            updated = replace(user, balance=user.balance + delta)
            self._users[user_id] = updated
            return updated

    # ── leagues ──────────────────────────────────────────────────────────────

    def get_leagues(self) -> List[League]:
        return list(self._leagues.values())

    def get_leagues_by_country(self, country: str) -> List[League]:
        return [league for league in self._leagues.values() if league.country == country]

    def get_league(self, league_id: int) -> Optional[League]:
        return self._leagues.get(league_id)

    def create_league(self, name: str, country: str, is_active: bool = True) -> League:
        with self._lock:
            league = League(id=self._next_id("league"), name=name, country=country, is_active=is_active)
            self._leagues[league.id] = league
            return league

    # ── teams ────────────────────────────────────────────────────────────────

    def get_teams(self) -> List[Team]:
        return list(self._teams.values())

    def get_teams_by_country(self, country: str) -> List[Team]:
        return [team for team in self._teams.values() if team.country == country]

    def get_team(self, team_id: int) -> Optional[Team]:
        return self._teams.get(team_id)

    def create_team(
        self, name: str, short_name: str, country: str,
        logo: Optional[str] = None, league: Optional[str] = None,
    ) -> Team:
        with self._lock:
            team = Team(
                id=self._next_id("team"), name=name, short_name=short_name,
                country=country, logo=logo, league=league,
            )
            self._teams[team.id] = team
            return team

    def update_team_logo(self, team_id: int, logo: str) -> Optional[Team]:
        with self._lock:
            team = self._teams.get(team_id)
            if team is None:
                return None
            updated = replace(team, logo=logo)
            self._teams[team_id] = updated
            return updated

    # ── matches ──────────────────────────────────────────────────────────────

    def list_matches(self) -> List[Match]:
        return list(self._matches.values())

    def get_match(self, match_id: int) -> Optional[Match]:
        return self._matches.get(match_id)

    def create_match(self, **fields) -> Match:
        with self._lock:
            match = Match(id=self._next_id("match"), **fields)
            self._matches[match.id] = match
            return match

    def update_match_status(
        self,
        match_id: int,
        status: MatchStatus,
        home_score: Optional[int] = None,
        away_score: Optional[int] = None,
        ht_home_score: Optional[int] = None,
        ht_away_score: Optional[int] = None,
    ) -> Optional[Match]:
        """Set the status; scores left as None keep their stored value."""
        with self._lock:
            match = self._matches.get(match_id)
            if match is None:
                return None
            updated = replace(
                match,
                status=MatchStatus(status),
                home_score=home_score if home_score is not None else match.home_score,
                away_score=away_score if away_score is not None else match.away_score,
                ht_home_score=ht_home_score if ht_home_score is not None else match.ht_home_score,
                ht_away_score=ht_away_score if ht_away_score is not None else match.ht_away_score,
            )
            self._matches[match_id] = updated
            return updated

    def delete_match(self, match_id: int) -> bool:
        with self._lock:
            if match_id not in self._matches:
                return False
            for market in self.get_markets_by_match_id(match_id):
                del self._markets[market.id]
            del self._matches[match_id]
            return True

    # ── markets ──────────────────────────────────────────────────────────────

    def get_market(self, market_id: int) -> Optional[Market]:
        return self._markets.get(market_id)

    def get_markets_by_match_id(self, match_id: int) -> List[Market]:
        return [m for m in self._markets.values() if m.match_id == match_id]

    def create_market(self, match_id: int, type: str, odds: float, is_locked: bool = False) -> Market:
        with self._lock:
            market = Market(id=self._next_id("market"), match_id=match_id, type=type, odds=odds, is_locked=is_locked)
            self._markets[market.id] = market
            return market

    def toggle_market_lock(self, market_id: int, is_locked: bool) -> Optional[Market]:
        with self._lock:
            market = self._markets.get(market_id)
            if market is None:
                return None
            updated = replace(market, is_locked=is_locked)
            self._markets[market_id] = updated
            return updated

    # ── bets ─────────────────────────────────────────────────────────────────

    def get_bets(self) -> List[Bet]:
        return list(self._bets.values())

    def get_bets_by_user_id(self, user_id: int) -> List[Bet]:
        return [b for b in self._bets.values() if b.user_id == user_id]

    def get_bet(self, bet_id: int) -> Optional[Bet]:
        return self._bets.get(bet_id)

    def get_bet_selections(self, bet_id: int) -> List[BetSelection]:
        return [s for s in self._selections.values() if s.bet_id == bet_id]

    def create_bet(
        self, user_id: int, stake: float, total_odds: float, potential_win: float,
        selections: Iterable[Tuple[int, float]],
    ) -> Bet:
        with self._lock:
            bet = Bet(
                id=self._next_id("bet"),
                user_id=user_id,
                stake=stake,
                total_odds=total_odds,
                potential_win=potential_win,
            )
            self._bets[bet.id] = bet
            for market_id, odds in selections:
                selection = BetSelection(id=self._next_id("selection"), bet_id=bet.id, market_id=market_id, odds=odds)
                self._selections[selection.id] = selection
            return bet

    def delete_bet(self, bet_id: int) -> bool:
        with self._lock:
            if bet_id not in self._bets:
                return False
            for selection in self.get_bet_selections(bet_id):
                del self._selections[selection.id]
            del self._bets[bet_id]
            return True

    def transition_bet_status(self, bet_id: int, expected: BetStatus, new: BetStatus) -> bool:
        """Compare-and-swap on bet status. False if the bet is no longer `expected`."""
        with self._lock:
            bet = self._bets.get(bet_id)
            if bet is None:
                raise BetNotFoundError(bet_id)
            if bet.status != expected:
                return False
            self._bets[bet_id] = replace(bet, status=new, settled_at=datetime.now(timezone.utc))
            return True


def seed_default_user(storage: Storage, balance: float, username: str = "user", password: str = "password") -> User:
    existing = storage.get_user_by_username(username)
    if existing is not None:
        return existing
    return storage.create_user(username, password, balance)
