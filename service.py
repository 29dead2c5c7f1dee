from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictBool, field_validator, model_validator

from api_client import APISportsClient
from config import Settings, load_settings
from errors import (
    InsufficientBalanceError,
    InvalidBetError,
    InvalidScoreError,
    InvalidStateError,
    LeagueNotFoundError,
    MarketNotFoundError,
    NotFoundError,
    ResultFeedError,
    SportsbookError,
    TeamNotFoundError,
)
from evaluator import SUPPORTED_MARKETS
from logging_config import setup_logging
from models import Bet, BetStatus, League, Match, MatchStatus
from placement import delete_bet, place_bet
from settlement import finish_match, resolve_bet, update_match_status
from storage import MemStorage, Storage, seed_default_user

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
#  Pydantic models
# ═══════════════════════════════════════════════════════════════════════════════


class MarketSpecIn(BaseModel):
    type: str = Field(min_length=1)
    odds: float = Field(gt=0, allow_inf_nan=False)
    is_locked: bool = False

    @field_validator("type")
    @classmethod
    def normalize_type(cls, value: str) -> str:
        return value.strip().upper()


class MarketIn(MarketSpecIn):
    match_id: int = Field(gt=0)


class LeagueIn(BaseModel):
    name: str = Field(min_length=1)
    country: str = Field(min_length=1)
    is_active: bool = True


class TeamIn(BaseModel):
    name: str = Field(min_length=1)
    short_name: str = Field(min_length=1)
    country: str = Field(min_length=1)
    logo: Optional[str] = None
    league: Optional[str] = None


class MatchIn(BaseModel):
    league_id: int = Field(gt=0)
    start_time: datetime
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    home_team_name: Optional[str] = None
    away_team_name: Optional[str] = None
    status: MatchStatus = MatchStatus.UPCOMING
    home_score: Optional[int] = Field(default=None, ge=0)
    away_score: Optional[int] = Field(default=None, ge=0)
    ht_home_score: Optional[int] = Field(default=None, ge=0)
    ht_away_score: Optional[int] = Field(default=None, ge=0)
    is_custom: bool = False
    external_fixture_id: Optional[int] = Field(default=None, gt=0)
    markets: List[MarketSpecIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_teams(self) -> "MatchIn":
        if self.home_team_id is None and not self.home_team_name:
            raise ValueError("home_team_id or home_team_name is required")
        if self.away_team_id is None and not self.away_team_name:
            raise ValueError("away_team_id or away_team_name is required")
        return self


class MatchStatusIn(BaseModel):
    status: MatchStatus
    home_score: Optional[int] = Field(default=None, ge=0)
    away_score: Optional[int] = Field(default=None, ge=0)
    ht_home_score: Optional[int] = Field(default=None, ge=0)
    ht_away_score: Optional[int] = Field(default=None, ge=0)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


class ScoreIn(BaseModel):
    home_score: int = Field(ge=0)
    away_score: int = Field(ge=0)
    ht_home_score: Optional[int] = Field(default=None, ge=0)
    ht_away_score: Optional[int] = Field(default=None, ge=0)
    status: MatchStatus = MatchStatus.FINISHED


class LockIn(BaseModel):
    is_locked: StrictBool


class BalanceAddIn(BaseModel):
    amount: float = Field(gt=0, allow_inf_nan=False)


class SelectionIn(BaseModel):
    market_id: int = Field(gt=0)


class BetIn(BaseModel):
    stake: float = Field(gt=0, allow_inf_nan=False)
    selections: List[SelectionIn] = Field(min_length=1)


class ResolveIn(BaseModel):
    status: BetStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


# ═══════════════════════════════════════════════════════════════════════════════
#  Dependencies
# ═══════════════════════════════════════════════════════════════════════════════

_settings = load_settings()
_storage: Storage = MemStorage()
seed_default_user(_storage, _settings.initial_balance)


def get_settings() -> Settings:
    return _settings


def get_storage() -> Storage:
    return _storage


def current_user_id(
    x_user_id: Optional[int] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> int:
    return x_user_id if x_user_id is not None else settings.default_user_id


def _http_error(exc: SportsbookError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ResultFeedError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (InsufficientBalanceError, InvalidBetError, InvalidScoreError)):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=f"Unexpected error: {exc}")


# ═══════════════════════════════════════════════════════════════════════════════
#  Serialisation helpers
# ═══════════════════════════════════════════════════════════════════════════════

_STATUS_ORDER = {MatchStatus.LIVE: 0, MatchStatus.UPCOMING: 1, MatchStatus.FINISHED: 2}

_CONTINENTS = {
    "Romania": "Europe", "Portugal": "Europe", "Spain": "Europe", "England": "Europe",
    "Italy": "Europe", "Germany": "Europe", "France": "Europe", "Austria": "Europe",
    "Netherlands": "Europe", "Belgium": "Europe",
    "Brazil": "South America", "Argentina": "South America", "Colombia": "South America",
    "United States": "North America", "Mexico": "North America",
    "Japan": "Asia", "South Korea": "Asia", "China": "Asia",
    "Egypt": "Africa", "South Africa": "Africa", "Morocco": "Africa",
}


def _asdict_or_none(record) -> Optional[dict]:
    return asdict(record) if record is not None else None


def _match_with_markets(storage: Storage, match: Match) -> dict:
    data = asdict(match)
    data["league"] = _asdict_or_none(storage.get_league(match.league_id))
    data["home_team"] = _asdict_or_none(storage.get_team(match.home_team_id)) if match.home_team_id else None
    data["away_team"] = _asdict_or_none(storage.get_team(match.away_team_id)) if match.away_team_id else None
    data["markets"] = [asdict(m) for m in storage.get_markets_by_match_id(match.id)]
    return data


def _group_by_continent(leagues: List[League]) -> list:
    """Continent -> country -> leagues tree, in first-seen order."""
    continents: dict = {}
    for league in leagues:
        continent = continents.setdefault(
            _CONTINENTS.get(league.country, "Other"), {"countries": {}},
        )
        country = continent["countries"].setdefault(league.country, [])
        country.append({"id": league.id, "name": league.name})
    return [
        {
            "name": name,
            "countries": [{"name": country, "leagues": items} for country, items in body["countries"].items()],
        }
        for name, body in continents.items()
    ]


def _bet_with_selections(storage: Storage, bet: Bet) -> dict:
    data = asdict(bet)
    selections = []
    for selection in storage.get_bet_selections(bet.id):
        market = storage.get_market(selection.market_id)
        if market is None:
            continue
        match = storage.get_match(market.match_id)
        if match is None:
            continue
        market_data = asdict(market)
        market_data["match"] = _match_with_markets(storage, match)
        selection_data = asdict(selection)
        selection_data["market"] = market_data
        selections.append(selection_data)
    data["selections"] = selections
    return data


# ═══════════════════════════════════════════════════════════════════════════════
#  App
# ═══════════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging("sportsbook", _settings.log_level, _settings.log_dir)
    yield


app = FastAPI(title="Sportsbook Settlement API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # raw inputs are left out: a non-finite number cannot be rendered as JSON
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": errors})


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/markets/supported")
def supported_markets() -> dict:
    return {"implemented": SUPPORTED_MARKETS, "count": len(SUPPORTED_MARKETS)}


# ── leagues and teams ────────────────────────────────────────────────────────


@app.get("/countries")
def list_countries(storage: Storage = Depends(get_storage)) -> list:
    return _group_by_continent(storage.get_leagues())


@app.get("/leagues")
def list_leagues(storage: Storage = Depends(get_storage)) -> list:
    return [asdict(league) for league in storage.get_leagues()]


@app.get("/leagues/{country}")
def list_leagues_by_country(country: str, storage: Storage = Depends(get_storage)) -> list:
    return [asdict(league) for league in storage.get_leagues_by_country(country)]


@app.post("/leagues", status_code=201)
def create_league(payload: LeagueIn, storage: Storage = Depends(get_storage)) -> dict:
    league = storage.create_league(payload.name, payload.country, payload.is_active)
    logger.info(f"Created league {league.id} ({league.name}, {league.country})")
    return asdict(league)


@app.get("/teams")
def list_teams(storage: Storage = Depends(get_storage)) -> list:
    return [asdict(team) for team in storage.get_teams()]


@app.get("/teams/{country}")
def list_teams_by_country(country: str, storage: Storage = Depends(get_storage)) -> list:
    return [asdict(team) for team in storage.get_teams_by_country(country)]


@app.post("/teams", status_code=201)
def create_team(payload: TeamIn, storage: Storage = Depends(get_storage)) -> dict:
    team = storage.create_team(**payload.model_dump())
    return asdict(team)


# ── matches ──────────────────────────────────────────────────────────────────


@app.get("/matches")
def list_matches(status: Optional[str] = None, storage: Storage = Depends(get_storage)) -> list:
    matches = storage.list_matches()
    if status:
        matches = [m for m in matches if m.status.value == status.strip().upper()]
    matches.sort(key=lambda m: m.start_time, reverse=True)
    matches.sort(key=lambda m: _STATUS_ORDER.get(m.status, 3))
    return [_match_with_markets(storage, m) for m in matches]


@app.get("/matches/{match_id}")
def get_match(match_id: int, storage: Storage = Depends(get_storage)) -> dict:
    match = storage.get_match(match_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return _match_with_markets(storage, match)


@app.post("/matches", status_code=201)
def create_match(payload: MatchIn, storage: Storage = Depends(get_storage)) -> dict:
    fields = payload.model_dump(exclude={"markets"})
    try:
        with storage.transaction():
            if storage.get_league(payload.league_id) is None:
                raise LeagueNotFoundError(payload.league_id)
            for team_id in (payload.home_team_id, payload.away_team_id):
                if team_id is not None and storage.get_team(team_id) is None:
                    raise TeamNotFoundError(team_id)
            match = storage.create_match(**fields)
            for market_in in payload.markets:
                storage.create_market(match.id, market_in.type, market_in.odds, market_in.is_locked)
    except SportsbookError as exc:
        raise _http_error(exc) from exc
    logger.info(f"Created match {match.id} with {len(payload.markets)} market(s)")
    return _match_with_markets(storage, match)


@app.patch("/matches/{match_id}")
def patch_match(
    match_id: int,
    payload: MatchStatusIn,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> dict:
    try:
        match, report = update_match_status(
            storage, match_id, payload.status,
            payload.home_score, payload.away_score, payload.ht_home_score, payload.ht_away_score,
            settings,
        )
    except SportsbookError as exc:
        raise _http_error(exc) from exc
    result = _match_with_markets(storage, match)
    result["settlement"] = report.as_dict() if report else None
    return result


@app.patch("/matches/{match_id}/score")
def patch_match_score(
    match_id: int,
    payload: ScoreIn,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> dict:
    try:
        match, report = update_match_status(
            storage, match_id, payload.status,
            payload.home_score, payload.away_score, payload.ht_home_score, payload.ht_away_score,
            settings,
        )
    except SportsbookError as exc:
        raise _http_error(exc) from exc
    result = _match_with_markets(storage, match)
    result["settlement"] = report.as_dict() if report else None
    return result


@app.post("/matches/{match_id}/sync-result")
def sync_match_result(
    match_id: int,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Finish a match from the result feed, using its external_fixture_id."""
    match = storage.get_match(match_id)
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    if match.external_fixture_id is None:
        raise HTTPException(status_code=400, detail="Match has no external_fixture_id")
    try:
        client = APISportsClient(base_url=settings.api_base_url, api_key=settings.api_key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        score = client.get_final_score(match.external_fixture_id)
        match, report = finish_match(
            storage, match_id, score.home_goals, score.away_goals,
            score.halftime_home, score.halftime_away, settings,
        )
    except SportsbookError as exc:
        raise _http_error(exc) from exc
    result = _match_with_markets(storage, match)
    result["settlement"] = report.as_dict()
    return result


@app.delete("/matches/{match_id}")
def remove_match(match_id: int, storage: Storage = Depends(get_storage)) -> dict:
    if not storage.delete_match(match_id):
        raise HTTPException(status_code=404, detail="Match not found")
    return {"message": "Match deleted successfully"}


# ── markets ──────────────────────────────────────────────────────────────────


@app.post("/markets", status_code=201)
def create_market(payload: MarketIn, storage: Storage = Depends(get_storage)) -> dict:
    if storage.get_match(payload.match_id) is None:
        raise HTTPException(status_code=404, detail="Match not found")
    market = storage.create_market(payload.match_id, payload.type, payload.odds, payload.is_locked)
    return asdict(market)


@app.patch("/markets/{market_id}/toggle-lock")
def toggle_market_lock(market_id: int, payload: LockIn, storage: Storage = Depends(get_storage)) -> dict:
    market = storage.toggle_market_lock(market_id, payload.is_locked)
    if market is None:
        raise HTTPException(status_code=404, detail="Market not found")
    return asdict(market)


# ── balance ──────────────────────────────────────────────────────────────────


@app.get("/balance")
def get_balance(user_id: int = Depends(current_user_id), storage: Storage = Depends(get_storage)) -> dict:
    user = storage.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"balance": user.balance}


@app.post("/balance/add")
def add_balance(
    payload: BalanceAddIn,
    user_id: int = Depends(current_user_id),
    storage: Storage = Depends(get_storage),
) -> dict:
    try:
        user = storage.adjust_user_balance(user_id, payload.amount)
    except SportsbookError as exc:
        raise _http_error(exc) from exc
    return {"balance": user.balance}


# ── bets ─────────────────────────────────────────────────────────────────────


@app.post("/bets", status_code=201)
def create_bet(
    payload: BetIn,
    user_id: int = Depends(current_user_id),
    storage: Storage = Depends(get_storage),
) -> dict:
    try:
        bet = place_bet(storage, user_id, payload.stake, [s.market_id for s in payload.selections])
    except MarketNotFoundError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SportsbookError as exc:
        raise _http_error(exc) from exc
    return asdict(bet)


@app.get("/bets")
def list_bets(user_id: int = Depends(current_user_id), storage: Storage = Depends(get_storage)) -> list:
    if storage.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return [_bet_with_selections(storage, bet) for bet in storage.get_bets_by_user_id(user_id)]


@app.post("/bets/{bet_id}/resolve")
@app.patch("/bets/{bet_id}/resolve")
def resolve_single_bet(
    bet_id: int,
    payload: ResolveIn,
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> dict:
    try:
        changed = resolve_bet(storage, bet_id, payload.status, settings)
    except SportsbookError as exc:
        raise _http_error(exc) from exc
    if not changed:
        return {"message": "Bet already resolved", "changed": False}
    return {"message": "Bet resolved successfully", "changed": True}


@app.delete("/bets/{bet_id}")
def remove_bet(bet_id: int, storage: Storage = Depends(get_storage)) -> dict:
    if not delete_bet(storage, bet_id):
        raise HTTPException(status_code=404, detail="Bet not found")
    return {"message": "Bet deleted successfully"}
