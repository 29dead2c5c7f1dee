from __future__ import annotations

import logging
import os
from typing import Any, Dict

import requests

from errors import ResultFeedError
from models import FixtureScore

logger = logging.getLogger(__name__)

FINAL_STATUSES = {"FT", "AET", "PEN", "AWD", "WO"}


class APISportsClient:
    """Result feed: reads final and half-time scores of API-Sports fixtures."""

    def __init__(self, base_url: str, api_key: str | None = None, timeout: int = 15) -> None:
        if not base_url:
            raise ValueError("Missing base_url. Provide it or set API_BASE_URL.")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or os.getenv("API_SPORTS_KEY")
        if not self.api_key:
            raise ValueError("Missing API key. Set API_SPORTS_KEY or pass api_key explicitly.")
        self.timeout = timeout

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = requests.get(
                url,
                params=params,
                headers={"x-apisports-key": self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise ResultFeedError(f"Request to {url} failed: {exc}") from exc
        except ValueError as exc:
            raise ResultFeedError(f"Invalid JSON from {url}") from exc
        if "response" not in payload:
            raise ResultFeedError(f"Unexpected API response shape from {url}")
        return payload

    # ── helpers ──────────────────────────────────────────────────────────────

    @staticmethod
    def _to_int(value: Any) -> int | None:
        if value is None:
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            cleaned = value.strip()
            if cleaned.isdigit():
                return int(cleaned)
        return None

    @staticmethod
    def is_final_status(status_short: str) -> bool:
        return status_short in FINAL_STATUSES

    # ── fixture score ────────────────────────────────────────────────────────

    def get_fixture_score(self, fixture_id: int) -> FixtureScore:
        payload = self._get("fixtures", {"id": fixture_id})
        rows = payload.get("response", [])
        if not rows:
            raise ResultFeedError(f"Fixture not found for id={fixture_id}")

        row = rows[0]
        fixture = row.get("fixture", {})
        goals = row.get("goals", {})
        score = row.get("score", {})

        status_short = (fixture.get("status", {}) or {}).get("short", "")
        halftime = score.get("halftime") or {}
        fulltime = score.get("fulltime") or {}

        # fulltime excludes extra time; fall back to goals while it is not filled
        home_goals = fulltime.get("home") if fulltime.get("home") is not None else goals.get("home")
        away_goals = fulltime.get("away") if fulltime.get("away") is not None else goals.get("away")

        result = FixtureScore(
            fixture_id=fixture_id,
            status_short=status_short,
            home_goals=self._to_int(home_goals),
            away_goals=self._to_int(away_goals),
            halftime_home=self._to_int(halftime.get("home")),
            halftime_away=self._to_int(halftime.get("away")),
        )
        logger.debug(f"Fixture {fixture_id}: {result}")
        return result

    def get_final_score(self, fixture_id: int) -> FixtureScore:
        """Like get_fixture_score, but only for a finished fixture with both goals known."""
        result = self.get_fixture_score(fixture_id)
        if not self.is_final_status(result.status_short):
            raise ResultFeedError(f"Fixture {fixture_id} not finalized yet (status={result.status_short})")
        if result.home_goals is None or result.away_goals is None:
            raise ResultFeedError(f"Fixture {fixture_id} has no goals data")
        return result
