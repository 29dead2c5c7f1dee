"""Runtime settings, read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


@dataclass
class Settings:
    api_base_url: str = ""
    api_key: Optional[str] = None
    default_user_id: int = 1
    initial_balance: float = 10000.0
    # A pushed bet returns its stake; set PUSH_REFUNDS_STAKE=0 to only mark it PUSH.
    push_refunds_stake: bool = True
    # Hold accumulators until every leg's match is FINISHED.
    settle_requires_all_legs: bool = False
    log_level: str = "INFO"
    log_dir: Optional[str] = None


def load_settings() -> Settings:
    return Settings(
        api_base_url=os.getenv("API_BASE_URL", "").strip(),
        api_key=os.getenv("API_SPORTS_KEY", "").strip() or None,
        default_user_id=_env_int("DEFAULT_USER_ID", 1),
        initial_balance=_env_float("INITIAL_BALANCE", 10000.0),
        push_refunds_stake=_env_bool("PUSH_REFUNDS_STAKE", True),
        settle_requires_all_legs=_env_bool("SETTLE_REQUIRES_ALL_LEGS", False),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        log_dir=os.getenv("LOG_DIR", "").strip() or None,
    )
