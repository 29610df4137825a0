"""
FamCoins Sequencer — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from famcoins/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_STORE_BACKENDS = ("sqlite", "memory")
_REMAINDER_POLICIES = ("unallocated", "first_completions")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Record store: "sqlite" | "memory"
    STORE_BACKEND: str = "sqlite"

    # SQLite (record store + saved wizard drafts)
    DATABASE_PATH: str = "data/famcoins.db"

    # Currency
    FAMCOIN_CONVERSION_RATE: int = 10   # FAMCOINS per 1 unit of real currency
    DEFAULT_CURRENCY_CODE: str = "GBP"

    # Period maths
    MONTHLY_WEEKS: float = 4.34         # average weeks in a month
    ONGOING_YEARS: int = 10

    # "unallocated" | "first_completions"
    REMAINDER_POLICY: str = "unallocated"

    LOG_LEVEL: str = "INFO"

    @field_validator("FAMCOIN_CONVERSION_RATE", "ONGOING_YEARS", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("MONTHLY_WEEKS", mode="before")
    @classmethod
    def parse_float(cls, v: str | float) -> float:
        return float(v)

    @field_validator("STORE_BACKEND", "REMAINDER_POLICY", mode="before")
    @classmethod
    def normalize_choice(cls, v: str) -> str:
        return v.strip().lower()


def _load_settings() -> Settings:
    """Load settings from environment, validating choices and ranges."""
    backend = os.getenv("STORE_BACKEND", "sqlite").strip().lower()
    policy = os.getenv("REMAINDER_POLICY", "unallocated").strip().lower()

    if backend not in _STORE_BACKENDS:
        print(
            f"ERROR: STORE_BACKEND must be one of {_STORE_BACKENDS}, got {backend!r}",
            file=sys.stderr,
        )
        sys.exit(1)

    if policy not in _REMAINDER_POLICIES:
        print(
            f"ERROR: REMAINDER_POLICY must be one of {_REMAINDER_POLICIES}, got {policy!r}",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        loaded = Settings(
            STORE_BACKEND=backend,
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/famcoins.db"),
            FAMCOIN_CONVERSION_RATE=os.getenv("FAMCOIN_CONVERSION_RATE", "10"),
            DEFAULT_CURRENCY_CODE=os.getenv("DEFAULT_CURRENCY_CODE", "GBP"),
            MONTHLY_WEEKS=os.getenv("MONTHLY_WEEKS", "4.34"),
            ONGOING_YEARS=os.getenv("ONGOING_YEARS", "10"),
            REMAINDER_POLICY=policy,
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
    except ValueError as exc:
        print(f"ERROR: invalid configuration in .env: {exc}", file=sys.stderr)
        sys.exit(1)

    if loaded.FAMCOIN_CONVERSION_RATE <= 0:
        print("ERROR: FAMCOIN_CONVERSION_RATE must be positive", file=sys.stderr)
        sys.exit(1)

    if loaded.MONTHLY_WEEKS <= 0 or loaded.ONGOING_YEARS <= 0:
        print("ERROR: MONTHLY_WEEKS and ONGOING_YEARS must be positive", file=sys.stderr)
        sys.exit(1)

    return loaded


# Singleton — imported by all other modules as:
#   from famcoins.config import settings
settings = _load_settings()
