"""Runtime settings for finboard.

Tolerance bands are tuning knobs rather than fixed rules, so each one can be
overridden through a ``FINBOARD_*`` environment variable.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """Engine configuration."""

    database_path: Optional[str] = None
    default_currency: str = "BRL"
    duplicate_date_tolerance_days: int = 1
    recurrence_min_occurrences: int = 3
    recurrence_interval_tolerance_days: int = 3
    recurrence_amount_tolerance: Decimal = Decimal("0.10")
    bill_due_window_days: int = 3
    bill_match_window_days: int = 7
    bill_match_amount_tolerance: Decimal = Decimal("0.10")

    @property
    def recurrence_min_interval_days(self) -> int:
        return 28 - self.recurrence_interval_tolerance_days

    @property
    def recurrence_max_interval_days(self) -> int:
        return 31 + self.recurrence_interval_tolerance_days


def default_database_path() -> str:
    """Return ~/.finboard/finboard.db, creating the directory if needed."""
    db_dir = Path.home() / ".finboard"
    db_dir.mkdir(exist_ok=True)
    return str(db_dir / "finboard.db")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        database_path=os.getenv("FINBOARD_DB_PATH"),
        default_currency=os.getenv("FINBOARD_CURRENCY", "BRL"),
        duplicate_date_tolerance_days=int(os.getenv("FINBOARD_DUPLICATE_DAYS", "1")),
        recurrence_min_occurrences=int(os.getenv("FINBOARD_RECURRENCE_MIN", "3")),
        recurrence_interval_tolerance_days=int(
            os.getenv("FINBOARD_RECURRENCE_INTERVAL_TOLERANCE", "3")
        ),
        recurrence_amount_tolerance=Decimal(
            os.getenv("FINBOARD_RECURRENCE_AMOUNT_TOLERANCE", "0.10")
        ),
        bill_due_window_days=int(os.getenv("FINBOARD_BILL_DUE_WINDOW", "3")),
        bill_match_window_days=int(os.getenv("FINBOARD_BILL_MATCH_WINDOW", "7")),
        bill_match_amount_tolerance=Decimal(
            os.getenv("FINBOARD_BILL_MATCH_AMOUNT_TOLERANCE", "0.10")
        ),
    )
