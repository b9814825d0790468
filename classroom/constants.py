"""
classroom.constants — Shared constants for the classroom data service.

Every module that needs these values imports them from here.
No hardcoded duplicates anywhere in the codebase.
"""

from __future__ import annotations

from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent

DEFAULT_DATA_DIR: Path = PROJECT_ROOT / "data"
"""Static CSV datasets shipped with the repository."""

DEFAULT_LEDGER_PATH: Path = DEFAULT_DATA_DIR / "opinions.csv"

# ---------------------------------------------------------------------------
# CSV format
# ---------------------------------------------------------------------------

DELIMITER: str = ","
QUOTE: str = '"'

LEDGER_COLUMNS: tuple[str, ...] = ("id", "timestamp", "bestCountry", "worstCountry")
"""Header of the opinions ledger. Order is the on-disk column order."""

# ---------------------------------------------------------------------------
# Precision
# ---------------------------------------------------------------------------

ROUND_PRECISION: int = 8
"""Composite scores are rounded to this many places before they are
serialized. Ranking uses the unrounded value."""

# ---------------------------------------------------------------------------
# Dataset kinds and their files under DEFAULT_DATA_DIR
# ---------------------------------------------------------------------------

DATASET_FILES: dict[str, str] = {
    "spider": "spiderplot.csv",
    "histogram": "country_agg_life.csv",
    "socioeconomic": "socioeconomic_summary.csv",
    "country_report": "country_education_summary.csv",
    "clock": "school_schedules.csv",
    "facts": "country_facts_ranked.csv",
}

DATASET_KINDS: frozenset[str] = frozenset(DATASET_FILES)

# ---------------------------------------------------------------------------
# Countries featured in the classroom charts
# ---------------------------------------------------------------------------

FEATURED_COUNTRIES: tuple[str, ...] = (
    "Brazil",
    "Cambodia",
    "Finland",
    "Japan",
    "Singapore",
    "United States",
)

WELLBEING_METRICS: tuple[str, ...] = ("BELONG", "BULLIED", "FEELSAFE")

MAX_SELECTED_COUNTRIES: int = 3
"""Charts compare at most this many countries at once."""

HOURS_PER_DAY: float = 24.0
