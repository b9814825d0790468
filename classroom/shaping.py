"""
classroom.shaping — Raw CSV rows → typed per-entity records.

Design contract:
    - shape() is the generic shaper: one entity key column plus a set of
      numeric fields, each a finite float or None. NaN never escapes.
    - Rows with a blank entity key are skipped silently.
    - Duplicate entity keys follow an explicit policy:
          "last"  → later row overwrites earlier (default, logged)
          "first" → earlier row kept (logged)
          "error" → DuplicateEntityError
    - One frozen record type per dataset kind. shape_dataset() dispatches
      on the kind name used throughout the API.
    - Pure functions of their input. Re-shaping identical rows yields
      equal output.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from classroom.constants import WELLBEING_METRICS
from classroom.csv_parser import ParsedCsv
from classroom.errors import DuplicateEntityError

logger = logging.getLogger("classroom.shaping")

DUPLICATE_POLICIES: frozenset[str] = frozenset({"last", "first", "error"})


# ---------------------------------------------------------------------------
# Field specification
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Which column holds the entity key, and where each numeric field comes from.

    ``fields`` maps output field name → source column name.
    """

    key_column: str
    fields: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_columns(cls, key_column: str, columns: Iterable[str]) -> FieldSpec:
        """Spec whose field names equal their source columns."""
        return cls(key_column=key_column, fields={c: c for c in columns})


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

def to_number(raw: str | None) -> float | None:
    """Coerce a raw cell to a finite float, or None when missing/unparseable."""
    if raw is None:
        return None
    text = raw.strip()
    # float() accepts digit separators ("1_000"); a CSV cell with one is not a number.
    if not text or "_" in text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def to_hours(raw: str | None) -> tuple[float, ...]:
    """Parse a ``;``-separated list of clock hours. Unparseable parts are dropped."""
    if not raw:
        return ()
    hours = (to_number(part) for part in raw.split(";"))
    return tuple(h for h in hours if h is not None)


# ---------------------------------------------------------------------------
# Row selection
# ---------------------------------------------------------------------------

def select_rows(
    rows: Iterable[Mapping[str, str]],
    key_column: str,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, Mapping[str, str]]:
    """Index rows by entity key, applying the blank-key, allow-list and duplicate rules."""
    if duplicates not in DUPLICATE_POLICIES:
        raise ValueError(
            f"Unknown duplicate policy: '{duplicates}'. "
            f"Must be one of {sorted(DUPLICATE_POLICIES)}."
        )
    allowed = frozenset(allow) if allow is not None else None

    selected: dict[str, Mapping[str, str]] = {}
    for row in rows:
        key = (row.get(key_column) or "").strip()
        if not key:
            continue
        if allowed is not None and key not in allowed:
            continue
        if key in selected:
            if duplicates == "error":
                raise DuplicateEntityError(key)
            logger.warning(json.dumps({
                "event": "duplicate_entity",
                "key": key,
                "policy": duplicates,
            }))
            if duplicates == "first":
                continue
        selected[key] = row
    return selected


def shape(
    raw_rows: Iterable[Mapping[str, str]],
    field_spec: FieldSpec,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, dict[str, float | None]]:
    """Shape raw rows into ``{entity_key: {field: float | None}}``.

    Example::

        parsed = parse("country,math_score,bullying\\nFinland,520,-0.4\\nUSA,,-0.3")
        shape(parsed.rows, FieldSpec.from_columns("country", ["math_score", "bullying"]))
        # {"Finland": {"math_score": 520.0, "bullying": -0.4},
        #  "USA": {"math_score": None, "bullying": -0.3}}
    """
    selected = select_rows(raw_rows, field_spec.key_column, allow, duplicates)
    return {
        key: {name: to_number(row.get(column)) for name, column in field_spec.fields.items()}
        for key, row in selected.items()
    }


# ---------------------------------------------------------------------------
# Typed records — one per dataset kind
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SpiderStats:
    """Radar-chart stats. Stat columns are whatever the file carries."""

    country: str
    code: str
    stats: dict[str, float | None]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class WellbeingMetrics:
    """PISA well-being indices for the histogram chart."""

    country: str
    BELONG: float | None
    BULLIED: float | None
    FEELSAFE: float | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class SocioeconomicStats:
    country: str
    ESCS: float | None
    HISCED: float | None
    HISEI: float | None
    avg_math: float | None
    low_escs_math: float | None
    high_escs_math: float | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class CountryReport:
    """Report-card metrics. Field names match the composite score terms."""

    country: str
    math_score: float | None
    ESCS: float | None
    HISEI: float | None
    HISCED: float | None
    sense_of_belonging: float | None
    bullying: float | None
    feeling_safe: float | None

    def metrics(self) -> dict[str, float | None]:
        """All numeric fields keyed by name, for scoring."""
        data = asdict(self)
        data.pop("country")
        return data

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class SchoolSchedule:
    """School sessions and optional cram school, in hours of the day."""

    country: str
    start_times: tuple[float, ...]
    end_times: tuple[float, ...]
    cram_start: float | None = None
    cram_end: float | None = None

    @property
    def has_cram_school(self) -> bool:
        return self.cram_start is not None and self.cram_end is not None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_times"] = list(self.start_times)
        data["end_times"] = list(self.end_times)
        return data


@dataclass(frozen=True, slots=True)
class CountryFact:
    country: str
    ranking: float
    fact1: str
    fact2: str
    fact3: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Typed shapers
# ---------------------------------------------------------------------------

SPIDER_KEY_COLUMN = "Country Name"
SPIDER_CODE_COLUMN = "Country Code"

SOCIOECONOMIC_FIELDS: tuple[str, ...] = (
    "ESCS", "HISCED", "HISEI", "avg_math", "low_escs_math", "high_escs_math",
)

COUNTRY_REPORT_FIELDS: tuple[str, ...] = (
    "math_score", "ESCS", "HISEI", "HISCED",
    "sense_of_belonging", "bullying", "feeling_safe",
)


def shape_spider(
    parsed: ParsedCsv,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, SpiderStats]:
    stat_columns = [
        h for h in parsed.headers if h not in (SPIDER_KEY_COLUMN, SPIDER_CODE_COLUMN)
    ]
    selected = select_rows(parsed.rows, SPIDER_KEY_COLUMN, allow, duplicates)
    return {
        key: SpiderStats(
            country=key,
            code=(row.get(SPIDER_CODE_COLUMN) or "").strip(),
            stats={col: to_number(row.get(col)) for col in stat_columns},
        )
        for key, row in selected.items()
    }


def shape_histogram(
    parsed: ParsedCsv,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, WellbeingMetrics]:
    values = shape(
        parsed.rows, FieldSpec.from_columns("country", WELLBEING_METRICS), allow, duplicates,
    )
    return {key: WellbeingMetrics(country=key, **fields) for key, fields in values.items()}


def shape_socioeconomic(
    parsed: ParsedCsv,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, SocioeconomicStats]:
    values = shape(
        parsed.rows, FieldSpec.from_columns("country", SOCIOECONOMIC_FIELDS), allow, duplicates,
    )
    return {key: SocioeconomicStats(country=key, **fields) for key, fields in values.items()}


def shape_country_report(
    parsed: ParsedCsv,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, CountryReport]:
    values = shape(
        parsed.rows, FieldSpec.from_columns("country", COUNTRY_REPORT_FIELDS), allow, duplicates,
    )
    return {key: CountryReport(country=key, **fields) for key, fields in values.items()}


def shape_clock(
    parsed: ParsedCsv,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, SchoolSchedule]:
    """Schedules with at least one complete session. Unpaired times are dropped."""
    selected = select_rows(parsed.rows, "country", allow, duplicates)
    schedules: dict[str, SchoolSchedule] = {}
    for key, row in selected.items():
        starts = to_hours(row.get("start_times"))
        ends = to_hours(row.get("end_times"))
        n = min(len(starts), len(ends))
        if n == 0:
            logger.debug(json.dumps({"event": "schedule_without_sessions", "key": key}))
            continue
        schedules[key] = SchoolSchedule(
            country=key,
            start_times=starts[:n],
            end_times=ends[:n],
            cram_start=to_number(row.get("cram_start")),
            cram_end=to_number(row.get("cram_end")),
        )
    return schedules


def shape_facts(
    parsed: ParsedCsv,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, CountryFact]:
    """Facts ordered by ranking ascending. Rows without a numeric ranking are dropped."""
    selected = select_rows(parsed.rows, "country", allow, duplicates)
    facts = []
    for key, row in selected.items():
        ranking = to_number(row.get("ranking"))
        if ranking is None:
            continue
        facts.append(CountryFact(
            country=key,
            ranking=ranking,
            fact1=row.get("fact1", ""),
            fact2=row.get("fact2", ""),
            fact3=row.get("fact3", ""),
        ))
    facts.sort(key=lambda f: (f.ranking, f.country))
    return {f.country: f for f in facts}


_SHAPERS: dict[str, Callable[..., dict[str, Any]]] = {
    "spider": shape_spider,
    "histogram": shape_histogram,
    "socioeconomic": shape_socioeconomic,
    "country_report": shape_country_report,
    "clock": shape_clock,
    "facts": shape_facts,
}


def shape_dataset(
    kind: str,
    parsed: ParsedCsv,
    allow: Iterable[str] | None = None,
    duplicates: str = "last",
) -> dict[str, Any]:
    """Shape a parsed CSV as the given dataset kind.

    Raises KeyError for an unknown kind.
    """
    try:
        shaper = _SHAPERS[kind]
    except KeyError:
        raise KeyError(f"Unknown dataset kind: '{kind}'") from None
    return shaper(parsed, allow=allow, duplicates=duplicates)
