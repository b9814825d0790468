"""
classroom.rank_countries — CLI printing the composite country ranking.

Usage:
    python -m classroom.rank_countries
    python -m classroom.rank_countries --source data/country_education_summary.csv
    python -m classroom.rank_countries --source https://host/summary.csv --json
    python -m classroom.rank_countries --missing zero

Exit codes:
    0: Ranking printed.
    1: Source unreadable or empty.
    2: No rankable rows in the source.
"""

from __future__ import annotations

import argparse
import json
import sys

from classroom.dataset_cache import DatasetCache
from classroom.errors import DataSourceError, ParseError
from classroom.methodology import MISSING_POLICIES, best_and_lowest, rank

EXIT_OK = 0
EXIT_SOURCE_UNAVAILABLE = 1
EXIT_NO_ROWS = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rank_countries",
        description="Rank countries by composite education-profile score.",
    )
    parser.add_argument(
        "--source",
        type=str,
        default=None,
        help="Country-report CSV path or http(s) URL (default: bundled data).",
    )
    parser.add_argument(
        "--missing",
        choices=sorted(MISSING_POLICIES),
        default="midpoint",
        help="How missing metrics are scored (default: midpoint).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output the ranking as JSON.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Print the ranking. Returns exit code."""
    args = _build_parser().parse_args(argv)

    try:
        reports = DatasetCache(max_datasets=1).get("country_report", args.source)
    except (DataSourceError, ParseError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_SOURCE_UNAVAILABLE

    if not reports:
        print("error: no rankable rows in source", file=sys.stderr)
        return EXIT_NO_ROWS

    ranking = rank({key: r.metrics() for key, r in reports.items()}, missing=args.missing)
    best, lowest = best_and_lowest(ranking)

    if args.json_output:
        print(json.dumps({
            "best": best.key,
            "lowest": lowest.key,
            "ranking": [r.to_dict() for r in ranking],
        }, indent=2, ensure_ascii=False))
        return EXIT_OK

    width = max(len(r.key) for r in ranking)
    for r in ranking:
        print(f"{r.rank:>3}. {r.key:<{width}}  {r.score:8.2f}")
    print(f"\nBest:   {best.key}")
    print(f"Lowest: {lowest.key}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
