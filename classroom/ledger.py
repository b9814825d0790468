"""
classroom.ledger — Append-only CSV ledger of best/worst country votes.

File format:
    id,timestamp,bestCountry,worstCountry
    <uuid>,<ISO-8601 UTC>,<best>,<worst>
    ...

Design contract:
    - append() never rewrites prior lines: open-for-append, write one
      newline-prefixed row, close. No read-modify-write.
    - Header creation, appends and reads within one process are serialized
      by a process-wide lock, so a first append never races the header.
      Multiple processes appending to the same file are NOT coordinated;
      run a single writer process (or move to an embedded store).
    - read_all() returns records in append order and skips blank lines.
    - Vote values never contain line breaks (rejected on append).
    - The file (and its parent directory) is created with only the header
      row on first read or first append. "Not found" is never an error.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from classroom.constants import DEFAULT_LEDGER_PATH, LEDGER_COLUMNS
from classroom.csv_parser import format_row, parse
from classroom.errors import LedgerIOError, ValidationError

logger = logging.getLogger("classroom.ledger")

_APPEND_LOCK = threading.Lock()


@dataclass(frozen=True, slots=True)
class VoteRecord:
    """One vote. Created once on submission, never mutated."""

    id: str
    timestamp: str
    best_entity: str
    worst_entity: str

    def to_row(self) -> list[str]:
        return [self.id, self.timestamp, self.best_entity, self.worst_entity]

    def to_dict(self) -> dict[str, str]:
        """Wire format shared with the front-end."""
        return dict(zip(LEDGER_COLUMNS, self.to_row()))

    @classmethod
    def from_row(cls, row: dict[str, str]) -> VoteRecord:
        id_col, ts_col, best_col, worst_col = LEDGER_COLUMNS
        return cls(
            id=row.get(id_col, ""),
            timestamp=row.get(ts_col, ""),
            best_entity=row.get(best_col, ""),
            worst_entity=row.get(worst_col, ""),
        )


def _utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _require(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, f"'{field}' is required and must be a non-empty string.")
    # One vote is one physical line; the reader splits on line breaks.
    if "\n" in value or "\r" in value:
        raise ValidationError(field, f"'{field}' must not contain line breaks.")
    return value.strip()


class VoteLedger:
    """Read/append store for votes backed by one CSV file."""

    def __init__(self, path: str | Path = DEFAULT_LEDGER_PATH) -> None:
        self.path = Path(path)

    def _create_if_missing(self) -> None:
        """Create the ledger with only its header row. Caller holds _APPEND_LOCK."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "x", encoding="utf-8", newline="") as fh:
                fh.write(format_row(list(LEDGER_COLUMNS)))
            logger.info(json.dumps({"event": "ledger_created", "path": str(self.path)}))
        except FileExistsError:
            pass
        except OSError as exc:
            raise LedgerIOError(str(self.path), f"Cannot create ledger: {exc}") from exc

    def append(self, best_entity: str, worst_entity: str) -> VoteRecord:
        """Validate, stamp and append one vote. Returns the stored record.

        Raises:
            ValidationError: a field is missing, blank or spans lines.
            LedgerIOError: the file cannot be written.
        """
        record = VoteRecord(
            id=str(uuid.uuid4()),
            timestamp=_utc_timestamp(),
            best_entity=_require("bestCountry", best_entity),
            worst_entity=_require("worstCountry", worst_entity),
        )
        line = "\n" + format_row(record.to_row())
        with _APPEND_LOCK:
            self._create_if_missing()
            try:
                with open(self.path, "a", encoding="utf-8", newline="") as fh:
                    fh.write(line)
            except OSError as exc:
                raise LedgerIOError(str(self.path), f"Cannot append to ledger: {exc}") from exc

        logger.info(json.dumps({"event": "vote_appended", "id": record.id}))
        return record

    def read_all(self) -> list[VoteRecord]:
        """Every stored vote in append order.

        Raises:
            LedgerIOError: the file cannot be read.
        """
        with _APPEND_LOCK:
            self._create_if_missing()
            try:
                with open(self.path, encoding="utf-8", newline="") as fh:
                    text = fh.read()
            except (OSError, UnicodeDecodeError) as exc:
                raise LedgerIOError(str(self.path), f"Cannot read ledger: {exc}") from exc

        parsed = parse(text, skip_blank_lines=True)
        return [VoteRecord.from_row(row) for row in parsed.rows]

    def tally(self) -> dict[str, dict[str, int]]:
        """Vote counts per entity, most-voted first (ties alphabetical)."""
        best: Counter[str] = Counter()
        worst: Counter[str] = Counter()
        for record in self.read_all():
            if record.best_entity:
                best[record.best_entity] += 1
            if record.worst_entity:
                worst[record.worst_entity] += 1

        def ordered(counts: Counter[str]) -> dict[str, int]:
            return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))

        return {"best": ordered(best), "worst": ordered(worst)}
