"""
classroom.csv_parser — Lenient CSV parsing for the classroom datasets.

Design contract:
    - parse() is a pure function of its input text. No I/O, no state.
    - The only hard failure is empty input (no header line) → ParseError.
    - Ragged rows and stray quotes degrade gracefully: short rows are
      padded with "", surplus fields are dropped, an unterminated quote
      runs to the end of the line.
    - Every row carries exactly one value per header, in header order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from classroom.constants import DELIMITER, QUOTE
from classroom.errors import ParseError

_LINE_SPLIT_RE = re.compile(r"\r?\n")


@dataclass(frozen=True, slots=True)
class ParsedCsv:
    """Header row plus header-keyed rows."""

    headers: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)

    def column(self, name: str) -> list[str]:
        """All values of one column, "" where the column is absent."""
        return [row.get(name, "") for row in self.rows]


def parse_line(line: str, delimiter: str = DELIMITER) -> list[str]:
    """Split one CSV line into trimmed fields.

    A quoted field may contain the delimiter. Inside quotes, a doubled
    quote is a literal quote character; any other quote toggles the
    quote state.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)

    while i < n:
        char = line[i]
        if char == QUOTE:
            if in_quotes and i + 1 < n and line[i + 1] == QUOTE:
                current.append(QUOTE)
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def parse(
    text: str,
    delimiter: str = DELIMITER,
    skip_blank_lines: bool = False,
) -> ParsedCsv:
    """Parse CSV text into headers and header-keyed rows.

    Args:
        text: Raw CSV text, ``\\n`` or ``\\r\\n`` line separators.
            The first line is the header row.
        delimiter: Field separator.
        skip_blank_lines: Drop data lines that are empty after trimming.
            When False, a blank line becomes a row of empty strings.

    Raises:
        ParseError: if the text is empty or whitespace only.
    """
    if text is None or not text.strip():
        raise ParseError("CSV input is empty: a header row is required.")

    lines = _LINE_SPLIT_RE.split(text.strip())
    headers = parse_line(lines[0], delimiter)

    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        if skip_blank_lines and not line.strip():
            continue
        values = parse_line(line, delimiter)
        rows.append({
            header: values[i] if i < len(values) else ""
            for i, header in enumerate(headers)
        })

    return ParsedCsv(headers=headers, rows=rows)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _quote_field(value: str, delimiter: str) -> str:
    if any(c in value for c in (delimiter, QUOTE, "\n", "\r")):
        return QUOTE + value.replace(QUOTE, QUOTE * 2) + QUOTE
    return value


def format_row(values: list[str], delimiter: str = DELIMITER) -> str:
    """Serialize one row of values, quoting only where required."""
    return delimiter.join(_quote_field(str(v), delimiter) for v in values)


def to_csv_text(parsed: ParsedCsv, delimiter: str = DELIMITER) -> str:
    """Serialize a ParsedCsv back to text (``\\n`` separators, no trailing newline)."""
    lines = [format_row(parsed.headers, delimiter)]
    for row in parsed.rows:
        lines.append(format_row([row.get(h, "") for h in parsed.headers], delimiter))
    return "\n".join(lines)
