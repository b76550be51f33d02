"""Delimited-file parsing for mass rule entry.

Accepts csv, tsv, and plain text with one value per line. The delimiter is detected
from the first line, which is always treated as the header row. Cells are split
literally (no quote handling) and every value stays a string.
"""

from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

import structlog

from policyhub.services.errors import TableParseError
from policyhub.services.schemas.domain import ParsedTable

logger = structlog.get_logger(__name__)

# Tab first: a header line containing tabs is a TSV even when headers contain commas.
DELIMITER_PRIORITY: tuple[str, ...] = ("\t", ",", ";", "|")
DEFAULT_DELIMITER = ","

_BOM = "\ufeff"


def detect_delimiter(first_line: str) -> str:
    for candidate in DELIMITER_PRIORITY:
        if len(first_line.split(candidate)) > 1:
            return candidate
    return DEFAULT_DELIMITER


def parse_table(raw_text: str | None) -> ParsedTable:
    """Parse delimited text into headers and rows.

    Blank header cells are dropped from ``headers`` but keep their column position,
    blank lines are skipped, and short rows are padded with ``""``.
    """
    if not raw_text:
        return ParsedTable()

    lines: list[str] = raw_text.lstrip(_BOM).split("\n")
    delimiter: str = detect_delimiter(lines[0])
    positions: list[str] = [h.strip() for h in lines[0].split(delimiter)]
    headers: list[str] = [h for h in positions if h]

    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        if not line.strip():
            continue
        cells: list[str] = line.split(delimiter)
        rows.append(
            {
                header: (cells[i].strip() if i < len(cells) else "")
                for i, header in enumerate(positions)
                if header
            }
        )

    return ParsedTable(headers=headers, rows=rows)


def _decode(raw: bytes, encoding: str) -> str:
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as exc:
        raise TableParseError(f"File is not valid {encoding} text") from exc


def decode_table(raw: bytes, encoding: str = "utf-8-sig") -> ParsedTable:
    """Decode and parse an uploaded file. Unreadable content yields an empty table with a notice."""
    try:
        text: str = _decode(raw, encoding)
    except TableParseError as exc:
        logger.warning("Unreadable delimited file", error=str(exc), size=len(raw))
        return ParsedTable(notice=str(exc))
    return parse_table(text)


def read_table(path: Path, encoding: str = "utf-8-sig") -> ParsedTable:
    try:
        raw: bytes = path.read_bytes()
    except OSError as exc:
        logger.warning("Could not read delimited file", path=str(path), error=str(exc))
        return ParsedTable(notice=f"Could not read {path.name}: {exc.strerror or exc}")
    return decode_table(raw, encoding)


def select_columns(
    rows: Iterable[Mapping[str, str]],
    columns: Sequence[str],
) -> list[dict[str, str]]:
    """Keep only the selected columns, skipping ones a row does not have."""
    return [{c: row[c] for c in columns if c in row} for row in rows]
