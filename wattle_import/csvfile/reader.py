from __future__ import annotations

import io
from collections.abc import Iterable
from pathlib import Path

import pandas as pd

from ..models.parsed_table import ParsedTable

"""Delimited-text reader.

Upload boundary checks (extension, size) run before any parsing. Parsing uses
pandas with every cell read as a string and NA conversion disabled, so the
table holds exactly what the operator typed. The first non-blank line is the
header row; everything after it is data.
"""

__all__ = [
    "ParseError",
    "FileTooLarge",
    "UnsupportedFileType",
    "check_upload",
    "detect_delimiter",
    "parse_csv",
    "read_upload",
]

SUPPORTED_DELIMITERS = (",", "\t", ";")


class ParseError(Exception):
    """Raised when the uploaded text cannot be turned into a table."""


class FileTooLarge(ParseError):
    """Raised before parsing when the upload exceeds the configured size."""

    def __init__(self, size_bytes: int, max_bytes: int) -> None:
        super().__init__(
            f"file is {size_bytes} bytes; maximum is {max_bytes} bytes ({max_bytes // (1024 * 1024)} MB)"
        )
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class UnsupportedFileType(ParseError):
    """Raised before parsing when the file extension is not accepted."""


def check_upload(
    file_name: str,
    size_bytes: int,
    *,
    max_bytes: int,
    allowed_extensions: Iterable[str],
) -> None:
    suffix = Path(file_name).suffix.lower()
    allowed = {e.lower() for e in allowed_extensions}
    if suffix not in allowed:
        raise UnsupportedFileType(
            f"unsupported file type '{suffix or file_name}'; upload one of: {', '.join(sorted(allowed))}"
        )
    if size_bytes > max_bytes:
        raise FileTooLarge(size_bytes, max_bytes)


def detect_delimiter(text: str) -> str:
    """Pick the delimiter that occurs most often in the first line (comma wins ties)."""
    first_line = text.split("\n", 1)[0]
    commas = first_line.count(",")
    semicolons = first_line.count(";")
    tabs = first_line.count("\t")
    if tabs > commas and tabs > semicolons:
        return "\t"
    if semicolons > commas:
        return ";"
    return ","


def _decode(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"file is not valid UTF-8 text (byte {e.start}); re-export it as UTF-8 CSV") from e
    return raw.lstrip("\ufeff")


def _cell(value: object) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def parse_csv(raw: bytes | str, delimiter: str | None = None, *, max_rows: int = 10000) -> ParsedTable:
    """Parse delimited text into a ParsedTable.

    Parameters
    ----------
    raw: file contents; bytes are decoded as UTF-8 (BOM stripped)
    delimiter: ',', '\\t' or ';'; None auto-detects from the header line
    max_rows: upper bound on data rows accepted in one import
    """
    text = _decode(raw)
    if text.strip() == "":
        raise ParseError("the file appears to be empty")

    if delimiter is None:
        delimiter = detect_delimiter(text)
    elif delimiter not in SUPPORTED_DELIMITERS:
        raise ParseError(f"unsupported delimiter {delimiter!r}")

    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=delimiter,
            header=None,
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            skip_blank_lines=True,
            skipinitialspace=True,
            quotechar='"',
            doublequote=True,
            engine="c",
        )
    except pd.errors.EmptyDataError as e:
        raise ParseError("no data found in file") from e
    except pd.errors.ParserError as e:
        # C tokenizer reports rows wider than the header this way
        raise ParseError(f"inconsistent column counts: {e}") from e

    if df.shape[0] == 0:
        raise ParseError("no data found in file")

    headers = [_cell(v) for v in df.iloc[0].tolist()]
    empty = [h for h in headers if h == ""]
    if empty:
        raise ParseError(
            f"found {len(empty)} empty column header(s); every column must have a header name"
        )
    seen: set[str] = set()
    dupes: list[str] = []
    for h in headers:
        if h in seen and h not in dupes:
            dupes.append(h)
        seen.add(h)
    if dupes:
        raise ParseError(f"duplicate column headers found: {', '.join(dupes)}; each column must have a unique name")

    rows: list[dict[str, str]] = []
    for values in df.iloc[1:].itertuples(index=False, name=None):
        cells = [_cell(v) for v in values]
        if not any(cells):
            continue
        rows.append({h: (cells[i] if i < len(cells) else "") for i, h in enumerate(headers)})

    if not rows:
        raise ParseError("the file has headers but no data rows")
    if len(rows) > max_rows:
        raise ParseError(f"too many rows ({len(rows)}); maximum is {max_rows} rows per import, split the file")

    return ParsedTable(headers=tuple(headers), rows=tuple(rows), raw_row_count=len(rows))


def read_upload(
    path: Path,
    *,
    max_bytes: int,
    allowed_extensions: Iterable[str],
    max_rows: int = 10000,
    delimiter: str | None = None,
) -> ParsedTable:
    """Apply upload boundary checks to a file on disk, then parse it."""
    if not path.exists():
        raise ParseError(f"file not found: {path}")
    check_upload(path.name, path.stat().st_size, max_bytes=max_bytes, allowed_extensions=allowed_extensions)
    if delimiter is None and path.suffix.lower() == ".tsv":
        delimiter = "\t"
    return parse_csv(path.read_bytes(), delimiter, max_rows=max_rows)
