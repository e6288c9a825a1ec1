"""
CSV parsing and export for payroll uploads.
"""
import io
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd
from pandas.errors import EmptyDataError, ParserError

from app.errors import ValidationError

logger = logging.getLogger("app.csv")

_READ_OPTIONS = {
    "header": None,
    "dtype": str,
    "keep_default_na": False,
    "skip_blank_lines": True,
    "engine": "python",
}


def parse_csv(content: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """
    Parse CSV text into headers and rows.

    All values are read as strings exactly as written; only headers are
    trimmed. Blank lines are skipped and rows shorter than the header get
    empty values. Extra trailing empty fields (``a,b,``) are dropped. When a
    header repeats, the first column with that name is used.

    Args:
        content: CSV text with a header line

    Returns:
        Tuple of (headers, rows keyed by header)

    Raises:
        ValidationError: Rows with more non-empty fields than the header,
            or text that cannot be tokenized
    """
    try:
        header_frame = pd.read_csv(io.StringIO(content), nrows=1, **_READ_OPTIONS)
    except EmptyDataError:
        logger.info("CSV content is empty")
        return [], []
    except ParserError as e:
        raise ValidationError(f"Malformed CSV: {e}")

    raw_headers = [str(value).strip() for value in header_frame.iloc[0].tolist()]
    width = len(raw_headers)
    ragged: List[List[str]] = []

    def drop_empty_extra_fields(fields: List[str]) -> Optional[List[str]]:
        if any(str(field).strip() for field in fields[width:]):
            ragged.append(fields)
            return None
        return fields[:width]

    try:
        df = pd.read_csv(
            io.StringIO(content),
            names=list(range(width)),
            on_bad_lines=drop_empty_extra_fields,
            **_READ_OPTIONS,
        )
    except ParserError as e:
        raise ValidationError(f"Malformed CSV: {e}")

    if ragged:
        logger.warning(f"CSV rejected: {len(ragged)} row(s) with more than {width} fields")
        raise ValidationError(
            f"Malformed CSV: {len(ragged)} row(s) have more fields than the header ({width})",
            details={"first_row": ragged[0]},
        )

    headers = list(dict.fromkeys(raw_headers))
    rows = []
    for values in df.iloc[1:].fillna("").itertuples(index=False, name=None):
        row: Dict[str, str] = {}
        for header, value in zip(raw_headers, values):
            row.setdefault(header, value)
        rows.append(row)

    logger.info(f"Parsed CSV: {len(headers)} columns, {len(rows)} rows")
    return headers, rows


def rows_to_csv(rows: List[Mapping[str, Any]], headers: List[str]) -> str:
    """
    Render rows as CSV text.

    Values containing a comma, a quote or a newline are quoted with inner
    quotes doubled. Missing values are empty. Lines are joined with ``\\n``
    and there is no trailing newline.

    Args:
        rows: Rows keyed by header
        headers: Column order

    Returns:
        CSV text
    """
    records = [
        {header: "" if row.get(header) is None else str(row.get(header)) for header in headers}
        for row in rows
    ]
    df = pd.DataFrame(records, columns=headers, dtype=str)
    text = df.to_csv(index=False, lineterminator="\n")
    return text[:-1] if text.endswith("\n") else text
