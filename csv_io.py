"""CSV export/import for batch rows.

The format is a fixed nine-column, comma-joined layout without quoting, so
notes containing commas do not survive a round trip.
"""

import logging
import re
from datetime import date
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from calc import round2

log = logging.getLogger(__name__)

HEADER = [
    "배치",
    "투입(g)",
    "생산(g)",
    "손실(g)",
    "손실률(%)",
    "아그트론",
    "DT(%)",
    "로스팅포인트",
    "노트 및 설명",
]

# positions read back on import
DROP_COL, AGTRON_COL, DEV_TIME_COL, NOTES_COL = 2, 5, 6, 8

BOM = "\ufeff"

_NUMERIC_RE = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)")


class ImportResult(NamedTuple):
    rows: List[Dict[str, Any]]
    warnings: List[Tuple[int, str]]


def _num(n: float) -> float:
    return round2(n) + 0.0  # -0.0 becomes 0.0


def _fmt(n: float) -> str:
    s = f"{_num(n):.2f}".rstrip("0")
    return s[:-1] if s.endswith(".") else s


def _col(cols: List[str], idx: int) -> str:
    return cols[idx] if idx < len(cols) else ""


def rows_to_csv(items: List[Dict[str, Any]], charge: float) -> str:
    """Serialize computed rows to CSV text (no BOM)."""
    lines = [",".join(HEADER)]
    for i, r in enumerate(items, start=1):
        notes = (r.get("notes") or "").replace("\r\n", " ").replace("\n", " ")
        lines.append(",".join([
            str(i),
            _fmt(charge),
            _fmt(r["drop"]),
            _fmt(r["loss"]),
            f"{_num(r['loss_pct']):.2f}",
            r.get("agtron") or "",
            r.get("dev_time") or "",
            r["level"],
            notes,
        ]))
    return "\n".join(lines)


def csv_bytes(text: str) -> bytes:
    """Encode CSV text with a BOM so spreadsheet tools detect UTF-8."""
    return (BOM + text).encode("utf-8")


def csv_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"roast_loss_{today.isoformat()}.csv"


def parse_csv(text: str) -> ImportResult:
    """Parse exported CSV text back into rows.

    Never raises: short lines yield empty fields and odd values are reported
    in ``warnings`` while the row is still kept.
    """
    if text.startswith(BOM):
        text = text[len(BOM):]
    lines = [ln for ln in re.split(r"\r?\n", text) if ln]
    rows, warnings = [], []
    for i, ln in enumerate(lines[1:], start=1):
        cols = ln.split(",")
        if len(cols) != len(HEADER):
            warnings.append((i, f"expected {len(HEADER)} columns, got {len(cols)}"))
        drop = _col(cols, DROP_COL)
        if drop and not _NUMERIC_RE.match(drop):
            warnings.append((i, f"drop weight {drop!r} is not a number"))
        rows.append({
            "id": i,
            "drop": drop,
            "agtron": _col(cols, AGTRON_COL),
            "dev_time": _col(cols, DEV_TIME_COL),
            "notes": _col(cols, NOTES_COL),
        })
    for row_no, msg in warnings:
        log.warning("CSV row %d: %s", row_no, msg)
    return ImportResult(rows, warnings)


def apply_import(rows: List[Dict[str, Any]], result: ImportResult) -> List[Dict[str, Any]]:
    """Rows after an import; an empty import keeps the current rows."""
    if not result.rows:
        log.info("CSV import contained no rows, keeping %d existing rows", len(rows))
        return rows
    log.info("Replacing %d rows with %d imported rows", len(rows), len(result.rows))
    return result.rows
