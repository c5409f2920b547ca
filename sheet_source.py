"""
Sheet retrieval for the offering dashboard.

Each month of the ledger is a tab of a published Google spreadsheet.  The
published CSV export of a tab is addressed by the spreadsheet's base URL
and the tab's ``gid``; this module owns the month-key → ``gid`` table, the
download, and the decoding of the CSV payload into a grid of cell text that
:func:`offering_parser.parse_grid` consumes.

Nothing here retries: a failed download is reported to the caller, who may
simply ask again.
"""

import csv
import io
import json
import logging
from pathlib import Path
from typing import Dict, IO, List, Optional, Union

import pandas as pd
import requests

import config

logger = logging.getLogger(__name__)

Grid = List[List[str]]

# Month key → gid of the tab in the published spreadsheet.  The 2026
# spreadsheet is a copy of the 2025 one, so gids can repeat across years.
DEFAULT_SHEET_GIDS: Dict[str, int] = {
    "2024-12": 412478555,
    "2025-01": 1362517380,
    "2025-02": 1898852102,
    "2025-03": 1946650267,
    "2025-04": 67822875,
    "2025-05": 1174752218,
    "2025-06": 414086671,
    "2025-07": 788642057,
    "2025-08": 1273520853,
    "2025-09": 1799917349,
    "2025-10": 81454662,
    "2025-11": 1339975151,
    "2025-12": 1763125208,
    "2026-01": 1362517380,
    "2026-02": 1026844391,
}


class SheetFetchError(RuntimeError):
    """The month sheet could not be retrieved."""


class UnknownMonthError(SheetFetchError):
    """No sheet is published for the requested month key."""

    def __init__(self, month_key: str):
        super().__init__(f"No sheet is configured for {month_key}")
        self.month_key = month_key


class EmptySheetError(SheetFetchError):
    """The sheet was retrieved but holds no rows."""


def load_sheet_gids(path: Optional[Path] = None) -> Dict[str, int]:
    """Load the month-key → gid table.

    Parameters
    ----------
    path : Path or None
        A JSON file of ``{"YYYY-MM": gid}``.  When ``None`` the path from
        ``SHEET_GIDS_FILE`` is used, and without that the built-in table.

    Returns
    -------
    dict
        Mapping of month key to gid.
    """
    if path is None and config.SHEET_GIDS_FILE:
        path = Path(config.SHEET_GIDS_FILE)
    if path is None:
        return dict(DEFAULT_SHEET_GIDS)
    with open(path, "r", encoding="utf-8") as f:
        mapping = json.load(f)
    return {str(k): int(v) for k, v in mapping.items()}


def available_months(gids: Optional[Dict[str, int]] = None) -> List[str]:
    if gids is None:
        gids = load_sheet_gids()
    return sorted(gids)


def step_month(current: str, direction: int, gids: Optional[Dict[str, int]] = None) -> Optional[str]:
    """Return the available month ``direction`` steps from ``current``.

    ``None`` when the step would leave the configured range or ``current``
    itself is not configured.
    """
    months = available_months(gids)
    if current not in months:
        return None
    index = months.index(current) + direction
    if 0 <= index < len(months):
        return months[index]
    return None


def month_display(month_key: str) -> str:
    """``"2025-03"`` → ``"2025년 3월"``."""
    if not month_key:
        return ""
    year, month = month_key.split("-")
    return f"{year}년 {int(month)}월"


def sheet_base_url(month_key: str) -> str:
    year = int(month_key.split("-")[0])
    if year >= config.NEW_SHEET_FROM_YEAR:
        return config.SHEET_2026_BASE_URL
    return config.SHEET_BASE_URL


def sheet_url(month_key: str, gids: Optional[Dict[str, int]] = None) -> str:
    if gids is None:
        gids = load_sheet_gids()
    gid = gids.get(month_key)
    if gid is None:
        raise UnknownMonthError(month_key)
    return f"{sheet_base_url(month_key)}?gid={gid}&single=true&output=csv"


def _read_text(source: Union[str, Path, IO]) -> str:
    if hasattr(source, "read"):
        data = source.read()
    else:
        data = Path(source).read_bytes()
    if isinstance(data, bytes):
        data = data.decode("utf-8-sig", errors="ignore")
    return data


def read_grid_csv(source: Union[str, Path, IO]) -> Grid:
    """Read a CSV export into a grid of cell text.

    Every cell is kept as text, blank rows are preserved and missing cells
    become ``""``.  Rows may differ in width (hand-edited exports often do);
    the grid is padded to the widest row.  No header row is assumed: the
    sheet layout is interpreted later by the parser.
    """
    text = _read_text(source)
    try:
        width = max((len(r) for r in csv.reader(io.StringIO(text))), default=0)
    except csv.Error as e:
        raise SheetFetchError(f"Could not read the sheet as CSV: {e}") from e
    if width == 0:
        return []
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=range(width),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as e:
        raise SheetFetchError(f"Could not read the sheet as CSV: {e}") from e
    return df.fillna("").values.tolist()


def grid_from_csv_text(text: str) -> Grid:
    if not text.strip():
        return []
    return read_grid_csv(io.StringIO(text))


def fetch_grid(
    month_key: str,
    gids: Optional[Dict[str, int]] = None,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
) -> Grid:
    """Download the CSV export of ``month_key`` and return its grid.

    Raises
    ------
    UnknownMonthError
        The month is not in the gid table.
    SheetFetchError
        The request failed or returned an error status.
    EmptySheetError
        The export holds no rows.
    """
    url = sheet_url(month_key, gids)
    http = session or requests
    logger.info("Fetching sheet", extra={"month": month_key, "url": url})
    try:
        response = http.get(url, timeout=timeout or config.REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error("Sheet download failed: %s", e, extra={"month": month_key})
        raise SheetFetchError(f"Failed to download the sheet for {month_key}: {e}") from e

    grid = grid_from_csv_text(response.content.decode("utf-8-sig", errors="ignore"))
    if not grid:
        raise EmptySheetError(f"The sheet for {month_key} is empty")
    logger.info("Fetched sheet", extra={"month": month_key, "rows": len(grid)})
    return grid
