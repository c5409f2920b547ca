"""
Offering sheet interpreter
--------------------------

The church's monthly ledger is maintained by hand in a Google spreadsheet,
one tab per month.  The CSV export of a tab has no stable schema: a header
row carries the month (``2025년 3월``) followed by one column per Sunday
(``3월 02일``), each optionally followed by an ``온라인`` column for online
transfers.  Below the header, offering category rows (``십일조``,
``주일헌금`` ...) introduce the payer rows of that category.  A marker row
(``지출 결의서``) starts the expense section, whose rows carry a date, a
description and an amount in either the online or the cash column.  A
``잔액`` row somewhere in the sheet holds the closing balance.

This module recovers those three collections from the raw grid of cell
text.  Everything here is a pure function of its input: nothing is fetched,
nothing is cached, and the grid is never modified.

Usage Example
~~~~~~~~~~~~~

::

    grid = sheet_source.fetch_grid("2025-03")
    result = parse_grid(grid, expected_month="2025-03")
    result.offerings, result.expenses, result.balance

All literal markers live in :class:`SheetMarkers` so the walk logic can be
tested against alternative labels.
"""

import datetime as _dt
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Cell = Optional[str]
RawGrid = Sequence[Sequence[Cell]]

YEAR_MONTH_PATTERN = re.compile(r"(20\d{2})년\s*(\d{1,2})월")
MONTH_DAY_PATTERN = re.compile(r"(\d{1,2})월\s*(\d{1,2})일")


class Channel(str, Enum):
    """Payment channel of an offering or an expense."""

    CASH = "현금"
    ONLINE = "온라인"


class OfferingCategory(str, Enum):
    TITHE = "십일조"
    SUNDAY_OFFERING = "주일헌금"
    THANKSGIVING = "감사헌금"
    MISSIONS = "선교헌금"
    BUILDING = "건축헌금"
    OTHER = "기타헌금"
    DISTRICT = "구역헌금"


class RowKind(Enum):
    """What a single row of the sheet means to the walk."""

    BLANK = "blank"
    HEADER = "header"
    CATEGORY = "category"
    OFFERING = "offering"
    EXPENSE_SECTION = "expense_section"
    EXPENSE = "expense"
    BALANCE = "balance"
    EXCLUDED = "excluded"


@dataclass(frozen=True)
class SheetMarkers:
    """Literal labels and patterns the spreadsheet uses as structure.

    The defaults match the layout the finance team has used since 2024.
    Stop and exclude labels match anywhere inside the first cell; category
    labels and the balance label must match the whole (trimmed) cell.
    Category labels must be values of :class:`OfferingCategory`.
    """

    categories: Tuple[str, ...] = tuple(c.value for c in OfferingCategory)
    stop_labels: Tuple[str, ...] = ("지출 결의서", "지출결의서", "지출 내역", "지출내역")
    offering_excludes: Tuple[str, ...] = (
        "총 계",
        "현금+온라인",
        "이월금",
        "잔액",
        "보유금액",
        "실제",
        "검증용",
    )
    expense_excludes: Tuple[str, ...] = ("지출 결의서", "지출결의서", "각 지출", "지출비", "예금이자")
    fuel_keywords: Tuple[str, ...] = ("유류세", "LPG", "경유", "휘발유")
    fuel_total_label: str = "유류세 (총합)"
    balance_label: str = "잔액"
    remarks_label: str = "비고"
    online_label: str = Channel.ONLINE.value
    cash_label: str = Channel.CASH.value
    header_scan_rows: int = 10
    channel_scan_rows: int = 5


DEFAULT_MARKERS = SheetMarkers()


@dataclass(frozen=True)
class DateColumn:
    column_index: int
    date: _dt.date
    channel: Channel


@dataclass(frozen=True)
class HeaderInfo:
    """Location and layout of the month header row."""

    row_index: int
    year: int
    month: int
    date_columns: Tuple[DateColumn, ...]


@dataclass(frozen=True)
class OfferingEntry:
    date: _dt.date
    payer_name: str
    category: OfferingCategory
    amount: int
    channel: Channel


@dataclass(frozen=True)
class ExpenseEntry:
    date: Optional[_dt.date]
    description: str
    amount: int
    channel: Channel
    is_fuel_aggregate: bool = False


@dataclass(frozen=True)
class ParseResult:
    offerings: Tuple[OfferingEntry, ...] = field(default_factory=tuple)
    expenses: Tuple[ExpenseEntry, ...] = field(default_factory=tuple)
    balance: int = 0

    @classmethod
    def empty(cls) -> "ParseResult":
        return cls((), (), 0)

    @property
    def is_empty(self) -> bool:
        return not self.offerings and not self.expenses and self.balance == 0


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------

def cell_text(row: Sequence[Cell], index: int) -> str:
    """Return the trimmed text of ``row[index]`` or ``""`` when absent."""
    if index < 0 or index >= len(row):
        return ""
    value = row[index]
    if value is None:
        return ""
    return str(value).strip()


def parse_amount(text: str) -> int:
    """Parse the digit-only residue of ``text``; 0 when nothing is left."""
    digits = re.sub(r"[^0-9]", "", text or "")
    if not digits:
        return 0
    return int(digits)


def parse_signed_amount(text: str) -> int:
    """Like :func:`parse_amount` but keeps a minus sign.

    Residues that are not a valid integer (``"5-000"``) count as 0 so that
    malformed cells are dropped rather than misread.
    """
    residue = re.sub(r"[^0-9-]", "", text or "")
    if not residue:
        return 0
    try:
        return int(residue)
    except ValueError:
        return 0


def match_year_month(text: str) -> Optional[Tuple[int, int]]:
    m = YEAR_MONTH_PATTERN.search(text or "")
    if not m:
        return None
    month = int(m.group(2))
    if not 1 <= month <= 12:
        return None
    return int(m.group(1)), month


def match_month_day(text: str) -> Optional[Tuple[int, int]]:
    m = MONTH_DAY_PATTERN.search(text or "")
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def _make_date(year: int, month: int, day: int) -> Optional[_dt.date]:
    try:
        return _dt.date(year, month, day)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Row classifier
# ---------------------------------------------------------------------------

def is_header_row(row: Sequence[Cell]) -> bool:
    return match_year_month(cell_text(row, 0)) is not None


def is_balance_row(row: Sequence[Cell], markers: SheetMarkers = DEFAULT_MARKERS) -> bool:
    return cell_text(row, 0) == markers.balance_label


def classify_offering_row(first_cell: str, markers: SheetMarkers = DEFAULT_MARKERS) -> RowKind:
    """Classify a row of the offering block by its (trimmed) first cell.

    The checks run in a fixed order: blank, section stop, excluded running
    totals, category label, and finally a payer row.
    """
    if not first_cell:
        return RowKind.BLANK
    if any(label in first_cell for label in markers.stop_labels):
        return RowKind.EXPENSE_SECTION
    if any(label in first_cell for label in markers.offering_excludes):
        return RowKind.EXCLUDED
    if first_cell in markers.categories:
        return RowKind.CATEGORY
    return RowKind.OFFERING


def classify_expense_row(
    first_cell: str,
    second_cell: str,
    markers: SheetMarkers = DEFAULT_MARKERS,
) -> RowKind:
    """Classify a row of the expense block.

    Only a dated first cell (``3월 05일``) with a non-empty description
    counts as an expense line.
    """
    if not first_cell and not second_cell:
        return RowKind.BLANK
    if any(p in first_cell or p in second_cell for p in markers.expense_excludes):
        return RowKind.EXCLUDED
    if match_month_day(first_cell) is not None and second_cell:
        return RowKind.EXPENSE
    return RowKind.EXCLUDED


# ---------------------------------------------------------------------------
# Date-column resolver
# ---------------------------------------------------------------------------

def _parse_month_hint(expected_month: Optional[str]) -> Optional[Tuple[int, int]]:
    if not expected_month:
        return None
    m = re.fullmatch(r"\s*(\d{4})-(\d{1,2})\s*", expected_month)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def find_header_row(
    grid: RawGrid,
    markers: SheetMarkers = DEFAULT_MARKERS,
) -> Optional[Tuple[int, int, int]]:
    """Return ``(row_index, year, month)`` of the month header, if any."""
    for i, row in enumerate(grid[: markers.header_scan_rows]):
        if is_header_row(row):
            year, month = match_year_month(cell_text(row, 0))
            return i, year, month
    return None


def resolve_date_columns(
    grid: RawGrid,
    expected_month: Optional[str] = None,
    markers: SheetMarkers = DEFAULT_MARKERS,
) -> Optional[HeaderInfo]:
    """Locate the header row and build the list of date columns.

    Parameters
    ----------
    grid : RawGrid
        Rows of cell text as exported from the sheet.
    expected_month : str or None
        The ``YYYY-MM`` key the grid was fetched for.  The header text is
        authoritative; a disagreeing hint is only logged.
    markers : SheetMarkers
        Literal labels to recognise.

    Returns
    -------
    HeaderInfo or None
        ``None`` when no header row exists within the scan window, in which
        case the sheet has no usable data.
    """
    found = find_header_row(grid, markers)
    if found is None:
        logger.debug("No month header within the first %d rows", markers.header_scan_rows)
        return None
    row_index, year, month = found

    hint = _parse_month_hint(expected_month)
    if hint is not None and hint != (year, month):
        logger.warning(
            "Sheet header says %04d-%02d but %s was requested", year, month, expected_month
        )

    header = grid[row_index]
    columns: List[DateColumn] = []
    i = 1
    while i < len(header):
        text = cell_text(header, i)
        if text == markers.remarks_label:
            i += 1
            continue
        month_day = match_month_day(text)
        if month_day is None:
            i += 1
            continue
        day_date = _make_date(year, month_day[0], month_day[1])
        if day_date is None:
            logger.debug("Ignoring impossible date %r in column %d", text, i)
            i += 1
            continue
        columns.append(DateColumn(i, day_date, Channel.CASH))
        if cell_text(header, i + 1) == markers.online_label:
            columns.append(DateColumn(i + 1, day_date, Channel.ONLINE))
            i += 2
        else:
            i += 1

    logger.debug("Header at row %d with %d date columns", row_index, len(columns))
    return HeaderInfo(row_index, year, month, tuple(columns))


# ---------------------------------------------------------------------------
# Offering extractor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CategoryState:
    """Walk state of the offering block: no category yet, or inside one."""

    category: Optional[OfferingCategory] = None

    @property
    def in_category(self) -> bool:
        return self.category is not None

    def advance(self, kind: RowKind, first_cell: str) -> "CategoryState":
        # Category rows are the only transition; every other row keeps state.
        if kind is RowKind.CATEGORY:
            return CategoryState(OfferingCategory(first_cell))
        return self


NO_CATEGORY = CategoryState()


def _row_offerings(
    row: Sequence[Cell],
    payer_name: str,
    category: OfferingCategory,
    date_columns: Sequence[DateColumn],
) -> List[OfferingEntry]:
    entries = []
    for column in date_columns:
        amount = parse_amount(cell_text(row, column.column_index))
        if amount > 0:
            entries.append(
                OfferingEntry(column.date, payer_name, category, amount, column.channel)
            )
    return entries


def extract_offerings(
    grid: RawGrid,
    header: HeaderInfo,
    markers: SheetMarkers = DEFAULT_MARKERS,
) -> Tuple[List[OfferingEntry], Optional[int]]:
    """Walk the offering block below the header.

    Returns the offering entries sorted by date (stable) and the index of the
    row that starts the expense section, or ``None`` when the sheet has no
    expense section.
    """
    entries: List[OfferingEntry] = []
    expense_start: Optional[int] = None
    state = NO_CATEGORY

    for i in range(header.row_index + 1, len(grid)):
        row = grid[i]
        first = cell_text(row, 0)
        kind = classify_offering_row(first, markers)
        if kind is RowKind.EXPENSE_SECTION:
            expense_start = i
            break
        if kind is RowKind.OFFERING and state.in_category:
            entries.extend(_row_offerings(row, first, state.category, header.date_columns))
        state = state.advance(kind, first)

    entries.sort(key=lambda e: e.date)
    return entries, expense_start


# ---------------------------------------------------------------------------
# Expense extractor
# ---------------------------------------------------------------------------

def locate_channel_columns(
    grid: RawGrid,
    section_start: int,
    markers: SheetMarkers = DEFAULT_MARKERS,
) -> Dict[Channel, int]:
    """Find the online and cash amount columns of the expense section.

    Scans a few rows from ``section_start`` and stops after the first row
    naming either channel.  Column 0 holds dates and is never an amount
    column.
    """
    columns: Dict[Channel, int] = {}
    labels = {markers.online_label: Channel.ONLINE, markers.cash_label: Channel.CASH}
    for row in grid[section_start: section_start + markers.channel_scan_rows]:
        for j in range(1, len(row)):
            channel = labels.get(cell_text(row, j))
            if channel is not None and channel not in columns:
                columns[channel] = j
        if columns:
            break
    return columns


def _expense_amount(row: Sequence[Cell], columns: Dict[Channel, int]) -> Tuple[int, Optional[Channel]]:
    for channel in (Channel.ONLINE, Channel.CASH):
        index = columns.get(channel)
        if index is None:
            continue
        amount = parse_signed_amount(cell_text(row, index))
        if amount > 0:
            return amount, channel
    return 0, None


def extract_expenses(
    grid: RawGrid,
    section_start: int,
    year: int,
    markers: SheetMarkers = DEFAULT_MARKERS,
) -> List[ExpenseEntry]:
    """Walk the expense block and fold fuel purchases into one entry.

    Parameters
    ----------
    grid : RawGrid
        The full sheet.
    section_start : int
        Row index of the expense section marker.
    year : int
        Year of the sheet, used to complete ``M월 D일`` dates.

    Returns
    -------
    list of ExpenseEntry
        The fuel aggregate (if any) first, then the remaining entries by
        date.
    """
    columns = locate_channel_columns(grid, section_start, markers)
    if not columns:
        logger.debug("Expense section at row %d names no channel column", section_start)

    entries: List[ExpenseEntry] = []
    fuel_total = 0
    for row in grid[section_start + 1:]:
        first = cell_text(row, 0)
        description = cell_text(row, 1)
        if classify_expense_row(first, description, markers) is not RowKind.EXPENSE:
            continue
        month, day = match_month_day(first)
        expense_date = _make_date(year, month, day)
        if expense_date is None:
            continue
        amount, channel = _expense_amount(row, columns)
        if amount <= 0:
            continue
        if any(k in description for k in markers.fuel_keywords):
            fuel_total += amount
            continue
        entries.append(ExpenseEntry(expense_date, description, amount, channel))

    entries.sort(key=lambda e: e.date)
    if fuel_total > 0:
        entries.insert(
            0,
            ExpenseEntry(None, markers.fuel_total_label, fuel_total, Channel.ONLINE, True),
        )
    return entries


# ---------------------------------------------------------------------------
# Balance locator
# ---------------------------------------------------------------------------

def locate_balance(grid: RawGrid, markers: SheetMarkers = DEFAULT_MARKERS) -> int:
    """Return the amount next to the first ``잔액`` label, or 0."""
    for row in grid:
        if is_balance_row(row, markers):
            return parse_amount(cell_text(row, 1))
    return 0


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def parse_grid(
    grid: RawGrid,
    expected_month: Optional[str] = None,
    markers: SheetMarkers = DEFAULT_MARKERS,
) -> ParseResult:
    """Interpret a month sheet into offerings, expenses and the balance.

    A sheet without a month header yields :meth:`ParseResult.empty`.
    """
    if not grid:
        return ParseResult.empty()
    header = resolve_date_columns(grid, expected_month, markers)
    if header is None:
        return ParseResult.empty()

    offerings, expense_start = extract_offerings(grid, header, markers)
    balance = locate_balance(grid, markers)
    expenses: List[ExpenseEntry] = []
    if expense_start is not None:
        logger.debug("Expense section starts at row %d", expense_start)
        expenses = extract_expenses(grid, expense_start, header.year, markers)

    return ParseResult(tuple(offerings), tuple(expenses), balance)
