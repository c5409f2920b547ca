"""
Church Offering Analysis Tool
-----------------------------

This module turns the records recovered by :mod:`offering_parser` into the
tables the dashboard shows: totals per offering category, per payment
channel and per week of the month, the most generous donors, a per-donor
category breakdown and the month's expense list.  The same tables can be
written to an Excel workbook with charts from the command line.

Key Features
~~~~~~~~~~~~
* Loads one month either from the published Google spreadsheet (by month
  key) or from a downloaded CSV export of the month tab.
* Filters offerings by category, payer-name substring and week of month.
* Groups offerings by category, channel (현금/온라인), payer and week,
  where week ``n`` covers days ``7n-6`` to ``7n``.
* Formats amounts as Korean won, either in full (``₩1,234,500``) or in the
  compact form used on the summary cards (``123만 4천원``).
* Generates an Excel workbook (.xlsx) containing:
  - Offerings: every offering entry.
  - Expenses: the expense list, fuel purchases folded into one row.
  - CategorySummary, WeeklySummary, TopDonors: the grouped tables with charts.

Usage Example
~~~~~~~~~~~~

::

    python offering_analysis.py 2025-03 --output 2025-03.xlsx
    python offering_analysis.py --csv march.csv --month 2025-03 --category 십일조

This module requires ``pandas`` and ``xlsxwriter``.
"""

import argparse
import math
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd

import offering_parser as op
import sheet_source as ss
from logging_config import init_logging

ALL_LABEL = "전체"

OFFERING_COLUMNS = ["Date", "Name", "Category", "Amount", "Channel", "Week"]
EXPENSE_COLUMNS = ["Date", "Description", "Amount", "Channel", "IsFuelAggregate"]

CATEGORY_ORDER = [c.value for c in op.OfferingCategory]
CHANNEL_ORDER = [c.value for c in op.Channel]

MSG_NO_DATA = "{month} 데이터가 없습니다."
MSG_UNRECOGNISED = "데이터 형식을 인식할 수 없습니다."
MSG_FETCH_FAILED = "데이터를 불러오지 못했습니다."
MSG_EMPTY = "데이터를 불러왔지만 내용이 비어있습니다."


def week_of_month(day: int) -> int:
    """Return the 1-based week bucket of a day of the month (1–5)."""
    return math.ceil(day / 7)


def week_label(week: int) -> str:
    return f"{week}주차"


def format_currency(amount: int) -> str:
    return f"₩{int(amount):,}"


def format_compact_currency(amount: int) -> str:
    """Format an amount in 만/천 units, e.g. ``123만 4천원``.

    Anything below a thousand won is shown as is; the remainder below a
    thousand is dropped once the amount reaches 만 (10,000).
    """
    amount = int(amount)
    if amount >= 10000:
        man = amount // 10000
        chun = (amount % 10000) // 1000
        if chun > 0:
            return f"{man}만 {chun}천원"
        return f"{man}만원"
    if amount >= 1000:
        chun = amount // 1000
        rest = amount % 1000
        if rest > 0:
            return f"{chun}천 {rest}원"
        return f"{chun}천원"
    return f"{amount}원"


def describe_failure(error: Exception, month_key: str = "") -> str:
    """Map a retrieval failure to the message shown to the user."""
    if isinstance(error, ss.UnknownMonthError):
        return MSG_NO_DATA.format(month=month_key or error.month_key)
    if isinstance(error, ss.EmptySheetError):
        return MSG_EMPTY
    return MSG_FETCH_FAILED


def offerings_to_frame(offerings: Iterable[op.OfferingEntry]) -> pd.DataFrame:
    """Convert offering entries into a DataFrame.

    Parameters
    ----------
    offerings : iterable of OfferingEntry
        Entries as returned in :attr:`ParseResult.offerings`.

    Returns
    -------
    DataFrame
        Columns ``Date``, ``Name``, ``Category``, ``Amount``, ``Channel``
        and ``Week`` in the order of the input.
    """
    records = [
        {
            "Date": pd.Timestamp(e.date),
            "Name": e.payer_name,
            "Category": op.OfferingCategory(e.category).value,
            "Amount": int(e.amount),
            "Channel": op.Channel(e.channel).value,
            "Week": week_of_month(e.date.day),
        }
        for e in offerings
    ]
    if not records:
        return pd.DataFrame(columns=OFFERING_COLUMNS)
    return pd.DataFrame(records, columns=OFFERING_COLUMNS)


def expenses_to_frame(expenses: Iterable[op.ExpenseEntry]) -> pd.DataFrame:
    """Convert expense entries into a DataFrame; the fuel aggregate has no date."""
    records = [
        {
            "Date": pd.Timestamp(e.date) if e.date is not None else pd.NaT,
            "Description": e.description,
            "Amount": int(e.amount),
            "Channel": op.Channel(e.channel).value,
            "IsFuelAggregate": bool(e.is_fuel_aggregate),
        }
        for e in expenses
    ]
    if not records:
        return pd.DataFrame(columns=EXPENSE_COLUMNS)
    return pd.DataFrame(records, columns=EXPENSE_COLUMNS)


def filter_offerings(
    df: pd.DataFrame,
    category: Optional[str] = None,
    search: Optional[str] = None,
    week: Optional[int] = None,
) -> pd.DataFrame:
    """Select offerings by category, payer-name substring and week.

    ``None`` or ``"전체"`` for ``category`` keeps every category; an empty
    ``search`` keeps every payer.
    """
    mask = pd.Series(True, index=df.index)
    if category and category != ALL_LABEL:
        mask &= df["Category"] == category
    if search:
        mask &= df["Name"].astype(str).str.contains(search, regex=False)
    if week is not None:
        mask &= df["Week"] == week
    return df[mask]


def summarise_by_category(df: pd.DataFrame) -> pd.DataFrame:
    """Total and count of offerings per category, largest total first."""
    if df.empty:
        return pd.DataFrame(columns=["Category", "Amount", "Count"])
    summary = (
        df.groupby("Category")["Amount"]
        .agg([("Amount", "sum"), ("Count", "count")])
        .sort_values("Amount", ascending=False, kind="mergesort")
        .reset_index()
    )
    return summary


def summarise_by_channel(df: pd.DataFrame) -> pd.DataFrame:
    """Offering total per payment channel; both channels are always listed."""
    if df.empty:
        totals = pd.Series(0, index=CHANNEL_ORDER)
    else:
        totals = df.groupby("Channel")["Amount"].sum().reindex(CHANNEL_ORDER, fill_value=0)
    return pd.DataFrame({"Channel": CHANNEL_ORDER, "Amount": totals.astype(int).values})


def summarise_by_week(df: pd.DataFrame) -> pd.DataFrame:
    """Offering total per week of the month.

    Only weeks that hold at least one offering are listed, in week order,
    with a display label (``"2주차"``) for charts.
    """
    if df.empty:
        return pd.DataFrame(columns=["Week", "Label", "Amount", "Count"])
    weekly = (
        df.groupby("Week")["Amount"]
        .agg([("Amount", "sum"), ("Count", "count")])
        .sort_index()
        .reset_index()
    )
    weekly.insert(1, "Label", weekly["Week"].map(week_label))
    return weekly


def summarise_top_donors(df: pd.DataFrame, n: int = 10) -> pd.DataFrame:
    """Identify the payers with the largest total offering.

    Parameters
    ----------
    df : DataFrame
        Offerings with ``Name`` and ``Amount`` columns.
    n : int
        Number of donors to return.

    Returns
    -------
    DataFrame
        Columns ``Name``, ``Total`` and ``Count`` sorted by total.  Ties keep
        the order in which the donors first appear.
    """
    if df.empty:
        return pd.DataFrame(columns=["Name", "Total", "Count"])
    summary = (
        df.groupby("Name", sort=False)["Amount"]
        .agg([("Total", "sum"), ("Count", "count")])
        .sort_values("Total", ascending=False, kind="mergesort")
        .head(n)
        .reset_index()
    )
    return summary


def summarise_donor_categories(df: pd.DataFrame) -> pd.DataFrame:
    """Per-payer totals broken down by category (one column per category)."""
    if df.empty:
        return pd.DataFrame(columns=["Name"])
    pivot = df.pivot_table(
        index="Name", columns="Category", values="Amount", aggfunc="sum", fill_value=0
    )
    ordered = [c for c in CATEGORY_ORDER if c in pivot.columns]
    pivot = pivot[ordered]
    pivot["Total"] = pivot.sum(axis=1)
    return pivot.sort_values("Total", ascending=False).reset_index()


def summarise_category_weeks(df: pd.DataFrame) -> pd.DataFrame:
    """Total and count per category and week, in category then week order."""
    if df.empty:
        return pd.DataFrame(columns=["Category", "Week", "Label", "Amount", "Count"])
    grouped = (
        df.groupby(["Category", "Week"])["Amount"]
        .agg([("Amount", "sum"), ("Count", "count")])
        .reset_index()
    )
    grouped["_order"] = grouped["Category"].map(
        lambda c: CATEGORY_ORDER.index(c) if c in CATEGORY_ORDER else len(CATEGORY_ORDER)
    )
    grouped = grouped.sort_values(["_order", "Week"]).drop(columns=["_order"])
    grouped.insert(2, "Label", grouped["Week"].map(week_label))
    return grouped.reset_index(drop=True)


@dataclass(frozen=True)
class MonthSummary:
    offering_total: int
    offering_count: int
    expense_total: int
    expense_count: int
    balance: int
    cash_total: int
    online_total: int
    donor_count: int
    category_count: int


def build_month_summary(result: op.ParseResult, offerings: Optional[pd.DataFrame] = None) -> MonthSummary:
    """Compute the figures shown on the summary cards.

    ``offerings`` may be a filtered view of the month's offerings; expense
    figures and the balance always cover the whole month.
    """
    if offerings is None:
        offerings = offerings_to_frame(result.offerings)
    channels = summarise_by_channel(offerings).set_index("Channel")["Amount"]
    return MonthSummary(
        offering_total=int(offerings["Amount"].sum()) if not offerings.empty else 0,
        offering_count=len(offerings),
        expense_total=sum(e.amount for e in result.expenses),
        expense_count=len(result.expenses),
        balance=result.balance,
        cash_total=int(channels[op.Channel.CASH.value]),
        online_total=int(channels[op.Channel.ONLINE.value]),
        donor_count=int(offerings["Name"].nunique()) if not offerings.empty else 0,
        category_count=int(offerings["Category"].nunique()) if not offerings.empty else 0,
    )


def write_excel_report(
    offerings: pd.DataFrame,
    expenses: pd.DataFrame,
    output_path: Path,
    category_summary: pd.DataFrame,
    weekly: pd.DataFrame,
    top_donors: pd.DataFrame,
    balance: int = 0,
) -> None:
    """Create an Excel workbook report with multiple sheets and charts.

    Parameters
    ----------
    offerings: DataFrame
        Offering entries from ``offerings_to_frame``.
    expenses: DataFrame
        Expense entries from ``expenses_to_frame``.
    output_path: Path or file-like
        The destination of the .xlsx file.
    category_summary: DataFrame
        Output of ``summarise_by_category``.
    weekly: DataFrame
        Output of ``summarise_by_week``.
    top_donors: DataFrame
        Output of ``summarise_top_donors``.
    balance: int
        Closing balance, written under the expense list.
    """
    sheet_data = {
        "Offerings": offerings,
        "Expenses": expenses,
        "CategorySummary": category_summary,
        "WeeklySummary": weekly,
        "TopDonors": top_donors,
    }
    with pd.ExcelWriter(output_path, engine="xlsxwriter", datetime_format="yyyy-mm-dd") as writer:
        for sheet_name, data in sheet_data.items():
            data.to_excel(writer, sheet_name=sheet_name, index=False)

        workbook = writer.book
        header_format = workbook.add_format({
            "bold": True,
            "bg_color": "#F7F7F7",
            "border": 1
        })
        money_format = workbook.add_format({"num_format": "#,##0"})
        for sheet_name, data in sheet_data.items():
            worksheet = writer.sheets[sheet_name]
            worksheet.freeze_panes(1, 0)
            for col_idx, value in enumerate(data.columns):
                worksheet.write(0, col_idx, value, header_format)
            for col_idx, value in enumerate(data.columns):
                if value in ("Amount", "Total"):
                    worksheet.set_column(col_idx, col_idx, 14, money_format)

        expense_sheet = writer.sheets["Expenses"]
        balance_row = len(expenses) + 2
        expense_sheet.write(balance_row, 0, "잔액", header_format)
        expense_sheet.write(balance_row, 2, int(balance), money_format)

        # Chart: offerings per category
        cat_count = len(category_summary)
        if cat_count:
            chart1 = workbook.add_chart({"type": "bar"})
            chart1.add_series({
                "name": "Offerings",
                "categories": ["CategorySummary", 1, 0, cat_count, 0],
                "values": ["CategorySummary", 1, 1, cat_count, 1],
            })
            chart1.set_title({"name": "Offerings by Category"})
            chart1.set_x_axis({"name": "Amount"})
            chart1.set_legend({"none": True})
            writer.sheets["CategorySummary"].insert_chart("E2", chart1, {"x_scale": 1.2, "y_scale": 1.2})

        # Chart: offerings per week (Label is column B, Amount column C)
        week_count = len(weekly)
        if week_count:
            chart2 = workbook.add_chart({"type": "column"})
            chart2.add_series({
                "name": "Offerings",
                "categories": ["WeeklySummary", 1, 1, week_count, 1],
                "values": ["WeeklySummary", 1, 2, week_count, 2],
            })
            chart2.set_title({"name": "Offerings by Week"})
            chart2.set_legend({"none": True})
            writer.sheets["WeeklySummary"].insert_chart("F2", chart2, {"x_scale": 1.2, "y_scale": 1.2})

        donor_count = len(top_donors)
        if donor_count:
            chart3 = workbook.add_chart({"type": "bar"})
            chart3.add_series({
                "name": "Total",
                "categories": ["TopDonors", 1, 0, donor_count, 0],
                "values": ["TopDonors", 1, 1, donor_count, 1],
            })
            chart3.set_title({"name": "Top Donors"})
            chart3.set_legend({"none": True})
            writer.sheets["TopDonors"].insert_chart("E2", chart3, {"x_scale": 1.2, "y_scale": 1.2})

        writer.sheets["Expenses"].set_column(1, 1, 30)


def load_month(month_key: Optional[str], csv_path: Optional[Path] = None) -> op.ParseResult:
    """Fetch (or read) one month sheet and parse it."""
    if csv_path is not None:
        grid = ss.read_grid_csv(csv_path)
        if not grid:
            raise ss.EmptySheetError(f"{csv_path} is empty")
    else:
        grid = ss.fetch_grid(month_key)
    return op.parse_grid(grid, expected_month=month_key)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Summarise a month of church offerings and expenses into an Excel report.")
    parser.add_argument(
        "month", nargs="?", default=None, help="Month key (YYYY-MM) of the published sheet to fetch.")
    parser.add_argument(
        "--month", dest="month_hint", default=None,
        help="Month key (YYYY-MM) a --csv export belongs to; same as the positional month.")
    parser.add_argument(
        "--csv", type=Path, default=None, help="Read a downloaded CSV export of the month tab instead of fetching it.")
    parser.add_argument(
        "-o", "--output", type=Path, default=None, help="Output Excel file path (default: offering_report_<month>.xlsx).")
    parser.add_argument(
        "--category", type=str, default=None, help="Only include offerings of this category (e.g. 십일조).")
    parser.add_argument(
        "--search", type=str, default=None, help="Only include payers whose name contains this text.")
    parser.add_argument(
        "--top-donors", type=int, default=10, help="Number of donors to list.")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log parser details.")

    args = parser.parse_args(argv)
    if args.month and args.month_hint and args.month != args.month_hint:
        parser.error(f"conflicting months: {args.month} and --month {args.month_hint}")
    month_key = args.month or args.month_hint
    if month_key is None and args.csv is None:
        parser.error("either a month key or --csv is required")

    # stdout carries the report line; log records go to stderr.
    init_logging("DEBUG" if args.verbose else None, stream=sys.stderr)

    try:
        result = load_month(month_key, args.csv)
    except ss.SheetFetchError as e:
        print(describe_failure(e, month_key or ""), file=sys.stderr)
        return 1
    if not result.offerings:
        print(MSG_UNRECOGNISED, file=sys.stderr)
        return 1

    offerings = filter_offerings(offerings_to_frame(result.offerings), args.category, args.search)
    expenses = expenses_to_frame(result.expenses)
    summary = build_month_summary(result, offerings)

    output = args.output or Path(f"offering_report_{month_key or args.csv.stem}.xlsx")
    write_excel_report(
        offerings,
        expenses,
        output,
        summarise_by_category(offerings),
        summarise_by_week(offerings),
        summarise_top_donors(offerings, n=args.top_donors),
        balance=summary.balance,
    )
    print(f"헌금 {format_currency(summary.offering_total)} ({summary.offering_count}건), "
          f"지출 {format_currency(summary.expense_total)}, 잔액 {format_currency(summary.balance)}")
    print(f"Report written to {output.resolve()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
