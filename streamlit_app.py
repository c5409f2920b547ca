"""
Streamlit UI for the church offering dashboard.

This application wraps ``offering_analysis.py`` into a web page for the
finance team and the congregation.  Pick a month, and the page downloads
that month's tab from the published ledger spreadsheet, shows the totals
(offerings, expenses, balance, cash vs online), charts per offering
category and per week, the top donors, the detailed offering list grouped
by category and week, and the month's expenses.  A CSV export of a month
tab can be uploaded instead when the spreadsheet is unreachable.

To run the app locally, first install the required dependencies:

::

    pip install -e .

Then start the application with:

::

    streamlit run streamlit_app.py

The UI will open in your default browser at ``http://localhost:8501``.
"""

import io
import logging
from typing import Optional

import altair as alt
import pandas as pd
import streamlit as st

import config
import offering_analysis as oa
import offering_parser as op
import sheet_source as ss
from logging_config import init_logging

logger = logging.getLogger(__name__)

CATEGORY_COLORS = {
    "십일조": "#4f6d7a",
    "주일헌금": "#6b8e7a",
    "감사헌금": "#c4a35a",
    "선교헌금": "#8b7355",
    "건축헌금": "#7a6b8e",
    "기타헌금": "#5a8e8b",
    "구역헌금": "#8e7a6b",
}


@st.cache_data(ttl=config.CACHE_TTL, show_spinner=False)
def fetch_month(month_key: str) -> op.ParseResult:
    grid = ss.fetch_grid(month_key)
    return op.parse_grid(grid, expected_month=month_key)


def _step(direction: int) -> None:
    target = ss.step_month(st.session_state["month"], direction)
    if target is not None:
        st.session_state["month"] = target


def _load(month_key: str, upload) -> Optional[op.ParseResult]:
    """Fetch or read the month, reporting failures on the page."""
    try:
        if upload is not None:
            grid = ss.read_grid_csv(io.BytesIO(upload.getvalue()))
            if not grid:
                raise ss.EmptySheetError(f"{upload.name} is empty")
            return op.parse_grid(grid, expected_month=month_key)
        with st.spinner("데이터를 불러오는 중..."):
            return fetch_month(month_key)
    except ss.SheetFetchError as e:
        logger.warning("Could not load %s: %s", month_key, e)
        st.error(oa.describe_failure(e, month_key))
        return None


def _category_chart(summary: pd.DataFrame) -> alt.Chart:
    return (
        alt.Chart(summary)
        .mark_bar()
        .encode(
            x=alt.X("Amount", title="헌금액"),
            y=alt.Y("Category", sort="-x", title=None),
            color=alt.Color(
                "Category",
                scale=alt.Scale(domain=list(CATEGORY_COLORS), range=list(CATEGORY_COLORS.values())),
                legend=None,
            ),
            tooltip=["Category", "Amount", "Count"],
        )
    )


def _week_chart(weekly: pd.DataFrame) -> alt.Chart:
    return (
        alt.Chart(weekly)
        .mark_area(opacity=0.4, line=True, point=True)
        .encode(
            x=alt.X("Label", sort=None, title=None),
            y=alt.Y("Amount", title="헌금액"),
            tooltip=["Label", "Amount", "Count"],
        )
    )


def _render_summary(summary: oa.MonthSummary) -> None:
    col1, col2, col3 = st.columns(3)
    col1.metric("총 헌금액", oa.format_compact_currency(summary.offering_total), f"{summary.offering_count}건", delta_color="off")
    col2.metric("총 지출액", oa.format_compact_currency(summary.expense_total), f"{summary.expense_count}건", delta_color="off")
    col3.metric("잔액", oa.format_compact_currency(summary.balance))
    col4, col5, col6 = st.columns(3)
    col4.metric("현금 헌금", oa.format_compact_currency(summary.cash_total))
    col5.metric("온라인 헌금", oa.format_compact_currency(summary.online_total))
    col6.metric("참여 성도", f"{summary.donor_count}명", f"{summary.category_count}개 종류", delta_color="off")


def _render_details(offerings: pd.DataFrame) -> None:
    """Offering list grouped by category, then by week."""
    if offerings.empty:
        st.info("검색 결과가 없습니다")
        return
    breakdown = oa.summarise_category_weeks(offerings)
    for category in oa.CATEGORY_ORDER:
        rows = offerings[offerings["Category"] == category]
        if rows.empty:
            continue
        with st.expander(f"{category} · {len(rows)}건 · {oa.format_currency(rows['Amount'].sum())}"):
            weeks = breakdown[breakdown["Category"] == category]
            for _, week in weeks.iterrows():
                st.markdown(f"**{week['Label']}** ({week['Count']}건) · {oa.format_currency(week['Amount'])}")
                items = rows[rows["Week"] == week["Week"]][["Date", "Name", "Channel", "Amount"]]
                st.dataframe(items, hide_index=True, use_container_width=True)


def _render_expenses(expenses: pd.DataFrame, total: int) -> None:
    if expenses.empty:
        return
    with st.expander(f"지출 내역 · {len(expenses)}건 · 총 {oa.format_currency(total)}"):
        display = expenses.copy()
        # The fuel aggregate row has no date of its own.
        display["Date"] = display["Date"].dt.strftime("%Y-%m-%d").fillna("")
        display["Amount"] = display["Amount"].map(oa.format_currency)
        st.dataframe(
            display[["Date", "Description", "Channel", "Amount"]],
            hide_index=True,
            use_container_width=True,
        )


def main() -> None:
    init_logging()
    st.set_page_config(page_title="교회 헌금 관리", layout="wide")
    st.title("교회 헌금 관리")

    months = ss.available_months()
    if "month" not in st.session_state:
        st.session_state["month"] = months[-1]

    col_prev, col_pick, col_next, col_refresh = st.columns([1, 4, 1, 1])
    col_prev.button("◀", on_click=_step, args=(-1,), disabled=st.session_state["month"] == months[0])
    col_pick.selectbox("조회 기간", months, key="month", format_func=ss.month_display)
    col_next.button("▶", on_click=_step, args=(1,), disabled=st.session_state["month"] == months[-1])
    if col_refresh.button("새로고침"):
        fetch_month.clear()

    month_key = st.session_state["month"]
    upload = st.sidebar.file_uploader(
        "CSV 파일 (선택)",
        type=["csv"],
        help="Upload the CSV export of a month tab when the published sheet cannot be reached.",
    )

    result = _load(month_key, upload)
    if result is None:
        return
    if not result.offerings:
        st.error(oa.MSG_UNRECOGNISED)
        return

    all_offerings = oa.offerings_to_frame(result.offerings)
    expenses = oa.expenses_to_frame(result.expenses)

    col_type, col_search = st.columns([3, 2])
    with col_type:
        category = st.radio("헌금 종류", [oa.ALL_LABEL] + oa.CATEGORY_ORDER, horizontal=True)
    with col_search:
        search = st.text_input("이름 검색", value="")

    offerings = oa.filter_offerings(all_offerings, category, search.strip())
    summary = oa.build_month_summary(result, offerings)
    _render_summary(summary)

    by_category = oa.summarise_by_category(offerings)
    weekly = oa.summarise_by_week(offerings)
    top_donors = oa.summarise_top_donors(offerings)

    tab1, tab2, tab3, tab4 = st.tabs(["종류별 현황", "주차별 현황", "상위 헌금자", "상세 내역"])

    with tab1:
        if not by_category.empty:
            st.altair_chart(_category_chart(by_category), use_container_width=True)
        st.dataframe(by_category, hide_index=True, use_container_width=True)

    with tab2:
        if not weekly.empty:
            st.altair_chart(_week_chart(weekly), use_container_width=True)
        st.dataframe(weekly, hide_index=True, use_container_width=True)

    with tab3:
        st.dataframe(top_donors, hide_index=True, use_container_width=True)
        st.write("### 성도별 종류 구성")
        st.dataframe(oa.summarise_donor_categories(offerings), hide_index=True, use_container_width=True)

    with tab4:
        week_options = ["전체"] + [oa.week_label(w) for w in weekly["Week"].tolist()]
        selected_week = st.radio("주차", week_options, horizontal=True)
        week = None if selected_week == "전체" else int(selected_week.rstrip("주차"))
        _render_details(oa.filter_offerings(offerings, week=week))

    _render_expenses(expenses, summary.expense_total)

    st.download_button(
        label="Download offerings as CSV",
        data=offerings.to_csv(index=False).encode("utf-8-sig"),
        file_name=f"offerings_{month_key}.csv",
        mime="text/csv",
    )
    output = io.BytesIO()
    oa.write_excel_report(offerings, expenses, output, by_category, weekly, top_donors, balance=result.balance)
    st.download_button(
        label="Download full report (Excel)",
        data=output.getvalue(),
        file_name=f"offering_report_{month_key}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )


if __name__ == "__main__":
    main()
