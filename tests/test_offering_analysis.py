import sys

import pandas as pd
import pytest

import offering_analysis as oa
import offering_parser as op
import sheet_source as ss


@pytest.fixture
def result(march_grid):
    return op.parse_grid(march_grid, expected_month="2025-03")


@pytest.fixture
def offerings(result):
    return oa.offerings_to_frame(result.offerings)


@pytest.mark.parametrize("day,week", [(1, 1), (7, 1), (8, 2), (14, 2), (15, 3), (28, 4), (29, 5), (31, 5)])
def test_week_of_month(day, week):
    assert oa.week_of_month(day) == week


def test_week_label():
    assert oa.week_label(3) == "3주차"


@pytest.mark.parametrize("amount,text", [
    (1234500, "123만 4천원"),
    (10000, "1만원"),
    (10999, "1만원"),
    (1500, "1천 500원"),
    (3000, "3천원"),
    (999, "999원"),
    (0, "0원"),
])
def test_format_compact_currency(amount, text):
    assert oa.format_compact_currency(amount) == text


def test_format_currency():
    assert oa.format_currency(1234500) == "₩1,234,500"


def test_describe_failure():
    assert oa.describe_failure(ss.UnknownMonthError("2030-01")) == "2030-01 데이터가 없습니다."
    assert oa.describe_failure(ss.EmptySheetError("x")) == oa.MSG_EMPTY
    assert oa.describe_failure(ss.SheetFetchError("x")) == oa.MSG_FETCH_FAILED


def test_offerings_to_frame(offerings):
    assert list(offerings.columns) == oa.OFFERING_COLUMNS
    assert len(offerings) == 6
    first = offerings.iloc[0]
    assert first["Date"] == pd.Timestamp("2025-03-02")
    assert (first["Name"], first["Category"], first["Channel"], first["Week"]) == ("홍길동", "십일조", "현금", 1)


def test_expenses_to_frame(result):
    expenses = oa.expenses_to_frame(result.expenses)
    assert list(expenses.columns) == oa.EXPENSE_COLUMNS
    assert expenses["IsFuelAggregate"].tolist() == [True, False, False]
    assert pd.isna(expenses.iloc[0]["Date"])
    assert expenses["Amount"].tolist() == [45000, 20000, 50000]


def test_empty_frames():
    assert oa.offerings_to_frame([]).empty
    assert list(oa.expenses_to_frame([]).columns) == oa.EXPENSE_COLUMNS


def test_filter_offerings(offerings):
    assert len(oa.filter_offerings(offerings)) == 6
    assert len(oa.filter_offerings(offerings, category=oa.ALL_LABEL)) == 6
    assert len(oa.filter_offerings(offerings, category="주일헌금")) == 2
    assert oa.filter_offerings(offerings, search="홍")["Name"].unique().tolist() == ["홍길동"]
    assert len(oa.filter_offerings(offerings, category="십일조", search="김")) == 2
    assert len(oa.filter_offerings(offerings, week=2)) == 2


def test_summarise_by_category(offerings):
    summary = oa.summarise_by_category(offerings)
    assert summary["Category"].tolist() == ["십일조", "주일헌금"]
    assert summary["Amount"].tolist() == [85000, 4000]
    assert summary["Count"].tolist() == [4, 2]


def test_summarise_by_channel(offerings):
    summary = oa.summarise_by_channel(offerings)
    assert summary["Channel"].tolist() == ["현금", "온라인"]
    assert summary["Amount"].tolist() == [19000, 70000]


def test_summarise_by_channel_lists_missing_channels(offerings):
    cash_only = offerings[offerings["Channel"] == "현금"]
    assert oa.summarise_by_channel(cash_only)["Amount"].tolist() == [19000, 0]
    assert oa.summarise_by_channel(offerings.iloc[0:0])["Amount"].tolist() == [0, 0]


def test_summarise_by_week(offerings):
    weekly = oa.summarise_by_week(offerings)
    assert weekly["Week"].tolist() == [1, 2, 3]
    assert weekly["Label"].tolist() == ["1주차", "2주차", "3주차"]
    assert weekly["Amount"].tolist() == [61000, 23000, 5000]
    assert weekly["Count"].tolist() == [3, 2, 1]


def test_summarise_top_donors(offerings):
    donors = oa.summarise_top_donors(offerings)
    assert donors["Name"].tolist() == ["김철수", "홍길동", "이영희"]
    assert donors["Total"].tolist() == [55000, 31000, 3000]
    assert donors["Count"].tolist() == [2, 3, 1]
    assert len(oa.summarise_top_donors(offerings, n=1)) == 1


def test_summarise_donor_categories(offerings):
    table = oa.summarise_donor_categories(offerings).set_index("Name")
    assert list(table.columns) == ["십일조", "주일헌금", "Total"]
    assert table.loc["홍길동", "십일조"] == 30000
    assert table.loc["홍길동", "주일헌금"] == 1000
    assert table.loc["이영희", "십일조"] == 0


def test_summarise_category_weeks(offerings):
    table = oa.summarise_category_weeks(offerings)
    assert list(zip(table["Category"], table["Week"], table["Amount"])) == [
        ("십일조", 1, 60000),
        ("십일조", 2, 20000),
        ("십일조", 3, 5000),
        ("주일헌금", 1, 1000),
        ("주일헌금", 2, 3000),
    ]


def test_build_month_summary(result):
    summary = oa.build_month_summary(result)
    assert summary == oa.MonthSummary(
        offering_total=89000,
        offering_count=6,
        expense_total=115000,
        expense_count=3,
        balance=1234500,
        cash_total=19000,
        online_total=70000,
        donor_count=3,
        category_count=2,
    )


def test_build_month_summary_for_filtered_view(result, offerings):
    summary = oa.build_month_summary(result, oa.filter_offerings(offerings, search="없는이름"))
    assert (summary.offering_total, summary.offering_count, summary.donor_count) == (0, 0, 0)
    assert summary.expense_total == 115000
    assert summary.balance == 1234500


def test_write_excel_report(tmp_path, result, offerings):
    output = tmp_path / "report.xlsx"
    oa.write_excel_report(
        offerings,
        oa.expenses_to_frame(result.expenses),
        output,
        oa.summarise_by_category(offerings),
        oa.summarise_by_week(offerings),
        oa.summarise_top_donors(offerings),
        balance=result.balance,
    )
    assert output.exists() and output.stat().st_size > 0


def _write_csv(grid, path):
    pd.DataFrame(grid).to_csv(path, header=False, index=False, encoding="utf-8")


def test_main_from_csv(tmp_path, march_grid, monkeypatch, capsys):
    monkeypatch.setattr(oa, "init_logging", lambda *a, **k: None)
    csv_path = tmp_path / "march.csv"
    _write_csv(march_grid, csv_path)
    output = tmp_path / "out.xlsx"
    code = oa.main(["--csv", str(csv_path), "-o", str(output), "--category", "십일조"])
    assert code == 0
    assert output.exists()
    assert "₩85,000" in capsys.readouterr().out


def test_main_unrecognised_sheet(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(oa, "init_logging", lambda *a, **k: None)
    csv_path = tmp_path / "other.csv"
    _write_csv([["이름", "금액"], ["홍길동", "1000"]], csv_path)
    assert oa.main(["--csv", str(csv_path)]) == 1
    assert oa.MSG_UNRECOGNISED in capsys.readouterr().err


def test_main_unknown_month(monkeypatch, capsys):
    monkeypatch.setattr(oa, "init_logging", lambda *a, **k: None)
    assert oa.main(["1999-01"]) == 1
    assert "1999-01 데이터가 없습니다." in capsys.readouterr().err


def test_main_requires_a_source():
    with pytest.raises(SystemExit):
        oa.main([])


def test_main_from_csv_with_month_option(tmp_path, march_grid, monkeypatch, capsys):
    monkeypatch.setattr(oa, "init_logging", lambda *a, **k: None)
    csv_path = tmp_path / "march.csv"
    _write_csv(march_grid, csv_path)
    monkeypatch.chdir(tmp_path)
    assert oa.main(["--csv", str(csv_path), "--month", "2025-03"]) == 0
    assert (tmp_path / "offering_report_2025-03.xlsx").exists()
    assert "Report written to" in capsys.readouterr().out


def test_main_rejects_conflicting_months(tmp_path, march_grid):
    csv_path = tmp_path / "march.csv"
    _write_csv(march_grid, csv_path)
    with pytest.raises(SystemExit):
        oa.main(["2025-03", "--csv", str(csv_path), "--month", "2025-04"])


def test_main_logs_to_stderr(tmp_path, march_grid, monkeypatch):
    calls = []
    monkeypatch.setattr(oa, "init_logging", lambda *a, **k: calls.append(k.get("stream")))
    csv_path = tmp_path / "march.csv"
    _write_csv(march_grid, csv_path)
    assert oa.main(["--csv", str(csv_path), "-o", str(tmp_path / "out.xlsx")]) == 0
    assert calls == [sys.stderr]
