import io
import json
from unittest.mock import MagicMock

import pytest
import requests

import offering_parser as op
import sheet_source as ss

CSV_TEXT = (
    "2025년 3월,3월 02일,온라인\n"
    "십일조,,\n"
    "홍길동,\"10,000\",\n"
    "\n"
    "잔액,\"1,234,500\",\n"
)


def _session(content=b"", error=None):
    session = MagicMock()
    response = MagicMock()
    response.content = content
    if error is not None:
        response.raise_for_status.side_effect = error
    session.get.return_value = response
    return session


def test_sheet_url_uses_year_specific_spreadsheet():
    url = ss.sheet_url("2025-03")
    assert url.endswith("?gid=1946650267&single=true&output=csv")
    assert url.startswith(ss.config.SHEET_BASE_URL)
    assert ss.sheet_url("2026-02").startswith(ss.config.SHEET_2026_BASE_URL)


def test_sheet_url_unknown_month():
    with pytest.raises(ss.UnknownMonthError) as excinfo:
        ss.sheet_url("1999-01")
    assert excinfo.value.month_key == "1999-01"


def test_load_sheet_gids_from_file(tmp_path):
    path = tmp_path / "gids.json"
    path.write_text(json.dumps({"2027-01": "123"}), encoding="utf-8")
    assert ss.load_sheet_gids(path) == {"2027-01": 123}


def test_load_sheet_gids_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "gids.json"
    path.write_text(json.dumps({"2027-02": 7}), encoding="utf-8")
    monkeypatch.setattr(ss.config, "SHEET_GIDS_FILE", str(path))
    assert ss.available_months() == ["2027-02"]


def test_month_navigation():
    gids = {"2025-01": 1, "2025-02": 2, "2025-03": 3}
    assert ss.available_months(gids) == ["2025-01", "2025-02", "2025-03"]
    assert ss.step_month("2025-02", 1, gids) == "2025-03"
    assert ss.step_month("2025-02", -1, gids) == "2025-01"
    assert ss.step_month("2025-03", 1, gids) is None
    assert ss.step_month("2024-12", 1, gids) is None


def test_month_display():
    assert ss.month_display("2025-03") == "2025년 3월"
    assert ss.month_display("2025-12") == "2025년 12월"
    assert ss.month_display("") == ""


def test_grid_from_csv_text_keeps_blank_rows_and_text():
    grid = ss.grid_from_csv_text(CSV_TEXT)
    assert grid[0] == ["2025년 3월", "3월 02일", "온라인"]
    assert grid[2] == ["홍길동", "10,000", ""]
    assert grid[3] == ["", "", ""]
    assert grid[4][1] == "1,234,500"


def test_grid_from_ragged_csv_pads_short_rows():
    text = "2025년 3월,3월 02일\n십일조\n홍길동,\"10,000\",,,\n잔액,\"1,000\"\n"
    grid = ss.grid_from_csv_text(text)
    assert grid[0] == ["2025년 3월", "3월 02일", "", "", ""]
    assert grid[1] == ["십일조", "", "", "", ""]
    assert all(len(r) == 5 for r in grid)
    result = op.parse_grid(grid)
    assert [(e.payer_name, e.amount, e.channel) for e in result.offerings] == [
        ("홍길동", 10000, op.Channel.CASH),
    ]
    assert result.balance == 1000


def test_read_grid_csv_from_uploaded_bytes():
    grid = ss.read_grid_csv(io.BytesIO("\ufeff2025년 3월,3월 02일\n십일조\n".encode("utf-8")))
    assert grid == [["2025년 3월", "3월 02일"], ["십일조", ""]]


def test_grid_from_empty_text():
    assert ss.grid_from_csv_text("  \n") == []


def test_fetch_grid():
    session = _session(CSV_TEXT.encode("utf-8"))
    grid = ss.fetch_grid("2025-03", session=session, timeout=3)
    assert len(grid) == 5
    url = session.get.call_args[0][0]
    assert "gid=1946650267" in url
    assert session.get.call_args[1]["timeout"] == 3


def test_fetch_grid_network_failure():
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("boom")
    with pytest.raises(ss.SheetFetchError):
        ss.fetch_grid("2025-03", session=session)


def test_fetch_grid_http_error():
    session = _session(b"", error=requests.HTTPError("404"))
    with pytest.raises(ss.SheetFetchError) as excinfo:
        ss.fetch_grid("2025-03", session=session)
    assert not isinstance(excinfo.value, ss.EmptySheetError)


def test_fetch_grid_empty_payload():
    with pytest.raises(ss.EmptySheetError):
        ss.fetch_grid("2025-03", session=_session(b""))


def test_fetch_grid_unknown_month_makes_no_request():
    session = _session(CSV_TEXT.encode("utf-8"))
    with pytest.raises(ss.UnknownMonthError):
        ss.fetch_grid("1999-01", session=session)
    session.get.assert_not_called()
