import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import config

WIDTH = 8


def row(*cells):
    """Pad a sheet row to the fixture width, like the CSV export does."""
    cells = list(cells)
    return cells + [""] * (WIDTH - len(cells))


@pytest.fixture(autouse=True)
def _builtin_gids(monkeypatch):
    monkeypatch.setattr(config, "SHEET_GIDS_FILE", None)
    yield


@pytest.fixture
def march_grid():
    return [
        row("2025년 3월", "3월 02일", "온라인", "3월 09일", "온라인", "3월 16일", "비고"),
        row("십일조"),
        row("홍길동", "10,000", "", "", "20,000"),
        row("김철수", "", "50000", "", "", "5,000"),
        row("총 계", "60,000", "50,000", "", "20,000", "5,000"),
        row(),
        row("주일헌금"),
        row("이영희", "", "", "3,000"),
        row("홍길동", "1,000", "", "", "", "abc"),
        row("잔액", "1,234,500"),
        row("지출 결의서"),
        row("날짜", "내역", "", "온라인", "현금"),
        row("3월 05일", "주유비", "", "", "50,000"),
        row("3월 07일", "경유 충전", "", "30,000"),
        row("3월 03일", "꽃꽂이", "", "20,000", "10,000"),
        row("3월 10일", "예금이자", "", "100"),
        row("3월 12일", "LPG 가스", "", "", "15,000"),
        row("3월 20일", "환불", "", "-5,000"),
        row(),
        row("합계", "", "", "65,000"),
    ]
