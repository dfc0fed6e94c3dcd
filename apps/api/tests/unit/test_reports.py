"""Tests for the report classifier and listing filters."""

from datetime import datetime, timedelta, timezone

import pytest

from research_api.db.models import Mlp, Reit, UserAccessibleAnalysis
from research_api.reports import classify_tickers, list_reports

USER = "user-reports-1"
OTHER_USER = "user-reports-2"
BASE_TIME = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _analysis(ticker: str, *, user_id=USER, is_free=False, has_access=True, age_days=0):
    return UserAccessibleAnalysis(
        user_id=user_id,
        ticker=ticker,
        years_range="2021-2025",
        is_free=is_free,
        has_access=has_access,
        model_used="analysis-v3",
        updated_at=BASE_TIME - timedelta(days=age_days),
    )


@pytest.fixture
def seeded(db_session):
    db_session.add_all(
        [
            Reit(ticker="O", name="Realty Income"),
            Reit(ticker="DUAL", name="Listed as both"),
            Mlp(ticker="EPD", name="Enterprise Products"),
            Mlp(ticker="DUAL", name="Listed as both"),
            _analysis("AAPL", is_free=True, age_days=3),
            _analysis("O", age_days=1),
            _analysis("EPD", age_days=2),
            _analysis("DUAL", has_access=False, age_days=0),
            _analysis("MSFT", user_id=OTHER_USER),
        ]
    )
    db_session.commit()


def test_classify_tickers_reit_wins_over_mlp(db_session, seeded):
    labels = classify_tickers(db_session, ["AAPL", "O", "EPD", "DUAL", "O"])
    assert labels == {"AAPL": "general", "O": "reit", "EPD": "mlp", "DUAL": "reit"}


def test_classify_tickers_empty_input(db_session):
    assert classify_tickers(db_session, []) == {}


def test_list_reports_only_returns_callers_rows_newest_first(db_session, seeded):
    rows = list_reports(db_session, USER)
    assert [row.ticker for row, _ in rows] == ["DUAL", "O", "EPD", "AAPL"]
    assert all(row.user_id == USER for row, _ in rows)


def test_list_reports_by_type(db_session, seeded):
    assert [r.ticker for r, _ in list_reports(db_session, USER, report_type="reit")] == ["DUAL", "O"]
    assert [r.ticker for r, _ in list_reports(db_session, USER, report_type="mlp")] == ["EPD"]
    assert [r.ticker for r, _ in list_reports(db_session, USER, report_type="general")] == ["AAPL"]
    assert len(list_reports(db_session, USER, report_type="all")) == 4


@pytest.mark.parametrize(
    "access,expected",
    [
        ("free", ["AAPL"]),
        ("purchased", ["O", "EPD"]),
        ("all", ["O", "EPD", "AAPL"]),
    ],
)
def test_list_reports_by_access(db_session, seeded, access, expected):
    rows = list_reports(db_session, USER, access=access)
    assert [row.ticker for row, _ in rows] == expected


def test_list_reports_ticker_is_case_insensitive(db_session, seeded):
    rows = list_reports(db_session, USER, ticker="epd")
    assert [(row.ticker, label) for row, label in rows] == [("EPD", "mlp")]
