"""Shared fixtures: a fresh SQLite database per test and record factories."""

from datetime import date

import pytest

from wealthledger import db
from wealthledger.db import connection
from wealthledger.models import (
    FDDetail,
    GoldDetail,
    GoldPurity,
    InvestmentType,
    LoanDetail,
    MutualFundDetail,
    SharesDetail,
    TransactionType,
)
from wealthledger.settings import RateSettings

OWNER_ID = 1


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point the persistence layer at an empty database under tmp_path."""
    db_path = tmp_path / "test.db"
    monkeypatch.setattr(connection, "DB_PATH", db_path)
    connection.init_db()
    return db_path


@pytest.fixture
def rates():
    return RateSettings()


@pytest.fixture
def make_investment():
    """Create an investment and return it as loaded from the database."""
    def _make(investment_type, detail=None, name=None, owner_id=OWNER_ID, created_at=None):
        inv_type = InvestmentType(investment_type)
        investment_id = db.create_investment(
            owner_id, inv_type, name or f"Test {inv_type.label}", detail=detail, created_at=created_at,
        )
        return db.get_investment(investment_id)
    return _make


@pytest.fixture
def make_txn():
    """Record a transaction; buys and SIPs with units and price open a lot."""
    def _make(investment, txn_type, txn_date, amount_paise, units=None, price_per_unit_paise=None):
        return db.create_transaction(
            investment.id,
            TransactionType(txn_type),
            txn_date,
            amount_paise,
            owner_id=investment.owner_id,
            units=units,
            price_per_unit_paise=price_per_unit_paise,
        )
    return _make


@pytest.fixture
def equity_fund(make_investment):
    return make_investment(
        InvestmentType.MF_EQUITY,
        MutualFundDetail(scheme_code="120503", amfi_code="120503", scheme_name="Test Equity Fund"),
        name="Test Equity Fund",
    )


@pytest.fixture
def debt_fund(make_investment):
    return make_investment(
        InvestmentType.MF_DEBT,
        MutualFundDetail(scheme_code="119551", amfi_code="119551", scheme_name="Test Debt Fund"),
        name="Test Debt Fund",
    )


@pytest.fixture
def share(make_investment):
    return make_investment(InvestmentType.SHARES, SharesDetail(ticker_symbol="INFY", exchange="NSE"))


@pytest.fixture
def fixed_deposit(make_investment):
    return make_investment(
        InvestmentType.FD,
        FDDetail(
            principal_paise=100000 * 100,
            interest_rate=8.0,
            start_date=date(2023, 1, 1),
            maturity_date=date(2028, 1, 1),
        ),
    )


@pytest.fixture
def home_loan(make_investment):
    return make_investment(
        InvestmentType.LOAN,
        LoanDetail(
            principal_paise=50000 * 100,
            interest_rate=9.0,
            emi_paise=5000 * 100,
            start_date=date(2024, 1, 1),
            end_date=date(2025, 1, 1),
        ),
    )


@pytest.fixture
def gold_coins(make_investment):
    return make_investment(
        InvestmentType.GOLD,
        GoldDetail(
            weight_grams=10.0,
            purity=GoldPurity.K22,
            purchase_price_per_gram_paise=5000 * 100,
            purchase_date=date(2020, 1, 1),
        ),
    )


class FakeMarketData:
    """Stands in for MarketData: caches a canned history on backfill and counts calls."""

    def __init__(self, histories=None, fail=False):
        self.histories = histories or {}
        self.fail = fail
        self.calls = []

    async def backfill_history(self, symbol, source, exchange="NSE"):
        self.calls.append((symbol, source))
        if self.fail:
            raise RuntimeError("price feed unavailable")
        history = self.histories.get(symbol, [])
        return db.cache_price_history(symbol, source, history)


@pytest.fixture
def fake_market():
    return FakeMarketData
