"""Tests for monthly snapshots and historical reconstruction."""

import asyncio
from datetime import date

import pytest

from wealthledger import db, snapshots
from wealthledger.formulas import back_extrapolate_price, calculate_asset_value, calculate_fd_value
from wealthledger.models import ExpenseDetail, FDDetail, InvestmentType, TransactionType
from wealthledger.settings import RateSettings
from wealthledger.snapshots import (
    PriceResolver,
    calculate_monthly_snapshots,
    calculate_net_worth_snapshot,
    generate_historical_snapshots,
    get_type_history,
    historical_target_months,
)


def _monthly(investment_id):
    return {s.year_month: s for s in db.get_monthly_snapshots(investment_id=investment_id)}


class TestTargetMonths:
    """Tests for historical_target_months()."""

    def test_default_window(self):
        months = historical_target_months(as_of=date(2026, 10, 19))
        assert months[0] == "2016-01"
        assert months[-1] == "2026-09"
        assert "2026-10" not in months
        assert "2023-10" in months
        assert "2023-09" not in months
        assert months == sorted(set(months))
        # 36 trailing months plus the Januaries 2016-2023 not already covered
        assert len(months) == 44


class TestCurrentSnapshots:
    """Tests for current-month snapshots."""

    def test_monthly_snapshots_idempotent(self, fixed_deposit, equity_fund, rates):
        assert calculate_monthly_snapshots("2024-05", owner_id=1, rates=rates) == 2
        first = db.get_monthly_snapshots(year_month="2024-05")
        assert calculate_monthly_snapshots("2024-05", owner_id=1, rates=rates) == 2
        second = db.get_monthly_snapshots(year_month="2024-05")
        assert first == second
        assert len(second) == 2

    def test_net_worth_subtracts_debt(self, fixed_deposit, home_loan, rates):
        snapshot = calculate_net_worth_snapshot(1, "2024-05", rates=rates)
        assert snapshot.total_debt_paise == snapshot.breakdown['loan'].value
        assert snapshot.net_worth_paise == snapshot.total_value_paise - snapshot.total_debt_paise
        assert snapshot.total_invested_paise == snapshot.breakdown['fd'].invested
        assert snapshot.breakdown['loan'].xirr is None
        stored = db.get_net_worth_snapshot(1, "2024-05")
        assert stored.net_worth_paise == snapshot.net_worth_paise

    def test_loan_and_expense_rows_report_no_gain(self, home_loan, make_investment, rates):
        expense = make_investment(InvestmentType.EXPENSE, ExpenseDetail(
            amount_paise=300000, start_date=date(2024, 1, 1), expense_date=date(2099, 1, 1),
        ))
        calculate_monthly_snapshots("2024-05", owner_id=1, rates=rates)
        rows = {s.investment_id: s for s in db.get_monthly_snapshots(year_month="2024-05")}
        assert rows[expense.id].current_value_paise == 300000
        assert rows[expense.id].gain_paise == 0
        assert rows[home_loan.id].gain_paise == 0


class TestHistoricalReconstruction:
    """Tests for generate_historical_snapshots()."""

    @pytest.mark.asyncio
    async def test_formula_values_at_month_start(self, fake_market, fixed_deposit, rates):
        months = await generate_historical_snapshots(1, months=["2023-06"], market=fake_market(), rates=rates)
        assert months == 1
        row = _monthly(fixed_deposit.id)["2023-06"]
        expected = calculate_fd_value(100000 * 100, 8.0, "quarterly", date(2023, 1, 1), date(2023, 6, 1))
        assert row.current_value_paise == expected
        assert row.invested_paise == 100000 * 100
        assert row.gain_paise == expected - 100000 * 100

    @pytest.mark.asyncio
    async def test_rerun_replaces_rows(self, fake_market, fixed_deposit, rates):
        for _ in range(2):
            await generate_historical_snapshots(1, months=["2023-06", "2024-01"], market=fake_market(), rates=rates)
        assert len(db.get_monthly_snapshots(investment_id=fixed_deposit.id)) == 2
        assert len(db.get_net_worth_snapshots(1)) == 2

    @pytest.mark.asyncio
    async def test_not_started_investments_excluded(self, fake_market, fixed_deposit, make_investment, rates):
        later = make_investment(InvestmentType.FD, FDDetail(
            principal_paise=50000 * 100, interest_rate=7.0,
            start_date=date(2024, 3, 1), maturity_date=date(2027, 3, 1),
        ))
        await generate_historical_snapshots(1, months=["2024-01", "2024-04"], market=fake_market(), rates=rates)

        assert "2024-01" not in _monthly(later.id)
        assert "2024-04" in _monthly(later.id)
        january = db.get_net_worth_snapshot(1, "2024-01")
        assert january.breakdown['fd'].count == 1

    @pytest.mark.asyncio
    async def test_inactive_investments_included(self, fake_market, fixed_deposit, rates):
        db.deactivate_investment(fixed_deposit.id)
        await generate_historical_snapshots(1, months=["2024-01"], market=fake_market(), rates=rates)
        assert "2024-01" in _monthly(fixed_deposit.id)

    @pytest.mark.asyncio
    async def test_totals_and_progress(self, fake_market, fixed_deposit, home_loan, rates):
        progress = []
        await generate_historical_snapshots(
            1, months=["2024-03", "2024-06"], market=fake_market(), rates=rates,
            on_progress=lambda done, total: progress.append((done, total)),
        )
        assert progress == [(1, 2), (2, 2)]
        snapshot = db.get_net_worth_snapshot(1, "2024-06")
        assert snapshot.total_debt_paise == _monthly(home_loan.id)["2024-06"].current_value_paise
        assert snapshot.total_value_paise == _monthly(fixed_deposit.id)["2024-06"].current_value_paise
        assert snapshot.net_worth_paise == snapshot.total_value_paise - snapshot.total_debt_paise
        assert snapshot.breakdown['fd'].xirr is not None

    @pytest.mark.asyncio
    async def test_goal_progress_from_rows(self, fake_market, fixed_deposit, rates):
        goal_id = db.create_goal(1, "House", 1000000 * 100, date(2030, 1, 1))
        db.link_investment_to_goal(goal_id, fixed_deposit.id, 40)
        await generate_historical_snapshots(1, months=["2024-01"], market=fake_market(), rates=rates)

        value = _monthly(fixed_deposit.id)["2024-01"].current_value_paise
        goals = db.get_net_worth_snapshot(1, "2024-01").goals
        assert goals[str(goal_id)]['current_value_paise'] == round(value * 0.4)

    @pytest.mark.asyncio
    async def test_failing_investment_is_skipped(self, fake_market, fixed_deposit, equity_fund, make_txn, rates, caplog):
        make_txn(equity_fund, TransactionType.BUY, date(2022, 1, 1), 100000, units=10, price_per_unit_paise=10000)
        market = fake_market(fail=True)

        months = await generate_historical_snapshots(1, months=["2024-01"], market=market, rates=rates)

        assert months == 1
        assert "2024-01" in _monthly(fixed_deposit.id)
        assert "2024-01" not in _monthly(equity_fund.id)
        assert "Historical valuation failed" in caplog.text

    @pytest.mark.asyncio
    async def test_yields_between_investments(self, fake_market, fixed_deposit, home_loan, gold_coins, rates):
        """Another coroutine keeps running while a month is reconstructed."""
        ticks = 0
        done = False

        async def ticker():
            nonlocal ticks
            while not done:
                ticks += 1
                await asyncio.sleep(0)

        ticks_at_progress = []
        other = asyncio.ensure_future(ticker())
        await generate_historical_snapshots(
            1, months=["2024-06"], market=fake_market(), rates=rates,
            on_progress=lambda finished, total: ticks_at_progress.append(ticks),
        )
        done = True
        await other

        # Three investments and three classes each give up the loop once
        assert ticks_at_progress[0] >= 5

    @pytest.mark.asyncio
    async def test_failed_rerun_drops_stale_row(self, fake_market, fixed_deposit, rates, monkeypatch):
        goal_id = db.create_goal(1, "House", 1000000 * 100, date(2030, 1, 1))
        db.link_investment_to_goal(goal_id, fixed_deposit.id, 100)
        await generate_historical_snapshots(1, months=["2024-01"], market=fake_market(), rates=rates)
        assert "2024-01" in _monthly(fixed_deposit.id)

        async def broken(*args, **kwargs):
            raise RuntimeError("valuation exploded")

        monkeypatch.setattr(snapshots, "calculate_historical_value", broken)
        await generate_historical_snapshots(1, months=["2024-01"], market=fake_market(), rates=rates)

        snapshot = db.get_net_worth_snapshot(1, "2024-01")
        assert snapshot.total_value_paise == 0
        assert snapshot.goals[str(goal_id)]["current_value_paise"] == 0
        assert "2024-01" not in _monthly(fixed_deposit.id)

    @pytest.mark.asyncio
    async def test_loan_rows_report_no_gain(self, fake_market, home_loan, rates):
        await generate_historical_snapshots(1, months=["2024-06"], market=fake_market(), rates=rates)
        row = _monthly(home_loan.id)["2024-06"]
        assert row.current_value_paise > 0
        assert row.gain_paise == 0

    @pytest.mark.asyncio
    async def test_type_history(self, fake_market, fixed_deposit, rates):
        await generate_historical_snapshots(1, months=["2023-06", "2024-01"], market=fake_market(), rates=rates)
        history = get_type_history(1, InvestmentType.FD)
        assert [h['month'] for h in history] == ["2023-06", "2024-01"]
        assert history[0]['value'] < history[1]['value']


class TestPriceFallback:
    """Three-tier market price resolution."""

    @pytest.mark.asyncio
    async def test_backfill_once_then_nearest_earlier(self, fake_market, equity_fund, make_txn, rates):
        make_txn(equity_fund, TransactionType.BUY, date(2022, 1, 1), 100000, units=10, price_per_unit_paise=10000)
        market = fake_market({"120503": [(date(2021, 12, 1), 9000), (date(2022, 6, 1), 11000)]})

        await generate_historical_snapshots(1, months=["2022-03", "2022-07"], market=market, rates=rates)

        rows = _monthly(equity_fund.id)
        assert rows["2022-03"].current_value_paise == 10 * 9000
        assert rows["2022-07"].current_value_paise == 10 * 11000
        assert market.calls == [("120503", "mfapi")]

    @pytest.mark.asyncio
    async def test_earliest_price_when_history_starts_later(self, fake_market, equity_fund, make_txn, rates):
        make_txn(equity_fund, TransactionType.BUY, date(2022, 1, 1), 100000, units=10, price_per_unit_paise=10000)
        db.cache_price("120503", "mfapi", date(2023, 1, 1), 15000)
        market = fake_market()

        await generate_historical_snapshots(1, months=["2022-06"], market=market, rates=rates)

        assert _monthly(equity_fund.id)["2022-06"].current_value_paise == 10 * 15000
        assert market.calls == []

    @pytest.mark.asyncio
    async def test_no_price_anywhere_values_zero(self, fake_market, equity_fund, make_txn, rates):
        make_txn(equity_fund, TransactionType.BUY, date(2022, 1, 1), 100000, units=10, price_per_unit_paise=10000)
        resolver = PriceResolver(fake_market(), rates)
        assert await resolver.market_price("120503", ("mfapi",), date(2022, 6, 1)) is None
        # Second miss does not fetch again
        assert await resolver.market_price("120503", ("mfapi",), date(2022, 7, 1)) is None
        assert resolver.market.calls == [("120503", "mfapi")]


class TestGoldHistory:
    """Gold values from cache, back-extrapolation and purchase price."""

    @pytest.mark.asyncio
    async def test_cached_gold_price(self, fake_market, gold_coins, rates):
        db.cache_gold_price(date(2023, 12, 15), 6000 * 100)
        await generate_historical_snapshots(1, months=["2024-01"], market=fake_market(), rates=rates)
        assert _monthly(gold_coins.id)["2024-01"].current_value_paise == round(10 * 6000 * 100 * 22 / 24)

    @pytest.mark.asyncio
    async def test_back_extrapolated_from_latest(self, fake_market, gold_coins, rates):
        db.cache_gold_price(date(2025, 1, 1), 8000 * 100)
        await generate_historical_snapshots(1, months=["2024-01"], market=fake_market(), rates=rates)

        price = back_extrapolate_price(8000 * 100, date(2025, 1, 1), date(2024, 1, 1), 8.0)
        assert price < 8000 * 100
        assert _monthly(gold_coins.id)["2024-01"].current_value_paise == round(10 * price * 22 / 24)

    @pytest.mark.asyncio
    async def test_purchase_price_grown_without_prices(self, fake_market, gold_coins):
        rates = RateSettings().with_rate(InvestmentType.GOLD, 10.0)
        await generate_historical_snapshots(1, months=["2024-01"], market=fake_market(), rates=rates)

        per_gram = calculate_asset_value(5000 * 100, 10.0, date(2020, 1, 1), date(2024, 1, 1))
        assert _monthly(gold_coins.id)["2024-01"].current_value_paise == round(10 * per_gram)
