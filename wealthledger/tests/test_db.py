"""Tests for the persistence layer helpers."""

from datetime import date

from wealthledger import db
from wealthledger.models import FDDetail, MonthlySnapshot, TransactionType
from wealthledger.valuation import get_current_value


class TestMarketPrices:
    """Cached price lookups."""

    def test_same_date_prefers_first_listed_source(self):
        db.cache_price("INFY", "manual", date(2024, 1, 1), 150000)
        db.cache_price("INFY", "yahoo", date(2024, 1, 1), 151000)

        assert db.get_latest_price("INFY", ("yahoo", "manual")) == (date(2024, 1, 1), 151000)
        assert db.get_latest_price("INFY", ("manual", "yahoo")) == (date(2024, 1, 1), 150000)
        assert db.get_price_on_or_before("INFY", ("yahoo", "manual"), date(2024, 6, 1))[1] == 151000
        assert db.get_earliest_price("INFY", ("manual", "yahoo"))[1] == 150000

    def test_price_history_oldest_first(self):
        db.cache_price_history("120503", "mfapi", [(date(2024, 2, 1), 120), (date(2024, 1, 1), 110)])
        db.cache_price("120503", "other", date(2023, 1, 1), 90)

        assert db.get_price_history("120503", "mfapi") == [(date(2024, 1, 1), 110), (date(2024, 2, 1), 120)]
        assert len(db.get_price_history("120503")) == 3


class TestInvestments:
    """Detail updates, overrides and deletion."""

    def test_detail_update_changes_value(self, fixed_deposit, rates):
        before = get_current_value(fixed_deposit, rates, as_of=date(2024, 1, 1))
        assert db.update_investment_detail(fixed_deposit.id, FDDetail(
            principal_paise=200000 * 100, interest_rate=8.0,
            start_date=date(2023, 1, 1), maturity_date=date(2028, 1, 1),
        ))

        after = get_current_value(db.get_investment(fixed_deposit.id), rates, as_of=date(2024, 1, 1))
        assert after > before
        assert not db.update_investment_detail(9999, FDDetail())

    def test_overrides_listed_in_date_order(self, fixed_deposit):
        db.create_override(fixed_deposit.id, date(2024, 3, 1), 700, reason="statement")
        db.create_override(fixed_deposit.id, date(2024, 1, 1), 500)

        overrides = db.get_overrides(fixed_deposit.id)

        assert [(o.override_date, o.value_paise) for o in overrides] == [
            (date(2024, 1, 1), 500), (date(2024, 3, 1), 700),
        ]
        assert overrides[1].reason == "statement"

    def test_delete_cascades(self, equity_fund, make_txn):
        make_txn(equity_fund, TransactionType.BUY, date(2023, 1, 1), 100000, units=10, price_per_unit_paise=10000)
        db.save_monthly_snapshot(MonthlySnapshot(equity_fund.id, "2024-01", 100000, 110000, 10000))

        assert db.delete_investment(equity_fund.id)

        assert db.get_investment(equity_fund.id) is None
        assert db.get_lots(equity_fund.id) == []
        assert db.get_monthly_snapshots(investment_id=equity_fund.id) == []
        assert not db.delete_investment(equity_fund.id)


class TestGoalsAndRules:
    """Goal edits and recurring rule lifecycle."""

    def test_update_goal(self):
        goal_id = db.create_goal(1, "House", 100, date(2030, 1, 1))

        assert db.update_goal(goal_id, name="Bigger house", target_amount_paise=500, is_active=False)
        assert not db.update_goal(goal_id)

        goal = db.get_goal_by_id(goal_id)
        assert (goal.name, goal.target_amount_paise, goal.is_active) == ("Bigger house", 500, False)
        assert goal.target_date == date(2030, 1, 1)

    def test_delete_goal_frees_investment(self, fixed_deposit):
        goal_id = db.create_goal(1, "House", 100, date(2030, 1, 1))
        db.link_investment_to_goal(goal_id, fixed_deposit.id, 50)

        assert db.delete_goal(goal_id)

        assert db.get_goal_by_id(goal_id) is None
        assert db.get_linked_goal_id(fixed_deposit.id) is None

    def test_deactivated_rule_hidden(self, fixed_deposit):
        rule_id = db.create_recurring_rule(fixed_deposit.id, 1000, "monthly", date(2024, 1, 1))
        assert [r.id for r in db.get_recurring_rules(fixed_deposit.id)] == [rule_id]

        assert db.deactivate_recurring_rule(rule_id)

        assert db.get_recurring_rules(fixed_deposit.id) == []
        assert not db.get_recurring_rules(fixed_deposit.id, active_only=False)[0].is_active

    def test_config_roundtrip(self):
        assert db.get_config("theme", "light") == "light"
        db.set_config("theme", "dark")
        db.set_config("theme", "sepia")
        assert db.get_config("theme") == "sepia"
