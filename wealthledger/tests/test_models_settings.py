"""Tests for model helpers and per-class rate settings."""

from datetime import date, datetime

import pytest

from wealthledger.exceptions import ConfigurationError, UnknownInvestmentTypeError
from wealthledger.models import (
    CompoundingFrequency,
    FDDetail,
    GoalInvestment,
    GoldDetail,
    GoldPurity,
    InvestmentType,
    RecurringRule,
    detail_from_row,
    detail_to_row,
    parse_date,
)
from wealthledger.settings import FALLBACK_RATE, RateSettings, load_rate_settings, save_rate


class TestParsing:
    """Tolerant parsing of stored text."""

    @pytest.mark.parametrize("text,expected", [
        ("monthly", CompoundingFrequency.MONTHLY),
        (" Half_Yearly ", CompoundingFrequency.HALF_YEARLY),
        ("fortnightly", CompoundingFrequency.QUARTERLY),
        (None, CompoundingFrequency.QUARTERLY),
    ])
    def test_compounding(self, text, expected):
        assert CompoundingFrequency.parse(text) is expected

    @pytest.mark.parametrize("text,expected", [
        ("24k", GoldPurity.K24),
        ("22K", GoldPurity.K22),
        ("14K", GoldPurity.K18),
        ("", GoldPurity.K18),
    ])
    def test_purity(self, text, expected):
        assert GoldPurity.parse(text) is expected

    @pytest.mark.parametrize("value,expected", [
        ("2024-01-15", date(2024, 1, 15)),
        ("2024-01-15 10:30:00", date(2024, 1, 15)),
        ("15-01-2024", date(2024, 1, 15)),
        ("15-Jan-2024", date(2024, 1, 15)),
        (datetime(2024, 1, 15, 9, 0), date(2024, 1, 15)),
        ("", None),
        ("not a date", None),
    ])
    def test_dates(self, value, expected):
        assert parse_date(value) == expected


class TestDetailRows:
    """Detail records to and from database columns."""

    def test_from_row_coerces_columns(self):
        detail = detail_from_row(InvestmentType.FD, {
            'principal_paise': 1000, 'interest_rate': 7.5, 'compounding': 'monthly',
            'start_date': '2024-01-01', 'is_closed_early': 0, 'investment_id': 9,
        })
        assert detail == FDDetail(principal_paise=1000, interest_rate=7.5,
                                  compounding=CompoundingFrequency.MONTHLY, start_date=date(2024, 1, 1),
                                  is_closed_early=False)

    def test_to_row_flattens_enums(self):
        row = detail_to_row(GoldDetail(weight_grams=5, purity=GoldPurity.K24))
        assert row['purity'] == "24K"

    def test_unknown_type(self):
        with pytest.raises(UnknownInvestmentTypeError):
            detail_from_row("crypto", {})


class TestAmounts:
    """Derived money amounts on goal links and recurring rules."""

    def test_allocated_value(self):
        link = GoalInvestment(goal_id=1, investment_id=2, allocation_percent=40,
                              investment_type=InvestmentType.FD)
        assert link.allocated_value(100000) == 40000

    def test_loan_allocated_negative(self):
        link = GoalInvestment(goal_id=1, investment_id=2, allocation_percent=50,
                              investment_type=InvestmentType.LOAN)
        assert link.allocated_value(100000) == -50000

    @pytest.mark.parametrize("frequency,expected", [
        ("daily", 3000),
        ("weekly", 433),
        ("monthly", 100),
        ("yearly", 8),
    ])
    def test_recurring_monthly_amount(self, frequency, expected):
        rule = RecurringRule(investment_id=1, amount_paise=100, frequency=frequency, start_date=date(2024, 1, 1))
        assert rule.monthly_amount_paise == expected


class TestRateSettings:
    """Class default rates stored in app_config."""

    def test_defaults(self, rates):
        assert rates.rate_for(InvestmentType.MF_EQUITY) == 12.0
        # Zero means unset and falls back
        assert rates.rate_for(InvestmentType.EXPENSE) == FALLBACK_RATE

    def test_with_rate_is_a_copy(self, rates):
        changed = rates.with_rate(InvestmentType.GOLD, 11.0)
        assert changed.rate_for(InvestmentType.GOLD) == 11.0
        assert rates.rate_for(InvestmentType.GOLD) == 8.0

    def test_saved_rate_loaded(self):
        assert save_rate(InvestmentType.PENSION, "9.5")
        assert load_rate_settings().rate_for(InvestmentType.PENSION) == 9.5
        assert load_rate_settings().to_dict()['rate_pension'] == 9.5

    @pytest.mark.parametrize("value", ["abc", None, float("nan"), float("inf")])
    def test_invalid_rate_rejected(self, value):
        with pytest.raises(ConfigurationError):
            save_rate(InvestmentType.FD, value)
        assert load_rate_settings() == RateSettings()
