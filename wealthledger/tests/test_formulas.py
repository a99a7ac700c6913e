"""Tests for the closed-form valuation formulas."""

from datetime import date

import pytest

from wealthledger.formulas import (
    back_extrapolate_price,
    calculate_asset_value,
    calculate_fd_maturity_value,
    calculate_fd_value,
    calculate_gold_value,
    calculate_loan_outstanding,
    calculate_pension_value,
    calculate_rd_value,
    clamp_paise,
    count_installments,
    effective_date,
    future_value_annuity,
    required_contribution,
    safe_rate,
)
from wealthledger.models import GoldPurity

LAKH = 100000 * 100


class TestFixedDeposit:
    """Tests for calculate_fd_value()."""

    def test_one_year_quarterly(self):
        """1,00,000 at 8% compounded quarterly for a year is about 1,08,243."""
        value = calculate_fd_value(LAKH, 8.0, "quarterly", date(2023, 1, 1), date(2024, 1, 1))
        assert value == pytest.approx(108243 * 100, rel=1e-3)

    def test_value_at_start_is_principal(self):
        start = date(2024, 6, 1)
        assert calculate_fd_value(LAKH, 8.0, "quarterly", start, start) == LAKH

    def test_value_before_start_is_principal(self):
        assert calculate_fd_value(LAKH, 8.0, "quarterly", date(2024, 6, 1), date(2024, 1, 1)) == LAKH

    def test_unknown_compounding_is_quarterly(self):
        start, end = date(2023, 1, 1), date(2025, 1, 1)
        assert (calculate_fd_value(LAKH, 7.5, "fortnightly", start, end)
                == calculate_fd_value(LAKH, 7.5, "quarterly", start, end))

    def test_monthly_beats_yearly(self):
        start, end = date(2020, 1, 1), date(2025, 1, 1)
        monthly = calculate_fd_value(LAKH, 7.0, "monthly", start, end)
        yearly = calculate_fd_value(LAKH, 7.0, "yearly", start, end)
        assert monthly > yearly > LAKH

    def test_effective_date_freezes_after_maturity(self):
        maturity = date(2024, 1, 1)
        assert effective_date(date(2025, 6, 1), maturity) == maturity
        assert effective_date(date(2023, 6, 1), maturity) == date(2023, 6, 1)
        assert effective_date(date(2023, 6, 1), None) == date(2023, 6, 1)

    @pytest.mark.parametrize("compounding", ["monthly", "quarterly", "half_yearly", "yearly"])
    def test_value_at_maturity_equals_maturity_value(self, compounding):
        start, maturity = date(2021, 3, 15), date(2026, 3, 15)
        assert (calculate_fd_value(LAKH, 7.25, compounding, start, maturity)
                == calculate_fd_maturity_value(LAKH, 7.25, compounding, start, maturity))

    def test_value_after_maturity_is_frozen(self):
        start, maturity = date(2021, 3, 15), date(2026, 3, 15)
        late = calculate_fd_value(LAKH, 7.25, "quarterly", start, effective_date(date(2027, 9, 1), maturity))
        assert late == calculate_fd_maturity_value(LAKH, 7.25, "quarterly", start, maturity)


class TestRecurringDeposit:
    """Tests for calculate_rd_value()."""

    def test_zero_rate_sums_installments(self):
        """Twelve monthly installments with no interest add up exactly."""
        value = calculate_rd_value(1000 * 100, 0.0, "quarterly", date(2024, 1, 15), date(2024, 12, 15))
        assert value == 12 * 1000 * 100

    def test_interest_accrues(self):
        value = calculate_rd_value(1000 * 100, 7.0, "quarterly", date(2023, 1, 1), date(2024, 1, 1))
        assert value > 13 * 1000 * 100

    def test_before_start_is_zero(self):
        assert calculate_rd_value(1000 * 100, 7.0, "quarterly", date(2024, 1, 1), date(2023, 12, 1)) == 0

    def test_installments_stay_on_day_of_month(self):
        """A 31st start still counts one installment per calendar month."""
        assert count_installments(date(2024, 1, 31), date(2024, 12, 31)) == 12
        assert count_installments(date(2024, 1, 31), date(2024, 2, 28)) == 1
        assert count_installments(date(2024, 1, 31), date(2024, 2, 29)) == 2


class TestLoan:
    """Tests for calculate_loan_outstanding()."""

    def test_no_months_elapsed(self):
        assert calculate_loan_outstanding(50000 * 100, 9.0, 5000 * 100, date(2024, 1, 1), date(2024, 1, 20)) == 50000 * 100

    def test_one_emi(self):
        """Balance falls by the EMI less one month's interest."""
        balance = calculate_loan_outstanding(50000 * 100, 9.0, 5000 * 100, date(2024, 1, 1), date(2024, 2, 1))
        assert balance == 50000 * 100 - (5000 * 100 - 37500)

    def test_never_negative(self):
        balance = calculate_loan_outstanding(10000 * 100, 9.0, 5000 * 100, date(2020, 1, 1), date(2024, 1, 1))
        assert balance == 0


class TestGoldAndAssets:
    """Tests for gold, fixed asset and pension formulas."""

    def test_gold_22k(self):
        """10 g at 22K is 10 x P x 22/24."""
        price = 7000 * 100
        assert calculate_gold_value(10, GoldPurity.K22, price) == round(10 * price * 22 / 24)

    def test_gold_24k_and_unknown_purity(self):
        price = 7000 * 100
        assert calculate_gold_value(1, "24K", price) == price
        assert calculate_gold_value(1, "14K", price) == round(price * 18 / 24)

    def test_asset_appreciation(self):
        value = calculate_asset_value(LAKH, 10.0, date(2020, 1, 1), date(2022, 1, 1))
        assert value == pytest.approx(LAKH * 1.21, rel=1e-3)

    def test_asset_depreciation(self):
        value = calculate_asset_value(LAKH, -10.0, date(2020, 1, 1), date(2021, 1, 1))
        assert value == pytest.approx(LAKH * 0.9, rel=1e-3)

    def test_pension_before_start(self):
        assert calculate_pension_value(LAKH, 8.0, date(2025, 1, 1), date(2024, 1, 1)) == LAKH


class TestPriceExtrapolation:
    """Tests for back_extrapolate_price()."""

    def test_one_year_back(self):
        price = back_extrapolate_price(10800, date(2025, 1, 1), date(2024, 1, 1), 8.0)
        assert price == pytest.approx(10000, rel=1e-2)

    def test_target_after_latest_returns_latest(self):
        assert back_extrapolate_price(10800, date(2024, 1, 1), date(2025, 1, 1), 8.0) == 10800

    def test_zero_rate_is_flat(self):
        assert back_extrapolate_price(10800, date(2025, 1, 1), date(2020, 1, 1), 0.0) == 10800


class TestSafeRate:
    """Tests for safe_rate() and clamp_paise()."""

    @pytest.mark.parametrize("value,expected", [
        ("7.5", 7.5),
        (0, 0.0),
        (-5, -5.0),
        (None, 8.0),
        ("abc", 8.0),
        (float("nan"), 8.0),
        (float("inf"), 8.0),
    ])
    def test_safe_rate(self, value, expected):
        assert safe_rate(value, 8.0) == expected

    def test_unusable_default_becomes_zero(self):
        assert safe_rate(None, float("nan")) == 0.0
        assert safe_rate("x", None) == 0.0

    @pytest.mark.parametrize("value,expected", [
        (1234.6, 1235),
        (-50, 0),
        (float("nan"), 0),
        (float("inf"), 0),
        (None, 0),
    ])
    def test_clamp_paise(self, value, expected):
        assert clamp_paise(value) == expected


class TestAnnuity:
    """Tests for future_value_annuity() and required_contribution()."""

    def test_zero_rate_annuity(self):
        assert future_value_annuity(1000, 0.0, 12) == 12000

    def test_no_months(self):
        assert future_value_annuity(1000, 0.01, 0) == 0.0
        assert required_contribution(0, 1000, 0.01, 0) == 0.0

    def test_required_contribution_reaches_target(self):
        rate, months = 0.01, 60
        c = required_contribution(100000, 1000000, rate, months)
        reached = 100000 * (1 + rate) ** months + future_value_annuity(c, rate, months)
        assert reached == pytest.approx(1000000, rel=1e-9)

    def test_required_contribution_never_negative(self):
        assert required_contribution(2000000, 1000000, 0.01, 12) == 0.0
