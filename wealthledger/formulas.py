"""
Closed-form valuation formulas for deposits, loans, pensions, gold and physical assets.

Every function takes an explicit evaluation date (`as_of`, default today) and
works in integer paise, rounding once at the end. Rates are annual
percentages. Evaluating at the maturity date gives the maturity value; pass
`effective_date(as_of, maturity)` to freeze a matured instrument.
"""

import math
from datetime import date
from typing import Optional

from wealthledger.dates import iter_months, today, years_between
from wealthledger.models import CompoundingFrequency, GoldPurity

__all__ = [
    "effective_date",
    "safe_rate",
    "clamp_paise",
    "calculate_fd_value",
    "calculate_fd_maturity_value",
    "calculate_rd_value",
    "count_installments",
    "calculate_loan_outstanding",
    "calculate_asset_value",
    "calculate_gold_value",
    "calculate_pension_value",
    "back_extrapolate_price",
    "future_value_annuity",
    "required_contribution",
]


def effective_date(as_of: date, maturity: Optional[date]) -> date:
    """Clamp the evaluation date to maturity once the instrument has matured."""
    if maturity is not None and maturity < as_of:
        return maturity
    return as_of


def safe_rate(value, default: float) -> float:
    """
    Parse an annual rate, falling back to `default` when it is not a number.

    Non-numeric text, None, NaN and infinities yield the default; a default
    that is itself unusable becomes 0. Zero and negative rates are kept
    (depreciating assets carry negative rates).
    """
    try:
        rate = float(value)
    except (TypeError, ValueError):
        rate = None
    if rate is None or not math.isfinite(rate):
        try:
            fallback = float(default)
        except (TypeError, ValueError):
            return 0.0
        return fallback if math.isfinite(fallback) else 0.0
    return rate


def clamp_paise(value) -> int:
    """max(0, round(value)); anything non-numeric or non-finite becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(0, round(number))


# FD: A = P * (1 + r/n)^(n*t)
def calculate_fd_value(principal_paise: int, interest_rate: float, compounding,
                       start_date: date, as_of: Optional[date] = None) -> int:
    n = CompoundingFrequency.parse(compounding).periods_per_year
    r = (interest_rate or 0) / 100
    t = years_between(start_date, as_of or today())
    if t <= 0:
        return principal_paise
    return round(principal_paise * (1 + r / n) ** (n * t))


def calculate_fd_maturity_value(principal_paise: int, interest_rate: float, compounding,
                                start_date: date, maturity_date: date) -> int:
    return calculate_fd_value(principal_paise, interest_rate, compounding, start_date, maturity_date)


def calculate_rd_value(monthly_installment_paise: int, interest_rate: float, compounding,
                       start_date: date, as_of: Optional[date] = None) -> int:
    """
    Sum of each installment compounded from its own payment date to as_of.

    Installments fall on the same day-of-month as start_date and are counted
    by calendar month stepping, which avoids the years*12 undercount.
    """
    end = as_of or today()
    if end < start_date:
        return 0
    n = CompoundingFrequency.parse(compounding).periods_per_year
    r = (interest_rate or 0) / 100

    total = 0.0
    for paid_on in iter_months(start_date, end):
        t = years_between(paid_on, end)
        total += monthly_installment_paise * (1 + r / n) ** (n * t)
    return round(total)


def count_installments(start_date: date, end: date) -> int:
    """Installments paid from start_date up to and including end."""
    return sum(1 for _ in iter_months(start_date, end))


def calculate_loan_outstanding(principal_paise: int, interest_rate: float, emi_paise: int,
                               start_date: date, as_of: Optional[date] = None) -> int:
    """Reducing-balance amortisation simulated one month at a time."""
    months_passed = max(0, math.floor(years_between(start_date, as_of or today()) * 12))
    monthly_rate = (interest_rate or 0) / 100 / 12

    balance = principal_paise
    for _ in range(months_passed):
        if balance <= 0:
            break
        interest = round(balance * monthly_rate)
        balance -= emi_paise - interest
    return max(0, round(balance))


def calculate_asset_value(purchase_price_paise: int, appreciation_rate: float,
                          purchase_date: date, as_of: Optional[date] = None) -> int:
    years = years_between(purchase_date, as_of or today())
    if years <= 0:
        return purchase_price_paise
    return round(purchase_price_paise * (1 + (appreciation_rate or 0) / 100) ** years)


def calculate_gold_value(weight_grams: float, purity, price_per_gram_paise: int) -> int:
    """Value of gold at a 24K per-gram price, scaled by purity."""
    return round((weight_grams or 0) * price_per_gram_paise * GoldPurity.parse(purity).factor)


def calculate_pension_value(total_deposits_paise: int, interest_rate: float,
                            start_date: date, as_of: Optional[date] = None) -> int:
    """Total deposits treated as one lump sum compounded yearly from the first contribution."""
    years = years_between(start_date, as_of or today())
    if years <= 0:
        return total_deposits_paise
    return round(total_deposits_paise * (1 + (interest_rate or 0) / 100) ** years)


def back_extrapolate_price(latest_price_paise: int, latest_date: date, target: date,
                           annual_rate: float) -> int:
    """Discount a known price back to an earlier date at an annual appreciation rate."""
    years_back = years_between(target, latest_date)
    growth = 1 + (annual_rate or 0) / 100
    if years_back <= 0 or growth <= 0:
        return latest_price_paise
    return round(latest_price_paise / growth ** years_back)


def future_value_annuity(payment_paise: float, monthly_rate: float, months: int) -> float:
    """Future value of an ordinary annuity of `months` equal payments."""
    if months <= 0:
        return 0.0
    if monthly_rate > 0:
        return payment_paise * (((1 + monthly_rate) ** months - 1) / monthly_rate)
    return payment_paise * months


def required_contribution(start_value: float, target: float, monthly_rate: float, months: int) -> float:
    """
    Monthly contribution C that grows start_value to target in `months`.

    C = (target - start*(1+r)^n) / (((1+r)^n - 1) / r), never negative.
    """
    if months <= 0:
        return 0.0
    if monthly_rate > 0:
        growth = (1 + monthly_rate) ** months
        annuity_factor = (growth - 1) / monthly_rate
        return max(0.0, (target - start_value * growth) / annuity_factor)
    return max(0.0, (target - start_value) / months)
