"""
Capital gains classification for an Indian financial year.

Each FIFO sell allocation is one gain line: its holding period decides short
or long term, and its asset class decides the equity or debt rate table.
"""

import logging
from datetime import date
from typing import Optional

from wealthledger.dates import current_fy_dates, days_between, fy_label
from wealthledger.db.transactions import get_sell_allocations_between
from wealthledger.models import CapitalGain, InvestmentType, TaxSummary

logger = logging.getLogger(__name__)

__all__ = [
    "calculate_capital_gains",
    "classify_gain",
    "is_equity_type",
    "current_fy_dates",
    "fy_label",
]

EQUITY_TYPES = (InvestmentType.MF_EQUITY, InvestmentType.SHARES)

EQUITY_LTCG_THRESHOLD_DAYS = 365
DEBT_LTCG_THRESHOLD_DAYS = 365 * 3

EQUITY_STCG_RATE = 0.20
EQUITY_LTCG_RATE = 0.125
DEBT_STCG_RATE = 0.30  # slab rate approximation
DEBT_LTCG_RATE = 0.20

EQUITY_LTCG_EXEMPTION_PAISE = 125000 * 100


def is_equity_type(investment_type: InvestmentType) -> bool:
    return investment_type in EQUITY_TYPES


def classify_gain(investment_type: InvestmentType, holding_days: int):
    """Return (is_ltcg, rate) for a gain held `holding_days` days."""
    if is_equity_type(investment_type):
        is_ltcg = holding_days > EQUITY_LTCG_THRESHOLD_DAYS
        return is_ltcg, EQUITY_LTCG_RATE if is_ltcg else EQUITY_STCG_RATE
    is_ltcg = holding_days > DEBT_LTCG_THRESHOLD_DAYS
    return is_ltcg, DEBT_LTCG_RATE if is_ltcg else DEBT_STCG_RATE


def _sell_price(allocation: dict) -> int:
    price = allocation.get('sell_price_paise')
    if price is not None:
        return price
    units = allocation.get('sell_units') or 0
    if units > 0:
        return round((allocation.get('sell_amount_paise') or 0) / units)
    return 0


def calculate_capital_gains(fy_start: date, fy_end: date, owner_id: Optional[int] = None) -> TaxSummary:
    """
    Capital gains for sells dated within [fy_start, fy_end].

    Per-line tax is charged on positive gains only. Bucket totals keep losses
    so they offset gains of the same bucket. The equity LTCG exemption is
    capped at the (non-negative) equity LTCG.
    """
    summary = TaxSummary(fy=fy_label(fy_start, fy_end))

    for alloc in get_sell_allocations_between(fy_start, fy_end, owner_id=owner_id):
        investment_type = InvestmentType(alloc['investment_type'])
        units = alloc['units_sold']
        holding_days = days_between(alloc['buy_date'], alloc['sell_date'])
        cost_basis = round(units * alloc['cost_per_unit_paise'])
        sell_amount = round(units * _sell_price(alloc))
        gain = sell_amount - cost_basis

        is_ltcg, rate = classify_gain(investment_type, holding_days)
        summary.gains.append(CapitalGain(
            investment_id=alloc['investment_id'],
            investment_name=alloc['investment_name'],
            investment_type=investment_type,
            sell_date=alloc['sell_date'],
            buy_date=alloc['buy_date'],
            units_sold=units,
            sell_amount_paise=sell_amount,
            cost_basis_paise=cost_basis,
            gain_paise=gain,
            holding_period_days=holding_days,
            is_ltcg=is_ltcg,
            tax_rate=rate * 100,
            tax_paise=round(max(0, gain) * rate),
        ))

        if is_equity_type(investment_type):
            if is_ltcg:
                summary.equity_ltcg_paise += gain
            else:
                summary.equity_stcg_paise += gain
        elif is_ltcg:
            summary.debt_ltcg_paise += gain
        else:
            summary.debt_stcg_paise += gain

    exemption = min(max(0, summary.equity_ltcg_paise), EQUITY_LTCG_EXEMPTION_PAISE)
    summary.equity_ltcg_exemption_paise = exemption
    summary.total_tax_paise = round(
        max(0, summary.equity_stcg_paise) * EQUITY_STCG_RATE
        + max(0, summary.equity_ltcg_paise - exemption) * EQUITY_LTCG_RATE
        + max(0, summary.debt_stcg_paise) * DEBT_STCG_RATE
        + max(0, summary.debt_ltcg_paise) * DEBT_LTCG_RATE
    )

    logger.info(
        f"Capital gains {summary.fy}: {len(summary.gains)} lines, "
        f"total tax {summary.total_tax_paise / 100:.2f}"
    )
    return summary
