"""
Valuation dispatcher: current value, invested amount, gain and XIRR per investment.

A recorded override always wins. Otherwise the value is dispatched on the
investment's asset class: closed-form formulas for deposits, loans, pensions
and physical assets; the latest cached market price for funds, shares and gold.
"""

import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from wealthledger import db
from wealthledger.dates import iter_months, today
from wealthledger.exceptions import InvestmentNotFoundError, UnknownInvestmentTypeError
from wealthledger.formulas import (
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
    safe_rate,
)
from wealthledger.models import Investment, InvestmentType
from wealthledger.settings import RateSettings, load_rate_settings
from wealthledger.xirr import (
    Cashflow,
    append_terminal_value,
    build_transaction_cashflows,
    xirr,
    xirr_percent,
)

logger = logging.getLogger(__name__)

__all__ = [
    "price_symbol",
    "formula_value",
    "get_current_value",
    "synthetic_invested_amount",
    "get_invested_amount",
    "build_synthetic_cashflows",
    "investment_cashflows",
    "enrich_investment",
    "get_enriched_investment",
    "get_enriched_investments",
    "is_open_deposit",
    "calculate_type_xirr",
    "get_dashboard_stats",
    "get_investment_breakdown",
]


def price_symbol(investment: Investment, historical: bool = False) -> Tuple[Optional[str], Tuple[str, ...]]:
    """
    (symbol, sources) used to look up market prices for a fund or share.

    Current fund values prefer the scheme code and fall back to the ISIN;
    history backfills are keyed by AMFI code. Other classes have no symbol.
    """
    detail = investment.detail
    if investment.investment_type.is_mutual_fund:
        symbol = detail.history_symbol if historical else detail.price_symbol
        return symbol, db.MF_SOURCES
    if investment.investment_type is InvestmentType.SHARES:
        return detail.ticker_symbol, db.SHARE_SOURCES
    return None, ()


# ==================== Formula-valued classes ====================

def _value_fd(investment: Investment, rates: RateSettings, as_of: date) -> int:
    d = investment.detail
    if d.start_date is None:
        return d.principal_paise or 0
    rate = safe_rate(d.interest_rate, rates.rate_for(InvestmentType.FD))
    return calculate_fd_value(d.principal_paise or 0, rate, d.compounding, d.start_date,
                              effective_date(as_of, d.maturity_date))


def _value_rd(investment: Investment, rates: RateSettings, as_of: date) -> int:
    d = investment.detail
    if d.start_date is None:
        return 0
    rate = safe_rate(d.interest_rate, rates.rate_for(InvestmentType.RD))
    return calculate_rd_value(d.monthly_installment_paise or 0, rate, d.compounding, d.start_date,
                              effective_date(as_of, d.maturity_date))


def _value_loan(investment: Investment, rates: RateSettings, as_of: date) -> int:
    d = investment.detail
    if d.start_date is None:
        return d.principal_paise or 0
    rate = safe_rate(d.interest_rate, rates.rate_for(InvestmentType.LOAN))
    return calculate_loan_outstanding(d.principal_paise or 0, rate, d.emi_paise or 0, d.start_date, as_of)


def _value_fixed_asset(investment: Investment, rates: RateSettings, as_of: date) -> int:
    d = investment.detail
    if d.purchase_date is None:
        return d.purchase_price_paise or 0
    rate = safe_rate(d.inflation_rate, rates.rate_for(InvestmentType.FIXED_ASSET))
    return calculate_asset_value(d.purchase_price_paise or 0, rate, d.purchase_date, as_of)


def _value_pension(investment: Investment, rates: RateSettings, as_of: date) -> int:
    deposits = db.get_total_invested_as_of(investment.id, as_of)
    if deposits <= 0:
        return 0
    first = db.get_first_transaction_date(investment.id) or investment.detail.start_date or as_of
    rate = safe_rate(investment.detail.interest_rate, rates.rate_for(InvestmentType.PENSION))
    return calculate_pension_value(deposits, rate, first, as_of)


def _value_savings_account(investment: Investment, rates: RateSettings, as_of: date) -> int:
    return db.get_total_invested_as_of(investment.id, as_of)


def _value_expense(investment: Investment, rates: RateSettings, as_of: date) -> int:
    d = investment.detail
    if d.start_date and d.expense_date and d.start_date <= as_of <= d.expense_date:
        return d.amount_paise or 0
    return 0


_FORMULA_HANDLERS: Dict[InvestmentType, Callable[[Investment, RateSettings, date], int]] = {
    InvestmentType.FD: _value_fd,
    InvestmentType.RD: _value_rd,
    InvestmentType.LOAN: _value_loan,
    InvestmentType.FIXED_ASSET: _value_fixed_asset,
    InvestmentType.PENSION: _value_pension,
    InvestmentType.SAVINGS_ACCOUNT: _value_savings_account,
    InvestmentType.EXPENSE: _value_expense,
}

# Classes valued from prices rather than formulas
_PRICED_TYPES = {
    InvestmentType.MF_EQUITY, InvestmentType.MF_HYBRID, InvestmentType.MF_DEBT,
    InvestmentType.SHARES, InvestmentType.GOLD,
}

_unhandled = set(InvestmentType) - set(_FORMULA_HANDLERS) - _PRICED_TYPES
if _unhandled:
    raise UnknownInvestmentTypeError(f"No valuation branch for: {sorted(t.value for t in _unhandled)}")


def formula_value(investment: Investment, rates: RateSettings, as_of: date) -> int:
    """Value of a formula-valued investment at as_of (matured deposits freeze)."""
    handler = _FORMULA_HANDLERS.get(investment.investment_type)
    if handler is None:
        raise UnknownInvestmentTypeError(
            f"No formula for investment type {investment.investment_type!r}"
        )
    return clamp_paise(handler(investment, rates, as_of))


def get_current_value(investment: Investment, rates: Optional[RateSettings] = None,
                      as_of: Optional[date] = None) -> int:
    """
    Current value in paise.

    The latest override dated on or before as_of wins. Funds and shares are
    units held times the latest cached price (0 without a price); gold is the
    latest 24K price scaled by purity.
    """
    as_of = as_of or today()
    rates = rates or load_rate_settings()

    override = db.get_latest_override(investment.id, on_or_before=as_of)
    if override:
        return clamp_paise(override.value_paise)

    inv_type = investment.investment_type
    if inv_type.is_market_linked:
        symbol, sources = price_symbol(investment)
        units = db.get_total_units(investment.id)
        latest = db.get_latest_price(symbol, sources)
        investment.total_units = units
        investment.latest_price_paise = latest[1] if latest else None
        return clamp_paise(units * latest[1]) if latest else 0

    if inv_type is InvestmentType.GOLD:
        latest = db.get_latest_gold_price()
        if not latest:
            return 0
        d = investment.detail
        return clamp_paise(calculate_gold_value(d.weight_grams, d.purity, latest[1]))

    return formula_value(investment, rates, as_of)


# ==================== Invested amount & cash flows ====================

def _started_by(start: Optional[date], as_of: date) -> bool:
    return start is None or start <= as_of


def synthetic_invested_amount(investment: Investment, as_of: Optional[date] = None) -> int:
    """Invested amount implied by the detail record when no transactions exist."""
    as_of = as_of or today()
    inv_type = investment.investment_type
    d = investment.detail

    if inv_type is InvestmentType.FD:
        return (d.principal_paise or 0) if _started_by(d.start_date, as_of) else 0
    if inv_type is InvestmentType.RD:
        if d.start_date is None:
            return 0
        end = effective_date(as_of, d.maturity_date)
        return (d.monthly_installment_paise or 0) * count_installments(d.start_date, end)
    if inv_type is InvestmentType.FIXED_ASSET:
        return (d.purchase_price_paise or 0) if _started_by(d.purchase_date, as_of) else 0
    if inv_type is InvestmentType.LOAN:
        return (d.principal_paise or 0) if _started_by(d.start_date, as_of) else 0
    if inv_type is InvestmentType.GOLD:
        return round((d.weight_grams or 0) * (d.purchase_price_per_gram_paise or 0))
    if inv_type is InvestmentType.EXPENSE:
        return d.amount_paise or 0
    return 0


def get_invested_amount(investment: Investment, as_of: Optional[date] = None) -> int:
    """
    Net money put in: inflow minus outflow transaction amounts.

    Falls back to the synthetic amount from the detail record when the net
    is zero.
    """
    if as_of is None:
        invested = db.get_total_invested(investment.id)
    else:
        invested = db.get_total_invested_as_of(investment.id, as_of)
    if invested == 0 and investment.detail is not None:
        invested = synthetic_invested_amount(investment, as_of)
    return invested


def build_synthetic_cashflows(investment: Investment, as_of: Optional[date] = None) -> List[Cashflow]:
    """Cash flows implied by the detail record, dated on or before as_of."""
    as_of = as_of or today()
    inv_type = investment.investment_type
    d = investment.detail
    cashflows: List[Cashflow] = []

    if inv_type is InvestmentType.FD:
        if d.principal_paise and d.start_date:
            cashflows.append((d.start_date, -d.principal_paise))
    elif inv_type is InvestmentType.RD:
        if d.monthly_installment_paise and d.start_date:
            end = effective_date(as_of, d.maturity_date)
            cashflows.extend((paid_on, -d.monthly_installment_paise)
                             for paid_on in iter_months(d.start_date, end))
    elif inv_type is InvestmentType.FIXED_ASSET:
        if d.purchase_price_paise and d.purchase_date:
            cashflows.append((d.purchase_date, -d.purchase_price_paise))
    elif inv_type is InvestmentType.GOLD:
        if d.weight_grams and d.purchase_price_per_gram_paise:
            purchased = d.purchase_date or (investment.created_at.date() if investment.created_at else as_of)
            cashflows.append((purchased, -round(d.weight_grams * d.purchase_price_per_gram_paise)))

    return [cf for cf in cashflows if cf[0] <= as_of]


def investment_cashflows(investment: Investment, as_of: Optional[date] = None) -> List[Cashflow]:
    """Real transaction cash flows if any exist, otherwise synthetic ones."""
    transactions = db.get_transactions(investment.id, as_of=as_of)
    if transactions:
        return build_transaction_cashflows(transactions)
    return build_synthetic_cashflows(investment, as_of)


# ==================== Enrichment ====================

def enrich_investment(investment: Investment, rates: Optional[RateSettings] = None,
                      as_of: Optional[date] = None) -> Investment:
    """Fill current value, invested amount, gain, gain % and XIRR on the investment."""
    as_of = as_of or today()
    rates = rates or load_rate_settings()
    inv_type = investment.investment_type

    current_value = get_current_value(investment, rates, as_of)
    invested = get_invested_amount(investment)

    investment.current_value_paise = current_value
    investment.invested_amount_paise = invested

    d = investment.detail
    if inv_type is InvestmentType.FD and d.start_date and d.maturity_date:
        rate = safe_rate(d.interest_rate, rates.rate_for(inv_type))
        investment.maturity_value_paise = calculate_fd_maturity_value(
            d.principal_paise or 0, rate, d.compounding, d.start_date, d.maturity_date)
    elif inv_type is InvestmentType.RD and d.start_date and d.maturity_date:
        rate = safe_rate(d.interest_rate, rates.rate_for(inv_type))
        investment.maturity_value_paise = calculate_rd_value(
            d.monthly_installment_paise or 0, rate, d.compounding, d.start_date, d.maturity_date)

    if not inv_type.reports_gain:
        investment.gain_paise = 0
        investment.gain_percent = 0.0
        investment.xirr = None
        return investment

    investment.gain_paise = current_value - invested
    investment.gain_percent = round((current_value - invested) / invested * 100, 2) if invested > 0 else 0.0

    investment.xirr = None
    if current_value > 0:
        cashflows = investment_cashflows(investment)
        if cashflows:
            append_terminal_value(cashflows, current_value, as_of)
            investment.xirr = xirr_percent(xirr(cashflows))

    return investment


def get_enriched_investment(investment_id: int, rates: Optional[RateSettings] = None) -> Investment:
    investment = db.get_investment(investment_id)
    if investment is None:
        raise InvestmentNotFoundError(f"Investment {investment_id} not found")
    return enrich_investment(investment, rates)


def get_enriched_investments(owner_id: Optional[int] = None,
                             investment_type: Optional[InvestmentType] = None,
                             rates: Optional[RateSettings] = None) -> List[Investment]:
    rates = rates or load_rate_settings()
    return [enrich_investment(inv, rates) for inv in db.get_investments(owner_id, investment_type)]


def is_open_deposit(investment: Investment, as_of: date) -> bool:
    """False for deposits that matured on or before as_of or were closed early."""
    d = investment.detail
    if not investment.investment_type.is_deposit or d is None:
        return True
    if d.is_closed_early:
        return False
    return not (d.maturity_date and d.maturity_date <= as_of)


def calculate_type_xirr(investment_type: InvestmentType, owner_id: Optional[int] = None,
                        rates: Optional[RateSettings] = None) -> Optional[float]:
    """
    Pooled XIRR (percent) across every investment of one asset class.

    Each investment contributes its cash flows plus its current value as a
    terminal flow. Matured and closed-early deposits are left out.
    """
    inv_type = InvestmentType(investment_type)
    rates = rates or load_rate_settings()
    as_of = today()

    investments = [inv for inv in db.get_investments(owner_id, inv_type) if is_open_deposit(inv, as_of)]

    pooled: List[Cashflow] = []
    for inv in investments:
        enrich_investment(inv, rates, as_of)
        pooled.extend(investment_cashflows(inv))
        if not inv_type.is_liability:
            append_terminal_value(pooled, inv.current_value_paise or 0, as_of)

    if len(pooled) < 2:
        return None
    pooled.sort(key=lambda cf: cf[0])
    return xirr_percent(xirr(pooled))


# ==================== Portfolio summaries ====================

def get_dashboard_stats(owner_id: Optional[int] = None, rates: Optional[RateSettings] = None) -> dict:
    """Portfolio totals; loans count as debt, not as invested or value."""
    total_invested = 0
    total_value = 0
    total_debt = 0
    count = 0

    for inv in get_enriched_investments(owner_id, rates=rates):
        if inv.investment_type.is_liability:
            total_debt += inv.current_value_paise or 0
        else:
            total_invested += inv.invested_amount_paise or 0
            total_value += inv.current_value_paise or 0
        count += 1

    return {
        'total_invested_paise': total_invested,
        'total_current_value_paise': total_value,
        'total_gain_paise': total_value - total_invested,
        'total_gain_percent': round((total_value - total_invested) / total_invested * 100, 2) if total_invested > 0 else 0.0,
        'total_debt_paise': total_debt,
        'net_worth_paise': total_value - total_debt,
        'investment_count': count,
    }


def get_investment_breakdown(owner_id: Optional[int] = None, rates: Optional[RateSettings] = None) -> List[dict]:
    """Invested and current value per asset class, in first-seen order."""
    breakdown: Dict[InvestmentType, dict] = {}
    for inv in get_enriched_investments(owner_id, rates=rates):
        entry = breakdown.setdefault(inv.investment_type, {
            'investment_type': inv.investment_type.value,
            'label': inv.investment_type.label,
            'invested_paise': 0,
            'current_value_paise': 0,
            'count': 0,
        })
        entry['invested_paise'] += inv.invested_amount_paise or 0
        entry['current_value_paise'] += inv.current_value_paise or 0
        entry['count'] += 1
    return list(breakdown.values())
