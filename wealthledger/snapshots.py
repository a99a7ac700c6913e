"""
Monthly snapshots and historical reconstruction of portfolio value.

Current-month snapshots reuse the valuation dispatcher. Historical months are
rebuilt from formulas evaluated at the 1st of each month and from cached
market prices, falling back through earlier evidence when a price is missing:

- funds/shares: nearest earlier cached price, else the earliest known price,
  else one history backfill and a retry
- gold: cached price at or before the month, else the latest known price
  discounted back at the gold rate, else the purchase price grown forward

Every row is written with replace semantics, so re-running a month is safe.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from dateutil.relativedelta import relativedelta

from wealthledger import db
from wealthledger.dates import current_year_month, parse_year_month, today, year_month
from wealthledger.formulas import (
    back_extrapolate_price,
    calculate_asset_value,
    calculate_gold_value,
    clamp_paise,
    safe_rate,
)
from wealthledger.goals import goal_progress_from_values
from wealthledger.market_data import MarketData
from wealthledger.models import (
    Investment,
    InvestmentType,
    MonthlySnapshot,
    NetWorthSnapshot,
    TypeBreakdown,
)
from wealthledger.settings import DEFAULT_RATES, RateSettings, load_rate_settings
from wealthledger.valuation import (
    calculate_type_xirr,
    enrich_investment,
    formula_value,
    get_invested_amount,
    investment_cashflows,
    price_symbol,
)
from wealthledger.xirr import xirr, xirr_percent

logger = logging.getLogger(__name__)

__all__ = [
    "HistoricalValue",
    "PriceResolver",
    "historical_target_months",
    "calculate_monthly_snapshots",
    "calculate_net_worth_snapshot",
    "calculate_historical_value",
    "generate_historical_snapshots",
    "get_net_worth_history",
    "get_type_history",
    "get_snapshot_list",
    "get_snapshot_detail",
    "clear_snapshots",
]

MONTHLY_LOOKBACK = 36
YEARLY_LOOKBACK = 10


@dataclass
class HistoricalValue:
    invested: int
    value: int

    def gain_for(self, investment_type: InvestmentType) -> int:
        """Loans and planned expenses report no gain."""
        return self.value - self.invested if investment_type.reports_gain else 0


def historical_target_months(as_of: Optional[date] = None, monthly: int = MONTHLY_LOOKBACK,
                             yearly: int = YEARLY_LOOKBACK) -> List[str]:
    """
    Months to reconstruct: each of the last `monthly` months plus January of
    each of the last `yearly` years. The current month is excluded.
    """
    as_of = as_of or today()
    first = date(as_of.year, as_of.month, 1)
    months = {year_month(first - relativedelta(months=i)) for i in range(1, monthly + 1)}
    months.update(f"{as_of.year - i:04d}-01" for i in range(1, yearly + 1))
    return sorted(months)


# ==================== Breakdown & totals ====================

def _aggregate_class(inv_type: InvestmentType, values: Iterable[Tuple[int, int]]) -> TypeBreakdown:
    breakdown = TypeBreakdown()
    for invested, value in values:
        breakdown.invested += invested
        breakdown.value += value
        breakdown.count += 1
    if inv_type.reports_gain:
        breakdown.gain = breakdown.value - breakdown.invested
        if breakdown.invested > 0:
            breakdown.gain_percent = round(breakdown.gain / breakdown.invested * 100, 2)
    return breakdown


def _net_worth_from_breakdown(owner_id: int, ym: str, breakdown: Dict[str, TypeBreakdown],
                              goals: Dict[str, dict]) -> NetWorthSnapshot:
    """Totals are always summed from the finished per-class breakdown."""
    total_invested = 0
    total_value = 0
    total_debt = 0
    for type_value, entry in breakdown.items():
        if InvestmentType(type_value).is_liability:
            total_debt += entry.value
        else:
            total_invested += entry.invested
            total_value += entry.value
    return NetWorthSnapshot(
        owner_id=owner_id,
        year_month=ym,
        total_invested_paise=total_invested,
        total_value_paise=total_value,
        total_debt_paise=total_debt,
        net_worth_paise=total_value - total_debt,
        breakdown=breakdown,
        goals=goals,
    )


def _group_by_type(investments: Iterable[Investment]) -> Dict[InvestmentType, List[Investment]]:
    groups: Dict[InvestmentType, List[Investment]] = {}
    for inv in investments:
        groups.setdefault(inv.investment_type, []).append(inv)
    return groups


# ==================== Current month ====================

def calculate_monthly_snapshots(year_month: Optional[str] = None, owner_id: Optional[int] = None,
                                rates: Optional[RateSettings] = None) -> int:
    """Value every active investment now and replace its row for the month."""
    ym = year_month or current_year_month()
    rates = rates or load_rate_settings()
    count = 0
    for inv in db.get_investments(owner_id):
        enrich_investment(inv, rates)
        invested = inv.invested_amount_paise or 0
        value = inv.current_value_paise or 0
        db.save_monthly_snapshot(MonthlySnapshot(
            investment_id=inv.id,
            year_month=ym,
            invested_paise=invested,
            current_value_paise=value,
            gain_paise=inv.gain_paise or 0,
        ))
        count += 1
    logger.info(f"Saved {count} monthly snapshots for {ym}")
    return count


def calculate_net_worth_snapshot(owner_id: int, year_month: Optional[str] = None,
                                 rates: Optional[RateSettings] = None) -> NetWorthSnapshot:
    """Current totals, debt, net worth, per-class breakdown and goal progress for one owner."""
    ym = year_month or current_year_month()
    rates = rates or load_rate_settings()
    investments = [enrich_investment(inv, rates) for inv in db.get_investments(owner_id)]

    breakdown: Dict[str, TypeBreakdown] = {}
    for inv_type, members in _group_by_type(investments).items():
        entry = _aggregate_class(inv_type, (
            (inv.invested_amount_paise or 0, inv.current_value_paise or 0) for inv in members
        ))
        if inv_type.reports_gain:
            entry.xirr = calculate_type_xirr(inv_type, owner_id, rates)
        breakdown[inv_type.value] = entry

    goals = goal_progress_from_values(
        db.get_goals_by_owner(owner_id),
        {inv.id: inv.current_value_paise or 0 for inv in investments},
    )
    snapshot = _net_worth_from_breakdown(owner_id, ym, breakdown, goals)
    db.save_net_worth_snapshot(snapshot)
    logger.info(f"Saved net worth snapshot for owner {owner_id} {ym}: {snapshot.net_worth_paise} paise")
    return snapshot


# ==================== Historical valuation ====================

class PriceResolver:
    """
    Resolves historical prices for one reconstruction run.

    Remembers which symbols were already backfilled so each is fetched at
    most once per run.
    """

    def __init__(self, market=None, rates: Optional[RateSettings] = None):
        self.market = market
        self.rates = rates or RateSettings()
        self._backfilled: Set[Tuple[str, Tuple[str, ...]]] = set()

    async def market_price(self, symbol: str, sources: Tuple[str, ...], target: date,
                           exchange: str = "NSE") -> Optional[int]:
        cached = db.get_price_on_or_before(symbol, sources, target)
        if cached:
            return cached[1]

        # History exists but starts after target: the earliest price is the floor
        earliest = db.get_earliest_price(symbol, sources)
        if earliest:
            return earliest[1]

        key = (symbol, tuple(sources))
        if self.market is None or key in self._backfilled:
            return None
        self._backfilled.add(key)
        await self.market.backfill_history(symbol, sources[0], exchange)

        cached = db.get_price_on_or_before(symbol, sources, target)
        if cached:
            return cached[1]
        earliest = db.get_earliest_price(symbol, sources)
        return earliest[1] if earliest else None

    def gold_rate(self) -> float:
        return safe_rate(self.rates.rate_for(InvestmentType.GOLD), DEFAULT_RATES[InvestmentType.GOLD])

    def gold_price(self, target: date) -> Optional[int]:
        """24K per-gram price at target from the cache, or discounted back from the latest."""
        cached = db.get_gold_price_on_or_before(target)
        if cached:
            return cached[1]
        latest = db.get_latest_gold_price()
        if latest:
            latest_date, latest_price = latest
            return back_extrapolate_price(latest_price, latest_date, target, self.gold_rate())
        return None


def _historical_gold_value(investment: Investment, target: date, prices: PriceResolver) -> int:
    d = investment.detail
    price = prices.gold_price(target)
    if price is not None:
        return calculate_gold_value(d.weight_grams, d.purity, price)
    # No gold prices anywhere: grow what was paid per gram
    if d.purchase_price_per_gram_paise and d.purchase_date:
        per_gram = calculate_asset_value(d.purchase_price_per_gram_paise, prices.gold_rate(),
                                         d.purchase_date, target)
        return round((d.weight_grams or 0) * per_gram)
    return 0


async def calculate_historical_value(investment: Investment, target: date,
                                     rates: RateSettings, prices: PriceResolver) -> HistoricalValue:
    """(invested, value) of one investment as of a past date, both clamped to >= 0."""
    invested = get_invested_amount(investment, as_of=target)

    override = db.get_latest_override(investment.id, on_or_before=target)
    if override:
        return HistoricalValue(clamp_paise(invested), clamp_paise(override.value_paise))

    inv_type = investment.investment_type
    if inv_type.is_market_linked:
        value = 0
        units = db.get_total_units_as_of(investment.id, target)
        symbol, sources = price_symbol(investment, historical=True)
        if units > 0 and symbol:
            exchange = getattr(investment.detail, 'exchange', None) or "NSE"
            price = await prices.market_price(symbol, sources, target, exchange)
            if price is not None:
                value = units * price
    elif inv_type is InvestmentType.GOLD:
        value = _historical_gold_value(investment, target, prices)
    else:
        value = formula_value(investment, rates, target)

    return HistoricalValue(clamp_paise(invested), clamp_paise(value))


def _class_xirr(members: List[Investment], target: date, class_value: int,
                inv_type: InvestmentType) -> Optional[float]:
    if not inv_type.reports_gain:
        return None
    flows = []
    for inv in members:
        flows.extend(investment_cashflows(inv, as_of=target))
    if class_value > 0:
        flows.append((target, class_value))
    if len(flows) < 2:
        return None
    flows.sort(key=lambda cf: cf[0])
    return xirr_percent(xirr(flows))


async def generate_historical_snapshots(owner_id: int, months: Optional[Iterable[str]] = None,
                                        market=None, rates: Optional[RateSettings] = None,
                                        on_progress: Optional[Callable[[int, int], None]] = None) -> int:
    """
    Rebuild monthly and net-worth snapshots for past months, oldest first.

    Each month is valued as of its 1st day, and only investments that had
    started by then are included. Control is yielded to the event loop after
    every investment and every class XIRR. An investment that fails to value
    is logged and left out of that month. Returns the number of months done.
    """
    rates = rates or load_rate_settings()
    target_months = sorted(set(months)) if months is not None else historical_target_months()
    prices = PriceResolver(market if market is not None else MarketData(), rates)

    investments = db.get_investments(owner_id, active_only=False)
    start_dates = {inv.id: inv.start_date(db.get_first_transaction_date(inv.id)) for inv in investments}
    goals = db.get_goals_by_owner(owner_id)

    logger.info(f"Reconstructing {len(target_months)} months for owner {owner_id} "
                f"({len(investments)} investments)")

    processed = 0
    for ym in target_months:
        target = parse_year_month(ym)
        present = [inv for inv in investments
                   if start_dates[inv.id] is not None and start_dates[inv.id] <= target]

        valued: List[Tuple[Investment, HistoricalValue]] = []
        for inv in present:
            try:
                hv = await calculate_historical_value(inv, target, rates, prices)
            except Exception:
                logger.exception(f"Historical valuation failed for investment {inv.id} ({inv.name}) at {ym}")
                # Drop any row left by an earlier run
                db.delete_monthly_snapshot(inv.id, ym)
            else:
                db.save_monthly_snapshot(MonthlySnapshot(
                    investment_id=inv.id,
                    year_month=ym,
                    invested_paise=hv.invested,
                    current_value_paise=hv.value,
                    gain_paise=hv.gain_for(inv.investment_type),
                ))
                valued.append((inv, hv))
            await asyncio.sleep(0)

        breakdown: Dict[str, TypeBreakdown] = {}
        groups = _group_by_type(inv for inv, _ in valued)
        values_by_id = {inv.id: hv for inv, hv in valued}
        for inv_type, members in groups.items():
            entry = _aggregate_class(inv_type, (
                (values_by_id[inv.id].invested, values_by_id[inv.id].value) for inv in members
            ))
            entry.xirr = _class_xirr(members, target, entry.value, inv_type)
            breakdown[inv_type.value] = entry
            await asyncio.sleep(0)

        goal_progress = goal_progress_from_values(goals, {inv.id: hv.value for inv, hv in valued})
        db.save_net_worth_snapshot(_net_worth_from_breakdown(owner_id, ym, breakdown, goal_progress))

        processed += 1
        logger.debug(f"Reconstructed {ym}: {len(valued)}/{len(present)} investments valued")
        if on_progress is not None:
            on_progress(processed, len(target_months))

    logger.info(f"Historical reconstruction for owner {owner_id} finished: {processed} months")
    return processed


# ==================== Read side ====================

def get_net_worth_history(owner_id: int) -> List[dict]:
    return [s.to_dict() for s in db.get_net_worth_snapshots(owner_id)]


def get_type_history(owner_id: int, investment_type: InvestmentType) -> List[dict]:
    """Invested and value of one asset class per month, from stored breakdowns."""
    type_value = InvestmentType(investment_type).value
    history = []
    for snapshot in db.get_net_worth_snapshots(owner_id):
        entry = snapshot.breakdown.get(type_value)
        if entry:
            history.append({'month': snapshot.year_month, 'invested': entry.invested, 'value': entry.value})
    return history


def get_snapshot_list(owner_id: int) -> List[dict]:
    return [s.to_dict() for s in db.get_net_worth_snapshots(owner_id, newest_first=True)]


def get_snapshot_detail(owner_id: int, year_month: str) -> List[dict]:
    return db.get_snapshot_detail(owner_id, year_month)


def clear_snapshots(owner_id: Optional[int] = None) -> int:
    removed = db.clear_snapshots(owner_id)
    logger.info(f"Cleared snapshots{'' if owner_id is None else f' for owner {owner_id}'}")
    return removed
