"""
Goal valuation, projection and what-if simulation.

A goal's value is the allocation-weighted sum of its linked investments'
values, with loans counting against it.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional

from wealthledger import db
from wealthledger.dates import (
    iter_months,
    months_between,
    parse_year_month,
    today,
    year_month,
    years_between,
)
from wealthledger.exceptions import GoalAssignmentError, GoalNotFoundError, InvestmentNotFoundError
from wealthledger.formulas import (
    calculate_asset_value,
    calculate_pension_value,
    future_value_annuity,
    required_contribution,
    safe_rate,
)
from wealthledger.models import Goal, Investment, InvestmentType
from wealthledger.settings import FALLBACK_RATE, RateSettings, load_rate_settings
from wealthledger.valuation import enrich_investment, formula_value

logger = logging.getLogger(__name__)

__all__ = [
    "GoalSimulation",
    "GoalHistory",
    "get_goal",
    "get_goals",
    "assign_investment",
    "remove_investment",
    "goal_progress_from_values",
    "project_investment_value",
    "simulate_goal",
    "get_goal_history",
]


@dataclass
class GoalSimulation:
    current_value: int
    projected_value: int
    target_amount: int
    shortfall: int
    months_to_goal: int
    will_meet_goal: bool

    def to_dict(self) -> dict:
        return {
            'current_value_paise': self.current_value,
            'projected_value_paise': self.projected_value,
            'target_amount_paise': self.target_amount,
            'shortfall_paise': self.shortfall,
            'months_to_goal': self.months_to_goal,
            'will_meet_goal': self.will_meet_goal,
        }


@dataclass
class GoalHistory:
    """Monthly series for charting a goal; each point is {'month': 'YYYY-MM', 'value': paise}."""
    actual: List[dict] = field(default_factory=list)
    projected: List[dict] = field(default_factory=list)
    ideal: List[dict] = field(default_factory=list)
    target: int = 0

    def to_dict(self) -> dict:
        return {'actual': self.actual, 'projected': self.projected, 'ideal': self.ideal, 'target': self.target}


def _progress(value: int, target: int) -> float:
    return round(value / target * 100, 2) if target > 0 else 0.0


def _apply_values(goal: Goal, values_by_investment: Dict[int, int]) -> Goal:
    """Set link values, goal value and progress from a {investment_id: value} map."""
    total = 0
    for gi in goal.investments:
        gi.current_value_paise = values_by_investment.get(gi.investment_id, 0)
        total += gi.allocated_value(gi.current_value_paise)
    goal.current_value_paise = total
    goal.progress_percent = _progress(total, goal.target_amount_paise)
    return goal


def _valued_goal(goal: Goal, rates: RateSettings) -> Goal:
    values = {}
    for gi in goal.investments:
        inv = db.get_investment(gi.investment_id)
        if inv is not None:
            values[gi.investment_id] = enrich_investment(inv, rates).current_value_paise or 0
    return _apply_values(goal, values)


def get_goal(goal_id: int, rates: Optional[RateSettings] = None) -> Goal:
    """Goal with linked investments valued now."""
    goal = db.get_goal_by_id(goal_id)
    if goal is None:
        raise GoalNotFoundError(f"Goal {goal_id} not found")
    return _valued_goal(goal, rates or load_rate_settings())


def get_goals(owner_id: int, rates: Optional[RateSettings] = None) -> List[Goal]:
    rates = rates or load_rate_settings()
    return [_valued_goal(goal, rates) for goal in db.get_goals_by_owner(owner_id)]


def assign_investment(goal_id: int, investment_id: int, allocation_percent: float = 100) -> None:
    """
    Link an investment to a goal (or change its allocation).

    An investment may belong to at most one goal; linking it to a second
    goal raises GoalAssignmentError naming the existing one.
    """
    if not 0 < allocation_percent <= 100:
        raise ValueError(f"Allocation must be within (0, 100], got {allocation_percent}")
    if db.get_goal_by_id(goal_id) is None:
        raise GoalNotFoundError(f"Goal {goal_id} not found")
    if db.get_investment(investment_id) is None:
        raise InvestmentNotFoundError(f"Investment {investment_id} not found")

    existing = db.get_linked_goal_id(investment_id, excluding_goal_id=goal_id)
    if existing is not None:
        raise GoalAssignmentError(investment_id, existing)

    db.link_investment_to_goal(goal_id, investment_id, allocation_percent)
    logger.info(f"Linked investment {investment_id} to goal {goal_id} at {allocation_percent}%")


def remove_investment(goal_id: int, investment_id: int) -> bool:
    return db.unlink_investment_from_goal(goal_id, investment_id)


def goal_progress_from_values(goals: Iterable[Goal], values_by_investment: Dict[int, int]) -> Dict[str, dict]:
    """{goal_id: {name, current_value_paise, target_amount_paise, progress_percent}}."""
    progress = {}
    for goal in goals:
        _apply_values(goal, values_by_investment)
        progress[str(goal.id)] = {
            'name': goal.name,
            'current_value_paise': goal.current_value_paise,
            'target_amount_paise': goal.target_amount_paise,
            'progress_percent': goal.progress_percent,
        }
    return progress


# ==================== Projection ====================

def project_investment_value(investment: Investment, target_date: date, rates: RateSettings,
                             as_of: Optional[date] = None) -> int:
    """
    Value of an investment at a future date.

    Deposits follow their formulas and stop growing at maturity. Loans come
    back negative (outstanding balance at the date). Funds, shares and gold
    compound their current value at the class rate.
    """
    as_of = as_of or today()
    inv_type = investment.investment_type
    d = investment.detail
    current_value = enrich_investment(investment, rates, as_of).current_value_paise or 0

    if inv_type in (InvestmentType.FD, InvestmentType.RD, InvestmentType.EXPENSE):
        return formula_value(investment, rates, target_date)
    if inv_type is InvestmentType.LOAN:
        return -formula_value(investment, rates, target_date)
    if inv_type is InvestmentType.FIXED_ASSET:
        rate = safe_rate(d.inflation_rate, rates.rate_for(inv_type))
        return calculate_asset_value(d.purchase_price_paise or current_value, rate,
                                     d.purchase_date or as_of, target_date)
    if inv_type is InvestmentType.PENSION:
        rate = safe_rate(d.interest_rate, rates.rate_for(inv_type))
        return calculate_pension_value(current_value, rate, as_of, target_date)
    if inv_type is InvestmentType.SAVINGS_ACCOUNT:
        return current_value

    years = max(0.0, years_between(as_of, target_date))
    return round(current_value * (1 + rates.rate_for(inv_type) / 100) ** years)


def simulate_goal(goal_id: int, monthly_sip_paise: int, expected_return_percent: float,
                  as_of: Optional[date] = None, rates: Optional[RateSettings] = None) -> GoalSimulation:
    """
    What-if: project linked investments to the target date and add a
    hypothetical monthly SIP at the given expected return.
    """
    as_of = as_of or today()
    rates = rates or load_rate_settings()
    goal = get_goal(goal_id, rates)

    months_left = max(0, round(years_between(as_of, goal.target_date) * 12))

    projected_investments = 0
    for gi in goal.investments:
        inv = db.get_investment(gi.investment_id)
        if inv is not None:
            projected = project_investment_value(inv, goal.target_date, rates, as_of)
            projected_investments += round(projected * gi.weight)

    monthly_return = safe_rate(expected_return_percent, 0) / 100 / 12
    fv_sip = future_value_annuity(monthly_sip_paise or 0, monthly_return, months_left)

    projected_value = round(projected_investments + fv_sip)
    return GoalSimulation(
        current_value=goal.current_value_paise,
        projected_value=projected_value,
        target_amount=goal.target_amount_paise,
        shortfall=max(0, goal.target_amount_paise - projected_value),
        months_to_goal=months_left,
        will_meet_goal=projected_value >= goal.target_amount_paise,
    )


def _weighted_annual_rate(goal: Goal, rates: RateSettings) -> float:
    weighted = 0.0
    total_weight = 0.0
    for gi in goal.investments:
        if gi.investment_type is None:
            continue
        weighted += rates.rate_for(gi.investment_type) * gi.weight
        total_weight += gi.weight
    return weighted / total_weight if total_weight > 0 else FALLBACK_RATE


def _known_contributions(goal: Goal) -> List[tuple]:
    """(monthly_amount, start_month, end_month_or_None) from recurring rules and RD installments."""
    contributions = []
    for gi in goal.investments:
        for rule in db.get_recurring_rules(gi.investment_id):
            contributions.append((
                round(rule.monthly_amount_paise * gi.weight),
                year_month(rule.start_date),
                year_month(rule.end_date) if rule.end_date else None,
            ))
        if gi.investment_type is InvestmentType.RD:
            inv = db.get_investment(gi.investment_id)
            d = inv.detail if inv else None
            if d and d.monthly_installment_paise and d.start_date:
                contributions.append((
                    round(d.monthly_installment_paise * gi.weight),
                    year_month(d.start_date),
                    year_month(d.maturity_date) if d.maturity_date else None,
                ))
    return contributions


def get_goal_history(goal_id: int, rates: Optional[RateSettings] = None,
                     as_of: Optional[date] = None) -> GoalHistory:
    """
    Actual, projected and ideal monthly paths for a goal.

    - actual: allocation-weighted snapshot values per month, plus the current
      month at today's value when no snapshot exists for it
    - projected: today's value grown monthly at the goal's weighted class rate,
      plus known contributions, up to the target month
    - ideal: the path from the earliest tracked month that reaches the target
      exactly with a constant monthly contribution
    """
    as_of = as_of or today()
    rates = rates or load_rate_settings()
    goal = get_goal(goal_id, rates)
    target = goal.target_amount_paise
    this_month = year_month(as_of)
    target_month = year_month(goal.target_date)

    weights = {gi.investment_id: gi for gi in goal.investments}
    by_month = db.get_monthly_values_by_month(weights)
    monthly_values: Dict[str, int] = {}
    for ym, values in by_month.items():
        monthly_values[ym] = sum(weights[inv_id].allocated_value(value) for inv_id, value in values.items())

    actual = [{'month': ym, 'value': value} for ym, value in sorted(monthly_values.items())]
    if this_month not in monthly_values:
        actual.append({'month': this_month, 'value': goal.current_value_paise})

    monthly_rate = _weighted_annual_rate(goal, rates) / 100 / 12

    earliest = this_month
    for gi in goal.investments:
        first = db.get_first_transaction_date(gi.investment_id)
        if first and year_month(first) < earliest:
            earliest = year_month(first)
    if actual and actual[0]['month'] < earliest:
        earliest = actual[0]['month']
    if goal.created_at and year_month(goal.created_at.date()) < earliest:
        earliest = year_month(goal.created_at.date())

    projected = []
    if target_month > this_month:
        contributions = _known_contributions(goal)
        value = float(goal.current_value_paise)
        for month_start in iter_months(parse_year_month(this_month), parse_year_month(target_month)):
            ym = year_month(month_start)
            projected.append({'month': ym, 'value': round(value)})
            added = sum(amount for amount, start, end in contributions
                        if start <= ym and (end is None or ym <= end))
            value = value * (1 + monthly_rate) + added

    ideal = []
    ideal_start = parse_year_month(earliest)
    ideal_end = parse_year_month(target_month)
    n = max(1, months_between(ideal_start, ideal_end))
    start_value = actual[0]['value'] if actual else 0
    contribution = required_contribution(start_value, target, monthly_rate, n)
    value = float(start_value)
    for month_start in iter_months(ideal_start, ideal_end):
        ideal.append({'month': year_month(month_start), 'value': round(value)})
        value = value * (1 + monthly_rate) + contribution

    return GoalHistory(actual=actual, projected=projected, ideal=ideal, target=target)
