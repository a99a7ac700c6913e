"""
Pure Python XIRR (Extended Internal Rate of Return) calculator.

Uses Newton-Raphson from a 10% initial guess. Non-convergence is not an
error: the last estimate is returned, since an approximate annualized return
is more useful than none.
No external dependencies (no scipy/numpy required).
"""

import logging
import math
from datetime import date
from typing import Iterable, List, Optional, Tuple

from wealthledger.dates import DAYS_PER_YEAR
from wealthledger.models import INFLOW_TYPES, Transaction

logger = logging.getLogger(__name__)

Cashflow = Tuple[date, float]

INITIAL_GUESS = 0.10
MAX_ITERATIONS = 100
TOLERANCE = 1e-7
RATE_FLOOR = -0.99
MIN_DERIVATIVE = 1e-10


def xirr(cashflows: List[Cashflow], tolerance: float = TOLERANCE,
         max_iterations: int = MAX_ITERATIONS) -> Optional[float]:
    """
    Calculate XIRR using Newton-Raphson.

    Args:
        cashflows: List of (date, amount) tuples.
                   Negative = money out (investment), Positive = money in (redemption/terminal value).
        tolerance: Stop when consecutive estimates differ by less than this.
        max_iterations: Max Newton-Raphson iterations.

    Returns:
        Annualized return as float (e.g., 0.12 for 12%), or None with fewer
        than two cashflows or a non-finite estimate.
    """
    if len(cashflows) < 2:
        return None

    # Day 0 is the earliest date in the set
    d0 = min(d for d, _ in cashflows)
    year_fracs = [(amount, (d - d0).days / DAYS_PER_YEAR) for d, amount in cashflows]

    def npv(rate):
        """Net present value at given rate."""
        return sum(amt / (1.0 + rate) ** yf for amt, yf in year_fracs)

    def dnpv(rate):
        """Derivative of NPV with respect to rate."""
        return sum(-yf * amt / (1.0 + rate) ** (yf + 1.0) for amt, yf in year_fracs)

    rate = INITIAL_GUESS
    try:
        for _ in range(max_iterations):
            deriv = dnpv(rate)
            if abs(deriv) < MIN_DERIVATIVE:
                logger.debug(f"XIRR derivative vanished at rate={rate:.6f}; returning last estimate")
                break
            new_rate = rate - npv(rate) / deriv
            if abs(new_rate - rate) < tolerance:
                rate = new_rate
                break
            # Clamp to prevent divergence below -100%
            rate = max(RATE_FLOOR, new_rate)
        else:
            logger.debug(f"XIRR did not converge in {max_iterations} iterations; last estimate {rate:.6f}")
    except (OverflowError, ZeroDivisionError):
        logger.debug("XIRR overflowed; returning last estimate")

    if not math.isfinite(rate):
        return None
    return rate


def xirr_percent(rate: Optional[float]) -> Optional[float]:
    """Fractional rate -> percentage rounded to two decimals."""
    if rate is None:
        return None
    return round(rate * 100, 2)


def transaction_cashflow(txn: Transaction) -> Cashflow:
    """Money put in is an outflow (negative); everything else flows back (positive)."""
    if txn.txn_type in INFLOW_TYPES:
        return (txn.date, -txn.amount_paise)
    return (txn.date, txn.amount_paise)


def build_transaction_cashflows(transactions: Iterable[Transaction],
                                as_of: Optional[date] = None) -> List[Cashflow]:
    """
    Build cashflow list from transactions for XIRR calculation.

    Zero-amount entries are skipped; with `as_of`, only transactions dated on
    or before it are used.
    """
    cashflows = []
    for txn in transactions:
        if not txn.amount_paise:
            continue
        if as_of is not None and txn.date > as_of:
            continue
        cashflows.append(transaction_cashflow(txn))
    cashflows.sort(key=lambda cf: cf[0])
    return cashflows


def append_terminal_value(cashflows: List[Cashflow], current_value: float,
                          as_of: date) -> List[Cashflow]:
    """Terminal value: current holding value as inflow (skipped when not positive)."""
    if current_value and current_value > 0:
        cashflows.append((as_of, current_value))
    return cashflows
