"""
Valuation and historical reconstruction engine for a multi-asset portfolio.

Values fixed deposits, recurring deposits, mutual funds, shares, gold,
loans, fixed assets, pensions and savings accounts; tracks FIFO lots;
rebuilds monthly net-worth history; classifies capital gains; and projects
goals.
"""

from wealthledger.models import (
    Goal,
    Investment,
    InvestmentType,
    NetWorthSnapshot,
    TaxSummary,
)
from wealthledger.valuation import enrich_investment, calculate_type_xirr
from wealthledger.snapshots import generate_historical_snapshots
from wealthledger.tax import calculate_capital_gains

__version__ = "1.0.0"
__all__ = [
    "Goal",
    "Investment",
    "InvestmentType",
    "NetWorthSnapshot",
    "TaxSummary",
    "enrich_investment",
    "calculate_type_xirr",
    "generate_historical_snapshots",
    "calculate_capital_gains",
]
