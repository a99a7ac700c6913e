"""
wealthledger exception hierarchy.

All engine exceptions inherit from WealthLedgerError. Missing market prices are
not errors: price lookups return None and the valuation fallbacks absorb it.
"""


class WealthLedgerError(Exception):
    """Base exception class for all wealthledger errors."""


class NotFoundError(WealthLedgerError):
    """Raised when a requested record does not exist."""


class InvestmentNotFoundError(NotFoundError):
    """Raised when an investment ID does not exist."""


class GoalNotFoundError(NotFoundError):
    """Raised when a goal ID does not exist."""


class UnknownInvestmentTypeError(WealthLedgerError):
    """Raised when an asset-class tag has no detail record or valuation branch."""


class GoalAssignmentError(WealthLedgerError):
    """Raised when an investment is already linked to a different goal."""

    def __init__(self, investment_id: int, goal_id: int):
        self.investment_id = investment_id
        self.goal_id = goal_id
        super().__init__(
            f"Investment {investment_id} is already assigned to another goal "
            f"(Goal #{goal_id}). Unassign it first."
        )


class JobAlreadyRunningError(WealthLedgerError):
    """Raised when a snapshot generation job is started while one is in progress."""


class ConfigurationError(WealthLedgerError):
    """Raised for invalid configuration values that cannot be defaulted."""
