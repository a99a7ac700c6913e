"""
Data models for the wealthledger valuation engine.

This module defines the core data structures using dataclasses for:
- Investments and their per-asset-class detail records
- Transactions, FIFO lots and sell allocations
- Overrides, monthly and net-worth snapshots
- Goals, tax summaries and snapshot job status

All money fields are integer paise (1 rupee = 100 paise). Rates are annual
percentages (7.5 means 7.5%).
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from wealthledger.exceptions import UnknownInvestmentTypeError


class InvestmentType(Enum):
    """
    Asset classes tracked by the portfolio.

    Each value owns exactly one detail record shape (see DETAIL_TYPES).
    EXPENSE is a planned outflow rather than an asset, but it is valued the
    same way so goals can net it off.
    """
    FD = "fd"
    RD = "rd"
    MF_EQUITY = "mf_equity"
    MF_HYBRID = "mf_hybrid"
    MF_DEBT = "mf_debt"
    SHARES = "shares"
    GOLD = "gold"
    LOAN = "loan"
    FIXED_ASSET = "fixed_asset"
    PENSION = "pension"
    SAVINGS_ACCOUNT = "savings_account"
    EXPENSE = "expense"

    @property
    def label(self) -> str:
        return INVESTMENT_TYPE_LABELS[self]

    @property
    def is_mutual_fund(self) -> bool:
        return self in (InvestmentType.MF_EQUITY, InvestmentType.MF_HYBRID, InvestmentType.MF_DEBT)

    @property
    def is_market_linked(self) -> bool:
        return self.is_mutual_fund or self is InvestmentType.SHARES

    @property
    def is_deposit(self) -> bool:
        return self in (InvestmentType.FD, InvestmentType.RD)

    @property
    def is_liability(self) -> bool:
        return self is InvestmentType.LOAN

    @property
    def reports_gain(self) -> bool:
        """Loans and planned expenses are known outflows, not appreciating assets."""
        return self not in (InvestmentType.LOAN, InvestmentType.EXPENSE)


INVESTMENT_TYPE_LABELS = {
    InvestmentType.FD: "Fixed Deposit",
    InvestmentType.RD: "Recurring Deposit",
    InvestmentType.MF_EQUITY: "Mutual Fund - Equity",
    InvestmentType.MF_HYBRID: "Mutual Fund - Hybrid",
    InvestmentType.MF_DEBT: "Mutual Fund - Debt",
    InvestmentType.SHARES: "Shares",
    InvestmentType.GOLD: "Gold",
    InvestmentType.LOAN: "Loan",
    InvestmentType.FIXED_ASSET: "Fixed Asset",
    InvestmentType.PENSION: "Pension",
    InvestmentType.SAVINGS_ACCOUNT: "Savings Account",
    InvestmentType.EXPENSE: "Planned Expense",
}


class TransactionType(Enum):
    """Enumeration of all investment transaction types."""
    BUY = "buy"
    SELL = "sell"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DIVIDEND = "dividend"
    INTEREST = "interest"
    SIP = "sip"
    EMI = "emi"
    PREMIUM = "premium"
    BONUS = "bonus"
    SPLIT = "split"
    MATURITY = "maturity"


# Money put into an investment
INFLOW_TYPES = {TransactionType.BUY, TransactionType.SIP, TransactionType.DEPOSIT, TransactionType.PREMIUM}
# Money taken out of an investment
OUTFLOW_TYPES = {TransactionType.SELL, TransactionType.WITHDRAWAL, TransactionType.MATURITY}
# Acquisitions that create a FIFO lot when units and price are present
LOT_TYPES = {TransactionType.BUY, TransactionType.SIP}


class CompoundingFrequency(Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    HALF_YEARLY = "half_yearly"
    YEARLY = "yearly"

    @property
    def periods_per_year(self) -> int:
        return _PERIODS_PER_YEAR[self]

    @classmethod
    def parse(cls, value) -> "CompoundingFrequency":
        """Parse a frequency, defaulting to quarterly for unknown text."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.QUARTERLY


_PERIODS_PER_YEAR = {
    CompoundingFrequency.MONTHLY: 12,
    CompoundingFrequency.QUARTERLY: 4,
    CompoundingFrequency.HALF_YEARLY: 2,
    CompoundingFrequency.YEARLY: 1,
}


class GoldPurity(Enum):
    K24 = "24K"
    K22 = "22K"
    K18 = "18K"

    @property
    def factor(self) -> float:
        if self is GoldPurity.K24:
            return 1.0
        if self is GoldPurity.K22:
            return 22 / 24
        return 18 / 24

    @classmethod
    def parse(cls, value) -> "GoldPurity":
        """Parse purity text; anything unrecognised is treated as 18K."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            return cls.K18


def parse_date(val) -> Optional[date]:
    """Parse a date from string, datetime or date object."""
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    if isinstance(val, str) and val.strip():
        text = val.strip()
        # Timestamps like "2024-01-15 10:30:00" keep only the date part
        for fmt, candidate in (('%Y-%m-%d', text[:10]), ('%d-%m-%Y', text), ('%d-%b-%Y', text)):
            try:
                return datetime.strptime(candidate, fmt).date()
            except ValueError:
                continue
    return None


# ==================== Detail records (tagged union) ====================

@dataclass
class FDDetail:
    principal_paise: int = 0
    interest_rate: float = 0.0
    compounding: CompoundingFrequency = CompoundingFrequency.QUARTERLY
    start_date: Optional[date] = None
    maturity_date: Optional[date] = None
    bank_name: Optional[str] = None
    is_closed_early: bool = False


@dataclass
class RDDetail:
    monthly_installment_paise: int = 0
    interest_rate: float = 0.0
    compounding: CompoundingFrequency = CompoundingFrequency.QUARTERLY
    start_date: Optional[date] = None
    maturity_date: Optional[date] = None
    bank_name: Optional[str] = None
    is_closed_early: bool = False


@dataclass
class MutualFundDetail:
    """
    Mutual fund identity.

    Attributes:
        isin_code: ISIN of the scheme (legacy price identifier)
        scheme_code: mfapi scheme code, preferred price identifier
        amfi_code: AMFI code used when backfilling NAV history
    """
    isin_code: Optional[str] = None
    scheme_code: Optional[str] = None
    amfi_code: Optional[str] = None
    scheme_name: Optional[str] = None
    folio_number: Optional[str] = None

    @property
    def price_symbol(self) -> Optional[str]:
        return self.scheme_code or self.isin_code

    @property
    def history_symbol(self) -> Optional[str]:
        return self.amfi_code or self.scheme_code or self.isin_code


@dataclass
class SharesDetail:
    ticker_symbol: Optional[str] = None
    exchange: str = "NSE"
    company_name: Optional[str] = None


@dataclass
class GoldDetail:
    weight_grams: float = 0.0
    purity: GoldPurity = GoldPurity.K24
    purchase_price_per_gram_paise: int = 0
    purchase_date: Optional[date] = None
    form: str = "physical"


@dataclass
class LoanDetail:
    principal_paise: int = 0
    interest_rate: float = 0.0
    emi_paise: int = 0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    loan_type: str = "other"
    lender: Optional[str] = None


@dataclass
class FixedAssetDetail:
    purchase_price_paise: int = 0
    inflation_rate: float = 0.0
    purchase_date: Optional[date] = None
    category: str = "other"


@dataclass
class PensionDetail:
    interest_rate: float = 0.0
    pension_type: str = "other"
    start_date: Optional[date] = None
    account_number: Optional[str] = None


@dataclass
class SavingsAccountDetail:
    interest_rate: float = 0.0
    bank_name: Optional[str] = None
    account_number: Optional[str] = None


@dataclass
class ExpenseDetail:
    amount_paise: int = 0
    start_date: Optional[date] = None
    expense_date: Optional[date] = None


Detail = Union[
    FDDetail, RDDetail, MutualFundDetail, SharesDetail, GoldDetail, LoanDetail,
    FixedAssetDetail, PensionDetail, SavingsAccountDetail, ExpenseDetail,
]

DETAIL_TYPES = {
    InvestmentType.FD: FDDetail,
    InvestmentType.RD: RDDetail,
    InvestmentType.MF_EQUITY: MutualFundDetail,
    InvestmentType.MF_HYBRID: MutualFundDetail,
    InvestmentType.MF_DEBT: MutualFundDetail,
    InvestmentType.SHARES: SharesDetail,
    InvestmentType.GOLD: GoldDetail,
    InvestmentType.LOAN: LoanDetail,
    InvestmentType.FIXED_ASSET: FixedAssetDetail,
    InvestmentType.PENSION: PensionDetail,
    InvestmentType.SAVINGS_ACCOUNT: SavingsAccountDetail,
    InvestmentType.EXPENSE: ExpenseDetail,
}

_missing = set(InvestmentType) - set(DETAIL_TYPES)
if _missing:
    raise UnknownInvestmentTypeError(f"No detail record for: {sorted(t.value for t in _missing)}")

_DATE_FIELDS = {'start_date', 'maturity_date', 'purchase_date', 'end_date', 'expense_date'}


def detail_from_row(investment_type: InvestmentType, row: dict) -> Detail:
    """
    Build the detail record for an investment type from a DB row/dict.

    Unknown keys are ignored; date text is parsed; enum columns are coerced.
    """
    detail_cls = DETAIL_TYPES.get(investment_type)
    if detail_cls is None:
        raise UnknownInvestmentTypeError(f"Unknown investment type: {investment_type!r}")

    known = {f.name for f in fields(detail_cls)}
    kwargs = {}
    for key, value in (row or {}).items():
        if key not in known or value is None:
            continue
        if key in _DATE_FIELDS:
            value = parse_date(value)
        elif key == 'compounding':
            value = CompoundingFrequency.parse(value)
        elif key == 'purity':
            value = GoldPurity.parse(value)
        elif key == 'is_closed_early':
            value = bool(value)
        kwargs[key] = value
    return detail_cls(**kwargs)


def detail_to_row(detail: Detail) -> dict:
    """Flatten a detail record into DB column values."""
    row = {}
    for f in fields(detail):
        value = getattr(detail, f.name)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, date):
            value = value.isoformat()
        elif isinstance(value, bool):
            value = int(value)
        row[f.name] = value
    return row


# ==================== Core records ====================

@dataclass
class Investment:
    """
    A single holding.

    Attributes:
        id: Investment ID
        owner_id: Portfolio owner (user) ID
        investment_type: Asset class tag; decides the shape of `detail`
        name: Display name
        detail: Type-specific detail record
        is_active: Whether the holding is still active
        created_at: Record-creation timestamp (not the real start date)
    """
    id: int
    owner_id: int
    investment_type: InvestmentType
    name: str
    detail: Optional[Detail] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    # Computed by the valuation dispatcher
    current_value_paise: Optional[int] = None
    invested_amount_paise: Optional[int] = None
    gain_paise: Optional[int] = None
    gain_percent: Optional[float] = None
    xirr: Optional[float] = None
    maturity_value_paise: Optional[int] = None
    total_units: Optional[float] = None
    latest_price_paise: Optional[int] = None

    def detail_start_date(self) -> Optional[date]:
        """Real start date recorded on the detail, if the class has one."""
        detail = self.detail
        if isinstance(detail, (FixedAssetDetail, GoldDetail)):
            return detail.purchase_date
        return getattr(detail, 'start_date', None)

    def start_date(self, first_transaction_date: Optional[date] = None) -> Optional[date]:
        """Real start date: detail date, then first transaction, then creation date."""
        return (self.detail_start_date()
                or first_transaction_date
                or (self.created_at.date() if self.created_at else None))

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'investment_type': self.investment_type.value,
            'name': self.name,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'detail': detail_to_row(self.detail) if self.detail is not None else None,
            'current_value_paise': self.current_value_paise,
            'invested_amount_paise': self.invested_amount_paise,
            'gain_paise': self.gain_paise,
            'gain_percent': self.gain_percent,
            'xirr': self.xirr,
            'maturity_value_paise': self.maturity_value_paise,
            'total_units': self.total_units,
            'latest_price_paise': self.latest_price_paise,
        }


@dataclass
class Transaction:
    """
    A ledger entry for an investment.

    `amount_paise` is stored as a positive magnitude; the direction comes from
    `txn_type` (see INFLOW_TYPES / OUTFLOW_TYPES).
    """
    id: int
    investment_id: int
    txn_type: TransactionType
    date: date
    amount_paise: int
    owner_id: Optional[int] = None
    units: Optional[float] = None
    price_per_unit_paise: Optional[int] = None
    fees_paise: int = 0
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'investment_id': self.investment_id,
            'txn_type': self.txn_type.value,
            'date': self.date.isoformat(),
            'amount_paise': self.amount_paise,
            'units': self.units,
            'price_per_unit_paise': self.price_per_unit_paise,
            'fees_paise': self.fees_paise,
            'notes': self.notes,
        }


@dataclass
class Lot:
    """An acquisition batch; only the lot ledger changes `units_remaining`."""
    id: int
    investment_id: int
    buy_txn_id: int
    buy_date: date
    units_bought: float
    units_remaining: float
    cost_per_unit_paise: int


@dataclass
class SellAllocation:
    """Units of one lot consumed by one sell, at the lot's cost per unit."""
    sell_txn_id: int
    lot_id: int
    units_sold: float
    cost_per_unit_paise: int
    buy_date: Optional[date] = None
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'lot_id': self.lot_id,
            'units_sold': self.units_sold,
            'cost_per_unit_paise': self.cost_per_unit_paise,
            'buy_date': self.buy_date.isoformat() if self.buy_date else None,
        }


@dataclass
class SellResult:
    transaction: Transaction
    allocations: List[SellAllocation] = field(default_factory=list)
    unallocated_units: float = 0.0

    def to_dict(self) -> dict:
        return {
            'transaction': self.transaction.to_dict(),
            'allocations': [a.to_dict() for a in self.allocations],
            'unallocated_units': self.unallocated_units,
        }


@dataclass
class Override:
    id: int
    investment_id: int
    override_date: date
    value_paise: int
    reason: Optional[str] = None


@dataclass
class MonthlySnapshot:
    investment_id: int
    year_month: str
    invested_paise: int
    current_value_paise: int
    gain_paise: int


@dataclass
class TypeBreakdown:
    """Per-asset-class aggregate inside a net-worth snapshot."""
    invested: int = 0
    value: int = 0
    count: int = 0
    gain: int = 0
    gain_percent: float = 0.0
    xirr: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'invested': self.invested,
            'value': self.value,
            'count': self.count,
            'gain': self.gain,
            'gain_percent': self.gain_percent,
            'xirr': self.xirr,
        }


@dataclass
class NetWorthSnapshot:
    owner_id: int
    year_month: str
    total_invested_paise: int
    total_value_paise: int
    total_debt_paise: int
    net_worth_paise: int
    breakdown: Dict[str, TypeBreakdown] = field(default_factory=dict)
    goals: Dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'owner_id': self.owner_id,
            'year_month': self.year_month,
            'total_invested_paise': self.total_invested_paise,
            'total_value_paise': self.total_value_paise,
            'total_debt_paise': self.total_debt_paise,
            'net_worth_paise': self.net_worth_paise,
            'breakdown': {k: v.to_dict() for k, v in self.breakdown.items()},
            'goals': self.goals,
        }


@dataclass
class GoalInvestment:
    goal_id: int
    investment_id: int
    allocation_percent: float
    investment_type: Optional[InvestmentType] = None
    investment_name: Optional[str] = None
    current_value_paise: int = 0

    @property
    def weight(self) -> float:
        return (self.allocation_percent or 0) / 100

    def allocated_value(self, value_paise: int) -> int:
        """Allocation-weighted value; loans count against the goal."""
        allocated = round((value_paise or 0) * self.weight)
        return -allocated if self.investment_type is InvestmentType.LOAN else allocated


@dataclass
class Goal:
    id: int
    owner_id: int
    name: str
    target_amount_paise: int
    target_date: date
    priority: int = 5
    is_active: bool = True
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    investments: List[GoalInvestment] = field(default_factory=list)
    current_value_paise: int = 0
    progress_percent: float = 0.0

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'target_amount_paise': self.target_amount_paise,
            'target_date': self.target_date.isoformat(),
            'priority': self.priority,
            'is_active': self.is_active,
            'notes': self.notes,
            'current_value_paise': self.current_value_paise,
            'progress_percent': self.progress_percent,
            'investments': [
                {
                    'investment_id': gi.investment_id,
                    'investment_name': gi.investment_name,
                    'investment_type': gi.investment_type.value if gi.investment_type else None,
                    'allocation_percent': gi.allocation_percent,
                    'current_value_paise': gi.current_value_paise,
                }
                for gi in self.investments
            ],
        }


@dataclass
class RecurringRule:
    investment_id: int
    amount_paise: int
    frequency: str
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    id: Optional[int] = None

    @property
    def monthly_amount_paise(self) -> int:
        if self.frequency == 'daily':
            return self.amount_paise * 30
        if self.frequency == 'weekly':
            return round(self.amount_paise * 4.33)
        if self.frequency == 'yearly':
            return round(self.amount_paise / 12)
        return self.amount_paise


@dataclass
class CapitalGain:
    investment_id: int
    investment_name: str
    investment_type: InvestmentType
    sell_date: date
    buy_date: date
    units_sold: float
    sell_amount_paise: int
    cost_basis_paise: int
    gain_paise: int
    holding_period_days: int
    is_ltcg: bool
    tax_rate: float
    tax_paise: int

    def to_dict(self) -> dict:
        return {
            'investment_id': self.investment_id,
            'investment_name': self.investment_name,
            'investment_type': self.investment_type.value,
            'sell_date': self.sell_date.isoformat(),
            'buy_date': self.buy_date.isoformat(),
            'units_sold': self.units_sold,
            'sell_amount_paise': self.sell_amount_paise,
            'cost_basis_paise': self.cost_basis_paise,
            'gain_paise': self.gain_paise,
            'holding_period_days': self.holding_period_days,
            'is_ltcg': self.is_ltcg,
            'tax_rate': self.tax_rate,
            'tax_paise': self.tax_paise,
        }


@dataclass
class TaxSummary:
    fy: str
    equity_stcg_paise: int = 0
    equity_ltcg_paise: int = 0
    equity_ltcg_exemption_paise: int = 0
    debt_stcg_paise: int = 0
    debt_ltcg_paise: int = 0
    total_tax_paise: int = 0
    gains: List[CapitalGain] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'fy': self.fy,
            'equity_stcg_paise': self.equity_stcg_paise,
            'equity_ltcg_paise': self.equity_ltcg_paise,
            'equity_ltcg_exemption_paise': self.equity_ltcg_exemption_paise,
            'debt_stcg_paise': self.debt_stcg_paise,
            'debt_ltcg_paise': self.debt_ltcg_paise,
            'total_tax_paise': self.total_tax_paise,
            'gains': [g.to_dict() for g in self.gains],
        }


class JobState(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SnapshotJobStatus:
    state: JobState
    owner_id: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    months_processed: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'status': self.state.value,
            'owner_id': self.owner_id,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'months_processed': self.months_processed,
            'error': self.error,
        }
