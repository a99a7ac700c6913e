"""FIFO lot consumption for disposals."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from wealthledger.models import Lot, SellAllocation

# Residual units below this are float noise, not a real shortfall
UNIT_EPSILON = 0.0001

__all__ = ['FifoResult', 'allocate_fifo', 'UNIT_EPSILON']


@dataclass
class FifoResult:
    """
    Outcome of matching a disposal against lots.

    Attributes:
        allocations: One entry per consumed lot, oldest first
        remaining_units: New units_remaining for every consumed lot, by lot id
        unallocated: Units that could not be matched (lots exhausted)
    """
    allocations: List[SellAllocation] = field(default_factory=list)
    remaining_units: Dict[int, float] = field(default_factory=dict)
    unallocated: float = 0.0

    @property
    def fully_allocated(self) -> bool:
        return self.unallocated <= UNIT_EPSILON


def allocate_fifo(lots: Iterable[Lot], units: float, sell_txn_id: int = 0) -> FifoResult:
    """
    Consume lots oldest-first for a disposal of `units`.

    Lots with no remaining units are skipped. Order is buy date ascending,
    ties broken by lot id. The input lots are not modified; the caller applies
    `remaining_units` to its store.
    """
    open_lots = sorted(
        (lot for lot in lots if lot.units_remaining > 0),
        key=lambda lot: (lot.buy_date, lot.id),
    )

    result = FifoResult()
    remaining = units
    for lot in open_lots:
        if remaining <= UNIT_EPSILON:
            break
        take = min(remaining, lot.units_remaining)
        result.allocations.append(SellAllocation(
            sell_txn_id=sell_txn_id,
            lot_id=lot.id,
            units_sold=take,
            cost_per_unit_paise=lot.cost_per_unit_paise,
            buy_date=lot.buy_date,
        ))
        result.remaining_units[lot.id] = lot.units_remaining - take
        remaining -= take

    result.unallocated = max(0.0, remaining)
    return result
