"""Investment transactions, FIFO lots and sell allocations."""

import logging
from datetime import date
from typing import List, Optional

from wealthledger.db.connection import get_db
from wealthledger.lots import UNIT_EPSILON, allocate_fifo
from wealthledger.models import (
    INFLOW_TYPES,
    LOT_TYPES,
    OUTFLOW_TYPES,
    Lot,
    SellAllocation,
    SellResult,
    Transaction,
    TransactionType,
    parse_date,
)

logger = logging.getLogger(__name__)

__all__ = [
    "create_transaction",
    "get_transaction",
    "get_transactions",
    "get_lots",
    "execute_sell",
    "get_sell_allocations",
    "get_sell_allocations_between",
    "get_total_invested",
    "get_total_invested_as_of",
    "get_total_units",
    "get_total_units_as_of",
    "get_first_transaction_date",
]

_INFLOW_SQL = ", ".join(f"'{t.value}'" for t in sorted(INFLOW_TYPES, key=lambda t: t.value))
_OUTFLOW_SQL = ", ".join(f"'{t.value}'" for t in sorted(OUTFLOW_TYPES, key=lambda t: t.value))
_LOT_SQL = ", ".join(f"'{t.value}'" for t in sorted(LOT_TYPES, key=lambda t: t.value))


def _row_to_transaction(row) -> Transaction:
    return Transaction(
        id=row['id'],
        investment_id=row['investment_id'],
        owner_id=row['owner_id'],
        txn_type=TransactionType(row['txn_type']),
        date=parse_date(row['date']),
        amount_paise=row['amount_paise'],
        units=row['units'],
        price_per_unit_paise=row['price_per_unit_paise'],
        fees_paise=row['fees_paise'] or 0,
        notes=row['notes'],
    )


def _row_to_lot(row) -> Lot:
    return Lot(
        id=row['id'],
        investment_id=row['investment_id'],
        buy_txn_id=row['buy_txn_id'],
        buy_date=parse_date(row['buy_date']),
        units_bought=row['units_bought'],
        units_remaining=row['units_remaining'],
        cost_per_unit_paise=row['cost_per_unit_paise'],
    )


def create_transaction(investment_id: int, txn_type: TransactionType, txn_date: date,
                       amount_paise: int, owner_id: Optional[int] = None,
                       units: Optional[float] = None,
                       price_per_unit_paise: Optional[int] = None,
                       fees_paise: int = 0, notes: Optional[str] = None) -> int:
    """
    Insert a transaction. Returns the new transaction id.

    A buy or SIP that carries both units and a unit price also opens a FIFO
    lot at that price.
    """
    txn_type = TransactionType(txn_type)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO investment_transactions
                (investment_id, owner_id, txn_type, date, amount_paise, units,
                 price_per_unit_paise, fees_paise, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (investment_id, owner_id, txn_type.value, txn_date.isoformat(), amount_paise,
              units, price_per_unit_paise, fees_paise or 0, notes))
        txn_id = cursor.lastrowid

        if txn_type in LOT_TYPES and units and price_per_unit_paise:
            cursor.execute("""
                INSERT INTO investment_lots
                    (investment_id, buy_txn_id, buy_date, units_bought, units_remaining, cost_per_unit_paise)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (investment_id, txn_id, txn_date.isoformat(), units, units, price_per_unit_paise))

    return txn_id


def get_transaction(txn_id: int) -> Optional[Transaction]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM investment_transactions WHERE id = ?", (txn_id,)).fetchone()
        return _row_to_transaction(row) if row else None


def get_transactions(investment_id: int, as_of: Optional[date] = None) -> List[Transaction]:
    """Transactions for an investment, oldest first."""
    query = "SELECT * FROM investment_transactions WHERE investment_id = ?"
    params = [investment_id]
    if as_of is not None:
        query += " AND date <= ?"
        params.append(as_of.isoformat())
    query += " ORDER BY date, id"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_row_to_transaction(r) for r in rows]


def get_lots(investment_id: int, open_only: bool = False) -> List[Lot]:
    query = "SELECT * FROM investment_lots WHERE investment_id = ?"
    if open_only:
        query += " AND units_remaining > 0"
    query += " ORDER BY buy_date, id"
    with get_db() as conn:
        rows = conn.execute(query, (investment_id,)).fetchall()
        return [_row_to_lot(r) for r in rows]


def execute_sell(investment_id: int, owner_id: Optional[int], sell_date: date, units: float,
                 price_per_unit_paise: int, fees_paise: int = 0,
                 notes: Optional[str] = None) -> SellResult:
    """
    Record a disposal and consume lots oldest-first.

    The sell transaction is always written. Each consumed lot gets one
    allocation row carrying the lot's cost per unit. If the open lots cannot
    cover the units sold, the shortfall is logged and the sell still stands.
    """
    amount_paise = round(units * price_per_unit_paise)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO investment_transactions
                (investment_id, owner_id, txn_type, date, amount_paise, units,
                 price_per_unit_paise, fees_paise, notes)
            VALUES (?, ?, 'sell', ?, ?, ?, ?, ?, ?)
        """, (investment_id, owner_id, sell_date.isoformat(), amount_paise, units,
              price_per_unit_paise, fees_paise or 0, notes))
        sell_txn_id = cursor.lastrowid

        rows = conn.execute("""
            SELECT * FROM investment_lots
            WHERE investment_id = ? AND units_remaining > 0
            ORDER BY buy_date, id
        """, (investment_id,)).fetchall()
        result = allocate_fifo([_row_to_lot(r) for r in rows], units, sell_txn_id=sell_txn_id)

        for alloc in result.allocations:
            cursor.execute("""
                INSERT INTO lot_sell_allocations (sell_txn_id, lot_id, units_sold, cost_per_unit_paise)
                VALUES (?, ?, ?, ?)
            """, (sell_txn_id, alloc.lot_id, alloc.units_sold, alloc.cost_per_unit_paise))
            alloc.id = cursor.lastrowid

        for lot_id, remaining in result.remaining_units.items():
            cursor.execute(
                "UPDATE investment_lots SET units_remaining = ? WHERE id = ?",
                (remaining if remaining > UNIT_EPSILON else 0.0, lot_id)
            )

        txn = _row_to_transaction(conn.execute(
            "SELECT * FROM investment_transactions WHERE id = ?", (sell_txn_id,)
        ).fetchone())

    if not result.fully_allocated:
        logger.warning(
            f"FIFO sell: {result.unallocated:.4f} units could not be allocated from lots "
            f"for investment {investment_id}"
        )

    return SellResult(transaction=txn, allocations=result.allocations,
                      unallocated_units=result.unallocated if not result.fully_allocated else 0.0)


def get_sell_allocations(sell_txn_id: int) -> List[SellAllocation]:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT sa.*, l.buy_date
            FROM lot_sell_allocations sa
            JOIN investment_lots l ON sa.lot_id = l.id
            WHERE sa.sell_txn_id = ?
            ORDER BY l.buy_date, l.id
        """, (sell_txn_id,)).fetchall()
        return [
            SellAllocation(
                id=r['id'],
                sell_txn_id=r['sell_txn_id'],
                lot_id=r['lot_id'],
                units_sold=r['units_sold'],
                cost_per_unit_paise=r['cost_per_unit_paise'],
                buy_date=parse_date(r['buy_date']),
            )
            for r in rows
        ]


def get_sell_allocations_between(start: date, end: date, owner_id: Optional[int] = None) -> List[dict]:
    """
    Every lot allocation of sells dated within [start, end], with the sell and
    investment context needed to compute gains.
    """
    query = """
        SELECT sa.units_sold, sa.cost_per_unit_paise, l.buy_date,
               t.id AS sell_txn_id, t.date AS sell_date, t.price_per_unit_paise AS sell_price_paise,
               t.amount_paise AS sell_amount_paise, t.units AS sell_units,
               i.id AS investment_id, i.name AS investment_name, i.investment_type
        FROM lot_sell_allocations sa
        JOIN investment_lots l ON sa.lot_id = l.id
        JOIN investment_transactions t ON sa.sell_txn_id = t.id
        JOIN investments i ON t.investment_id = i.id
        WHERE t.txn_type = 'sell' AND t.date >= ? AND t.date <= ?
    """
    params = [start.isoformat(), end.isoformat()]
    if owner_id is not None:
        query += " AND i.owner_id = ?"
        params.append(owner_id)
    query += " ORDER BY t.date, t.id, l.buy_date, l.id"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    result = []
    for r in rows:
        item = dict(r)
        item['buy_date'] = parse_date(item['buy_date'])
        item['sell_date'] = parse_date(item['sell_date'])
        result.append(item)
    return result


# ==================== Aggregates ====================

def _net_invested(conn, investment_id: int, as_of: Optional[date]) -> int:
    date_clause = " AND date <= ?" if as_of is not None else ""
    params = [investment_id] + ([as_of.isoformat()] if as_of is not None else [])
    inflow = conn.execute(f"""
        SELECT COALESCE(SUM(amount_paise), 0) FROM investment_transactions
        WHERE investment_id = ? AND txn_type IN ({_INFLOW_SQL}){date_clause}
    """, params).fetchone()[0]
    outflow = conn.execute(f"""
        SELECT COALESCE(SUM(amount_paise), 0) FROM investment_transactions
        WHERE investment_id = ? AND txn_type IN ({_OUTFLOW_SQL}){date_clause}
    """, params).fetchone()[0]
    return inflow - outflow


def get_total_invested(investment_id: int) -> int:
    """Money put in minus money taken out, across all transactions."""
    with get_db() as conn:
        return _net_invested(conn, investment_id, None)


def get_total_invested_as_of(investment_id: int, as_of: date) -> int:
    with get_db() as conn:
        return _net_invested(conn, investment_id, as_of)


def get_total_units(investment_id: int) -> float:
    """Units currently held: the sum of open lot balances."""
    with get_db() as conn:
        return conn.execute("""
            SELECT COALESCE(SUM(units_remaining), 0) FROM investment_lots WHERE investment_id = ?
        """, (investment_id,)).fetchone()[0]


def get_total_units_as_of(investment_id: int, as_of: date) -> float:
    """Units held at a past date: bought/SIP units minus sold units up to as_of."""
    with get_db() as conn:
        bought = conn.execute(f"""
            SELECT COALESCE(SUM(units), 0) FROM investment_transactions
            WHERE investment_id = ? AND txn_type IN ({_LOT_SQL}) AND date <= ? AND units IS NOT NULL
        """, (investment_id, as_of.isoformat())).fetchone()[0]
        sold = conn.execute("""
            SELECT COALESCE(SUM(units), 0) FROM investment_transactions
            WHERE investment_id = ? AND txn_type = 'sell' AND date <= ? AND units IS NOT NULL
        """, (investment_id, as_of.isoformat())).fetchone()[0]
    return bought - sold


def get_first_transaction_date(investment_id: int) -> Optional[date]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT MIN(date) FROM investment_transactions WHERE investment_id = ?",
            (investment_id,)
        ).fetchone()
    return parse_date(row[0]) if row and row[0] else None
