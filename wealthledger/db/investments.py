"""Investments with their per-class detail rows, and value overrides."""

import logging
from datetime import date, datetime
from typing import List, Optional

from wealthledger.db.connection import get_db
from wealthledger.models import (
    Detail,
    Investment,
    InvestmentType,
    Override,
    detail_from_row,
    detail_to_row,
    parse_date,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DETAIL_TABLES",
    "create_investment",
    "update_investment_detail",
    "deactivate_investment",
    "delete_investment",
    "get_investment",
    "get_investments",
    "create_override",
    "get_latest_override",
    "get_overrides",
]

DETAIL_TABLES = {
    InvestmentType.FD: "investment_fd",
    InvestmentType.RD: "investment_rd",
    InvestmentType.MF_EQUITY: "investment_mf",
    InvestmentType.MF_HYBRID: "investment_mf",
    InvestmentType.MF_DEBT: "investment_mf",
    InvestmentType.SHARES: "investment_shares",
    InvestmentType.GOLD: "investment_gold",
    InvestmentType.LOAN: "investment_loan",
    InvestmentType.FIXED_ASSET: "investment_fixed_asset",
    InvestmentType.PENSION: "investment_pension",
    InvestmentType.SAVINGS_ACCOUNT: "investment_savings_account",
    InvestmentType.EXPENSE: "investment_expense",
}


def _row_to_investment(conn, row) -> Investment:
    inv_type = InvestmentType(row['investment_type'])
    detail_row = conn.execute(
        f"SELECT * FROM {DETAIL_TABLES[inv_type]} WHERE investment_id = ?",
        (row['id'],)
    ).fetchone()
    created = row['created_at']
    return Investment(
        id=row['id'],
        owner_id=row['owner_id'],
        investment_type=inv_type,
        name=row['name'],
        detail=detail_from_row(inv_type, dict(detail_row) if detail_row else {}),
        is_active=bool(row['is_active']),
        created_at=_parse_timestamp(created),
    )


def _parse_timestamp(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        parsed = parse_date(value)
        return datetime(parsed.year, parsed.month, parsed.day) if parsed else None


def _write_detail(conn, investment_id: int, inv_type: InvestmentType, detail: Detail):
    row = detail_to_row(detail)
    row['investment_id'] = investment_id
    columns = ", ".join(row.keys())
    placeholders = ", ".join("?" for _ in row)
    conn.execute(
        f"INSERT OR REPLACE INTO {DETAIL_TABLES[inv_type]} ({columns}) VALUES ({placeholders})",
        tuple(row.values())
    )


def create_investment(owner_id: int, investment_type: InvestmentType, name: str,
                      detail: Optional[Detail] = None, created_at: Optional[str] = None) -> int:
    """Create an investment and its detail row. Returns the new id."""
    inv_type = InvestmentType(investment_type)
    if detail is None:
        detail = detail_from_row(inv_type, {})
    with get_db() as conn:
        cursor = conn.cursor()
        if created_at:
            cursor.execute("""
                INSERT INTO investments (owner_id, investment_type, name, created_at)
                VALUES (?, ?, ?, ?)
            """, (owner_id, inv_type.value, name, created_at))
        else:
            cursor.execute("""
                INSERT INTO investments (owner_id, investment_type, name)
                VALUES (?, ?, ?)
            """, (owner_id, inv_type.value, name))
        investment_id = cursor.lastrowid
        _write_detail(conn, investment_id, inv_type, detail)

    logger.info(f"Created {inv_type.value} investment {investment_id}: {name}")
    return investment_id


def update_investment_detail(investment_id: int, detail: Detail) -> bool:
    """Replace the detail row of an existing investment."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT investment_type FROM investments WHERE id = ?", (investment_id,)
        ).fetchone()
        if not row:
            return False
        _write_detail(conn, investment_id, InvestmentType(row['investment_type']), detail)
        conn.execute(
            "UPDATE investments SET updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (investment_id,)
        )
        return True


def deactivate_investment(investment_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("UPDATE investments SET is_active = 0 WHERE id = ?", (investment_id,))
        return cursor.rowcount > 0


def delete_investment(investment_id: int) -> bool:
    """Delete an investment; detail, transactions, lots and snapshots cascade."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM investments WHERE id = ?", (investment_id,))
        return cursor.rowcount > 0


def get_investment(investment_id: int) -> Optional[Investment]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM investments WHERE id = ?", (investment_id,)).fetchone()
        if not row:
            return None
        return _row_to_investment(conn, row)


def get_investments(owner_id: Optional[int] = None,
                    investment_type: Optional[InvestmentType] = None,
                    active_only: bool = True) -> List[Investment]:
    """List investments, optionally filtered by owner and asset class."""
    query = "SELECT * FROM investments WHERE 1=1"
    params = []
    if owner_id is not None:
        query += " AND owner_id = ?"
        params.append(owner_id)
    if investment_type is not None:
        query += " AND investment_type = ?"
        params.append(InvestmentType(investment_type).value)
    if active_only:
        query += " AND is_active = 1"
    query += " ORDER BY id"

    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_row_to_investment(conn, row) for row in rows]


# ==================== Overrides ====================

def create_override(investment_id: int, override_date: date, value_paise: int,
                    reason: Optional[str] = None) -> int:
    """Record a user-asserted value for an investment from override_date on."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO investment_overrides (investment_id, override_date, value_paise, reason)
            VALUES (?, ?, ?, ?)
        """, (investment_id, override_date.isoformat(), value_paise, reason))
        return cursor.lastrowid


def _row_to_override(row) -> Override:
    return Override(
        id=row['id'],
        investment_id=row['investment_id'],
        override_date=parse_date(row['override_date']),
        value_paise=row['value_paise'],
        reason=row['reason'],
    )


def get_latest_override(investment_id: int, on_or_before: Optional[date] = None) -> Optional[Override]:
    """Most recent override, optionally restricted to those dated on or before a date."""
    query = "SELECT * FROM investment_overrides WHERE investment_id = ?"
    params = [investment_id]
    if on_or_before is not None:
        query += " AND override_date <= ?"
        params.append(on_or_before.isoformat())
    query += " ORDER BY override_date DESC, id DESC LIMIT 1"

    with get_db() as conn:
        row = conn.execute(query, params).fetchone()
        return _row_to_override(row) if row else None


def get_overrides(investment_id: int) -> List[Override]:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT * FROM investment_overrides
            WHERE investment_id = ?
            ORDER BY override_date, id
        """, (investment_id,)).fetchall()
        return [_row_to_override(r) for r in rows]
