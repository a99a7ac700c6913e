"""Per-investment monthly snapshots and per-owner net-worth snapshots."""

import json
import logging
from typing import Dict, Iterable, List, Optional

from wealthledger.db.connection import get_db
from wealthledger.models import MonthlySnapshot, NetWorthSnapshot, TypeBreakdown

logger = logging.getLogger(__name__)

__all__ = [
    "save_monthly_snapshot",
    "delete_monthly_snapshot",
    "get_monthly_snapshots",
    "get_monthly_values_by_month",
    "save_net_worth_snapshot",
    "get_net_worth_snapshot",
    "get_net_worth_snapshots",
    "get_snapshot_detail",
    "clear_snapshots",
]


def save_monthly_snapshot(snapshot: MonthlySnapshot):
    """Replace the (investment, month) row."""
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO monthly_snapshots
                (investment_id, year_month, invested_paise, current_value_paise, gain_paise)
            VALUES (?, ?, ?, ?, ?)
        """, (snapshot.investment_id, snapshot.year_month, snapshot.invested_paise,
              snapshot.current_value_paise, snapshot.gain_paise))


def delete_monthly_snapshot(investment_id: int, year_month: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM monthly_snapshots WHERE investment_id = ? AND year_month = ?",
            (investment_id, year_month),
        )
        return cursor.rowcount > 0


def _row_to_monthly(row) -> MonthlySnapshot:
    return MonthlySnapshot(
        investment_id=row['investment_id'],
        year_month=row['year_month'],
        invested_paise=row['invested_paise'],
        current_value_paise=row['current_value_paise'],
        gain_paise=row['gain_paise'],
    )


def get_monthly_snapshots(investment_id: Optional[int] = None,
                          year_month: Optional[str] = None) -> List[MonthlySnapshot]:
    query = "SELECT * FROM monthly_snapshots WHERE 1=1"
    params = []
    if investment_id is not None:
        query += " AND investment_id = ?"
        params.append(investment_id)
    if year_month is not None:
        query += " AND year_month = ?"
        params.append(year_month)
    query += " ORDER BY year_month, investment_id"
    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_monthly(r) for r in rows]


def get_monthly_values_by_month(investment_ids: Iterable[int]) -> Dict[str, Dict[int, int]]:
    """
    Snapshot values for a set of investments, grouped by month.

    Returns {year_month: {investment_id: current_value_paise}}, months ascending.
    """
    ids = list(investment_ids)
    if not ids:
        return {}
    placeholders = ", ".join("?" for _ in ids)
    with get_db() as conn:
        rows = conn.execute(f"""
            SELECT investment_id, year_month, current_value_paise FROM monthly_snapshots
            WHERE investment_id IN ({placeholders})
            ORDER BY year_month
        """, ids).fetchall()

    by_month: Dict[str, Dict[int, int]] = {}
    for r in rows:
        by_month.setdefault(r['year_month'], {})[r['investment_id']] = r['current_value_paise']
    return by_month


def save_net_worth_snapshot(snapshot: NetWorthSnapshot):
    """Replace the (owner, month) row. Breakdown and goals are stored as JSON."""
    breakdown = {k: v.to_dict() for k, v in snapshot.breakdown.items()}
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO net_worth_snapshots
                (owner_id, year_month, total_invested_paise, total_value_paise,
                 total_debt_paise, net_worth_paise, breakdown_json, goals_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (snapshot.owner_id, snapshot.year_month, snapshot.total_invested_paise,
              snapshot.total_value_paise, snapshot.total_debt_paise, snapshot.net_worth_paise,
              json.dumps(breakdown), json.dumps(snapshot.goals)))


def _load_json(text: Optional[str], year_month: str) -> dict:
    if not text:
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"Malformed snapshot JSON for {year_month}, ignoring")
        return {}


def _row_to_net_worth(row) -> NetWorthSnapshot:
    breakdown = {
        key: TypeBreakdown(**{k: v for k, v in data.items() if k in TypeBreakdown.__dataclass_fields__})
        for key, data in _load_json(row['breakdown_json'], row['year_month']).items()
    }
    return NetWorthSnapshot(
        owner_id=row['owner_id'],
        year_month=row['year_month'],
        total_invested_paise=row['total_invested_paise'],
        total_value_paise=row['total_value_paise'],
        total_debt_paise=row['total_debt_paise'],
        net_worth_paise=row['net_worth_paise'],
        breakdown=breakdown,
        goals=_load_json(row['goals_json'], row['year_month']),
    )


def get_net_worth_snapshot(owner_id: int, year_month: str) -> Optional[NetWorthSnapshot]:
    with get_db() as conn:
        row = conn.execute("""
            SELECT * FROM net_worth_snapshots WHERE owner_id = ? AND year_month = ?
        """, (owner_id, year_month)).fetchone()
    return _row_to_net_worth(row) if row else None


def get_net_worth_snapshots(owner_id: int, newest_first: bool = False) -> List[NetWorthSnapshot]:
    order = "DESC" if newest_first else "ASC"
    with get_db() as conn:
        rows = conn.execute(f"""
            SELECT * FROM net_worth_snapshots WHERE owner_id = ? ORDER BY year_month {order}
        """, (owner_id,)).fetchall()
    return [_row_to_net_worth(r) for r in rows]


def get_snapshot_detail(owner_id: int, year_month: str) -> List[dict]:
    """Per-investment rows of one month, with investment name and type."""
    with get_db() as conn:
        rows = conn.execute("""
            SELECT ms.investment_id, ms.invested_paise, ms.current_value_paise, ms.gain_paise,
                   i.name AS investment_name, i.investment_type
            FROM monthly_snapshots ms
            JOIN investments i ON ms.investment_id = i.id
            WHERE ms.year_month = ? AND i.owner_id = ?
            ORDER BY i.investment_type, i.name
        """, (year_month, owner_id)).fetchall()
    return [dict(r) for r in rows]


def clear_snapshots(owner_id: Optional[int] = None) -> int:
    """Delete snapshots, for one owner or everyone. Returns net-worth rows removed."""
    with get_db() as conn:
        cursor = conn.cursor()
        if owner_id is None:
            cursor.execute("DELETE FROM monthly_snapshots")
            cursor.execute("DELETE FROM net_worth_snapshots")
        else:
            cursor.execute("""
                DELETE FROM monthly_snapshots
                WHERE investment_id IN (SELECT id FROM investments WHERE owner_id = ?)
            """, (owner_id,))
            cursor.execute("DELETE FROM net_worth_snapshots WHERE owner_id = ?", (owner_id,))
        return cursor.rowcount
