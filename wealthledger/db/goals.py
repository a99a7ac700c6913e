"""Goals and goal-investment links."""

import logging
from datetime import date, datetime
from typing import List, Optional

from wealthledger.db.connection import get_db
from wealthledger.models import Goal, GoalInvestment, InvestmentType, parse_date

logger = logging.getLogger(__name__)

__all__ = [
    "create_goal",
    "update_goal",
    "delete_goal",
    "get_goal_by_id",
    "get_goals_by_owner",
    "get_goal_links",
    "get_linked_goal_id",
    "link_investment_to_goal",
    "unlink_investment_from_goal",
]


def _row_to_goal(row) -> Goal:
    created = row['created_at']
    try:
        created_at = datetime.fromisoformat(str(created)) if created else None
    except ValueError:
        created_at = None
    return Goal(
        id=row['id'],
        owner_id=row['owner_id'],
        name=row['name'],
        target_amount_paise=row['target_amount_paise'],
        target_date=parse_date(row['target_date']),
        priority=row['priority'] if row['priority'] is not None else 5,
        is_active=bool(row['is_active']),
        notes=row['notes'],
        created_at=created_at,
    )


def create_goal(owner_id: int, name: str, target_amount_paise: int, target_date: date,
                priority: int = 5, notes: Optional[str] = None,
                created_at: Optional[str] = None) -> int:
    """Create a new goal. Returns the goal id."""
    with get_db() as conn:
        cursor = conn.cursor()
        if created_at:
            cursor.execute("""
                INSERT INTO goals (owner_id, name, target_amount_paise, target_date, priority, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (owner_id, name, target_amount_paise, target_date.isoformat(), priority, notes, created_at))
        else:
            cursor.execute("""
                INSERT INTO goals (owner_id, name, target_amount_paise, target_date, priority, notes)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (owner_id, name, target_amount_paise, target_date.isoformat(), priority, notes))
        return cursor.lastrowid


def update_goal(goal_id: int, name: str = None, target_amount_paise: int = None,
                target_date: date = None, priority: int = None, notes: str = None,
                is_active: bool = None) -> bool:
    """Update a goal's details."""
    updates = []
    values = []

    if name is not None:
        updates.append("name = ?")
        values.append(name)
    if target_amount_paise is not None:
        updates.append("target_amount_paise = ?")
        values.append(target_amount_paise)
    if target_date is not None:
        updates.append("target_date = ?")
        values.append(target_date.isoformat())
    if priority is not None:
        updates.append("priority = ?")
        values.append(priority)
    if notes is not None:
        updates.append("notes = ?")
        values.append(notes)
    if is_active is not None:
        updates.append("is_active = ?")
        values.append(1 if is_active else 0)

    if not updates:
        return False

    values.append(goal_id)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"UPDATE goals SET {', '.join(updates)} WHERE id = ?", values)
        return cursor.rowcount > 0


def delete_goal(goal_id: int) -> bool:
    """Delete a goal; its investment links cascade."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM goals WHERE id = ?", (goal_id,))
        return cursor.rowcount > 0


def get_goal_by_id(goal_id: int) -> Optional[Goal]:
    """Goal row with its links (values not computed)."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
    if not row:
        return None
    goal = _row_to_goal(row)
    goal.investments = get_goal_links(goal_id)
    return goal


def get_goals_by_owner(owner_id: int, active_only: bool = False) -> List[Goal]:
    query = "SELECT * FROM goals WHERE owner_id = ?"
    if active_only:
        query += " AND is_active = 1"
    query += " ORDER BY priority ASC, target_date ASC"
    with get_db() as conn:
        rows = conn.execute(query, (owner_id,)).fetchall()
    goals = []
    for row in rows:
        goal = _row_to_goal(row)
        goal.investments = get_goal_links(goal.id)
        goals.append(goal)
    return goals


def get_goal_links(goal_id: int) -> List[GoalInvestment]:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT gi.goal_id, gi.investment_id, gi.allocation_percent,
                   i.name AS investment_name, i.investment_type
            FROM goal_investments gi
            JOIN investments i ON gi.investment_id = i.id
            WHERE gi.goal_id = ?
            ORDER BY gi.investment_id
        """, (goal_id,)).fetchall()
    return [
        GoalInvestment(
            goal_id=r['goal_id'],
            investment_id=r['investment_id'],
            allocation_percent=r['allocation_percent'],
            investment_type=InvestmentType(r['investment_type']),
            investment_name=r['investment_name'],
        )
        for r in rows
    ]


def get_linked_goal_id(investment_id: int, excluding_goal_id: Optional[int] = None) -> Optional[int]:
    """Goal an investment is linked to, optionally ignoring one goal."""
    query = "SELECT goal_id FROM goal_investments WHERE investment_id = ?"
    params = [investment_id]
    if excluding_goal_id is not None:
        query += " AND goal_id != ?"
        params.append(excluding_goal_id)
    with get_db() as conn:
        row = conn.execute(query + " LIMIT 1", params).fetchone()
    return row['goal_id'] if row else None


def link_investment_to_goal(goal_id: int, investment_id: int, allocation_percent: float = 100) -> bool:
    """Insert or replace the goal-investment link."""
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO goal_investments (goal_id, investment_id, allocation_percent)
            VALUES (?, ?, ?)
        """, (goal_id, investment_id, allocation_percent))
        return True


def unlink_investment_from_goal(goal_id: int, investment_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "DELETE FROM goal_investments WHERE goal_id = ? AND investment_id = ?",
            (goal_id, investment_id)
        )
        return cursor.rowcount > 0
