"""Recurring contribution rules (SIPs, standing instructions)."""

import logging
from datetime import date
from typing import List, Optional

from wealthledger.db.connection import get_db
from wealthledger.models import RecurringRule, parse_date

logger = logging.getLogger(__name__)

__all__ = ["FREQUENCIES", "create_recurring_rule", "get_recurring_rules", "deactivate_recurring_rule"]

FREQUENCIES = ("daily", "weekly", "monthly", "yearly")


def create_recurring_rule(investment_id: int, amount_paise: int, frequency: str,
                          start_date: date, end_date: Optional[date] = None) -> int:
    if frequency not in FREQUENCIES:
        raise ValueError(f"Invalid frequency: {frequency}. Must be one of {FREQUENCIES}")
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO recurring_rules (investment_id, amount_paise, frequency, start_date, end_date)
            VALUES (?, ?, ?, ?, ?)
        """, (investment_id, amount_paise, frequency, start_date.isoformat(),
              end_date.isoformat() if end_date else None))
        return cursor.lastrowid


def get_recurring_rules(investment_id: int, active_only: bool = True) -> List[RecurringRule]:
    query = "SELECT * FROM recurring_rules WHERE investment_id = ?"
    if active_only:
        query += " AND is_active = 1"
    query += " ORDER BY start_date, id"
    with get_db() as conn:
        rows = conn.execute(query, (investment_id,)).fetchall()
    return [
        RecurringRule(
            investment_id=r['investment_id'],
            amount_paise=r['amount_paise'],
            frequency=r['frequency'],
            start_date=parse_date(r['start_date']),
            end_date=parse_date(r['end_date']),
            is_active=bool(r['is_active']),
            id=r['id'],
        )
        for r in rows
    ]


def deactivate_recurring_rule(rule_id: int) -> bool:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("UPDATE recurring_rules SET is_active = 0 WHERE id = ?", (rule_id,))
        return cursor.rowcount > 0
