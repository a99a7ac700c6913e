"""Cached market prices (fund NAVs, share prices) and gold prices."""

import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from wealthledger.db.connection import get_db
from wealthledger.models import parse_date

logger = logging.getLogger(__name__)

__all__ = [
    "MF_SOURCES",
    "SHARE_SOURCES",
    "PricePoint",
    "cache_price",
    "cache_price_history",
    "get_latest_price",
    "get_price_on_or_before",
    "get_earliest_price",
    "has_price_history",
    "get_price_history",
    "cache_gold_price",
    "get_latest_gold_price",
    "get_gold_price_on_or_before",
]

MF_SOURCES = ("mfapi",)
SHARE_SOURCES = ("yahoo", "manual")

# (date, price in paise)
PricePoint = Tuple[date, int]


def _as_sources(sources) -> Sequence[str]:
    if isinstance(sources, str):
        return (sources,)
    return tuple(sources)


def _source_clause(sources: Sequence[str]) -> str:
    return ", ".join("?" for _ in sources)


def _source_rank(sources: Sequence[str]) -> str:
    """ORDER BY term ranking same-date prices by their position in `sources`."""
    whens = " ".join(f"WHEN ? THEN {i}" for i in range(len(sources)))
    return f"CASE source {whens} END"


def cache_price(symbol: str, source: str, price_date: date, price_paise: int):
    """Insert or replace one cached price."""
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO market_prices (symbol, source, date, price_paise)
            VALUES (?, ?, ?, ?)
        """, (symbol, source, price_date.isoformat(), price_paise))


def cache_price_history(symbol: str, source: str, history: Iterable[PricePoint]) -> int:
    """Bulk insert a price series. Returns rows written."""
    rows = [(symbol, source, d.isoformat(), p) for d, p in history]
    if not rows:
        return 0
    with get_db() as conn:
        conn.executemany("""
            INSERT OR REPLACE INTO market_prices (symbol, source, date, price_paise)
            VALUES (?, ?, ?, ?)
        """, rows)
    logger.debug(f"Cached {len(rows)} {source} prices for {symbol}")
    return len(rows)


def _point(row) -> Optional[PricePoint]:
    if not row:
        return None
    return parse_date(row['date']), row['price_paise']


def get_latest_price(symbol: str, sources=MF_SOURCES) -> Optional[PricePoint]:
    """Most recent cached price for a symbol from any of the given sources."""
    if not symbol:
        return None
    sources = _as_sources(sources)
    with get_db() as conn:
        row = conn.execute(f"""
            SELECT date, price_paise FROM market_prices
            WHERE symbol = ? AND source IN ({_source_clause(sources)})
            ORDER BY date DESC, {_source_rank(sources)} LIMIT 1
        """, (symbol, *sources, *sources)).fetchone()
    return _point(row)


def get_price_on_or_before(symbol: str, sources, target: date) -> Optional[PricePoint]:
    """Nearest cached price dated on or before target."""
    if not symbol:
        return None
    sources = _as_sources(sources)
    with get_db() as conn:
        row = conn.execute(f"""
            SELECT date, price_paise FROM market_prices
            WHERE symbol = ? AND source IN ({_source_clause(sources)}) AND date <= ?
            ORDER BY date DESC, {_source_rank(sources)} LIMIT 1
        """, (symbol, *sources, target.isoformat(), *sources)).fetchone()
    return _point(row)


def get_earliest_price(symbol: str, sources) -> Optional[PricePoint]:
    if not symbol:
        return None
    sources = _as_sources(sources)
    with get_db() as conn:
        row = conn.execute(f"""
            SELECT date, price_paise FROM market_prices
            WHERE symbol = ? AND source IN ({_source_clause(sources)})
            ORDER BY date ASC, {_source_rank(sources)} LIMIT 1
        """, (symbol, *sources, *sources)).fetchone()
    return _point(row)


def has_price_history(symbol: str, sources) -> bool:
    return get_earliest_price(symbol, sources) is not None


def get_price_history(symbol: str, sources=None) -> List[PricePoint]:
    """Full cached series for a symbol, oldest first."""
    query = "SELECT date, price_paise FROM market_prices WHERE symbol = ?"
    params = [symbol]
    if sources:
        sources = _as_sources(sources)
        query += f" AND source IN ({_source_clause(sources)})"
        params.extend(sources)
    query += " ORDER BY date ASC"
    with get_db() as conn:
        rows = conn.execute(query, params).fetchall()
    return [_point(r) for r in rows]


# ==================== Gold ====================

def cache_gold_price(price_date: date, price_per_gram_paise: int):
    """Insert or replace the 24K per-gram gold price for a date."""
    with get_db() as conn:
        conn.execute("""
            INSERT OR REPLACE INTO gold_prices (date, price_per_gram_paise) VALUES (?, ?)
        """, (price_date.isoformat(), price_per_gram_paise))


def get_latest_gold_price() -> Optional[PricePoint]:
    with get_db() as conn:
        row = conn.execute("""
            SELECT date, price_per_gram_paise AS price_paise FROM gold_prices
            ORDER BY date DESC LIMIT 1
        """).fetchone()
    return _point(row)


def get_gold_price_on_or_before(target: date) -> Optional[PricePoint]:
    with get_db() as conn:
        row = conn.execute("""
            SELECT date, price_per_gram_paise AS price_paise FROM gold_prices
            WHERE date <= ? ORDER BY date DESC LIMIT 1
        """, (target.isoformat(),)).fetchone()
    return _point(row)
