"""
Price-history backfill for the historical reconstruction engine.

Fund NAV history comes from mfapi.in, share closes from the Yahoo Finance
chart API. Fetched series are written to the market price cache; the engine
only ever reads prices back through wealthledger.db.market_prices.
"""

import asyncio
import json
import logging
import urllib.request
from datetime import datetime
from typing import List, Optional

from wealthledger.db.market_prices import PricePoint, cache_price_history
from wealthledger.models import parse_date

logger = logging.getLogger(__name__)

MFAPI_URL = "https://api.mfapi.in/mf/{code}"
YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}?interval=1d&range={range}"
HTTP_TIMEOUT = 30


def _fetch_json(url: str) -> Optional[dict]:
    request = urllib.request.Request(url, headers={'User-Agent': 'wealthledger'})
    try:
        with urllib.request.urlopen(request, timeout=HTTP_TIMEOUT) as response:
            return json.loads(response.read().decode('utf-8', errors='ignore'))
    except Exception as e:
        logger.error(f"Failed to fetch {url}: {e}")
        return None


def parse_mfapi_history(payload: Optional[dict]) -> List[PricePoint]:
    """mfapi 'data' entries ({'date': 'DD-MM-YYYY', 'nav': '123.45'}) -> price points."""
    points = []
    for entry in (payload or {}).get('data') or []:
        try:
            nav = float(entry.get('nav'))
        except (TypeError, ValueError):
            continue
        nav_date = parse_date(entry.get('date'))
        if nav_date is None:
            continue
        points.append((nav_date, round(nav * 100)))
    points.sort()
    return points


def parse_yahoo_chart(payload: Optional[dict]) -> List[PricePoint]:
    """Daily closes from a Yahoo chart response -> price points."""
    results = ((payload or {}).get('chart') or {}).get('result') or []
    if not results:
        return []
    result = results[0]
    timestamps = result.get('timestamp') or []
    quotes = ((result.get('indicators') or {}).get('quote') or [{}])[0]
    closes = quotes.get('close') or []

    points = []
    for ts, close in zip(timestamps, closes):
        if close is None:
            continue
        points.append((datetime.fromtimestamp(ts).date(), round(close * 100)))
    points.sort()
    return points


def yahoo_symbol(ticker: str, exchange: str = "NSE") -> str:
    return f"{ticker}.BO" if (exchange or "").upper() == "BSE" else f"{ticker}.NS"


class MarketData:
    """
    Fetches full price history for a symbol and caches it.

    The engine calls `backfill_history` at most once per symbol per run.
    """

    def __init__(self, stock_range: str = "10y"):
        self.stock_range = stock_range

    def fetch_history(self, symbol: str, source: str, exchange: str = "NSE") -> List[PricePoint]:
        if source == "mfapi":
            return parse_mfapi_history(_fetch_json(MFAPI_URL.format(code=symbol)))
        if source in ("yahoo", "manual"):
            url = YAHOO_CHART_URL.format(symbol=yahoo_symbol(symbol, exchange), range=self.stock_range)
            return parse_yahoo_chart(_fetch_json(url))
        logger.warning(f"No history provider for source '{source}'")
        return []

    async def backfill_history(self, symbol: str, source: str, exchange: str = "NSE") -> int:
        """Fetch and cache the full history of a symbol. Returns prices cached."""
        loop = asyncio.get_running_loop()
        history = await loop.run_in_executor(None, self.fetch_history, symbol, source, exchange)
        # Manual prices are user-entered; fetched closes are cached as yahoo
        cache_source = "yahoo" if source == "manual" else source
        count = cache_price_history(symbol, cache_source, history)
        logger.info(f"Backfilled {count} {cache_source} prices for {symbol}")
        return count
