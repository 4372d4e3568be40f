"""
Market data service for quotes, instruments and price history.

Prices come from a synthetic feed: a base price per instrument with a
small random variation. Quotes are cached in Redis for a few seconds so
consecutive calls within a request see a consistent price.
"""
import logging
import random
from datetime import datetime, time, timedelta
from typing import Dict, List, Any

import numpy as np
import pandas as pd
import pytz

from app.core.cache import redis_cache
from app.strategies.pricing import normalize_pair, profit_loss

logger = logging.getLogger(__name__)

INSTRUMENTS = {
    "forex": [
        "EUR/USD", "GBP/USD", "USD/JPY", "USD/CAD", "AUD/USD",
        "NZD/USD", "USD/CHF", "EUR/GBP", "EUR/JPY", "GBP/JPY",
    ],
    "crypto": [
        "BTC/USD", "ETH/USD", "XRP/USD", "LTC/USD", "BCH/USD",
        "ADA/USD", "DOT/USD", "SOL/USD", "DOGE/USD", "LINK/USD",
    ],
    "commodities": ["GOLD/USD", "SILVER/USD", "OIL/USD", "NATGAS/USD", "COPPER/USD"],
    "indices": ["US500/USD", "US30/USD", "USTEC/USD", "UK100/GBP", "DE40/EUR"],
}

BASE_PRICES = {
    "EUR/USD": 1.08,
    "GBP/USD": 1.27,
    "USD/JPY": 150.5,
    "USD/CAD": 1.35,
    "AUD/USD": 0.65,
    "NZD/USD": 0.61,
    "USD/CHF": 0.90,
    "EUR/GBP": 0.85,
    "EUR/JPY": 162.5,
    "GBP/JPY": 191.5,
    "BTC/USD": 65000,
    "ETH/USD": 3500,
    "XRP/USD": 0.50,
    "LTC/USD": 80,
    "BCH/USD": 350,
    "ADA/USD": 0.40,
    "DOT/USD": 7.5,
    "SOL/USD": 150,
    "DOGE/USD": 0.12,
    "LINK/USD": 15,
    "GOLD/USD": 2300,
    "SILVER/USD": 28,
    "OIL/USD": 75,
    "NATGAS/USD": 2.1,
    "COPPER/USD": 4.2,
    "US500/USD": 5200,
    "US30/USD": 39000,
    "USTEC/USD": 18000,
    "UK100/GBP": 7700,
    "DE40/EUR": 17800,
}

# Quote variation around the base price (0.2%)
PRICE_VARIATION = 0.002

# New York session rollover
SESSION_ROLLOVER = time(17, 0)

TIMEFRAME_DAYS = {"1h": 2, "4h": 7, "1d": 30, "1w": 180, "1m": 365}
TIMEFRAME_FREQ = {
    "1m": "1min", "5m": "5min", "15m": "15min", "30m": "30min",
    "1h": "1h", "4h": "4h", "1d": "1D", "1w": "7D",
}


class MarketDataService:
    """Service for synthetic market data."""

    def __init__(self, rng: random.Random = None):
        self.rng = rng or random.Random()
        self._pinned: Dict[str, float] = {}

    def is_supported(self, pair: str) -> bool:
        return normalize_pair(pair) in BASE_PRICES

    def get_instruments(self) -> Dict[str, List[Dict[str, Any]]]:
        """Tradable instruments grouped by asset class, with stable ids."""
        catalogue = {}
        next_id = 1
        for asset_class, symbols in INSTRUMENTS.items():
            catalogue[asset_class] = []
            for symbol in symbols:
                catalogue[asset_class].append({"id": next_id, "symbol": symbol})
                next_id += 1
        return catalogue

    def pin_price(self, pair: str, price: float):
        """Fix the price of a pair, overriding the synthetic feed."""
        self._pinned[normalize_pair(pair)] = float(price)
        redis_cache.set_quote(normalize_pair(pair), float(price))

    def unpin_price(self, pair: str = None):
        if pair is None:
            for symbol in list(self._pinned):
                redis_cache.delete(f"quote:{symbol}")
            self._pinned.clear()
            return
        symbol = normalize_pair(pair)
        self._pinned.pop(symbol, None)
        redis_cache.delete(f"quote:{symbol}")

    def get_current_price(self, pair: str) -> float:
        """Current price for a pair; unknown pairs are quoted around 1.0."""
        symbol = normalize_pair(pair)
        if symbol in self._pinned:
            return self._pinned[symbol]

        cached = redis_cache.get_quote(symbol)
        if cached is not None:
            return float(cached)

        if symbol not in BASE_PRICES:
            logger.warning(f"No base price for {symbol}, quoting around 1.0")
        base = BASE_PRICES.get(symbol, 1.0)
        variation = base * PRICE_VARIATION
        price = base + self.rng.randint(-100, 100) / 100 * variation

        redis_cache.set_quote(symbol, price)
        return price

    def get_quote(self, pair: str) -> Dict[str, Any]:
        """Quote with a synthetic spread of one pip-equivalent each side."""
        symbol = normalize_pair(pair)
        price = self.get_current_price(symbol)
        half_spread = price * 0.00005
        return {
            "symbol": symbol,
            "price": price,
            "bid": price - half_spread,
            "ask": price + half_spread,
            "timestamp": datetime.now().isoformat(),
        }

    def calculate_profit_loss(self, trade_type: str, entry_price: float, current_price: float,
                              quantity: float) -> float:
        return profit_loss(trade_type, entry_price, current_price, quantity)

    def get_historical_bars(self, pair: str, days: int = 30, timeframe: str = "1d") -> pd.DataFrame:
        """
        Synthetic OHLCV bars as a random walk from the base price.

        Args:
            pair: instrument symbol
            days: how far back the series starts
            timeframe: bar size (1m, 5m, 15m, 30m, 1h, 4h, 1d, 1w)

        Returns:
            DataFrame indexed by timestamp with open/high/low/close/volume columns
        """
        symbol = normalize_pair(pair)
        freq = TIMEFRAME_FREQ.get(timeframe, "1D")
        end = datetime.now()
        index = pd.date_range(end=end, start=end - timedelta(days=days), freq=freq)
        if len(index) == 0:
            return pd.DataFrame(columns=["open", "high", "low", "close", "volume"])

        seed = self.rng.randint(0, 2 ** 31 - 1)
        gen = np.random.default_rng(seed)
        base = BASE_PRICES.get(symbol, 1.0)
        volatility = base * 0.01

        steps = gen.uniform(-1, 1, len(index)) * volatility
        opens = np.maximum(base + np.cumsum(steps), base * 0.01)
        closes = opens + gen.uniform(-0.3, 0.3, len(index)) * volatility
        highs = np.maximum.reduce([opens * (1 + gen.uniform(0, 0.005, len(index))), opens, closes])
        lows = np.minimum.reduce([opens * (1 - gen.uniform(0, 0.005, len(index))), opens, closes])

        df = pd.DataFrame({
            "open": opens.round(5),
            "high": highs.round(5),
            "low": lows.round(5),
            "close": closes.round(5),
            "volume": gen.integers(1000, 10000, len(index)),
        }, index=index)
        df.index.name = "timestamp"
        return df

    def get_chart_data(self, pair: str, timeframe: str = "1d", limit: int = None) -> List[Dict[str, Any]]:
        """Bars as JSON rows with millisecond timestamps."""
        days = TIMEFRAME_DAYS.get(timeframe, 30)
        df = self.get_historical_bars(pair, days, timeframe)
        if limit:
            df = df.tail(limit)
        rows = []
        for ts, bar in df.iterrows():
            rows.append({
                "timestamp": int(ts.timestamp() * 1000),
                "open": float(bar["open"]),
                "high": float(bar["high"]),
                "low": float(bar["low"]),
                "close": float(bar["close"]),
                "volume": int(bar["volume"]),
            })
        return rows

    def get_market_overview(self) -> Dict[str, Any]:
        """Per-class prices plus top gainers, losers, most active and sentiment."""
        rows = []
        for symbol in BASE_PRICES:
            price = self.get_current_price(symbol)
            change_percent = self.rng.randint(-300, 300) / 100
            rows.append({
                "pair": symbol,
                "price": price,
                "change_percent": change_percent,
                "change_amount": price * change_percent / 100,
                "volume": self.rng.randint(10000, 1000000),
                "high": price * (1 + self.rng.randint(10, 50) / 1000),
                "low": price * (1 - self.rng.randint(10, 50) / 1000),
            })

        by_pair = {row["pair"]: row for row in rows}

        def section(asset_class):
            return [
                {
                    "symbol": symbol,
                    "price": by_pair[symbol]["price"],
                    "change_24h": by_pair[symbol]["change_percent"],
                    "volume_24h": by_pair[symbol]["volume"],
                }
                for symbol in INSTRUMENTS[asset_class]
            ]

        gainers = sorted((r for r in rows if r["change_percent"] > 0),
                         key=lambda r: r["change_percent"], reverse=True)[:5]
        losers = sorted((r for r in rows if r["change_percent"] < 0), key=lambda r: r["change_percent"])[:5]
        active = sorted(rows, key=lambda r: r["volume"], reverse=True)[:5]

        bullish = self.rng.randint(30, 70)
        bearish = self.rng.randint(30, 70)
        neutral = self.rng.randint(10, 30)
        total = bullish + bearish + neutral
        bullish_pct = round(bullish / total * 100)
        bearish_pct = round(bearish / total * 100)

        return {
            "forex": section("forex"),
            "crypto": section("crypto"),
            "commodities": section("commodities"),
            "indices": section("indices"),
            "top_gainers": gainers,
            "top_losers": losers,
            "most_active": active,
            "market_sentiment": {
                "bullish": bullish_pct,
                "bearish": bearish_pct,
                "neutral": 100 - bullish_pct - bearish_pct,
            },
            "timestamp": datetime.now().isoformat(),
        }

    def get_market_status(self, now: datetime = None) -> Dict[str, Any]:
        """
        FX session status.

        The market runs from Sunday 17:00 to Friday 17:00 New York time.
        """
        eastern = pytz.timezone("US/Eastern")
        now_eastern = now.astimezone(eastern) if now is not None else datetime.now(eastern)
        weekday = now_eastern.weekday()
        after_open = now_eastern.hour >= 17

        if weekday == 5 or (weekday == 4 and after_open) or (weekday == 6 and not after_open):
            is_open = False
            days_to_sunday = (6 - weekday) % 7
            next_open = eastern.localize(datetime.combine(
                (now_eastern + timedelta(days=days_to_sunday)).date(), SESSION_ROLLOVER
            ))
            next_close = None
        else:
            is_open = True
            next_open = None
            days_to_friday = (4 - weekday) % 7
            next_close = eastern.localize(datetime.combine(
                (now_eastern + timedelta(days=days_to_friday)).date(), SESSION_ROLLOVER
            ))

        return {
            "is_open": is_open,
            "next_open": next_open.isoformat() if next_open else None,
            "next_close": next_close.isoformat() if next_close else None,
            "current_time": now_eastern.isoformat(),
        }


# Global market data service instance
market_data_service = MarketDataService()
