"""
Pip, lot and margin arithmetic for currency pairs.

A standard lot is 100,000 units of the base currency. A pip is 0.0001
for most pairs and 0.01 for JPY-quoted pairs.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)

STANDARD_LOT_UNITS = 100000

# USD value of one pip on one standard lot for USD-quoted majors
STANDARD_PIP_VALUE = 10.0

PIP_SIZES = {
    "EUR/USD": 0.0001,
    "GBP/USD": 0.0001,
    "USD/JPY": 0.01,
    "USD/CHF": 0.0001,
    "AUD/USD": 0.0001,
    "NZD/USD": 0.0001,
    "USD/CAD": 0.0001,
    "EUR/GBP": 0.0001,
    "EUR/JPY": 0.01,
    "GBP/JPY": 0.01,
}

# Approximate conversion rates used to express pip values in USD
APPROX_RATES = {
    "USD/JPY": 155.0,
    "USD/CHF": 0.91,
    "USD/CAD": 1.37,
    "GBP/USD": 1.25,
    "EUR/USD": 1.07,
    "JPY/USD": 1 / 155.0,
    "CHF/USD": 1 / 0.91,
    "CAD/USD": 1 / 1.37,
}


def normalize_pair(pair: str) -> str:
    """Upper-case a pair and accept EURUSD / EUR_USD spellings."""
    pair = pair.strip().upper().replace("_", "/").replace("-", "/")
    if "/" not in pair and len(pair) == 6:
        pair = f"{pair[:3]}/{pair[3:]}"
    return pair


def is_jpy(pair: str) -> bool:
    return "JPY" in pair.upper()


def pip_size(pair: str) -> float:
    """Price increment of one pip for a pair."""
    pair = normalize_pair(pair)
    default = 0.01 if is_jpy(pair) else 0.0001
    return PIP_SIZES.get(pair, default)


def pip_multiplier(symbol: str) -> int:
    """Factor turning a price difference into pips."""
    return 100 if is_jpy(symbol) else 10000


def pip_value(lot_size: float) -> float:
    """USD value of one pip for the given lot size."""
    return STANDARD_PIP_VALUE * lot_size


def pip_value_per_lot_usd(pair: str, size: Optional[float] = None) -> float:
    """
    Approximate USD value of one pip on one standard lot.

    Returns 0.0 when the pair cannot be converted to USD.
    """
    pair = normalize_pair(pair)
    if size is None:
        size = pip_size(pair)

    parts = pair.split("/")
    if len(parts) != 2:
        return 0.0
    base, quote = parts
    raw = size * STANDARD_LOT_UNITS

    if quote == "USD":
        return raw

    if base == "USD":
        rate = APPROX_RATES.get(pair)
        if rate and rate > 0:
            return raw / rate
    else:
        # Cross pair: convert through the quote currency's USD rate
        if quote == "JPY":
            rate = APPROX_RATES["JPY/USD"]
        else:
            rate = APPROX_RATES.get(f"{quote}/USD")
        if rate and rate > 0:
            return raw * rate

    logger.warning(f"Could not determine approximate pip value in USD for pair: {pair}")
    return 0.0


def trade_profit(side: str, entry_price: float, exit_price: float, lot_size: float, symbol: str) -> float:
    """
    Profit of a closed trade in USD.

    The pip distance is always positive; the sign is +1 when the price
    moved in the trade's favour and -1 otherwise.
    """
    side = side.upper()
    pips = abs(exit_price - entry_price) * pip_multiplier(symbol)
    if side == "BUY":
        direction = 1 if exit_price > entry_price else -1
    else:
        direction = 1 if exit_price < entry_price else -1
    # Adding 0.0 turns a -0.0 result into 0.0
    return round(pips * pip_value(lot_size) * direction, 2) + 0.0


def profit_loss(side: str, entry_price: float, current_price: float, quantity: float) -> float:
    """Unit P&L of a position: price difference times quantity."""
    if side.upper() == "BUY":
        return (current_price - entry_price) * quantity
    return (entry_price - current_price) * quantity


def required_margin(quantity: float, price: float, leverage: float) -> float:
    """Margin needed to open a position at the given leverage."""
    if not leverage or leverage <= 0:
        leverage = 1
    return quantity * price / leverage


def lots_to_units(lots: float) -> float:
    return lots * STANDARD_LOT_UNITS


def units_to_lots(units: float) -> float:
    return units / STANDARD_LOT_UNITS
