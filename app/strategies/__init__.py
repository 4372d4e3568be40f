"""
Trading arithmetic package.

Contains pip and profit calculations and the risk formulas.
"""

from app.strategies import pricing, risk_formulas

__all__ = [
    "pricing",
    "risk_formulas",
]
