"""Data models. All frozen."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PriceQuote:
    """A single oracle reading.

    ``price`` is an integer scaled by ``10**decimals``; ``updated_at`` is a
    unix timestamp, 0 when the feed has never reported.
    """

    price: int
    decimals: int
    updated_at: float


@dataclass(frozen=True)
class AccountInformation:
    """Read-only view of one account's position."""

    debt: int
    collateral_value_usd: int
    health_factor: int


@dataclass(frozen=True)
class LiquidationResult:
    """Outcome of a committed liquidation."""

    liquidator: str
    target: str
    asset: str
    debt_covered: int
    collateral_seized: int
    bonus_collateral: int
    start_health_factor: int
    end_health_factor: int

    @property
    def total_collateral_seized(self) -> int:
        return self.collateral_seized + self.bonus_collateral
