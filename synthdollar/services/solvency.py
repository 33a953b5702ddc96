"""Health factor computation and enforcement."""
from __future__ import annotations

from typing import Mapping

from ..config import RiskConfig
from ..errors import HealthFactorBroken
from .valuation import PRECISION, ValuationService

# Returned for debt-free accounts instead of dividing by zero.
MAX_HEALTH_FACTOR = 2**256 - 1


class SolvencyGuard:
    """Stateless check of ``collateral_usd * threshold / debt`` against the minimum."""

    def __init__(self, valuation: ValuationService, risk: RiskConfig) -> None:
        self._valuation = valuation
        self._risk = risk

    @property
    def min_health_factor(self) -> int:
        return self._risk.min_health_factor

    def calculate_health_factor(self, debt: int, collateral_usd: int) -> int:
        if debt == 0:
            return MAX_HEALTH_FACTOR
        adjusted = (
            collateral_usd
            * self._risk.liquidation_threshold
            // self._risk.liquidation_precision
        )
        return adjusted * PRECISION // debt

    def health_factor(self, debt: int, balances: Mapping[str, int]) -> int:
        # Debt-free accounts are safe whatever the oracles say
        if debt == 0:
            return MAX_HEALTH_FACTOR
        collateral_usd = self._valuation.total_collateral_usd(balances)
        return self.calculate_health_factor(debt, collateral_usd)

    def is_solvent(self, debt: int, balances: Mapping[str, int]) -> bool:
        return self.health_factor(debt, balances) >= self._risk.min_health_factor

    def assert_solvent(self, account: str, debt: int, balances: Mapping[str, int]) -> int:
        """Raise HealthFactorBroken if the account is below the minimum; return its factor."""
        hf = self.health_factor(debt, balances)
        if hf < self._risk.min_health_factor:
            raise HealthFactorBroken(account, hf)
        return hf
