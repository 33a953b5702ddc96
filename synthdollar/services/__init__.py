"""Service modules"""
from .engine import AccountingEngine
from .ledger import CollateralLedger, DebtLedger
from .solvency import MAX_HEALTH_FACTOR, SolvencyGuard
from .valuation import PRECISION, ValuationService

__all__ = [
    "AccountingEngine",
    "CollateralLedger",
    "DebtLedger",
    "MAX_HEALTH_FACTOR",
    "PRECISION",
    "SolvencyGuard",
    "ValuationService",
]
