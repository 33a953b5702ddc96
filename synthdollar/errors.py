"""Engine error taxonomy.

Every failure is local to the operation that raised it: the engine rolls the
ledgers back before the error reaches the caller, and nothing is retried.
"""
from __future__ import annotations


class EngineError(Exception):
    """Base class for all accounting engine failures."""


class InvalidAmount(EngineError):
    """Amount is zero, negative, or not an integer where a positive integer is required."""

    def __init__(self, amount: object) -> None:
        super().__init__(f"Amount must be a positive integer, got {amount!r}")
        self.amount = amount


class UnsupportedAsset(EngineError):
    """Asset is not in the engine's closed set of collateral types."""

    def __init__(self, asset: str) -> None:
        super().__init__(f"Asset '{asset}' is not an allowed collateral")
        self.asset = asset


class InsufficientBalance(EngineError):
    """A decrement would take a collateral or debt balance below zero."""

    def __init__(self, account: str, what: str, available: int, requested: int) -> None:
        super().__init__(
            f"{account}: cannot remove {requested} {what}, only {available} recorded"
        )
        self.account = account
        self.what = what
        self.available = available
        self.requested = requested


class TransferFailed(EngineError):
    """An external token transfer, transfer_from, or burn did not succeed."""


class MintFailed(EngineError):
    """The debt token refused to mint."""


class HealthFactorBroken(EngineError):
    """Operation would leave the account below the minimum health factor."""

    def __init__(self, account: str, health_factor: int) -> None:
        super().__init__(f"Health factor of {account} broken: {health_factor}")
        self.account = account
        self.health_factor = health_factor


class HealthFactorOk(EngineError):
    """Liquidation attempted on an account that is not undercollateralized."""

    def __init__(self, account: str, health_factor: int) -> None:
        super().__init__(f"Health factor of {account} is ok: {health_factor}")
        self.account = account
        self.health_factor = health_factor


class HealthFactorNotImproved(EngineError):
    """Liquidation did not raise the target's health factor."""

    def __init__(self, account: str, start: int, end: int) -> None:
        super().__init__(
            f"Liquidation of {account} did not improve health factor ({start} -> {end})"
        )
        self.account = account
        self.start = start
        self.end = end


class StalePrice(EngineError):
    """Oracle quote is older than the freshness window, or was never reported."""

    def __init__(self, asset: str, age: float) -> None:
        super().__init__(f"Stale price for '{asset}': {age:.0f}s old")
        self.asset = asset
        self.age = age


class InvalidPrice(EngineError):
    """Oracle reported a non-positive price."""

    def __init__(self, asset: str, price: int) -> None:
        super().__init__(f"Invalid price for '{asset}': {price}")
        self.asset = asset
        self.price = price


class ReentrantCall(EngineError):
    """An engine operation was entered while another one is running on the same thread."""


# Names used by the on-chain engine this design follows.
NeedsMoreThanZero = InvalidAmount
NotAllowedToken = UnsupportedAsset
