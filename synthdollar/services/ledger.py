"""Collateral and debt books owned by the accounting engine.

Both ledgers are journaled. Between ``begin()`` and ``commit()`` every write
remembers the value it replaced, and ``rollback()`` puts those values back in
reverse order. Zero balances are removed rather than stored, so an account
that returns to zero is indistinguishable from one that never existed.
"""
from __future__ import annotations

import logging
from typing import Hashable

from ..errors import InsufficientBalance

logger = logging.getLogger(__name__)

_MISSING = object()


class _JournaledBook:
    """Mapping of key -> non-negative int with undo support."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, int] = {}
        self._journal: list[tuple[Hashable, object]] | None = None

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    def begin(self) -> None:
        if self._journal is not None:
            raise RuntimeError("Ledger transaction already open")
        self._journal = []

    def commit(self) -> None:
        self._journal = None

    def rollback(self) -> None:
        if self._journal is None:
            return
        for key, previous in reversed(self._journal):
            if previous is _MISSING:
                self._entries.pop(key, None)
            else:
                self._entries[key] = previous  # type: ignore[assignment]
        logger.debug("%s rolled back %d writes", type(self).__name__, len(self._journal))
        self._journal = None

    def _get(self, key: Hashable) -> int:
        return self._entries.get(key, 0)

    def _set(self, key: Hashable, value: int) -> None:
        if value < 0:
            raise ValueError(f"Negative balance for {key!r}: {value}")
        if self._journal is not None:
            self._journal.append((key, self._entries.get(key, _MISSING)))
        if value == 0:
            self._entries.pop(key, None)
        else:
            self._entries[key] = value

    def as_dict(self) -> dict:
        """Copy of the non-zero entries."""
        return dict(self._entries)


class CollateralLedger(_JournaledBook):
    """Per-account, per-asset deposited collateral."""

    def balance(self, account: str, asset: str) -> int:
        return self._get((account, asset))

    def credit(self, account: str, asset: str, amount: int) -> int:
        new = self.balance(account, asset) + amount
        self._set((account, asset), new)
        return new

    def debit(self, account: str, asset: str, amount: int) -> int:
        current = self.balance(account, asset)
        if amount > current:
            raise InsufficientBalance(account, asset, current, amount)
        new = current - amount
        self._set((account, asset), new)
        return new

    def accounts(self) -> set[str]:
        return {account for account, _ in self._entries}


class DebtLedger(_JournaledBook):
    """Per-account outstanding minted debt."""

    def debt(self, account: str) -> int:
        return self._get(account)

    def increase(self, account: str, amount: int) -> int:
        new = self.debt(account) + amount
        self._set(account, new)
        return new

    def decrease(self, account: str, amount: int) -> int:
        current = self.debt(account)
        if amount > current:
            raise InsufficientBalance(account, "debt", current, amount)
        new = current - amount
        self._set(account, new)
        return new

    def total(self) -> int:
        return sum(self._entries.values())
