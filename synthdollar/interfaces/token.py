"""Token protocols for the external transfer, mint and burn capabilities."""
from typing import Protocol


class CollateralToken(Protocol):
    """Transferable asset backing positions.

    Both calls return ``True`` on success; anything else is a failure.
    """

    def transfer_from(self, payer: str, recipient: str, amount: int) -> bool: ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...


class DebtToken(CollateralToken, Protocol):
    """USD-pegged token whose supply only the engine may change.

    ``burn`` destroys ``amount`` out of the engine's own balance.
    """

    def mint(self, recipient: str, amount: int) -> bool: ...

    def burn(self, amount: int) -> bool: ...
