"""Accounting engine: atomic, invariant-checked collateral and debt operations.

Every mutating operation runs as one logical transaction:

1. validate inputs and mutate the journaled ledgers,
2. check the health-factor invariant on the resulting ledger state,
3. settle the external token effects (pulls, then burns, then pushes).

Any failure rolls the ledgers back before the error propagates; a failed
settlement also re-mints burned debt tokens and returns pulled tokens to
their payers. A single engine-wide lock is held for the whole body,
token calls included, and a nested call from the same thread is refused
with ``ReentrantCall``.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Mapping

from ..config import AppConfig, AssetConfig, RiskConfig, validate_risk
from ..errors import (
    EngineError,
    HealthFactorNotImproved,
    HealthFactorOk,
    InvalidAmount,
    MintFailed,
    ReentrantCall,
    TransferFailed,
    UnsupportedAsset,
)
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.token import CollateralToken, DebtToken
from ..models import AccountInformation, LiquidationResult
from .ledger import CollateralLedger, DebtLedger
from .solvency import SolvencyGuard
from .valuation import ValuationService

logger = logging.getLogger(__name__)


def _require_positive(amount: object) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount)


def _call_token(
    call: Callable[..., object], error: type[EngineError], description: str, *args: object
) -> None:
    """Invoke a token method; anything but a literal ``True`` is a failure."""
    try:
        ok = call(*args)
    except EngineError as e:
        raise error(f"{description} failed: {e}") from e
    except Exception as e:
        raise error(f"{description} raised: {e}") from e
    if ok is not True:
        raise error(f"{description} returned {ok!r}")


class _Settlement:
    """External token effects queued by one operation, applied after its checks."""

    def __init__(self, engine_address: str) -> None:
        self._engine = engine_address
        self._pulls: list[tuple[CollateralToken, str, int]] = []
        self._burns: list[tuple[DebtToken, str, int]] = []
        self._pushes: list[tuple[str, CollateralToken, str, int]] = []

    def pull(self, token: CollateralToken, payer: str, amount: int) -> None:
        self._pulls.append((token, payer, amount))

    def burn(self, token: DebtToken, payer: str, amount: int) -> None:
        """Burn ``amount`` the engine pulled from ``payer`` in this settlement."""
        self._burns.append((token, payer, amount))

    def push(self, token: CollateralToken, recipient: str, amount: int) -> None:
        self._pushes.append(("transfer", token, recipient, amount))

    def mint(self, token: DebtToken, recipient: str, amount: int) -> None:
        self._pushes.append(("mint", token, recipient, amount))

    def execute(self) -> None:
        pulled: list[tuple[CollateralToken, str, int]] = []
        burned: list[tuple[DebtToken, str, int]] = []
        try:
            for token, payer, amount in self._pulls:
                if amount:
                    _call_token(
                        token.transfer_from, TransferFailed,
                        f"transfer_from({payer} -> {self._engine}, {amount})",
                        payer, self._engine, amount,
                    )
                    pulled.append((token, payer, amount))

            for token, payer, amount in self._burns:
                if amount:
                    _call_token(token.burn, TransferFailed, f"burn({amount})", amount)
                    burned.append((token, payer, amount))

            for kind, token, recipient, amount in self._pushes:
                if not amount:
                    continue
                if kind == "mint":
                    _call_token(
                        token.mint, MintFailed, f"mint({recipient}, {amount})",  # type: ignore[attr-defined]
                        recipient, amount,
                    )
                else:
                    _call_token(
                        token.transfer, TransferFailed,
                        f"transfer({self._engine} -> {recipient}, {amount})",
                        self._engine, recipient, amount,
                    )
        except EngineError:
            self._unwind(pulled, burned)
            raise

    def _unwind(
        self,
        pulled: list[tuple[CollateralToken, str, int]],
        burned: list[tuple[DebtToken, str, int]],
    ) -> None:
        """Give payers back what this settlement took from them.

        Burned debt tokens are re-minted straight to their payer, which also
        settles the pull that fed the burn. Every other pull is transferred back.
        """
        pending = list(pulled)
        for token, payer, amount in reversed(burned):
            pending.remove((token, payer, amount))
            try:
                _call_token(token.mint, MintFailed, f"re-mint({payer}, {amount})", payer, amount)
            except MintFailed as e:
                logger.error("Could not restore %s burned tokens to %s: %s", amount, payer, e)

        for token, payer, amount in reversed(pending):
            try:
                _call_token(
                    token.transfer, TransferFailed,
                    f"refund({self._engine} -> {payer}, {amount})",
                    self._engine, payer, amount,
                )
            except TransferFailed as e:
                logger.error("Could not refund %s to %s: %s", amount, payer, e)


class AccountingEngine:
    """Collateral/debt bookkeeping with an always-on solvency invariant.

    Args:
        assets: Supported collateral types; the set is closed after construction.
        collateral_tokens: Transfer capability for each asset.
        debt_token: The mint/burnable synthetic dollar.
        oracles: Either one oracle serving every asset, or a mapping with
            exactly one oracle per asset.
        risk: Protocol constants.
        address: Identity the engine uses when holding tokens.
        clock: Time source for oracle staleness checks.
    """

    def __init__(
        self,
        assets: Iterable[AssetConfig],
        collateral_tokens: Mapping[str, CollateralToken],
        debt_token: DebtToken,
        oracles: PriceOracle | Mapping[str, PriceOracle],
        risk: RiskConfig | None = None,
        address: str = "engine",
        clock: Callable[[], float] = time.time,
    ) -> None:
        assets = tuple(assets)
        self._risk = risk or RiskConfig()
        validate_risk(self._risk)

        symbols = [a.symbol for a in assets]
        if not symbols:
            raise ValueError("At least one collateral asset must be configured")
        if sorted(symbols) != sorted(collateral_tokens):
            raise ValueError("Collateral assets and tokens must match one to one")

        if not isinstance(oracles, Mapping):
            oracles = {symbol: oracles for symbol in symbols}

        self._valuation = ValuationService(
            assets, oracles, self._risk.price_timeout_seconds, clock
        )
        self._guard = SolvencyGuard(self._valuation, self._risk)
        self._collateral = CollateralLedger()
        self._debts = DebtLedger()
        self._collateral_tokens = dict(collateral_tokens)
        self._debt_token = debt_token
        self._address = address

        self._lock = threading.Lock()
        self._owner: int | None = None
        self._active: str | None = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        collateral_tokens: Mapping[str, CollateralToken],
        debt_token: DebtToken,
        oracles: PriceOracle | Mapping[str, PriceOracle],
        clock: Callable[[], float] = time.time,
    ) -> AccountingEngine:
        return cls(
            config.assets,
            collateral_tokens,
            debt_token,
            oracles,
            risk=config.risk,
            address=config.engine.address,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self, name: str) -> Iterator[None]:
        if self._owner == threading.get_ident():
            raise ReentrantCall(f"{name} entered while {self._active} is running")
        with self._lock:
            self._owner = threading.get_ident()
            self._active = name
            try:
                yield
            finally:
                self._owner = None
                self._active = None

    @contextmanager
    def _transaction(self, name: str) -> Iterator[_Settlement]:
        with self._exclusive(name):
            settlement = _Settlement(self._address)
            self._collateral.begin()
            self._debts.begin()
            try:
                yield settlement
                settlement.execute()
            except BaseException as e:
                self._collateral.rollback()
                self._debts.rollback()
                logger.warning("%s rolled back: %s", name, e)
                raise
            self._collateral.commit()
            self._debts.commit()

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _require_supported(self, asset: str) -> None:
        if not self._valuation.is_supported(asset):
            raise UnsupportedAsset(asset)

    def _balances(self, account: str) -> dict[str, int]:
        return {
            asset: self._collateral.balance(account, asset)
            for asset in self._valuation.assets
        }

    def _health_factor(self, account: str) -> int:
        return self._guard.health_factor(self._debts.debt(account), self._balances(account))

    def _assert_solvent(self, account: str) -> int:
        return self._guard.assert_solvent(
            account, self._debts.debt(account), self._balances(account)
        )

    def _deposit(self, tx: _Settlement, account: str, asset: str, amount: int) -> None:
        self._collateral.credit(account, asset, amount)
        tx.pull(self._collateral_tokens[asset], account, amount)

    def _mint(self, tx: _Settlement, account: str, amount: int) -> None:
        self._debts.increase(account, amount)
        tx.mint(self._debt_token, account, amount)

    def _burn(self, tx: _Settlement, account: str, amount: int, payer: str) -> None:
        self._debts.decrease(account, amount)
        tx.pull(self._debt_token, payer, amount)
        tx.burn(self._debt_token, payer, amount)

    def _redeem(
        self, tx: _Settlement, account: str, recipient: str, asset: str, amount: int
    ) -> None:
        self._collateral.debit(account, asset, amount)
        tx.push(self._collateral_tokens[asset], recipient, amount)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def deposit_collateral(self, account: str, asset: str, amount: int) -> None:
        """Lock ``amount`` of ``asset`` from ``account`` as collateral."""
        _require_positive(amount)
        self._require_supported(asset)
        with self._transaction("deposit_collateral") as tx:
            self._deposit(tx, account, asset, amount)
        logger.info("CollateralDeposited account=%s asset=%s amount=%s", account, asset, amount)

    def mint_debt(self, account: str, amount: int) -> None:
        """Mint ``amount`` of debt token to ``account`` against its collateral."""
        _require_positive(amount)
        with self._transaction("mint_debt") as tx:
            self._mint(tx, account, amount)
            self._assert_solvent(account)
        logger.info("DebtMinted account=%s amount=%s", account, amount)

    def burn_debt(self, account: str, amount: int, payer: str | None = None) -> None:
        """Repay ``amount`` of ``account``'s debt with tokens taken from ``payer``.

        ``payer`` defaults to the account itself.
        """
        _require_positive(amount)
        payer = account if payer is None else payer
        with self._transaction("burn_debt") as tx:
            self._burn(tx, account, amount, payer)
            self._assert_solvent(account)
        logger.info("DebtBurned account=%s payer=%s amount=%s", account, payer, amount)

    def redeem_collateral(self, account: str, asset: str, amount: int) -> None:
        """Withdraw ``amount`` of ``asset`` back to ``account``."""
        _require_positive(amount)
        self._require_supported(asset)
        with self._transaction("redeem_collateral") as tx:
            self._redeem(tx, account, account, asset, amount)
            self._assert_solvent(account)
        logger.info(
            "CollateralRedeemed from=%s to=%s asset=%s amount=%s",
            account, account, asset, amount,
        )

    def deposit_and_mint(
        self, account: str, asset: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Deposit collateral and mint against it in one transaction."""
        _require_positive(collateral_amount)
        _require_positive(debt_amount)
        self._require_supported(asset)
        with self._transaction("deposit_and_mint") as tx:
            self._deposit(tx, account, asset, collateral_amount)
            self._mint(tx, account, debt_amount)
            self._assert_solvent(account)
        logger.info(
            "CollateralDeposited account=%s asset=%s amount=%s; DebtMinted amount=%s",
            account, asset, collateral_amount, debt_amount,
        )

    def redeem_and_burn(
        self, account: str, asset: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Burn debt, then withdraw collateral, in one transaction."""
        _require_positive(collateral_amount)
        _require_positive(debt_amount)
        self._require_supported(asset)
        with self._transaction("redeem_and_burn") as tx:
            self._burn(tx, account, debt_amount, account)
            self._redeem(tx, account, account, asset, collateral_amount)
            self._assert_solvent(account)
        logger.info(
            "DebtBurned account=%s amount=%s; CollateralRedeemed asset=%s amount=%s",
            account, debt_amount, asset, collateral_amount,
        )

    def liquidate(
        self, liquidator: str, target: str, asset: str, debt_to_cover: int
    ) -> LiquidationResult:
        """Repay part of an undercollateralized account's debt for a bonus on its collateral.

        The liquidator supplies ``debt_to_cover`` debt tokens, which are
        burned, and receives the equivalent amount of ``asset`` plus
        ``liquidation_bonus`` percent, taken from the target's collateral.

        If the target's collateral is worth less than its debt plus the bonus,
        the seizure exceeds the recorded balance and the call fails with
        ``InsufficientBalance``; such positions cannot be restored.
        """
        _require_positive(debt_to_cover)
        self._require_supported(asset)
        with self._transaction("liquidate") as tx:
            start = self._health_factor(target)
            if start >= self._risk.min_health_factor:
                raise HealthFactorOk(target, start)

            seized = self._valuation.asset_amount_for_usd(asset, debt_to_cover)
            bonus = seized * self._risk.liquidation_bonus // self._risk.liquidation_precision

            self._redeem(tx, target, liquidator, asset, seized + bonus)
            self._burn(tx, target, debt_to_cover, liquidator)

            end = self._health_factor(target)
            if end <= start:
                raise HealthFactorNotImproved(target, start, end)

            self._assert_solvent(liquidator)

        result = LiquidationResult(
            liquidator=liquidator,
            target=target,
            asset=asset,
            debt_covered=debt_to_cover,
            collateral_seized=seized,
            bonus_collateral=bonus,
            start_health_factor=start,
            end_health_factor=end,
        )
        logger.info(
            "Liquidated target=%s by=%s asset=%s debt=%s seized=%s bonus=%s hf %s -> %s",
            target, liquidator, asset, debt_to_cover, seized, bonus, start, end,
        )
        return result

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._address

    @property
    def risk(self) -> RiskConfig:
        return self._risk

    def collateral_assets(self) -> tuple[str, ...]:
        return self._valuation.assets

    def collateral_balance(self, account: str, asset: str) -> int:
        self._require_supported(asset)
        with self._exclusive("collateral_balance"):
            return self._collateral.balance(account, asset)

    def debt_of(self, account: str) -> int:
        with self._exclusive("debt_of"):
            return self._debts.debt(account)

    def account_collateral_value(self, account: str) -> int:
        with self._exclusive("account_collateral_value"):
            return self._valuation.total_collateral_usd(self._balances(account))

    def account_information(self, account: str) -> AccountInformation:
        with self._exclusive("account_information"):
            debt = self._debts.debt(account)
            collateral_usd = self._valuation.total_collateral_usd(self._balances(account))
            return AccountInformation(
                debt=debt,
                collateral_value_usd=collateral_usd,
                health_factor=self._guard.calculate_health_factor(debt, collateral_usd),
            )

    def health_factor(self, account: str) -> int:
        with self._exclusive("health_factor"):
            return self._health_factor(account)

    def calculate_health_factor(self, debt: int, collateral_usd: int) -> int:
        """Health factor a position with these totals would have."""
        return self._guard.calculate_health_factor(debt, collateral_usd)

    def usd_value(self, asset: str, amount: int) -> int:
        return self._valuation.usd_value(asset, amount)

    def asset_amount_for_usd(self, asset: str, usd: int) -> int:
        return self._valuation.asset_amount_for_usd(asset, usd)

    def ledger_state(self) -> tuple[dict, dict]:
        """Copies of the collateral and debt books, for audits and tests."""
        with self._exclusive("ledger_state"):
            return self._collateral.as_dict(), self._debts.as_dict()
