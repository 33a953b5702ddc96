"""Shared test fixtures, fake collaborators and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable

import pytest

from synthdollar.config import (
    AppConfig,
    AssetConfig,
    EngineConfig,
    PriceOracleConfig,
    PythConfig,
    RiskConfig,
)
from synthdollar.oracles import ManualPriceOracle
from synthdollar.services import AccountingEngine

ENGINE = "engine"
USER = "alice"
LIQUIDATOR = "liquidator"

ETH = 10**18
BTC = 10**8
USD = 10**18

ETH_PRICE = 2000 * 10**8
BTC_PRICE = 30000 * 10**8

START_TIME = 1_700_000_000.0


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeClock:
    """Settable time source."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeToken:
    """Minimal ERC20-like ledger.

    ``fail`` maps a method name to the value it should return instead of
    succeeding (or to an exception instance to raise). ``on_transfer_from``
    runs inside ``transfer_from`` to simulate a malicious callback.
    """

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        self.balances: dict[str, int] = {}
        self.fail: dict[str, object] = {}
        self.on_transfer_from: Callable[[], None] | None = None
        self.calls: list[tuple] = []

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def credit(self, account: str, amount: int) -> None:
        self.balances[account] = self.balance_of(account) + amount

    def _check_fail(self, method: str) -> object:
        outcome = self.fail.get(method, True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def _move(self, sender: str, recipient: str, amount: int) -> bool:
        if self.balance_of(sender) < amount:
            return False
        self.balances[sender] = self.balance_of(sender) - amount
        self.credit(recipient, amount)
        return True

    def transfer_from(self, payer: str, recipient: str, amount: int) -> object:
        self.calls.append(("transfer_from", payer, recipient, amount))
        if self.on_transfer_from is not None:
            self.on_transfer_from()
        outcome = self._check_fail("transfer_from")
        if outcome is not True:
            return outcome
        return self._move(payer, recipient, amount)

    def transfer(self, sender: str, recipient: str, amount: int) -> object:
        self.calls.append(("transfer", sender, recipient, amount))
        outcome = self._check_fail("transfer")
        if outcome is not True:
            return outcome
        return self._move(sender, recipient, amount)


class FakeDebtToken(FakeToken):
    """Debt token whose supply only ``owner`` controls."""

    def __init__(self, owner: str = ENGINE) -> None:
        super().__init__("DSC")
        self.owner = owner
        self.total_supply = 0

    def mint(self, recipient: str, amount: int) -> object:
        self.calls.append(("mint", recipient, amount))
        outcome = self._check_fail("mint")
        if outcome is not True:
            return outcome
        self.credit(recipient, amount)
        self.total_supply += amount
        return True

    def burn(self, amount: int) -> object:
        self.calls.append(("burn", amount))
        outcome = self._check_fail("burn")
        if outcome is not True:
            return outcome
        if self.balance_of(self.owner) < amount:
            return False
        self.balances[self.owner] -= amount
        self.total_supply -= amount
        return True


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def assets() -> tuple[AssetConfig, ...]:
    return (
        AssetConfig(symbol="WETH", decimals=18, feed_id="eth-feed"),
        AssetConfig(symbol="WBTC", decimals=8, feed_id="btc-feed"),
    )


@pytest.fixture()
def risk() -> RiskConfig:
    return RiskConfig()


@pytest.fixture()
def oracle(clock: FakeClock) -> ManualPriceOracle:
    return ManualPriceOracle({"WETH": ETH_PRICE, "WBTC": BTC_PRICE}, decimals=8, clock=clock)


@pytest.fixture()
def weth() -> FakeToken:
    token = FakeToken("WETH")
    token.credit(USER, 10 * ETH)
    token.credit(LIQUIDATOR, 20 * ETH)
    return token


@pytest.fixture()
def wbtc() -> FakeToken:
    token = FakeToken("WBTC")
    token.credit(USER, 1 * BTC)
    return token


@pytest.fixture()
def dsc() -> FakeDebtToken:
    return FakeDebtToken(owner=ENGINE)


@pytest.fixture()
def engine(
    assets: tuple[AssetConfig, ...],
    weth: FakeToken,
    wbtc: FakeToken,
    dsc: FakeDebtToken,
    oracle: ManualPriceOracle,
    risk: RiskConfig,
    clock: FakeClock,
) -> AccountingEngine:
    return AccountingEngine(
        assets,
        {"WETH": weth, "WBTC": wbtc},
        dsc,
        oracle,
        risk=risk,
        address=ENGINE,
        clock=clock,
    )


@pytest.fixture()
def deposited(engine: AccountingEngine) -> AccountingEngine:
    """USER has 1 WETH ($2000) locked and no debt."""
    engine.deposit_collateral(USER, "WETH", 1 * ETH)
    return engine


@pytest.fixture()
def minted(deposited: AccountingEngine) -> AccountingEngine:
    """USER has 1 WETH ($2000) locked and 500 debt: health factor 2.0."""
    deposited.mint_debt(USER, 500 * USD)
    return deposited


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(hermes_url="https://hermes.example.com/v2/updates/price/latest")


@pytest.fixture()
def sample_app_config(
    assets: tuple[AssetConfig, ...], sample_pyth_config: PythConfig
) -> AppConfig:
    return AppConfig(
        engine=EngineConfig(address=ENGINE),
        risk=RiskConfig(),
        assets=assets,
        price_oracle=PriceOracleConfig(provider="pyth", pyth=sample_pyth_config),
    )


SAMPLE_YAML = textwrap.dedent("""\
    engine:
      address: vault
    risk:
      liquidation_threshold: 50
      liquidation_bonus: 10
      liquidation_precision: 100
      min_health_factor: 1000000000000000000
      price_timeout_seconds: 10800
    assets:
      - symbol: WETH
        decimals: 18
        feed_id: "aaa"
      - symbol: WBTC
        decimals: 8
        feed_id: "bbb"
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        timeout: 5
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
