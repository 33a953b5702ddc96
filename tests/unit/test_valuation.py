"""Unit tests for USD valuation and oracle staleness checks."""
from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from conftest import BTC, BTC_PRICE, ETH, ETH_PRICE, START_TIME, USD, FakeClock
from synthdollar.config import AssetConfig
from synthdollar.errors import InvalidPrice, StalePrice, UnsupportedAsset
from synthdollar.oracles import ManualPriceOracle
from synthdollar.services.valuation import ValuationService

TIMEOUT = 3 * 60 * 60


@pytest.fixture()
def valuation(
    assets: tuple[AssetConfig, ...], oracle: ManualPriceOracle, clock: FakeClock
) -> ValuationService:
    return ValuationService(
        assets, {"WETH": oracle, "WBTC": oracle}, TIMEOUT, clock
    )


class TestConstruction:
    def test_missing_oracle_raises(self, assets, oracle) -> None:
        with pytest.raises(ValueError, match="No price oracle"):
            ValuationService(assets, {"WETH": oracle}, TIMEOUT)

    def test_oracle_for_unknown_asset_raises(self, assets, oracle) -> None:
        with pytest.raises(ValueError, match="unsupported"):
            ValuationService(
                assets, {"WETH": oracle, "WBTC": oracle, "DOGE": oracle}, TIMEOUT
            )

    def test_duplicate_asset_raises(self, oracle) -> None:
        dup = (AssetConfig("WETH", 18, "a"), AssetConfig("WETH", 18, "b"))
        with pytest.raises(ValueError, match="Duplicate"):
            ValuationService(dup, {"WETH": oracle}, TIMEOUT)

    def test_assets_keep_construction_order(self, valuation: ValuationService) -> None:
        assert valuation.assets == ("WETH", "WBTC")


class TestConversions:
    def test_usd_value(self, valuation: ValuationService) -> None:
        assert valuation.usd_value("WETH", 15 * ETH) == 30_000 * USD

    def test_usd_value_normalizes_asset_decimals(self, valuation: ValuationService) -> None:
        assert valuation.usd_value("WBTC", BTC // 2) == 15_000 * USD

    def test_asset_amount_for_usd(self, valuation: ValuationService) -> None:
        assert valuation.asset_amount_for_usd("WETH", 100 * USD) == ETH // 20

    def test_asset_amount_for_usd_eight_decimals(self, valuation: ValuationService) -> None:
        assert valuation.asset_amount_for_usd("WBTC", 300 * USD) == BTC // 100

    def test_rounds_down(self, valuation: ValuationService, oracle) -> None:
        oracle.set_price("WETH", 3 * 10**8)
        # 1 USD buys a third of an ether; the remainder is not paid out
        assert valuation.asset_amount_for_usd("WETH", USD) == ETH // 3

    def test_feed_with_other_decimals(self, valuation: ValuationService, oracle) -> None:
        oracle.set_price("WETH", 2000 * 10**18, decimals=18)
        assert valuation.usd_value("WETH", ETH) == 2000 * USD

    def test_unsupported_asset(self, valuation: ValuationService) -> None:
        with pytest.raises(UnsupportedAsset):
            valuation.usd_value("DOGE", 1)

    def test_total_collateral_sums_in_order(self, valuation: ValuationService) -> None:
        total = valuation.total_collateral_usd({"WETH": ETH, "WBTC": BTC})
        assert total == 32_000 * USD

    def test_zero_balance_skips_oracle(
        self, valuation: ValuationService, oracle, clock: FakeClock
    ) -> None:
        oracle.set_price("WBTC", BTC_PRICE, updated_at=START_TIME - TIMEOUT - 1)
        assert valuation.total_collateral_usd({"WETH": ETH, "WBTC": 0}) == 2000 * USD


class TestStaleness:
    def test_fresh_at_exact_timeout(self, valuation: ValuationService, clock) -> None:
        clock.advance(TIMEOUT)
        assert valuation.usd_value("WETH", ETH) == 2000 * USD

    def test_stale_after_timeout(self, valuation: ValuationService, clock) -> None:
        clock.advance(TIMEOUT + 1)
        with pytest.raises(StalePrice) as exc:
            valuation.usd_value("WETH", ETH)
        assert exc.value.asset == "WETH"
        assert exc.value.age == TIMEOUT + 1

    def test_stale_rejects_inverse_conversion(self, valuation: ValuationService, clock) -> None:
        clock.advance(TIMEOUT + 1)
        with pytest.raises(StalePrice):
            valuation.asset_amount_for_usd("WETH", USD)

    def test_never_reported_is_stale(self, assets, clock) -> None:
        empty = ManualPriceOracle(clock=clock)
        valuation = ValuationService(assets, {"WETH": empty, "WBTC": empty}, TIMEOUT, clock)
        with pytest.raises(StalePrice):
            valuation.usd_value("WETH", ETH)

    def test_future_timestamp_not_stale(self, valuation: ValuationService, oracle) -> None:
        oracle.set_price("WETH", ETH_PRICE, updated_at=START_TIME + 60)
        assert valuation.usd_value("WETH", ETH) == 2000 * USD

    @pytest.mark.parametrize("price", [0, -1])
    def test_non_positive_price_rejected(self, valuation: ValuationService, oracle, price) -> None:
        oracle.set_price("WETH", price)
        with pytest.raises(InvalidPrice):
            valuation.usd_value("WETH", ETH)


class TestRoundTrip:
    @given(
        amount=st.integers(min_value=0, max_value=10**30),
        price=st.integers(min_value=1, max_value=10**14),
    )
    def test_usd_then_amount_within_one_unit(self, amount: int, price: int) -> None:
        clock = FakeClock()
        oracle = ManualPriceOracle({"WETH": price}, decimals=8, clock=clock)
        valuation = ValuationService(
            (AssetConfig("WETH", 18, "f"),), {"WETH": oracle}, TIMEOUT, clock
        )
        usd = valuation.usd_value("WETH", amount)
        back = valuation.asset_amount_for_usd("WETH", usd)
        # Both directions floor, so the loss is under one USD unit converted back
        # to wei: 10**8 / price. At or above $1 that is a single wei.
        assert back <= amount
        assert amount - back <= -(-10**8 // price)
        if price >= 10**8:
            assert amount - back <= 1

    @given(
        usd=st.integers(min_value=0, max_value=10**30),
        price=st.integers(min_value=10**8, max_value=10**14),
    )
    def test_amount_then_usd_within_one_wei_of_value(self, usd: int, price: int) -> None:
        clock = FakeClock()
        oracle = ManualPriceOracle({"WETH": price}, decimals=8, clock=clock)
        valuation = ValuationService(
            (AssetConfig("WETH", 18, "f"),), {"WETH": oracle}, TIMEOUT, clock
        )
        amount = valuation.asset_amount_for_usd("WETH", usd)
        back = valuation.usd_value("WETH", amount)
        # The USD lost is below what one wei of the asset is worth
        assert back <= usd
        assert usd - back <= valuation.usd_value("WETH", 1) + 1

    @given(usd=st.integers(min_value=0, max_value=10**30))
    def test_whole_dollar_price_round_trips_exactly(self, usd: int) -> None:
        clock = FakeClock()
        oracle = ManualPriceOracle({"WETH": ETH_PRICE}, decimals=8, clock=clock)
        valuation = ValuationService(
            (AssetConfig("WETH", 18, "f"),), {"WETH": oracle}, TIMEOUT, clock
        )
        amount = valuation.asset_amount_for_usd("WETH", usd * 2000)
        assert valuation.usd_value("WETH", amount) == usd * 2000
