from decimal import Decimal

import pytest

from cartscout.pricing import PriceNormalizer


def test_scenario_main_price_ten_yuan() -> None:
    normalizer = PriceNormalizer()
    base = normalizer.to_target(10)
    assert base == 2000
    assert normalizer.normalize(base) == 2300


@pytest.mark.parametrize("base", [1, 9, 10, 11, 999, 1001, 2000, 12345])
def test_normalize_is_positive_multiple_not_below_base(base: int) -> None:
    price = PriceNormalizer().normalize(base)
    assert price > 0
    assert price % 10 == 0
    assert price >= base


@pytest.mark.parametrize("base", [0, -1, -2500, None])
def test_non_positive_base_gives_zero(base) -> None:
    assert PriceNormalizer().normalize(base) == 0


def test_to_target_rounds_fractional_units_up() -> None:
    normalizer = PriceNormalizer()
    assert normalizer.to_target(9.99) == 1998
    assert normalizer.to_target("0.013") == 3
    assert normalizer.to_target(0) == 0
    assert normalizer.to_target(None) == 0


def test_from_config_reads_pricing_section() -> None:
    normalizer = PriceNormalizer.from_config({"pricing": {"exchange_rate": 100, "margin": 0, "denomination": 5}})
    assert normalizer.exchange_rate == Decimal("100")
    assert normalizer.to_target(3) == 300
    assert normalizer.normalize(301) == 305


def test_reprice_matches_normalize() -> None:
    normalizer = PriceNormalizer(margin=Decimal("0.2"))
    assert normalizer.reprice(1000) == normalizer.normalize(1000) == 1200
