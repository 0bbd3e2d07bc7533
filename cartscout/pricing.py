"""Source-to-target currency conversion and retail price rounding."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Any


def _decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class PriceNormalizer:
    """``final = ceil(base * (1 + margin) / denomination) * denomination``; non-positive bases give 0."""

    exchange_rate: Decimal = Decimal("200")
    margin: Decimal = Decimal("0.15")
    denomination: Decimal = Decimal("10")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "PriceNormalizer":
        pricing = config.get("pricing", {})
        return cls(
            exchange_rate=_decimal(pricing.get("exchange_rate", 200)),
            margin=_decimal(pricing.get("margin", "0.15")),
            denomination=_decimal(pricing.get("denomination", 10)),
        )

    def to_target(self, source_price: Any) -> int:
        """Convert a source-currency amount into whole target-currency units."""

        if source_price is None:
            return 0
        value = _decimal(source_price)
        if value <= 0:
            return 0
        return int((value * self.exchange_rate).to_integral_value(rounding=ROUND_CEILING))

    def normalize(self, base_price: Any) -> int:
        if base_price is None:
            return 0
        base = _decimal(base_price)
        if base <= 0:
            return 0
        with_margin = base * (Decimal(1) + self.margin)
        units = (with_margin / self.denomination).to_integral_value(rounding=ROUND_CEILING)
        return int(units * self.denomination)

    def reprice(self, base_price: Any) -> int:
        """Recompute a stored price from its stored base price."""

        return self.normalize(base_price)
