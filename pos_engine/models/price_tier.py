"""Price list tiers (quantity-break pricing)."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from pos_engine.utils.money import to_decimal, to_int


@dataclass(frozen=True)
class PriceTier:
    """Unit price that applies from ``min_quantity`` units upwards."""

    min_quantity: int
    price: Decimal


PriceTierMap = Dict[int, List[PriceTier]]


def build_price_tier_map(items: Iterable[Dict[str, Any]]) -> PriceTierMap:
    """
    Group price list items by product, tiers sorted by minimum quantity descending.

    Items come from ``GET /api/price-lists/{id}/items`` as
    ``{ProductID, MinQty, Price}``. A missing MinQty counts as 1.
    """
    tier_map: PriceTierMap = {}
    for item in items or []:
        product_id = to_int(item.get('ProductID'))
        tier = PriceTier(
            min_quantity=to_int(item.get('MinQty'), default=1) or 1,
            price=to_decimal(item.get('Price')),
        )
        tier_map.setdefault(product_id, []).append(tier)

    for product_id, tiers in tier_map.items():
        # sorted() is stable, so equal thresholds keep the backend order
        tier_map[product_id] = sorted(tiers, key=lambda t: t.min_quantity, reverse=True)
    return tier_map
