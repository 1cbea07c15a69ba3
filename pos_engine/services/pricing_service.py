"""Pricing Service - quantity-break unit prices."""
from decimal import Decimal
from typing import List, Optional

from pos_engine.models import CartLine, PriceTierMap
from pos_engine.utils.money import ZERO


def resolve_unit_price(
    product_id: int,
    quantity: int,
    tier_map: Optional[PriceTierMap],
    base_price: Decimal,
) -> Decimal:
    """First tier (highest threshold first) reached by ``quantity``, else the base price."""
    for tier in (tier_map or {}).get(product_id, []):
        if quantity >= tier.min_quantity:
            return tier.price
    return base_price


def reprice_line(line: CartLine, tier_map: Optional[PriceTierMap], force: bool = False) -> CartLine:
    """
    Recompute one line's unit price.

    Manually overridden lines keep their price unless ``force`` is set
    (active price list changed); forcing drops the override.
    """
    if line.is_pack_component:
        return line if line.unit_price == ZERO else line.with_changes(unit_price=ZERO)
    if line.manual_override and not force:
        return line
    price = resolve_unit_price(line.product_id, line.quantity, tier_map, line.base_price)
    if price == line.unit_price and not line.manual_override:
        return line
    return line.with_changes(unit_price=price, manual_override=False, original_unit_price=None)


def reprice_lines(
    lines: List[CartLine],
    tier_map: Optional[PriceTierMap],
    force: bool = False,
) -> List[CartLine]:
    """Recompute the unit price of every non-component line."""
    return [reprice_line(line, tier_map, force=force) for line in lines]
