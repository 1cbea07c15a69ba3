"""Pack Service - expansion of pack products into parent and component lines."""
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pos_engine.exceptions import ResolutionError, ValidationError
from pos_engine.models import (
    NOT_TAXABLE,
    CartLine,
    Lot,
    PackComponent,
    PackRole,
    PriceTierMap,
    Product,
    TaxResolution,
    new_line_id,
)
from pos_engine.services.line_service import build_line
from pos_engine.services.pricing_service import resolve_unit_price
from pos_engine.utils.money import ZERO, to_int

logger = logging.getLogger(__name__)

FefoLookup = Callable[[int], Optional[Lot]]


def _lot_fields(lot: Optional[Lot]) -> dict:
    if lot is None:
        return {}
    return {
        'lot_id': lot.lot_id,
        'lot_number': lot.lot_number,
        'lot_expiration': lot.expiration_date,
    }


def sellable_components(components: Sequence[PackComponent]) -> List[PackComponent]:
    return [c for c in components if c.quantity > 0]


def resolve_pack_lots(
    product: Product,
    components: Sequence[PackComponent],
    fefo_lookup: FefoLookup,
) -> Tuple[Optional[Lot], Dict[int, Lot]]:
    """
    FEFO lot for the pack product and every lot-tracked component.

    Everything is resolved before any line exists, so one miss aborts
    the whole add.
    """
    pack_lot = None
    if product.uses_lots:
        pack_lot = fefo_lookup(product.product_id)
        if pack_lot is None:
            raise ResolutionError('No available lot for this pack product.')

    component_lots: Dict[int, Lot] = {}
    for component in components:
        comp_product = component.product
        if comp_product is None or not comp_product.uses_lots:
            continue
        lot = fefo_lookup(component.component_product_id)
        if lot is None:
            raise ResolutionError(f"No available lot for {comp_product.name or 'component'}.")
        component_lots[component.component_product_id] = lot
    return pack_lot, component_lots


def build_pack_lines(
    product: Product,
    components: Sequence[PackComponent],
    tax: TaxResolution,
    tier_map: Optional[PriceTierMap] = None,
    pack_lot: Optional[Lot] = None,
    component_lots: Optional[Dict[int, Lot]] = None,
) -> List[CartLine]:
    """One priced parent line at quantity 1 plus one zero-priced line per component."""
    rows = sellable_components(components)
    if not rows:
        raise ValidationError('Pack has no components.', code='EMPTY_PACK')

    component_lots = component_lots or {}
    group_id = new_line_id()
    parent = build_line(
        product,
        1,
        tax,
        resolve_unit_price(product.product_id, 1, tier_map, product.price),
        pack_role=PackRole.PARENT,
        pack_group_id=group_id,
        **_lot_fields(pack_lot),
    )

    lines = [parent]
    for component in rows:
        comp_product = component.product or Product(product_id=component.component_product_id)
        lines.append(build_line(
            comp_product,
            component.quantity,
            NOT_TAXABLE,
            ZERO,
            base_price=ZERO,
            pack_role=PackRole.COMPONENT,
            pack_group_id=group_id,
            pack_parent_product_id=product.product_id,
            pack_parent_name=product.name,
            component_multiplier=component.quantity,
            **_lot_fields(component_lots.get(component.component_product_id)),
        ))
    return lines


def find_pack_parent(lines: List[CartLine], product_id: int) -> Optional[CartLine]:
    for line in lines:
        if line.is_pack_parent and line.product_id == product_id:
            return line
    return None


def set_pack_quantity(lines: List[CartLine], group_id: str, quantity) -> List[CartLine]:
    """
    Rescale a pack group from its parent quantity.

    Components follow as multiplier x parent quantity; a parent quantity
    of zero or less removes the group.
    """
    qty = to_int(quantity)
    if qty <= 0:
        logger.info(f"[PACK] Quantity {qty} removes pack group {group_id}")
        return [line for line in lines if line.pack_group_id != group_id]

    updated = []
    for line in lines:
        if line.pack_group_id != group_id:
            updated.append(line)
        elif line.is_pack_parent:
            updated.append(line.with_changes(
                quantity=qty, manual_override=False, original_unit_price=None,
            ))
        else:
            updated.append(line.with_changes(quantity=qty * max(1, line.component_multiplier)))
    return updated


def add_pack(
    lines: List[CartLine],
    product: Product,
    components: Sequence[PackComponent],
    tax: TaxResolution,
    tier_map: Optional[PriceTierMap],
    fefo_lookup: FefoLookup,
) -> List[CartLine]:
    """Add a pack, or bump the parent of the same pack already in the cart."""
    if not sellable_components(components):
        raise ValidationError('Pack has no components.', code='EMPTY_PACK')

    pack_lot, component_lots = resolve_pack_lots(product, components, fefo_lookup)

    existing = find_pack_parent(lines, product.product_id)
    if existing is not None:
        return set_pack_quantity(lines, existing.pack_group_id, existing.quantity + 1)

    new_lines = build_pack_lines(product, components, tax, tier_map, pack_lot, component_lots)
    logger.info(
        f"[PACK] Added pack {product.product_id} with {len(new_lines) - 1} components"
    )
    return lines + new_lines
