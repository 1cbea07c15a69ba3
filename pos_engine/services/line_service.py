"""Line Service - per-line amounts and plain line edits."""
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pos_engine.exceptions import ValidationError
from pos_engine.models import (
    CartLine,
    DiscountType,
    LineParts,
    PriceTierMap,
    Product,
    PromotionOverride,
    TaxResolution,
    new_line_id,
)
from pos_engine.services.pricing_service import resolve_unit_price
from pos_engine.utils.money import HUNDRED, ZERO, clamp_percent, money, to_decimal, to_int

logger = logging.getLogger(__name__)

SERIAL_INCREMENT_MESSAGE = 'Add another serial by adding the item again.'
SERIAL_QTY_MESSAGE = 'Serial-tracked items must be 1 per line.'


def compute_line_discount(line: CartLine, gross: Decimal) -> Decimal:
    """Line discount in money, never above gross."""
    if gross <= ZERO:
        return ZERO
    if line.discount_type == DiscountType.AMOUNT:
        return money(min(gross, max(ZERO, to_decimal(line.discount_value))))
    return money(gross * clamp_percent(line.discount_value) / HUNDRED)


def compute_line_parts(
    line: CartLine,
    index: int,
    overrides: Optional[Dict[int, PromotionOverride]],
    prices_include_tax: bool,
) -> LineParts:
    """
    Amounts of one line.

    ``index`` is the line position used to look up a promotion override.
    Discount and tax are rounded to cents so ``total == base + tax``.
    """
    override = (overrides or {}).get(index)
    effective_price = override.target_price if override is not None else line.unit_price
    quantity = Decimal(max(0, line.quantity))
    gross = effective_price * quantity
    discount = compute_line_discount(line, gross)
    net = max(ZERO, gross - discount)

    rate = line.tax_rate_percentage if line.is_taxable else ZERO
    if rate > ZERO:
        if prices_include_tax:
            tax = money(net - net / (1 + rate / HUNDRED))
            base = net - tax
        else:
            base = net
            tax = money(net * rate / HUNDRED)
    else:
        base = net
        tax = ZERO

    return LineParts(
        effective_price=effective_price,
        rate=rate,
        gross=gross,
        discount=discount,
        net=net,
        base=base,
        tax=tax,
        total=base + tax,
    )


def normalize_quantity(value) -> int:
    """Quantities are whole units; anything below one becomes one."""
    return max(1, to_int(value, default=1))


def build_line(
    product: Product,
    quantity: int,
    tax: TaxResolution,
    unit_price: Decimal,
    **options,
) -> CartLine:
    """New cart line for ``product``; ``options`` set tracking and pack fields."""
    fields = dict(
        line_id=new_line_id(),
        product_id=product.product_id,
        name=product.name,
        sku=product.sku,
        category_name=product.category_name,
        brand_name=product.brand_name,
        base_price=product.price,
        unit_price=unit_price,
        quantity=normalize_quantity(quantity),
        tax_rate_id=tax.rate_id,
        tax_rate_percentage=tax.rate_percentage,
        is_taxable=tax.is_taxable,
        uses_lots=product.uses_lots,
        uses_serials=product.uses_serials,
    )
    fields.update(options)
    return CartLine(**fields)


def add_product_line(
    lines: List[CartLine],
    product: Product,
    tax: TaxResolution,
    tier_map: Optional[PriceTierMap],
    quantity: int = 1,
    lot_id: Optional[int] = None,
) -> Tuple[List[CartLine], CartLine]:
    """
    Add a non-pack product.

    An existing line of the same product outside any pack (and with the
    same lot for lot-tracked products) is incremented instead. Serial
    tracked products always get a fresh line of one unit, one serial per
    line, whatever quantity was asked for.
    """
    qty = 1 if product.uses_serials else normalize_quantity(quantity)
    if not product.uses_serials:
        for line in lines:
            if line.product_id != product.product_id or line.in_pack:
                continue
            if product.uses_lots and line.lot_id != lot_id:
                continue
            merged = line.with_changes(
                quantity=line.quantity + qty,
                manual_override=False,
                original_unit_price=None,
            )
            return replace_line(lines, merged), merged

    price = resolve_unit_price(product.product_id, qty, tier_map, product.price)
    line = build_line(product, qty, tax, price)
    return lines + [line], line


def _index_of(lines: List[CartLine], line_id: str) -> Optional[int]:
    for idx, line in enumerate(lines):
        if line.line_id == line_id:
            return idx
    return None


def find_line(lines: List[CartLine], line_id: str) -> Optional[CartLine]:
    idx = _index_of(lines, line_id)
    return lines[idx] if idx is not None else None


def replace_line(lines: List[CartLine], updated: CartLine) -> List[CartLine]:
    return [updated if line.line_id == updated.line_id else line for line in lines]


def set_line_quantity(lines: List[CartLine], line_id: str, quantity) -> List[CartLine]:
    """
    Set the quantity of a plain line (clamped to at least 1).

    A quantity change drops any manual price override so the line is
    repriced from the active tiers. Serial-bound lines stay at 1.
    Pack lines go through ``pack_service.set_pack_quantity``.
    """
    line = find_line(lines, line_id)
    if line is None:
        return lines
    if line.in_pack:
        raise ValidationError('Pack lines are edited through the pack quantity.')

    qty = normalize_quantity(quantity)
    if line.uses_serials and qty > 1:
        raise ValidationError(SERIAL_QTY_MESSAGE, code='SERIAL_QTY')
    if qty == line.quantity:
        return lines
    return replace_line(
        lines,
        line.with_changes(quantity=qty, manual_override=False, original_unit_price=None),
    )


def adjust_line_quantity(lines: List[CartLine], line_id: str, delta: int) -> List[CartLine]:
    """Step a plain line's quantity by ``delta`` (the +/- buttons)."""
    line = find_line(lines, line_id)
    if line is None:
        return lines
    if line.uses_serials and delta > 0:
        raise ValidationError(SERIAL_INCREMENT_MESSAGE, code='SERIAL_QTY')
    return set_line_quantity(lines, line_id, line.quantity + delta)


def set_line_discount(
    lines: List[CartLine],
    line_id: str,
    discount_type,
    discount_value,
) -> List[CartLine]:
    line = find_line(lines, line_id)
    if line is None:
        return lines
    if line.is_pack_component:
        raise ValidationError('Pack components cannot be discounted.')
    value = max(ZERO, to_decimal(discount_value))
    return replace_line(
        lines,
        line.with_changes(
            discount_type=DiscountType.parse(discount_type, line.discount_type),
            discount_value=value,
        ),
    )


def remove_line(lines: List[CartLine], line_id: str) -> List[CartLine]:
    """Remove a line; any line of a pack group takes the whole group with it."""
    line = find_line(lines, line_id)
    if line is None:
        return lines
    if line.pack_group_id:
        logger.info(f"[CART] Removing pack group {line.pack_group_id}")
        return [l for l in lines if l.pack_group_id != line.pack_group_id]
    return [l for l in lines if l.line_id != line_id]
