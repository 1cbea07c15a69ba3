"""Totals Service - order-level aggregation."""
from decimal import Decimal
from typing import List, Optional

from pos_engine.models import CartLine, DiscountType, OrderTotals, PromotionResult
from pos_engine.services.line_service import compute_line_parts
from pos_engine.utils.money import HUNDRED, ZERO, money, to_decimal


def compute_global_discount(subtotal: Decimal, discount_type, discount_value) -> Decimal:
    """Cart-wide discount, never above the subtotal."""
    value = to_decimal(discount_value)
    if subtotal <= ZERO or value <= ZERO:
        return ZERO
    if DiscountType.parse(discount_type) == DiscountType.PERCENT:
        return money(min(subtotal * value / HUNDRED, subtotal))
    return money(min(value, subtotal))


def compute_totals(
    lines: List[CartLine],
    promotion: Optional[PromotionResult] = None,
    prices_include_tax: bool = False,
    discount_type=DiscountType.PERCENT,
    discount_value=ZERO,
) -> OrderTotals:
    """
    Aggregate line amounts into order totals.

    grand = max(subtotal - global discount - promotion discount + tax, 0),
    where subtotal is the sum of line bases.
    """
    promotion = promotion or PromotionResult()
    overrides = promotion.overrides_by_line_index
    parts = [
        compute_line_parts(line, idx, overrides, prices_include_tax)
        for idx, line in enumerate(lines)
    ]

    subtotal = sum((p.base for p in parts), ZERO)
    line_discount_total = sum((p.discount for p in parts), ZERO)
    tax_total = sum((p.tax for p in parts), ZERO)
    global_discount = compute_global_discount(subtotal, discount_type, discount_value)
    promotion_discount = money(promotion.total_discount)

    grand_total = max(subtotal - global_discount - promotion_discount + tax_total, ZERO)
    return OrderTotals(
        subtotal=money(subtotal),
        line_discount_total=money(line_discount_total),
        global_discount=global_discount,
        promotion_discount=promotion_discount,
        tax_total=money(tax_total),
        total_discounts=money(line_discount_total + global_discount + promotion_discount),
        grand_total=money(grand_total),
        lines=parts,
    )
