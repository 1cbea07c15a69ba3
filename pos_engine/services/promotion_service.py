"""
Promotion Service - priority-ordered evaluation of promotions against a cart.

Promotions either add to an order-level discount (percent / amount) or
record per-line fixed unit prices (overrides keyed by line index) that the
line calculator picks up.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from pos_engine.models import (
    AppliedPromotion,
    CartLine,
    Promotion,
    PromotionOverride,
    PromotionResult,
    PromotionScopes,
    PromotionType,
)
from pos_engine.services.line_service import compute_line_discount
from pos_engine.utils.money import HUNDRED, ZERO, clamp_percent, money

logger = logging.getLogger(__name__)

DAY_CODES = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')
DEFAULT_CHANNEL = 'POS'


def day_code(moment: datetime) -> str:
    return DAY_CODES[moment.weekday()]


@dataclass(frozen=True)
class PromotionContext:
    """Who and when a cart is evaluated for."""

    customer_name: Optional[str] = None
    employee_name: Optional[str] = None
    channel: str = DEFAULT_CHANNEL
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def day(self) -> str:
        return day_code(self.now)


def _eq(a: Optional[str], b: Optional[str]) -> bool:
    return (a or '').lower() == (b or '').lower()


def line_net(line: CartLine) -> Decimal:
    """Net of a line at its own unit price, after the line discount."""
    gross = line.unit_price * Decimal(max(0, line.quantity))
    return max(ZERO, gross - compute_line_discount(line, gross))


def matches_item_scope(line: CartLine, scopes: PromotionScopes) -> bool:
    """Category / product / brand scopes are OR-combined; none set matches every line."""
    if not scopes.has_item_scope:
        return True
    product_name = line.name or line.sku
    checks = []
    if scopes.categories:
        checks.append(any(_eq(c, line.category_name) for c in scopes.categories))
    if scopes.products:
        checks.append(any(_eq(p, product_name) for p in scopes.products))
    if scopes.brands:
        checks.append(any(_eq(b, line.brand_name) for b in scopes.brands))
    return any(checks)


def passes_context(promo: Promotion, context: PromotionContext) -> bool:
    scopes = promo.scopes
    if not promo.is_within_window(context.now):
        return False
    if scopes.days and context.day not in scopes.days:
        return False
    if scopes.channels and context.channel not in scopes.channels:
        return False
    if scopes.customers:
        if not context.customer_name:
            return False
        if not any(_eq(c, context.customer_name) for c in scopes.customers):
            return False
    if scopes.employees:
        if not context.employee_name:
            return False
        if not any(_eq(e, context.employee_name) for e in scopes.employees):
            return False
    return True


def order_promotions(promotions: Iterable[Promotion]) -> List[Promotion]:
    """Enabled promotions, highest priority first; ties keep their order."""
    enabled = [p for p in promotions or [] if p.enabled]
    return sorted(enabled, key=lambda p: p.priority, reverse=True)


def _apply_fixed_price(
    promo: Promotion,
    eligible: List[tuple],
    overrides: Dict[int, PromotionOverride],
) -> Decimal:
    target = promo.target_price
    total_savings = ZERO
    for index, line in eligible:
        qty = Decimal(line.quantity)
        if qty <= 0:
            continue
        net = line_net(line)
        if net / qty <= target:
            continue
        savings = money(net - target * qty)
        existing = overrides.get(index)
        if existing is None or target < existing.target_price:
            overrides[index] = PromotionOverride(target_price=target, savings=savings)
        elif target == existing.target_price:
            overrides[index] = PromotionOverride(
                target_price=target, savings=existing.savings + savings,
            )
        total_savings += savings
    return total_savings


def evaluate_promotions(
    lines: List[CartLine],
    promotions: Iterable[Promotion],
    context: Optional[PromotionContext] = None,
) -> PromotionResult:
    """
    Run every enabled promotion against the cart.

    A non-stackable promotion that produced a discount or an override
    stops the evaluation of the lower-priority ones.
    """
    context = context or PromotionContext()
    indexed = list(enumerate(lines))
    total_discount = ZERO
    applied: List[AppliedPromotion] = []
    overrides: Dict[int, PromotionOverride] = {}

    for promo in order_promotions(promotions):
        if not passes_context(promo, context):
            continue

        eligible = [(idx, line) for idx, line in indexed if matches_item_scope(line, promo.scopes)]
        if not eligible:
            continue

        qty_total = sum(line.quantity for _, line in eligible)
        if promo.min_quantity and qty_total < promo.min_quantity:
            continue

        eligible_subtotal = sum((line_net(line) for _, line in eligible), ZERO)
        if eligible_subtotal <= 0:
            continue

        promo_discount = ZERO
        override_savings = ZERO
        if promo.is_fixed_unit_price:
            override_savings = _apply_fixed_price(promo, eligible, overrides)
        elif promo.type == PromotionType.PERCENT:
            promo_discount = money(eligible_subtotal * clamp_percent(promo.value) / HUNDRED)
        elif promo.type == PromotionType.AMOUNT:
            promo_discount = money(min(eligible_subtotal, max(ZERO, promo.value)))

        if promo_discount > 0 or override_savings > 0:
            total_discount += promo_discount
            applied.append(AppliedPromotion(
                promotion_id=promo.promotion_id,
                name=promo.name,
                amount=promo_discount or override_savings,
            ))
            logger.debug(f"[PROMO] Applied {promo.name} ({promo.promotion_id})")
            if not promo.stackable:
                break

    return PromotionResult(
        total_discount=total_discount,
        applied_promotions=applied,
        overrides_by_line_index=overrides,
    )
