"""Derived per-line and order-level amounts. Never stored, always recomputed."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class LineParts:
    """Amounts of one line after promotion override and line discount."""

    effective_price: Decimal
    rate: Decimal
    gross: Decimal
    discount: Decimal
    net: Decimal
    base: Decimal
    tax: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            'effective_price': str(self.effective_price),
            'rate': str(self.rate),
            'gross': str(self.gross),
            'discount': str(self.discount),
            'net': str(self.net),
            'base': str(self.base),
            'tax': str(self.tax),
            'total': str(self.total),
        }


@dataclass(frozen=True)
class PromotionOverride:
    """Per-line fixed unit price produced by a fixed-unit-price promotion."""

    target_price: Decimal
    savings: Decimal


@dataclass(frozen=True)
class AppliedPromotion:
    promotion_id: Any
    name: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.promotion_id, 'name': self.name, 'amount': str(self.amount)}


@dataclass(frozen=True)
class PromotionResult:
    total_discount: Decimal = Decimal('0')
    applied_promotions: List[AppliedPromotion] = field(default_factory=list)
    overrides_by_line_index: Dict[int, PromotionOverride] = field(default_factory=dict)

    @property
    def promotion_active(self) -> bool:
        """True when line and global discount inputs must be locked."""
        return self.total_discount > 0 or bool(self.overrides_by_line_index)

    def override_for(self, index: int) -> Optional[PromotionOverride]:
        return self.overrides_by_line_index.get(index)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    line_discount_total: Decimal
    global_discount: Decimal
    promotion_discount: Decimal
    tax_total: Decimal
    total_discounts: Decimal
    grand_total: Decimal
    lines: List[LineParts] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subtotal': str(self.subtotal),
            'line_discount_total': str(self.line_discount_total),
            'global_discount': str(self.global_discount),
            'promotion_discount': str(self.promotion_discount),
            'tax_total': str(self.tax_total),
            'total_discounts': str(self.total_discounts),
            'grand_total': str(self.grand_total),
            'lines': [parts.to_dict() for parts in self.lines],
        }
