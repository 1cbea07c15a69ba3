"""Engine data model."""
from pos_engine.models.cart_line import CartLine, DiscountType, PackRole, new_line_id
from pos_engine.models.order_totals import (
    AppliedPromotion,
    LineParts,
    OrderTotals,
    PromotionOverride,
    PromotionResult,
)
from pos_engine.models.payment import Payment, PaymentMethod, is_cash_method
from pos_engine.models.price_tier import PriceTier, PriceTierMap, build_price_tier_map
from pos_engine.models.product import Customer, Employee, Lot, PackComponent, Product, Serial
from pos_engine.models.promotion import Promotion, PromotionScopes, PromotionType
from pos_engine.models.tax_rate import NOT_TAXABLE, TaxRate, TaxResolution

__all__ = [
    'CartLine',
    'DiscountType',
    'PackRole',
    'new_line_id',
    'AppliedPromotion',
    'LineParts',
    'OrderTotals',
    'PromotionOverride',
    'PromotionResult',
    'Payment',
    'PaymentMethod',
    'is_cash_method',
    'PriceTier',
    'PriceTierMap',
    'build_price_tier_map',
    'Customer',
    'Employee',
    'Lot',
    'PackComponent',
    'Product',
    'Serial',
    'Promotion',
    'PromotionScopes',
    'PromotionType',
    'NOT_TAXABLE',
    'TaxRate',
    'TaxResolution',
]
