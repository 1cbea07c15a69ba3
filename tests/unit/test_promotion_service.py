"""
Unit tests for promotion evaluation.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from pos_engine.models import CartLine, Promotion, PromotionScopes, PromotionType
from pos_engine.services.promotion_service import (
    PromotionContext,
    evaluate_promotions,
    matches_item_scope,
    order_promotions,
)
from pos_engine.services.totals_service import compute_totals

# A Wednesday
NOW = datetime(2030, 3, 6, 12, 0, tzinfo=timezone.utc)
CTX = PromotionContext(customer_name='Ana', employee_name='Luis', channel='POS', now=NOW)


def _cart():
    return [
        CartLine(line_id='a', product_id=1, name='Coffee', category_name='Drinks', brand_name='Andes',
                 unit_price=Decimal('100'), quantity=6),
        CartLine(line_id='b', product_id=2, name='Bread', category_name='Bakery',
                 unit_price=Decimal('400'), quantity=1),
    ]


class TestStacking:
    """Tests for priority order and stacking."""

    def test_stackable_amount_promotions_accumulate(self):
        """Test 10% (priority 10) and $50 off (priority 5) both apply."""
        promos = [
            Promotion('fixed50', type=PromotionType.AMOUNT, value=Decimal('50'), priority=5),
            Promotion('pct10', type=PromotionType.PERCENT, value=Decimal('10'), priority=10),
        ]
        result = evaluate_promotions(_cart(), promos, CTX)

        assert result.total_discount == Decimal('150.00')
        assert [p.promotion_id for p in result.applied_promotions] == ['pct10', 'fixed50']

    def test_non_stackable_stops_lower_priority(self):
        promos = [
            Promotion('fixed50', type=PromotionType.AMOUNT, value=Decimal('50'), priority=5),
            Promotion('pct10', type=PromotionType.PERCENT, value=Decimal('10'), priority=10,
                      stackable=False),
        ]
        result = evaluate_promotions(_cart(), promos, CTX)

        assert result.total_discount == Decimal('100.00')
        assert [p.promotion_id for p in result.applied_promotions] == ['pct10']

    def test_percent_stacks_with_fixed_unit_price(self):
        """Test 10% (priority 10) and a $50 unit price (priority 5) both apply to a $100 item."""
        lines = [CartLine(line_id='a', product_id=1, name='Coffee', unit_price=Decimal('100'),
                          is_taxable=False)]
        promos = [
            Promotion('unit50', type=PromotionType.FIXED_UNIT_PRICE, value=Decimal('50'), priority=5),
            Promotion('pct10', type=PromotionType.PERCENT, value=Decimal('10'), priority=10),
        ]
        result = evaluate_promotions(lines, promos, CTX)
        totals = compute_totals(lines, result, prices_include_tax=True)

        assert result.total_discount == Decimal('10.00')
        assert result.override_for(0).target_price == Decimal('50')
        assert [p.promotion_id for p in result.applied_promotions] == ['pct10', 'unit50']
        assert totals.grand_total == Decimal('40.00')

    def test_non_stackable_percent_suppresses_fixed_unit_price(self):
        promos = [
            Promotion('unit50', type=PromotionType.FIXED_UNIT_PRICE, value=Decimal('50'), priority=5),
            Promotion('pct10', type=PromotionType.PERCENT, value=Decimal('10'), priority=10,
                      stackable=False),
        ]
        result = evaluate_promotions(_cart(), promos, CTX)

        assert result.total_discount == Decimal('100.00')
        assert result.overrides_by_line_index == {}
        assert [p.promotion_id for p in result.applied_promotions] == ['pct10']

    def test_non_applying_non_stackable_does_not_stop(self):
        """Test a non-stackable promotion that did not apply lets the next one run."""
        promos = [
            Promotion('blocked', type=PromotionType.PERCENT, value=Decimal('10'), priority=10,
                      stackable=False, min_quantity=100),
            Promotion('fixed50', type=PromotionType.AMOUNT, value=Decimal('50'), priority=5),
        ]
        result = evaluate_promotions(_cart(), promos, CTX)

        assert result.total_discount == Decimal('50.00')

    def test_disabled_and_order(self):
        promos = [
            Promotion('low', priority=1),
            Promotion('off', priority=99, enabled=False),
            Promotion('high', priority=9),
            Promotion('low2', priority=1),
        ]

        assert [p.promotion_id for p in order_promotions(promos)] == ['high', 'low', 'low2']


class TestScopes:
    """Tests for item and context scopes."""

    def test_item_scopes_are_or_combined(self):
        scopes = PromotionScopes(categories=('bakery',), brands=('Andes',))
        coffee, bread = _cart()

        assert matches_item_scope(coffee, scopes)
        assert matches_item_scope(bread, scopes)
        assert not matches_item_scope(coffee, PromotionScopes(products=('Tea',)))

    def test_category_scope_limits_subtotal(self):
        promo = Promotion('drinks', type=PromotionType.PERCENT, value=Decimal('10'),
                          scopes=PromotionScopes(categories=('Drinks',)))
        result = evaluate_promotions(_cart(), [promo], CTX)

        assert result.total_discount == Decimal('60.00')

    def test_context_scopes(self):
        """Test day, channel, customer and employee scopes."""
        def applies(**scopes):
            promo = Promotion('p', type=PromotionType.AMOUNT, value=Decimal('5'),
                              scopes=PromotionScopes(**scopes))
            return evaluate_promotions(_cart(), [promo], CTX).total_discount > 0

        assert applies(days=('Wed',))
        assert not applies(days=('Sat', 'Sun'))
        assert applies(channels=('POS',))
        assert not applies(channels=('WEB',))
        assert applies(customers=('ana',))
        assert not applies(customers=('Pedro',))
        assert applies(employees=('LUIS',))

    def test_customer_scope_needs_customer(self):
        promo = Promotion('p', type=PromotionType.AMOUNT, value=Decimal('5'),
                          scopes=PromotionScopes(customers=('Ana',)))
        result = evaluate_promotions(_cart(), [promo], PromotionContext(now=NOW))

        assert result.total_discount == Decimal('0')

    def test_window(self):
        expired = Promotion('p', type=PromotionType.AMOUNT, value=Decimal('5'),
                            end_at=NOW - timedelta(days=1))

        assert evaluate_promotions(_cart(), [expired], CTX).applied_promotions == []

    def test_min_quantity(self):
        promo = Promotion('p', type=PromotionType.AMOUNT, value=Decimal('5'), min_quantity=8)

        assert evaluate_promotions(_cart(), [promo], CTX).total_discount == Decimal('0')


class TestFixedUnitPrice:
    """Tests for fixed-unit-price overrides."""

    def test_override_and_savings(self):
        """Test the override lowers the line price without adding to the order discount."""
        promo = Promotion('fixed', type=PromotionType.FIXED_UNIT_PRICE, value=Decimal('80'),
                          scopes=PromotionScopes(products=('Coffee',)))
        result = evaluate_promotions(_cart(), [promo], CTX)
        override = result.override_for(0)

        assert result.total_discount == Decimal('0')
        assert override.target_price == Decimal('80')
        assert override.savings == Decimal('120.00')
        assert result.override_for(1) is None
        assert result.promotion_active is True
        assert result.applied_promotions[0].amount == Decimal('120.00')

    def test_lower_target_wins(self):
        promos = [
            Promotion('p90', unit_price=Decimal('90'), priority=2),
            Promotion('p70', unit_price=Decimal('70'), priority=1),
        ]
        result = evaluate_promotions(_cart(), promos, CTX)

        assert result.override_for(0).target_price == Decimal('70')

    def test_target_above_price_ignored(self):
        promo = Promotion('p', unit_price=Decimal('500'))
        result = evaluate_promotions(_cart(), [promo], CTX)

        assert result.overrides_by_line_index == {}
        assert result.promotion_active is False

    def test_empty_cart(self):
        result = evaluate_promotions([], [Promotion('p', value=Decimal('10'))], CTX)

        assert result.total_discount == Decimal('0')
