"""
Unit tests for order totals.
"""

from decimal import Decimal

from pos_engine.models import CartLine, DiscountType, PromotionResult
from pos_engine.services.totals_service import compute_global_discount, compute_totals


def _lines():
    return [
        CartLine(line_id='a', product_id=1, unit_price=Decimal('119'), quantity=2,
                 tax_rate_percentage=Decimal('19'), is_taxable=True),
        CartLine(line_id='b', product_id=2, unit_price=Decimal('50'), quantity=1),
    ]


class TestComputeTotals:
    """Tests for order-level aggregation."""

    def test_inclusive_totals(self):
        totals = compute_totals(_lines(), prices_include_tax=True)

        assert totals.subtotal == Decimal('250.00')
        assert totals.tax_total == Decimal('38.00')
        assert totals.grand_total == Decimal('288.00')
        assert totals.total_discounts == Decimal('0.00')

    def test_global_discount_and_promotion(self):
        """Test grand = subtotal - global - promotion + tax."""
        promo = PromotionResult(total_discount=Decimal('10'))
        totals = compute_totals(
            _lines(), promo, prices_include_tax=True,
            discount_type=DiscountType.AMOUNT, discount_value=Decimal('20'),
        )

        assert totals.global_discount == Decimal('20.00')
        assert totals.promotion_discount == Decimal('10.00')
        assert totals.grand_total == Decimal('258.00')
        assert totals.total_discounts == Decimal('30.00')

    def test_grand_total_never_negative(self):
        promo = PromotionResult(total_discount=Decimal('10000'))
        totals = compute_totals(_lines(), promo, prices_include_tax=True)

        assert totals.grand_total == Decimal('0.00')

    def test_idempotent(self):
        """Test recomputing the same input yields identical totals."""
        first = compute_totals(_lines(), prices_include_tax=True, discount_value=Decimal('5'))
        second = compute_totals(_lines(), prices_include_tax=True, discount_value=Decimal('5'))

        assert first == second

    def test_empty_cart(self):
        totals = compute_totals([])

        assert totals.grand_total == Decimal('0.00')
        assert totals.lines == []


class TestGlobalDiscount:
    """Tests for the cart-wide discount."""

    def test_percent_capped_at_subtotal(self):
        assert compute_global_discount(Decimal('200'), 'percent', '10') == Decimal('20.00')
        assert compute_global_discount(Decimal('200'), 'percent', '150') == Decimal('200.00')

    def test_amount_capped_at_subtotal(self):
        assert compute_global_discount(Decimal('200'), 'amount', '500') == Decimal('200.00')

    def test_zero_or_negative(self):
        assert compute_global_discount(Decimal('200'), 'amount', '-5') == Decimal('0')
        assert compute_global_discount(Decimal('0'), 'percent', '10') == Decimal('0')
