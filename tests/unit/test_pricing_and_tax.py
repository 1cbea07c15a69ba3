"""
Unit tests for tier pricing and tax resolution.
"""

from decimal import Decimal

from pos_engine.models import CartLine, PackRole, PriceTier, Product, TaxRate
from pos_engine.services.pricing_service import reprice_line, reprice_lines, resolve_unit_price
from pos_engine.services.tax_service import find_default_rate, resolve_tax


TIERS = {1: [PriceTier(10, Decimal('80')), PriceTier(5, Decimal('90'))]}


class TestResolveUnitPrice:
    """Tests for quantity-break prices."""

    def test_tier_thresholds(self):
        """Test base price below the first tier, then each reached tier."""
        base = Decimal('100')

        assert resolve_unit_price(1, 3, TIERS, base) == Decimal('100')
        assert resolve_unit_price(1, 5, TIERS, base) == Decimal('90')
        assert resolve_unit_price(1, 9, TIERS, base) == Decimal('90')
        assert resolve_unit_price(1, 12, TIERS, base) == Decimal('80')

    def test_no_tiers(self):
        assert resolve_unit_price(2, 50, TIERS, Decimal('7')) == Decimal('7')
        assert resolve_unit_price(1, 50, None, Decimal('7')) == Decimal('7')


class TestRepriceLine:
    """Tests for line repricing."""

    def _line(self, **kw):
        fields = dict(line_id='l1', product_id=1, base_price=Decimal('100'), unit_price=Decimal('100'))
        fields.update(kw)
        return CartLine(**fields)

    def test_reprice_follows_quantity(self):
        line = reprice_line(self._line(quantity=12), TIERS)

        assert line.unit_price == Decimal('80')

    def test_component_stays_at_zero(self):
        """Test pack components are never priced."""
        line = self._line(quantity=12, unit_price=Decimal('5'), pack_role=PackRole.COMPONENT)

        assert reprice_line(line, TIERS).unit_price == Decimal('0')

    def test_manual_override_kept(self):
        """Test a manual override survives an ordinary reprice."""
        line = self._line(quantity=12, unit_price=Decimal('55'), manual_override=True,
                          original_unit_price=Decimal('100'))

        assert reprice_line(line, TIERS).unit_price == Decimal('55')

    def test_manual_override_dropped_when_forced(self):
        """Test a forced reprice (price list change) discards the override."""
        line = self._line(quantity=12, unit_price=Decimal('55'), manual_override=True,
                          original_unit_price=Decimal('100'))
        repriced = reprice_lines([line], TIERS, force=True)[0]

        assert repriced.unit_price == Decimal('80')
        assert repriced.manual_override is False
        assert repriced.original_unit_price is None


class TestResolveTax:
    """Tests for the tax resolution order."""

    RATES = [
        TaxRate(1, Decimal('19'), 'IVA'),
        TaxRate(2, Decimal('10'), 'Reduced', is_default=True),
    ]

    def test_not_taxable(self):
        tax = resolve_tax(Product(1, is_taxable=False, tax_rate_id=1), self.RATES)

        assert tax.is_taxable is False
        assert tax.rate_percentage == Decimal('0')
        assert tax.rate_id is None

    def test_product_rate_id(self):
        tax = resolve_tax(Product(1, tax_rate_id=1), self.RATES)

        assert (tax.rate_id, tax.rate_percentage) == (1, Decimal('19'))

    def test_explicit_percentage_untracked(self):
        """Test an explicit product percentage has no rate id."""
        tax = resolve_tax(Product(1, tax_rate_id=99, tax_rate_percentage=Decimal('5')), self.RATES)

        assert tax.rate_id is None
        assert tax.rate_percentage == Decimal('5')

    def test_configured_default_before_flagged(self):
        tax = resolve_tax(Product(1), self.RATES, default_rate_id=1)

        assert tax.rate_id == 1

    def test_flagged_default(self):
        tax = resolve_tax(Product(1), self.RATES)

        assert tax.rate_id == 2
        assert find_default_rate(self.RATES).tax_rate_id == 2

    def test_first_rate_when_none_flagged(self):
        tax = resolve_tax(Product(1), [TaxRate(3, Decimal('7'))])

        assert tax.rate_id == 3

    def test_no_rates_keeps_taxable_at_zero(self):
        """Test a taxable product with no rate anywhere stays taxable at 0%."""
        tax = resolve_tax(Product(1), [])

        assert tax.is_taxable is True
        assert tax.rate_percentage == Decimal('0')
        assert tax.rate_id is None
