'''
Unit tests for line amounts and line edits.
'''

import pytest
from decimal import Decimal

from pos_engine.exceptions import ValidationError
from pos_engine.models import CartLine, DiscountType, PackRole, Product, PromotionOverride, TaxResolution
from pos_engine.services import line_service
from pos_engine.services.line_service import (
    add_product_line,
    adjust_line_quantity,
    compute_line_parts,
    remove_line,
    set_line_discount,
    set_line_quantity,
)

COFFEE = Product(1, name='Coffee', sku='COF', price=Decimal('100'), tax_rate_id=1)
PHONE = Product(30, name='Phone', sku='PHN', price=Decimal('500'), tax_rate_id=1, uses_serials=True)
YOGURT = Product(20, name='Yogurt', sku='YOG', price=Decimal('10'), tax_rate_id=1, uses_lots=True)

IVA = TaxResolution(1, Decimal('19'), True)


def _line(**kw):
    fields = dict(line_id='l1', product_id=1, unit_price=Decimal('100'), base_price=Decimal('100'),
                  tax_rate_percentage=Decimal('19'), is_taxable=True)
    fields.update(kw)
    return CartLine(**fields)


class TestLineParts:
    '''Tests for per-line amounts.'''

    def test_tax_inclusive_extraction(self):
        '''Test 119 at 19% inclusive splits into base 100.00 and tax 19.00.'''
        parts = compute_line_parts(_line(unit_price=Decimal('119')), 0, None, prices_include_tax=True)

        assert parts.base == Decimal('100.00')
        assert parts.tax == Decimal('19.00')
        assert parts.total == Decimal('119.00')

    def test_tax_exclusive(self):
        parts = compute_line_parts(_line(quantity=2), 0, None, prices_include_tax=False)

        assert parts.base == Decimal('200')
        assert parts.tax == Decimal('38.00')
        assert parts.total == parts.base + parts.tax

    def test_total_is_base_plus_tax_with_odd_amounts(self):
        '''Test rounding never breaks total == base + tax.'''
        for price in ('0.99', '13.37', '1999.99', '7'):
            for inclusive in (True, False):
                parts = compute_line_parts(
                    _line(unit_price=Decimal(price), quantity=3, discount_value=Decimal('7')),
                    0, None, prices_include_tax=inclusive,
                )
                assert parts.total == parts.base + parts.tax
                assert parts.base >= 0
                assert parts.tax >= 0

    def test_discount_bounds(self):
        '''Test percent discounts clamp to [0, 100] and amount discounts to gross.'''
        over = compute_line_parts(_line(discount_value=Decimal('150')), 0, None, True)
        amount = compute_line_parts(
            _line(discount_type=DiscountType.AMOUNT, discount_value=Decimal('500')), 0, None, True
        )

        assert over.discount == Decimal('100.00')
        assert over.net == Decimal('0')
        assert amount.discount == Decimal('100.00')
        assert amount.total == Decimal('0')

    def test_not_taxable_line(self):
        parts = compute_line_parts(_line(is_taxable=False), 0, None, True)

        assert parts.rate == Decimal('0')
        assert parts.tax == Decimal('0')
        assert parts.base == Decimal('100')

    def test_promotion_override_price(self):
        '''Test a fixed-price override replaces the unit price of its line index only.'''
        overrides = {0: PromotionOverride(Decimal('50'), Decimal('100'))}
        parts = compute_line_parts(_line(quantity=2, is_taxable=False), 0, overrides, True)
        other = compute_line_parts(_line(quantity=2, is_taxable=False), 1, overrides, True)

        assert parts.effective_price == Decimal('50')
        assert parts.gross == Decimal('100')
        assert other.gross == Decimal('200')


class TestAddProductLine:
    '''Tests for adding non-pack products.'''

    def test_same_product_merges(self):
        lines, first = add_product_line([], COFFEE, IVA, None)
        lines, second = add_product_line(lines, COFFEE, IVA, None, quantity=2)

        assert len(lines) == 1
        assert second.line_id == first.line_id
        assert lines[0].quantity == 3

    def test_serial_product_always_new_line(self):
        lines, _ = add_product_line([], PHONE, IVA, None)
        lines, _ = add_product_line(lines, PHONE, IVA, None)

        assert len(lines) == 2
        assert all(line.quantity == 1 for line in lines)

    def test_serial_product_added_one_unit_at_a_time(self):
        lines, line = add_product_line([], PHONE, IVA, None, quantity=3)

        assert line.quantity == 1
        assert len(lines) == 1

    def test_lot_product_merges_only_unbound(self):
        '''Test a lot-tracked add only merges into a line with the same (unset) lot.'''
        lines, first = add_product_line([], YOGURT, IVA, None)
        bound = [first.with_changes(lot_id=5)]
        lines, _ = add_product_line(bound, YOGURT, IVA, None)

        assert len(lines) == 2
        assert lines[1].lot_id is None

    def test_does_not_merge_into_pack(self):
        pack_line = _line(line_id='p', product_id=COFFEE.product_id, pack_role=PackRole.COMPONENT,
                          pack_group_id='g')
        lines, line = add_product_line([pack_line], COFFEE, IVA, None)

        assert len(lines) == 2
        assert line.pack_role == PackRole.NONE


class TestLineEdits:
    '''Tests for quantity, discount and removal edits.'''

    def test_quantity_clamped_to_one(self):
        lines = set_line_quantity([_line(quantity=3)], 'l1', 0)

        assert lines[0].quantity == 1

    def test_quantity_change_drops_override(self):
        line = _line(quantity=1, manual_override=True, original_unit_price=Decimal('120'))
        lines = set_line_quantity([line], 'l1', 2)

        assert lines[0].manual_override is False
        assert lines[0].original_unit_price is None

    def test_serial_increment_rejected(self):
        '''Test a serial-tracked line cannot go above one unit.'''
        line = _line(uses_serials=True, serial_id=1)

        with pytest.raises(ValidationError) as exc:
            adjust_line_quantity([line], 'l1', 1)
        assert exc.value.message == line_service.SERIAL_INCREMENT_MESSAGE

        with pytest.raises(ValidationError):
            set_line_quantity([line], 'l1', 2)

    def test_unknown_line_is_noop(self):
        lines = [_line()]

        assert set_line_quantity(lines, 'missing', 5) is lines
        assert set_line_discount(lines, 'missing', 'percent', 5) is lines
        assert remove_line(lines, 'missing') is lines

    def test_negative_discount_floored(self):
        lines = set_line_discount([_line()], 'l1', 'amount', '-5')

        assert lines[0].discount_type == DiscountType.AMOUNT
        assert lines[0].discount_value == Decimal('0')

    def test_component_discount_rejected(self):
        line = _line(pack_role=PackRole.COMPONENT, pack_group_id='g')

        with pytest.raises(ValidationError):
            set_line_discount([line], 'l1', 'percent', 10)

    def test_remove_pack_member_removes_group(self):
        lines = [
            _line(line_id='p', pack_role=PackRole.PARENT, pack_group_id='g'),
            _line(line_id='c', pack_role=PackRole.COMPONENT, pack_group_id='g'),
            _line(line_id='x'),
        ]

        assert [l.line_id for l in remove_line(lines, 'c')] == ['x']
