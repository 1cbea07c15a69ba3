"""
Unit tests for pack expansion.
"""

import pytest
from decimal import Decimal

from pos_engine.exceptions import ResolutionError, ValidationError
from pos_engine.models import Lot, PackComponent, PackRole, PriceTier, Product, TaxResolution
from pos_engine.services.line_service import remove_line
from pos_engine.services.pack_service import add_pack, build_pack_lines, set_pack_quantity

IVA = TaxResolution(1, Decimal('19'), True)
PACK = Product(10, name='Gift Pack', price=Decimal('300'))
COMP_A = Product(11, name='A', price=Decimal('40'))
COMP_LOT = Product(12, name='Cheese', price=Decimal('20'), uses_lots=True)


def _no_lots(product_id):
    return None


class TestBuildPackLines:
    """Tests for the pack parent/components layout."""

    def test_parent_and_components(self):
        """Test the parent is priced and taxable, components are free and untaxed."""
        lines = build_pack_lines(PACK, [PackComponent(11, 2, COMP_A)], IVA)
        parent, component = lines

        assert parent.pack_role == PackRole.PARENT
        assert parent.quantity == 1
        assert parent.unit_price == Decimal('300')
        assert parent.tax_rate_id == 1
        assert component.pack_role == PackRole.COMPONENT
        assert component.quantity == 2
        assert component.component_multiplier == 2
        assert component.unit_price == Decimal('0')
        assert component.is_taxable is False
        assert component.pack_group_id == parent.pack_group_id
        assert component.pack_parent_product_id == 10

    def test_parent_uses_tier_price(self):
        tiers = {10: [PriceTier(1, Decimal('250'))]}
        parent = build_pack_lines(PACK, [PackComponent(11, 1, COMP_A)], IVA, tiers)[0]

        assert parent.unit_price == Decimal('250')

    def test_empty_pack_rejected(self):
        with pytest.raises(ValidationError) as exc:
            build_pack_lines(PACK, [PackComponent(11, 0, COMP_A)], IVA)
        assert exc.value.code == 'EMPTY_PACK'


class TestPackQuantity:
    """Tests for pack rescaling and removal."""

    def test_scale_and_remove(self):
        """Test A x2 scales to 6 at parent quantity 3, and removing the parent removes A."""
        lines = add_pack([], PACK, [PackComponent(11, 2, COMP_A)], IVA, None, _no_lots)
        parent, component = lines
        assert component.quantity == 2

        lines = set_pack_quantity(lines, parent.pack_group_id, 3)
        assert [l.quantity for l in lines] == [3, 6]

        assert remove_line(lines, parent.line_id) == []

    def test_zero_quantity_removes_group(self):
        lines = add_pack([], PACK, [PackComponent(11, 2, COMP_A)], IVA, None, _no_lots)

        assert set_pack_quantity(lines, lines[0].pack_group_id, 0) == []

    def test_adding_same_pack_bumps_parent(self):
        components = [PackComponent(11, 2, COMP_A)]
        lines = add_pack([], PACK, components, IVA, None, _no_lots)
        lines = add_pack(lines, PACK, components, IVA, None, _no_lots)

        assert len(lines) == 2
        assert [l.quantity for l in lines] == [2, 4]


class TestPackLots:
    """Tests for FEFO lot resolution while adding a pack."""

    def test_component_lot_bound_at_add(self):
        lot = Lot(5, 'L-5', Decimal('3'))
        lines = add_pack([], PACK, [PackComponent(12, 1, COMP_LOT)], IVA, None,
                         lambda pid: lot if pid == 12 else None)

        assert lines[1].lot_id == 5
        assert lines[1].lot_number == 'L-5'

    def test_missing_component_lot_aborts_add(self):
        """Test one unresolvable lot aborts the whole pack."""
        existing = []
        with pytest.raises(ResolutionError) as exc:
            add_pack(existing, PACK, [PackComponent(11, 1, COMP_A), PackComponent(12, 1, COMP_LOT)],
                     IVA, None, _no_lots)

        assert 'Cheese' in exc.value.message
        assert existing == []

    def test_missing_pack_lot(self):
        tracked_pack = Product(10, name='Gift Pack', price=Decimal('300'), uses_lots=True)

        with pytest.raises(ResolutionError):
            add_pack([], tracked_pack, [PackComponent(11, 1, COMP_A)], IVA, None, _no_lots)
