"""Cart line model. Lines are immutable; services return updated copies."""
import enum
import uuid
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Optional


class DiscountType(str, enum.Enum):
    """Line / global discount kinds."""
    PERCENT = 'percent'
    AMOUNT = 'amount'

    @classmethod
    def parse(cls, value, default: 'DiscountType' = None) -> 'DiscountType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or '').strip().lower())
        except ValueError:
            return default or cls.PERCENT


class PackRole(str, enum.Enum):
    """Position of a line inside a pack group."""
    NONE = 'none'
    PARENT = 'parent'
    COMPONENT = 'component'


def new_line_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class CartLine:
    """
    One line of a draft order.

    Identity is ``line_id``; every line of an expanded pack shares
    ``pack_group_id``. ``base_price`` is the catalog price and acts as the
    fallback when no price tier applies.
    """

    line_id: str
    product_id: int
    name: str = ''
    sku: str = ''
    category_name: str = ''
    brand_name: str = ''
    base_price: Decimal = Decimal('0')
    unit_price: Decimal = Decimal('0')
    quantity: int = 1
    discount_type: DiscountType = DiscountType.PERCENT
    discount_value: Decimal = Decimal('0')

    # Tax
    tax_rate_id: Optional[int] = None
    tax_rate_percentage: Decimal = Decimal('0')
    is_taxable: bool = False

    # Lot tracking
    uses_lots: bool = False
    lot_id: Optional[int] = None
    lot_number: Optional[str] = None
    lot_expiration: Optional[date] = None

    # Serial tracking
    uses_serials: bool = False
    serial_id: Optional[int] = None
    serial_number: Optional[str] = None

    # Packs
    pack_role: PackRole = PackRole.NONE
    pack_group_id: Optional[str] = None
    pack_parent_product_id: Optional[int] = None
    pack_parent_name: Optional[str] = None
    component_multiplier: int = 1

    # Manual price override
    manual_override: bool = False
    original_unit_price: Optional[Decimal] = None

    @property
    def is_pack_parent(self) -> bool:
        return self.pack_role == PackRole.PARENT

    @property
    def is_pack_component(self) -> bool:
        return self.pack_role == PackRole.COMPONENT

    @property
    def in_pack(self) -> bool:
        return self.pack_role != PackRole.NONE

    @property
    def needs_lot(self) -> bool:
        return self.uses_lots and not self.lot_id

    @property
    def needs_serial(self) -> bool:
        return self.uses_serials and not self.serial_id

    @property
    def is_complete(self) -> bool:
        """A tracked line is sellable only once its lot/serial is bound."""
        return not (self.needs_lot or self.needs_serial)

    def with_changes(self, **changes) -> 'CartLine':
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            'line_id': self.line_id,
            'product_id': self.product_id,
            'name': self.name,
            'sku': self.sku,
            'category_name': self.category_name,
            'brand_name': self.brand_name,
            'base_price': str(self.base_price),
            'unit_price': str(self.unit_price),
            'quantity': self.quantity,
            'discount_type': self.discount_type.value,
            'discount_value': str(self.discount_value),
            'tax_rate_id': self.tax_rate_id,
            'tax_rate_percentage': str(self.tax_rate_percentage),
            'is_taxable': self.is_taxable,
            'uses_lots': self.uses_lots,
            'lot_id': self.lot_id,
            'lot_number': self.lot_number,
            'lot_expiration': self.lot_expiration.isoformat() if self.lot_expiration else None,
            'uses_serials': self.uses_serials,
            'serial_id': self.serial_id,
            'serial_number': self.serial_number,
            'pack_role': self.pack_role.value,
            'pack_group_id': self.pack_group_id,
            'pack_parent_product_id': self.pack_parent_product_id,
            'pack_parent_name': self.pack_parent_name,
            'component_multiplier': self.component_multiplier,
            'manual_override': self.manual_override,
            'original_unit_price': (
                str(self.original_unit_price) if self.original_unit_price is not None else None
            ),
            'is_complete': self.is_complete,
        }

    def __repr__(self):
        return f"<CartLine(id={self.line_id}, product={self.product_id}, qty={self.quantity})>"
