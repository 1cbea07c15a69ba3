"""Reference-data snapshots returned by the backend (read-only during a cart session)."""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pos_engine.utils.money import to_decimal, to_int, to_flag


def _first(data: Dict[str, Any], *keys, default=None):
    """Return the first present, non-null key (backend mixes PascalCase and camelCase)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_date(value) -> Optional[date]:
    """Parse an ISO date/datetime string; None when empty or invalid."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).date()
    except ValueError:
        return None


@dataclass(frozen=True)
class Product:
    """Catalog product as seen by the POS."""

    product_id: int
    name: str = ''
    sku: str = ''
    price: Decimal = Decimal('0')
    is_taxable: bool = True
    tax_rate_id: Optional[int] = None
    tax_rate_percentage: Optional[Decimal] = None
    uses_lots: bool = False
    uses_serials: bool = False
    category_name: str = ''
    brand_name: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Product':
        perc = _first(data, 'TaxRatePercentage', 'taxRatePercentage')
        rate_id = _first(data, 'TaxRateID', 'taxRateId')
        return cls(
            product_id=to_int(_first(data, 'ProductID', 'productId', 'id')),
            name=str(_first(data, 'ProductName', 'productName', 'Name', 'name', default='')),
            sku=str(_first(data, 'SKU', 'Sku', 'sku', default='')),
            price=to_decimal(_first(data, 'Price', 'SalePrice', 'UnitPrice', 'price')),
            is_taxable=to_flag(_first(data, 'IsTaxable', 'isTaxable', default=0)),
            tax_rate_id=to_int(rate_id) if rate_id else None,
            tax_rate_percentage=to_decimal(perc) if perc is not None else None,
            uses_lots=to_flag(_first(data, 'UsesLots', 'usesLots', default=0)),
            uses_serials=to_flag(_first(data, 'UsesSerials', 'usesSerials', default=0)),
            category_name=str(_first(data, 'CategoryName', 'categoryName', 'Category', default='')),
            brand_name=str(_first(data, 'BrandName', 'brandName', default='')),
        )

    def __repr__(self):
        return f"<Product(id={self.product_id}, name={self.name!r}, price={self.price})>"


@dataclass(frozen=True)
class PackComponent:
    """One bill-of-materials row of a pack product."""

    component_product_id: int
    quantity: int
    product: Optional[Product] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PackComponent':
        component_id = to_int(_first(data, 'ComponentProductID', 'componentProductId'))
        # The packs endpoint inlines the component's catalog fields.
        product = Product.from_dict({**data, 'ProductID': component_id})
        return cls(
            component_product_id=component_id,
            quantity=to_int(_first(data, 'ComponentQuantity', 'componentQuantity', default=0)),
            product=product,
        )


@dataclass(frozen=True)
class Lot:
    """Inventory lot of a product in one warehouse."""

    lot_id: int
    lot_number: str = ''
    quantity: Decimal = Decimal('0')
    expiration_date: Optional[date] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Lot':
        return cls(
            lot_id=to_int(_first(data, 'ProductLotID', 'productLotId', 'id')),
            lot_number=str(_first(data, 'LotNumber', 'lotNumber', default='')),
            quantity=to_decimal(_first(data, 'Quantity', 'quantity')),
            expiration_date=parse_date(_first(data, 'ExpirationDate', 'expirationDate')),
        )


@dataclass(frozen=True)
class Serial:
    """A single in-stock serialized unit."""

    serial_id: int
    serial_number: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Serial':
        return cls(
            serial_id=to_int(_first(data, 'ProductSerialID', 'productSerialId', 'id')),
            serial_number=str(_first(data, 'SerialNumber', 'serialNumber', default='')),
        )


@dataclass(frozen=True)
class Customer:
    """Customer selected for the sale."""

    customer_id: Optional[int]
    name: str = ''
    tax_id: str = ''
    email: str = ''

    @property
    def display_name(self) -> Optional[str]:
        return self.name or self.email or None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        cid = _first(data, 'CustomerID', 'customerId', 'id')
        return cls(
            customer_id=to_int(cid) if cid is not None else None,
            name=str(_first(data, 'CustomerName', 'Name', 'name', default='')),
            tax_id=str(_first(data, 'TaxID', 'RUT', 'Rut', 'taxId', default='')),
            email=str(_first(data, 'Email', 'email', default='')),
        )


@dataclass(frozen=True)
class Employee:
    """Cashier / employee operating the POS."""

    employee_id: Optional[int]
    first_name: str = ''
    last_name: str = ''
    email: str = ''

    @property
    def display_name(self) -> Optional[str]:
        return self.first_name or self.email or None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Employee':
        eid = _first(data, 'EmployeeID', 'employeeId', 'id')
        return cls(
            employee_id=to_int(eid) if eid is not None else None,
            first_name=str(_first(data, 'FirstName', 'Name', 'name', default='')),
            last_name=str(_first(data, 'LastName', 'lastName', default='')),
            email=str(_first(data, 'Email', 'email', default='')),
        )
