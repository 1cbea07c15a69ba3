"""Sale Service - checkout validation and the sale submission payload."""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pos_engine.exceptions import ValidationError
from pos_engine.models import CartLine, Customer, DiscountType, Employee, OrderTotals, Payment
from pos_engine.services.lot_serial_service import incomplete_lines
from pos_engine.utils.money import HUNDRED, ZERO, clamp_percent, money, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_TYPE = 'TICKET'
DOCUMENT_TYPES_WITHOUT_TAX_ID = ('TICKET', 'BOLETA', 'BOLETA_EXENTA')


def _number(value: Decimal) -> float:
    return float(money(value))


def build_items_payload(lines: List[CartLine], totals: OrderTotals) -> List[Dict[str, Any]]:
    """Sale items at their effective (post-promotion) unit price."""
    items = []
    for line, parts in zip(lines, totals.lines):
        gross = parts.gross
        value = to_decimal(line.discount_value)
        if line.discount_type == DiscountType.PERCENT:
            discount_pct = clamp_percent(value)
            discount_amount = ZERO
        else:
            discount_pct = clamp_percent(value / gross * HUNDRED) if gross > ZERO else ZERO
            discount_amount = max(ZERO, min(value, gross))

        items.append({
            'ProductID': line.product_id,
            'Description': line.name,
            'Quantity': line.quantity,
            'UnitPrice': float(parts.effective_price),
            'DiscountPercentage': float(discount_pct),
            'DiscountAmountItem': _number(discount_amount),
            'TaxRatePercentage': float(line.tax_rate_percentage or ZERO),
            'TaxRateID': line.tax_rate_id or None,
            'IsLineExenta': 0 if line.is_taxable else 1,
            'ProductLotID': line.lot_id or None,
            'ProductSerialID': line.serial_id or None,
        })
    return items


def resolve_sale_customer(
    document_type: str,
    selected: Optional[Customer],
    default: Optional[Customer],
    types_without_tax_id: Iterable[str] = DOCUMENT_TYPES_WITHOUT_TAX_ID,
) -> int:
    """
    Customer id to bill, per document type.

    Invoices and other tax documents need a selected customer with name
    and tax id; tickets and boletas only need some customer, the default
    one included.
    """
    effective_id = None
    if selected is not None and selected.customer_id:
        effective_id = selected.customer_id
    elif default is not None and default.customer_id:
        effective_id = default.customer_id

    if (document_type or DEFAULT_DOCUMENT_TYPE).upper() not in tuple(types_without_tax_id):
        has_name = bool(selected and selected.name)
        has_tax_id = bool(selected and selected.tax_id)
        if not effective_id or not has_name or not has_tax_id:
            raise ValidationError(
                'Select a customer with RUT and name for this document type.',
                code='CUSTOMER_REQUIRED',
            )
    elif not effective_id:
        raise ValidationError('Select a customer before charging.', code='CUSTOMER_REQUIRED')
    return effective_id


def ensure_sellable(lines: List[CartLine], warehouse_id: Optional[int]) -> None:
    if not lines:
        raise ValidationError('Add items before charging.', code='EMPTY_CART')
    if not warehouse_id:
        raise ValidationError('Select a warehouse before charging.', code='WAREHOUSE_REQUIRED')
    pending = incomplete_lines(lines)
    if pending:
        names = ', '.join(line.name or str(line.product_id) for line in pending)
        raise ValidationError(
            f"Select a lot or serial for: {names}",
            payload={'line_ids': [line.line_id for line in pending]},
            code='BINDING_REQUIRED',
        )


def build_sale_payload(
    lines: List[CartLine],
    totals: OrderTotals,
    customer_id: int,
    employee: Optional[Employee],
    warehouse_id: int,
    document_type: str,
    discount_type: DiscountType,
    discount_value,
    payments: List[Payment],
    notes: str = 'POS Sale',
) -> Dict[str, Any]:
    """Body of ``POST /api/sales``."""
    return {
        'CustomerID': customer_id,
        'EmployeeID': employee.employee_id if employee else None,
        'WarehouseID': warehouse_id,
        'DocumentType': document_type,
        'Items': build_items_payload(lines, totals),
        'DiscountType': DiscountType.parse(discount_type).value,
        'DiscountValue': float(to_decimal(discount_value)),
        'FinalAmount': float(totals.grand_total),
        'Notes': notes,
        'Payments': [p.to_payload() for p in payments],
    }
