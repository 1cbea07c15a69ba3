"""Payment methods and tendered payment rows."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from pos_engine.utils.money import to_decimal, to_int

DEFAULT_CASH_KEYWORDS = ('cash', 'efectivo')


def is_cash_method(name: Optional[str], keywords: Iterable[str] = DEFAULT_CASH_KEYWORDS) -> bool:
    """Case-insensitive substring match of the method name against the cash keywords."""
    lowered = (name or '').lower()
    return any(k.lower() in lowered for k in keywords if k)


@dataclass(frozen=True)
class PaymentMethod:
    method_id: int
    name: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentMethod':
        return cls(
            method_id=to_int(data.get('PaymentMethodID', data.get('id'))),
            name=str(data.get('MethodName') or data.get('Name') or data.get('name') or ''),
        )


@dataclass(frozen=True)
class Payment:
    """One tendered payment row. ``amount`` None means the cashier left it blank."""

    method_id: Optional[int]
    amount: Optional[Decimal] = None
    reference: Optional[str] = None

    @property
    def amount_value(self) -> Decimal:
        return to_decimal(self.amount)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        method_id = data.get('method_id', data.get('PaymentMethodID'))
        amount = data.get('amount', data.get('Amount'))
        reference = data.get('reference', data.get('ReferenceNumber'))
        return cls(
            method_id=to_int(method_id) if method_id not in (None, '') else None,
            amount=to_decimal(amount, default=None),
            reference=str(reference) if reference else None,
        )

    def to_dict(self) -> dict:
        return {
            'method_id': self.method_id,
            'amount': str(self.amount) if self.amount is not None else None,
            'reference': self.reference,
        }

    def to_payload(self) -> dict:
        """Shape expected by ``POST /api/sales``."""
        return {
            'PaymentMethodID': self.method_id,
            'Amount': float(self.amount_value),
            'ReferenceNumber': self.reference,
        }
