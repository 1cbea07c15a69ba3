"""
Payment Service - multi-tender payment drafting and reconciliation.

Amounts are compared as cent-quantized Decimals, so a tendered sum equal
to the order total is always accepted.
"""
import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from pos_engine.exceptions import ValidationError
from pos_engine.models import Payment, PaymentMethod, is_cash_method
from pos_engine.models.payment import DEFAULT_CASH_KEYWORDS
from pos_engine.utils.money import ZERO, money, to_decimal, to_int

logger = logging.getLogger(__name__)

EMPTY_PAYMENTS_MESSAGE = 'Add at least one payment.'
EXCEEDS_TOTAL_MESSAGE = 'Payment exceeds total.'
SINGLE_CASH_MESSAGE = 'Only one cash payment is allowed.'
NEGATIVE_AMOUNT_MESSAGE = 'Payment amounts cannot be negative.'


class PaymentMethodBook:
    """Known payment methods plus the cash classification rule."""

    def __init__(self, methods: Iterable[PaymentMethod] = (), cash_keywords: Sequence[str] = DEFAULT_CASH_KEYWORDS):
        self.methods = list(methods or [])
        self.cash_keywords = tuple(k.strip().lower() for k in cash_keywords if k and k.strip())
        self._by_id = {m.method_id: m for m in self.methods}

    def is_cash(self, method_id: Optional[int]) -> bool:
        method = self._by_id.get(method_id)
        return method is not None and is_cash_method(method.name, self.cash_keywords)

    @property
    def cash_method_ids(self) -> List[int]:
        return [m.method_id for m in self.methods if is_cash_method(m.name, self.cash_keywords)]

    @property
    def first_cash_id(self) -> Optional[int]:
        ids = self.cash_method_ids
        return ids[0] if ids else None

    @property
    def first_non_cash_id(self) -> Optional[int]:
        for method in self.methods:
            if not is_cash_method(method.name, self.cash_keywords):
                return method.method_id
        return None


def payments_total(payments: Iterable[Payment]) -> Decimal:
    return sum((p.amount_value for p in payments), ZERO)


def count_cash_rows(payments: Iterable[Payment], book: PaymentMethodBook) -> int:
    return sum(1 for p in payments if book.is_cash(p.method_id))


def reconcile(
    total,
    payments: Iterable[Payment],
    book: Optional[PaymentMethodBook] = None,
) -> List[Payment]:
    """
    Validate tendered payments against the order total.

    Zero rows are dropped. Negative rows, an empty result, a tendered sum
    strictly above the total and more than one cash row are rejected.
    """
    book = book or PaymentMethodBook()
    rows = list(payments or [])
    if any(p.amount_value < ZERO for p in rows):
        raise ValidationError(NEGATIVE_AMOUNT_MESSAGE, code='NEGATIVE_PAYMENT')
    tendered = [p for p in rows if p.amount_value > ZERO]
    if not tendered:
        raise ValidationError(EMPTY_PAYMENTS_MESSAGE, code='NO_PAYMENTS')

    paid = money(payments_total(tendered))
    due = money(total)
    if paid > due:
        logger.info(f"[PAYMENTS] Rejected: paid {paid} exceeds total {due}")
        raise ValidationError(
            EXCEEDS_TOTAL_MESSAGE,
            payload={'paid': str(paid), 'total': str(due)},
            code='PAYMENT_EXCEEDS_TOTAL',
        )

    if count_cash_rows(tendered, book) > 1:
        raise ValidationError(SINGLE_CASH_MESSAGE, code='MULTIPLE_CASH')
    return tendered


class PaymentDraft:
    """
    Payment rows being edited at the register before the sale is charged.

    The draft keeps the order total it was opened for; callers restart it
    when the total changes.
    """

    def __init__(self, total, book: PaymentMethodBook, rows: Optional[List[Payment]] = None):
        self.total = money(total)
        self.book = book
        self.rows: List[Payment] = list(rows or [])
        self.last_method_id: Optional[int] = None

    @classmethod
    def start(cls, total, book: PaymentMethodBook) -> 'PaymentDraft':
        """Open with a single cash row for the full total."""
        return cls(total, book, [Payment(method_id=book.first_cash_id, amount=money(total))])

    @property
    def paid(self) -> Decimal:
        return money(payments_total(self.rows))

    @property
    def remaining(self) -> Decimal:
        return money(max(ZERO, self.total - self.paid))

    @property
    def cash_used(self) -> bool:
        return count_cash_rows(self.rows, self.book) > 0

    def _default_method(self) -> Optional[int]:
        cash_used = self.cash_used
        method_id = None
        if self.last_method_id and (not cash_used or not self.book.is_cash(self.last_method_id)):
            method_id = self.last_method_id
        if method_id is None and self.rows:
            method_id = self.rows[-1].method_id
        if cash_used and self.book.is_cash(method_id):
            method_id = self.book.first_non_cash_id
        if method_id is None:
            if cash_used:
                method_id = self.book.first_non_cash_id
            else:
                method_id = self.book.first_cash_id or self.book.first_non_cash_id
        return method_id

    def add_row(self) -> Payment:
        """Append a row for the unpaid remainder (blank when nothing is due)."""
        remaining = self.remaining
        row = Payment(
            method_id=self._default_method(),
            amount=remaining if remaining > ZERO else None,
        )
        self.rows.append(row)
        return row

    def update_row(self, index: int, method_id=None, amount=None, reference=None) -> Payment:
        if index < 0 or index >= len(self.rows):
            raise ValidationError('Unknown payment row.')
        row = self.rows[index]
        if method_id is not None:
            method_id = to_int(method_id)
            others = [r for i, r in enumerate(self.rows) if i != index]
            if self.book.is_cash(method_id) and count_cash_rows(others, self.book):
                raise ValidationError(SINGLE_CASH_MESSAGE, code='MULTIPLE_CASH')
            self.last_method_id = method_id
        updated = Payment(
            method_id=method_id if method_id is not None else row.method_id,
            amount=to_decimal(amount, default=None) if amount is not None else row.amount,
            reference=reference if reference is not None else row.reference,
        )
        self.rows[index] = updated
        return updated

    def remove_row(self, index: int) -> List[Payment]:
        """
        Drop a row and move its amount to the last remaining row.

        The last row is set to whatever is still needed to cover the total,
        or gets the removed amount when nothing more is needed. Removing
        the only row resets the draft to one blank cash row.
        """
        if index < 0 or index >= len(self.rows):
            return self.rows
        if len(self.rows) == 1:
            self.rows = [Payment(method_id=self.book.first_cash_id, amount=None)]
            return self.rows

        removed = self.rows.pop(index).amount_value
        last = self.rows[-1]
        paid_excluding_last = payments_total(self.rows[:-1])
        needed = max(ZERO, self.total - paid_excluding_last)
        new_amount = needed if needed > ZERO else last.amount_value + removed
        self.rows[-1] = Payment(method_id=last.method_id, amount=new_amount, reference=last.reference)
        return self.rows

    def reconcile(self) -> List[Payment]:
        return reconcile(self.total, self.rows, self.book)

    def to_dict(self) -> dict:
        return {
            'total': str(self.total),
            'paid': str(self.paid),
            'remaining': str(self.remaining),
            'rows': [
                dict(row.to_dict(), is_cash=self.book.is_cash(row.method_id))
                for row in self.rows
            ],
        }
