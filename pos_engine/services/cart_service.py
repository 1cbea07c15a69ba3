"""
Cart Service - the draft order of one register session.

Every mutation runs the same ordered pipeline:
mutate -> reprice -> promotions -> totals -> publish snapshot.
Services raise ``PosError`` subclasses; the public ``CartSession`` methods
return an ``Outcome`` instead (see ``returns_outcome``).
"""
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pos_engine.decorators.outcome import returns_outcome
from pos_engine.exceptions import (
    AuthorizationError,
    NotFoundError,
    ResolutionError,
    ValidationError,
)
from pos_engine.models import (
    CartLine,
    Customer,
    DiscountType,
    Employee,
    OrderTotals,
    PaymentMethod,
    Payment,
    PriceTierMap,
    Product,
    Promotion,
    PromotionResult,
    TaxRate,
)
from pos_engine.models.payment import DEFAULT_CASH_KEYWORDS
from pos_engine.services import (
    line_service,
    lot_serial_service,
    pack_service,
    payment_service,
    pricing_service,
    promotion_service,
    sale_service,
    tax_service,
    totals_service,
)
from pos_engine.services.customer_screen_service import build_screen_snapshot
from pos_engine.utils.money import ZERO, to_decimal, to_int

logger = logging.getLogger(__name__)

WAREHOUSE_REQUIRED_MESSAGE = 'Select a warehouse before adding items.'
WAREHOUSE_LOCKED_MESSAGE = 'Clear cart before changing warehouse.'
PROMOTION_LOCK_MESSAGE = 'Discounts are disabled while a promotion price applies.'


@dataclass(frozen=True)
class EngineSettings:
    """Typed view of the engine's config keys."""

    prices_include_tax: bool = True
    default_tax_rate_id: Optional[int] = None
    pos_channel: str = 'POS'
    cash_keywords: Tuple[str, ...] = DEFAULT_CASH_KEYWORDS
    document_types_without_tax_id: Tuple[str, ...] = sale_service.DOCUMENT_TYPES_WITHOUT_TAX_ID
    screen_channel: str = 'default'

    @classmethod
    def from_config(cls, config) -> 'EngineSettings':
        def _csv(value, default):
            if not value:
                return default
            if isinstance(value, (list, tuple)):
                return tuple(v.strip() for v in value if v and v.strip())
            return tuple(v.strip() for v in str(value).split(',') if v.strip())

        default_rate = config.get('DEFAULT_TAX_RATE_ID')
        return cls(
            prices_include_tax=bool(config.get('PRICES_INCLUDE_TAX', True)),
            default_tax_rate_id=to_int(default_rate) if default_rate not in (None, '') else None,
            pos_channel=config.get('POS_CHANNEL', 'POS') or 'POS',
            cash_keywords=_csv(config.get('CASH_METHOD_KEYWORDS'), DEFAULT_CASH_KEYWORDS),
            document_types_without_tax_id=tuple(
                t.upper() for t in _csv(
                    config.get('DOCUMENT_TYPES_WITHOUT_TAX_ID'),
                    sale_service.DOCUMENT_TYPES_WITHOUT_TAX_ID,
                )
            ),
            screen_channel=config.get('CUSTOMER_SCREEN_CHANNEL', 'default') or 'default',
        )


@dataclass(frozen=True)
class RequestTicket:
    key: str
    sequence: int
    params: Any


class LatestRequestGuard:
    """
    "Latest request wins" guard for collaborator responses.

    ``begin`` registers a new input value for a key; a ticket taken before
    the input changed again is no longer current and its response must be
    discarded.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._latest: Dict[str, RequestTicket] = {}

    def begin(self, key: str, params: Any) -> RequestTicket:
        with self._lock:
            previous = self._latest.get(key)
            ticket = RequestTicket(key, (previous.sequence + 1) if previous else 1, params)
            self._latest[key] = ticket
            return ticket

    def snapshot(self, key: str, params: Any = None) -> RequestTicket:
        """Ticket for the current input of ``key`` without changing it."""
        with self._lock:
            current = self._latest.get(key)
            if current is None:
                current = RequestTicket(key, 0, params)
                self._latest[key] = current
            return current

    def is_current(self, ticket: RequestTicket) -> bool:
        with self._lock:
            latest = self._latest.get(ticket.key)
            return latest is not None and latest.sequence == ticket.sequence and latest.params == ticket.params


def _now() -> datetime:
    return datetime.now().astimezone()


class CartSession:
    """
    One draft order: lines, reference snapshots, selection state and
    derived totals. Owned by a single register; not persisted.
    """

    def __init__(
        self,
        backend,
        settings: Optional[EngineSettings] = None,
        publisher=None,
        cart_id: Optional[str] = None,
        clock: Callable[[], datetime] = _now,
    ):
        self.cart_id = cart_id or uuid.uuid4().hex
        self.backend = backend
        self.settings = settings or EngineSettings()
        self.publisher = publisher
        self.clock = clock
        self.guard = LatestRequestGuard()
        self._lock = threading.RLock()

        self.lines: List[CartLine] = []
        self.tax_rates: List[TaxRate] = []
        self.promotions: List[Promotion] = []
        self.payment_methods: List[PaymentMethod] = []
        self.tier_map: PriceTierMap = {}

        self.price_list_id: Optional[int] = None
        self.warehouse_id: Optional[int] = None
        self.customer: Optional[Customer] = None
        self.default_customer: Optional[Customer] = None
        self.employee: Optional[Employee] = None
        self.document_type: str = sale_service.DEFAULT_DOCUMENT_TYPE
        self.discount_type: DiscountType = DiscountType.PERCENT
        self.discount_value: Decimal = ZERO
        self.status: str = ''
        self.payment_draft: Optional[payment_service.PaymentDraft] = None

        self.promotion_result = PromotionResult()
        self.totals: OrderTotals = totals_service.compute_totals([])

    # Pipeline

    def _context(self) -> promotion_service.PromotionContext:
        return promotion_service.PromotionContext(
            customer_name=self.customer.display_name if self.customer else None,
            employee_name=self.employee.display_name if self.employee else None,
            channel=self.settings.pos_channel,
            now=self.clock(),
        )

    def _commit(self, lines: Optional[List[CartLine]] = None, force_reprice: bool = False) -> None:
        """Replace the lines and recompute everything derived from them."""
        with self._lock:
            if lines is None:
                lines = self.lines
            lines = pricing_service.reprice_lines(lines, self.tier_map, force=force_reprice)
            promotion_result = promotion_service.evaluate_promotions(
                lines, self.promotions, self._context()
            )
            totals = totals_service.compute_totals(
                lines,
                promotion_result,
                prices_include_tax=self.settings.prices_include_tax,
                discount_type=self.discount_type,
                discount_value=self.discount_value,
            )
            self.lines = lines
            self.promotion_result = promotion_result
            self.totals = totals
            if self.payment_draft is not None and self.payment_draft.total != totals.grand_total:
                self.payment_draft = None
        self.publish()

    def recompute(self) -> OrderTotals:
        self._commit()
        return self.totals

    def publish(self) -> None:
        if self.publisher is None:
            return
        snapshot = build_screen_snapshot(
            self.lines, self.totals, self.customer, self.document_type, self.status
        )
        self.publisher.publish(self.settings.screen_channel, snapshot)

    @property
    def promotion_active(self) -> bool:
        return self.promotion_result.promotion_active

    # Reference data

    def load_reference_data(self) -> None:
        """Fetch tax rates, promotions and payment methods, then recompute atomically."""
        tax_rates = self.backend.get_tax_rates()
        promotions = self.backend.get_promotions()
        methods = self.backend.get_payment_methods()
        with self._lock:
            self.tax_rates = tax_rates
            self.promotions = promotions
            self.payment_methods = methods
        self._commit()

    def replace_promotions(self, promotions: List[Promotion]) -> None:
        with self._lock:
            self.promotions = list(promotions)
        self._commit()

    @property
    def method_book(self) -> payment_service.PaymentMethodBook:
        return payment_service.PaymentMethodBook(self.payment_methods, self.settings.cash_keywords)

    # Lines

    def _resolve_product(self, product: Union[Product, int, Dict[str, Any]]) -> Product:
        if isinstance(product, Product):
            return product
        if isinstance(product, dict):
            return Product.from_dict(product)
        found = self.backend.get_product(to_int(product))
        if found is None:
            raise ValidationError('Product not found.', code='PRODUCT_NOT_FOUND')
        return found

    def _require_warehouse(self) -> int:
        if not self.warehouse_id:
            raise ValidationError(WAREHOUSE_REQUIRED_MESSAGE, code='WAREHOUSE_REQUIRED')
        return self.warehouse_id

    def _fetch_lot_candidates(self, line: CartLine):
        warehouse_id = self._require_warehouse()
        ticket = self.guard.snapshot('warehouse', warehouse_id)
        candidates = lot_serial_service.lot_candidates(
            self.backend.get_lots, line.product_id, warehouse_id
        )
        if not self.guard.is_current(ticket):
            logger.info(f"[LOTS] Discarding stale lots for product {line.product_id}")
            raise ResolutionError('Warehouse changed while loading lots.', code='STALE')
        return candidates

    def _drop_unresolvable(self, line: CartLine, message: str) -> None:
        """Unbound line without candidates: remove it and surface the failure."""
        logger.info(f"[LOTS] Removing unresolvable line {line.line_id}: {message}")
        self._commit(line_service.remove_line(self.lines, line.line_id))
        raise ResolutionError(message, payload={'line_id': line.line_id})

    def _binding_candidates(self, line: CartLine) -> Dict[str, Any]:
        """Candidates for a pending line; an empty list removes the line."""
        if line.needs_lot:
            lots = self._fetch_lot_candidates(line)
            if not lots:
                self._drop_unresolvable(line, lot_serial_service.NO_LOTS_MESSAGE)
            return {'line': line, 'kind': 'lot', 'candidates': lots}
        serials = self.backend.get_serials(line.product_id)
        if not serials:
            self._drop_unresolvable(line, lot_serial_service.NO_SERIALS_MESSAGE)
        return {'line': line, 'kind': 'serial', 'candidates': serials}

    @returns_outcome
    def add_product(self, product: Union[Product, int, Dict[str, Any]], quantity: int = 1):
        """
        Add a product (or pack) to the cart.

        Tracked products need a warehouse; the returned value carries the
        binding candidates when the new line still needs a lot or serial.
        """
        product = self._resolve_product(product)
        tax = tax_service.resolve_tax(product, self.tax_rates, self.settings.default_tax_rate_id)

        components = self.backend.get_pack_components(product.product_id)
        if components:
            warehouse_id = self._require_warehouse()
            lines = pack_service.add_pack(
                self.lines,
                product,
                components,
                tax,
                self.tier_map,
                lambda pid: self.backend.get_fefo_lot(pid, warehouse_id),
            )
            self._commit(lines)
            return {'line': pack_service.find_pack_parent(self.lines, product.product_id)}

        if product.uses_lots or product.uses_serials:
            self._require_warehouse()
        lines, line = line_service.add_product_line(
            self.lines, product, tax, self.tier_map, quantity=quantity
        )
        self._commit(lines)
        line = line_service.find_line(self.lines, line.line_id)
        if line.is_complete:
            return {'line': line}
        return self._binding_candidates(line)

    @returns_outcome
    def set_quantity(self, line_id: str, quantity):
        line = line_service.find_line(self.lines, line_id)
        if line is None:
            return None
        if line.is_pack_component:
            raise ValidationError('Pack components follow the pack quantity.')
        if line.is_pack_parent:
            if line.uses_serials and to_int(quantity) > 1:
                raise ValidationError(line_service.SERIAL_QTY_MESSAGE, code='SERIAL_QTY')
            lines = pack_service.set_pack_quantity(self.lines, line.pack_group_id, quantity)
        else:
            lines = line_service.set_line_quantity(self.lines, line_id, quantity)
        self._commit(lines)
        return line_service.find_line(self.lines, line_id)

    @returns_outcome
    def adjust_quantity(self, line_id: str, delta: int):
        line = line_service.find_line(self.lines, line_id)
        if line is None:
            return None
        if line.is_pack_component:
            raise ValidationError('Pack components follow the pack quantity.')
        delta = to_int(delta)
        if line.is_pack_parent:
            if line.uses_serials and delta > 0:
                raise ValidationError(line_service.SERIAL_INCREMENT_MESSAGE, code='SERIAL_QTY')
            lines = pack_service.set_pack_quantity(
                self.lines, line.pack_group_id, line.quantity + delta
            )
        else:
            lines = line_service.adjust_line_quantity(self.lines, line_id, delta)
        self._commit(lines)
        return line_service.find_line(self.lines, line_id)

    @returns_outcome
    def remove_line(self, line_id: str):
        self._commit(line_service.remove_line(self.lines, line_id))
        return None

    def _ensure_discounts_unlocked(self) -> None:
        if self.promotion_active:
            raise ValidationError(PROMOTION_LOCK_MESSAGE, code='PROMOTION_ACTIVE')

    @returns_outcome
    def set_line_discount(self, line_id: str, discount_type, discount_value):
        self._ensure_discounts_unlocked()
        self._commit(line_service.set_line_discount(self.lines, line_id, discount_type, discount_value))
        return line_service.find_line(self.lines, line_id)

    @returns_outcome
    def set_global_discount(self, discount_type, discount_value):
        self._ensure_discounts_unlocked()
        value = to_decimal(discount_value)
        if value < ZERO:
            raise ValidationError('Discount cannot be negative.')
        self.discount_type = DiscountType.parse(discount_type, self.discount_type)
        self.discount_value = value
        self._commit()
        return self.totals

    @returns_outcome
    def apply_price_override(
        self,
        line_id: str,
        new_price,
        is_admin: bool = False,
        manager_id: Optional[int] = None,
        pin: Optional[str] = None,
    ):
        """
        Manually override a line's unit price.

        Non-admin actors need a manager's employee id and PIN, verified by
        the backend; its refusal message is returned as is.
        """
        line = line_service.find_line(self.lines, line_id)
        if line is None:
            return None
        price = to_decimal(new_price, default=None)
        if price is None or price < ZERO:
            raise ValidationError('Enter a valid price.', code='INVALID_PRICE')
        if line.is_pack_component:
            raise ValidationError('Pack components cannot be repriced.')
        if not is_admin:
            if not manager_id or not pin:
                raise AuthorizationError('Manager EmployeeID and PIN are required for overrides.')
            self.backend.verify_pin(to_int(manager_id), str(pin))

        original = line.original_unit_price if line.original_unit_price is not None else line.unit_price
        updated = line.with_changes(
            original_unit_price=original,
            unit_price=price,
            manual_override=True,
            discount_type=DiscountType.AMOUNT,
            discount_value=ZERO,
        )
        logger.info(f"[CART] Price override on line {line_id}: {original} -> {price}")
        self._commit(line_service.replace_line(self.lines, updated))
        return line_service.find_line(self.lines, line_id)

    # Lot / serial binding

    @returns_outcome
    def next_pending_binding(self):
        """The next line waiting for a lot or serial, with its candidates (None when done)."""
        line = lot_serial_service.next_pending_binding(self.lines)
        if line is None:
            return None
        if line.needs_lot and line.pack_group_id:
            return {
                'line': line,
                'kind': 'pack_lots',
                'candidates': self._pack_candidates(line.pack_group_id),
            }
        return self._binding_candidates(line)

    def _pack_candidates(self, group_id: str):
        warehouse_id = self._require_warehouse()
        ticket = self.guard.snapshot('warehouse', warehouse_id)
        candidates = lot_serial_service.pack_lot_candidates(
            self.lines, group_id, self.backend.get_lots, warehouse_id
        )
        if not self.guard.is_current(ticket):
            raise ResolutionError('Warehouse changed while loading lots.', code='STALE')
        return candidates

    @returns_outcome
    def lot_candidates(self, line_id: str):
        line = line_service.find_line(self.lines, line_id)
        if line is None:
            return []
        if line.pack_group_id:
            return self._pack_candidates(line.pack_group_id)
        return self._fetch_lot_candidates(line)

    @returns_outcome
    def bind_lot(self, line_id: str, lot_id: int):
        line = line_service.find_line(self.lines, line_id)
        if line is None:
            return None
        lot = next(
            (l for l in self._fetch_lot_candidates(line) if l.lot_id == to_int(lot_id)), None
        )
        if lot is None:
            raise ValidationError('Lot not available in this warehouse.', code='LOT_UNAVAILABLE')
        self._commit(lot_serial_service.bind_lot(self.lines, line_id, lot))
        return line_service.find_line(self.lines, line_id)

    @returns_outcome
    def bind_pack_lots(self, group_id: str, lot_ids_by_line: Dict[str, int]):
        candidates = self._pack_candidates(group_id)
        chosen = {}
        for line_id, lot_id in (lot_ids_by_line or {}).items():
            lot = next(
                (l for l in candidates.get(line_id, []) if l.lot_id == to_int(lot_id)), None
            )
            if lot is None:
                raise ValidationError('Lot not available in this warehouse.', code='LOT_UNAVAILABLE')
            chosen[line_id] = lot
        self._commit(lot_serial_service.bind_pack_lots(self.lines, chosen))
        return [l for l in self.lines if l.pack_group_id == group_id]

    @returns_outcome
    def serial_candidates(self, line_id: str):
        line = line_service.find_line(self.lines, line_id)
        if line is None:
            return []
        return self.backend.get_serials(line.product_id)

    @returns_outcome
    def bind_serial(self, line_id: str, serial_id: int):
        line = line_service.find_line(self.lines, line_id)
        if line is None:
            return None
        serial = next(
            (s for s in self.backend.get_serials(line.product_id) if s.serial_id == to_int(serial_id)),
            None,
        )
        if serial is None:
            raise ValidationError('Serial not available.', code='SERIAL_UNAVAILABLE')
        self._commit(lot_serial_service.bind_serial(self.lines, line_id, serial))
        return line_service.find_line(self.lines, line_id)

    # Selection state

    @returns_outcome
    def set_price_list(self, price_list_id: Optional[int]):
        """
        Switch the active price list and reprice every line.

        A response that arrives after the price list changed again is
        discarded.
        """
        price_list_id = to_int(price_list_id) if price_list_id not in (None, '') else None
        ticket = self.guard.begin('price_list', price_list_id)
        tiers = self.backend.get_price_tiers(price_list_id) if price_list_id else {}
        if not self.guard.is_current(ticket):
            logger.info(f"[PRICING] Discarding stale tiers for price list {price_list_id}")
            return False
        with self._lock:
            self.price_list_id = price_list_id
            self.tier_map = tiers
        self._commit(force_reprice=True)
        return True

    @returns_outcome
    def set_warehouse(self, warehouse_id: Optional[int]):
        warehouse_id = to_int(warehouse_id) if warehouse_id not in (None, '') else None
        if warehouse_id == self.warehouse_id:
            return self.warehouse_id
        if self.lines:
            raise ValidationError(WAREHOUSE_LOCKED_MESSAGE, code='WAREHOUSE_LOCKED')
        self.guard.begin('warehouse', warehouse_id)
        self.warehouse_id = warehouse_id
        return self.warehouse_id

    @returns_outcome
    def set_customer(self, customer: Optional[Union[Customer, Dict[str, Any]]]):
        if isinstance(customer, dict):
            customer = Customer.from_dict(customer)
        self.customer = customer or self.default_customer
        self._commit()
        return self.customer

    def set_default_customer(self, customer: Optional[Customer]) -> None:
        self.default_customer = customer
        if self.customer is None:
            self.customer = customer
            self._commit()

    @returns_outcome
    def switch_employee(self, employee: Union[Employee, Dict[str, Any]], pin: str):
        if isinstance(employee, dict):
            employee = Employee.from_dict(employee)
        if not employee or not employee.employee_id or not pin:
            raise ValidationError('Employee and PIN are required.')
        self.backend.verify_pin(employee.employee_id, str(pin))
        self.employee = employee
        self.status = 'Employee switched.'
        self._commit()
        return self.employee

    def set_employee(self, employee: Optional[Employee]) -> None:
        """Set the logged-in cashier without PIN verification."""
        self.employee = employee
        self._commit()

    @returns_outcome
    def set_document_type(self, document_type: str):
        document_type = (document_type or '').strip().upper()
        if not document_type:
            raise ValidationError('Document type is required.')
        self.document_type = document_type
        self._commit()
        return self.document_type

    @returns_outcome
    def clear(self):
        with self._lock:
            self.payment_draft = None
            self.discount_value = ZERO
        self._commit([])
        return None

    # Payments

    @returns_outcome
    def start_payment(self):
        if not self.lines:
            raise ValidationError('Add items before charging.', code='EMPTY_CART')
        self.payment_draft = payment_service.PaymentDraft.start(self.totals.grand_total, self.method_book)
        return self.payment_draft

    def _draft(self) -> payment_service.PaymentDraft:
        if self.payment_draft is None:
            self.payment_draft = payment_service.PaymentDraft.start(self.totals.grand_total, self.method_book)
        return self.payment_draft

    @returns_outcome
    def add_payment_row(self):
        draft = self._draft()
        draft.add_row()
        return draft

    @returns_outcome
    def update_payment_row(self, index: int, method_id=None, amount=None, reference=None):
        draft = self._draft()
        draft.update_row(to_int(index), method_id=method_id, amount=amount, reference=reference)
        return draft

    @returns_outcome
    def remove_payment_row(self, index: int):
        draft = self._draft()
        draft.remove_row(to_int(index))
        return draft

    # Checkout

    @returns_outcome
    def checkout(self, payments: Optional[List[Payment]] = None):
        """
        Validate and submit the sale.

        Uses the payment draft rows unless ``payments`` is given. On
        success the cart is cleared and the customer reset to the default.
        """
        sale_service.ensure_sellable(self.lines, self.warehouse_id)
        customer_id = sale_service.resolve_sale_customer(
            self.document_type,
            self.customer,
            self.default_customer,
            self.settings.document_types_without_tax_id,
        )
        rows = payments if payments is not None else (self.payment_draft.rows if self.payment_draft else [])
        tendered = payment_service.reconcile(self.totals.grand_total, rows, self.method_book)

        payload = sale_service.build_sale_payload(
            self.lines,
            self.totals,
            customer_id=customer_id,
            employee=self.employee,
            warehouse_id=self.warehouse_id,
            document_type=self.document_type,
            discount_type=self.discount_type,
            discount_value=self.discount_value,
            payments=tendered,
        )
        result = self.backend.submit_sale(payload)
        logger.info(f"[SALE] Cart {self.cart_id} submitted for {self.totals.grand_total}")

        with self._lock:
            self.customer = self.default_customer
            self.discount_value = ZERO
            self.payment_draft = None
            self.status = 'Sale completed successfully.'
        self._commit([])
        return {'sale': result, 'payload': payload}

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        pending = lot_serial_service.next_pending_binding(self.lines)
        return {
            'cart_id': self.cart_id,
            'lines': [line.to_dict() for line in self.lines],
            'totals': self.totals.to_dict(),
            'applied_promotions': [p.to_dict() for p in self.promotion_result.applied_promotions],
            'promotion_overrides': {
                str(idx): {'target_price': str(o.target_price), 'savings': str(o.savings)}
                for idx, o in self.promotion_result.overrides_by_line_index.items()
            },
            'promotion_active': self.promotion_active,
            'pending_line_id': pending.line_id if pending else None,
            'price_list_id': self.price_list_id,
            'warehouse_id': self.warehouse_id,
            'customer_id': self.customer.customer_id if self.customer else None,
            'employee_id': self.employee.employee_id if self.employee else None,
            'document_type': self.document_type,
            'discount_type': self.discount_type.value,
            'discount_value': str(self.discount_value),
            'payments': self.payment_draft.to_dict() if self.payment_draft else None,
            'status': self.status,
        }


class CartRegistry:
    """In-memory carts of this process, keyed by cart id."""

    def __init__(self, factory: Callable[[Optional[str]], CartSession]):
        self._factory = factory
        self._carts: Dict[str, CartSession] = {}
        self._lock = threading.Lock()

    def open(self, cart_id: Optional[str] = None) -> CartSession:
        session = self._factory(cart_id)
        with self._lock:
            self._carts[session.cart_id] = session
        logger.info(f"[CART] Opened cart {session.cart_id}")
        return session

    def get(self, cart_id: str) -> CartSession:
        with self._lock:
            session = self._carts.get(cart_id)
        if session is None:
            raise NotFoundError('Cart not found.')
        return session

    def close(self, cart_id: str) -> None:
        with self._lock:
            self._carts.pop(cart_id, None)

    def __len__(self):
        with self._lock:
            return len(self._carts)
