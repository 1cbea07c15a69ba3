import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from pos_engine import create_app
from pos_engine.exceptions import AuthorizationError, CollaboratorError
from pos_engine.models import (
    Lot,
    PackComponent,
    PaymentMethod,
    PriceTier,
    Product,
    Serial,
    TaxRate,
)
from pos_engine.services.cart_service import CartSession, EngineSettings
from pos_engine.services.lot_serial_service import sort_fefo


class FakeBackend:
    """In-memory stand-in for BackendClient."""

    def __init__(self):
        self.products = {}
        self.packs = {}
        self.price_lists = {}
        self.tax_rates = []
        self.promotions = []
        self.payment_methods = []
        self.lots = {}
        self.serials = {}
        self.pins = {}
        self.submitted = []
        self.broadcasts = []
        self.submit_error = None
        self.on_get_price_tiers = None
        self.lot_calls = []

    def get_product(self, product_id):
        return self.products.get(product_id)

    def search_products(self, query):
        q = (query or '').lower()
        return [p for p in self.products.values() if q in p.name.lower()]

    def get_pack_components(self, product_id):
        return list(self.packs.get(product_id, []))

    def get_price_tiers(self, price_list_id):
        if self.on_get_price_tiers is not None:
            hook, self.on_get_price_tiers = self.on_get_price_tiers, None
            hook(price_list_id)
        return dict(self.price_lists.get(price_list_id, {}))

    def get_tax_rates(self):
        return list(self.tax_rates)

    def get_promotions(self):
        return list(self.promotions)

    def get_payment_methods(self):
        return list(self.payment_methods)

    def get_lots(self, product_id, warehouse_id):
        self.lot_calls.append((product_id, warehouse_id))
        return list(self.lots.get(product_id, []))

    def get_fefo_lot(self, product_id, warehouse_id):
        available = [lot for lot in self.lots.get(product_id, []) if lot.quantity > 0]
        ordered = sort_fefo(available)
        return ordered[0] if ordered else None

    def get_serials(self, product_id):
        return list(self.serials.get(product_id, []))

    def verify_pin(self, employee_id, pin):
        if self.pins.get(employee_id) != pin:
            raise AuthorizationError('Invalid PIN')
        return True

    def submit_sale(self, payload):
        if self.submit_error:
            raise CollaboratorError(self.submit_error)
        self.submitted.append(payload)
        return {'SaleID': len(self.submitted)}

    def broadcast(self, channel, payload):
        self.broadcasts.append((channel, payload))
        return True


COFFEE = Product(product_id=1, name='Coffee', sku='COF', price=Decimal('100'), is_taxable=True,
                 tax_rate_id=1, category_name='Drinks', brand_name='Andes')
TEA = Product(product_id=2, name='Tea', sku='TEA', price=Decimal('50'), is_taxable=False,
              category_name='Drinks', brand_name='Sur')
GIFT_PACK = Product(product_id=10, name='Gift Pack', sku='PACK', price=Decimal('300'), is_taxable=True,
                    tax_rate_id=1)
MUG = Product(product_id=11, name='Mug', sku='MUG', price=Decimal('40'), is_taxable=True)
YOGURT = Product(product_id=20, name='Yogurt', sku='YOG', price=Decimal('10'), is_taxable=True,
                 tax_rate_id=1, uses_lots=True, category_name='Dairy')
PHONE = Product(product_id=30, name='Phone', sku='PHN', price=Decimal('500'), is_taxable=True,
                tax_rate_id=1, uses_serials=True)

IVA = TaxRate(tax_rate_id=1, rate_percentage=Decimal('19'), name='IVA', is_default=True)
CASH = PaymentMethod(method_id=1, name='Efectivo')
CARD = PaymentMethod(method_id=2, name='Tarjeta')


@pytest.fixture
def fake_backend():
    backend = FakeBackend()
    for product in (COFFEE, TEA, GIFT_PACK, MUG, YOGURT, PHONE):
        backend.products[product.product_id] = product
    backend.packs[GIFT_PACK.product_id] = [
        PackComponent(component_product_id=MUG.product_id, quantity=2, product=MUG),
    ]
    backend.price_lists[7] = {
        COFFEE.product_id: [
            PriceTier(min_quantity=10, price=Decimal('80')),
            PriceTier(min_quantity=5, price=Decimal('90')),
        ],
    }
    backend.tax_rates = [IVA]
    backend.payment_methods = [CASH, CARD]
    backend.lots[YOGURT.product_id] = [
        Lot(lot_id=201, lot_number='L-LATE', quantity=Decimal('5'), expiration_date=date(2030, 6, 1)),
        Lot(lot_id=202, lot_number='L-NODATE', quantity=Decimal('5'), expiration_date=None),
        Lot(lot_id=203, lot_number='L-SOON', quantity=Decimal('5'), expiration_date=date(2030, 1, 1)),
    ]
    backend.serials[PHONE.product_id] = [
        Serial(serial_id=301, serial_number='SN-1'),
        Serial(serial_id=302, serial_number='SN-2'),
    ]
    backend.pins[99] = '1234'
    return backend


@pytest.fixture
def fixed_now():
    # A Wednesday
    return datetime(2030, 3, 6, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def cart(fake_backend, fixed_now):
    """Cart session with reference data loaded and a warehouse selected."""
    session = CartSession(fake_backend, EngineSettings(), clock=lambda: fixed_now)
    session.load_reference_data()
    session.set_warehouse(1)
    return session


@pytest.fixture
def app(fake_backend):
    """Create application instance for testing."""
    app = create_app('config.TestingConfig', backend=fake_backend)
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()
