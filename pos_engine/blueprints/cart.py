"""Cart blueprint - JSON surface over the cart session facade."""
from flask import Blueprint, current_app, jsonify, request

from pos_engine.blueprints.metrics import record_outcome, record_sale
from pos_engine.exceptions import ValidationError
from pos_engine.models import Customer, Employee, Payment
from pos_engine.services.cart_service import CartRegistry, CartSession
from pos_engine.utils.serialization import to_jsonable

cart_bp = Blueprint('cart', __name__, url_prefix='/pos/carts')


def _registry() -> CartRegistry:
    return current_app.extensions['pos_carts']


def _session(cart_id: str) -> CartSession:
    return _registry().get(cart_id)


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _respond(operation: str, session: CartSession, outcome, status: int = 200):
    """Outcome + current cart state. Rejections keep the cart in the body."""
    record_outcome(operation, outcome)
    if not outcome.ok:
        body = outcome.error.to_dict()
        body['cart'] = session.to_dict()
        return jsonify(body), outcome.error.status_code
    return jsonify({
        'status': 'ok',
        'result': to_jsonable(outcome.value),
        'cart': session.to_dict(),
    }), status


@cart_bp.route('', methods=['POST'])
def open_cart():
    """Open a cart. Optional: warehouse_id, price_list_id, default_customer, employee."""
    data = _body()
    session = _registry().open(data.get('cart_id'))
    session.load_reference_data()

    if data.get('default_customer'):
        session.set_default_customer(Customer.from_dict(data['default_customer']))
    if data.get('employee'):
        session.set_employee(Employee.from_dict(data['employee']))
    if data.get('document_type'):
        session.set_document_type(data['document_type'])
    if data.get('warehouse_id'):
        session.set_warehouse(data['warehouse_id'])
    if data.get('price_list_id'):
        session.set_price_list(data['price_list_id'])

    return jsonify({'status': 'ok', 'cart': session.to_dict()}), 201


@cart_bp.route('/<cart_id>', methods=['GET'])
def get_cart(cart_id):
    return jsonify({'status': 'ok', 'cart': _session(cart_id).to_dict()})


@cart_bp.route('/<cart_id>', methods=['DELETE'])
def close_cart(cart_id):
    _session(cart_id)
    _registry().close(cart_id)
    return jsonify({'status': 'ok'})


@cart_bp.route('/<cart_id>/clear', methods=['POST'])
def clear_cart(cart_id):
    session = _session(cart_id)
    return _respond('clear', session, session.clear())


# Lines

@cart_bp.route('/<cart_id>/items', methods=['POST'])
def add_item(cart_id):
    session = _session(cart_id)
    data = _body()
    product = data.get('product') or data.get('product_id')
    if not product:
        raise ValidationError('product_id is required.')
    outcome = session.add_product(product, quantity=data.get('quantity', 1))
    return _respond('add_product', session, outcome, 201 if outcome.ok else 200)


@cart_bp.route('/<cart_id>/items/<line_id>', methods=['PATCH'])
def update_item(cart_id, line_id):
    """Change quantity (``quantity`` or ``delta``) and/or the line discount."""
    session = _session(cart_id)
    data = _body()
    outcome = None
    if 'delta' in data:
        outcome = session.adjust_quantity(line_id, data['delta'])
    elif 'quantity' in data:
        outcome = session.set_quantity(line_id, data['quantity'])
    if (outcome is None or outcome.ok) and 'discount_value' in data:
        outcome = session.set_line_discount(
            line_id, data.get('discount_type', 'percent'), data['discount_value']
        )
    if outcome is None:
        raise ValidationError('Nothing to update.')
    return _respond('update_line', session, outcome)


@cart_bp.route('/<cart_id>/items/<line_id>', methods=['DELETE'])
def remove_item(cart_id, line_id):
    session = _session(cart_id)
    return _respond('remove_line', session, session.remove_line(line_id))


@cart_bp.route('/<cart_id>/items/<line_id>/price-override', methods=['POST'])
def override_price(cart_id, line_id):
    session = _session(cart_id)
    data = _body()
    outcome = session.apply_price_override(
        line_id,
        data.get('price'),
        is_admin=bool(data.get('is_admin', False)),
        manager_id=data.get('manager_id'),
        pin=data.get('pin'),
    )
    return _respond('price_override', session, outcome)


# Lots / serials

@cart_bp.route('/<cart_id>/items/<line_id>/lots', methods=['GET'])
def list_lots(cart_id, line_id):
    session = _session(cart_id)
    return _respond('lot_candidates', session, session.lot_candidates(line_id))


@cart_bp.route('/<cart_id>/items/<line_id>/lot', methods=['PUT'])
def bind_lot(cart_id, line_id):
    session = _session(cart_id)
    return _respond('bind_lot', session, session.bind_lot(line_id, _body().get('lot_id')))


@cart_bp.route('/<cart_id>/packs/<group_id>/lots', methods=['PUT'])
def bind_pack_lots(cart_id, group_id):
    session = _session(cart_id)
    lots = _body().get('lots') or {}
    return _respond('bind_pack_lots', session, session.bind_pack_lots(group_id, lots))


@cart_bp.route('/<cart_id>/items/<line_id>/serials', methods=['GET'])
def list_serials(cart_id, line_id):
    session = _session(cart_id)
    return _respond('serial_candidates', session, session.serial_candidates(line_id))


@cart_bp.route('/<cart_id>/items/<line_id>/serial', methods=['PUT'])
def bind_serial(cart_id, line_id):
    session = _session(cart_id)
    return _respond('bind_serial', session, session.bind_serial(line_id, _body().get('serial_id')))


@cart_bp.route('/<cart_id>/pending-binding', methods=['GET'])
def pending_binding(cart_id):
    session = _session(cart_id)
    return _respond('pending_binding', session, session.next_pending_binding())


# Cart-level selections

@cart_bp.route('/<cart_id>/discount', methods=['PUT'])
def set_discount(cart_id):
    session = _session(cart_id)
    data = _body()
    outcome = session.set_global_discount(data.get('discount_type', 'percent'), data.get('discount_value', 0))
    return _respond('set_discount', session, outcome)


@cart_bp.route('/<cart_id>/price-list', methods=['PUT'])
def set_price_list(cart_id):
    session = _session(cart_id)
    return _respond('set_price_list', session, session.set_price_list(_body().get('price_list_id')))


@cart_bp.route('/<cart_id>/warehouse', methods=['PUT'])
def set_warehouse(cart_id):
    session = _session(cart_id)
    return _respond('set_warehouse', session, session.set_warehouse(_body().get('warehouse_id')))


@cart_bp.route('/<cart_id>/customer', methods=['PUT'])
def set_customer(cart_id):
    session = _session(cart_id)
    return _respond('set_customer', session, session.set_customer(_body().get('customer')))


@cart_bp.route('/<cart_id>/employee', methods=['PUT'])
def switch_employee(cart_id):
    session = _session(cart_id)
    data = _body()
    outcome = session.switch_employee(data.get('employee') or {}, data.get('pin'))
    return _respond('switch_employee', session, outcome)


@cart_bp.route('/<cart_id>/document-type', methods=['PUT'])
def set_document_type(cart_id):
    session = _session(cart_id)
    return _respond('set_document_type', session, session.set_document_type(_body().get('document_type')))


# Payments

@cart_bp.route('/<cart_id>/payments', methods=['POST'])
def start_payment(cart_id):
    session = _session(cart_id)
    return _respond('start_payment', session, session.start_payment())


@cart_bp.route('/<cart_id>/payments/rows', methods=['POST'])
def add_payment_row(cart_id):
    session = _session(cart_id)
    return _respond('add_payment_row', session, session.add_payment_row())


@cart_bp.route('/<cart_id>/payments/rows/<int:index>', methods=['PATCH'])
def update_payment_row(cart_id, index):
    session = _session(cart_id)
    data = _body()
    outcome = session.update_payment_row(
        index,
        method_id=data.get('method_id'),
        amount=data.get('amount'),
        reference=data.get('reference'),
    )
    return _respond('update_payment_row', session, outcome)


@cart_bp.route('/<cart_id>/payments/rows/<int:index>', methods=['DELETE'])
def remove_payment_row(cart_id, index):
    session = _session(cart_id)
    return _respond('remove_payment_row', session, session.remove_payment_row(index))


@cart_bp.route('/<cart_id>/checkout', methods=['POST'])
def checkout(cart_id):
    session = _session(cart_id)
    data = _body()
    payments = None
    if 'payments' in data:
        payments = [Payment.from_dict(row) for row in data.get('payments') or []]
    document_type = session.document_type
    outcome = session.checkout(payments)
    if outcome.ok:
        record_sale(document_type)
    return _respond('checkout', session, outcome)
