"""Backend API client - catalog, pricing, inventory and sales collaborators."""
import logging
from typing import Any, Dict, List, Optional

import requests

from pos_engine.exceptions import AuthorizationError, CollaboratorError
from pos_engine.models import (
    Lot,
    PackComponent,
    PaymentMethod,
    PriceTierMap,
    Product,
    Promotion,
    Serial,
    TaxRate,
    build_price_tier_map,
)

logger = logging.getLogger(__name__)

PIN_FAILED_MESSAGE = 'PIN verification failed'


def _error_message(response: Optional[requests.Response], default: str) -> str:
    """Backend errors come as ``{"error": "..."}``; fall back to ``default``."""
    if response is None:
        return default
    try:
        data = response.json()
    except ValueError:
        return default
    if isinstance(data, dict):
        return data.get('error') or data.get('message') or default
    return default


class BackendClient:
    """
    JSON client for the POS backend.

    Reference-data reads degrade to an empty result (logged as a warning)
    so a failing collaborator never blocks the cart. Authorization and
    sale submission failures raise.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10):
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout
        self.headers = {'Content-Type': 'application/json', 'Accept': 'application/json'}
        if token:
            self.headers['Authorization'] = f'Bearer {token}'

    @classmethod
    def from_config(cls, config) -> 'BackendClient':
        return cls(
            base_url=config.get('BACKEND_API_URL', 'http://localhost:4000'),
            token=config.get('BACKEND_API_TOKEN'),
            timeout=float(config.get('BACKEND_TIMEOUT', 10)),
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None, default=None):
        try:
            response = requests.get(
                self._url(path), params=params, headers=self.headers, timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[BACKEND] GET {path} failed: {e}. Using empty result.")
            return default

    def _get_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        data = self._get(path, params=params, default=[])
        return data if isinstance(data, list) else []

    # Catalog

    def get_product(self, product_id: int) -> Optional[Product]:
        data = self._get(f'/api/products/{product_id}')
        return Product.from_dict(data) if isinstance(data, dict) and data else None

    def search_products(self, query: str) -> List[Product]:
        return [Product.from_dict(row) for row in self._get_list('/api/products', {'q': query})]

    def get_pack_components(self, product_id: int) -> List[PackComponent]:
        rows = self._get_list(f'/api/product-packs/{product_id}')
        return [PackComponent.from_dict(row) for row in rows]

    # Pricing

    def get_price_tiers(self, price_list_id: int) -> PriceTierMap:
        return build_price_tier_map(self._get_list(f'/api/price-lists/{price_list_id}/items'))

    def get_tax_rates(self) -> List[TaxRate]:
        return [TaxRate.from_dict(row) for row in self._get_list('/api/tax-rates')]

    def get_promotions(self) -> List[Promotion]:
        return [Promotion.from_dict(row) for row in self._get_list('/api/promotions')]

    def get_payment_methods(self) -> List[PaymentMethod]:
        return [PaymentMethod.from_dict(row) for row in self._get_list('/api/payment-methods')]

    # Inventory

    def get_lots(self, product_id: int, warehouse_id: int) -> List[Lot]:
        rows = self._get_list(
            '/api/product-lots',
            {'productId': product_id, 'warehouseId': warehouse_id, 'includeZero': 1},
        )
        return [Lot.from_dict(row) for row in rows]

    def get_fefo_lot(self, product_id: int, warehouse_id: int) -> Optional[Lot]:
        data = self._get(
            '/api/product-lots/fefo',
            {'productId': product_id, 'warehouseId': warehouse_id},
        )
        return Lot.from_dict(data) if isinstance(data, dict) and data else None

    def get_serials(self, product_id: int) -> List[Serial]:
        rows = self._get_list('/api/product-serials', {'productId': product_id, 'status': 'InStock'})
        return [Serial.from_dict(row) for row in rows]

    # Commands

    def verify_pin(self, employee_id: int, pin: str) -> bool:
        """Raise AuthorizationError with the backend's message when the PIN is refused."""
        try:
            response = requests.post(
                self._url('/api/auth/verify-pin'),
                json={'EmployeeID': employee_id, 'Pin': pin},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"[BACKEND] verify-pin unreachable: {e}")
            raise AuthorizationError(PIN_FAILED_MESSAGE)

        if not response.ok:
            raise AuthorizationError(_error_message(response, PIN_FAILED_MESSAGE))
        return True

    def submit_sale(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = requests.post(
                self._url('/api/sales'), json=payload, headers=self.headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"[BACKEND] Sale submission failed: {e}")
            raise CollaboratorError(str(e) or 'Failed to complete sale')

        if not response.ok:
            message = _error_message(response, 'Failed to complete sale')
            logger.error(f"[BACKEND] Sale rejected ({response.status_code}): {message}")
            raise CollaboratorError(message, payload={'backend_status': response.status_code})
        try:
            data = response.json()
        except ValueError:
            data = {}
        logger.info(f"[BACKEND] Sale submitted: {data.get('SaleID') if isinstance(data, dict) else data}")
        return data if isinstance(data, dict) else {'result': data}

    def broadcast(self, channel: str, payload: Dict[str, Any]) -> bool:
        try:
            response = requests.post(
                self._url('/api/customer-screen/broadcast'),
                json={'channel': channel, 'payload': payload},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning(f"[SCREEN] Broadcast failed: {e}")
            return False
