"""Promotion rules as delivered by ``GET /api/promotions``."""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pos_engine.utils.money import to_decimal, to_int, to_flag

logger = logging.getLogger(__name__)


class PromotionType(str, enum.Enum):
    PERCENT = 'percent'
    AMOUNT = 'amount'
    FIXED_UNIT_PRICE = 'fixed_unit_price'


def normalize_list(value) -> Tuple[str, ...]:
    """Scope values arrive either as a list or as a comma-separated string."""
    if not value:
        return ()
    if isinstance(value, (list, tuple, set)):
        items = [str(v).strip() for v in value]
    else:
        items = [v.strip() for v in str(value).split(',')]
    return tuple(v for v in items if v)


@dataclass(frozen=True)
class PromotionScopes:
    categories: Tuple[str, ...] = ()
    products: Tuple[str, ...] = ()
    brands: Tuple[str, ...] = ()
    customers: Tuple[str, ...] = ()
    employees: Tuple[str, ...] = ()
    channels: Tuple[str, ...] = ()
    days: Tuple[str, ...] = ()
    custom_fields: Tuple[str, ...] = ()

    @property
    def has_item_scope(self) -> bool:
        return bool(self.categories or self.products or self.brands)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PromotionScopes':
        data = data or {}
        return cls(
            categories=normalize_list(data.get('categories')),
            products=normalize_list(data.get('products')),
            brands=normalize_list(data.get('brands')),
            customers=normalize_list(data.get('customers')),
            employees=normalize_list(data.get('employees')),
            channels=normalize_list(data.get('channels')),
            days=normalize_list(data.get('days')),
            custom_fields=normalize_list(data.get('customFields')),
        )


def _pick(data: Dict[str, Any], camel: str, pascal: str, default=None):
    value = data.get(camel)
    if value is None:
        value = data.get(pascal)
    return default if value is None else value


def parse_window_bound(value, tz_name: Optional[str] = None) -> Optional[datetime]:
    """
    Parse a promotion start/end timestamp into an aware datetime.

    Naive values are interpreted in the promotion timezone, or UTC when
    the promotion has none (or names an unknown zone).
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
        except ValueError:
            logger.warning(f"[PROMO] Unparsable window bound {value!r}, ignoring")
            return None
    if parsed.tzinfo is not None:
        return parsed

    tz = timezone.utc
    if tz_name:
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"[PROMO] Unknown timezone {tz_name!r}, using UTC")
    return parsed.replace(tzinfo=tz)


@dataclass(frozen=True)
class Promotion:
    """
    A promotion rule.

    ``unit_price`` set (even with another ``type``) makes it a fixed unit
    price promotion. The redemption limits are carried for callers but not
    enforced by the evaluator.
    """

    promotion_id: Any
    name: str = 'Promotion'
    enabled: bool = True
    type: PromotionType = PromotionType.PERCENT
    value: Decimal = Decimal('0')
    unit_price: Optional[Decimal] = None
    priority: int = 0
    stackable: bool = True
    min_quantity: Optional[int] = None
    scopes: PromotionScopes = field(default_factory=PromotionScopes)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    timezone: Optional[str] = None
    per_order_limit: Optional[int] = None
    per_customer_limit: Optional[int] = None
    total_redemptions: Optional[int] = None

    @property
    def is_fixed_unit_price(self) -> bool:
        return self.unit_price is not None or self.type == PromotionType.FIXED_UNIT_PRICE

    @property
    def target_price(self) -> Decimal:
        if self.unit_price is not None:
            return self.unit_price
        return self.value

    def is_within_window(self, now: datetime) -> bool:
        if self.start_at and now < self.start_at:
            return False
        if self.end_at and now > self.end_at:
            return False
        return True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Promotion':
        raw_type = str(_pick(data, 'type', 'Type', 'percent')).strip().lower().replace('-', '_')
        try:
            promo_type = PromotionType(raw_type)
        except ValueError:
            logger.warning(f"[PROMO] Unknown promotion type {raw_type!r}")
            promo_type = None

        tz_name = _pick(data, 'timezone', 'Timezone')
        unit_price = _pick(data, 'unitPrice', 'UnitPrice')
        min_qty = _pick(data, 'minQuantity', 'MinQuantity')

        def _optional_int(key):
            value = data.get(key)
            return to_int(value) if value not in (None, '') else None

        return cls(
            promotion_id=_pick(data, 'id', 'PromotionID'),
            name=str(_pick(data, 'name', 'Name') or 'Promotion'),
            enabled=to_flag(_pick(data, 'enabled', 'Enabled', True)),
            type=promo_type,
            value=to_decimal(_pick(data, 'value', 'Value', 0)),
            unit_price=to_decimal(unit_price) if unit_price is not None else None,
            priority=to_int(_pick(data, 'priority', 'Priority', 0)),
            stackable=to_flag(_pick(data, 'stackable', 'Stackable', True)),
            min_quantity=to_int(min_qty) if min_qty not in (None, '') else None,
            scopes=PromotionScopes.from_dict(data.get('scopes') or data.get('scope')),
            start_at=parse_window_bound(_pick(data, 'startAt', 'StartAt'), tz_name),
            end_at=parse_window_bound(_pick(data, 'endAt', 'EndAt'), tz_name),
            timezone=tz_name,
            per_order_limit=_optional_int('perOrderLimit'),
            per_customer_limit=_optional_int('perCustomerLimit'),
            total_redemptions=_optional_int('totalRedemptions'),
        )
