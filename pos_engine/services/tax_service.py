"""Tax Service - effective tax rate of a product."""
import logging
from typing import Iterable, Optional

from pos_engine.models import NOT_TAXABLE, Product, TaxRate, TaxResolution
from pos_engine.utils.money import ZERO

logger = logging.getLogger(__name__)


def find_default_rate(tax_rates: Iterable[TaxRate]) -> Optional[TaxRate]:
    """Rate flagged as default, or the first known one."""
    rates = list(tax_rates or [])
    for rate in rates:
        if rate.is_default:
            return rate
    return rates[0] if rates else None


def resolve_tax(
    product: Product,
    tax_rates: Iterable[TaxRate],
    default_rate_id: Optional[int] = None,
) -> TaxResolution:
    """
    Resolve the tax of a product.

    Order: product not taxable, product rate id, explicit product
    percentage (untracked by id), configured default id, rate flagged as
    default (or first rate). With no rate at all the product stays taxable
    at 0%.
    """
    if not product.is_taxable:
        return NOT_TAXABLE

    rates = list(tax_rates or [])
    by_id = {rate.tax_rate_id: rate for rate in rates}

    if product.tax_rate_id is not None and product.tax_rate_id in by_id:
        rate = by_id[product.tax_rate_id]
        return TaxResolution(rate.tax_rate_id, rate.rate_percentage, True)

    if product.tax_rate_percentage is not None:
        return TaxResolution(None, product.tax_rate_percentage, True)

    if default_rate_id is not None and default_rate_id in by_id:
        rate = by_id[default_rate_id]
        return TaxResolution(rate.tax_rate_id, rate.rate_percentage, True)

    fallback = find_default_rate(rates)
    if fallback:
        return TaxResolution(fallback.tax_rate_id, fallback.rate_percentage, True)

    logger.warning(
        f"[TAX] No tax rate resolves for taxable product {product.product_id}; using 0%"
    )
    return TaxResolution(None, ZERO, True)
