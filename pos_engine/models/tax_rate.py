"""Tax rate reference data and the resolved tax of a line."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from pos_engine.utils.money import to_decimal, to_int, to_flag


@dataclass(frozen=True)
class TaxRate:
    """A company tax rate (e.g. IVA 19%)."""

    tax_rate_id: int
    rate_percentage: Decimal
    name: str = ''
    is_default: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TaxRate':
        return cls(
            tax_rate_id=to_int(data.get('TaxRateID')),
            rate_percentage=to_decimal(data.get('RatePercentage')),
            name=str(data.get('Name') or ''),
            is_default=to_flag(data.get('IsDefault', 0)),
        )


@dataclass(frozen=True)
class TaxResolution:
    """Effective tax of a product: rate id (None when untracked), percentage and taxable flag."""

    rate_id: Optional[int]
    rate_percentage: Decimal
    is_taxable: bool


NOT_TAXABLE = TaxResolution(rate_id=None, rate_percentage=Decimal('0'), is_taxable=False)
