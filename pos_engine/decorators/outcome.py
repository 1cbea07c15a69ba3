"""
Outcome decorator for the cart session facade.

Business rejections raised by the services (``PosError`` subclasses) are
turned into a failed ``Outcome`` carrying the error, so callers of the
facade branch on ``outcome.ok`` instead of catching.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Optional

from pos_engine.exceptions import PosError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    ok: bool
    value: Any = None
    error: Optional[PosError] = None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error else None

    def unwrap(self) -> Any:
        """Value of a successful outcome; re-raises the rejection otherwise."""
        if self.error is not None:
            raise self.error
        return self.value


def returns_outcome(f):
    """Decorator: wrap the result in ``Outcome`` and convert ``PosError`` into a rejection."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return Outcome(ok=True, value=f(*args, **kwargs))
        except PosError as e:
            logger.info(f"[CART] {f.__name__} rejected: {e.message}")
            return Outcome(ok=False, error=e)

    return decorated_function
