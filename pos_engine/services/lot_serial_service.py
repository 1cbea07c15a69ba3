"""Lot / Serial Service - binding tracked lines to concrete inventory units."""
import logging
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from pos_engine.exceptions import ValidationError
from pos_engine.models import CartLine, Lot, Serial
from pos_engine.services.line_service import find_line, replace_line

logger = logging.getLogger(__name__)

LotFetcher = Callable[[int, int], List[Lot]]

NO_LOTS_MESSAGE = 'No lots found for this product.'
NO_SERIALS_MESSAGE = 'No serials available for this product.'


def sort_fefo(lots: Iterable[Lot]) -> List[Lot]:
    """Earliest expiration first, undated lots last; stable otherwise."""
    return sorted(
        lots or [],
        key=lambda lot: (lot.expiration_date is None, lot.expiration_date or date.min),
    )


def lot_candidates(
    fetch_lots: LotFetcher,
    product_id: Optional[int],
    warehouse_id: Optional[int],
) -> List[Lot]:
    """Candidate lots of a product in a warehouse, FEFO suggestion first."""
    if not product_id or not warehouse_id:
        return []
    return sort_fefo(fetch_lots(product_id, warehouse_id))


def pack_lot_candidates(
    lines: List[CartLine],
    group_id: str,
    fetch_lots: LotFetcher,
    warehouse_id: Optional[int],
) -> Dict[str, List[Lot]]:
    """Candidate lots for every lot-tracked member of a pack, keyed by line id."""
    members = [l for l in lines if l.pack_group_id == group_id and l.uses_lots]
    if not members:
        raise ValidationError('No lot-tracked items in this pack.')
    return {
        line.line_id: lot_candidates(fetch_lots, line.product_id, warehouse_id)
        for line in members
    }


def next_pending_binding(lines: List[CartLine]) -> Optional[CartLine]:
    """First line waiting for a lot, else the first waiting for a serial (cart order)."""
    for line in lines:
        if line.needs_lot:
            return line
    for line in lines:
        if line.needs_serial:
            return line
    return None


def incomplete_lines(lines: List[CartLine]) -> List[CartLine]:
    return [line for line in lines if not line.is_complete]


def _with_lot(line: CartLine, lot: Lot) -> CartLine:
    return line.with_changes(
        lot_id=lot.lot_id,
        lot_number=lot.lot_number,
        lot_expiration=lot.expiration_date,
    )


def bind_lot(lines: List[CartLine], line_id: str, lot: Lot) -> List[CartLine]:
    line = find_line(lines, line_id)
    if line is None:
        return lines
    if not line.uses_lots:
        raise ValidationError('This item is not lot-tracked.')
    logger.info(f"[LOTS] Line {line_id} bound to lot {lot.lot_number or lot.lot_id}")
    return replace_line(lines, _with_lot(line, lot))


def bind_pack_lots(lines: List[CartLine], lots_by_line: Dict[str, Lot]) -> List[CartLine]:
    """Bind each lot-tracked member of a pack independently (line id -> lot)."""
    for line_id, lot in lots_by_line.items():
        target = find_line(lines, line_id)
        if target is None or not target.uses_lots or lot is None:
            continue
        lines = replace_line(lines, _with_lot(target, lot))
    return lines


def bind_serial(lines: List[CartLine], line_id: str, serial: Serial) -> List[CartLine]:
    """Bind a serial; one serial is exactly one unit, so quantity becomes 1."""
    line = find_line(lines, line_id)
    if line is None:
        return lines
    if not line.uses_serials:
        raise ValidationError('This item is not serial-tracked.')
    for other in lines:
        if other.line_id != line_id and other.serial_id == serial.serial_id:
            raise ValidationError(f"Serial {serial.serial_number} is already in the cart.")
    logger.info(f"[SERIALS] Line {line_id} bound to serial {serial.serial_number}")
    return replace_line(lines, line.with_changes(
        serial_id=serial.serial_id,
        serial_number=serial.serial_number,
        quantity=1,
    ))

