from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
import uuid


def to_decimal(value: Any, places: str = "0.01") -> Optional[Decimal]:
    """Parse Hub numeric strings ("12.5", 12.5, None) into a quantized Decimal."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(Decimal(places))
    except (ArithmeticError, ValueError):
        return None


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None
