import logging
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


def to_plain(data: Any) -> Any:
    """
    Recursively convert condition values into plain, JSON-compatible data.

    Handles:
    - Pydantic BaseModel instances (dumped by alias in JSON mode)
    - Python dataclasses
    - Enum members (converted to their value)
    - datetime/date (ISO 8601 strings) and Decimal (float)
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (converted to lists)

    Args:
        data: The value to convert

    Returns:
        The converted value
    """
    if data is None:
        return None

    if isinstance(data, Enum):
        return data.value

    if is_dataclass(data) and not isinstance(data, type):
        return to_plain(asdict(data))

    # Pydantic models
    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        try:
            return to_plain(data.model_dump(mode="json", by_alias=True))
        except Exception as e:
            logger.debug(f"Error using model_dump(mode='json', by_alias=True): {e}")
            return to_plain(data.model_dump(by_alias=True))

    if isinstance(data, dict):
        return {str(k): to_plain(v) for k, v in data.items()}

    if isinstance(data, (list, tuple)):
        return [to_plain(item) for item in data]

    if isinstance(data, (set, frozenset)):
        # Sets have no order; sort for stable fingerprints where possible
        items = [to_plain(item) for item in data]
        try:
            return sorted(items)
        except TypeError:
            return items

    if isinstance(data, (datetime, date)):
        return data.isoformat()

    if isinstance(data, Decimal):
        return float(data)

    return data


def is_array_value(value: Any) -> bool:
    """True for the sequence types accepted where an array value is required."""
    return isinstance(value, (list, tuple, set, frozenset))


def ensure_list(value: Any) -> list:
    """Wrap a scalar into a list; convert other array values to a list."""
    if isinstance(value, (set, frozenset)):
        return list(value)
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
