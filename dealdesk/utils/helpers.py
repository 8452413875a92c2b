"""Shared utility functions.

parse_date:        lenient parser (returns None on bad input)
parse_date_input:  strict parser (raises ValueError on bad input)
parse_int_input, parse_number_input, parse_bool_input: strict JSON field parsers
as_date:           normalise date / datetime / string to a date
"""
import logging
from datetime import date, datetime

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Same as parse_date() but raises ValueError instead of returning None.
    Used by the lifecycle service where a bad due date is a validation error.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY.")
    return parsed


def as_date(value):
    """Return the calendar date of a date, datetime or ISO string (None passes through)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value)


def parse_int_input(value):
    """Parse an integer field, raising ValueError on bad input.

    None and "" map to None; integer strings are accepted ("5" → 5).
    Booleans and non-integral numbers are rejected.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("Must be an integer.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValueError("Must be an integer.")


def parse_number_input(value):
    """Parse a numeric field (int or float), raising ValueError on bad input."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("Must be a number.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ValueError("Must be a number.")


def parse_bool_input(value):
    """Parse a boolean field: JSON true/false only; None maps to None."""
    if value is None or isinstance(value, bool):
        return value
    raise ValueError("Must be true or false.")
