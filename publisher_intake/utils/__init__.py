"""Shared coercion helpers used by the extractors."""


def safe_int(v):
    """Convert a value to int, returning None on failure. Booleans are not numbers."""
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(round(float(v)))
    except (ValueError, TypeError, OverflowError):
        return None


def safe_float(v):
    """Convert a value to float, returning None on failure."""
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (ValueError, TypeError):
        return None
