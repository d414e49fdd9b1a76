"""Value normalization helpers shared by config loading and provider payload handling."""

from __future__ import annotations

import math


_TRUE_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_TOKENS = frozenset({"0", "false", "no", "off"})


def normalize_optional_string(value: object) -> str | None:
    """Return `value` as a stripped string, or `None` when it is missing or blank."""

    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_permissive_boolean(value: object) -> bool | None:
    """Parse a permissive boolean token and return `None` for unrecognized values."""

    if isinstance(value, bool):
        return value
    normalized = normalize_optional_string(value)
    if normalized is None:
        return None
    token = normalized.lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    return None


def parse_required_boolean(value: object, field_name: str) -> bool:
    """Parse a boolean value or raise an actionable `ValueError`."""

    parsed = parse_permissive_boolean(value)
    if parsed is None:
        raise ValueError(
            f"`{field_name}` must be a boolean value (`true`/`false`, `1`/`0`, `yes`/`no`)."
        )
    return parsed


def coerce_finite_float(value: object) -> float | None:
    """Convert numeric-looking provider values to a finite float.

    Booleans, NaN, infinities, and non-numeric strings yield `None` so callers
    can drop the value instead of propagating garbage into audio offsets.
    """

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = normalize_optional_string(value)
        if text is None:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number
