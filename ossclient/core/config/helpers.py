"""Helpers for parsing byte-sized configuration values."""

from ossclient.core.const import BYTES_PER_KIB, BYTES_PER_MIB


def parse_bytes(value: int | str) -> int:
    """Parse a byte quantity from an integer or unit-suffixed string.

    Supported string units (case-insensitive):
        b, k, kb, m, mb, g, gb

    Args:
        value: Raw byte value as an ``int`` or string with an optional unit
            suffix.

    Returns:
        The parsed value in bytes.

    Raises:
        ValueError: If the input cannot be parsed or contains an unknown unit.
    """
    if isinstance(value, int):
        return value

    normalized_value = str(value).strip().lower()

    if normalized_value.isdigit():
        return int(normalized_value)

    numeric_part = normalized_value.rstrip("bgkm")
    unit_suffix = normalized_value[len(numeric_part) :]

    if not numeric_part.isdigit() or not unit_suffix:
        raise ValueError(f"Invalid byte value: {value!r}")

    multipliers = {
        "b": 1,
        "k": BYTES_PER_KIB,
        "kb": BYTES_PER_KIB,
        "m": BYTES_PER_MIB,
        "mb": BYTES_PER_MIB,
        "g": 1024 * BYTES_PER_MIB,
        "gb": 1024 * BYTES_PER_MIB,
    }
    if unit_suffix not in multipliers:
        raise ValueError(f"Unknown byte unit in {value!r}")
    return int(numeric_part) * multipliers[unit_suffix]
