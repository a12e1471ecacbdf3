"""
Unsigned Integer Arithmetic

Balances, fees and pool counters are unsigned integers of a fixed bit width
(256 by default). Python integers never overflow on their own, so every
addition and multiplication that can exceed the width goes through a checked
helper here.
"""

from typing import Final

from .errors import Overflow


DEFAULT_BITS: Final[int] = 256
UINT256_MAX: Final[int] = 2 ** DEFAULT_BITS - 1


def max_for_bits(bits: int) -> int:
    """Largest value representable in ``bits`` unsigned bits"""
    if bits <= 0:
        raise ValueError(f"Bit width must be positive, got {bits}")
    return 2 ** bits - 1


def as_uint(value: int, name: str = "amount", max_value: int = UINT256_MAX) -> int:
    """
    Validate that a value is a well-typed unsigned integer

    Raises:
        TypeError: If value is not an int (bool is rejected too)
        ValueError: If value is negative
        Overflow: If value exceeds max_value
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be unsigned, got {value}")
    if value > max_value:
        raise Overflow(f"{name} {value} exceeds maximum {max_value}")
    return value


def checked_add(a: int, b: int, max_value: int = UINT256_MAX) -> int:
    """Add two unsigned values, raising Overflow past max_value"""
    result = a + b
    if result > max_value:
        raise Overflow(f"{a} + {b} overflows maximum {max_value}")
    return result


def checked_mul(a: int, b: int, max_value: int = UINT256_MAX) -> int:
    """Multiply two unsigned values, raising Overflow past max_value"""
    result = a * b
    if result > max_value:
        raise Overflow(f"{a} * {b} overflows maximum {max_value}")
    return result
