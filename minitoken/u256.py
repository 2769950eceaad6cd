from minitoken.config import U256_MAX


def is_u256(value) -> bool:
    """True for plain ints within [0, 2**256 - 1]. bool is not a number here."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= U256_MAX


def require_u256(value, name="amount") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if not 0 <= value <= U256_MAX:
        raise ValueError(f"{name} out of U256 range: {value}")
    return value


def checked_add(a: int, b: int):
    """Returns a + b, or None if the sum does not fit in 256 bits."""
    total = a + b
    if total > U256_MAX:
        return None
    return total


def checked_sub(a: int, b: int):
    """Returns a - b, or None if it would go below zero."""
    if b > a:
        return None
    return a - b
