"""Key and amount normalization shared by every close-channel component.

Storage keys, addresses and channel ids cross service boundaries as hex
strings in whatever case the producer chose. Anything that compares or indexes
by key goes through ``normalize_key`` so lookups never depend on the source.
"""

from __future__ import annotations

from typing import Optional, Union

ZERO_KEY = "0x" + "0" * 64

SUPPORTED_TREE_SIZES: tuple[int, ...] = (16, 32, 64, 128)

AmountLike = Union[int, str, None]


_HEX_DIGITS = frozenset("0123456789abcdef")


def normalize_key(key: str) -> str:
    """Canonical form of a storage key: lower-case, ``0x``-prefixed, 32 bytes.

    Short hex keys are left-padded to 64 digits so ``0xBB`` and the on-chain
    ``bytes32`` rendering of the same key compare equal. Anything that is not
    plain hex of at most 32 bytes is only lower-cased and prefixed.
    """
    lowered = key.strip().lower()
    digits = lowered[2:] if lowered.startswith("0x") else lowered
    if digits and len(digits) <= 64 and set(digits) <= _HEX_DIGITS:
        return f"0x{digits.rjust(64, '0')}"
    return f"0x{digits}"


def mpt_key_to_hex(key: Union[int, str, bytes]) -> str:
    """Render an on-chain L2 MPT key as a 32-byte, 0x-prefixed hex string."""
    if isinstance(key, bytes):
        value = int.from_bytes(key, "big")
    elif isinstance(key, str):
        value = int(normalize_key(key), 16)
    else:
        value = int(key)
    if value < 0:
        raise ValueError(f"MPT key must be non-negative, got {value}")
    return f"0x{value:064x}"


def parse_amount(value: AmountLike) -> int:
    """Parse an unsigned amount given as int, decimal string or 0x-hex string.

    ``None``, ``""`` and ``"0x"`` all mean zero.

    Raises:
        ValueError: If the value is negative or not a number.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        amount = value
    else:
        text = value.strip()
        if text in ("", "0x", "0X"):
            return 0
        try:
            if text.lower().startswith("0x"):
                amount = int(text, 16)
            else:
                amount = int(text, 10)
        except ValueError:
            raise ValueError(f"Invalid amount: {value!r}") from None
    if amount < 0:
        raise ValueError(f"Amount must be unsigned, got {amount}")
    return amount


def amount_to_decimal_str(value: AmountLike) -> str:
    """Convert a hex or decimal amount into the decimal string the circuit expects."""
    return str(parse_amount(value))


def is_supported_tree_size(tree_size: int) -> bool:
    return tree_size in SUPPORTED_TREE_SIZES


def expected_public_signal_count(tree_size: int) -> int:
    """Public signals for a tree: the root, then one key and one value per leaf."""
    return tree_size * 2 + 1


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return normalize_key(a) == normalize_key(b)
