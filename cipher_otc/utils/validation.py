"""
Input Validation - Security-focused input sanitization.

Provides validation for all external inputs to prevent:
- Malformed identities and handles
- Integer overflows (amounts are uint64)
- Invalid proof encodings
"""

from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_ADDRESS_SIZE = 20
MAX_HANDLE_SIZE = 32
MAX_PROOF_SIZE = 1 + 255 * 64  # count byte + up to 255 signatures

MIN_AMOUNT = 0
MAX_AMOUNT = 2**64 - 1

ZERO_ADDRESS = bytes(MAX_ADDRESS_SIZE)


# =============================================================================
# Validation Functions
# =============================================================================


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 20-byte, non-zero address."""
    valid, err = validate_bytes(address, name, expected_length=MAX_ADDRESS_SIZE)
    if not valid:
        return False, err
    if bytes(address) == ZERO_ADDRESS:
        return False, f"{name} must not be the zero address"
    return True, ""


def validate_handle(handle: Any, name: str = "handle") -> Tuple[bool, str]:
    """Validate a ciphertext handle."""
    return validate_bytes(handle, name, expected_length=MAX_HANDLE_SIZE)


def validate_proof(proof: Any, name: str = "proof") -> Tuple[bool, str]:
    """Validate proof bytes (structure only; signatures are checked separately)."""
    valid, err = validate_bytes(proof, name, max_length=MAX_PROOF_SIZE)
    if not valid:
        return False, err
    if len(proof) == 0:
        return False, f"{name} must not be empty"
    return True, ""


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Booleans are rejected even though they subclass int.

    Returns:
        (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any) -> Tuple[bool, str]:
    """Validate a strictly positive token amount."""
    return validate_integer(amount, "amount", 1, MAX_AMOUNT)


__all__ = [
    "validate_bytes",
    "validate_address",
    "validate_handle",
    "validate_proof",
    "validate_integer",
    "validate_amount",
    "MAX_ADDRESS_SIZE",
    "MAX_HANDLE_SIZE",
    "ZERO_ADDRESS",
]
