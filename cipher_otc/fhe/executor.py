"""
FHE Executor - Encrypted value capability for CipherOTC.

Conceptual Background:
---------------------
Contracts never see plaintext. They hold opaque `Ciphertext` handles and ask
the executor (the coprocessor) to compute on them. Every result is a new
handle. Who may use or decrypt a handle is governed by an access-control
list kept per handle:

1. **Persistent grants**: `allow(value, identity)` / `allow_this(value)`.
   They survive the unit of work that created them.
2. **Transient grants**: every value produced inside an `FHEContext`, and
   every verified external input, is usable by the context's caller until
   the context closes. Anything needed by a later operation must be
   persisted explicitly.

Decryption is only available to identities holding a persistent grant.

Simulation Notice:
-----------------
The executor keeps plaintexts in memory. It implements the algorithmic and
access-control contract of an FHE coprocessor (linear comparison, oblivious
select, additive/multiplicative composition) but provides NO secrecy against
the process hosting it.
"""

import secrets
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, FrozenSet, Set, Tuple

from cipher_otc.crypto import keccak256, contract_address, short_hex
from cipher_otc.utils.logger import get_logger

logger = get_logger("fhe")


# =============================================================================
# Constants
# =============================================================================

UINT64_MODULUS = 2**64

HANDLE_SIZE = 32

DOMAIN_HANDLE = b"cipher-otc:handle"
DOMAIN_INPUT_PROOF = b"cipher-otc:input-proof"


# =============================================================================
# Errors
# =============================================================================


class AccessDenied(PermissionError):
    """Raised when an identity uses or decrypts a handle it holds no grant for."""


class InvalidInputProof(PermissionError):
    """Raised when an external encrypted input is not bound to (contract, sender)."""


# =============================================================================
# Ciphertext
# =============================================================================


class CiphertextType(IntEnum):
    """Encrypted value types (encoded in the last byte of each handle)."""
    EBOOL = 0
    EUINT64 = 5


@dataclass(frozen=True)
class Ciphertext:
    """
    Opaque reference to an encrypted value.

    Carries only the handle (the commitment used to bind later reveals) and
    the value type. The plaintext lives in the executor.
    """
    handle: bytes
    ctype: CiphertextType

    @property
    def is_bool(self) -> bool:
        return self.ctype == CiphertextType.EBOOL

    def __repr__(self) -> str:
        kind = "ebool" if self.is_bool else "euint64"
        return f"Ciphertext({kind}, {short_hex(self.handle, 14)})"


# =============================================================================
# Executor
# =============================================================================


class FHEExecutor:
    """
    In-process encrypted value capability.

    Attributes:
        address: Identity of the executor itself
        operation_count: Number of primitive operations evaluated (cost model)
    """

    def __init__(self, label: str = "FHEExecutor"):
        self.address = contract_address(label)
        self._salt = secrets.token_bytes(16)
        self._input_key = secrets.token_bytes(32)
        self._plaintexts: Dict[bytes, int] = {}
        self._types: Dict[bytes, CiphertextType] = {}
        self._acl: Dict[bytes, Set[bytes]] = {}
        self._counter = 0
        self.operation_count = 0

        logger.debug(f"FHEExecutor initialized at {short_hex(self.address)}")

    # =========================================================================
    # Handle Management
    # =========================================================================

    def _new_ciphertext(self, value: int, ctype: CiphertextType) -> Ciphertext:
        self._counter += 1
        digest = keccak256(DOMAIN_HANDLE + self._salt + self._counter.to_bytes(8, "big"))
        handle = digest[:HANDLE_SIZE - 1] + bytes([int(ctype)])

        if ctype == CiphertextType.EBOOL:
            value = 1 if value else 0
        else:
            value %= UINT64_MODULUS

        self._plaintexts[handle] = value
        self._types[handle] = ctype
        self._acl[handle] = set()
        return Ciphertext(handle=handle, ctype=ctype)

    def ciphertext(self, handle: bytes) -> Ciphertext:
        """
        Look up a handle.

        Raises:
            KeyError: If the handle was never produced by this executor
        """
        if handle not in self._types:
            raise KeyError(f"Unknown handle {short_hex(handle)}")
        return Ciphertext(handle=handle, ctype=self._types[handle])

    def exists(self, handle: bytes) -> bool:
        return handle in self._types

    # =========================================================================
    # Access Control
    # =========================================================================

    def is_allowed(self, value: Ciphertext, identity: bytes) -> bool:
        """Whether identity holds a persistent grant on value."""
        return identity in self._acl.get(value.handle, ())

    def allowed_identities(self, value: Ciphertext) -> FrozenSet[bytes]:
        return frozenset(self._acl.get(value.handle, ()))

    def _grant(self, value: Ciphertext, identity: bytes) -> None:
        if value.handle not in self._acl:
            raise KeyError(f"Unknown handle {short_hex(value.handle)}")
        self._acl[value.handle].add(identity)

    def decrypt(self, value: Ciphertext, identity: bytes) -> int:
        """
        Decrypt a value on behalf of identity.

        Raises:
            AccessDenied: If identity holds no persistent grant on value
        """
        if not self.is_allowed(value, identity):
            raise AccessDenied(f"{short_hex(identity)} may not decrypt {short_hex(value.handle)}")
        return self._plaintexts[value.handle]

    # =========================================================================
    # Encrypted Inputs
    # =========================================================================

    def _input_proof(self, handle: bytes, contract: bytes, sender: bytes) -> bytes:
        return keccak256(DOMAIN_INPUT_PROOF + self._input_key + handle + contract + sender)

    def encrypt_input(
        self,
        value: int,
        contract: bytes,
        sender: bytes,
        ctype: CiphertextType = CiphertextType.EUINT64,
    ) -> Tuple[bytes, bytes]:
        """
        Client-side encryption of an input destined for contract.

        Args:
            value: Plaintext value
            contract: Contract that will consume the input
            sender: Account submitting the input

        Returns:
            (handle, input_proof)
        """
        if ctype == CiphertextType.EUINT64 and not 0 <= value < UINT64_MODULUS:
            raise ValueError(f"Value {value} does not fit in uint64")
        ct = self._new_ciphertext(value, ctype)
        self._grant(ct, sender)
        return ct.handle, self._input_proof(ct.handle, contract, sender)

    # =========================================================================
    # Contexts
    # =========================================================================

    def bind(self, caller: bytes) -> "FHEContext":
        """Open a unit of work on behalf of caller."""
        return FHEContext(self, caller)


class FHEContext:
    """
    A unit of work executed by one caller.

    Every operand must be persistently allowed for the caller, or have been
    produced within this context. Results are transiently allowed until the
    context is closed.

    Usage:
        with executor.bind(contract_address) as fhe:
            total = fhe.add(a, b)
            fhe.allow_this(total)
    """

    def __init__(self, executor: FHEExecutor, caller: bytes):
        self.executor = executor
        self.caller = caller
        self._transient: Set[bytes] = set()
        self._closed = False

    def __enter__(self) -> "FHEContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._transient.clear()
        self._closed = True

    # =========================================================================
    # Access Checks
    # =========================================================================

    def can_use(self, value: Ciphertext) -> bool:
        if self._closed:
            return False
        return value.handle in self._transient or self.executor.is_allowed(value, self.caller)

    def _require(self, *values: Ciphertext) -> None:
        for value in values:
            if not isinstance(value, Ciphertext):
                raise TypeError(f"Expected Ciphertext, got {type(value).__name__}")
            if not self.can_use(value):
                raise AccessDenied(
                    f"{short_hex(self.caller)} may not use {short_hex(value.handle)}"
                )

    def _emit(self, value: int, ctype: CiphertextType) -> Ciphertext:
        ct = self.executor._new_ciphertext(value, ctype)
        self._transient.add(ct.handle)
        self.executor.operation_count += 1
        return ct

    def _plain(self, value: Ciphertext) -> int:
        return self.executor._plaintexts[value.handle]

    @staticmethod
    def _expect(ctype: CiphertextType, *values: Ciphertext) -> None:
        for value in values:
            if value.ctype != ctype:
                raise TypeError(f"Expected {ctype.name}, got {value.ctype.name}")

    # =========================================================================
    # Grants
    # =========================================================================

    def allow(self, value: Ciphertext, identity: bytes) -> None:
        """Persistently grant identity use and decryption of value."""
        self._require(value)
        self.executor._grant(value, identity)

    def allow_this(self, value: Ciphertext) -> None:
        """Persistently grant the caller itself."""
        self.allow(value, self.caller)

    def from_external(self, handle: bytes, input_proof: bytes, sender: bytes) -> Ciphertext:
        """
        Accept an encrypted input submitted by sender.

        Raises:
            InvalidInputProof: If the proof does not bind handle to (caller, sender)
        """
        if not self.executor.exists(handle):
            raise InvalidInputProof(f"Unknown input handle {short_hex(handle)}")
        expected = self.executor._input_proof(handle, self.caller, sender)
        if not secrets.compare_digest(expected, bytes(input_proof)):
            raise InvalidInputProof(f"Input proof mismatch for {short_hex(handle)}")
        ct = self.executor.ciphertext(handle)
        self._transient.add(handle)
        return ct

    # =========================================================================
    # Trivial Encryption
    # =========================================================================

    def as_euint(self, plain: int) -> Ciphertext:
        """Encrypt a public constant (encryptConstant)."""
        if not 0 <= plain < UINT64_MODULUS:
            raise ValueError(f"Value {plain} does not fit in uint64")
        return self._emit(plain, CiphertextType.EUINT64)

    def as_ebool(self, plain: bool) -> Ciphertext:
        return self._emit(1 if plain else 0, CiphertextType.EBOOL)

    # =========================================================================
    # Arithmetic (wrapping modulo 2^64)
    # =========================================================================

    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EUINT64, a, b)
        return self._emit(self._plain(a) + self._plain(b), CiphertextType.EUINT64)

    def sub(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EUINT64, a, b)
        return self._emit(self._plain(a) - self._plain(b), CiphertextType.EUINT64)

    def mul(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EUINT64, a, b)
        return self._emit(self._plain(a) * self._plain(b), CiphertextType.EUINT64)

    # =========================================================================
    # Comparison
    # =========================================================================

    def _compare(self, result: bool) -> Ciphertext:
        return self._emit(1 if result else 0, CiphertextType.EBOOL)

    def gt(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EUINT64, a, b)
        return self._compare(self._plain(a) > self._plain(b))

    def ge(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EUINT64, a, b)
        return self._compare(self._plain(a) >= self._plain(b))

    def le(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EUINT64, a, b)
        return self._compare(self._plain(a) <= self._plain(b))

    def lt(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EUINT64, a, b)
        return self._compare(self._plain(a) < self._plain(b))

    def eq(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        if a.ctype != b.ctype:
            raise TypeError(f"Cannot compare {a.ctype.name} with {b.ctype.name}")
        return self._compare(self._plain(a) == self._plain(b))

    # =========================================================================
    # Boolean Logic
    # =========================================================================

    def and_(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EBOOL, a, b)
        return self._emit(self._plain(a) & self._plain(b), CiphertextType.EBOOL)

    def or_(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        self._require(a, b)
        self._expect(CiphertextType.EBOOL, a, b)
        return self._emit(self._plain(a) | self._plain(b), CiphertextType.EBOOL)

    def not_(self, a: Ciphertext) -> Ciphertext:
        self._require(a)
        self._expect(CiphertextType.EBOOL, a)
        return self._emit(1 - self._plain(a), CiphertextType.EBOOL)

    # =========================================================================
    # Oblivious Select
    # =========================================================================

    def select(self, condition: Ciphertext, if_true: Ciphertext, if_false: Ciphertext) -> Ciphertext:
        """
        Oblivious multiplexer.

        Returns a fresh handle holding if_true's value when condition is true,
        else if_false's. The returned handle never equals either operand, so
        the choice is not observable from handles.
        """
        self._require(condition, if_true, if_false)
        self._expect(CiphertextType.EBOOL, condition)
        if if_true.ctype != if_false.ctype:
            raise TypeError(f"select operands differ: {if_true.ctype.name} vs {if_false.ctype.name}")
        chosen = if_true if self._plain(condition) else if_false
        return self._emit(self._plain(chosen), if_true.ctype)


__all__ = [
    "AccessDenied",
    "InvalidInputProof",
    "Ciphertext",
    "CiphertextType",
    "FHEExecutor",
    "FHEContext",
    "UINT64_MODULUS",
]
