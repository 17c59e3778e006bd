"""
Decryption Oracle - Off-chain threshold decryption with signed reveals.

Flow:
1. Calculation publishes RESULTS_READY carrying the result handles.
2. An authorized requester (the seller, who was granted the handles) asks
   the oracle to decrypt them.
3. The oracle decrypts, then each signer signs
       keccak256(DOMAIN || handle_1 || ... || handle_n || cleartexts)
   where cleartexts are 32-byte big-endian words.
4. The requester submits cleartexts + proof to settlement, which recomputes
   the digest from its *stored* handles and counts trusted signatures.

Binding the digest to handles (not just values) means a reveal produced for
one request can never settle another request, even if the values coincide.

Proof wire layout: 1 byte signature count, then 64-byte (r || s) signatures.
"""

from typing import Dict, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator, model_validator

from cipher_otc.crypto import (
    KeyPair,
    generate_keypair,
    keccak256,
    recover_public_key,
    address_from_public_key,
    sign,
    hex_to_bytes,
    bytes_to_hex,
    short_hex,
)
from cipher_otc.core.events import AuctionEvent, EventBus, EventType
from cipher_otc.fhe.executor import FHEExecutor, HANDLE_SIZE
from cipher_otc.utils.logger import get_logger

logger = get_logger("oracle")


# =============================================================================
# Constants
# =============================================================================

DOMAIN_DECRYPTION = b"cipher-otc:decryption"

SIGNATURE_SIZE = 64
WORD_SIZE = 32


# =============================================================================
# Encoding
# =============================================================================


def encode_cleartexts(cleartexts: Sequence[int]) -> bytes:
    """ABI-style encoding: each value as a 32-byte big-endian word."""
    out = b""
    for value in cleartexts:
        value = int(value)
        if value < 0 or value >= 2 ** (8 * WORD_SIZE):
            raise ValueError(f"Cleartext {value} does not fit in a word")
        out += value.to_bytes(WORD_SIZE, "big")
    return out


def decryption_digest(handles: Sequence[bytes], cleartexts: Sequence[int]) -> bytes:
    """Digest signed by the oracle for a (handles, cleartexts) reveal."""
    if len(handles) != len(cleartexts):
        raise ValueError("handles and cleartexts differ in length")
    return keccak256(DOMAIN_DECRYPTION + b"".join(handles) + encode_cleartexts(cleartexts))


def encode_proof(signatures: Sequence[bytes]) -> bytes:
    if len(signatures) > 255:
        raise ValueError("Too many signatures")
    return bytes([len(signatures)]) + b"".join(signatures)


def decode_proof(proof: bytes) -> List[bytes]:
    """
    Split a proof into signatures.

    Raises:
        ValueError: If the proof is malformed
    """
    if not proof:
        raise ValueError("Empty proof")
    count = proof[0]
    body = proof[1:]
    if count == 0 or len(body) != count * SIGNATURE_SIZE:
        raise ValueError(f"Malformed proof: {count} signatures, {len(body)} bytes")
    return [body[i * SIGNATURE_SIZE:(i + 1) * SIGNATURE_SIZE] for i in range(count)]


def verify_decryption(
    handles: Sequence[bytes],
    cleartexts: Sequence[int],
    proof: bytes,
    trusted_signers: Set[bytes],
    threshold: int = 1,
) -> Tuple[bool, str]:
    """
    Check that proof certifies cleartexts as the decryption of handles.

    Args:
        handles: Ordered ciphertext commitments the reveal must match
        cleartexts: Claimed plaintext values, same order
        proof: Encoded signature bundle
        trusted_signers: Addresses of the oracle signers
        threshold: Distinct trusted signatures required

    Returns:
        (is_valid, error_message)
    """
    try:
        signatures = decode_proof(bytes(proof))
        digest = decryption_digest(handles, cleartexts)
    except ValueError as e:
        return False, f"Invalid proof: {e}"

    signers: Set[bytes] = set()
    for signature in signatures:
        for recovery_id in (0, 1):
            public_key = recover_public_key(digest, signature, recovery_id)
            if public_key is None:
                continue
            address = address_from_public_key(public_key)
            if address in trusted_signers:
                signers.add(address)
                break

    if len(signers) < threshold:
        return False, f"Invalid proof: {len(signers)} trusted signatures, need {threshold}"
    return True, ""


# =============================================================================
# Response Model
# =============================================================================


class DecryptionResponse(BaseModel):
    """
    Oracle payload returned to a requester.

    Byte fields accept raw bytes or 0x-hex strings and serialize to hex.
    """
    model_config = ConfigDict(frozen=True)

    handles: List[bytes]
    cleartexts: List[int]
    signatures: List[bytes]

    @field_validator("handles", "signatures", mode="before")
    @classmethod
    def _parse_hex(cls, value):
        return [hex_to_bytes(v) if isinstance(v, str) else v for v in value]

    @field_validator("handles")
    @classmethod
    def _check_handles(cls, value: List[bytes]) -> List[bytes]:
        for handle in value:
            if len(handle) != HANDLE_SIZE:
                raise ValueError(f"handle must be {HANDLE_SIZE} bytes, got {len(handle)}")
        return value

    @field_validator("signatures")
    @classmethod
    def _check_signatures(cls, value: List[bytes]) -> List[bytes]:
        if not value:
            raise ValueError("at least one signature required")
        for signature in value:
            if len(signature) != SIGNATURE_SIZE:
                raise ValueError(f"signature must be {SIGNATURE_SIZE} bytes, got {len(signature)}")
        return value

    @model_validator(mode="after")
    def _check_lengths(self) -> "DecryptionResponse":
        if len(self.handles) != len(self.cleartexts):
            raise ValueError("handles and cleartexts differ in length")
        return self

    @field_serializer("handles", "signatures")
    def _to_hex(self, value: List[bytes]) -> List[str]:
        return [bytes_to_hex(v) for v in value]

    @property
    def proof(self) -> bytes:
        return encode_proof(self.signatures)


# =============================================================================
# Oracle
# =============================================================================


class DecryptionOracle:
    """
    Simulated off-chain decryption service (KMS signers + relayer).

    Decrypts only for requesters holding a grant on every handle; the ACL is
    enforced by the executor.
    """

    def __init__(
        self,
        executor: FHEExecutor,
        signers: Optional[List[KeyPair]] = None,
        num_signers: int = 1,
    ):
        self.executor = executor
        self.signers: List[KeyPair] = signers or [generate_keypair() for _ in range(num_signers)]

        # request_id -> result handles announced by RESULTS_READY
        self.pending: Dict[int, List[bytes]] = {}

        logger.info(f"DecryptionOracle initialized with {len(self.signers)} signer(s)")

    @property
    def signer_addresses(self) -> Set[bytes]:
        return {kp.address for kp in self.signers}

    # =========================================================================
    # Event Observation
    # =========================================================================

    def watch(self, events: EventBus) -> None:
        """
        Subscribe to RESULTS_READY announcements.

        A request stays pending until a terminal event arrives, so a reveal
        can be served again after a rejected settlement.
        """
        events.subscribe(EventType.RESULTS_READY, self._on_results_ready)
        events.subscribe(EventType.AUCTION_FINALIZED, self._on_settled)
        events.subscribe(EventType.AUCTION_FAILED, self._on_settled)

    def _on_results_ready(self, event: AuctionEvent) -> None:
        self.pending[event.request_id] = list(event.data["handles"])
        logger.debug(f"Queued decryption for request {event.request_id}")

    def _on_settled(self, event: AuctionEvent) -> None:
        if self.pending.pop(event.request_id, None) is not None:
            logger.debug(f"Request {event.request_id} settled, dropped from pending")

    # =========================================================================
    # Decryption
    # =========================================================================

    def decrypt(self, handles: Sequence[bytes], requester: bytes) -> DecryptionResponse:
        """
        Decrypt handles for requester and sign the reveal.

        Raises:
            KeyError: Unknown handle
            AccessDenied: Requester holds no grant on some handle
        """
        cleartexts = []
        for handle in handles:
            ciphertext = self.executor.ciphertext(handle)
            cleartexts.append(self.executor.decrypt(ciphertext, requester))

        digest = decryption_digest(handles, cleartexts)
        signatures = [sign(digest, kp.private_key) for kp in self.signers]

        logger.info(f"Decrypted {len(handles)} handle(s) for {short_hex(requester)}")
        return DecryptionResponse(handles=list(handles), cleartexts=cleartexts, signatures=signatures)

    def fulfil(self, request_id: int, requester: bytes) -> DecryptionResponse:
        """
        Serve a queued RESULTS_READY request.

        Raises:
            KeyError: If no results are pending for request_id
        """
        if request_id not in self.pending:
            raise KeyError(f"No pending results for request {request_id}")
        return self.decrypt(self.pending[request_id], requester)


__all__ = [
    "DecryptionOracle",
    "DecryptionResponse",
    "decryption_digest",
    "encode_cleartexts",
    "encode_proof",
    "decode_proof",
    "verify_decryption",
]
