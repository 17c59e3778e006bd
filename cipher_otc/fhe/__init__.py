"""
CipherOTC FHE Module.

Simulated encrypted value capability and decryption oracle:
- Opaque ciphertext handles with per-handle access control
- Homomorphic arithmetic, comparison and oblivious select
- Threshold-signed decryption reveals
"""

from cipher_otc.fhe.executor import (
    AccessDenied,
    InvalidInputProof,
    Ciphertext,
    CiphertextType,
    FHEExecutor,
    FHEContext,
    UINT64_MODULUS,
)

from cipher_otc.fhe.oracle import (
    DecryptionOracle,
    DecryptionResponse,
    decryption_digest,
    encode_proof,
    decode_proof,
    verify_decryption,
)

__all__ = [
    # Executor
    "AccessDenied",
    "InvalidInputProof",
    "Ciphertext",
    "CiphertextType",
    "FHEExecutor",
    "FHEContext",
    "UINT64_MODULUS",
    # Oracle
    "DecryptionOracle",
    "DecryptionResponse",
    "decryption_digest",
    "encode_proof",
    "decode_proof",
    "verify_decryption",
]
