"""
Platform configuration parameters for CipherOTC.

Defines auction limits, fee parameters, the duplicate-bid policy and the
decryption oracle threshold. Values can be overridden through environment
variables (optionally loaded from a .env file):

    CIPHER_OTC_MAX_BIDDERS
    CIPHER_OTC_FEE_BPS
    CIPHER_OTC_MAX_FEE_BPS
    CIPHER_OTC_ALLOW_DUPLICATE_BIDDERS
    CIPHER_OTC_KMS_THRESHOLD
    CIPHER_OTC_LOG_DIR
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "CIPHER_OTC_"

# Basis-point denominator for fee computation
BPS_DENOMINATOR = 10_000

# Plaintext width of encrypted integers
UINT64_MAX = 2**64 - 1


@dataclass
class PlatformConfig:
    """Platform-wide configuration parameters"""

    # Auction limits
    max_bidders: int = 10  # Bounds the oblivious selection scan

    # Fees (basis points of the clearing price)
    fee_bps: int = 100  # 1%
    max_fee_bps: int = 1000  # Ceiling enforced on admin updates

    # Policy: may one bidder hold several entries in the same request
    allow_duplicate_bidders: bool = True

    # Decryption oracle: distinct trusted signatures required per reveal
    kms_threshold: int = 1

    # Paths
    log_dir: Path = Path("logs")

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.validate()

    def validate(self) -> None:
        """Raise ValueError if any parameter is out of bounds."""
        if self.max_bidders < 1:
            raise ValueError(f"max_bidders must be >= 1, got {self.max_bidders}")
        if not 0 <= self.max_fee_bps <= BPS_DENOMINATOR:
            raise ValueError(f"max_fee_bps must be in [0, {BPS_DENOMINATOR}], got {self.max_fee_bps}")
        if not 0 <= self.fee_bps <= self.max_fee_bps:
            raise ValueError(f"fee_bps must be in [0, {self.max_fee_bps}], got {self.fee_bps}")
        if self.kms_threshold < 1:
            raise ValueError(f"kms_threshold must be >= 1, got {self.kms_threshold}")

    def to_dict(self) -> dict:
        return {f.name: (str(getattr(self, f.name)) if f.name == "log_dir" else getattr(self, f.name))
                for f in fields(self)}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean value: {raw!r}")


def load_config(env_file: Optional[str] = None) -> PlatformConfig:
    """
    Load configuration from the environment.

    Args:
        env_file: Optional path to a .env file. Variables already present in
            the process environment take precedence over the file.

    Returns:
        PlatformConfig instance

    Raises:
        ValueError: If a variable cannot be parsed or is out of bounds
    """
    if env_file:
        load_dotenv(env_file, override=False)

    overrides = {}
    for f in fields(PlatformConfig):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        if f.name == "allow_duplicate_bidders":
            overrides[f.name] = _parse_bool(raw)
        elif f.name == "log_dir":
            overrides[f.name] = Path(raw)
        else:
            try:
                overrides[f.name] = int(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{f.name.upper()} must be an integer, got {raw!r}") from None

    return PlatformConfig(**overrides)
