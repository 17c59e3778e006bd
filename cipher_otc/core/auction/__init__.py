"""
CipherOTC Auction Module.

This module provides the blind auction system:
- Encrypted validity masks
- Oblivious winner selection
- Request lifecycle records and store
- Reveal verification and settlement
- The CipherCore engine
"""

from cipher_otc.core.auction.request import (
    Bid,
    Request,
    RequestStatus,
    ImmutableFieldError,
    InvalidTransition,
)

from cipher_otc.core.auction.validity import compute_validity_mask

from cipher_otc.core.auction.selection import (
    SealedBid,
    SelectionResult,
    select_winner,
)

from cipher_otc.core.auction.store import AuctionStore

from cipher_otc.core.auction.settlement import (
    SettlementVerifier,
    compute_fee,
)

from cipher_otc.core.auction.engine import CipherCore

__all__ = [
    # Records
    "Bid",
    "Request",
    "RequestStatus",
    "ImmutableFieldError",
    "InvalidTransition",
    # Computation
    "compute_validity_mask",
    "SealedBid",
    "SelectionResult",
    "select_winner",
    # Engine
    "AuctionStore",
    "SettlementVerifier",
    "compute_fee",
    "CipherCore",
]
