"""
Request Records - OTC requests, bids and the lifecycle state machine.

State Machine:
-------------
    ACTIVE ──calculate──► CALCULATED ──settle──► FINALIZED
      │                        └──────settle──► FAILED
      ├──calculate (no bids)──────────────────► FAILED
      └──cancel───────────────────────────────► CANCELLED

Every state but ACTIVE is terminal except CALCULATED, which only settlement
can leave.

Record Invariants (enforced on assignment):
- Creation fields never change after construction.
- The three encrypted result handles are written exactly once.
- winner / clearing_price are written exactly once.
- status only follows the edges above.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, FrozenSet, List, Optional

from cipher_otc.fhe.executor import Ciphertext


# =============================================================================
# Errors
# =============================================================================


class ImmutableFieldError(ValueError):
    """Raised when a fixed or write-once record field is overwritten."""


class InvalidTransition(RuntimeError):
    """Raised when a request status change does not follow the state machine."""


# =============================================================================
# Status
# =============================================================================


class RequestStatus(IntEnum):
    """Lifecycle status of an OTC request."""
    ACTIVE = 0       # Accepting bids
    CALCULATED = 1   # Encrypted results stored, awaiting reveal
    FINALIZED = 2    # Settled with a winner
    FAILED = 3       # No eligible winner; sell asset refunded
    CANCELLED = 4    # Withdrawn by seller before calculation


ALLOWED_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.ACTIVE: frozenset({
        RequestStatus.CALCULATED,
        RequestStatus.FAILED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.CALCULATED: frozenset({
        RequestStatus.FINALIZED,
        RequestStatus.FAILED,
    }),
    RequestStatus.FINALIZED: frozenset(),
    RequestStatus.FAILED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

FIXED_FIELDS = frozenset({
    "request_id",
    "seller",
    "sell_asset",
    "sell_amount",
    "buy_asset",
    "reserve_price",
    "created_at",
})

WRITE_ONCE_FIELDS = frozenset({
    "enc_winner_id",
    "enc_price",
    "enc_success",
    "winner",
    "clearing_price",
})


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class Bid:
    """A submitted bid. Never modified once stored."""
    bidder: bytes
    price: Ciphertext
    validity_mask: Ciphertext
    submitted_at: int = field(default_factory=lambda: int(time.time()))


@dataclass
class Request:
    """
    One OTC request (a single sealed-bid auction).

    Attributes:
        request_id: Sequential id, starting at 1
        seller: Account that created the request
        sell_asset: Address of the plain token being sold
        sell_amount: Amount of sell_asset locked in escrow
        buy_asset: Address of the confidential payment token
        reserve_price: Encrypted minimum acceptable price
        status: Current lifecycle status
        enc_winner_id / enc_price / enc_success: Encrypted selection results
        winner / clearing_price: Revealed outcome (success only)
    """
    request_id: int
    seller: bytes
    sell_asset: bytes
    sell_amount: int
    buy_asset: bytes
    reserve_price: Ciphertext
    status: RequestStatus = RequestStatus.ACTIVE
    created_at: int = field(default_factory=lambda: int(time.time()))

    # Encrypted results (set by calculation)
    enc_winner_id: Optional[Ciphertext] = None
    enc_price: Optional[Ciphertext] = None
    enc_success: Optional[Ciphertext] = None

    # Revealed outcome (set by settlement)
    winner: Optional[bytes] = None
    clearing_price: Optional[int] = None

    def __post_init__(self):
        if self.sell_amount <= 0:
            raise ValueError(f"sell_amount must be positive, got {self.sell_amount}")

    def __setattr__(self, name, value):
        if name in self.__dict__:
            current = self.__dict__[name]
            if name in FIXED_FIELDS:
                raise ImmutableFieldError(f"Request.{name} is fixed at creation")
            if name in WRITE_ONCE_FIELDS and current is not None:
                raise ImmutableFieldError(f"Request.{name} is already set")
            if name == "status" and value != current:
                if value not in ALLOWED_TRANSITIONS[current]:
                    raise InvalidTransition(
                        f"Request {self.request_id}: {current.name} -> {RequestStatus(value).name}"
                    )
        super().__setattr__(name, value)

    # =========================================================================
    # Results
    # =========================================================================

    def set_results(self, winning_id: Ciphertext, price: Ciphertext, success: Ciphertext) -> None:
        """Store the encrypted selection outputs (once)."""
        self.enc_winner_id = winning_id
        self.enc_price = price
        self.enc_success = success

    def set_outcome(self, winner: bytes, clearing_price: int) -> None:
        """Record the revealed winner and price (once)."""
        self.winner = winner
        self.clearing_price = clearing_price

    @property
    def has_results(self) -> bool:
        return self.enc_winner_id is not None

    def result_handles(self) -> Optional[List[bytes]]:
        """Result handles in reveal order, or None before calculation."""
        if not self.has_results:
            return None
        return [self.enc_winner_id.handle, self.enc_price.handle, self.enc_success.handle]

    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    def __repr__(self) -> str:
        return (f"Request(id={self.request_id}, status={self.status.name}, "
                f"sell={self.sell_amount}, seller={self.seller.hex()[:8]}...)")


__all__ = [
    "ImmutableFieldError",
    "InvalidTransition",
    "RequestStatus",
    "ALLOWED_TRANSITIONS",
    "Bid",
    "Request",
]
