"""
Blind Winner Selection - Oblivious linear scan over encrypted bids.

Algorithm:
---------
Three encrypted accumulators start at zero/false:

    highest = 0, winning_id = 0, any_valid = false

For every bid (in submission order, 1-based id), with no early exit:

    effective  = price * mask
    is_new_high = effective > highest
    highest    = select(is_new_high, effective, highest)
    winning_id = select(is_new_high, id, winning_id)
    any_valid  = any_valid OR (effective > 0)

Finally:

    success = any_valid AND (highest >= reserve)

Properties:
- Strict `>` keeps the earliest bid on ties.
- Invalid bids are worth zero and can never win against a valid one.
- All-invalid input yields success=false and winning_id=0.
- The sequence of primitive operations depends only on the number of bids,
  never on their values.
"""

from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple

from cipher_otc.fhe.executor import Ciphertext, FHEContext
from cipher_otc.utils.logger import get_logger

logger = get_logger("selection")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class SealedBid:
    """Selection input: a bid id with its encrypted price and validity mask."""
    bid_id: int
    price: Ciphertext
    mask: Ciphertext


@dataclass(frozen=True)
class SelectionResult:
    """The three encrypted outputs of a selection."""
    winning_id: Ciphertext
    price: Ciphertext
    success: Ciphertext

    @property
    def handles(self) -> List[bytes]:
        """Handles in reveal order: (winning_id, price, success)."""
        return [self.winning_id.handle, self.price.handle, self.success.handle]

    def __iter__(self) -> Iterator[Ciphertext]:
        return iter((self.winning_id, self.price, self.success))


# =============================================================================
# Selection
# =============================================================================


def effective_price(fhe: FHEContext, price: Ciphertext, mask: Ciphertext) -> Ciphertext:
    """price * mask: the bid's value, or zero when it cannot be paid."""
    return fhe.mul(price, mask)


def select_winner(
    fhe: FHEContext,
    bids: Sequence[SealedBid],
    reserve: Ciphertext,
) -> SelectionResult:
    """
    Run the oblivious scan.

    Args:
        fhe: Context bound to the auction contract (must be able to use
            every price, mask and the reserve)
        bids: Bids in submission order, ids 1..n
        reserve: Encrypted reserve price

    Returns:
        SelectionResult with transiently-allowed handles; the caller decides
        which to persist.
    """
    zero = fhe.as_euint(0)
    highest = zero
    winning_id = fhe.as_euint(0)
    any_valid = fhe.as_ebool(False)

    for bid in bids:
        effective = effective_price(fhe, bid.price, bid.mask)
        is_new_high = fhe.gt(effective, highest)
        highest = fhe.select(is_new_high, effective, highest)
        winning_id = fhe.select(is_new_high, fhe.as_euint(bid.bid_id), winning_id)
        any_valid = fhe.or_(any_valid, fhe.gt(effective, zero))

    success = fhe.and_(any_valid, fhe.ge(highest, reserve))

    logger.debug(f"Scanned {len(bids)} bid(s)")
    return SelectionResult(winning_id=winning_id, price=highest, success=success)


def as_sealed_bids(entries: Sequence[Tuple[Ciphertext, Ciphertext]]) -> List[SealedBid]:
    """Number (price, mask) pairs 1..n in order."""
    return [SealedBid(bid_id=i, price=price, mask=mask) for i, (price, mask) in enumerate(entries, start=1)]


__all__ = [
    "SealedBid",
    "SelectionResult",
    "effective_price",
    "select_winner",
    "as_sealed_bids",
]
