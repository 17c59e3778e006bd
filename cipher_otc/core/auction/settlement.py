"""
Settlement Verifier - Binds an off-chain reveal to stored commitments.

Protocol:
--------
1. Calculation stores three encrypted handles (winner_id, price, success).
2. The oracle decrypts them off-chain and signs
       keccak256(DOMAIN || handles || cleartexts)
3. Settlement recomputes that digest from the handles *stored on the
   request*, never from caller-supplied handles, and counts distinct trusted
   signatures. A reveal for another request, a tampered cleartext or an
   untrusted signer all fail here, before any state changes.
4. A verified success with an in-range winner id moves funds:
       winner --price--> escrow --(price - fee)--> seller
                                --fee-----------> treasury
       escrow --sell_amount--> winner
   Anything else refunds the sell asset to the seller.

All legs of a transfer plan run inside `atomic()`: if any leg fails, every
touched ledger is restored to its snapshot.
"""

from contextlib import contextmanager
from typing import Iterator, Optional, Sequence, Set, Tuple

from cipher_otc.core.auction.request import Bid, Request, RequestStatus
from cipher_otc.core.config import BPS_DENOMINATOR
from cipher_otc.core.ledger import TokenLedger
from cipher_otc.fhe.oracle import verify_decryption
from cipher_otc.crypto import short_hex
from cipher_otc.utils.logger import get_logger
from cipher_otc.utils.validation import validate_integer, validate_proof

logger = get_logger("settlement")


class CustodyError(Exception):
    """A ledger leg of a settlement plan was rejected."""


# =============================================================================
# Fee
# =============================================================================


def compute_fee(price: int, fee_bps: int) -> int:
    """Platform fee: price * fee_bps / 10000, rounded down."""
    return price * fee_bps // BPS_DENOMINATOR


# =============================================================================
# Atomic Custody
# =============================================================================


@contextmanager
def atomic(*ledgers: TokenLedger) -> Iterator[None]:
    """
    Snapshot every distinct ledger; restore all of them if the block raises.

    The exception is re-raised after the rollback.
    """
    unique = list({id(ledger): ledger for ledger in ledgers}.values())
    snapshots = [(ledger, ledger.snapshot()) for ledger in unique]
    try:
        yield
    except BaseException:
        for ledger, snapshot in snapshots:
            ledger.restore(snapshot)
        logger.warning(f"Rolled back {len(snapshots)} ledger(s)")
        raise


def _leg(result: Tuple[bool, str]) -> None:
    success, error = result
    if not success:
        raise CustodyError(error)


# =============================================================================
# Verifier
# =============================================================================


class SettlementVerifier:
    """
    Checks oracle reveals and executes the resulting custody plan.

    Args:
        escrow: Address holding locked assets (the auction engine)
        trusted_signers: Oracle signer addresses
        threshold: Distinct trusted signatures required per reveal
    """

    def __init__(self, escrow: bytes, trusted_signers: Set[bytes], threshold: int = 1):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.escrow = escrow
        self.trusted_signers = set(trusted_signers)
        self.threshold = threshold

    # =========================================================================
    # Reveal Verification
    # =========================================================================

    def verify(
        self,
        request: Request,
        winner_id: int,
        price: int,
        success: bool,
        proof: bytes,
    ) -> Tuple[bool, str]:
        """
        Check that (winner_id, price, success) is the certified decryption of
        the request's stored result handles.

        Returns:
            (is_valid, error_message)
        """
        if request.status != RequestStatus.CALCULATED:
            return False, f"Request {request.request_id} is {request.status.name}, not CALCULATED"

        handles = request.result_handles()
        if handles is None:
            return False, f"Request {request.request_id} has no stored results"

        for name, value in (("winner_id", winner_id), ("price", price)):
            is_valid, error = validate_integer(value, name)
            if not is_valid:
                return False, error
        if not isinstance(success, (bool, int)) or int(success) not in (0, 1):
            return False, f"success must be a boolean, got {success!r}"

        is_valid, error = validate_proof(proof)
        if not is_valid:
            return False, error

        cleartexts = [winner_id, price, int(success)]
        is_valid, error = verify_decryption(
            handles, cleartexts, proof, self.trusted_signers, self.threshold
        )
        if not is_valid:
            logger.warning(f"Request {request.request_id}: reveal rejected: {error}")
            return False, error
        return True, ""

    @staticmethod
    def resolve_winner(bids: Sequence[Bid], winner_id: int, success: bool) -> Optional[Bid]:
        """The winning bid, or None when the outcome is a failure."""
        if not success:
            return None
        if not 1 <= winner_id <= len(bids):
            logger.warning(f"Winner id {winner_id} outside 1..{len(bids)}")
            return None
        return bids[winner_id - 1]

    # =========================================================================
    # Custody Plans
    # =========================================================================

    def finalize(
        self,
        request: Request,
        winner: bytes,
        price: int,
        fee: int,
        treasury: bytes,
        sell_ledger: TokenLedger,
        buy_ledger: TokenLedger,
    ) -> Tuple[bool, str]:
        """
        Pay the seller and treasury from the winner, release the sell asset.

        Returns:
            (success, error_message); on failure no ledger has changed.
        """
        try:
            with atomic(buy_ledger, sell_ledger):
                _leg(buy_ledger.transfer_from(self.escrow, winner, self.escrow, price))
                _leg(buy_ledger.transfer(self.escrow, request.seller, price - fee))
                if fee > 0:
                    _leg(buy_ledger.transfer(self.escrow, treasury, fee))
                _leg(sell_ledger.transfer(self.escrow, winner, request.sell_amount))
        except CustodyError as e:
            logger.warning(f"Request {request.request_id}: settlement transfer failed: {e}")
            return False, f"Settlement transfer failed: {e}"

        logger.info(
            f"Request {request.request_id}: {short_hex(winner)} pays {price} "
            f"(fee {fee}) for {request.sell_amount}"
        )
        return True, ""

    def refund(self, request: Request, sell_ledger: TokenLedger) -> Tuple[bool, str]:
        """Return the locked sell asset to the seller."""
        try:
            with atomic(sell_ledger):
                _leg(sell_ledger.transfer(self.escrow, request.seller, request.sell_amount))
        except CustodyError as e:
            logger.warning(f"Request {request.request_id}: refund failed: {e}")
            return False, f"Refund failed: {e}"
        return True, ""


__all__ = [
    "CustodyError",
    "SettlementVerifier",
    "atomic",
    "compute_fee",
]
