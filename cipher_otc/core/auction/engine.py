"""
CipherCore - Blind OTC auction engine.

Drives the request lifecycle:

    create_request ─► submit_bid* ─► calculate_winner ─► settle_auction
          └────────► cancel_request

Guarantees:
- Bid prices, the reserve and bidder balances are only ever handled as
  ciphertexts; the engine never decrypts them.
- Every mutating operation is atomic and non-reentrant. Events produced by
  an operation are published only after it has completed, so subscribers
  (such as the decryption oracle) observe committed state.
- Settlement accepts only a reveal certified for this request's stored
  handles, and only once.
- A request may remain CALCULATED indefinitely if no reveal arrives; it is
  never expired.

Public operations return (result, error_message). Record-level invariant
violations raise.
"""

import functools
from typing import Dict, List, Optional, Set, Tuple

from cipher_otc.core.auction.request import Bid, Request, RequestStatus
from cipher_otc.core.auction.selection import as_sealed_bids, select_winner
from cipher_otc.core.auction.settlement import SettlementVerifier, compute_fee
from cipher_otc.core.auction.store import AuctionStore
from cipher_otc.core.auction.validity import compute_validity_mask
from cipher_otc.core.config import PlatformConfig
from cipher_otc.core.events import AuctionEvent, EventBus, EventType
from cipher_otc.core.ledger import TokenLedger
from cipher_otc.crypto import contract_address, short_hex
from cipher_otc.fhe.executor import (
    Ciphertext,
    CiphertextType,
    FHEContext,
    FHEExecutor,
    InvalidInputProof,
)
from cipher_otc.utils.logger import get_logger
from cipher_otc.utils.validation import (
    validate_address,
    validate_amount,
    validate_handle,
    validate_integer,
)

logger = get_logger("engine")


# =============================================================================
# Reentrancy Guard
# =============================================================================


def non_reentrant(failure=False):
    """
    Reject nested calls into any guarded operation of the same engine.

    A rejected call returns (failure, reason). Events queued by the outer
    operation are published once the guard is released.
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            if self._entered:
                logger.warning(f"Reentrant call to {method.__name__} rejected")
                return failure, "Reentrant call"
            self._entered = True
            try:
                result = method(self, *args, **kwargs)
            finally:
                self._entered = False
                outbox, self._outbox = self._outbox, []
            for event in outbox:
                self.events.publish(event)
            return result
        return wrapper
    return decorator


# =============================================================================
# Engine
# =============================================================================


class CipherCore:
    """
    Sealed-bid OTC auction engine over encrypted values.

    Args:
        executor: Encrypted value capability
        owner: Admin identity
        treasury: Fee recipient
        trusted_signers: Decryption oracle signer addresses
        config: Platform configuration (defaults if omitted)
        events: Event bus (a fresh one if omitted)
        label: Seed for the engine's address
    """

    def __init__(
        self,
        executor: FHEExecutor,
        owner: bytes,
        treasury: bytes,
        trusted_signers: Set[bytes],
        config: Optional[PlatformConfig] = None,
        events: Optional[EventBus] = None,
        label: str = "CipherCore",
    ):
        for name, value in (("owner", owner), ("treasury", treasury)):
            is_valid, error = validate_address(value, name)
            if not is_valid:
                raise ValueError(error)
        if not trusted_signers:
            raise ValueError("At least one trusted signer is required")

        self.executor = executor
        self.owner = owner
        self.config = config or PlatformConfig()
        self.events = events if events is not None else EventBus()
        self.address = contract_address(label)

        self.store = AuctionStore(treasury=treasury, fee_bps=self.config.fee_bps)
        self.verifier = SettlementVerifier(
            escrow=self.address,
            trusted_signers=trusted_signers,
            threshold=self.config.kms_threshold,
        )

        # Ledgers known to the engine, by address
        self._ledgers: Dict[bytes, TokenLedger] = {}

        self._entered = False
        self._outbox: List[AuctionEvent] = []

        logger.info(f"CipherCore deployed at {short_hex(self.address)}")

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _emit(self, event_type: EventType, request_id: int, **data) -> None:
        self._outbox.append(AuctionEvent(event_type=event_type, request_id=request_id, data=data))

    def _reject(self, result, reason: str):
        logger.warning(reason)
        return result, reason

    def _usable(self, fhe: FHEContext, value) -> Ciphertext:
        # Unknown accounts and handles the engine was never granted count as zero
        if isinstance(value, Ciphertext) and fhe.can_use(value):
            return value
        return fhe.as_euint(0)

    def _load_active(self, request_id: int) -> Tuple[Optional[Request], str]:
        request = self.store.get_request(request_id)
        if request is None:
            return None, f"Request {request_id} not found"
        if request.status != RequestStatus.ACTIVE:
            return None, f"Request {request_id} is {request.status.name}, not ACTIVE"
        return request, ""

    def _refund_and_close(self, request: Request, status: RequestStatus) -> Tuple[bool, str]:
        success, error = self.verifier.refund(request, self._ledgers[request.sell_asset])
        if not success:
            return False, error
        request.status = status
        return True, ""

    # =========================================================================
    # Create / Cancel
    # =========================================================================

    @non_reentrant(failure=None)
    def create_request(
        self,
        caller: bytes,
        sell_asset: TokenLedger,
        sell_amount: int,
        buy_asset: TokenLedger,
        enc_reserve: bytes,
        reserve_proof: bytes,
    ) -> Tuple[Optional[int], str]:
        """
        Open a request, locking sell_amount of sell_asset in escrow.

        Args:
            caller: Seller
            sell_asset: Plain ledger of the asset sold
            sell_amount: Amount to sell (> 0)
            buy_asset: Whitelisted confidential ledger used for payment
            enc_reserve: Encrypted reserve price handle
            reserve_proof: Input proof binding the reserve to (engine, caller)

        Returns:
            (request_id, "") or (None, error_message)
        """
        if self.store.paused:
            return self._reject(None, "Platform is paused")

        is_valid, error = validate_address(caller, "caller")
        if not is_valid:
            return self._reject(None, error)

        is_valid, error = validate_amount(sell_amount)
        if not is_valid:
            return self._reject(None, f"Invalid sell amount: {error}")

        if not self.store.is_whitelisted(buy_asset.address):
            return self._reject(None, f"Buy asset {buy_asset.symbol} is not whitelisted")

        is_valid, error = validate_handle(enc_reserve, "reserve handle")
        if not is_valid:
            return self._reject(None, error)

        with self.executor.bind(self.address) as fhe:
            try:
                reserve = fhe.from_external(enc_reserve, reserve_proof, caller)
            except InvalidInputProof as e:
                return self._reject(None, f"Invalid reserve input: {e}")
            if reserve.ctype != CiphertextType.EUINT64:
                return self._reject(None, "Reserve must be an encrypted uint64")

            success, error = sell_asset.transfer_from(self.address, caller, self.address, sell_amount)
            if not success:
                return self._reject(None, f"Could not lock sell asset: {error}")

            fhe.allow_this(reserve)
            fhe.allow(reserve, caller)

        self._ledgers[sell_asset.address] = sell_asset
        request = Request(
            request_id=self.store.allocate_request_id(),
            seller=caller,
            sell_asset=sell_asset.address,
            sell_amount=sell_amount,
            buy_asset=buy_asset.address,
            reserve_price=reserve,
        )
        self.store.add_request(request)

        self._emit(
            EventType.REQUEST_CREATED,
            request.request_id,
            seller=caller,
            sell_asset=sell_asset.address,
            sell_amount=sell_amount,
            buy_asset=buy_asset.address,
        )
        logger.info(f"Request {request.request_id} created by {short_hex(caller)}: "
                    f"{sell_amount} {sell_asset.symbol} for {buy_asset.symbol}")
        return request.request_id, ""

    @non_reentrant()
    def cancel_request(self, caller: bytes, request_id: int) -> Tuple[bool, str]:
        """Withdraw an ACTIVE request and refund the seller."""
        request, error = self._load_active(request_id)
        if request is None:
            return self._reject(False, error)
        if caller != request.seller:
            return self._reject(False, f"Only the seller may cancel request {request_id}")

        success, error = self._refund_and_close(request, RequestStatus.CANCELLED)
        if not success:
            return self._reject(False, error)

        self._emit(EventType.REQUEST_CANCELLED, request_id, seller=caller)
        logger.info(f"Request {request_id} cancelled")
        return True, ""

    # =========================================================================
    # Bidding
    # =========================================================================

    @non_reentrant()
    def submit_bid(
        self,
        caller: bytes,
        request_id: int,
        enc_price: bytes,
        price_proof: bytes,
    ) -> Tuple[bool, str]:
        """
        Submit an encrypted bid.

        The bid is accepted whether or not the bidder can pay; affordability
        is captured in an encrypted validity mask and only matters during
        selection.

        Returns:
            (success, error_message)
        """
        if self.store.paused:
            return self._reject(False, "Platform is paused")

        is_valid, error = validate_address(caller, "caller")
        if not is_valid:
            return self._reject(False, error)

        request, error = self._load_active(request_id)
        if request is None:
            return self._reject(False, error)
        if caller == request.seller:
            return self._reject(False, "Seller cannot bid on own request")
        if self.store.bid_count(request_id) >= self.config.max_bidders:
            return self._reject(False, f"Request {request_id} reached {self.config.max_bidders} bids")
        if not self.config.allow_duplicate_bidders and self.store.has_bidder(request_id, caller):
            return self._reject(False, f"{short_hex(caller)} already bid on request {request_id}")

        is_valid, error = validate_handle(enc_price, "price handle")
        if not is_valid:
            return self._reject(False, error)

        buy_ledger = self._ledgers[request.buy_asset]

        with self.executor.bind(self.address) as fhe:
            try:
                price = fhe.from_external(enc_price, price_proof, caller)
            except InvalidInputProof as e:
                return self._reject(False, f"Invalid price input: {e}")
            if price.ctype != CiphertextType.EUINT64:
                return self._reject(False, "Price must be an encrypted uint64")

            balance = self._usable(fhe, buy_ledger.balance_of(caller))
            allowance = self._usable(fhe, buy_ledger.allowance(caller, self.address))
            mask = compute_validity_mask(fhe, price, balance, allowance)

            fhe.allow_this(price)
            fhe.allow(price, caller)

        bid_id = self.store.append_bid(request_id, Bid(bidder=caller, price=price, validity_mask=mask))

        self._emit(EventType.BID_SUBMITTED, request_id, bidder=caller, bid_id=bid_id)
        logger.info(f"Bid {bid_id} on request {request_id} from {short_hex(caller)}")
        return True, ""

    # =========================================================================
    # Calculation
    # =========================================================================

    @non_reentrant()
    def calculate_winner(self, caller: bytes, request_id: int) -> Tuple[bool, str]:
        """
        Run the blind selection and store the encrypted results.

        With no bids the request fails immediately and the seller is
        refunded. Otherwise the three result handles are granted to the
        engine and the seller, and RESULTS_READY is published.
        """
        request, error = self._load_active(request_id)
        if request is None:
            return self._reject(False, error)
        if caller != request.seller:
            return self._reject(False, f"Only the seller may calculate request {request_id}")

        bids = self.store.get_bids(request_id)
        if not bids:
            success, error = self._refund_and_close(request, RequestStatus.FAILED)
            if not success:
                return self._reject(False, error)
            self._emit(EventType.AUCTION_FAILED, request_id, reason="no bids")
            logger.info(f"Request {request_id} failed: no bids")
            return True, ""

        with self.executor.bind(self.address) as fhe:
            sealed = as_sealed_bids([(bid.price, bid.validity_mask) for bid in bids])
            result = select_winner(fhe, sealed, request.reserve_price)
            for value in result:
                fhe.allow_this(value)
                fhe.allow(value, request.seller)

        request.set_results(result.winning_id, result.price, result.success)
        request.status = RequestStatus.CALCULATED

        self._emit(EventType.RESULTS_READY, request_id, handles=result.handles)
        logger.info(f"Request {request_id} calculated over {len(bids)} bid(s)")
        return True, ""

    # =========================================================================
    # Settlement
    # =========================================================================

    @non_reentrant()
    def settle_auction(
        self,
        caller: bytes,
        request_id: int,
        winner_id: int,
        price: int,
        success: bool,
        proof: bytes,
    ) -> Tuple[bool, str]:
        """
        Settle a CALCULATED request with an oracle-certified reveal.

        Anyone may submit the reveal; the proof, not the caller, is what is
        trusted.

        Returns:
            (True, "") when the request reached FINALIZED or FAILED,
            (False, error_message) when the call was rejected (request
            unchanged).
        """
        request = self.store.get_request(request_id)
        if request is None:
            return self._reject(False, f"Request {request_id} not found")

        is_valid, error = self.verifier.verify(request, winner_id, price, success, proof)
        if not is_valid:
            return self._reject(False, error)

        bids = self.store.get_bids(request_id)
        winning_bid = self.verifier.resolve_winner(bids, winner_id, bool(success))

        if winning_bid is None:
            ok, error = self._refund_and_close(request, RequestStatus.FAILED)
            if not ok:
                return self._reject(False, error)
            self._emit(
                EventType.AUCTION_FAILED,
                request_id,
                reason="no eligible winner",
                settled_by=caller,
            )
            logger.info(f"Request {request_id} failed: no eligible winner")
            return True, ""

        fee = compute_fee(price, self.store.fee_bps)
        ok, error = self.verifier.finalize(
            request,
            winner=winning_bid.bidder,
            price=price,
            fee=fee,
            treasury=self.store.treasury,
            sell_ledger=self._ledgers[request.sell_asset],
            buy_ledger=self._ledgers[request.buy_asset],
        )
        if not ok:
            return self._reject(False, error)

        request.set_outcome(winning_bid.bidder, price)
        request.status = RequestStatus.FINALIZED

        self._emit(
            EventType.AUCTION_FINALIZED,
            request_id,
            winner=winning_bid.bidder,
            price=price,
            fee=fee,
            settled_by=caller,
        )
        logger.info(f"Request {request_id} finalized: winner {short_hex(winning_bid.bidder)} at {price}")
        return True, ""

    # =========================================================================
    # Views
    # =========================================================================

    def get_request(self, request_id: int) -> Optional[Request]:
        return self.store.get_request(request_id)

    def get_bid_count(self, request_id: int) -> int:
        return self.store.bid_count(request_id)

    def get_bids(self, request_id: int) -> Tuple[Bid, ...]:
        return self.store.get_bids(request_id)

    def get_result_handles(self, request_id: int) -> Optional[List[bytes]]:
        request = self.store.get_request(request_id)
        return request.result_handles() if request else None

    @property
    def next_request_id(self) -> int:
        return self.store.next_request_id

    @property
    def fee_bps(self) -> int:
        return self.store.fee_bps

    @property
    def treasury(self) -> bytes:
        return self.store.treasury

    @property
    def paused(self) -> bool:
        return self.store.paused

    def stats(self) -> dict:
        return self.store.stats()

    # =========================================================================
    # Admin
    # =========================================================================

    def _only_owner(self, caller: bytes) -> Tuple[bool, str]:
        if caller != self.owner:
            return self._reject(False, "Caller is not the owner")
        return True, ""

    def set_paused(self, caller: bytes, paused: bool) -> Tuple[bool, str]:
        ok, error = self._only_owner(caller)
        if not ok:
            return False, error
        self.store.paused = bool(paused)
        logger.info(f"Platform {'paused' if paused else 'unpaused'}")
        return True, ""

    def set_buy_asset_whitelist(self, caller: bytes, token: TokenLedger, allowed: bool) -> Tuple[bool, str]:
        ok, error = self._only_owner(caller)
        if not ok:
            return False, error
        self.store.set_whitelisted(token.address, allowed)
        if allowed:
            self._ledgers[token.address] = token
        logger.info(f"Buy asset {token.symbol} {'whitelisted' if allowed else 'removed'}")
        return True, ""

    def set_fee_bps(self, caller: bytes, fee_bps: int) -> Tuple[bool, str]:
        ok, error = self._only_owner(caller)
        if not ok:
            return False, error
        is_valid, error = validate_integer(fee_bps, "fee_bps", 0, self.config.max_fee_bps)
        if not is_valid:
            return self._reject(False, error)
        self.store.fee_bps = fee_bps
        logger.info(f"Fee set to {fee_bps} bps")
        return True, ""

    def set_treasury(self, caller: bytes, treasury: bytes) -> Tuple[bool, str]:
        ok, error = self._only_owner(caller)
        if not ok:
            return False, error
        is_valid, error = validate_address(treasury, "treasury")
        if not is_valid:
            return self._reject(False, error)
        self.store.treasury = treasury
        logger.info(f"Treasury set to {short_hex(treasury)}")
        return True, ""

    @non_reentrant()
    def emergency_sweep(self, caller: bytes, token: TokenLedger) -> Tuple[bool, str]:
        """Move the engine's entire balance of token to the treasury."""
        ok, error = self._only_owner(caller)
        if not ok:
            return False, error
        amount = token.holdings(self.address)
        if amount == 0:
            return True, ""
        success, error = token.transfer(self.address, self.store.treasury, amount)
        if not success:
            return self._reject(False, f"Sweep failed: {error}")
        logger.warning(f"Swept {amount} {token.symbol} to treasury")
        return True, ""


__all__ = ["CipherCore", "non_reentrant"]
