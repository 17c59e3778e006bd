"""
Auction Store - Explicit state owned by the auction engine.

Holds requests, their bid lists, and platform-level settings (buy-asset
whitelist, fee rate, treasury, pause flag). Requests are never deleted.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from cipher_otc.core.auction.request import Bid, Request, RequestStatus


@dataclass
class AuctionStore:
    """
    In-memory store for the auction engine.

    Attributes:
        requests: request_id -> Request
        bids: request_id -> bids in submission order
        next_request_id: Id assigned to the next created request
        buy_asset_whitelist: Accepted payment token addresses
        fee_bps: Platform fee (basis points of clearing price)
        treasury: Fee recipient
        paused: When True, creation and bidding are rejected
    """
    treasury: bytes
    fee_bps: int = 0
    paused: bool = False
    next_request_id: int = 1
    requests: Dict[int, Request] = field(default_factory=dict)
    bids: Dict[int, List[Bid]] = field(default_factory=dict)
    buy_asset_whitelist: Set[bytes] = field(default_factory=set)

    # =========================================================================
    # Requests
    # =========================================================================

    def allocate_request_id(self) -> int:
        request_id = self.next_request_id
        self.next_request_id += 1
        return request_id

    def add_request(self, request: Request) -> None:
        if request.request_id in self.requests:
            raise ValueError(f"Request {request.request_id} already exists")
        self.requests[request.request_id] = request
        self.bids[request.request_id] = []

    def get_request(self, request_id: int) -> Optional[Request]:
        return self.requests.get(request_id)

    # =========================================================================
    # Bids
    # =========================================================================

    def append_bid(self, request_id: int, bid: Bid) -> int:
        """Append a bid and return its 1-based id."""
        bids = self.bids[request_id]
        bids.append(bid)
        return len(bids)

    def get_bids(self, request_id: int) -> Tuple[Bid, ...]:
        return tuple(self.bids.get(request_id, ()))

    def bid_count(self, request_id: int) -> int:
        return len(self.bids.get(request_id, ()))

    def has_bidder(self, request_id: int, bidder: bytes) -> bool:
        return any(bid.bidder == bidder for bid in self.bids.get(request_id, ()))

    # =========================================================================
    # Whitelist
    # =========================================================================

    def is_whitelisted(self, asset: bytes) -> bool:
        return asset in self.buy_asset_whitelist

    def set_whitelisted(self, asset: bytes, allowed: bool) -> None:
        if allowed:
            self.buy_asset_whitelist.add(asset)
        else:
            self.buy_asset_whitelist.discard(asset)

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> dict:
        by_status = {status.name: 0 for status in RequestStatus}
        for request in self.requests.values():
            by_status[request.status.name] += 1
        return {
            "requests": len(self.requests),
            "bids": sum(len(b) for b in self.bids.values()),
            "by_status": by_status,
            "fee_bps": self.fee_bps,
            "paused": self.paused,
        }
