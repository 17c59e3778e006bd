"""
Integration tests for the blind OTC auction.

Tests the complete flow from request creation to verified settlement,
including adversarial reveals, custody rollback and reentrancy.
"""

import pytest

from cipher_otc.crypto import generate_keypair, sign
from cipher_otc.core.auction import CipherCore, RequestStatus
from cipher_otc.core.config import PlatformConfig
from cipher_otc.core.events import EventBus, EventType
from cipher_otc.core.ledger import PlainToken
from cipher_otc.fhe import AccessDenied, DecryptionOracle
from cipher_otc.fhe.oracle import decryption_digest, encode_proof


# =============================================================================
# Helpers
# =============================================================================


def forged_proof(handles, cleartexts, *keypairs):
    """Sign arbitrary cleartexts for the given handles."""
    digest = decryption_digest(handles, cleartexts)
    return encode_proof([sign(digest, kp.private_key) for kp in keypairs])


class ReentrantToken(PlainToken):
    """Plain token that runs a hook (once) on its next transfer."""

    def __init__(self, name, symbol):
        super().__init__(name, symbol)
        self.hook = None
        self.nested = []

    def transfer(self, sender, recipient, amount):
        if self.hook is not None:
            hook, self.hook = self.hook, None
            self.nested.append(hook())
        return super().transfer(sender, recipient, amount)


# =============================================================================
# Worked Scenarios
# =============================================================================


class TestScenarios:
    """End-to-end auctions."""

    def test_funded_bidder_beats_higher_unfunded_price(self, market):
        """Reserve 10000; A bids 12000 without funds, B bids 25000 funded."""
        a, b = market.new_account(), market.new_account()
        market.fund_bidder(b, 50000)

        request_id, error = market.create(reserve=10000, sell_amount=500)
        assert request_id == 1, error
        assert market.pepe.balance_of(market.core.address) == 500

        assert market.bid(a, request_id, 12000) == (True, "")
        assert market.bid(b, request_id, 25000) == (True, "")
        assert market.core.get_bid_count(request_id) == 2

        assert market.core.calculate_winner(market.seller, request_id) == (True, "")
        assert market.core.get_request(request_id).status == RequestStatus.CALCULATED

        response = market.reveal(request_id)
        assert response.cleartexts == [2, 25000, 1]

        assert market.settle(request_id, response) == (True, "")

        request = market.core.get_request(request_id)
        assert request.status == RequestStatus.FINALIZED
        assert request.winner == b
        assert request.clearing_price == 25000

        assert market.zusd.holdings(market.seller) == 24750
        assert market.zusd.holdings(market.treasury) == 250
        assert market.zusd.holdings(b) == 25000
        assert market.zusd.holdings(a) == 0
        assert market.pepe.balance_of(b) == 500
        assert market.pepe.balance_of(a) == 0
        assert market.pepe.balance_of(market.core.address) == 0
        assert market.zusd.holdings(market.core.address) == 0

    def test_reserve_not_met_refunds_seller(self, market):
        """A single 8000 bid against reserve 10000 fails and refunds."""
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)

        request_id, _ = market.create(reserve=10000, sell_amount=500)
        market.bid(bidder, request_id, 8000)
        market.core.calculate_winner(market.seller, request_id)

        response = market.reveal(request_id)
        assert response.cleartexts[2] == 0
        assert market.settle(request_id, response) == (True, "")

        request = market.core.get_request(request_id)
        assert request.status == RequestStatus.FAILED
        assert request.winner is None
        assert request.clearing_price is None
        assert market.pepe.balance_of(market.seller) == 500
        assert market.zusd.holdings(bidder) == 50000

    def test_no_bids_fails_at_calculation(self, market):
        request_id, _ = market.create(reserve=10000)

        assert market.core.calculate_winner(market.seller, request_id) == (True, "")

        request = market.core.get_request(request_id)
        assert request.status == RequestStatus.FAILED
        assert request.result_handles() is None
        assert market.pepe.balance_of(market.seller) == 500
        failed = market.events.events_for(request_id, EventType.AUCTION_FAILED)
        assert failed[0].data["reason"] == "no bids"
        assert request_id not in market.oracle.pending

    def test_all_bidders_unfunded(self, market):
        request_id, _ = market.create(reserve=1)
        market.bid(market.new_account(), request_id, 5000)
        market.bid(market.new_account(), request_id, 7000)
        market.core.calculate_winner(market.seller, request_id)

        response = market.reveal(request_id)
        assert response.cleartexts == [0, 0, 0]
        market.settle(request_id, response)
        assert market.core.get_request(request_id).status == RequestStatus.FAILED
        assert market.pepe.balance_of(market.seller) == 500

    def test_event_trail(self, market):
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=10000)
        market.bid(bidder, request_id, 20000)
        market.core.calculate_winner(market.seller, request_id)
        market.settle(request_id)

        kinds = [e.event_type for e in market.events.events_for(request_id)]
        assert kinds == [
            EventType.REQUEST_CREATED,
            EventType.BID_SUBMITTED,
            EventType.RESULTS_READY,
            EventType.AUCTION_FINALIZED,
        ]
        finalized = market.events.events_for(request_id, EventType.AUCTION_FINALIZED)[0]
        assert finalized.data["fee"] == 200
        ready = market.events.events_for(request_id, EventType.RESULTS_READY)[0]
        assert ready.data["handles"] == market.core.get_result_handles(request_id)

    def test_engine_publishes_on_supplied_bus(self, market):
        bus = EventBus()
        core = CipherCore(
            market.executor,
            owner=market.owner,
            treasury=market.treasury,
            trusted_signers=market.oracle.signer_addresses,
            events=bus,
        )
        assert core.events is bus
        assert market.core.events is market.events

    def test_oracle_serves_engine_results(self, market):
        """RESULTS_READY reaches the oracle watching the shared bus."""
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=10000)
        market.bid(bidder, request_id, 20000)
        market.core.calculate_winner(market.seller, request_id)

        assert market.oracle.pending[request_id] == market.core.get_result_handles(request_id)
        assert market.settle(request_id) == (True, "")
        assert request_id not in market.oracle.pending

    def test_threshold_oracle(self, make_market):
        market = make_market(PlatformConfig(kms_threshold=2), num_signers=2)
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=10000)
        market.bid(bidder, request_id, 20000)
        market.core.calculate_winner(market.seller, request_id)
        assert market.settle(request_id) == (True, "")


# =============================================================================
# Reveal Verification
# =============================================================================


class TestRevealVerification:
    """Forged or substituted reveals never move funds."""

    @pytest.fixture
    def calculated(self, market):
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=10000)
        market.bid(bidder, request_id, 20000)
        market.core.calculate_winner(market.seller, request_id)
        return request_id, bidder

    def _assert_untouched(self, market, request_id, bidder):
        assert market.core.get_request(request_id).status == RequestStatus.CALCULATED
        assert market.zusd.holdings(bidder) == 50000
        assert market.pepe.balance_of(market.core.address) >= 500

    def test_tampered_price(self, market, calculated):
        request_id, bidder = calculated
        response = market.reveal(request_id)
        ok, _ = market.core.settle_auction(market.seller, request_id, 1, 1, True, response.proof)
        assert not ok
        self._assert_untouched(market, request_id, bidder)

    def test_flipped_success(self, market, calculated):
        request_id, bidder = calculated
        response = market.reveal(request_id)
        ok, _ = market.core.settle_auction(market.seller, request_id, 1, 20000, False, response.proof)
        assert not ok
        self._assert_untouched(market, request_id, bidder)

    def test_untrusted_signer(self, market, calculated):
        request_id, bidder = calculated
        handles = market.core.get_result_handles(request_id)
        proof = forged_proof(handles, [1, 1, 1], generate_keypair())
        ok, _ = market.core.settle_auction(market.seller, request_id, 1, 1, True, proof)
        assert not ok
        self._assert_untouched(market, request_id, bidder)

    def test_rogue_oracle_rejected(self, market, calculated):
        """A different oracle over the same executor is not trusted."""
        request_id, bidder = calculated
        rogue = DecryptionOracle(market.executor)
        response = rogue.decrypt(market.core.get_result_handles(request_id), market.seller)
        assert not market.settle(request_id, response)[0]
        self._assert_untouched(market, request_id, bidder)

    def test_reveal_from_other_request(self, market, calculated):
        """Identical cleartexts certified for another request's handles are rejected."""
        request_id, bidder = calculated
        other_id, _ = market.create(reserve=10000)
        market.bid(bidder, other_id, 20000)
        market.core.calculate_winner(market.seller, other_id)

        other_response = market.reveal(other_id)
        own_response = market.reveal(request_id)
        assert other_response.cleartexts == own_response.cleartexts

        ok, _ = market.settle(request_id, other_response)
        assert not ok
        assert market.core.get_request(request_id).status == RequestStatus.CALCULATED
        assert market.settle(request_id, own_response) == (True, "")

    def test_settle_only_once(self, market, calculated):
        request_id, _ = calculated
        response = market.reveal(request_id)
        assert market.settle(request_id, response) == (True, "")
        ok, error = market.settle(request_id, response)
        assert not ok
        assert "not CALCULATED" in error
        assert market.zusd.holdings(market.seller) == 19800

    def test_settle_before_calculation(self, market):
        request_id, _ = market.create(reserve=10000)
        ok, _ = market.core.settle_auction(market.seller, request_id, 0, 0, False, b"\x01" + bytes(64))
        assert not ok
        assert market.core.get_request(request_id).status == RequestStatus.ACTIVE

    def test_unknown_request(self, market):
        ok, error = market.core.settle_auction(market.seller, 42, 0, 0, False, b"\x01" + bytes(64))
        assert not ok
        assert "not found" in error

    def test_out_of_range_winner_fails_request(self, market, calculated):
        """A certified success naming a nonexistent bid fails the request."""
        request_id, bidder = calculated
        handles = market.core.get_result_handles(request_id)
        proof = forged_proof(handles, [5, 20000, 1], *market.oracle.signers)

        assert market.core.settle_auction(market.seller, request_id, 5, 20000, True, proof) == (True, "")
        assert market.core.get_request(request_id).status == RequestStatus.FAILED
        assert market.pepe.balance_of(market.seller) == 500
        assert market.zusd.holdings(bidder) == 50000

    def test_anyone_may_relay_reveal(self, market, calculated):
        request_id, _ = calculated
        response = market.reveal(request_id)
        relayer = market.new_account()
        winner_id, price, success = response.cleartexts
        ok, _ = market.core.settle_auction(relayer, request_id, winner_id, price, bool(success), response.proof)
        assert ok
        finalized = market.events.events_for(request_id, EventType.AUCTION_FINALIZED)[0]
        assert finalized.data["settled_by"] == relayer


# =============================================================================
# Custody
# =============================================================================


class TestCustody:
    """Settlement custody failures and rollback."""

    def test_winner_spends_funds_before_settlement(self, market):
        """Funds moved away after bidding: settlement rejects, nothing changes."""
        bidder, elsewhere = market.new_account(), market.new_account()
        market.fund_bidder(bidder, 30000)
        request_id, _ = market.create(reserve=10000)
        market.bid(bidder, request_id, 25000)
        market.core.calculate_winner(market.seller, request_id)

        market.zusd.transfer(bidder, elsewhere, 20000)
        response = market.reveal(request_id)

        ok, error = market.settle(request_id, response)
        assert not ok
        assert "Settlement transfer failed" in error
        assert market.core.get_request(request_id).status == RequestStatus.CALCULATED
        assert market.zusd.holdings(bidder) == 10000
        assert market.zusd.holdings(market.seller) == 0
        assert market.zusd.holdings(market.treasury) == 0
        assert market.pepe.balance_of(market.core.address) == 500

        # Funds come back: the oracle still serves the reveal and it settles
        market.zusd.transfer(elsewhere, bidder, 20000)
        assert request_id in market.oracle.pending
        assert market.settle(request_id) == (True, "")
        assert request_id not in market.oracle.pending

    def test_fee_split_sums_to_price(self, market):
        market.core.set_fee_bps(market.owner, 333)
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=1)
        market.bid(bidder, request_id, 12345)
        market.core.calculate_winner(market.seller, request_id)
        market.settle(request_id)

        seller_gets = market.zusd.holdings(market.seller)
        fee = market.zusd.holdings(market.treasury)
        assert fee == 12345 * 333 // 10000
        assert seller_gets + fee == 12345
        assert market.zusd.holdings(bidder) == 50000 - 12345

    def test_zero_fee(self, market):
        market.core.set_fee_bps(market.owner, 0)
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=1)
        market.bid(bidder, request_id, 5000)
        market.core.calculate_winner(market.seller, request_id)
        market.settle(request_id)
        assert market.zusd.holdings(market.seller) == 5000
        assert market.zusd.holdings(market.treasury) == 0


# =============================================================================
# Lifecycle Rules
# =============================================================================


class TestLifecycleRules:
    """Rejections that leave state unchanged."""

    def test_create_requires_positive_amount(self, market):
        market.fund_seller(500)
        handle, proof = market.encrypt(10000, market.seller)
        request_id, error = market.core.create_request(market.seller, market.pepe, 0, market.zusd, handle, proof)
        assert request_id is None
        assert "sell amount" in error
        assert market.core.next_request_id == 1

    def test_create_requires_whitelisted_buy_asset(self, market):
        market.fund_seller(500)
        handle, proof = market.encrypt(10000, market.seller)
        other = PlainToken("Other", "OTH")
        request_id, error = market.core.create_request(market.seller, market.pepe, 500, other, handle, proof)
        assert request_id is None
        assert "not whitelisted" in error

    def test_create_rejects_foreign_reserve_proof(self, market):
        market.fund_seller(500)
        handle, proof = market.encrypt(10000, market.new_account())
        request_id, error = market.core.create_request(market.seller, market.pepe, 500, market.zusd, handle, proof)
        assert request_id is None
        assert "Invalid reserve" in error
        assert market.pepe.balance_of(market.seller) == 500

    def test_create_without_sell_allowance(self, market):
        market.pepe.mint(market.seller, 500)
        handle, proof = market.encrypt(10000, market.seller)
        request_id, error = market.core.create_request(market.seller, market.pepe, 500, market.zusd, handle, proof)
        assert request_id is None
        assert "lock" in error

    def test_request_ids_are_sequential(self, market):
        assert market.create(reserve=1)[0] == 1
        assert market.create(reserve=1)[0] == 2
        assert market.core.next_request_id == 3

    def test_seller_cannot_bid(self, market):
        request_id, _ = market.create(reserve=10000)
        ok, error = market.bid(market.seller, request_id, 20000)
        assert not ok
        assert "Seller" in error

    def test_bid_with_foreign_proof(self, market):
        request_id, _ = market.create(reserve=10000)
        bidder = market.new_account()
        handle, proof = market.encrypt(20000, market.new_account())
        ok, error = market.core.submit_bid(bidder, request_id, handle, proof)
        assert not ok
        assert "Invalid price" in error
        assert market.core.get_bid_count(request_id) == 0

    def test_bidder_ceiling(self, make_market):
        market = make_market(PlatformConfig(max_bidders=2))
        request_id, _ = market.create(reserve=1)
        assert market.bid(market.new_account(), request_id, 10)[0]
        assert market.bid(market.new_account(), request_id, 10)[0]
        ok, error = market.bid(market.new_account(), request_id, 10)
        assert not ok
        assert "reached 2 bids" in error
        assert market.core.get_bid_count(request_id) == 2

    def test_duplicates_allowed_by_default(self, market):
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=1)
        assert market.bid(bidder, request_id, 100)[0]
        assert market.bid(bidder, request_id, 200)[0]
        market.core.calculate_winner(market.seller, request_id)
        assert market.reveal(request_id).cleartexts == [2, 200, 1]

    def test_strict_duplicate_policy(self, make_market):
        market = make_market(PlatformConfig(allow_duplicate_bidders=False))
        bidder = market.new_account()
        request_id, _ = market.create(reserve=1)
        assert market.bid(bidder, request_id, 100)[0]
        ok, error = market.bid(bidder, request_id, 200)
        assert not ok
        assert "already bid" in error
        assert market.core.get_bid_count(request_id) == 1

    def test_only_seller_calculates(self, market):
        request_id, _ = market.create(reserve=1)
        ok, _ = market.core.calculate_winner(market.new_account(), request_id)
        assert not ok
        assert market.core.get_request(request_id).status == RequestStatus.ACTIVE

    def test_no_bids_after_calculation(self, market):
        bidder = market.new_account()
        request_id, _ = market.create(reserve=1)
        market.bid(bidder, request_id, 100)
        market.core.calculate_winner(market.seller, request_id)
        ok, error = market.bid(market.new_account(), request_id, 500)
        assert not ok
        assert "not ACTIVE" in error
        assert not market.core.calculate_winner(market.seller, request_id)[0]

    def test_cancel(self, market):
        request_id, _ = market.create(reserve=1)
        assert not market.core.cancel_request(market.new_account(), request_id)[0]
        assert market.core.cancel_request(market.seller, request_id) == (True, "")
        assert market.core.get_request(request_id).status == RequestStatus.CANCELLED
        assert market.pepe.balance_of(market.seller) == 500
        assert not market.core.cancel_request(market.seller, request_id)[0]
        assert not market.bid(market.new_account(), request_id, 100)[0]

    def test_cannot_cancel_after_calculation(self, market):
        request_id, _ = market.create(reserve=1)
        market.bid(market.new_account(), request_id, 100)
        market.core.calculate_winner(market.seller, request_id)
        assert not market.core.cancel_request(market.seller, request_id)[0]

    def test_stalled_oracle_leaves_request_parked(self, market):
        request_id, _ = market.create(reserve=1)
        market.bid(market.new_account(), request_id, 100)
        market.core.calculate_winner(market.seller, request_id)
        assert market.core.get_request(request_id).status == RequestStatus.CALCULATED
        assert request_id in market.oracle.pending


# =============================================================================
# Access Control on Ciphertexts
# =============================================================================


class TestCiphertextAccess:
    """Who may decrypt what."""

    @pytest.fixture
    def calculated(self, market):
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=10000)
        market.bid(bidder, request_id, 20000)
        market.core.calculate_winner(market.seller, request_id)
        return request_id, bidder

    def test_bidder_sees_own_price_only(self, market, calculated):
        request_id, bidder = calculated
        bid = market.core.get_bids(request_id)[0]
        assert market.executor.decrypt(bid.price, bidder) == 20000
        with pytest.raises(AccessDenied):
            market.executor.decrypt(bid.price, market.seller)
        with pytest.raises(AccessDenied):
            market.executor.decrypt(bid.validity_mask, bidder)

    def test_seller_sees_results(self, market, calculated):
        request_id, bidder = calculated
        request = market.core.get_request(request_id)
        assert market.executor.decrypt(request.enc_price, market.seller) == 20000
        with pytest.raises(AccessDenied):
            market.executor.decrypt(request.enc_price, bidder)

    def test_reserve_hidden_from_bidders(self, market, calculated):
        request_id, bidder = calculated
        reserve = market.core.get_request(request_id).reserve_price
        assert market.executor.decrypt(reserve, market.seller) == 10000
        with pytest.raises(AccessDenied):
            market.executor.decrypt(reserve, bidder)

    def test_engine_persisted_its_inputs(self, market, calculated):
        request_id, _ = calculated
        bid = market.core.get_bids(request_id)[0]
        core = market.core.address
        assert market.executor.is_allowed(bid.price, core)
        assert market.executor.is_allowed(bid.validity_mask, core)

    def test_oracle_refuses_non_seller(self, market, calculated):
        request_id, bidder = calculated
        with pytest.raises(AccessDenied):
            market.oracle.decrypt(market.core.get_result_handles(request_id), bidder)


# =============================================================================
# Reentrancy and Event Ordering
# =============================================================================


class TestReentrancy:
    """Nested calls from custody are rejected."""

    @pytest.fixture
    def hostile(self, market):
        token = ReentrantToken("Hostile", "HST")
        token.mint(market.seller, 500)
        token.approve(market.seller, market.core.address, 500)
        return token

    def _create(self, market, token):
        handle, proof = market.encrypt(1, market.seller)
        return market.core.create_request(market.seller, token, 500, market.zusd, handle, proof)

    def test_reentrant_create(self, market, hostile):
        hostile.hook = lambda: self._create(market, hostile)
        request_id, _ = self._create(market, hostile)
        assert request_id == 1
        assert hostile.nested == [(None, "Reentrant call")]
        assert market.core.next_request_id == 2

    def test_reentrant_cancel_refunds_once(self, market, hostile):
        request_id, _ = self._create(market, hostile)
        hostile.hook = lambda: market.core.cancel_request(market.seller, request_id)

        assert market.core.cancel_request(market.seller, request_id) == (True, "")
        assert hostile.nested == [(False, "Reentrant call")]
        assert hostile.balance_of(market.seller) == 500
        assert len(market.events.events_for(request_id, EventType.REQUEST_CANCELLED)) == 1

    def test_reentrant_settle_pays_once(self, market, hostile):
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = self._create(market, hostile)
        market.bid(bidder, request_id, 20000)
        market.core.calculate_winner(market.seller, request_id)
        response = market.reveal(request_id)

        hostile.hook = lambda: market.settle(request_id, response)
        assert market.settle(request_id, response) == (True, "")
        assert hostile.nested == [(False, "Reentrant call")]
        assert market.zusd.holdings(bidder) == 30000
        assert hostile.balance_of(bidder) == 500

    def test_subscribers_run_after_commit(self, market):
        """A RESULTS_READY subscriber may settle immediately."""
        outcomes = []

        def auto_settle(event):
            outcomes.append(market.settle(event.request_id))

        market.events.subscribe(EventType.RESULTS_READY, auto_settle)
        bidder = market.new_account()
        market.fund_bidder(bidder, 50000)
        request_id, _ = market.create(reserve=1)
        market.bid(bidder, request_id, 300)
        market.core.calculate_winner(market.seller, request_id)

        assert outcomes == [(True, "")]
        assert market.core.get_request(request_id).status == RequestStatus.FINALIZED


# =============================================================================
# Admin
# =============================================================================


class TestAdmin:
    """Owner-only controls."""

    def test_pause_blocks_create_and_bid(self, market):
        request_id, _ = market.create(reserve=1)
        assert market.core.set_paused(market.owner, True) == (True, "")

        assert market.create(reserve=1)[0] is None
        ok, error = market.bid(market.new_account(), request_id, 10)
        assert not ok
        assert "paused" in error
        # Cancellation still works while paused
        assert market.core.cancel_request(market.seller, request_id)[0]

        market.core.set_paused(market.owner, False)
        assert market.create(reserve=1)[0] is not None

    def test_non_owner_rejected(self, market):
        stranger = market.new_account()
        assert not market.core.set_paused(stranger, True)[0]
        assert not market.core.set_fee_bps(stranger, 0)[0]
        assert not market.core.set_treasury(stranger, stranger)[0]
        assert not market.core.set_buy_asset_whitelist(stranger, market.zusd, False)[0]
        assert not market.core.emergency_sweep(stranger, market.pepe)[0]
        assert not market.core.paused

    def test_fee_bounded(self, market):
        assert not market.core.set_fee_bps(market.owner, 1001)[0]
        assert market.core.set_fee_bps(market.owner, 1000)[0]
        assert market.core.fee_bps == 1000

    def test_set_treasury(self, market):
        new_treasury = market.new_account()
        assert not market.core.set_treasury(market.owner, bytes(20))[0]
        assert market.core.set_treasury(market.owner, new_treasury)[0]
        assert market.core.treasury == new_treasury

    def test_delist_buy_asset(self, market):
        market.core.set_buy_asset_whitelist(market.owner, market.zusd, False)
        assert market.create(reserve=1)[0] is None

    def test_emergency_sweep(self, market):
        market.create(reserve=1)
        assert market.core.emergency_sweep(market.owner, market.pepe) == (True, "")
        assert market.pepe.balance_of(market.treasury) == 500
        assert market.pepe.balance_of(market.core.address) == 0

    def test_emergency_sweep_confidential(self, market):
        market.zusd.mint(market.core.address, 77)
        assert market.core.emergency_sweep(market.owner, market.zusd)[0]
        assert market.zusd.holdings(market.treasury) == 77

    def test_stats(self, market):
        market.create(reserve=1)
        stats = market.core.stats()
        assert stats["requests"] == 1
        assert stats["by_status"]["ACTIVE"] == 1
