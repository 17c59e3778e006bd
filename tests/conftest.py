"""
Shared fixtures: a fully wired CipherOTC deployment.
"""

import pytest

from cipher_otc.crypto import generate_keypair
from cipher_otc.core.auction import CipherCore
from cipher_otc.core.config import PlatformConfig
from cipher_otc.core.events import EventBus
from cipher_otc.core.ledger import ConfidentialToken, PlainToken
from cipher_otc.fhe import DecryptionOracle, FHEExecutor


class Market:
    """Executor, oracle, tokens and engine, with shortcuts for test flows."""

    def __init__(self, config=None, num_signers=1):
        self.config = config or PlatformConfig()
        self.executor = FHEExecutor()
        self.events = EventBus()
        self.oracle = DecryptionOracle(self.executor, num_signers=num_signers)
        self.oracle.watch(self.events)

        self.owner = generate_keypair().address
        self.treasury = generate_keypair().address
        self.seller = generate_keypair().address
        self.core = CipherCore(
            self.executor,
            owner=self.owner,
            treasury=self.treasury,
            trusted_signers=self.oracle.signer_addresses,
            config=self.config,
            events=self.events,
        )

        self.pepe = PlainToken("Pepe", "PEPE")
        self.zusd = ConfidentialToken(self.executor, "Confidential USD", "zUSD")
        self.core.set_buy_asset_whitelist(self.owner, self.zusd, True)

    # Accounts

    def new_account(self) -> bytes:
        return generate_keypair().address

    def fund_seller(self, amount: int) -> None:
        self.pepe.mint(self.seller, amount)
        self.pepe.approve(self.seller, self.core.address, amount)

    def fund_bidder(self, bidder: bytes, amount: int, allowance=None) -> None:
        self.zusd.mint(bidder, amount)
        self.zusd.approve(bidder, self.core.address, amount if allowance is None else allowance)

    # Flow

    def encrypt(self, value: int, sender: bytes):
        return self.executor.encrypt_input(value, self.core.address, sender)

    def create(self, reserve: int, sell_amount: int = 500):
        self.fund_seller(sell_amount)
        handle, proof = self.encrypt(reserve, self.seller)
        return self.core.create_request(self.seller, self.pepe, sell_amount, self.zusd, handle, proof)

    def bid(self, bidder: bytes, request_id: int, price: int):
        handle, proof = self.encrypt(price, bidder)
        return self.core.submit_bid(bidder, request_id, handle, proof)

    def reveal(self, request_id: int):
        return self.oracle.fulfil(request_id, self.seller)

    def settle(self, request_id: int, response=None):
        response = response or self.reveal(request_id)
        winner_id, price, success = response.cleartexts
        return self.core.settle_auction(
            self.seller, request_id, winner_id, price, bool(success), response.proof
        )


@pytest.fixture
def market():
    """A deployment with the default configuration."""
    return Market()


@pytest.fixture
def make_market():
    """Factory for deployments with a custom configuration."""
    return Market
