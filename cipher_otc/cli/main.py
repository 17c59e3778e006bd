"""
CipherOTC CLI - Command Line Interface for blind OTC auctions

Main entry point for all CLI commands.
"""

import json
import click
from typing import List, Tuple

from cipher_otc.utils.logger import setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help="Load CIPHER_OTC_* settings from a .env file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, env_file):
    """CipherOTC - Sealed-bid OTC auctions over encrypted values"""
    import logging
    from cipher_otc.core.config import load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(env_file)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="environment")

    level = logging.DEBUG if debug else logging.WARNING
    setup_logging(level=level, log_dir=str(ctx.obj["config"].log_dir), log_to_file=debug)


# =============================================================================
# Scenario Helpers
# =============================================================================


class Deployment:
    """Executor, oracle, tokens and engine wired together for a scenario."""

    def __init__(self, config):
        from cipher_otc.crypto import generate_keypair
        from cipher_otc.core.auction import CipherCore
        from cipher_otc.core.events import EventBus
        from cipher_otc.core.ledger import ConfidentialToken, PlainToken
        from cipher_otc.fhe import DecryptionOracle, FHEExecutor

        self.executor = FHEExecutor()
        self.events = EventBus()
        self.oracle = DecryptionOracle(self.executor, num_signers=config.kms_threshold)
        self.oracle.watch(self.events)

        self.owner = generate_keypair().address
        self.treasury = generate_keypair().address
        self.core = CipherCore(
            self.executor,
            owner=self.owner,
            treasury=self.treasury,
            trusted_signers=self.oracle.signer_addresses,
            config=config,
            events=self.events,
        )

        self.pepe = PlainToken("Pepe", "PEPE")
        self.zusd = ConfidentialToken(self.executor, "Confidential USD", "zUSD")
        self.core.set_buy_asset_whitelist(self.owner, self.zusd, True)

    def encrypt(self, value: int, sender: bytes) -> Tuple[bytes, bytes]:
        return self.executor.encrypt_input(value, self.core.address, sender)

    def fund_bidder(self, bidder: bytes, amount: int) -> None:
        self.zusd.mint(bidder, amount)
        self.zusd.approve(bidder, self.core.address, amount)


def _short(data: bytes) -> str:
    from cipher_otc.crypto import bytes_to_hex
    return bytes_to_hex(data)[:18] + "..."


def _run_auction(
    config,
    reserve: int,
    sell_amount: int,
    bids: List[Tuple[str, int, int]],
) -> None:
    """
    Run one auction end to end.

    Args:
        reserve: Seller's reserve price
        sell_amount: PEPE offered
        bids: (label, price, zUSD funding) per bidder, in submission order
    """
    from cipher_otc.crypto import generate_keypair

    d = Deployment(config)
    seller = generate_keypair().address

    click.echo("📦 Setting up accounts...")
    d.pepe.mint(seller, sell_amount)
    d.pepe.approve(seller, d.core.address, sell_amount)
    bidders = []
    for label, price, funding in bids:
        bidder = generate_keypair().address
        if funding:
            d.fund_bidder(bidder, funding)
        bidders.append((label, bidder, price))
        click.echo(f"  ✓ {label}: funded with {funding} zUSD")
    click.echo()

    click.echo(f"🛡️  Seller encrypts reserve price ({reserve})...")
    enc_reserve, reserve_proof = d.encrypt(reserve, seller)
    click.echo(f"  Handle: {_short(enc_reserve)}")
    request_id, error = d.core.create_request(
        seller, d.pepe, sell_amount, d.zusd, enc_reserve, reserve_proof
    )
    if request_id is None:
        click.echo(f"❌ Request creation failed: {error}")
        return
    click.echo(f"  ✓ Request #{request_id} created, {sell_amount} PEPE locked")
    click.echo()

    for label, bidder, price in bidders:
        click.echo(f"🛡️  {label} encrypts bid ({price})...")
        enc_price, price_proof = d.encrypt(price, bidder)
        click.echo(f"  Handle: {_short(enc_price)}")
        ok, error = d.core.submit_bid(bidder, request_id, enc_price, price_proof)
        click.echo(f"  {'✓ Bid accepted' if ok else '❌ ' + error}")
    click.echo()

    click.echo("⚙️  Blind computation: selecting winner over ciphertexts...")
    ok, error = d.core.calculate_winner(seller, request_id)
    if not ok:
        click.echo(f"❌ Calculation failed: {error}")
        return
    request = d.core.get_request(request_id)
    if request.has_results:
        for name, handle in zip(("winner_id", "price", "success"), request.result_handles()):
            click.echo(f"  {name:<10} {_short(handle)}")
        click.echo()

        click.echo("🔓 Oracle decrypts for the seller...")
        response = d.oracle.fulfil(request_id, seller)
        click.echo(json.dumps(response.model_dump(mode="json"), indent=2))
        winner_id, price, success = response.cleartexts
        ok, error = d.core.settle_auction(
            seller, request_id, winner_id, price, bool(success), response.proof
        )
        if not ok:
            click.echo(f"❌ Settlement rejected: {error}")
            return
        click.echo("  ✓ Proof verified against stored handles")
    click.echo()

    request = d.core.get_request(request_id)
    click.echo(f"📊 Request #{request_id}: {request.status.name}")
    if request.winner is not None:
        label = next(lbl for lbl, addr, _ in bidders if addr == request.winner)
        click.echo(f"  Winner: {label} at {request.clearing_price} zUSD")
    click.echo(f"  Seller: {d.pepe.balance_of(seller)} PEPE, {d.zusd.holdings(seller)} zUSD")
    click.echo(f"  Treasury: {d.zusd.holdings(d.treasury)} zUSD")
    for label, bidder, _ in bidders:
        click.echo(f"  {label}: {d.pepe.balance_of(bidder)} PEPE, {d.zusd.holdings(bidder)} zUSD")
    click.echo()
    click.echo("✅ Done!")


# =============================================================================
# Commands
# =============================================================================


@cli.command("demo")
@click.pass_context
def demo(ctx):
    """Single bidder: reserve 15,000, bid 25,000"""
    click.echo("=" * 60)
    click.echo("  CIPHER OTC - DEMO")
    click.echo("=" * 60)
    click.echo()
    _run_auction(
        ctx.obj["config"],
        reserve=15_000,
        sell_amount=100_000,
        bids=[("Bidder", 25_000, 50_000)],
    )


@cli.command("advanced")
@click.pass_context
def advanced(ctx):
    """Two bidders: an unfunded 12,000 bid against a funded 25,000 bid"""
    click.echo("=" * 60)
    click.echo("  CIPHER OTC - ADVANCED AUCTION")
    click.echo("=" * 60)
    click.echo()
    _run_auction(
        ctx.obj["config"],
        reserve=10_000,
        sell_amount=500,
        bids=[("Bidder 1", 12_000, 0), ("Bidder 2", 25_000, 50_000)],
    )


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Show the effective configuration"""
    click.echo(json.dumps(ctx.obj["config"].to_dict(), indent=2))


if __name__ == "__main__":
    cli()
