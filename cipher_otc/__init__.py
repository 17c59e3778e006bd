"""
CipherOTC

Sealed-bid OTC auctions over encrypted values:
- Encrypted bids, reserve prices and balances
- Oblivious winner selection
- Oracle-certified reveals bound to stored ciphertext handles
- Atomic escrow settlement with platform fees
"""

__version__ = "0.1.0"
