"""
Validity Mask - Encrypted check that a bidder can pay their bid.

The mask is computed once, at bid submission:

    mask = select(price <= balance AND price <= allowance, 1, 0)

It is an encrypted integer (not a boolean) so that the selection scan can
fold it in with a single multiplication: `effective = price * mask`.

Nothing here branches on plaintext. An unfunded bidder is not rejected; their
bid simply becomes worth zero during selection.
"""

from cipher_otc.fhe.executor import Ciphertext, FHEContext


def compute_validity_mask(
    fhe: FHEContext,
    price: Ciphertext,
    balance: Ciphertext,
    allowance: Ciphertext,
) -> Ciphertext:
    """
    Compute the encrypted 0/1 validity mask of a bid.

    The mask is persistently granted to the calling contract, since it is
    consumed by a later calculation in a different unit of work.

    Args:
        fhe: Context bound to the auction contract
        price: Encrypted bid price
        balance: Bidder's encrypted balance of the buy asset
        allowance: Bidder's encrypted allowance to the auction contract

    Returns:
        Encrypted uint64, 1 if both checks hold else 0
    """
    within_balance = fhe.le(price, balance)
    within_allowance = fhe.le(price, allowance)
    is_valid = fhe.and_(within_balance, within_allowance)
    mask = fhe.select(is_valid, fhe.as_euint(1), fhe.as_euint(0))
    fhe.allow_this(mask)
    return mask
