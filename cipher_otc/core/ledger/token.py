"""
Token Ledgers - Custody adapters used by the auction engine.

Two ledgers are provided:

1. **PlainToken**: public balances and allowances (the asset being sold).
2. **ConfidentialToken**: balances and allowances are encrypted handles
   (the payment asset). Approving a spender also grants it use of the
   owner's balance handle, which is how the auction engine can evaluate
   "price <= balance" without seeing either value.

Both expose the same custody surface (`transfer`, `transfer_from`,
`holdings`) and support `snapshot()` / `restore()` so that a multi-leg
settlement can be rolled back atomically.

Cleared-amount transfers on the confidential ledger are checked by the token
itself against its own balance grants.
"""

import itertools
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Set, Tuple, runtime_checkable

from cipher_otc.crypto import contract_address, short_hex
from cipher_otc.fhe.executor import Ciphertext, FHEContext, FHEExecutor
from cipher_otc.utils.logger import get_logger
from cipher_otc.utils.validation import validate_address, validate_integer

logger = get_logger("ledger")

_token_nonce = itertools.count()


# =============================================================================
# Custody Protocol
# =============================================================================


@runtime_checkable
class TokenLedger(Protocol):
    """Custody surface required by the auction engine."""
    address: bytes
    symbol: str

    def transfer(self, sender: bytes, recipient: bytes, amount: int) -> Tuple[bool, str]: ...

    def transfer_from(
        self, spender: bytes, owner: bytes, recipient: bytes, amount: int
    ) -> Tuple[bool, str]: ...

    def holdings(self, account: bytes) -> int: ...

    def snapshot(self) -> "LedgerSnapshot": ...

    def restore(self, snapshot: "LedgerSnapshot") -> None: ...


@dataclass
class LedgerSnapshot:
    """Copy of a token's mutable state, used for settlement rollback."""
    token_address: bytes
    balances: dict = field(default_factory=dict)
    allowances: dict = field(default_factory=dict)
    total_supply: int = 0


def _check_transfer_args(sender: bytes, recipient: bytes, amount: int) -> Tuple[bool, str]:
    for name, value in (("sender", sender), ("recipient", recipient)):
        is_valid, error = validate_address(value, name)
        if not is_valid:
            return False, error
    return validate_integer(amount, "amount")


# =============================================================================
# Plain Token
# =============================================================================


class PlainToken:
    """
    Public-balance token (ERC20-like).

    Attributes:
        balances: account -> balance
        allowances: (owner, spender) -> remaining allowance
    """

    def __init__(self, name: str, symbol: str):
        self.name = name
        self.symbol = symbol
        self.address = contract_address(f"PlainToken:{symbol}", next(_token_nonce))
        self.balances: Dict[bytes, int] = {}
        self.allowances: Dict[Tuple[bytes, bytes], int] = {}
        self.total_supply = 0

    def mint(self, to: bytes, amount: int) -> None:
        is_valid, error = validate_integer(amount, "amount")
        if not is_valid:
            raise ValueError(error)
        self.balances[to] = self.balances.get(to, 0) + amount
        self.total_supply += amount
        logger.debug(f"{self.symbol}: minted {amount} to {short_hex(to)}")

    def approve(self, owner: bytes, spender: bytes, amount: int) -> None:
        is_valid, error = validate_integer(amount, "amount")
        if not is_valid:
            raise ValueError(error)
        self.allowances[(owner, spender)] = amount

    def balance_of(self, account: bytes) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: bytes, spender: bytes) -> int:
        return self.allowances.get((owner, spender), 0)

    def holdings(self, account: bytes) -> int:
        return self.balance_of(account)

    def transfer(self, sender: bytes, recipient: bytes, amount: int) -> Tuple[bool, str]:
        """
        Move amount from sender to recipient.

        Returns:
            (success, error_message)
        """
        is_valid, error = _check_transfer_args(sender, recipient, amount)
        if not is_valid:
            return False, error

        balance = self.balance_of(sender)
        if balance < amount:
            return False, f"{self.symbol}: insufficient balance: have {balance}, need {amount}"

        self.balances[sender] = balance - amount
        self.balances[recipient] = self.balance_of(recipient) + amount
        logger.debug(f"{self.symbol}: {short_hex(sender)} -> {short_hex(recipient)}: {amount}")
        return True, ""

    def transfer_from(
        self,
        spender: bytes,
        owner: bytes,
        recipient: bytes,
        amount: int,
    ) -> Tuple[bool, str]:
        """
        Move amount from owner to recipient using spender's allowance.

        Returns:
            (success, error_message)
        """
        is_valid, error = _check_transfer_args(owner, recipient, amount)
        if not is_valid:
            return False, error

        allowed = self.allowance(owner, spender)
        if allowed < amount:
            return False, f"{self.symbol}: insufficient allowance: have {allowed}, need {amount}"

        success, error = self.transfer(owner, recipient, amount)
        if not success:
            return False, error

        self.allowances[(owner, spender)] = allowed - amount
        return True, ""

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            token_address=self.address,
            balances=dict(self.balances),
            allowances=dict(self.allowances),
            total_supply=self.total_supply,
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        if snapshot.token_address != self.address:
            raise ValueError("Snapshot belongs to a different token")
        self.balances = dict(snapshot.balances)
        self.allowances = dict(snapshot.allowances)
        self.total_supply = snapshot.total_supply

    def __repr__(self) -> str:
        return f"PlainToken({self.symbol}, supply={self.total_supply})"


# =============================================================================
# Confidential Token
# =============================================================================


class ConfidentialToken:
    """
    Encrypted-balance token.

    Every balance and allowance is a Ciphertext persistently granted to the
    token itself and to its owner; balances are additionally granted to every
    spender the owner has approved.
    """

    def __init__(self, executor: FHEExecutor, name: str, symbol: str):
        self.executor = executor
        self.name = name
        self.symbol = symbol
        self.address = contract_address(f"ConfidentialToken:{symbol}", next(_token_nonce))
        self._balances: Dict[bytes, Ciphertext] = {}
        self._allowances: Dict[Tuple[bytes, bytes], Ciphertext] = {}
        self._spenders: Dict[bytes, Set[bytes]] = {}
        self.total_supply = 0

    # =========================================================================
    # Views
    # =========================================================================

    def balance_of(self, account: bytes) -> Optional[Ciphertext]:
        """Encrypted balance handle, or None for an unknown account."""
        return self._balances.get(account)

    def allowance(self, owner: bytes, spender: bytes) -> Optional[Ciphertext]:
        return self._allowances.get((owner, spender))

    def holdings(self, account: bytes) -> int:
        """Balance as decrypted by the account itself (zero if unknown)."""
        balance = self._balances.get(account)
        if balance is None:
            return 0
        return self.executor.decrypt(balance, account)

    # =========================================================================
    # Internal State Updates
    # =========================================================================

    def _balance(self, fhe: FHEContext, account: bytes) -> Ciphertext:
        return self._balances.get(account) or fhe.as_euint(0)

    def _set_balance(self, fhe: FHEContext, account: bytes, value: Ciphertext) -> None:
        fhe.allow_this(value)
        fhe.allow(value, account)
        for spender in self._spenders.get(account, ()):
            fhe.allow(value, spender)
        self._balances[account] = value

    def _set_allowance(self, fhe: FHEContext, owner: bytes, spender: bytes, value: Ciphertext) -> None:
        fhe.allow_this(value)
        fhe.allow(value, owner)
        fhe.allow(value, spender)
        self._allowances[(owner, spender)] = value

    def _cleared(self, value: Optional[Ciphertext]) -> int:
        return 0 if value is None else self.executor.decrypt(value, self.address)

    # =========================================================================
    # Mint / Approve
    # =========================================================================

    def mint(self, to: bytes, amount: int) -> None:
        is_valid, error = validate_integer(amount, "amount")
        if not is_valid:
            raise ValueError(error)
        with self.executor.bind(self.address) as fhe:
            self._set_balance(fhe, to, fhe.add(self._balance(fhe, to), fhe.as_euint(amount)))
        self.total_supply += amount
        logger.debug(f"{self.symbol}: minted to {short_hex(to)}")

    def approve(self, owner: bytes, spender: bytes, amount: int) -> None:
        """Set an allowance and let spender compute on owner's balance."""
        is_valid, error = validate_integer(amount, "amount")
        if not is_valid:
            raise ValueError(error)
        with self.executor.bind(self.address) as fhe:
            self._spenders.setdefault(owner, set()).add(spender)
            self._set_allowance(fhe, owner, spender, fhe.as_euint(amount))
            self._set_balance(fhe, owner, self._balance(fhe, owner))
        logger.debug(f"{self.symbol}: {short_hex(owner)} approved {short_hex(spender)}")

    # =========================================================================
    # Custody
    # =========================================================================

    def transfer(self, sender: bytes, recipient: bytes, amount: int) -> Tuple[bool, str]:
        """
        Move a cleared amount from sender to recipient.

        Returns:
            (success, error_message)
        """
        is_valid, error = _check_transfer_args(sender, recipient, amount)
        if not is_valid:
            return False, error

        if self._cleared(self._balances.get(sender)) < amount:
            return False, f"{self.symbol}: insufficient balance for {short_hex(sender)}"

        with self.executor.bind(self.address) as fhe:
            value = fhe.as_euint(amount)
            self._set_balance(fhe, sender, fhe.sub(self._balance(fhe, sender), value))
            self._set_balance(fhe, recipient, fhe.add(self._balance(fhe, recipient), value))

        logger.debug(f"{self.symbol}: {short_hex(sender)} -> {short_hex(recipient)}")
        return True, ""

    def transfer_from(
        self,
        spender: bytes,
        owner: bytes,
        recipient: bytes,
        amount: int,
    ) -> Tuple[bool, str]:
        """
        Move a cleared amount from owner to recipient using spender's allowance.

        Returns:
            (success, error_message)
        """
        is_valid, error = _check_transfer_args(owner, recipient, amount)
        if not is_valid:
            return False, error

        if self._cleared(self._allowances.get((owner, spender))) < amount:
            return False, f"{self.symbol}: insufficient allowance for {short_hex(spender)}"

        success, error = self.transfer(owner, recipient, amount)
        if not success:
            return False, error

        with self.executor.bind(self.address) as fhe:
            remaining = fhe.sub(self._allowances[(owner, spender)], fhe.as_euint(amount))
            self._set_allowance(fhe, owner, spender, remaining)
        return True, ""

    # =========================================================================
    # Rollback
    # =========================================================================

    def snapshot(self) -> LedgerSnapshot:
        # Handles are immutable; copying the maps is enough
        return LedgerSnapshot(
            token_address=self.address,
            balances=dict(self._balances),
            allowances=dict(self._allowances),
            total_supply=self.total_supply,
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        if snapshot.token_address != self.address:
            raise ValueError("Snapshot belongs to a different token")
        self._balances = dict(snapshot.balances)
        self._allowances = dict(snapshot.allowances)
        self.total_supply = snapshot.total_supply

    def __repr__(self) -> str:
        return f"ConfidentialToken({self.symbol}, supply={self.total_supply})"
