"""
token.py - Fungible token ledger

TokenLedger keeps balances, allowances and the total supply of one
fungible token. The vault uses one instance as its share token; a
second instance on the same Env can stand in for the principal asset.

Key responsibilities:
    - Mint/burn restricted to a single minter principal
    - Transfers, approvals and delegated transfer/burn
    - Conservation: total_supply == sum of all balances, always
    - Every mutating call is all-or-nothing (runs inside Env.atomic())

Storage layout (all keys prefixed with the token address):
    ("Admin",) ("Minter",) ("Name",) ("Symbol",) ("Decimals",)
    ("TotalSupply",)
    ("Balance", account)
    ("Allowance", owner, spender)   - removed when set to 0
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from .core import (
    Address, SHARE_DECIMALS,
    AlreadyInitialized, NotInitialized,
    InsufficientBalance, InsufficientAllowance,
    checked_add, require_positive, require_non_negative,
    EVENT_MINT, EVENT_BURN, EVENT_TRANSFER, EVENT_APPROVE, EVENT_MINTER_SET,
)
from .env import Env


class TokenLedger:
    """
    Minimal fungible ledger with a designated minter.

    Implements the ShareLedger protocol used by the vault and the
    AssetCustody protocol (transfer/balance) used for the principal asset.

    Example:
        env = Env(auth=AllowAll())
        shares = TokenLedger(env, "share_token")
        shares.initialize(admin="admin", minter="vault")
        shares.mint("alice", 10_000_000)
        shares.transfer("alice", "bob", 4_000_000)
    """

    def __init__(self, env: Env, address: Address):
        self.env = env
        self.address = address

    def _key(self, *parts: Any) -> tuple:
        return (self.address,) + parts

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    def initialize(
        self,
        admin: Address,
        minter: Address,
        name: str = "Staked Share",
        symbol: str = "sSHARE",
        decimals: int = SHARE_DECIMALS,
    ) -> None:
        """
        Bind the admin and minter identities. One-time only.

        Raises:
            AlreadyInitialized: If the token was already initialized
        """
        storage = self.env.storage
        with self.env.atomic():
            if storage.has(self._key("Admin")):
                raise AlreadyInitialized(f"Token {self.address} already initialized")
            storage.set(self._key("Admin"), admin)
            storage.set(self._key("Minter"), minter)
            storage.set(self._key("Name"), name)
            storage.set(self._key("Symbol"), symbol)
            storage.set(self._key("Decimals"), decimals)
            storage.set(self._key("TotalSupply"), 0)

    def _required(self, name: str) -> Any:
        value = self.env.storage.get(self._key(name))
        if value is None:
            raise NotInitialized(f"Token {self.address} not initialized")
        return value

    # ========================================================================
    # QUERIES (read-only, never fail on unseen accounts)
    # ========================================================================

    def balance(self, account: Address) -> int:
        """Balance of account (0 if never credited)."""
        return self.env.storage.get(self._key("Balance", account), 0)

    def allowance(self, owner: Address, spender: Address) -> int:
        """Amount spender may still move or burn from owner (0 if never approved)."""
        return self.env.storage.get(self._key("Allowance", owner, spender), 0)

    def total_supply(self) -> int:
        return self.env.storage.get(self._key("TotalSupply"), 0)

    def minter(self) -> Address:
        return self._required("Minter")

    def admin(self) -> Address:
        return self._required("Admin")

    def name(self) -> str:
        return self._required("Name")

    def symbol(self) -> str:
        return self._required("Symbol")

    def decimals(self) -> int:
        return self._required("Decimals")

    def holders(self) -> List[Address]:
        """Accounts with a positive balance, sorted."""
        storage = self.env.storage
        with self.env.reading():
            prefix = self._key("Balance")
            return sorted(
                key[len(prefix)]
                for key in storage.keys(prefix)
                if storage.get(key, 0) > 0
            )

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that total supply equals the sum of all balances.

        Returns:
            Dict with keys:
            - 'valid': bool - True if the conservation law holds
            - 'total_supply': int - Recorded total supply
            - 'sum_of_balances': int - Sum over every stored balance
            - 'discrepancy': int - total_supply - sum_of_balances
        """
        storage = self.env.storage
        with self.env.reading():
            supply = self.total_supply()
            balances = sum(storage.get(k, 0) for k in storage.keys(self._key("Balance")))
        return {
            'valid': supply == balances,
            'total_supply': supply,
            'sum_of_balances': balances,
            'discrepancy': supply - balances,
        }

    # ========================================================================
    # INTERNAL WRITES
    # ========================================================================

    def _set_balance(self, account: Address, amount: int) -> None:
        self.env.storage.set(self._key("Balance", account), amount)

    def _set_allowance(
        self, owner: Address, spender: Address, amount: int, expiration: Optional[int] = None
    ) -> None:
        key = self._key("Allowance", owner, spender)
        if amount > 0:
            self.env.storage.set(key, amount, retention=expiration)
        else:
            self.env.storage.remove(key)

    def _set_total_supply(self, amount: int) -> None:
        self.env.storage.set(self._key("TotalSupply"), amount)

    def _debit(self, account: Address, amount: int) -> int:
        balance = self.balance(account)
        if balance < amount:
            raise InsufficientBalance(
                f"Insufficient balance: {account} holds {balance}, needs {amount}"
            )
        self._set_balance(account, balance - amount)
        return balance

    def _credit(self, account: Address, amount: int) -> int:
        balance = self.balance(account)
        self._set_balance(account, checked_add(balance, amount))
        return balance

    def _spend_allowance(self, owner: Address, spender: Address, amount: int) -> None:
        allowance = self.allowance(owner, spender)
        if allowance < amount:
            raise InsufficientAllowance(
                f"Insufficient allowance: {spender} may spend {allowance} of {owner}, needs {amount}"
            )
        expiration = self.env.storage.retention_of(self._key("Allowance", owner, spender))
        self._set_allowance(owner, spender, allowance - amount, expiration)

    def _burn(self, from_: Address, amount: int) -> None:
        before = self._debit(from_, amount)
        self._set_total_supply(self.total_supply() - amount)
        self.env.events.emit(
            EVENT_BURN, self.address, from_, amount,
            before=before, after=before - amount,
        )

    def _move(self, from_: Address, to: Address, amount: int) -> None:
        # Debit first: a self-transfer still has to prove the balance.
        before = self._debit(from_, amount)
        self._credit(to, amount)
        self.env.events.emit(
            EVENT_TRANSFER, self.address, from_, amount,
            before=before, after=self.balance(from_), counterparty=to,
        )

    # ========================================================================
    # MINTER OPERATIONS
    # ========================================================================

    def mint(self, to: Address, amount: int) -> None:
        """
        Create amount new tokens in account to.

        Raises:
            Unauthorized: If the minter has not authorized the call
            InvalidAmount: If amount <= 0
            Overflow: If the balance or the total supply would overflow
        """
        with self.env.atomic():
            minter = self.minter()
            self.env.require_auth(minter)
            amount = require_positive(amount)
            new_supply = checked_add(self.total_supply(), amount)
            before = self._credit(to, amount)
            self._set_total_supply(new_supply)
            self.env.events.emit(
                EVENT_MINT, self.address, to, amount,
                before=before, after=before + amount, counterparty=minter,
            )

    def burn(self, from_: Address, amount: int) -> None:
        """
        Destroy amount tokens held by from_ (minter only).

        Raises:
            Unauthorized: If the minter has not authorized the call
            InvalidAmount: If amount <= 0
            InsufficientBalance: If from_ holds less than amount
        """
        with self.env.atomic():
            self.env.require_auth(self.minter())
            amount = require_positive(amount)
            self._burn(from_, amount)

    def set_minter(self, new_minter: Address) -> None:
        """Rebind the minter (admin only)."""
        with self.env.atomic():
            self.env.require_auth(self.admin())
            old = self.minter()
            self.env.storage.set(self._key("Minter"), new_minter)
            self.env.events.emit(
                EVENT_MINTER_SET, self.address, old, counterparty=new_minter,
            )

    # ========================================================================
    # HOLDER OPERATIONS
    # ========================================================================

    def burn_self(self, from_: Address, amount: int) -> None:
        """Destroy amount of the caller's own tokens."""
        with self.env.atomic():
            self._required("Admin")
            self.env.require_auth(from_)
            amount = require_positive(amount)
            self._burn(from_, amount)

    def transfer(self, from_: Address, to: Address, amount: int) -> None:
        """
        Move amount from from_ to to.

        Raises:
            Unauthorized: If from_ has not authorized the call
            InvalidAmount: If amount <= 0
            InsufficientBalance: If from_ holds less than amount
            Overflow: If the recipient balance would overflow
        """
        with self.env.atomic():
            self._required("Admin")
            self.env.require_auth(from_)
            amount = require_positive(amount)
            self._move(from_, to, amount)

    def approve(
        self,
        from_: Address,
        spender: Address,
        amount: int,
        expiration: Optional[int] = None,
    ) -> None:
        """
        Set the allowance of spender over from_'s tokens.

        An amount of exactly 0 removes the allowance entry. expiration is
        kept as the entry's retention hint and is not enforced.

        Raises:
            Unauthorized: If from_ has not authorized the call
            InvalidAmount: If amount is negative
        """
        with self.env.atomic():
            self._required("Admin")
            self.env.require_auth(from_)
            amount = require_non_negative(amount)
            before = self.allowance(from_, spender)
            self._set_allowance(from_, spender, amount, expiration)
            self.env.events.emit(
                EVENT_APPROVE, self.address, from_, amount,
                before=before, after=amount, counterparty=spender,
                expiration=expiration,
            )

    def transfer_from(self, spender: Address, from_: Address, to: Address, amount: int) -> None:
        """
        Move amount from from_ to to, spending spender's allowance.

        Raises:
            Unauthorized: If spender has not authorized the call
            InvalidAmount: If amount <= 0
            InsufficientAllowance: If the allowance is below amount
            InsufficientBalance: If from_ holds less than amount
        """
        with self.env.atomic():
            self._required("Admin")
            self.env.require_auth(spender)
            amount = require_positive(amount)
            self._spend_allowance(from_, spender, amount)
            self._move(from_, to, amount)

    def burn_from(self, spender: Address, from_: Address, amount: int) -> None:
        """Destroy amount of from_'s tokens, spending spender's allowance."""
        with self.env.atomic():
            self._required("Admin")
            self.env.require_auth(spender)
            amount = require_positive(amount)
            self._spend_allowance(from_, spender, amount)
            self._burn(from_, amount)

    def __repr__(self) -> str:
        return f"TokenLedger({self.address}, supply={self.total_supply()})"
