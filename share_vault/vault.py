"""
vault.py - Share-Accounting Engine

The Vault takes custody of a principal asset and issues share tokens
whose backing value grows as yield accrues. It is the only component
that mints or burns shares.

Key responsibilities:
    - Converts principal to shares (deposit) and shares to principal
      (withdraw) at an exchange rate recomputed from live state on every use
    - Keeps totalDeposits / yieldAccrued / per-user deposit counters
    - Rejects nested deposit/withdraw calls with a reentrancy guard
    - Runs every mutating call inside Env.atomic(): on any failure no
      counter, balance or event survives

Control flow of a deposit:
    validate -> compute shares -> asset.transfer(user -> vault)
    -> update counters -> shares.mint(user) -> event
    (a failed mint sends the principal back before the call aborts)

Control flow of a withdraw:
    validate -> compute principal -> shares.burn(user)
    -> reduce counters proportionally -> asset.transfer(vault -> user) -> event
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .core import (
    Address, AssetCustody, ShareLedger, ReentrancyState, VaultConfig,
    # Exceptions
    AlreadyInitialized, NotInitialized, Paused, BelowMinimum, ExceedsMaximum,
    ExceedsCap, InsufficientShares, InsufficientLiquidity, ReentrantCall,
    DepositTooSmall, WithdrawalTooSmall, Slippage,
    # Arithmetic
    checked_add, saturating_sub,
    require_amount, require_positive, require_non_negative,
    # Events
    EVENT_DEPOSIT, EVENT_WITHDRAW, EVENT_YIELD_ADDED, EVENT_PAUSED, EVENT_UNPAUSED,
    EVENT_ADMIN_TRANSFERRED, EVENT_MAX_DEPOSIT_SET, EVENT_TOTAL_CAP_SET,
)
from .accounting import (
    VaultSnapshot,
    calculate_shares_for_deposit,
    calculate_principal_for_shares,
    apply_withdrawal,
)
from .env import Env


class Vault:
    """
    Share-based custody vault.

    All state lives in env.storage under keys prefixed with the vault
    address, so two Vault objects bound to the same Env and address see
    the same vault, and separate Envs give fully isolated vaults.

    Thread Safety:
        Mutations serialize on the Env commit lock. Queries take the same
        lock, so they observe a state before or after a mutation, never a mix.

    Example:
        env = Env(auth=AllowAll())
        asset = TokenLedger(env, "xlm")
        asset.initialize(admin="issuer", minter="issuer")
        shares = TokenLedger(env, "sxlm")
        shares.initialize(admin="admin", minter="vault")
        vault = Vault(env, "vault")
        vault.initialize("admin", asset, shares)

        asset.mint("alice", to_units("1000"))
        minted = vault.deposit("alice", to_units("1000"))
    """

    def __init__(self, env: Env, address: Address = "vault"):
        self.env = env
        self.address = address

    def _key(self, *parts: Any) -> tuple:
        return (self.address,) + parts

    def _get(self, name: str, default: Any = None) -> Any:
        return self.env.storage.get(self._key(name), default)

    def _set(self, name: str, value: Any) -> None:
        self.env.storage.set(self._key(name), value)

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    def initialize(
        self,
        admin: Address,
        asset: AssetCustody,
        shares: ShareLedger,
        config: Optional[VaultConfig] = None,
    ) -> None:
        """
        Bind admin, principal asset and share ledger. One-time only.

        Args:
            admin: Principal allowed to add yield, pause and change limits
            asset: Custody of the principal asset
            shares: Ledger of the share token; the vault must be its minter
            config: Operational limits (default: VaultConfig())

        Raises:
            AlreadyInitialized: On a second call
        """
        config = config or VaultConfig()
        with self.env.atomic():
            if self._get("Initialized", False):
                raise AlreadyInitialized(f"Vault {self.address} already initialized")
            self._set("Admin", admin)
            self._set("Asset", asset)
            self._set("Shares", shares)
            self._set("MinAmount", config.min_amount)
            self._set("MaxDeposit", config.max_deposit)
            self._set("TotalCap", config.total_cap)
            self._set("Paused", False)
            self._set("Reentrancy", ReentrancyState.UNLOCKED)
            self._set("TotalDeposits", 0)
            self._set("YieldAccrued", 0)
            self._set("Initialized", True)

    def _require_initialized(self) -> None:
        if not self._get("Initialized", False):
            raise NotInitialized(f"Vault {self.address} not initialized")

    # ========================================================================
    # REENTRANCY GUARD
    # ========================================================================

    @contextmanager
    def _non_reentrant(self) -> Iterator[None]:
        """
        Hold the reentrancy lock for the duration of one deposit/withdraw.

        Entry while locked fails before touching anything else. The lock
        is released on every exit path.
        """
        if self._get("Reentrancy", ReentrancyState.UNLOCKED) is ReentrancyState.LOCKED:
            raise ReentrantCall("Reentrant call detected")
        self._set("Reentrancy", ReentrancyState.LOCKED)
        try:
            yield
        finally:
            self._set("Reentrancy", ReentrancyState.UNLOCKED)

    def reentrancy_state(self) -> ReentrancyState:
        return self._get("Reentrancy", ReentrancyState.UNLOCKED)

    # ========================================================================
    # QUERIES
    # ========================================================================

    # Every query below fails NotInitialized before initialize().

    def _required(self, name: str) -> Any:
        self._require_initialized()
        return self._get(name)

    def admin(self) -> Address:
        return self._required("Admin")

    def asset(self) -> AssetCustody:
        return self._required("Asset")

    def share_token(self) -> ShareLedger:
        return self._required("Shares")

    def is_paused(self) -> bool:
        return self._required("Paused")

    def min_amount(self) -> int:
        return self._required("MinAmount")

    def max_deposit(self) -> int:
        return self._required("MaxDeposit")

    def total_cap(self) -> int:
        return self._required("TotalCap")

    def total_deposits(self) -> int:
        """Principal deposited and not yet withdrawn (without yield)."""
        return self._required("TotalDeposits")

    def yield_accrued(self) -> int:
        return self._required("YieldAccrued")

    def user_deposit(self, user: Address) -> int:
        """Principal contributed by user. Reporting only, never used for redemption."""
        self._require_initialized()
        return self.env.storage.get(self._key("UserDeposit", user), 0)

    def snapshot(self) -> VaultSnapshot:
        """Consistent (total_deposits, yield_accrued, total_supply) triple."""
        with self.env.reading():
            return VaultSnapshot(
                total_deposits=self.total_deposits(),
                yield_accrued=self.yield_accrued(),
                total_supply=self.share_token().total_supply(),
            )

    def total_assets(self) -> int:
        """Deposits plus accrued yield."""
        with self.env.reading():
            return self.snapshot().total_assets

    def exchange_rate(self) -> int:
        """Principal per share scaled by PRECISION; PRECISION while no shares exist."""
        with self.env.reading():
            return self.snapshot().exchange_rate

    def preview_deposit(self, amount: int) -> int:
        """Shares a deposit of amount would mint right now. Mutates nothing."""
        amount = require_non_negative(amount)
        with self.env.reading():
            return calculate_shares_for_deposit(amount, self.exchange_rate())

    def preview_withdraw(self, shares_amount: int) -> int:
        """Principal a withdrawal of shares_amount would return right now. Mutates nothing."""
        shares_amount = require_non_negative(shares_amount, "shares_amount")
        with self.env.reading():
            return calculate_principal_for_shares(shares_amount, self.exchange_rate())

    # ========================================================================
    # DEPOSIT / WITHDRAW
    # ========================================================================

    def deposit(self, user: Address, amount: int) -> int:
        """
        Deposit principal and receive shares.

        Args:
            user: Depositor; must authorize the call
            amount: Principal to deposit, in fixed-point units

        Returns:
            Shares minted to user

        Raises:
            ReentrantCall: If a deposit/withdraw is already in flight
            Unauthorized: If user has not authorized the call
            Paused: If the vault is paused
            BelowMinimum: If amount < min_amount
            ExceedsMaximum: If amount > max_deposit
            ExceedsCap: If total deposits would exceed total_cap
            Overflow: If any checked arithmetic overflows
            DepositTooSmall: If the deposit would mint zero shares
        """
        return self._deposit(user, amount, min_shares_out=None)

    def deposit_with_min_out(self, user: Address, amount: int, min_shares_out: int) -> int:
        """
        Deposit, failing with Slippage before anything moves if fewer than
        min_shares_out shares would be minted.
        """
        min_shares_out = require_amount(min_shares_out, "min_shares_out")
        return self._deposit(user, amount, min_shares_out=min_shares_out)

    def _deposit(self, user: Address, amount: int, min_shares_out: Optional[int]) -> int:
        with self.env.atomic(), self._non_reentrant():
            self._require_initialized()
            self.env.require_auth(user)
            amount = require_amount(amount)

            if self.is_paused():
                raise Paused("Vault is paused")
            if amount < self.min_amount():
                raise BelowMinimum(f"Amount {amount} below minimum {self.min_amount()}")
            if amount > self.max_deposit():
                raise ExceedsMaximum(
                    f"Amount {amount} exceeds maximum single deposit {self.max_deposit()}"
                )

            state = self.snapshot()
            total_after = checked_add(state.total_deposits, amount)
            if total_after > self.total_cap():
                raise ExceedsCap(f"Deposit would exceed total cap {self.total_cap()}")

            rate = state.exchange_rate
            shares_out = calculate_shares_for_deposit(amount, rate)
            if shares_out == 0:
                raise DepositTooSmall(f"Deposit {amount} mints no shares at rate {rate}")
            if min_shares_out is not None and shares_out < min_shares_out:
                raise Slippage(expected=min_shares_out, actual=shares_out)

            user_total = checked_add(self.user_deposit(user), amount)

            # External custody call; nothing of ours has been written yet.
            asset = self.asset()
            asset.transfer(user, self.address, amount)

            self._set("TotalDeposits", total_after)
            self.env.storage.set(self._key("UserDeposit", user), user_total)

            try:
                with self.env.auth.signed(self.address):
                    self.share_token().mint(user, shares_out)
            except Exception:
                # Custody kept outside this Env is not restored by rollback.
                with self.env.auth.signed(self.address):
                    asset.transfer(self.address, user, amount)
                raise

            self.env.events.emit(
                EVENT_DEPOSIT, self.address, user, amount,
                before=state.total_assets,
                after=checked_add(total_after, state.yield_accrued),
                shares=shares_out, rate=rate,
            )
            return shares_out

    def withdraw(self, user: Address, shares_amount: int) -> int:
        """
        Burn shares and receive principal.

        Args:
            user: Share holder; must authorize the call
            shares_amount: Shares to redeem, in fixed-point units

        Returns:
            Principal returned to user

        Raises:
            ReentrantCall: If a deposit/withdraw is already in flight
            Unauthorized: If user has not authorized the call
            Paused: If the vault is paused
            BelowMinimum: If shares_amount < min_amount
            InsufficientShares: If user holds fewer shares
            WithdrawalTooSmall: If the shares are worth zero principal
            InsufficientLiquidity: If vault custody cannot cover the payout
        """
        return self._withdraw(user, shares_amount, min_principal_out=None)

    def withdraw_with_min_out(self, user: Address, shares_amount: int, min_principal_out: int) -> int:
        """
        Withdraw, failing with Slippage before anything moves if less than
        min_principal_out principal would be returned.
        """
        min_principal_out = require_amount(min_principal_out, "min_principal_out")
        return self._withdraw(user, shares_amount, min_principal_out=min_principal_out)

    def _withdraw(self, user: Address, shares_amount: int, min_principal_out: Optional[int]) -> int:
        with self.env.atomic(), self._non_reentrant():
            self._require_initialized()
            self.env.require_auth(user)
            shares_amount = require_amount(shares_amount, "shares_amount")

            if self.is_paused():
                raise Paused("Vault is paused")
            if shares_amount < self.min_amount():
                raise BelowMinimum(
                    f"Shares {shares_amount} below minimum {self.min_amount()}"
                )

            shares = self.share_token()
            held = shares.balance(user)
            if held < shares_amount:
                raise InsufficientShares(
                    f"Insufficient shares: {user} holds {held}, requested {shares_amount}"
                )

            state = self.snapshot()
            rate = state.exchange_rate
            principal_out = calculate_principal_for_shares(shares_amount, rate)
            if principal_out == 0:
                raise WithdrawalTooSmall(
                    f"Withdrawal of {shares_amount} shares returns nothing at rate {rate}"
                )

            asset = self.asset()
            liquidity = asset.balance(self.address)
            if liquidity < principal_out:
                raise InsufficientLiquidity(
                    f"Insufficient vault liquidity: {liquidity} < {principal_out}"
                )
            if min_principal_out is not None and principal_out < min_principal_out:
                raise Slippage(expected=min_principal_out, actual=principal_out)

            with self.env.auth.signed(self.address):
                shares.burn(user, shares_amount)

            new_deposits, new_yield = apply_withdrawal(
                principal_out, state.total_deposits, state.yield_accrued
            )
            self._set("TotalDeposits", new_deposits)
            self._set("YieldAccrued", new_yield)

            user_deposit = self.user_deposit(user)
            if user_deposit > 0:
                self.env.storage.set(
                    self._key("UserDeposit", user),
                    saturating_sub(user_deposit, principal_out),
                )

            with self.env.auth.signed(self.address):
                asset.transfer(self.address, user, principal_out)

            self.env.events.emit(
                EVENT_WITHDRAW, self.address, user, principal_out,
                before=state.total_assets,
                after=checked_add(new_deposits, new_yield),
                shares=shares_amount, rate=rate,
            )
            return principal_out

    # ========================================================================
    # YIELD
    # ========================================================================

    def add_yield(self, amount: int) -> None:
        """
        Credit externally realized returns (admin only).

        Transfers amount of principal from the admin into custody and adds
        it to yield_accrued. The only way yield_accrued increases.

        Raises:
            Unauthorized: If the admin has not authorized the call
            InvalidAmount: If amount <= 0
            Overflow: If yield_accrued would overflow
        """
        with self.env.atomic():
            admin = self.admin()
            self.env.require_auth(admin)
            amount = require_positive(amount)

            before = self.yield_accrued()
            after = checked_add(before, amount)
            self.asset().transfer(admin, self.address, amount)
            self._set("YieldAccrued", after)

            self.env.events.emit(
                EVENT_YIELD_ADDED, self.address, admin, amount,
                before=before, after=after,
            )

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def _require_admin(self) -> Address:
        admin = self.admin()
        self.env.require_auth(admin)
        return admin

    def pause(self) -> None:
        """Stop deposits and withdrawals (admin only)."""
        with self.env.atomic():
            admin = self._require_admin()
            self._set("Paused", True)
            self.env.events.emit(EVENT_PAUSED, self.address, admin)

    def unpause(self) -> None:
        """Resume deposits and withdrawals (admin only)."""
        with self.env.atomic():
            admin = self._require_admin()
            self._set("Paused", False)
            self.env.events.emit(EVENT_UNPAUSED, self.address, admin)

    def set_max_deposit(self, max_deposit: int) -> None:
        """
        Set the maximum single deposit (admin only).

        Raises:
            BelowMinimum: If max_deposit < min_amount
        """
        with self.env.atomic():
            admin = self._require_admin()
            max_deposit = require_amount(max_deposit, "max_deposit")
            if max_deposit < self.min_amount():
                raise BelowMinimum("Max deposit too low")
            before = self.max_deposit()
            self._set("MaxDeposit", max_deposit)
            self.env.events.emit(
                EVENT_MAX_DEPOSIT_SET, self.address, admin, max_deposit,
                before=before, after=max_deposit,
            )

    def set_total_cap(self, total_cap: int) -> None:
        """
        Set the ceiling on total deposits (admin only).

        Lowering the cap below current deposits only blocks new deposits.

        Raises:
            InvalidAmount: If total_cap is negative
        """
        with self.env.atomic():
            admin = self._require_admin()
            total_cap = require_non_negative(total_cap, "total_cap")
            before = self.total_cap()
            self._set("TotalCap", total_cap)
            self.env.events.emit(
                EVENT_TOTAL_CAP_SET, self.address, admin, total_cap,
                before=before, after=total_cap,
            )

    def transfer_admin(self, new_admin: Address) -> None:
        """Hand administration to new_admin (current admin only)."""
        with self.env.atomic():
            admin = self._require_admin()
            self._set("Admin", new_admin)
            self.env.events.emit(
                EVENT_ADMIN_TRANSFERRED, self.address, admin, counterparty=new_admin,
            )

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the accounting invariants against live state.

        Checks:
        1. total_deposits >= 0 and yield_accrued >= 0
        2. share ledger conservation (when the ledger can report it)
        3. custody balance covers total_assets
        4. the reentrancy lock is released outside a call

        Returns:
            Dict with keys:
            - 'valid': bool - True if every check passed
            - 'total_assets': int
            - 'custody_balance': int
            - 'discrepancies': List[Dict] - one entry per failed check
        """
        discrepancies: List[Dict[str, Any]] = []
        with self.env.reading():
            state = self.snapshot()
            custody = self.asset().balance(self.address)

            if state.total_deposits < 0:
                discrepancies.append({'check': 'total_deposits', 'actual': state.total_deposits})
            if state.yield_accrued < 0:
                discrepancies.append({'check': 'yield_accrued', 'actual': state.yield_accrued})

            shares = self.share_token()
            if hasattr(shares, 'verify_conservation'):
                conservation = shares.verify_conservation()
                if not conservation['valid']:
                    discrepancies.append({'check': 'share_conservation', **conservation})

            if custody < state.total_assets:
                discrepancies.append({
                    'check': 'custody_coverage',
                    'expected': state.total_assets,
                    'actual': custody,
                    'difference': state.total_assets - custody,
                })

            if not self.env.in_call and self.reentrancy_state() is not ReentrancyState.UNLOCKED:
                discrepancies.append({'check': 'reentrancy', 'actual': self.reentrancy_state()})

        return {
            'valid': len(discrepancies) == 0,
            'total_assets': state.total_assets,
            'custody_balance': custody,
            'discrepancies': discrepancies,
        }

    def __repr__(self) -> str:
        if not self._get("Initialized", False):
            return f"Vault({self.address}, uninitialized)"
        return (
            f"Vault({self.address}, deposits={self.total_deposits()}, "
            f"yield={self.yield_accrued()}, rate={self.exchange_rate()})"
        )
