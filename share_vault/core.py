"""
Core types and pure helpers for the share vault.

This module provides the foundational pieces shared by the ledger and the vault:
1. Constants: fixed-point PRECISION, deposit floor, integer range
2. Exceptions: VaultError and the domain-specific error taxonomy
3. Checked integer arithmetic: i128-bounded add/sub/mul/div
4. Display helpers: conversion between fixed-point integers and Decimal
5. Protocols: ShareLedger, AssetCustody, YieldStrategy, Authorizer
6. Immutable data structures: VaultEvent, VaultConfig

All monetary quantities are plain Python ints scaled by PRECISION.
No float ever enters the accounting path.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, localcontext
from enum import Enum
from typing import (
    Any, ContextManager, Dict, Optional, Protocol, Tuple, Union, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale: 1.0 unit == 10_000_000 (7 decimal digits).
PRECISION = 10_000_000

# Number of decimal digits represented by PRECISION.
SHARE_DECIMALS = 7

# Minimum deposit / withdrawal (0.1 unit).
MIN_AMOUNT = 1_000_000

# Default maximum single deposit (1,000,000 units).
DEFAULT_MAX_DEPOSIT = 1_000_000 * PRECISION

# Signed 128-bit range. Anything outside is an Overflow, never a wraparound.
I128_MAX = 2 ** 127 - 1
I128_MIN = -(2 ** 127)

# Default total-cap: effectively unlimited.
DEFAULT_TOTAL_CAP = I128_MAX

# Event kinds
EVENT_DEPOSIT = "deposit"
EVENT_WITHDRAW = "withdraw"
EVENT_YIELD_ADDED = "yield_added"
EVENT_PAUSED = "paused"
EVENT_UNPAUSED = "unpaused"
EVENT_ADMIN_TRANSFERRED = "admin_transferred"
EVENT_MAX_DEPOSIT_SET = "max_deposit_set"
EVENT_TOTAL_CAP_SET = "total_cap_set"
EVENT_MINT = "mint"
EVENT_BURN = "burn"
EVENT_TRANSFER = "transfer"
EVENT_APPROVE = "approve"
EVENT_MINTER_SET = "minter_set"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Opaque principal identity (an account address).
Address = str

# Storage key: (component_address, key_name, *args)
StorageKey = Tuple[Any, ...]


# ============================================================================
# ENUMS
# ============================================================================

class ReentrancyState(Enum):
    """
    Two-state guard held by the vault for the lifetime of a deposit/withdraw.

    UNLOCKED: No deposit or withdraw is in flight.
    LOCKED: A deposit or withdraw is executing; nested entry must fail.
    """
    UNLOCKED = "unlocked"
    LOCKED = "locked"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VaultError(Exception):
    """Base exception for all vault and ledger errors."""
    pass


class Unauthorized(VaultError):
    """Raised when the required principal has not authorized the call."""
    pass


class AlreadyInitialized(VaultError):
    """Raised when initialize() is called on an already initialized component."""
    pass


class NotInitialized(VaultError):
    """Raised when a component is used before initialize()."""
    pass


class InvalidAmount(VaultError):
    """Raised when a monetary argument is not an integer or has the wrong sign."""
    pass


class BelowMinimum(VaultError):
    """Raised when an amount is below the configured minimum."""
    pass


class ExceedsMaximum(VaultError):
    """Raised when a deposit is larger than the maximum single deposit."""
    pass


class ExceedsCap(VaultError):
    """Raised when a deposit would push total deposits above the total cap."""
    pass


class Overflow(VaultError):
    """Raised when an arithmetic result leaves the signed 128-bit range."""
    pass


class DivisionError(VaultError):
    """Raised on division by zero in fixed-point arithmetic."""
    pass


class InsufficientBalance(VaultError):
    """Raised when an account holds less than the amount to move or burn."""
    pass


class InsufficientAllowance(VaultError):
    """Raised when a spender's allowance is below the requested amount."""
    pass


class InsufficientShares(VaultError):
    """Raised when a withdrawal requests more shares than the user holds."""
    pass


class InsufficientLiquidity(VaultError):
    """Raised when vault custody cannot cover a withdrawal."""
    pass


class Paused(VaultError):
    """Raised when deposit or withdraw is attempted on a paused vault."""
    pass


class ReentrantCall(VaultError):
    """Raised when deposit or withdraw is entered while another one is in flight."""
    pass


class DepositTooSmall(VaultError):
    """Raised when a deposit would mint zero shares (dust)."""
    pass


class WithdrawalTooSmall(VaultError):
    """Raised when a withdrawal would return zero principal (dust)."""
    pass


class Slippage(VaultError):
    """
    Raised when the result of a guarded deposit/withdraw is below the caller's minimum.

    Attributes:
        expected: The minimum the caller was willing to accept
        actual: What the operation would have produced
    """

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Slippage: received {actual} but expected at least {expected}"
        )


# ============================================================================
# CHECKED INTEGER ARITHMETIC
# ============================================================================

def _check_range(value: int) -> int:
    if value > I128_MAX or value < I128_MIN:
        raise Overflow(f"Overflow: {value} outside signed 128-bit range")
    return value


def checked_add(a: int, b: int) -> int:
    """Add two integers, raising Overflow outside the i128 range."""
    return _check_range(a + b)


def checked_sub(a: int, b: int) -> int:
    """Subtract two integers, raising Overflow outside the i128 range."""
    return _check_range(a - b)


def checked_mul(a: int, b: int) -> int:
    """Multiply two integers, raising Overflow outside the i128 range."""
    return _check_range(a * b)


def checked_div(a: int, b: int) -> int:
    """
    Integer division truncating toward zero.

    For the non-negative operands used throughout the vault this equals
    floor division.

    Raises:
        DivisionError: If b is zero
        Overflow: If the quotient leaves the i128 range (I128_MIN / -1)
    """
    if b == 0:
        raise DivisionError("Division error: divide by zero")
    q = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        q = -q
    return _check_range(q)


def saturating_sub(a: int, b: int) -> int:
    """Subtract b from a, clamping at zero instead of going negative."""
    result = a - b
    return result if result > 0 else 0


def require_amount(amount: Any, name: str = "amount") -> int:
    """
    Validate that a monetary argument is a plain integer inside the i128 range.

    bool is rejected even though it subclasses int.

    Raises:
        InvalidAmount: If amount is not an int
        Overflow: If amount is outside the i128 range
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(amount).__name__}")
    return _check_range(amount)


def require_positive(amount: Any, name: str = "amount") -> int:
    """Validate an integer amount that must be strictly positive."""
    amount = require_amount(amount, name)
    if amount <= 0:
        raise InvalidAmount(f"{name} must be positive, got {amount}")
    return amount


def require_non_negative(amount: Any, name: str = "amount") -> int:
    """Validate an integer amount that must be zero or positive."""
    amount = require_amount(amount, name)
    if amount < 0:
        raise InvalidAmount(f"{name} cannot be negative, got {amount}")
    return amount


# ============================================================================
# DISPLAY HELPERS
# ============================================================================

def to_units(value: Union[int, str, Decimal]) -> int:
    """
    Convert a human amount to fixed-point units, truncating extra digits.

    Floats are rejected to keep binary rounding out of the ledger.

    Args:
        value: Whole-unit amount as int, str or Decimal (e.g. "1000.5")

    Returns:
        The amount scaled by PRECISION

    Example:
        to_units("1000")   -> 10_000_000_000
        to_units("0.1")    -> 1_000_000
    """
    if isinstance(value, float):
        raise InvalidAmount("float amounts are not accepted; use str or Decimal")
    if isinstance(value, bool):
        raise InvalidAmount("bool is not an amount")
    with localcontext() as ctx:
        ctx.prec = 60
        scaled = (Decimal(value) * PRECISION).quantize(Decimal(1), rounding=ROUND_DOWN)
    return require_amount(int(scaled))


def from_units(units: int) -> Decimal:
    """Convert fixed-point units to a Decimal with SHARE_DECIMALS places."""
    with localcontext() as ctx:
        ctx.prec = 60
        return Decimal(units).scaleb(-SHARE_DECIMALS)


def format_units(units: Optional[int]) -> str:
    """Render fixed-point units for verbose output."""
    if units is None:
        return "-"
    return f"{from_units(units):.{SHARE_DECIMALS}f}"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class Authorizer(Protocol):
    """
    Authorization capability.

    require_auth() proves that a principal approved the current call.
    signed() scopes additional signers, which is how a component
    authorizes calls it makes as itself (e.g. the vault burning shares).
    """

    def require_auth(self, principal: Address) -> None:
        ...

    def signed(self, *principals: Address) -> ContextManager[None]:
        ...


@runtime_checkable
class ShareLedger(Protocol):
    """
    Capability the vault needs from the share token.

    Implemented by TokenLedger; tests may substitute fakes.
    """

    def mint(self, to: Address, amount: int) -> None:
        ...

    def burn(self, from_: Address, amount: int) -> None:
        ...

    def balance(self, account: Address) -> int:
        ...

    def total_supply(self) -> int:
        ...


@runtime_checkable
class AssetCustody(Protocol):
    """
    Principal-asset custody.

    Synchronous transfer and balance against an external fungible asset.
    The vault assumes both are atomic and reliable.
    """

    def transfer(self, from_: Address, to: Address, amount: int) -> None:
        ...

    def balance(self, account: Address) -> int:
        ...


@runtime_checkable
class YieldStrategy(Protocol):
    """
    External strategy that could hold vault custody for yield generation.

    deposit() returns units received, withdraw() returns principal
    returned, get_balance() the current principal value and harvest()
    the realized yield. The vault never calls a strategy directly;
    harvested yield enters through Vault.add_yield().
    """

    def deposit(self, amount: int) -> int:
        ...

    def withdraw(self, amount: int) -> int:
        ...

    def get_balance(self) -> int:
        ...

    def harvest(self) -> int:
        ...


# ============================================================================
# EVENT RECORD
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultEvent:
    """
    Immutable record of one committed state change.

    Attributes:
        sequence: Monotonic position in the event log
        kind: Operation kind (deposit, withdraw, mint, ...)
        contract: Address of the emitting component
        principal: The identity the operation acted on
        amount: Primary amount of the operation
        before: Relevant counter before the operation
        after: Relevant counter after the operation
        counterparty: Optional second identity (recipient, spender, new admin)
        params: Extra data as a frozen tuple of (key, value) pairs
    """
    sequence: int
    kind: str
    contract: Address
    principal: Optional[Address]
    amount: int = 0
    before: Optional[int] = None
    after: Optional[int] = None
    counterparty: Optional[Address] = None
    params: Tuple[Tuple[str, Any], ...] = ()

    @property
    def params_dict(self) -> Dict[str, Any]:
        """Get params as a dictionary for convenience."""
        return dict(self.params)

    def __repr__(self) -> str:
        parts = [f"#{self.sequence} {self.kind}", f"{self.contract}"]
        if self.principal:
            parts.append(f"principal={self.principal}")
        if self.counterparty:
            parts.append(f"counterparty={self.counterparty}")
        parts.append(f"amount={format_units(self.amount)}")
        if self.before is not None or self.after is not None:
            parts.append(f"{format_units(self.before)}→{format_units(self.after)}")
        for key, value in self.params:
            parts.append(f"{key}={value}")
        return f"VaultEvent({', '.join(parts)})"


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultConfig:
    """
    Operational limits applied at vault initialization.

    Attributes:
        min_amount: Floor for deposits and share withdrawals
        max_deposit: Largest single deposit accepted
        total_cap: Ceiling on total deposits (TVL cap)
    """
    min_amount: int = MIN_AMOUNT
    max_deposit: int = DEFAULT_MAX_DEPOSIT
    total_cap: int = DEFAULT_TOTAL_CAP

    def __post_init__(self):
        require_positive(self.min_amount, "min_amount")
        require_amount(self.max_deposit, "max_deposit")
        require_non_negative(self.total_cap, "total_cap")
        if self.max_deposit < self.min_amount:
            raise BelowMinimum(
                f"max_deposit {self.max_deposit} below min_amount {self.min_amount}"
            )
