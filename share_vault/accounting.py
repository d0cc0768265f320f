"""
accounting.py - Pure share-accounting arithmetic

Every function here takes all inputs explicitly and returns integers.
No storage, no authorization, no side effects. The vault loads a
consistent snapshot of its counters once and feeds them through these.

Key Formulas:
    total_assets   = total_deposits + yield_accrued
    exchange_rate  = total_assets * PRECISION / total_supply   (PRECISION when supply == 0)
    shares_out     = floor(amount * PRECISION / exchange_rate)
    principal_out  = floor(shares * exchange_rate / PRECISION)
    deposit_part   = floor(principal_out * total_deposits / total_assets)
    yield_part     = principal_out - deposit_part
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

from .core import (
    PRECISION,
    checked_add, checked_mul, checked_div, saturating_sub,
)


@dataclass(frozen=True, slots=True)
class VaultSnapshot:
    """
    Consistent view of the counters the exchange rate depends on.

    Attributes:
        total_deposits: Aggregate principal deposited and not yet withdrawn
        yield_accrued: Externally realized gains credited to the vault
        total_supply: Outstanding share tokens
    """
    total_deposits: int
    yield_accrued: int
    total_supply: int

    @property
    def total_assets(self) -> int:
        return calculate_total_assets(self.total_deposits, self.yield_accrued)

    @property
    def exchange_rate(self) -> int:
        return calculate_exchange_rate(self.total_assets, self.total_supply)


def calculate_total_assets(total_deposits: int, yield_accrued: int) -> int:
    """Principal plus yield, with checked addition."""
    return checked_add(total_deposits, yield_accrued)


def calculate_exchange_rate(total_assets: int, total_supply: int) -> int:
    """
    Principal units per share, scaled by PRECISION.

    Returns PRECISION (1:1) while no shares exist.
    """
    if total_supply == 0:
        return PRECISION
    return checked_div(checked_mul(total_assets, PRECISION), total_supply)


def calculate_shares_for_deposit(amount: int, exchange_rate: int) -> int:
    """Shares minted for a principal deposit (floor)."""
    return checked_div(checked_mul(amount, PRECISION), exchange_rate)


def calculate_principal_for_shares(shares: int, exchange_rate: int) -> int:
    """Principal returned for redeemed shares (floor)."""
    return checked_div(checked_mul(shares, exchange_rate), PRECISION)


def split_withdrawal(
    principal_out: int,
    total_deposits: int,
    yield_accrued: int,
) -> Tuple[int, int]:
    """
    Split a withdrawal between the deposit and yield counters.

    The deposit portion is floored, so the yield portion absorbs the
    rounding remainder. Over many withdrawals yield_accrued is drawn down
    slightly faster than an exact pro-rata split would; integrations
    depend on this exact rule, keep it.

    Returns:
        (deposit_portion, yield_portion), or (0, 0) when total assets are zero
    """
    total_assets = calculate_total_assets(total_deposits, yield_accrued)
    if total_assets <= 0:
        return 0, 0
    deposit_portion = checked_div(checked_mul(principal_out, total_deposits), total_assets)
    return deposit_portion, principal_out - deposit_portion


def apply_withdrawal(
    principal_out: int,
    total_deposits: int,
    yield_accrued: int,
) -> Tuple[int, int]:
    """
    New (total_deposits, yield_accrued) after paying out principal_out.

    Uses saturating subtraction on both counters to tolerate rounding drift.
    Counters are unchanged when total assets are zero.
    """
    if calculate_total_assets(total_deposits, yield_accrued) <= 0:
        return total_deposits, yield_accrued
    deposit_portion, yield_portion = split_withdrawal(
        principal_out, total_deposits, yield_accrued
    )
    return (
        saturating_sub(total_deposits, deposit_portion),
        saturating_sub(yield_accrued, yield_portion),
    )
