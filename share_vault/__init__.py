"""
share_vault - Share-Based Custody Vault

Users deposit a principal asset and receive share tokens whose backing
value grows as yield accrues. All accounting is integer fixed-point
(PRECISION = 10_000_000); no float ever touches a balance.

Usage:
    from share_vault import Env, AllowAll, TokenLedger, Vault, to_units

    env = Env(auth=AllowAll())
    asset = TokenLedger(env, "xlm")
    asset.initialize(admin="issuer", minter="issuer")
    shares = TokenLedger(env, "sxlm")
    shares.initialize(admin="admin", minter="vault")

    vault = Vault(env, "vault")
    vault.initialize("admin", asset, shares)

    asset.mint("alice", to_units("1000"))
    minted = vault.deposit("alice", to_units("1000"))   # 1:1 while supply is 0
    returned = vault.withdraw("alice", minted)
"""

# Core types
from .core import (
    # Constants
    PRECISION,
    SHARE_DECIMALS,
    MIN_AMOUNT,
    DEFAULT_MAX_DEPOSIT,
    DEFAULT_TOTAL_CAP,
    I128_MAX,
    I128_MIN,
    # Types
    Address,
    ReentrancyState,
    VaultEvent,
    VaultConfig,
    # Protocols
    Authorizer,
    ShareLedger,
    AssetCustody,
    YieldStrategy,
    # Exceptions
    VaultError,
    Unauthorized,
    AlreadyInitialized,
    NotInitialized,
    InvalidAmount,
    BelowMinimum,
    ExceedsMaximum,
    ExceedsCap,
    Overflow,
    DivisionError,
    InsufficientBalance,
    InsufficientAllowance,
    InsufficientShares,
    InsufficientLiquidity,
    Paused,
    ReentrantCall,
    DepositTooSmall,
    WithdrawalTooSmall,
    Slippage,
    # Arithmetic
    checked_add,
    checked_sub,
    checked_mul,
    checked_div,
    saturating_sub,
    # Display
    to_units,
    from_units,
    format_units,
)

# Pure accounting
from .accounting import (
    VaultSnapshot,
    calculate_total_assets,
    calculate_exchange_rate,
    calculate_shares_for_deposit,
    calculate_principal_for_shares,
    split_withdrawal,
    apply_withdrawal,
)

# Context
from .storage import Storage, InMemoryStorage
from .env import Env, EventLog, SignerSet, AllowAll

# Components
from .token import TokenLedger
from .vault import Vault

__all__ = [
    # Constants
    'PRECISION', 'SHARE_DECIMALS', 'MIN_AMOUNT', 'DEFAULT_MAX_DEPOSIT',
    'DEFAULT_TOTAL_CAP', 'I128_MAX', 'I128_MIN',
    # Types
    'Address', 'ReentrancyState', 'VaultEvent', 'VaultConfig',
    # Protocols
    'Authorizer', 'ShareLedger', 'AssetCustody', 'YieldStrategy',
    # Exceptions
    'VaultError', 'Unauthorized', 'AlreadyInitialized', 'NotInitialized',
    'InvalidAmount', 'BelowMinimum', 'ExceedsMaximum', 'ExceedsCap',
    'Overflow', 'DivisionError', 'InsufficientBalance', 'InsufficientAllowance',
    'InsufficientShares', 'InsufficientLiquidity', 'Paused', 'ReentrantCall',
    'DepositTooSmall', 'WithdrawalTooSmall', 'Slippage',
    # Arithmetic
    'checked_add', 'checked_sub', 'checked_mul', 'checked_div', 'saturating_sub',
    # Display
    'to_units', 'from_units', 'format_units',
    # Accounting
    'VaultSnapshot', 'calculate_total_assets', 'calculate_exchange_rate',
    'calculate_shares_for_deposit', 'calculate_principal_for_shares',
    'split_withdrawal', 'apply_withdrawal',
    # Context
    'Storage', 'InMemoryStorage', 'Env', 'EventLog', 'SignerSet', 'AllowAll',
    # Components
    'TokenLedger', 'Vault',
]

__version__ = '0.1.0'
