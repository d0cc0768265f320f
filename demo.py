#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Share Vault Step by Step

A pedagogical walkthrough of the share-based custody vault. Each step
builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation  - Fixed-point units, deployment, the first deposit
  4-6:  Yield       - Adding yield, buying in at the new rate, previews
  7-9:  Safety      - Rejections, slippage bounds, reentrancy
  10:   Finale      - Everyone exits; invariants still hold

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from decimal import Decimal
import sys

from share_vault import (
    # Context
    Env, SignerSet,
    # Components
    TokenLedger, Vault, VaultConfig,
    # Constants
    PRECISION, MIN_AMOUNT, ReentrancyState,
    # Display
    to_units, format_units,
    # Errors
    VaultError, InsufficientShares, Slippage, ReentrantCall, Unauthorized,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Initial funding (whole units)
    alice_initial: Decimal = Decimal("10000")
    bob_initial: Decimal = Decimal("10000")
    admin_initial: Decimal = Decimal("1000")

    # Flows (whole units)
    alice_deposit: Decimal = Decimal("1000")
    bob_deposit: Decimal = Decimal("500")
    yield_amount: Decimal = Decimal("150")
    late_deposit: Decimal = Decimal("1100")

    # Limits
    max_deposit: Decimal = Decimal("5000")
    total_cap: Decimal = Decimal("50000")

    # Verbose env prints every committed event
    verbose: bool = True


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_vault(vault: Vault, users=("alice", "bob")):
    """Print the counters and holdings that matter."""
    shares = vault.share_token()
    asset = vault.asset()
    print(f"  total_deposits : {format_units(vault.total_deposits())}")
    print(f"  yield_accrued  : {format_units(vault.yield_accrued())}")
    print(f"  total_supply   : {format_units(shares.total_supply())}")
    print(f"  exchange_rate  : {vault.exchange_rate():,}  (PRECISION = {PRECISION:,})")
    print(f"  custody        : {format_units(asset.balance(vault.address))}")
    for user in users:
        print(f"  {user:<6} shares={format_units(shares.balance(user))}"
              f"  principal={format_units(asset.balance(user))}")


class Demo:
    """Holds the deployment shared by every step."""

    def __init__(self):
        self.env = Env(auth=SignerSet(), verbose=CONFIG.verbose)
        self.asset = TokenLedger(self.env, "xlm")
        self.shares = TokenLedger(self.env, "sxlm")
        self.vault = Vault(self.env, "vault")

    def signed(self, *principals):
        return self.env.auth.signed(*principals)


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_fixed_point():
    """Understand the integer fixed-point representation."""
    step_header(1, "Fixed-Point Amounts",
        "Every amount is an integer count of 10^-7 units. No floats, ever.")

    print(f"""
    PRECISION   = {PRECISION:,}   (7 decimal places)
    MIN_AMOUNT  = {MIN_AMOUNT:,}    (0.1 of a unit)

>>> to_units("1000")
{to_units("1000"):,}
>>> to_units("0.1")
{to_units("0.1"):,}
>>> format_units(12_345_678)
'{format_units(12_345_678)}'
""")

    section_header("Key Insight")
    print("""
    Division always floors. Rounding therefore always favors the vault,
    never the caller. You will see this again in step 10.
    """)


def step_02_deploy(demo: Demo):
    """Deploy the asset, the share token and the vault."""
    step_header(2, "Deployment",
        "Bind the principal asset, the share token and the vault on one Env.")

    print("""
>>> env = Env(auth=SignerSet(), verbose=True)
>>> asset.initialize(admin="issuer", minter="issuer", name="Lumens", symbol="XLM")
>>> shares.initialize(admin="admin", minter="vault")   # only the vault mints shares
>>> vault.initialize("admin", asset, shares, VaultConfig(...))
""")

    config = VaultConfig(
        max_deposit=to_units(CONFIG.max_deposit),
        total_cap=to_units(CONFIG.total_cap),
    )
    with demo.signed("issuer", "admin"):
        demo.asset.initialize(admin="issuer", minter="issuer", name="Lumens", symbol="XLM")
        demo.shares.initialize(admin="admin", minter=demo.vault.address)
        demo.vault.initialize("admin", demo.asset, demo.shares, config)

        demo.asset.mint("alice", to_units(CONFIG.alice_initial))
        demo.asset.mint("bob", to_units(CONFIG.bob_initial))
        demo.asset.mint("admin", to_units(CONFIG.admin_initial))

    section_header("Fresh Vault")
    show_vault(demo.vault)
    print("\n    No shares exist yet, so the rate is exactly PRECISION (1:1).")


def step_03_first_deposit(demo: Demo):
    """Deposit principal and receive shares."""
    step_header(3, "First Deposits",
        "With no yield yet, deposits mint shares 1:1.")

    print('>>> with env.auth.signed("alice"): vault.deposit("alice", to_units("1000"))')
    print('>>> with env.auth.signed("bob"):   vault.deposit("bob", to_units("500"))\n')

    with demo.signed("alice"):
        minted = demo.vault.deposit("alice", to_units(CONFIG.alice_deposit))
    print(f"\nalice received {format_units(minted)} shares")

    with demo.signed("bob"):
        minted = demo.vault.deposit("bob", to_units(CONFIG.bob_deposit))
    print(f"bob received {format_units(minted)} shares")

    section_header("Vault State")
    show_vault(demo.vault)


# ============================================================================
# PHASE 2: YIELD (Steps 4-6)
# ============================================================================

def step_04_add_yield(demo: Demo):
    """Credit realized returns and watch the rate move."""
    step_header(4, "Adding Yield",
        "add_yield() raises total assets without minting shares.")

    print('>>> with env.auth.signed("admin"): vault.add_yield(to_units("150"))\n')
    with demo.signed("admin"):
        demo.vault.add_yield(to_units(CONFIG.yield_amount))

    section_header("Vault State")
    show_vault(demo.vault)
    print("""
    exchange_rate = total_assets * PRECISION / total_supply
                  = 1,650 * PRECISION / 1,500  = 11,000,000
    """)


def step_05_late_deposit(demo: Demo):
    """A later depositor buys in at the new rate."""
    step_header(5, "Buying In After Yield",
        "New depositors pay the current rate, so earlier holders are not diluted.")

    amount = to_units(CONFIG.late_deposit)
    with demo.signed("bob"):
        minted = demo.vault.deposit("bob", amount)
    print(f"\nbob deposited {format_units(amount)} and received {format_units(minted)} shares")
    print(f"exchange rate is still {demo.vault.exchange_rate():,}")


def step_06_previews(demo: Demo):
    """Quote deposits and withdrawals without changing anything."""
    step_header(6, "Previews",
        "preview_deposit / preview_withdraw compute results and mutate nothing.")

    alice_shares = demo.shares.balance("alice")
    print(f">>> vault.preview_withdraw({alice_shares:,})")
    print(format_units(demo.vault.preview_withdraw(alice_shares)))
    print(">>> vault.preview_deposit(to_units('100'))")
    print(format_units(demo.vault.preview_deposit(to_units("100"))))


# ============================================================================
# PHASE 3: SAFETY (Steps 7-9)
# ============================================================================

def step_07_rejection(demo: Demo):
    """A failed call leaves every balance and counter untouched."""
    step_header(7, "Rejected Calls",
        "Errors abort the whole call. State is exactly as before.")

    before = demo.vault.total_deposits(), demo.shares.balance("alice")
    too_many = demo.shares.balance("alice") + 1
    print(f'>>> vault.withdraw("alice", {too_many:,})')
    with demo.signed("alice"):
        try:
            demo.vault.withdraw("alice", too_many)
        except InsufficientShares as exc:
            print(f"InsufficientShares: {exc}")

    after = demo.vault.total_deposits(), demo.shares.balance("alice")
    print(f"\nState unchanged: {before == after}")

    section_header("Authorization")
    print('>>> vault.deposit("alice", ...)   # signed by bob only')
    with demo.signed("bob"):
        try:
            demo.vault.deposit("alice", to_units("10"))
        except Unauthorized as exc:
            print(f"Unauthorized: {exc}")


def step_08_slippage(demo: Demo):
    """Bound the result of a call before anything moves."""
    step_header(8, "Slippage Protection",
        "deposit_with_min_out fails before any transfer if the result is too small.")

    amount = to_units("110")
    quote = demo.vault.preview_deposit(amount)
    print(f"Quoted shares for 110: {format_units(quote)}")
    print(f">>> vault.deposit_with_min_out('alice', {amount:,}, {quote + 1:,})")
    with demo.signed("alice"):
        try:
            demo.vault.deposit_with_min_out("alice", amount, quote + 1)
        except Slippage as exc:
            print(f"Slippage: expected={exc.expected:,} actual={exc.actual:,}")
        print(f">>> vault.deposit_with_min_out('alice', {amount:,}, {quote:,})")
        demo.vault.deposit_with_min_out("alice", amount, quote)


def step_09_reentrancy(demo: Demo):
    """A nested deposit/withdraw is rejected."""
    step_header(9, "Reentrancy Guard",
        "A call back into the vault while a deposit is in flight fails ReentrantCall.")

    class HostileAsset:
        """Asset custody that calls back into the vault during transfer."""

        def __init__(self, inner, vault):
            self.inner = inner
            self.vault = vault

        def transfer(self, from_, to, amount):
            print(f"  [hostile] lock is {self.vault.reentrancy_state().name}; re-entering...")
            self.vault.withdraw(from_, MIN_AMOUNT)

        def balance(self, account):
            return self.inner.balance(account)

    env = Env(auth=SignerSet())
    shares = TokenLedger(env, "sxlm")
    vault = Vault(env, "vault")
    with env.auth.signed("admin"):
        shares.initialize(admin="admin", minter="vault")
        vault.initialize("admin", HostileAsset(demo.asset, vault), shares)

    with env.auth.signed("alice"):
        try:
            vault.deposit("alice", to_units("10"))
        except ReentrantCall as exc:
            print(f"ReentrantCall: {exc}")
    state = vault.reentrancy_state()
    print(f"\nLock after the failed call: {state.name}")
    assert state is ReentrancyState.UNLOCKED


# ============================================================================
# PHASE 4: FINALE (Step 10)
# ============================================================================

def step_10_exit(demo: Demo):
    """Everyone redeems; the invariants still hold."""
    step_header(10, "Everyone Exits",
        "Redeem every share and check conservation and custody coverage.")

    for user in ("alice", "bob"):
        held = demo.shares.balance(user)
        with demo.signed(user):
            returned = demo.vault.withdraw(user, held)
        print(f"{user} redeemed {format_units(held)} shares for {format_units(returned)}")

    section_header("Final State")
    show_vault(demo.vault)

    report = demo.vault.verify_invariants()
    print(f"\nverify_invariants(): valid={report['valid']}")
    print(f"custody left behind by floor rounding: "
          f"{format_units(report['custody_balance'] - report['total_assets'])}")
    print(f"committed events: {len(demo.env.events)}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       SHARE VAULT - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    step_01_fixed_point()
    wait_for_enter()

    demo = Demo()
    steps = [
        step_02_deploy, step_03_first_deposit,
        step_04_add_yield, step_05_late_deposit, step_06_previews,
        step_07_rejection, step_08_slippage, step_09_reentrancy,
        step_10_exit,
    ]
    try:
        for step in steps:
            step(demo)
            wait_for_enter()
    except VaultError as exc:
        print(f"\n✗ Tutorial stopped: {type(exc).__name__}: {exc}")
        sys.exit(1)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:
      - Amounts are integers scaled by PRECISION
      - Shares are priced from live state on every call
      - Yield raises the rate; late depositors buy in at it
      - Failed calls change nothing; slippage bounds fail before transfers
      - Nested deposit/withdraw calls are rejected

    Next steps:
      - See share_vault/vault.py for the engine
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
