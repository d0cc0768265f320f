"""
Functional Tests for Vault Scenarios

End-to-end flows through the asset token, share token and vault on one
Env, checked against exact fixed-point expectations:
- Fresh vault prices at par
- First deposit mints 1:1
- Multiple depositors without yield
- Yield raises the rate and later depositors buy in at it
- Over-withdrawal leaves every balance and counter untouched
- Delegated share transfer limited by allowance
- Several depositors exiting after yield share it pro rata
"""

import pytest

from share_vault import (
    PRECISION, InsufficientShares, InsufficientAllowance,
)

from tests.fakes import snapshot_state, vault_state


P = PRECISION
USERS = ("alice", "bob", "admin")


class TestReferenceScenarios:
    """Reference flows with hand-computed results."""

    def test_fresh_vault_rate_is_par(self, deployed):
        _, shares, vault = deployed
        assert shares.total_supply() == 0
        assert vault.exchange_rate() == 10_000_000

    def test_first_deposit_mints_one_to_one(self, funded):
        _, shares, vault = funded
        assert vault.deposit("alice", 1_000 * P) == 1_000 * P
        assert shares.balance("alice") == 1_000 * P
        assert vault.total_deposits() == 1_000 * P

    def test_two_depositors_without_yield(self, funded):
        _, shares, vault = funded
        vault.deposit("alice", 1_000 * P)
        vault.deposit("bob", 500 * P)
        assert shares.balance("alice") == 1_000 * P
        assert shares.balance("bob") == 500 * P
        assert shares.total_supply() == 1_500 * P
        assert vault.total_deposits() == 1_500 * P

    def test_yield_then_deposit_at_new_rate(self, funded):
        _, shares, vault = funded
        vault.deposit("alice", 1_000 * P)
        vault.deposit("bob", 500 * P)
        assert vault.total_assets() == 1_500 * P

        vault.add_yield(150 * P)
        assert vault.exchange_rate() == 11_000_000

        minted = vault.deposit("bob", 1_100 * P)
        assert minted == 1_000 * P
        assert shares.balance("bob") == 1_500 * P
        assert shares.total_supply() == 2_500 * P

    def test_over_withdraw_leaves_state_unchanged(self, env, funded):
        _, _, vault = funded
        vault.deposit("alice", 1_000 * P)
        vault.deposit("bob", 500 * P)
        vault.add_yield(150 * P)

        stored = snapshot_state(env)
        summary = vault_state(vault, USERS)
        events = len(env.events)

        with pytest.raises(InsufficientShares):
            vault.withdraw("bob", 500 * P + 1)

        assert snapshot_state(env) == stored
        assert vault_state(vault, USERS) == summary
        assert len(env.events) == events

    def test_transfer_from_beyond_allowance(self, funded):
        _, shares, vault = funded
        vault.deposit("alice", 1_000 * P)
        shares.approve("alice", "bob", 100 * P)

        with pytest.raises(InsufficientAllowance):
            shares.transfer_from("bob", "alice", "bob", 200 * P)

        assert shares.allowance("alice", "bob") == 100 * P
        assert shares.balance("alice") == 1_000 * P
        assert shares.balance("bob") == 0


class TestMultiUserFlows:

    def test_yield_shared_pro_rata(self, funded):
        asset, shares, vault = funded
        vault.deposit("alice", 1_000 * P)
        vault.deposit("bob", 500 * P)
        vault.add_yield(150 * P)

        alice_out = vault.withdraw("alice", shares.balance("alice"))
        bob_out = vault.withdraw("bob", shares.balance("bob"))

        assert alice_out == 1_100 * P
        assert bob_out == 550 * P
        assert shares.total_supply() == 0
        assert vault.total_assets() == 0
        assert asset.balance("vault") == 0
        assert vault.verify_invariants()['valid']

    def test_late_depositor_does_not_dilute(self, funded):
        _, shares, vault = funded
        vault.deposit("alice", 1_000 * P)
        vault.add_yield(100 * P)
        vault.deposit("bob", 1_100 * P)

        # alice's claim is unchanged by bob's entry
        assert vault.preview_withdraw(shares.balance("alice")) == 1_100 * P
        assert vault.preview_withdraw(shares.balance("bob")) == 1_100 * P

    def test_share_transfer_moves_claim(self, funded):
        asset, shares, vault = funded
        vault.deposit("alice", 1_000 * P)
        vault.add_yield(100 * P)
        shares.transfer("alice", "carol", 500 * P)

        assert vault.withdraw("carol", 500 * P) == 550 * P
        assert asset.balance("carol") == 550 * P
        assert vault.withdraw("alice", 500 * P) == 550 * P

    def test_delegated_burn_then_withdraw_remaining(self, funded):
        asset, shares, vault = funded
        vault.deposit("alice", 1_000 * P)
        shares.approve("alice", "bob", 100 * P)
        shares.burn_from("bob", "alice", 100 * P)

        # Burned shares forfeit their claim to the remaining holders
        assert shares.total_supply() == 900 * P
        assert vault.total_assets() == 1_000 * P
        assert vault.exchange_rate() == 11_111_111

        # Rate truncation leaves 100 units of dust in custody
        assert vault.withdraw("alice", 900 * P) == 1_000 * P - 100
        assert asset.balance("alice") == 10_000 * P - 100
        assert asset.balance("vault") == 100
        assert vault.verify_invariants()['valid']

    def test_event_trail(self, env, funded):
        _, _, vault = funded
        delivered = []
        env.events.subscribe(delivered.append)

        vault.deposit("alice", 100 * P)
        vault.add_yield(10 * P)
        vault.withdraw("alice", 50 * P)

        vault_kinds = [e.kind for e in delivered if e.contract == "vault"]
        assert vault_kinds == ["deposit", "yield_added", "withdraw"]
        sequences = [e.sequence for e in delivered]
        assert sequences == sorted(sequences)
