"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vault and its share
ledger. Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_share_conservation.py - Supply equals balances; custody covers assets
2. test_vault_atomicity.py - Failed calls leave no trace
3. test_rounding.py - Floor rounding never favors the caller

These tests use hypothesis for property-based testing.
"""
