"""
conftest.py - Shared pytest fixtures for vault tests

Provides common fixtures used across unit, functional and conformance tests:
- Execution contexts (permissive and signer-checked)
- Deployed vaults (asset token, share token, vault) with funded users

Deployment and state-capture helpers live in tests/fakes.py so that
hypothesis tests, which cannot take function-scoped fixtures, share them.
"""

import pytest

from share_vault import Env, AllowAll, SignerSet, PRECISION

from tests.fakes import deploy, fund


STARTING_BALANCES = {
    "alice": 10_000 * PRECISION,
    "bob": 10_000 * PRECISION,
    "admin": 10_000 * PRECISION,
}


# =============================================================================
# CONTEXT FIXTURES
# =============================================================================

@pytest.fixture
def env():
    """Permissive context: every principal is authorized."""
    return Env(auth=AllowAll())


@pytest.fixture
def signed_env():
    """Strict context: only principals inside auth.signed() are authorized."""
    return Env(auth=SignerSet())


# =============================================================================
# VAULT FIXTURES
# =============================================================================

@pytest.fixture
def deployed(env):
    """(asset, shares, vault) on a permissive env, nobody funded."""
    return deploy(env)


@pytest.fixture
def funded(env, deployed):
    """Deployed vault with alice, bob and admin each holding 10,000 units."""
    asset, shares, vault = deployed
    fund(env, asset, STARTING_BALANCES)
    return asset, shares, vault


@pytest.fixture
def strict(signed_env):
    """Deployed and funded vault on a signer-checked env."""
    asset, shares, vault = deploy(signed_env)
    fund(signed_env, asset, STARTING_BALANCES)
    return signed_env, asset, shares, vault
