"""
conftest.py - Shared pytest fixtures for stakeledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Basic ledgers (empty, funded)
- Contract facades bound to a funded ledger
- Positions already opened (staked, borrowed)
- Helper functions live in tests/ledger_helpers.py
"""

import pytest

from stakeledger import LendingContract, POOL_WALLET

from tests.ledger_helpers import make_ledger, fund, POOL_LIQUIDITY


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no funds."""
    return make_ledger()


@pytest.fixture
def funded_ledger():
    """Ledger with alice, bob and carol funded and pool liquidity issued."""
    ledger = make_ledger()
    fund(ledger, "alice", "bob", "carol")
    fund(ledger, POOL_WALLET, amount=POOL_LIQUIDITY)
    return ledger


@pytest.fixture
def contract(funded_ledger):
    """LendingContract over the funded ledger."""
    return LendingContract(funded_ledger)


# =============================================================================
# POSITION FIXTURES
# =============================================================================

@pytest.fixture
def staked_contract(contract):
    """alice has staked 3,000,000 at START_HEIGHT."""
    assert contract.stake("alice", 3_000_000).ok
    return contract


@pytest.fixture
def borrowed_contract(staked_contract):
    """alice has borrowed the maximum 2,000,000 against a 3,000,000 stake."""
    assert staked_contract.take_loan("alice", 2_000_000).ok
    return staked_contract
