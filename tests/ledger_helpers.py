"""
ledger_helpers.py - Test helpers shared by fixtures and test modules

Ledger construction with the test defaults, funding through issuance,
and state comparison.
"""

from typing import Any, Dict, Optional

from hypothesis import strategies as st

from stakeledger import Ledger, OperationResult, PoolConfig


OWNER = "admin"
START_HEIGHT = 100
USER_FUNDS = 10_000_000
POOL_LIQUIDITY = 10_000_000


def make_ledger(name: str = "test", **config_overrides) -> Ledger:
    """Quiet ledger owned by OWNER, starting at START_HEIGHT."""
    config = PoolConfig(owner=OWNER, **config_overrides)
    return Ledger(name, config, initial_height=START_HEIGHT, verbose=False, test_mode=True)


def fund(ledger: Ledger, *wallets: str, amount: int = USER_FUNDS) -> None:
    """Issue ``amount`` to each wallet through the audit trail."""
    for wallet in wallets:
        ledger.issue(wallet, amount)


def ledger_state(ledger: Ledger) -> Dict[str, Any]:
    """Everything that defines a ledger's state, as comparable plain data."""
    return {
        "height": ledger.block_height,
        "stakes": dict(ledger.stakes),
        "loans": dict(ledger.loans),
        "interest": dict(ledger.interest),
        "globals": ledger.get_global_state(),
        "balances": {w: b for w, b in ledger.balances.items() if b != 0},
    }


def ledger_state_equals(ledger1: Ledger, ledger2: Ledger) -> bool:
    """Check if two ledgers have equivalent state (records and balances)."""
    return ledger_state(ledger1) == ledger_state(ledger2)


def assert_invariants(ledger: Ledger) -> None:
    result = ledger.verify_invariants()
    assert result['valid'], result['violations']
    conservation = ledger.verify_conservation()
    assert conservation['valid'], conservation


# =============================================================================
# OPERATION SEQUENCES FOR PROPERTY-BASED TESTS
# =============================================================================

USERS = ("alice", "bob", "carol")


def lending_operations(include_liquidation: bool = True):
    """
    Strategy producing (operation, caller, argument) tuples.

    "advance" moves the height forward by ``argument`` ticks; every other
    operation is a LendingContract method name.
    """
    users = st.sampled_from(USERS)
    amounts = st.integers(min_value=-10, max_value=4_000_000)
    rates = st.integers(min_value=-5, max_value=2_500)
    choices = [
        st.tuples(st.just("stake"), users, amounts),
        st.tuples(st.just("withdraw_stake"), users, amounts),
        st.tuples(st.just("take_loan"), users, amounts),
        st.tuples(st.just("repay_loan"), users, amounts),
        st.tuples(st.just("advance"), st.just(""), st.integers(min_value=0, max_value=50_000)),
        st.tuples(st.just("set_stake_interest_rate"), st.just(OWNER), rates),
        st.tuples(st.just("set_loan_interest_rate"), st.just(OWNER), rates),
    ]
    if include_liquidation:
        choices.append(st.tuples(st.just("liquidate"), users, users))
    return st.one_of(*choices)


def apply_operation(contract, operation) -> Optional[OperationResult]:
    name, caller, argument = operation
    if name == "advance":
        contract.ledger.advance_height(contract.ledger.block_height + argument)
        return None
    return getattr(contract, name)(caller, argument)
