"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ every move and record change of O is applied
        O fails ⟹ no move and no record change of O is applied

A failed asset transfer late in an operation discards the bookkeeping
computed before it.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from stakeledger import (
    Move, ExecuteResult, ErrorCode, RecordChange, StakePosition,
    LendingContract, build_transaction, compute_liquidation, POOL_WALLET,
)
from stakeledger.core import TABLE_STAKES

from tests.ledger_helpers import (
    make_ledger, fund, ledger_state, lending_operations, apply_operation,
    USERS, POOL_LIQUIDITY, START_HEIGHT,
)


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(st.lists(lending_operations(), max_size=25))
    @settings(max_examples=150, deadline=None)
    def test_rejected_operations_change_nothing(self, operations):
        """
        PROPERTY: Every rejected operation leaves the ledger exactly as it was.
        """
        ledger = make_ledger()
        fund(ledger, *USERS, amount=3_000_000)
        fund(ledger, POOL_WALLET, amount=POOL_LIQUIDITY)
        contract = LendingContract(ledger)

        for operation in operations:
            before = ledger_state(ledger)
            logged = len(ledger.transaction_log)
            result = apply_operation(contract, operation)
            if result is not None and not result.ok:
                assert ledger_state(ledger) == before
                assert len(ledger.transaction_log) == logged

    @given(st.integers(min_value=2, max_value=10))
    @settings(max_examples=30)
    def test_multi_move_all_or_nothing(self, num_moves):
        """
        PROPERTY: A transaction with N moves either applies all N or none.
        """
        ledger = make_ledger()
        wallets = [f"wallet_{i}" for i in range(num_moves + 1)]
        ledger.set_balance(wallets[0], 100)
        # the last hop asks for more than was passed along
        moves = [Move(100, wallets[i], wallets[i + 1], f"hop_{i}") for i in range(num_moves - 1)]
        moves.append(Move(101, wallets[-2], wallets[-1], "overdraw"))

        assert ledger.execute(build_transaction(ledger, moves)) == ExecuteResult.REJECTED
        assert ledger.get_balance(wallets[0]) == 100
        for wallet in wallets[1:]:
            assert ledger.get_balance(wallet) == 0


class TestAtomicityExamples:
    """Explicit atomicity examples."""

    def test_failed_transfer_discards_record_changes(self):
        ledger = make_ledger()
        stake = StakePosition(1_000_000, START_HEIGHT, START_HEIGHT)
        pending = build_transaction(
            ledger,
            [Move(1_000_000, "alice", POOL_WALLET, "stake")],
            [RecordChange(TABLE_STAKES, "alice", None, stake)],
        )

        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.get_stake("alice") is None

    def test_failed_liquidation_keeps_borrower_whole(self):
        ledger = make_ledger()
        fund(ledger, "alice")
        contract = LendingContract(ledger)
        contract.stake("alice", 3_000_000)
        contract.take_loan("alice", 2_000_000)
        ledger.advance_height(START_HEIGHT + 1)
        before = ledger_state(ledger)

        pending = compute_liquidation(ledger, "bob", "alice")
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.last_rejection.code == ErrorCode.INSUFFICIENT_FUNDS
        assert ledger_state(ledger) == before

    def test_stale_change_discards_valid_moves(self):
        ledger = make_ledger()
        fund(ledger, "alice")
        stale = StakePosition(1, 0, 0)
        pending = build_transaction(
            ledger,
            [Move(10, "alice", "bob", "payment")],
            [RecordChange(TABLE_STAKES, "alice", stale, None)],
        )

        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.get_balance("bob") == 0

    @pytest.mark.parametrize("amount", [2_000_000, 2_000_063])
    def test_repay_rejection_keeps_interest_unsettled(self, amount):
        ledger = make_ledger()
        fund(ledger, "alice")
        contract = LendingContract(ledger)
        contract.stake("alice", 3_000_000)
        contract.take_loan("alice", 2_000_000)
        ledger.advance_height(START_HEIGHT + 1)
        ledger.set_balance("alice", 0)

        assert contract.repay_loan("alice", amount).error == ErrorCode.INSUFFICIENT_FUNDS
        assert contract.get_loan("alice").last_accrual_height == START_HEIGHT
        assert contract.calculate_loan_interest("alice") == 63
