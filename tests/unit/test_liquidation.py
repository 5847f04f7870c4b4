"""
test_liquidation.py - Unit tests for the liquidation engine

Tests:
- Collateral ratio calculation and the liquidatable predicate
- compute_liquidation moves and record removal
- Liquidation through the contract: payouts, rejections and atomicity
"""

import pytest

from stakeledger import (
    calculate_collateral_ratio, get_collateral_ratio, is_liquidatable,
    compute_liquidation,
    StakePosition, LoanPosition, AccruedInterest, GlobalState, ErrorCode, POOL_WALLET,
    NotAuthorized, LoanNotFound, LiquidationNotAllowed,
)
from stakeledger.core import TABLE_STAKES, TABLE_LOANS, TABLE_INTEREST, TABLE_GLOBALS
from tests.fake_view import FakeView
from tests.ledger_helpers import START_HEIGHT, USER_FUNDS, POOL_LIQUIDITY


def underwater_view(height=101, paused=False):
    return FakeView(
        stakes={"alice": StakePosition(3_000_000, 100, 100)},
        loans={"alice": LoanPosition(2_000_000, 3_000_000, 100, 100)},
        interest={"alice": AccruedInterest(0, 0)},
        height=height,
        state=GlobalState(3_000_000, 2_000_000, 500, 1000, paused, "admin"),
    )


class TestCollateralRatio:

    @pytest.mark.parametrize("collateral,debt,expected", [
        (3_000_000, 2_000_000, 150),
        (3_000_000, 2_000_063, 149),
        (1_000_000, 1_000_000, 100),
        (1_000_000, 0, 0),
        (1_000_000, -5, 0),
    ])
    def test_calculate(self, collateral, debt, expected):
        assert calculate_collateral_ratio(collateral, debt) == expected

    def test_no_loan_has_no_ratio(self):
        assert get_collateral_ratio(FakeView(), "alice") is None


class TestIsLiquidatable:

    def test_exactly_at_threshold_is_safe(self):
        assert not is_liquidatable(underwater_view(height=100), "alice")

    def test_one_tick_of_interest_tips_it_over(self):
        assert get_collateral_ratio(underwater_view(), "alice") == 149
        assert is_liquidatable(underwater_view(), "alice")

    def test_no_loan(self):
        assert not is_liquidatable(FakeView(), "alice")

    def test_zero_debt_is_never_liquidatable(self):
        view = FakeView(
            loans={"alice": LoanPosition(0, 0, 100, 100)},
            height=200,
        )
        assert not is_liquidatable(view, "alice")


class TestComputeLiquidation:

    def test_moves_in_order(self):
        pending = compute_liquidation(underwater_view(), "bob", "alice")

        repay, seize = pending.moves
        assert (repay.quantity, repay.source, repay.dest) == (2_000_063, "bob", POOL_WALLET)
        assert (seize.quantity, seize.source, seize.dest) == (3_000_000, POOL_WALLET, "bob")

    def test_removes_all_borrower_records(self):
        pending = compute_liquidation(underwater_view(), "bob", "alice")
        by_table = {c.table: c for c in pending.changes}

        assert by_table[TABLE_STAKES].new is None
        assert by_table[TABLE_LOANS].new is None
        assert by_table[TABLE_INTEREST].new is None
        totals = by_table[TABLE_GLOBALS].new
        assert (totals.total_staked, totals.total_borrowed) == (0, 0)

    def test_origin_names_borrower(self):
        pending = compute_liquidation(underwater_view(), "bob", "alice")
        assert pending.origin.source_id == "bob"
        assert pending.origin.subject == "alice"

    def test_healthy_loan(self):
        with pytest.raises(LiquidationNotAllowed):
            compute_liquidation(underwater_view(height=100), "bob", "alice")

    def test_no_loan(self):
        with pytest.raises(LoanNotFound):
            compute_liquidation(FakeView(), "bob", "alice")

    def test_paused(self):
        with pytest.raises(NotAuthorized):
            compute_liquidation(underwater_view(paused=True), "bob", "alice")


class TestLiquidationThroughContract:

    def test_liquidator_keeps_the_spread(self, borrowed_contract):
        contract = borrowed_contract
        assert not contract.is_liquidatable("alice")
        contract.ledger.advance_height(START_HEIGHT + 1)
        assert contract.is_liquidatable("alice")

        result = contract.liquidate("bob", "alice")

        assert result.ok
        assert contract.get_stake("alice") is None
        assert contract.get_loan("alice") is None
        assert contract.get_accumulated_interest("alice") == AccruedInterest(0, 0)
        assert "alice" not in contract.ledger.interest
        assert contract.get_balance("bob") == USER_FUNDS - 2_000_063 + 3_000_000
        assert contract.get_pool_balance() == POOL_LIQUIDITY + 63
        stats = contract.get_contract_stats()
        assert (stats['total_staked'], stats['total_borrowed']) == (0, 0)

    def test_self_liquidation_allowed(self, borrowed_contract):
        contract = borrowed_contract
        contract.ledger.advance_height(START_HEIGHT + 1)
        assert contract.liquidate("alice", "alice").ok

    def test_healthy_position(self, borrowed_contract):
        result = borrowed_contract.liquidate("bob", "alice")
        assert result.error == ErrorCode.LIQUIDATION_NOT_ALLOWED

    def test_liquidator_must_cover_debt_up_front(self, borrowed_contract):
        """The seize credit cannot fund the repayment debit that precedes it."""
        contract = borrowed_contract
        contract.ledger.advance_height(START_HEIGHT + 1)
        contract.ledger.set_balance("dave", 2_000_000)

        result = contract.liquidate("dave", "alice")

        assert result.error == ErrorCode.INSUFFICIENT_FUNDS
        assert contract.get_loan("alice") is not None
        assert contract.get_stake("alice") is not None
        assert contract.get_balance("dave") == 2_000_000

    def test_stake_top_up_after_loan_leaves_totals_drift(self, borrowed_contract):
        """
        Liquidation removes the collateral snapshot from total_staked but
        deletes the whole stake record.
        """
        contract = borrowed_contract
        assert contract.stake("alice", 1_000_000).ok
        contract.ledger.advance_height(START_HEIGHT + 1)

        assert contract.liquidate("bob", "alice").ok

        audit = contract.ledger.verify_invariants()
        assert audit['total_staked'] == 1_000_000
        assert audit['sum_staked'] == 0
        assert not audit['valid']
