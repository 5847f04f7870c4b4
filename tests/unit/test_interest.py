"""
test_interest.py - Unit tests for interest accrual and settlement

Tests:
- calculate_interest formula, truncation and input validation
- Live stake and loan interest read from a view
- settle_interest record changes
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from stakeledger import (
    calculate_interest, calculate_stake_interest, calculate_loan_interest,
    settle_interest, RecordChange, StakePosition, LoanPosition, AccruedInterest,
    GlobalState, SECONDS_PER_YEAR,
)
from stakeledger.core import TABLE_STAKES, TABLE_LOANS, TABLE_INTEREST
from tests.fake_view import FakeView


class TestCalculateInterest:

    def test_one_year_at_500_bps(self):
        assert calculate_interest(1_000_000, 500, SECONDS_PER_YEAR) == 500_000_000

    def test_truncates(self):
        # 1_000_000 * 500 / 31_536_000 = 15.85...
        assert calculate_interest(1_000_000, 500, 1) == 15
        # 2_000_000 * 1000 / 31_536_000 = 63.42...
        assert calculate_interest(2_000_000, 1000, 1) == 63

    def test_interest_is_not_linear_in_ticks(self):
        # floor is taken once over the whole interval
        assert calculate_interest(1_000_000, 500, 2) == 31
        assert calculate_interest(1_000_000, 500, 50) == 792

    @pytest.mark.parametrize("principal,rate,elapsed", [
        (0, 500, 100),
        (1_000_000, 0, 100),
        (1_000_000, 500, 0),
        (-1_000_000, 500, 100),
    ])
    def test_zero_cases(self, principal, rate, elapsed):
        assert calculate_interest(principal, rate, elapsed) == 0

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            calculate_interest(1_000_000, -1, 10)

    def test_negative_elapsed_rejected(self):
        with pytest.raises(ValueError):
            calculate_interest(1_000_000, 500, -1)

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            calculate_interest(1_000_000.0, 500, 10)

    @given(
        st.integers(min_value=0, max_value=10**15),
        st.integers(min_value=0, max_value=2000),
        st.integers(min_value=0, max_value=10**9),
    )
    @settings(max_examples=200)
    def test_matches_floor_formula(self, principal, rate, elapsed):
        assert calculate_interest(principal, rate, elapsed) == principal * rate * elapsed // SECONDS_PER_YEAR

    @given(
        st.integers(min_value=1, max_value=10**12),
        st.integers(min_value=0, max_value=2000),
        st.integers(min_value=0, max_value=10**7),
        st.integers(min_value=0, max_value=10**7),
    )
    @settings(max_examples=200)
    def test_split_interval_never_earns_more(self, principal, rate, t1, t2):
        """Settling mid-way loses at most one unit of truncation dust."""
        whole = calculate_interest(principal, rate, t1 + t2)
        split = calculate_interest(principal, rate, t1) + calculate_interest(principal, rate, t2)
        assert whole - 1 <= split <= whole


class TestLiveInterest:

    def test_stake_interest_uses_global_rate(self):
        state = GlobalState(1_000_000, 0, 1000, 1000, False, "admin")
        view = FakeView(
            stakes={"alice": StakePosition(1_000_000, 100, 100)},
            height=101,
            state=state,
        )
        assert calculate_stake_interest(view, "alice") == 31

    def test_loan_interest_from_last_checkpoint(self):
        view = FakeView(
            loans={"alice": LoanPosition(2_000_000, 3_000_000, 100, 150)},
            height=151,
        )
        assert calculate_loan_interest(view, "alice") == 63

    def test_absent_positions_accrue_nothing(self):
        view = FakeView(height=10_000)
        assert calculate_stake_interest(view, "nobody") == 0
        assert calculate_loan_interest(view, "nobody") == 0


class TestSettleInterest:

    def test_first_settlement_materializes_zero_record(self):
        view = FakeView(height=100)
        settlement = settle_interest(view, "alice")
        assert settlement.stake is None
        assert settlement.loan is None
        assert settlement.accrued == AccruedInterest(0, 0)
        assert settlement.changes == [
            RecordChange(TABLE_INTEREST, "alice", None, AccruedInterest(0, 0))
        ]

    def test_settlement_folds_interest_and_advances_checkpoints(self):
        view = FakeView(
            stakes={"alice": StakePosition(3_000_000, 100, 100)},
            loans={"alice": LoanPosition(2_000_000, 3_000_000, 100, 100)},
            interest={"alice": AccruedInterest(5, 7)},
            height=101,
        )
        settlement = settle_interest(view, "alice")

        assert settlement.stake == StakePosition(3_000_000, 100, 101)
        assert settlement.loan == LoanPosition(2_000_000, 3_000_000, 100, 101)
        assert settlement.accrued == AccruedInterest(5 + 47, 7 + 63)
        assert [c.table for c in settlement.changes] == [TABLE_STAKES, TABLE_LOANS, TABLE_INTEREST]
        assert settlement.changes[-1].old == AccruedInterest(5, 7)

    def test_settlement_does_not_touch_principal(self):
        view = FakeView(stakes={"alice": StakePosition(1_000_000, 0, 0)}, height=SECONDS_PER_YEAR)
        settlement = settle_interest(view, "alice")
        assert settlement.stake.amount == 1_000_000
        assert settlement.accrued.stake_interest == 500_000_000
