"""
interest.py - Interest Accrual Engine

Simple interest per settlement interval, shared by the stake and loan ledgers:

    interest = floor(principal * rate_bps * elapsed_ticks / SECONDS_PER_YEAR)

Settlement folds the interest accruing live on a user's open positions
into the durable AccruedInterest record and moves each position's
accrual checkpoint to the current height. Interest is never added back
into principal, so settling more often only compounds at mutation
granularity.

The divisor omits a basis-point normalization (/ 10_000); amounts come
out 10,000x larger than an "N% APY" reading of the rate would suggest.
The formula is kept as written.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import List, Optional

from .core import (
    LedgerView, StakePosition, LoanPosition, AccruedInterest, RecordChange,
    SECONDS_PER_YEAR, TABLE_STAKES, TABLE_LOANS, TABLE_INTEREST,
    require_int,
)


# ============================================================================
# PURE CALCULATION
# ============================================================================

def calculate_interest(principal: int, rate_bps: int, elapsed_ticks: int) -> int:
    """
    Interest accrued on ``principal`` over ``elapsed_ticks`` at ``rate_bps``.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Division truncates; sub-unit dust is lost to the position holder.
    A principal at or below zero accrues nothing.

    Raises:
        TypeError: if any input is not an int.
        ValueError: if rate_bps or elapsed_ticks is negative.

    Example:
        calculate_interest(1_000_000, 500, 31_536_000)  # -> 500_000_000
    """
    require_int(principal, "principal")
    require_int(rate_bps, "rate_bps")
    require_int(elapsed_ticks, "elapsed_ticks")
    if rate_bps < 0:
        raise ValueError(f"rate_bps cannot be negative, got {rate_bps}")
    if elapsed_ticks < 0:
        raise ValueError(f"elapsed_ticks cannot be negative, got {elapsed_ticks}")

    if principal <= 0 or rate_bps == 0 or elapsed_ticks == 0:
        return 0

    return principal * rate_bps * elapsed_ticks // SECONDS_PER_YEAR


def _elapsed(view: LedgerView, last_accrual_height: int) -> int:
    return max(0, view.block_height - last_accrual_height)


# ============================================================================
# LIVE INTEREST (read-only)
# ============================================================================

def calculate_stake_interest(view: LedgerView, user: str) -> int:
    """Interest accruing on the user's stake since its last checkpoint (0 if none)."""
    stake = view.get_stake(user)
    if stake is None:
        return 0
    return calculate_interest(
        stake.amount,
        view.get_global_state().stake_rate_bps,
        _elapsed(view, stake.last_accrual_height),
    )


def calculate_loan_interest(view: LedgerView, user: str) -> int:
    """Interest accruing on the user's loan since its last checkpoint (0 if none)."""
    loan = view.get_loan(user)
    if loan is None:
        return 0
    return calculate_interest(
        loan.principal,
        view.get_global_state().loan_rate_bps,
        _elapsed(view, loan.last_accrual_height),
    )


# ============================================================================
# SETTLEMENT
# ============================================================================

@dataclass(frozen=True, slots=True)
class Settlement:
    """
    Result of settling a user's interest at the current height.

    ``stake``, ``loan`` and ``accrued`` are the records as they stand after
    settlement; ``changes`` are the record changes that get them there.
    """
    stake: Optional[StakePosition]
    loan: Optional[LoanPosition]
    accrued: AccruedInterest
    changes: List[RecordChange]


def settle_interest(view: LedgerView, user: str) -> Settlement:
    """
    Fold live interest into the user's AccruedInterest record.

    Computes interest for both the stake and the loan (zero for a missing
    position), adds it to the settled totals, and advances
    ``last_accrual_height`` on each existing position to the current height.
    The interest record is written on every settlement, so it materializes
    with zero values on a user's first one.

    Args:
        view: Read-only ledger access
        user: Identity whose positions are settled

    Returns:
        Settlement with the post-settlement records and the changes.
    """
    height = view.block_height
    stake = view.get_stake(user)
    loan = view.get_loan(user)
    stored = view.get_accrued_interest(user)

    stake_interest = calculate_stake_interest(view, user)
    loan_interest = calculate_loan_interest(view, user)

    changes: List[RecordChange] = []

    new_stake = stake
    if stake is not None:
        new_stake = replace(stake, last_accrual_height=height)
        changes.append(RecordChange(TABLE_STAKES, user, stake, new_stake))

    new_loan = loan
    if loan is not None:
        new_loan = replace(loan, last_accrual_height=height)
        changes.append(RecordChange(TABLE_LOANS, user, loan, new_loan))

    accrued = AccruedInterest(
        stake_interest=stored.stake_interest + stake_interest,
        loan_interest=stored.loan_interest + loan_interest,
    )
    changes.append(RecordChange(TABLE_INTEREST, user, view.get_interest_record(user), accrued))

    return Settlement(stake=new_stake, loan=new_loan, accrued=accrued, changes=changes)
