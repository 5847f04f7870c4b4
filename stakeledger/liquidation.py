"""
liquidation.py - Liquidation Engine

Detects under-collateralized loans and executes the forced unwind.

Key Formulas:
    collateral_ratio = collateral * 100 // total_debt   (0 when total_debt is 0)
    liquidatable    <=> total_debt > 0 and collateral_ratio < liquidation_threshold_pct

Liquidation is open to any caller. The liquidator pays the borrower's
total debt into the pool and receives the loan's snapshotted collateral
from the pool, keeping the spread. The borrower's loan, stake and
interest records are removed together.
"""

from __future__ import annotations
from dataclasses import replace
from typing import List, Optional

from .core import (
    LedgerView, Move, PendingTransaction, RecordChange,
    TransactionOrigin, OriginType,
    POOL_WALLET, TABLE_STAKES, TABLE_LOANS, TABLE_INTEREST, TABLE_GLOBALS, GLOBAL_KEY,
    LiquidationNotAllowed, LoanNotFound,
    build_transaction, require_active, require_int, validate_identity,
)
from .loans import get_total_debt


def calculate_collateral_ratio(collateral: int, total_debt: int) -> int:
    """
    Collateralization ratio in whole percent.

    PURE FUNCTION. A non-positive debt yields 0.
    """
    require_int(collateral, "collateral")
    require_int(total_debt, "total_debt")
    if total_debt <= 0:
        return 0
    return collateral * 100 // total_debt


def get_collateral_ratio(view: LedgerView, user: str) -> Optional[int]:
    """Current ratio for the user's open loan, or None without one."""
    loan = view.get_loan(user)
    if loan is None:
        return None
    return calculate_collateral_ratio(loan.collateral, get_total_debt(view, user))


def is_liquidatable(view: LedgerView, user: str) -> bool:
    """True iff the user has an open loan with positive debt whose ratio is below the threshold."""
    loan = view.get_loan(user)
    if loan is None:
        return False
    total_debt = get_total_debt(view, user)
    if total_debt <= 0:
        return False
    ratio = calculate_collateral_ratio(loan.collateral, total_debt)
    return ratio < view.config.liquidation_threshold_pct


def compute_liquidation(view: LedgerView, caller: str, borrower: str) -> PendingTransaction:
    """
    Liquidate ``borrower``'s loan on behalf of ``caller``.

    Moves, in order:
        1. total_debt from liquidator to pool
        2. collateral from pool to liquidator

    Totals drop by the loan's ``principal`` (borrowed) and ``collateral``
    (staked). The stake record is removed whatever its current amount, so
    total_staked only matches the sum of positions afterwards when the
    stake still equalled the collateral snapshot.

    Raises:
        NotAuthorized: contract paused
        LoanNotFound: borrower has no open loan
        LiquidationNotAllowed: loan is adequately collateralized
    """
    validate_identity(caller)
    validate_identity(borrower)
    require_active(view)
    loan = view.get_loan(borrower)
    if loan is None:
        raise LoanNotFound(f"{borrower} has no open loan")
    if not is_liquidatable(view, borrower):
        raise LiquidationNotAllowed(
            f"{borrower} is collateralized at "
            f"{get_collateral_ratio(view, borrower)}% "
            f"(threshold {view.config.liquidation_threshold_pct}%)"
        )

    total_debt = get_total_debt(view, borrower)
    moves: List[Move] = [Move(total_debt, caller, POOL_WALLET, "liquidation-repay")]
    if loan.collateral > 0:
        moves.append(Move(loan.collateral, POOL_WALLET, caller, "liquidation-seize"))

    state = view.get_global_state()
    new_state = replace(
        state,
        total_borrowed=state.total_borrowed - loan.principal,
        total_staked=state.total_staked - loan.collateral,
    )

    changes = [RecordChange(TABLE_LOANS, borrower, loan, None)]
    stake = view.get_stake(borrower)
    if stake is not None:
        changes.append(RecordChange(TABLE_STAKES, borrower, stake, None))
    interest = view.get_interest_record(borrower)
    if interest is not None:
        changes.append(RecordChange(TABLE_INTEREST, borrower, interest, None))
    changes.append(RecordChange(TABLE_GLOBALS, GLOBAL_KEY, state, new_state))

    origin = TransactionOrigin(OriginType.LIQUIDATION, caller, "liquidate", subject=borrower)
    return build_transaction(view, moves, changes, origin)
