"""
loans.py - Loan Ledger

Per-user borrowing against the caller's own stake. At issuance the stake
amount is snapshotted as collateral and the loan-to-value limit is
enforced:

    max_loan = collateral * 100 // liquidation_threshold_pct

At most one loan per user is open at a time.

Key Formulas:
    total_debt = principal + live loan interest + settled loan interest
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    LedgerView, Move, PendingTransaction, RecordChange, LoanPosition,
    TransactionOrigin, OriginType,
    POOL_WALLET, TABLE_LOANS, TABLE_GLOBALS, GLOBAL_KEY,
    InvalidAmount, InsufficientCollateral, LoanAlreadyExists, LoanNotFound, StakeNotFound,
    build_transaction, require_active, require_int, validate_identity,
)
from .interest import calculate_loan_interest, settle_interest


# ============================================================================
# PURE CALCULATION
# ============================================================================

def calculate_max_loan(collateral: int, liquidation_threshold_pct: int) -> int:
    """
    Largest loan a given collateral supports.

    PURE FUNCTION. With the deployed 150% threshold this is about two thirds
    of the collateral, rounded down.
    """
    require_int(collateral, "collateral")
    require_int(liquidation_threshold_pct, "liquidation_threshold_pct")
    if liquidation_threshold_pct <= 0:
        raise ValueError(f"liquidation_threshold_pct must be positive, got {liquidation_threshold_pct}")
    return collateral * 100 // liquidation_threshold_pct


# ============================================================================
# QUERIES
# ============================================================================

def get_total_debt(view: LedgerView, user: str) -> int:
    """principal + live loan interest + settled loan interest (0 without an open loan)."""
    loan = view.get_loan(user)
    if loan is None:
        return 0
    return (
        loan.principal
        + calculate_loan_interest(view, user)
        + view.get_accrued_interest(user).loan_interest
    )


def get_max_loan(view: LedgerView, user: str) -> int:
    """Loan the user's current stake would support (0 without a stake)."""
    stake = view.get_stake(user)
    if stake is None:
        return 0
    return max(0, calculate_max_loan(stake.amount, view.config.liquidation_threshold_pct))


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_take_loan(view: LedgerView, caller: str, amount: int) -> PendingTransaction:
    """
    Borrow ``amount`` from the pool against the caller's stake.

    Args:
        view: Read-only ledger access
        caller: Identity borrowing
        amount: Base units to borrow

    Returns:
        PendingTransaction moving ``amount`` from pool to caller, creating
        the loan with collateral snapshotted from the current stake.

    Raises:
        NotAuthorized: contract paused
        StakeNotFound: caller has no stake to borrow against
        LoanAlreadyExists: caller already has an open loan
        InvalidAmount: amount below the minimum loan
        InsufficientCollateral: amount above the loan-to-value limit

    Example:
        # stake 3_000_000 -> max loan 3_000_000 * 100 // 150 = 2_000_000
        ledger.execute(compute_take_loan(ledger, "alice", 2_000_000))
    """
    validate_identity(caller)
    require_int(amount)
    require_active(view)
    stake = view.get_stake(caller)
    if stake is None:
        raise StakeNotFound(f"{caller} has no stake to borrow against")
    if view.get_loan(caller) is not None:
        raise LoanAlreadyExists(f"{caller} already has an open loan")
    if amount < view.config.minimum_loan:
        raise InvalidAmount(
            f"loan of {amount} is below the minimum of {view.config.minimum_loan}"
        )
    max_loan = calculate_max_loan(stake.amount, view.config.liquidation_threshold_pct)
    if amount > max_loan:
        raise InsufficientCollateral(
            f"loan of {amount} exceeds the limit of {max_loan} for collateral {stake.amount}"
        )

    height = view.block_height
    settlement = settle_interest(view, caller)
    loan = LoanPosition(
        principal=amount,
        collateral=settlement.stake.amount,
        opened_at_height=height,
        last_accrual_height=height,
    )

    state = view.get_global_state()
    new_state = replace(state, total_borrowed=state.total_borrowed + amount)

    changes = settlement.changes + [
        RecordChange(TABLE_LOANS, caller, None, loan),
        RecordChange(TABLE_GLOBALS, GLOBAL_KEY, state, new_state),
    ]
    moves = [Move(amount, POOL_WALLET, caller, "take-loan")]
    origin = TransactionOrigin(OriginType.USER_ACTION, caller, "take-loan")
    return build_transaction(view, moves, changes, origin)


def compute_repay_loan(view: LedgerView, caller: str, amount: int) -> PendingTransaction:
    """
    Repay ``amount`` of the caller's loan.

    The payment is validated against total debt (principal plus interest)
    but the whole ``amount`` is deducted from ``principal``; the settled
    loan interest is not reduced. Paying into interest therefore drives
    the stored principal below zero. The loan is deleted only when the
    remainder is exactly zero.

    The transfer from caller to pool comes first, then settlement, then
    the bookkeeping.

    Raises:
        NotAuthorized: contract paused
        LoanNotFound: caller has no open loan
        InvalidAmount: amount is zero, negative, or above total debt
    """
    validate_identity(caller)
    require_int(amount)
    require_active(view)
    if view.get_loan(caller) is None:
        raise LoanNotFound(f"{caller} has no open loan")
    total_debt = get_total_debt(view, caller)
    if amount <= 0:
        raise InvalidAmount(f"repayment amount must be positive, got {amount}")
    if amount > total_debt:
        raise InvalidAmount(f"repayment of {amount} exceeds total debt {total_debt}")

    moves = [Move(amount, caller, POOL_WALLET, "repay-loan")]

    settlement = settle_interest(view, caller)
    loan = settlement.loan
    remaining = loan.principal - amount
    new_loan = None if remaining == 0 else replace(loan, principal=remaining)

    state = view.get_global_state()
    new_state = replace(state, total_borrowed=state.total_borrowed - amount)

    changes = settlement.changes + [
        RecordChange(TABLE_LOANS, caller, loan, new_loan),
        RecordChange(TABLE_GLOBALS, GLOBAL_KEY, state, new_state),
    ]
    origin = TransactionOrigin(OriginType.USER_ACTION, caller, "repay-loan")
    return build_transaction(view, moves, changes, origin)
