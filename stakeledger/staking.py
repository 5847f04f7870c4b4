"""
staking.py - Stake Ledger

Per-user staking positions. A stake moves base asset from the caller into
the pool; a withdrawal moves it back out, and may also draw down interest
(settled and live) on top of principal.

Both operations settle the caller's interest first so positions are never
mutated with a stale accrual checkpoint.
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    LedgerView, Move, PendingTransaction, RecordChange, StakePosition,
    TransactionOrigin, OriginType,
    POOL_WALLET, TABLE_STAKES, TABLE_GLOBALS, GLOBAL_KEY,
    InvalidAmount, InsufficientFunds, StakeNotFound,
    build_transaction, require_active, require_int, validate_identity,
)
from .interest import calculate_stake_interest, settle_interest


def get_available_stake(view: LedgerView, user: str) -> int:
    """
    Total a user may withdraw: principal + live stake interest + settled stake interest.

    Returns 0 when the user has no stake position.
    """
    stake = view.get_stake(user)
    if stake is None:
        return 0
    return (
        stake.amount
        + calculate_stake_interest(view, user)
        + view.get_accrued_interest(user).stake_interest
    )


def compute_stake(view: LedgerView, caller: str, amount: int) -> PendingTransaction:
    """
    Deposit ``amount`` of base asset into the pool.

    An existing position grows by ``amount`` and keeps its
    ``opened_at_height``; otherwise a new position opens at the current
    height. A position whose amount lands on exactly zero is deleted.

    Args:
        view: Read-only ledger access
        caller: Identity staking
        amount: Base units to stake

    Returns:
        PendingTransaction moving ``amount`` from caller to pool, with the
        stake, interest and totals updates.

    Raises:
        NotAuthorized: contract paused
        InvalidAmount: amount below the minimum stake
    """
    validate_identity(caller)
    require_int(amount)
    require_active(view)
    if amount < view.config.minimum_stake:
        raise InvalidAmount(
            f"stake of {amount} is below the minimum of {view.config.minimum_stake}"
        )

    height = view.block_height
    settlement = settle_interest(view, caller)
    stake = settlement.stake
    if stake is None:
        new_stake = StakePosition(amount=amount, opened_at_height=height, last_accrual_height=height)
    elif stake.amount + amount == 0:
        # a top-up that exactly cancels an interest draw-down closes the position
        new_stake = None
    else:
        new_stake = replace(stake, amount=stake.amount + amount)

    state = view.get_global_state()
    new_state = replace(state, total_staked=state.total_staked + amount)

    changes = settlement.changes + [
        RecordChange(TABLE_STAKES, caller, stake, new_stake),
        RecordChange(TABLE_GLOBALS, GLOBAL_KEY, state, new_state),
    ]
    moves = [Move(amount, caller, POOL_WALLET, "stake")]
    origin = TransactionOrigin(OriginType.USER_ACTION, caller, "stake")
    return build_transaction(view, moves, changes, origin)


def compute_withdraw_stake(view: LedgerView, caller: str, amount: int) -> PendingTransaction:
    """
    Withdraw ``amount`` from the caller's stake back out of the pool.

    ``amount`` is checked against principal plus all stake interest, but is
    deducted from the position's ``amount`` alone, which therefore goes
    below zero when interest is drawn. The position is deleted only when
    the remainder is exactly zero; the settled interest record is left as is.

    Raises:
        NotAuthorized: contract paused
        StakeNotFound: caller has no stake position
        InvalidAmount: amount is zero or negative
        InsufficientFunds: amount exceeds principal + interest
    """
    validate_identity(caller)
    require_int(amount)
    require_active(view)
    if view.get_stake(caller) is None:
        raise StakeNotFound(f"{caller} has no stake position")
    available = get_available_stake(view, caller)
    if amount <= 0:
        raise InvalidAmount(f"withdrawal amount must be positive, got {amount}")
    if amount > available:
        raise InsufficientFunds(f"withdrawal of {amount} exceeds available {available}")

    settlement = settle_interest(view, caller)
    stake = settlement.stake
    remaining = stake.amount - amount
    new_stake = None if remaining == 0 else replace(stake, amount=remaining)

    state = view.get_global_state()
    new_state = replace(state, total_staked=state.total_staked - amount)

    changes = settlement.changes + [
        RecordChange(TABLE_STAKES, caller, stake, new_stake),
        RecordChange(TABLE_GLOBALS, GLOBAL_KEY, state, new_state),
    ]
    moves = [Move(amount, POOL_WALLET, caller, "withdraw-stake")]
    origin = TransactionOrigin(OriginType.USER_ACTION, caller, "withdraw-stake")
    return build_transaction(view, moves, changes, origin)
