"""
admin.py - Owner-gated administrative operations

Rate setters, the pause toggle and the emergency withdrawal. Each one is
plain state mutation behind an ownership check; none of them settles
interest, so a rate change also applies to the unsettled interval of
every open position.
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    LedgerView, Move, PendingTransaction, RecordChange,
    TransactionOrigin, OriginType,
    POOL_WALLET, TABLE_GLOBALS, GLOBAL_KEY,
    InvalidAmount, InvalidInterestRate, NotAuthorized,
    build_transaction, require_int, require_owner, validate_identity,
)


def _validate_rate(view: LedgerView, rate_bps: int) -> None:
    require_int(rate_bps, "rate_bps")
    if rate_bps < 0 or rate_bps > view.config.max_rate_bps:
        raise InvalidInterestRate(
            f"rate {rate_bps} bps outside [0, {view.config.max_rate_bps}]"
        )


def _admin_transaction(view: LedgerView, caller: str, operation: str, **updates) -> PendingTransaction:
    state = view.get_global_state()
    new_state = replace(state, **updates)
    origin = TransactionOrigin(OriginType.ADMIN, caller, operation)
    return build_transaction(
        view, [], [RecordChange(TABLE_GLOBALS, GLOBAL_KEY, state, new_state)], origin
    )


def compute_set_stake_interest_rate(view: LedgerView, caller: str, rate_bps: int) -> PendingTransaction:
    """
    Set the staking rate.

    Raises:
        NotAuthorized: caller is not the owner
        InvalidInterestRate: rate above the configured maximum
    """
    validate_identity(caller)
    require_owner(view, caller)
    _validate_rate(view, rate_bps)
    return _admin_transaction(view, caller, "set-stake-interest-rate", stake_rate_bps=rate_bps)


def compute_set_loan_interest_rate(view: LedgerView, caller: str, rate_bps: int) -> PendingTransaction:
    """
    Set the borrowing rate.

    Raises:
        NotAuthorized: caller is not the owner
        InvalidInterestRate: rate above the configured maximum
    """
    validate_identity(caller)
    require_owner(view, caller)
    _validate_rate(view, rate_bps)
    return _admin_transaction(view, caller, "set-loan-interest-rate", loan_rate_bps=rate_bps)


def compute_toggle_contract_pause(view: LedgerView, caller: str) -> PendingTransaction:
    """Flip the pause flag. Raises NotAuthorized for non-owners."""
    validate_identity(caller)
    require_owner(view, caller)
    paused = view.get_global_state().paused
    return _admin_transaction(view, caller, "toggle-contract-pause", paused=not paused)


def compute_emergency_withdraw(view: LedgerView, caller: str, amount: int) -> PendingTransaction:
    """
    Move ``amount`` from the pool to the owner without touching any position.

    Only allowed while the contract is paused.

    Raises:
        NotAuthorized: caller is not the owner, or the contract is not paused
        InvalidAmount: amount is zero or negative
    """
    validate_identity(caller)
    require_int(amount)
    require_owner(view, caller)
    if not view.get_global_state().paused:
        raise NotAuthorized("emergency withdrawal requires the contract to be paused")
    if amount <= 0:
        raise InvalidAmount(f"withdrawal amount must be positive, got {amount}")

    moves = [Move(amount, POOL_WALLET, caller, "emergency-withdraw")]
    origin = TransactionOrigin(OriginType.ADMIN, caller, "emergency-withdraw")
    return build_transaction(view, moves, [], origin)
