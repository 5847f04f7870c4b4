"""
contract.py - Public interface of the lending pool

LendingContract binds the pure compute functions to a Ledger: each
mutating operation builds its PendingTransaction against the ledger,
executes it, and reports the outcome as an OperationResult. Rejections
(LedgerError subclasses carrying a result code) are converted at this
boundary and never escape it.

transact() is the name-based entry point: it routes a public operation
name to its compute function without executing anything.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Tuple

from .core import (
    LedgerView, PendingTransaction, OperationResult, ExecuteResult,
    StakePosition, LoanPosition, AccruedInterest,
    LedgerError, POOL_WALLET,
)
from .ledger import Ledger
from .interest import calculate_stake_interest, calculate_loan_interest
from .staking import compute_stake, compute_withdraw_stake
from .loans import compute_take_loan, compute_repay_loan, get_total_debt, get_max_loan
from .liquidation import compute_liquidation, is_liquidatable, get_collateral_ratio
from .admin import (
    compute_set_stake_interest_rate,
    compute_set_loan_interest_rate,
    compute_toggle_contract_pause,
    compute_emergency_withdraw,
)


# ============================================================================
# OPERATION DISPATCH
# ============================================================================

# operation name -> (compute function, required keyword parameters)
OPERATIONS: Dict[str, Tuple[Callable[..., PendingTransaction], Tuple[str, ...]]] = {
    "stake": (compute_stake, ("amount",)),
    "withdraw-stake": (compute_withdraw_stake, ("amount",)),
    "take-loan": (compute_take_loan, ("amount",)),
    "repay-loan": (compute_repay_loan, ("amount",)),
    "liquidate": (compute_liquidation, ("borrower",)),
    "set-stake-interest-rate": (compute_set_stake_interest_rate, ("rate_bps",)),
    "set-loan-interest-rate": (compute_set_loan_interest_rate, ("rate_bps",)),
    "toggle-contract-pause": (compute_toggle_contract_pause, ()),
    "emergency-withdraw": (compute_emergency_withdraw, ("amount",)),
}


def transact(view: LedgerView, caller: str, operation: str, **kwargs) -> PendingTransaction:
    """
    Build the PendingTransaction for a public operation by name.

    Args:
        view: Read-only ledger access
        caller: Identity invoking the operation
        operation: One of the public operation names ("stake", "take-loan", ...)
        **kwargs: Operation parameters ('amount', 'borrower' or 'rate_bps')

    Returns:
        PendingTransaction ready for Ledger.execute()

    Raises:
        ValueError: unknown operation or missing parameter
        LedgerError: the operation's own precondition failures

    Example:
        pending = transact(ledger, "alice", "stake", amount=1_000_000)
        ledger.execute(pending)
    """
    entry = OPERATIONS.get(operation)
    if entry is None:
        raise ValueError(f"Unknown operation '{operation}'")
    compute, params = entry
    args = []
    for param in params:
        if kwargs.get(param) is None:
            raise ValueError(f"Missing '{param}' parameter for {operation}")
        args.append(kwargs[param])
    return compute(view, caller, *args)


# ============================================================================
# CONTRACT FACADE
# ============================================================================

class LendingContract:
    """
    Staking and lending pool operating on a Ledger.

    Mutating operations return OperationResult: Ok(True) with the committed
    Transaction, or Err(code) with nothing written. Queries read the
    ledger directly and have no side effects.

    Example:
        ledger = Ledger("pool", PoolConfig(owner="admin"), verbose=False)
        contract = LendingContract(ledger)
        ledger.issue("alice", 5_000_000)
        contract.stake("alice", 3_000_000)      # Ok(True)
        contract.take_loan("alice", 2_000_001)  # Err(INSUFFICIENT_COLLATERAL: ...)
    """

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    def _run(self, operation: str, caller: str, **kwargs) -> OperationResult:
        try:
            pending = transact(self.ledger, caller, operation, **kwargs)
        except LedgerError as e:
            if e.code is None:
                raise
            return OperationResult.failure(e)

        logged = len(self.ledger.transaction_log)
        if self.ledger.execute(pending) == ExecuteResult.REJECTED:
            error = self.ledger.last_rejection
            # Stale records and future heights are caller bugs, not result codes
            if error.code is None:
                raise error
            return OperationResult.failure(error)

        tx = None
        if len(self.ledger.transaction_log) > logged:
            tx = self.ledger.transaction_log[-1]
        return OperationResult.success(True, tx)

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def stake(self, caller: str, amount: int) -> OperationResult:
        return self._run("stake", caller, amount=amount)

    def withdraw_stake(self, caller: str, amount: int) -> OperationResult:
        return self._run("withdraw-stake", caller, amount=amount)

    def take_loan(self, caller: str, amount: int) -> OperationResult:
        return self._run("take-loan", caller, amount=amount)

    def repay_loan(self, caller: str, amount: int) -> OperationResult:
        return self._run("repay-loan", caller, amount=amount)

    def liquidate(self, caller: str, borrower: str) -> OperationResult:
        return self._run("liquidate", caller, borrower=borrower)

    def set_stake_interest_rate(self, caller: str, rate_bps: int) -> OperationResult:
        return self._run("set-stake-interest-rate", caller, rate_bps=rate_bps)

    def set_loan_interest_rate(self, caller: str, rate_bps: int) -> OperationResult:
        return self._run("set-loan-interest-rate", caller, rate_bps=rate_bps)

    def toggle_contract_pause(self, caller: str) -> OperationResult:
        return self._run("toggle-contract-pause", caller)

    def emergency_withdraw(self, caller: str, amount: int) -> OperationResult:
        return self._run("emergency-withdraw", caller, amount=amount)

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def get_stake(self, user: str) -> Optional[StakePosition]:
        return self.ledger.get_stake(user)

    def get_loan(self, user: str) -> Optional[LoanPosition]:
        return self.ledger.get_loan(user)

    def get_accumulated_interest(self, user: str) -> AccruedInterest:
        """Settled interest only; live accrual is reported by the calculate_* queries."""
        return self.ledger.get_accrued_interest(user)

    def calculate_stake_interest(self, user: str) -> int:
        return calculate_stake_interest(self.ledger, user)

    def calculate_loan_interest(self, user: str) -> int:
        return calculate_loan_interest(self.ledger, user)

    def get_total_debt(self, user: str) -> int:
        return get_total_debt(self.ledger, user)

    def is_liquidatable(self, user: str) -> bool:
        return is_liquidatable(self.ledger, user)

    def get_contract_stats(self) -> Dict[str, Any]:
        state = self.ledger.get_global_state()
        return {
            'total_staked': state.total_staked,
            'total_borrowed': state.total_borrowed,
            'stake_rate_bps': state.stake_rate_bps,
            'loan_rate_bps': state.loan_rate_bps,
            'paused': state.paused,
        }

    def get_max_loan(self, user: str) -> int:
        return get_max_loan(self.ledger, user)

    def get_collateral_ratio(self, user: str) -> Optional[int]:
        return get_collateral_ratio(self.ledger, user)

    def get_balance(self, wallet: str) -> int:
        return self.ledger.get_balance(wallet)

    def get_pool_balance(self) -> int:
        return self.ledger.get_balance(POOL_WALLET)
