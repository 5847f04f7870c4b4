"""
stakeledger - Staking and Lending Pool Ledger

A single-pool ledger where users stake a base asset to earn interest and
borrow against their own stake, with third-party liquidation of
under-collateralized loans.

Usage:
    from stakeledger import Ledger, LendingContract, PoolConfig

    ledger = Ledger("main", PoolConfig(owner="admin"), initial_height=100)
    contract = LendingContract(ledger)

    # Fund wallets via SYSTEM_WALLET (proper issuance)
    ledger.issue("alice", 5_000_000)

    contract.stake("alice", 3_000_000)
    contract.take_loan("alice", 2_000_000)

    ledger.advance_height(101)
    contract.is_liquidatable("alice")   # True: ratio fell below 150%
"""

# Core types
from .core import (
    LedgerView,
    Move,
    RecordChange,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    OperationResult,
    build_transaction,
    empty_pending_transaction,
    merge_changes,
    ExecuteResult,
    ErrorCode,
    PoolConfig,
    StakePosition,
    LoanPosition,
    AccruedInterest,
    GlobalState,
    LedgerError,
    NotAuthorized,
    InvalidAmount,
    LoanNotFound,
    StakeNotFound,
    InsufficientCollateral,
    LoanAlreadyExists,
    InsufficientFunds,
    LiquidationNotAllowed,
    InvalidInterestRate,
    StaleRecord,
    SECONDS_PER_YEAR,
    MINIMUM_STAKE,
    MINIMUM_LOAN,
    MAX_RATE_BPS,
    LIQUIDATION_THRESHOLD_PCT,
    POOL_WALLET,
    SYSTEM_WALLET,
    ZERO_INTEREST,
)

# Ledger
from .ledger import Ledger

# Interest accrual
from .interest import (
    calculate_interest,
    calculate_stake_interest,
    calculate_loan_interest,
    settle_interest,
    Settlement,
)

# Staking
from .staking import (
    compute_stake,
    compute_withdraw_stake,
    get_available_stake,
)

# Loans
from .loans import (
    compute_take_loan,
    compute_repay_loan,
    calculate_max_loan,
    get_total_debt,
    get_max_loan,
)

# Liquidation
from .liquidation import (
    compute_liquidation,
    calculate_collateral_ratio,
    get_collateral_ratio,
    is_liquidatable,
)

# Admin
from .admin import (
    compute_set_stake_interest_rate,
    compute_set_loan_interest_rate,
    compute_toggle_contract_pause,
    compute_emergency_withdraw,
)

# Contract facade
from .contract import LendingContract, transact, OPERATIONS

__all__ = [
    # Core
    'LedgerView', 'Move', 'RecordChange', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'OperationResult',
    'build_transaction', 'empty_pending_transaction', 'merge_changes',
    'ExecuteResult', 'ErrorCode', 'PoolConfig',
    'StakePosition', 'LoanPosition', 'AccruedInterest', 'GlobalState',
    'LedgerError', 'NotAuthorized', 'InvalidAmount', 'LoanNotFound', 'StakeNotFound',
    'InsufficientCollateral', 'LoanAlreadyExists', 'InsufficientFunds',
    'LiquidationNotAllowed', 'InvalidInterestRate', 'StaleRecord',
    'SECONDS_PER_YEAR', 'MINIMUM_STAKE', 'MINIMUM_LOAN', 'MAX_RATE_BPS',
    'LIQUIDATION_THRESHOLD_PCT', 'POOL_WALLET', 'SYSTEM_WALLET', 'ZERO_INTEREST',
    # Ledger
    'Ledger',
    # Interest
    'calculate_interest', 'calculate_stake_interest', 'calculate_loan_interest',
    'settle_interest', 'Settlement',
    # Staking
    'compute_stake', 'compute_withdraw_stake', 'get_available_stake',
    # Loans
    'compute_take_loan', 'compute_repay_loan', 'calculate_max_loan',
    'get_total_debt', 'get_max_loan',
    # Liquidation
    'compute_liquidation', 'calculate_collateral_ratio', 'get_collateral_ratio',
    'is_liquidatable',
    # Admin
    'compute_set_stake_interest_rate', 'compute_set_loan_interest_rate',
    'compute_toggle_contract_pause', 'compute_emergency_withdraw',
    # Contract
    'LendingContract', 'transact', 'OPERATIONS',
]
