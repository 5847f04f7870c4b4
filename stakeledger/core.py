"""
Core types and pure helpers for the staking and lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable records: StakePosition, LoanPosition, AccruedInterest, GlobalState
3. Immutable transaction data: Move, RecordChange, PendingTransaction, Transaction
4. Exceptions: LedgerError and one subclass per result code
5. Configuration: PoolConfig with the deployed defaults
6. Guards shared by every operation (pause flag, owner check, amount typing)

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
import hashlib
from typing import (
    Any, Dict, List, Optional, Protocol, Tuple, FrozenSet, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Divisor of the interest formula. One tick of the clock counts as one second.
SECONDS_PER_YEAR = 31_536_000

# Deployed configuration (amounts are in base units).
MINIMUM_STAKE = 1_000_000
MINIMUM_LOAN = 500_000
MAX_RATE_BPS = 2000
LIQUIDATION_THRESHOLD_PCT = 150
DEFAULT_STAKE_RATE_BPS = 500
DEFAULT_LOAN_RATE_BPS = 1000
DEFAULT_OWNER = "deployer"

# The wallet holding the pooled base asset (the contract's own balance).
POOL_WALLET = "pool"

# Reserved wallet for issuance of the base asset into the ledger.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

RESERVED_WALLETS = frozenset({POOL_WALLET, SYSTEM_WALLET})

# Record tables held by the ledger store.
TABLE_STAKES = "stakes"
TABLE_LOANS = "loans"
TABLE_INTEREST = "interest"
TABLE_GLOBALS = "globals"
GLOBAL_KEY = "contract"

RECORD_TABLES = (TABLE_STAKES, TABLE_LOANS, TABLE_INTEREST, TABLE_GLOBALS)


# ============================================================================
# ENUMS
# ============================================================================

class ErrorCode(Enum):
    """
    Result codes returned by rejected operations.

    Every failed precondition maps to exactly one code. Codes are terminal:
    nothing is retried and the caller must resubmit with corrected inputs.
    """
    NOT_AUTHORIZED = 100
    INVALID_AMOUNT = 101
    LOAN_NOT_FOUND = 102
    STAKE_NOT_FOUND = 103
    INSUFFICIENT_COLLATERAL = 104
    LOAN_ALREADY_EXISTS = 105
    INSUFFICIENT_FUNDS = 106
    LIQUIDATION_NOT_ALLOWED = 107
    INVALID_INTEREST_RATE = 108


class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    REJECTED: Transaction failed validation; no state was changed.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"     # stake, withdraw, borrow, repay
    LIQUIDATION = "liquidation"     # third-party forced unwind
    ADMIN = "admin"                 # owner-gated configuration
    SYSTEM = "system"               # issuance of the base asset


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """
    Base exception for all ledger-related errors.

    Subclasses carrying a ``code`` are the operation-level rejections that
    the contract layer turns into result codes. A ``code`` of None marks an
    execution-level inconsistency (stale record, future height).
    """
    code: Optional[ErrorCode] = None


class NotAuthorized(LedgerError):
    """Raised when the contract is paused or the caller is not the owner."""
    code = ErrorCode.NOT_AUTHORIZED


class InvalidAmount(LedgerError):
    """Raised for amounts below a minimum, zero, or above a debt ceiling."""
    code = ErrorCode.INVALID_AMOUNT


class LoanNotFound(LedgerError):
    """Raised when an operation requires an open loan and none exists."""
    code = ErrorCode.LOAN_NOT_FOUND


class StakeNotFound(LedgerError):
    """Raised when an operation requires a stake position and none exists."""
    code = ErrorCode.STAKE_NOT_FOUND


class InsufficientCollateral(LedgerError):
    """Raised when a requested loan exceeds the loan-to-value limit."""
    code = ErrorCode.INSUFFICIENT_COLLATERAL


class LoanAlreadyExists(LedgerError):
    """Raised on a second loan attempt while one is still open."""
    code = ErrorCode.LOAN_ALREADY_EXISTS


class InsufficientFunds(LedgerError):
    """Raised when a withdrawal or an asset transfer exceeds the available balance."""
    code = ErrorCode.INSUFFICIENT_FUNDS


class LiquidationNotAllowed(LedgerError):
    """Raised when liquidating a position that is adequately collateralized."""
    code = ErrorCode.LIQUIDATION_NOT_ALLOWED


class InvalidInterestRate(LedgerError):
    """Raised when an admin rate change exceeds the configured maximum."""
    code = ErrorCode.INVALID_INTEREST_RATE


class StaleRecord(LedgerError):
    """Raised when a pending change was built against a record that has since changed."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolConfig:
    """
    Deployment parameters of a lending pool.

    Attributes:
        owner: Identity allowed to call the owner-gated operations.
        minimum_stake: Smallest accepted stake, in base units.
        minimum_loan: Smallest accepted loan, in base units.
        max_rate_bps: Upper bound for both interest rates.
        liquidation_threshold_pct: Collateralization ratio (percent) below
            which a loan can be liquidated; also sets the loan-to-value limit.
        stake_rate_bps: Initial staking rate.
        loan_rate_bps: Initial borrowing rate.
    """
    owner: str = DEFAULT_OWNER
    minimum_stake: int = MINIMUM_STAKE
    minimum_loan: int = MINIMUM_LOAN
    max_rate_bps: int = MAX_RATE_BPS
    liquidation_threshold_pct: int = LIQUIDATION_THRESHOLD_PCT
    stake_rate_bps: int = DEFAULT_STAKE_RATE_BPS
    loan_rate_bps: int = DEFAULT_LOAN_RATE_BPS

    def __post_init__(self):
        validate_identity(self.owner)
        for name in ("minimum_stake", "minimum_loan", "max_rate_bps",
                     "liquidation_threshold_pct", "stake_rate_bps", "loan_rate_bps"):
            value = getattr(self, name)
            require_int(value, name)
            if value < 0:
                raise ValueError(f"{name} cannot be negative, got {value}")
        if self.liquidation_threshold_pct == 0:
            raise ValueError("liquidation_threshold_pct must be positive")
        if self.stake_rate_bps > self.max_rate_bps:
            raise ValueError(
                f"stake_rate_bps ({self.stake_rate_bps}) exceeds max_rate_bps ({self.max_rate_bps})"
            )
        if self.loan_rate_bps > self.max_rate_bps:
            raise ValueError(
                f"loan_rate_bps ({self.loan_rate_bps}) exceeds max_rate_bps ({self.max_rate_bps})"
            )


# ============================================================================
# LEDGER RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class StakePosition:
    """A user's staking position. ``amount`` only tracks principal movements."""
    amount: int
    opened_at_height: int
    last_accrual_height: int


@dataclass(frozen=True, slots=True)
class LoanPosition:
    """
    A user's open loan.

    ``collateral`` is the stake amount snapshotted at issuance and is never
    re-synced with the stake afterwards.
    """
    principal: int
    collateral: int
    opened_at_height: int
    last_accrual_height: int


@dataclass(frozen=True, slots=True)
class AccruedInterest:
    """Interest realized at settlement checkpoints. Absent means zero."""
    stake_interest: int = 0
    loan_interest: int = 0


ZERO_INTEREST = AccruedInterest()


@dataclass(frozen=True, slots=True)
class GlobalState:
    """Pool-wide aggregates and admin-controlled parameters."""
    total_staked: int
    total_borrowed: int
    stake_rate_bps: int
    loan_rate_bps: int
    paused: bool
    owner: str

    @classmethod
    def from_config(cls, config: PoolConfig) -> GlobalState:
        return cls(
            total_staked=0,
            total_borrowed=0,
            stake_rate_bps=config.stake_rate_bps,
            loan_rate_bps=config.loan_rate_bps,
            paused=False,
            owner=config.owner,
        )


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Compute functions take a LedgerView to declare their read-only intent.
    The Ledger class implements this protocol; tests use FakeView.
    """

    @property
    def block_height(self) -> int:
        """Return the current logical clock value."""
        ...

    @property
    def config(self) -> PoolConfig:
        """Return the pool's deployment parameters."""
        ...

    def get_stake(self, user: str) -> Optional[StakePosition]:
        """Return the user's stake position, or None."""
        ...

    def get_loan(self, user: str) -> Optional[LoanPosition]:
        """Return the user's open loan, or None."""
        ...

    def get_accrued_interest(self, user: str) -> AccruedInterest:
        """Return the user's settled interest (zero record if absent)."""
        ...

    def get_interest_record(self, user: str) -> Optional[AccruedInterest]:
        """Return the interest record as stored, or None if never written."""
        ...

    def get_global_state(self) -> GlobalState:
        """Return the pool-wide state."""
        ...

    def get_balance(self, wallet: str) -> int:
        """Return the base-asset balance of a wallet (0 if never funded)."""
        ...


# ============================================================================
# GUARDS
# ============================================================================

def require_int(value: Any, name: str = "amount") -> None:
    """Reject anything that is not a plain integer (bool included)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be int, got {type(value).__name__}")


def validate_identity(identity: Any) -> None:
    """Caller identities must be non-empty strings outside the reserved wallets."""
    if not isinstance(identity, str) or not identity.strip():
        raise ValueError("identity cannot be empty")
    if identity in RESERVED_WALLETS:
        raise ValueError(f"identity '{identity}' is reserved")


def require_active(view: LedgerView) -> None:
    """Reject the operation while the contract is paused."""
    if view.get_global_state().paused:
        raise NotAuthorized("contract is paused")


def require_owner(view: LedgerView, caller: str) -> None:
    """Reject callers other than the configured owner."""
    if caller != view.get_global_state().owner:
        raise NotAuthorized(f"{caller} is not the contract owner")


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin (USER_ACTION, LIQUIDATION, ...)
        source_id: Identity of the calling party
        operation: Public operation name (e.g. "take-loan")
        subject: Identity acted upon when it differs from the caller
    """
    origin_type: OriginType
    source_id: str
    operation: Optional[str] = None
    subject: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.operation:
            parts.append(f"op={self.operation}")
        if self.subject:
            parts.append(f"subject={self.subject}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of the base asset between two wallets.

    Attributes:
        quantity: Amount in base units (positive int).
        source: Wallet debited.
        dest: Wallet credited.
        purpose: Short label of why the move happens (e.g. "stake").
    """
    quantity: int
    source: str
    dest: str
    purpose: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.purpose or not self.purpose.strip():
            raise ValueError("Move purpose cannot be empty")
        require_int(self.quantity, "Move quantity")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity}: {self.source}→{self.dest} [{self.purpose}])"


@dataclass(frozen=True, slots=True)
class RecordChange:
    """
    Record-level state change for transaction logging and rollback.

    Stores complete before/after snapshots. ``None`` means the record is
    absent, so creation is (None, record) and deletion is (record, None).
    """
    table: str
    key: str
    old: Any
    new: Any

    def __post_init__(self):
        if self.table not in RECORD_TABLES:
            raise ValueError(f"Unknown record table '{self.table}'")

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old, new)} for fields that differ."""
        old = _record_dict(self.old)
        new = _record_dict(self.new)
        changes = {}
        for key in list(old) + [k for k in new if k not in old]:
            if old.get(key) != new.get(key):
                changes[key] = (old.get(key), new.get(key))
        return changes


def _record_dict(record: Any) -> Dict[str, Any]:
    if record is None:
        return {}
    return {f.name: getattr(record, f.name) for f in fields(record)}


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Records are serialized field by field so that equal records always
    produce equal strings.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if is_dataclass(value) and not isinstance(value, type):
        body = ",".join(f"{k}:{_canonicalize(v)}" for k, v in _record_dict(value).items())
        return f"{type(value).__name__}{{{body}}}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(item) for item in value) + "]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    changes: Tuple[RecordChange, ...],
    origin: TransactionOrigin,
    height: int,
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Move order is part of the intent (transfers are checked in order), so
    moves are hashed as given rather than sorted.
    """
    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}", f"height:{height}"]
    if origin.operation:
        content_parts.append(f"op:{origin.operation}")
    if origin.subject:
        content_parts.append(f"subject:{origin.subject}")
    for m in moves:
        content_parts.append(f"move:{m.quantity}|{m.source}|{m.dest}|{m.purpose}")
    for c in changes:
        content_parts.append(
            f"change:{c.table}|{c.key}|{_canonicalize(c.old)}|{_canonicalize(c.new)}"
        )
    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction description before execution - represents INTENT.

    Created by the compute functions and submitted to Ledger.execute().

    Attributes:
        moves: Ordered base-asset transfers
        changes: Ordered record changes (old and new snapshots)
        origin: Who created this transaction and why
        height: Block height the intent was built at
        intent_id: Content-addressable hash of the intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    changes: Tuple[RecordChange, ...]
    origin: TransactionOrigin
    height: int
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(self.moves, self.changes, self.origin, self.height)
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves and no changes."""
        return not self.moves and not self.changes

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.changes)} changes, {self.origin})"


def merge_changes(changes: List[RecordChange]) -> Tuple[RecordChange, ...]:
    """
    Collapse successive changes to the same record into one.

    The merged change keeps the first ``old`` and the last ``new``; records
    that end where they started are dropped.
    """
    merged: Dict[Tuple[str, str], RecordChange] = {}
    for change in changes:
        key = (change.table, change.key)
        previous = merged.get(key)
        if previous is None:
            merged[key] = change
            continue
        if previous.new != change.old:
            raise ValueError(f"Non-contiguous changes for {change.table}/{change.key}")
        merged[key] = RecordChange(change.table, change.key, previous.old, change.new)
    return tuple(c for c in merged.values() if c.old != c.new)


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    changes: Optional[List[RecordChange]] = None,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and record changes.

    This is the standard way to create transactions.

    Args:
        view: Read-only ledger view (provides block_height)
        moves: Ordered moves to include in the transaction
        changes: Optional record changes; successive changes to one record
                 are merged
        origin: Transaction origin (defaults to a SYSTEM origin)

    Returns:
        A PendingTransaction ready for execution

    Example:
        stake = view.get_stake("alice")
        new = replace(stake, amount=stake.amount + 10)
        return build_transaction(
            view,
            [Move(10, "alice", POOL_WALLET, "stake")],
            [RecordChange(TABLE_STAKES, "alice", stake, new)],
        )
    """
    if origin is None:
        origin = TransactionOrigin(origin_type=OriginType.SYSTEM, source_id=SYSTEM_WALLET)

    return PendingTransaction(
        moves=tuple(moves),
        changes=merge_changes(list(changes or [])),
        origin=origin,
        height=view.block_height,
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """Create an empty PendingTransaction (no moves, no changes)."""
    return PendingTransaction(
        moves=(),
        changes=(),
        origin=TransactionOrigin(OriginType.SYSTEM, "noop"),
        height=view.block_height,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Ordered base-asset transfers
        changes: Record changes (old and new snapshots)
        origin: Who created this transaction and why
        height: Block height the intent was built at
        intent_id: Content hash from PendingTransaction
        exec_id: Unique execution identifier (ledger + sequence + height)
        ledger_name: Name of the ledger that executed this
        execution_height: Ledger height when applied
        sequence_number: Monotonic sequence within the ledger
    """
    moves: Tuple[Move, ...]
    changes: Tuple[RecordChange, ...]
    origin: TransactionOrigin
    height: int
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_height: int
    sequence_number: int
    wallets: Optional[FrozenSet[str]] = None

    def __post_init__(self):
        if not self.moves and not self.changes:
            raise ValueError("Transaction must have moves or changes")
        if self.wallets is None:
            touched = {m.source for m in self.moves} | {m.dest for m in self.moves}
            object.__setattr__(self, 'wallets', frozenset(touched))

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   height         : ' + str(self.height))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + repr(self.origin))}│",
            f"├{bar}┤",
            f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│",
        ]
        for i, move in enumerate(self.moves):
            lines.append(f"│{pad(f'   [{i}] {move.quantity}: {move.source} → {move.dest} ({move.purpose})')}│")
        if self.changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Record Changes (' + str(len(self.changes)) + '):')}│")
            for c in self.changes:
                lines.append(f"│{pad('   [' + c.table + '/' + c.key + ']')}│")
                if c.new is None:
                    lines.append(f"│{pad('      deleted')}│")
                    continue
                for field_name, (old_val, new_val) in c.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# ============================================================================
# OPERATION RESULT
# ============================================================================

@dataclass(frozen=True, slots=True)
class OperationResult:
    """
    Outcome of a public operation: either ``ok`` with a value, or an error code.

    Attributes:
        ok: True if the operation committed
        value: Operation-specific return value (None on failure)
        error: Result code on failure (None on success)
        reason: Human-readable rejection reason ("" on success)
        transaction: The committed Transaction on success
    """
    ok: bool
    value: Any = None
    error: Optional[ErrorCode] = None
    reason: str = ""
    transaction: Optional[Transaction] = None

    @classmethod
    def success(cls, value: Any, transaction: Optional[Transaction] = None) -> OperationResult:
        return cls(ok=True, value=value, transaction=transaction)

    @classmethod
    def failure(cls, error: LedgerError) -> OperationResult:
        return cls(ok=False, error=error.code, reason=str(error))

    def __repr__(self) -> str:
        if self.ok:
            return f"Ok({self.value!r})"
        return f"Err({self.error.name if self.error else None}: {self.reason})"
