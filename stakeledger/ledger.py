"""
ledger.py - Stateful Staking and Lending Ledger

The Ledger class is the explicit store for the whole pool: stake, loan and
interest records, the global aggregates, base-asset balances and the block
height clock. It is the only module that mutates state.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by compute functions
    - Executes transactions atomically (every move and record change, or none)
    - Acts as the asset transfer primitive: moves never overdraw a wallet
    - Tracks block height and provides temporal operations (clone_at, replay)
    - Audits its own invariants (verify_invariants, verify_conservation)
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from .core import (
    # Types
    Move, Transaction, PendingTransaction, TransactionOrigin,
    ExecuteResult, OriginType, PoolConfig,
    StakePosition, LoanPosition, AccruedInterest, GlobalState,
    # Constants
    SYSTEM_WALLET, ZERO_INTEREST, GLOBAL_KEY,
    TABLE_STAKES, TABLE_LOANS, TABLE_INTEREST, TABLE_GLOBALS,
    # Exceptions
    LedgerError, InsufficientFunds, StaleRecord,
    # Helpers
    build_transaction, require_int,
)


class Ledger:
    """
    Single-pool staking and lending ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to the
    pure compute functions that access only read-only methods.

    Design Principles:
        - Always validates: Every transaction is checked against wallet balances,
          record snapshots and the block height before anything is written.
        - Always logs: Every applied transaction is recorded in the audit trail,
          enabling clone_at() and replay() for historical state reconstruction.

    Thread Safety:
        Not thread-safe. Operations are applied one at a time by the caller.

    Example:
        ledger = Ledger("main", PoolConfig(owner="admin"), initial_height=100)
        ledger.issue("alice", 5_000_000)
        ledger.execute(compute_stake(ledger, "alice", 1_000_000))
    """

    def __init__(
        self,
        name: str,
        config: Optional[PoolConfig] = None,
        initial_height: int = 0,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            config: Pool parameters (default: PoolConfig())
            initial_height: Starting block height (default: 0)
            verbose: Print applied and rejected transactions (default: True)
            test_mode: Allow set_balance() calls (default: False)
        """
        require_int(initial_height, "initial_height")
        if initial_height < 0:
            raise ValueError(f"initial_height cannot be negative, got {initial_height}")
        self.name = name
        self._config = config or PoolConfig()
        self.stakes: Dict[str, StakePosition] = {}
        self.loans: Dict[str, LoanPosition] = {}
        self.interest: Dict[str, AccruedInterest] = {}
        self.globals: Dict[str, GlobalState] = {GLOBAL_KEY: GlobalState.from_config(self._config)}
        self.balances: Dict[str, int] = {}
        self.transaction_log: List[Transaction] = []
        self.last_rejection: Optional[LedgerError] = None
        self._initial_height = initial_height
        self._height = initial_height
        self.verbose = verbose
        self._test_mode = test_mode
        # Monotonic sequence counter for execution ordering
        self._next_sequence: int = 0

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def block_height(self) -> int:
        """Current logical clock of the ledger."""
        return self._height

    @property
    def config(self) -> PoolConfig:
        return self._config

    def get_stake(self, user: str) -> Optional[StakePosition]:
        return self.stakes.get(user)

    def get_loan(self, user: str) -> Optional[LoanPosition]:
        return self.loans.get(user)

    def get_accrued_interest(self, user: str) -> AccruedInterest:
        """Settled interest for a user; absent records read as zero."""
        return self.interest.get(user, ZERO_INTEREST)

    def get_interest_record(self, user: str) -> Optional[AccruedInterest]:
        return self.interest.get(user)

    def get_global_state(self) -> GlobalState:
        return self.globals[GLOBAL_KEY]

    def get_balance(self, wallet: str) -> int:
        """Base-asset balance of a wallet (0 if it never held any)."""
        return self.balances.get(wallet, 0)

    def list_stakers(self) -> List[str]:
        return sorted(self.stakes)

    def list_borrowers(self) -> List[str]:
        return sorted(self.loans)

    def total_supply(self) -> int:
        """Base asset held across all wallets other than the issuance wallet."""
        return sum(bal for wallet, bal in sorted(self.balances.items()) if wallet != SYSTEM_WALLET)

    def _table(self, name: str) -> Dict[str, Any]:
        return {
            TABLE_STAKES: self.stakes,
            TABLE_LOANS: self.loans,
            TABLE_INTEREST: self.interest,
            TABLE_GLOBALS: self.globals,
        }[name]

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_height(self, new_height: int) -> None:
        """
        Advance the ledger's block height.

        Height never moves backwards; staying at the same height is allowed.

        Raises:
            ValueError: If new_height is below the current height
        """
        require_int(new_height, "new_height")
        if new_height < self._height:
            raise ValueError(
                f"Cannot move height backwards: {new_height} < {self._height}"
            )
        self._height = new_height

    # ========================================================================
    # FUNDING (Mutating)
    # ========================================================================

    def set_balance(self, wallet: str, quantity: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This method bypasses the audit trail and is only available
        in test mode. Use issue() otherwise.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use issue() to fund wallets. "
                "Set test_mode=True when creating Ledger for testing."
            )
        require_int(quantity, "quantity")
        if quantity < 0:
            raise ValueError(f"balance cannot be negative, got {quantity}")
        self.balances[wallet] = quantity

    def issue(self, wallet: str, amount: int) -> ExecuteResult:
        """Credit ``amount`` of base asset to ``wallet`` from the issuance wallet."""
        pending = build_transaction(
            self,
            [Move(amount, SYSTEM_WALLET, wallet, "issue")],
            origin=TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, "issue", subject=wallet),
        )
        return self.execute(pending)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{height}
        """
        return f"exec:{self.name}:{sequence:012d}:{self._height}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and record changes are validated before any of them is
        written, so a rejection leaves no trace other than ``last_rejection``.

        Validation covers:
        - Block height (a pending transaction cannot come from the future;
          one that changes records must be built at the current height)
        - Every move, in order, against running wallet balances
        - Every record change's ``old`` snapshot against the stored record

        Args:
            pending: PendingTransaction to execute

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed (see last_rejection)
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        error = self._validate_pending(pending)
        if error is not None:
            self.last_rejection = error
            if self.verbose:
                print(f"✗ REJECTED: {error}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            changes=pending.changes,
            origin=pending.origin,
            height=pending.height,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_height=self._height,
            sequence_number=sequence,
        )

        self._execute_moves(tx.moves)
        self._apply_changes(tx.changes)

        # Log transaction (always - audit trail is mandatory)
        self.transaction_log.append(tx)
        self.last_rejection = None

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print Transaction.__repr__ with a result line in place of the closing border."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_pending(self, pending: PendingTransaction) -> Optional[LedgerError]:
        """
        Validate a pending transaction against all constraints.

        Returns:
            None if the transaction can be applied, otherwise the LedgerError
            describing the first failure.
        """
        if pending.height > self._height:
            return LedgerError(
                f"pending height {pending.height} is ahead of ledger height {self._height}"
            )
        # Record changes carry accrual checkpoints taken at the build height.
        if pending.changes and pending.height != self._height:
            return LedgerError(
                f"pending built at height {pending.height} cannot change records "
                f"at ledger height {self._height}"
            )

        # Transfers are checked one at a time, so a later move may spend
        # what an earlier move in the same transaction credited.
        running: Dict[str, int] = {}
        for move in pending.moves:
            source_balance = running.get(move.source, self.get_balance(move.source))
            # SYSTEM_WALLET is exempt from balance validation (issuance)
            if move.source != SYSTEM_WALLET and source_balance < move.quantity:
                return InsufficientFunds(
                    f"{move.source} holds {source_balance}, "
                    f"cannot transfer {move.quantity} ({move.purpose})"
                )
            running[move.source] = source_balance - move.quantity
            running[move.dest] = running.get(move.dest, self.get_balance(move.dest)) + move.quantity

        staged: Dict[tuple, Any] = {}
        for change in pending.changes:
            key = (change.table, change.key)
            current = staged[key] if key in staged else self._table(change.table).get(change.key)
            if current != change.old:
                return StaleRecord(
                    f"{change.table}/{change.key} changed since the transaction was built: "
                    f"expected {change.old!r}, found {current!r}"
                )
            staged[key] = change.new

        return None

    def _execute_moves(self, moves) -> None:
        for move in moves:
            self.balances[move.source] = self.get_balance(move.source) - move.quantity
            self.balances[move.dest] = self.get_balance(move.dest) + move.quantity

    def _apply_changes(self, changes) -> None:
        for change in changes:
            table = self._table(change.table)
            if change.new is None:
                table.pop(change.key, None)
            else:
                table[change.key] = change.new

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create an independent copy of this ledger.

        Records are immutable, so copying the containers is enough to make
        the clone's state fully independent of the original.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._config = self._config
        cloned.stakes = dict(self.stakes)
        cloned.loans = dict(self.loans)
        cloned.interest = dict(self.interest)
        cloned.globals = dict(self.globals)
        cloned.balances = dict(self.balances)
        cloned.transaction_log = list(self.transaction_log)
        cloned.last_rejection = None
        cloned._initial_height = self._initial_height
        cloned._height = self._height
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned._next_sequence = self._next_sequence
        return cloned

    def clone_at(self, target_height: int) -> Ledger:
        """
        Create a copy of this ledger as it existed at a past block height.

        Unwind algorithm:
        1. Clone the current ledger state
        2. Walk backward through transactions executed after target_height
        3. Reverse each one: moves are returned, records restored to ``old``
        4. Keep only the log entries executed at or before target_height

        Balances set via set_balance() are preserved, since they sit in the
        current state and are never unwound.

        Raises:
            ValueError: If target_height is in the future
        """
        if target_height > self._height:
            raise ValueError(f"Target height {target_height} is in the future")

        cloned = self.clone()
        cloned._height = target_height
        cloned.transaction_log = [
            tx for tx in self.transaction_log
            if tx.execution_height <= target_height
        ]
        cloned._next_sequence = len(cloned.transaction_log)

        for tx in reversed(self.transaction_log):
            if tx.execution_height <= target_height:
                break
            for move in reversed(tx.moves):
                cloned.balances[move.source] = cloned.get_balance(move.source) + move.quantity
                cloned.balances[move.dest] = cloned.get_balance(move.dest) - move.quantity
            for change in reversed(tx.changes):
                table = cloned._table(change.table)
                if change.old is None:
                    table.pop(change.key, None)
                else:
                    table[change.key] = change.old

        return cloned

    def replay(self) -> Ledger:
        """
        Create a new ledger by replaying the transaction log.

        Starts from an empty store with the same config and initial height,
        then re-executes each logged transaction at its own height.

        Note: Balances set via set_balance() are NOT replayed because they
        are not part of the transaction log.

        Raises:
            LedgerError: If any logged transaction is rejected on replay
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            config=self._config,
            initial_height=self._initial_height,
            verbose=self.verbose,
            test_mode=self._test_mode,
        )

        for tx in self.transaction_log:
            if tx.execution_height > new_ledger.block_height:
                new_ledger.advance_height(tx.execution_height)
            pending = PendingTransaction(
                moves=tx.moves,
                changes=tx.changes,
                origin=tx.origin,
                height=tx.height,
            )
            if new_ledger.execute(pending) == ExecuteResult.REJECTED:
                raise LedgerError(
                    f"Replay failed at tx {tx.exec_id}: {new_ledger.last_rejection}"
                )

        if self._height > new_ledger.block_height:
            new_ledger.advance_height(self._height)
        return new_ledger

    # ========================================================================
    # AUDIT
    # ========================================================================

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the ledger invariants against the stored records.

        - total_staked equals the sum of stake amounts
        - total_borrowed equals the sum of loan principals
        - both rates lie in [0, max_rate_bps]

        Returns:
            Dict with keys 'valid', 'total_staked', 'sum_staked',
            'total_borrowed', 'sum_borrowed' and 'violations' (list of
            human-readable descriptions).

        Example:
            result = ledger.verify_invariants()
            assert result['valid'], result['violations']
        """
        state = self.get_global_state()
        sum_staked = sum(stake.amount for stake in self.stakes.values())
        sum_borrowed = sum(loan.principal for loan in self.loans.values())
        violations = []

        if state.total_staked != sum_staked:
            violations.append(
                f"total_staked {state.total_staked} != sum of stakes {sum_staked}"
            )
        if state.total_borrowed != sum_borrowed:
            violations.append(
                f"total_borrowed {state.total_borrowed} != sum of principals {sum_borrowed}"
            )
        for name in ("stake_rate_bps", "loan_rate_bps"):
            rate = getattr(state, name)
            if not 0 <= rate <= self._config.max_rate_bps:
                violations.append(f"{name} {rate} outside [0, {self._config.max_rate_bps}]")

        return {
            'valid': not violations,
            'total_staked': state.total_staked,
            'sum_staked': sum_staked,
            'total_borrowed': state.total_borrowed,
            'sum_borrowed': sum_borrowed,
            'violations': violations,
        }

    def verify_conservation(self, expected_supply: Optional[int] = None) -> Dict[str, Any]:
        """
        Verify that no base asset was created or destroyed outside issuance.

        Args:
            expected_supply: Amount expected across all wallets. Defaults to
                the amount issued from SYSTEM_WALLET, which is correct unless
                set_balance() was used.

        Returns:
            Dict with 'valid', 'supply', 'expected' and 'difference'.
        """
        supply = self.total_supply()
        if expected_supply is None:
            expected_supply = -self.get_balance(SYSTEM_WALLET)
        return {
            'valid': supply == expected_supply,
            'supply': supply,
            'expected': expected_supply,
            'difference': supply - expected_supply,
        }
