#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lending Pool Step by Step

A pedagogical walk through the staking and lending ledger. Each step builds
on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation    - The empty pool, issuance, staking
  4-6:  Borrowing     - Loan limits, interest accrual, liquidation
  7-8:  Operations    - Pause and emergency withdrawal
  9-10: Time Travel   - clone_at, replay and the invariant audit

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from stakeledger import (
    Ledger, LendingContract, PoolConfig, SYSTEM_WALLET,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    owner: str = "admin"
    start_height: int = 100

    # Initial funding
    alice_funds: int = 10_000_000
    bob_funds: int = 10_000_000
    pool_liquidity: int = 5_000_000

    # Positions
    alice_stake: int = 3_000_000
    alice_loan: int = 2_000_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_stats(contract: LendingContract):
    stats = contract.get_contract_stats()
    print(f"total_staked:   {stats['total_staked']:>12,}")
    print(f"total_borrowed: {stats['total_borrowed']:>12,}")
    print(f"stake rate:     {stats['stake_rate_bps']:>12} bps")
    print(f"loan rate:      {stats['loan_rate_bps']:>12} bps")
    print(f"paused:         {stats['paused']!s:>12}")
    print(f"pool balance:   {contract.get_pool_balance():>12,}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_empty_pool() -> LendingContract:
    step_header(1, "The Empty Pool",
        "A pool starts with zero totals, the deployed rates and a block height.")

    print(">>> ledger = Ledger('tutorial', PoolConfig(owner='admin'), initial_height=100)")
    ledger = Ledger(
        "tutorial",
        PoolConfig(owner=CONFIG.owner),
        initial_height=CONFIG.start_height,
        verbose=True,
    )
    contract = LendingContract(ledger)

    section_header("Initial State")
    print(f"Block height: {ledger.block_height}")
    show_stats(contract)
    return contract


def step_02_issuance(contract: LendingContract) -> LendingContract:
    step_header(2, "Issuing the Base Asset",
        "Funds enter the ledger only through audited moves from the system wallet.")

    ledger = contract.ledger
    ledger.issue("alice", CONFIG.alice_funds)
    ledger.issue("bob", CONFIG.bob_funds)
    ledger.issue("pool", CONFIG.pool_liquidity)

    section_header("Key Insight")
    print(f"system balance: {ledger.get_balance(SYSTEM_WALLET):,}")
    print(f"total supply:   {ledger.total_supply():,}")
    print("The system wallet goes negative by exactly what was issued.")
    return contract


def step_03_stake(contract: LendingContract) -> LendingContract:
    step_header(3, "Staking",
        "A stake moves funds into the pool and opens a position.")

    print(f">>> contract.stake('alice', {CONFIG.alice_stake:,})")
    print(contract.stake("alice", CONFIG.alice_stake))
    print(f"\nPosition: {contract.get_stake('alice')}")

    section_header("Below the minimum")
    print(contract.stake("bob", 10))
    return contract


# ============================================================================
# PHASE 2: BORROWING (Steps 4-6)
# ============================================================================

def step_04_borrow(contract: LendingContract) -> LendingContract:
    step_header(4, "Borrowing Against a Stake",
        "The loan-to-value limit is collateral * 100 // 150.")

    print(f"max loan for alice: {contract.get_max_loan('alice'):,}")
    print(f"\n>>> contract.take_loan('alice', {CONFIG.alice_loan + 1:,})")
    print(contract.take_loan("alice", CONFIG.alice_loan + 1))
    print(f"\n>>> contract.take_loan('alice', {CONFIG.alice_loan:,})")
    print(contract.take_loan("alice", CONFIG.alice_loan))
    print(f"\ncollateral ratio: {contract.get_collateral_ratio('alice')}%")
    return contract


def step_05_accrual(contract: LendingContract) -> LendingContract:
    step_header(5, "Interest Accrual",
        "Interest accrues per tick: principal * rate_bps * ticks // 31,536,000.")

    contract.ledger.advance_height(CONFIG.start_height + 1)
    print(f"height:           {contract.ledger.block_height}")
    print(f"stake interest:   {contract.calculate_stake_interest('alice')}")
    print(f"loan interest:    {contract.calculate_loan_interest('alice')}")
    print(f"total debt:       {contract.get_total_debt('alice'):,}")
    print(f"collateral ratio: {contract.get_collateral_ratio('alice')}%")
    print(f"liquidatable:     {contract.is_liquidatable('alice')}")
    return contract


def step_06_liquidation(contract: LendingContract) -> LendingContract:
    step_header(6, "Liquidation",
        "Anyone may repay an under-collateralized loan and seize its collateral.")

    bob_before = contract.get_balance("bob")
    print(">>> contract.liquidate('bob', 'alice')")
    print(contract.liquidate("bob", "alice"))

    section_header("Aftermath")
    print(f"alice stake: {contract.get_stake('alice')}")
    print(f"alice loan:  {contract.get_loan('alice')}")
    print(f"bob profit:  {contract.get_balance('bob') - bob_before:,}")
    show_stats(contract)
    return contract


# ============================================================================
# PHASE 3: OPERATIONS (Steps 7-8)
# ============================================================================

def step_07_pause(contract: LendingContract) -> LendingContract:
    step_header(7, "Pausing the Contract",
        "While paused, every user operation is rejected with NOT_AUTHORIZED.")

    print(contract.toggle_contract_pause(CONFIG.owner))
    print(contract.stake("bob", 1_000_000))
    return contract


def step_08_emergency_withdraw(contract: LendingContract) -> LendingContract:
    step_header(8, "Emergency Withdrawal",
        "The owner may drain pool funds while paused; positions are untouched.")

    print(contract.emergency_withdraw(CONFIG.owner, 1_000_000))
    print(f"owner balance: {contract.get_balance(CONFIG.owner):,}")
    print(contract.toggle_contract_pause(CONFIG.owner))
    return contract


# ============================================================================
# PHASE 4: TIME TRAVEL (Steps 9-10)
# ============================================================================

def step_09_clone_at(contract: LendingContract) -> LendingContract:
    step_header(9, "Historical Reconstruction",
        "clone_at(height) unwinds every transaction executed after that height.")

    past = LendingContract(contract.ledger.clone_at(CONFIG.start_height))
    print(f"alice loan at height {CONFIG.start_height}: {past.get_loan('alice')}")
    print(f"alice loan now:            {contract.get_loan('alice')}")
    return contract


def step_10_audit(contract: LendingContract) -> LendingContract:
    step_header(10, "Replay and Audit",
        "Replaying the log reproduces the state; audits confirm the invariants.")

    ledger = contract.ledger
    ledger.verbose = False
    replayed = ledger.replay()
    print(f"replayed pool balance matches: {replayed.get_balance('pool') == ledger.get_balance('pool')}")
    print(f"invariants:   {ledger.verify_invariants()}")
    print(f"conservation: {ledger.verify_conservation()}")
    return contract


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       STAKING AND LENDING POOL - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    contract = step_01_empty_pool()
    for step in (
        step_02_issuance,
        step_03_stake,
        step_04_borrow,
        step_05_accrual,
        step_06_liquidation,
        step_07_pause,
        step_08_emergency_withdraw,
        step_09_clone_at,
        step_10_audit,
    ):
        wait_for_enter()
        contract = step(contract)

    print(f"\n{'='*70}")
    print("Tutorial complete.")
    print(f"{'='*70}")


if __name__ == "__main__":
    main()
