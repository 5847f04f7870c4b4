"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the staking and lending ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Asset conservation and aggregate-total invariants
2. atomicity.py - All-or-nothing operation semantics
3. determinism.py - Reproducible behavior and replay
4. temporal.py - Height ordering and historical reconstruction

These tests use hypothesis for property-based testing.
"""
