"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of a lending pool.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Capital, collateral and receipt accounting
2. atomicity.py - All-or-nothing operation semantics
3. idempotency.py - Repeated and same-round operations
4. determinism.py - Reproducible behavior
5. monotonicity.py - Indices never regress
6. liquidation.py - Threshold and collateral bounds of liquidation

These tests use hypothesis for property-based testing over random
operation sequences (see scenarios.py).
"""
