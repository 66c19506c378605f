"""
Test Suite for DrunkardMob.

This package contains tests for all modules:
- test_distributions.py: Distribution construction, merge and top-k
- test_walks.py: Walk store, window snapshots and the walk program
- test_delivery.py: Delivery pipeline and admission control
- test_companion.py: Companion aggregation and export
- test_engine.py: Scheduler, in-memory engine and graph utilities
- test_integration.py: End-to-end walk jobs
"""
