"""
Tests for the refunds app.

Covers validation, the transition table, model transitions, the record
store, locking, the workflow engine, reconciliation tasks and statistics.
"""
