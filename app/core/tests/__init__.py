"""
Tests for the core app.
"""
