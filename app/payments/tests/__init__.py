"""
Tests for the payments app.

Covers the Payment model and the Django-backed payment gateway port.
"""
