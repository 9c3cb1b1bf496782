"""
Refunds app configuration.

This app provides the refund workflow engine: state machine, validation,
payment reconciliation and statistics.
"""

from django.apps import AppConfig


class RefundsConfig(AppConfig):
    """Configuration for the refunds application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "refunds"
    verbose_name = "Refunds"
