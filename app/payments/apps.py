"""
Payments app configuration.

This app provides the payment records refunds are issued against and the
gateway port the refund workflow reconciles through.
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
