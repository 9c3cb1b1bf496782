"""
Celery configuration for the refund workflow service.

Celery runs the background side of refund processing:
- Payment reconciliation retried after complete() could not reach the gateway
- The periodic sweep of completed refunds still awaiting reconciliation

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps; the beat schedule
lives in settings.CELERY_BEAT_SCHEDULE.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
