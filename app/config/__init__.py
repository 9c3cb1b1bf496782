# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings and the Celery application for the refund workflow service.
#
# Import Celery app to ensure it's loaded when Django starts, so shared_task
# decorators in installed apps bind to it.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
