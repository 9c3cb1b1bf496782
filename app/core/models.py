"""
Core base model providing common functionality for all domain models.

This module contains the abstract base class inherited by the domain models
(payments.Payment, refunds.Refund). It is generic infrastructure with no
domain-specific logic.

Base Classes:
    BaseModel: Abstract model with audit timestamps (created_at, updated_at)

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Payment(BaseModel):
        total_amount = models.DecimalField(max_digits=12, decimal_places=2)

    class Refund(UUIDPrimaryKeyMixin, BaseModel):
        amount = models.DecimalField(max_digits=12, decimal_places=2)

Note:
    ``updated_at`` relies on ``auto_now``, which only fires on ``save()``.
    Code that writes through ``QuerySet.update()`` must pass
    ``updated_at=timezone.now()`` itself (see refunds.store).
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing audit timestamps.

    Fields:
        created_at: Set once when the record is inserted
        updated_at: Refreshed whenever the record is saved

    Note:
        This is an abstract model (Meta.abstract = True) so it doesn't
        create a database table. Fields are added to inheriting models.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        """Default string representation using primary key."""
        return f"{self.__class__.__name__}(id={self.pk})"
