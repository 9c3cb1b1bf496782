import uuid

import django.utils.timezone
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Refund",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "payment_id",
                    models.CharField(
                        db_index=True,
                        editable=False,
                        help_text="Gateway identifier of the payment being refunded",
                        max_length=64,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Refund amount",
                        max_digits=12,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("rejected", "Rejected"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the refund (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "reason",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Reason for the refund",
                        max_length=500,
                    ),
                ),
                (
                    "method",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("original_method", "Original Payment Method"),
                            ("cash", "Cash"),
                            ("voucher", "Voucher"),
                            ("bank_transfer", "Bank Transfer"),
                            ("room_credit", "Room Credit"),
                        ],
                        help_text="Channel through which the money is returned",
                        max_length=32,
                        null=True,
                    ),
                ),
                (
                    "notes",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Staff notes appended at each transition",
                        max_length=2000,
                    ),
                ),
                ("requested_by", models.CharField(max_length=150)),
                ("approved_by", models.CharField(blank=True, default="", max_length=150)),
                ("processed_by", models.CharField(blank=True, default="", max_length=150)),
                ("cancelled_by", models.CharField(blank=True, default="", max_length=150)),
                (
                    "requested_at",
                    models.DateTimeField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        help_text="When the refund was requested",
                    ),
                ),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the refund reached a terminal state",
                        null=True,
                    ),
                ),
                (
                    "reconciliation_pending",
                    models.BooleanField(
                        default=False,
                        help_text="Completed, but payment status not yet reconciled",
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each write",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["payment_id", "status"],
                        name="refund_payment_status_idx",
                    ),
                    models.Index(
                        fields=["status", "requested_at"],
                        name="refund_status_requested_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="refund_amount_positive",
                    )
                ],
            },
        ),
    ]
