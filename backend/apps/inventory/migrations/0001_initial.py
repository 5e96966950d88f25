import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


PORTION_STATUS_CHOICES = [
    ("unused", "unused"),
    ("used", "used"),
    ("spoiled", "spoiled"),
    ("wasted", "wasted"),
    ("stolen", "stolen"),
    ("missing", "missing"),
    ("damaged", "damaged"),
    ("expired", "expired"),
    ("consumed", "consumed"),
    ("in_transit", "in transit"),
    ("transferred", "transferred"),
    ("restored", "restored"),
]

LOG_ACTION_CHOICES = [
    ("batch_created", "batch created"),
    ("deducted_for_sale", "deducted for sale"),
    ("adjustment_spoilage", "spoilage"),
    ("adjustment_waste", "waste"),
    ("adjustment_theft", "theft"),
    ("adjustment_missing", "missing"),
    ("adjustment_damage", "damage"),
    ("adjustment_expiry", "expiry"),
    ("adjustment_staff_meal", "staff meal"),
    ("adjustment_other", "other adjustment"),
    ("transfer_initiated", "transfer initiated"),
    ("transfer_received", "transfer received"),
    ("transfer_cancelled", "transfer cancelled"),
    ("transfer_rejected", "transfer rejected"),
    ("transfer_shortfall", "transfer shortfall"),
    ("batch_count_corrected", "batch count corrected"),
    ("portion_restored", "portion restored"),
    ("quantity_restored", "quantity restored"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
        ("catalog", "0001_initial"),
        ("pos", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("batch_number", models.PositiveIntegerField()),
                ("label", models.CharField(blank=True, max_length=128, null=True)),
                ("source", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "quantity_received",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                (
                    "remaining_quantity",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                ("unit_cost", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ("received_at", models.DateTimeField()),
                ("expiration_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "branch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batches",
                        to="core.branch",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batches",
                        to="catalog.inventoryitem",
                    ),
                ),
                (
                    "source_batch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="derived_batches",
                        to="inventory.batch",
                    ),
                ),
            ],
            options={
                "db_table": "inventory_batch",
                "ordering": ["received_at", "batch_number", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("branch", "item", "batch_number"),
                        name="uq_inventory_batch_branch_item_number",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Portion",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("portion_number", models.PositiveIntegerField()),
                ("label", models.CharField(max_length=128, unique=True)),
                ("quantity", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("status", models.CharField(choices=PORTION_STATUS_CHOICES, default="unused", max_length=16)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "batch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="portions",
                        to="inventory.batch",
                    ),
                ),
                (
                    "current_branch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="portions",
                        to="core.branch",
                    ),
                ),
            ],
            options={
                "db_table": "inventory_portion",
                "ordering": ["batch", "portion_number"],
                "indexes": [
                    models.Index(fields=["current_branch", "status"], name="idx_inv_portion_branch_status"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("batch", "portion_number"),
                        name="uq_inventory_portion_batch_number",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("action", models.CharField(choices=LOG_ACTION_CHOICES, max_length=32)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="ledger_logs",
                        to="core.staffmember",
                    ),
                ),
                (
                    "batch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="logs",
                        to="inventory.batch",
                    ),
                ),
                (
                    "portion",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="logs",
                        to="inventory.portion",
                    ),
                ),
                (
                    "sale",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="ledger_logs",
                        to="pos.sale",
                    ),
                ),
            ],
            options={
                "db_table": "inventory_ledger_log",
                "ordering": ["-created_at", "id"],
                "indexes": [
                    models.Index(fields=["batch", "action"], name="idx_inv_log_batch_action"),
                    models.Index(fields=["created_at"], name="idx_inv_log_created"),
                ],
            },
        ),
    ]
