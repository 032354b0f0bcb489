import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django_fsm
from django.db import migrations, models

import gateway.models.order


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Merchant",
            fields=[
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
                    "merchant_id",
                    models.CharField(
                        help_text="Public merchant identifier used in API requests",
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("name", models.CharField(max_length=200)),
                (
                    "secret_key",
                    models.CharField(
                        help_text="Shared secret for request and notification signatures",
                        max_length=128,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("inactive", "Inactive"),
                            ("suspended", "Suspended"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=20,
                    ),
                ),
            ],
            options={
                "verbose_name": "Merchant",
                "verbose_name_plural": "Merchants",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="ProviderConfig",
            fields=[
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
                    "account_name",
                    models.CharField(
                        help_text="Channel name, unique per merchant", max_length=100
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=[
                            ("passpay", "PassPay"),
                            ("unispay", "UniSpay"),
                            ("dhpay", "DhPay"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                (
                    "channel_type",
                    models.CharField(
                        choices=[("native", "Native"), ("wakeup", "Wakeup")],
                        default="native",
                        max_length=20,
                    ),
                ),
                (
                    "account_id",
                    models.CharField(
                        db_index=True,
                        help_text="Merchant id at the provider (mchid / mchNo / mchId)",
                        max_length=100,
                    ),
                ),
                (
                    "secret_key",
                    models.CharField(
                        help_text="Signing secret issued by the provider", max_length=255
                    ),
                ),
                (
                    "sub_channel_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Provider sub channel (PassPay pay_id, UniSpay payType)",
                        max_length=50,
                    ),
                ),
                (
                    "environment",
                    models.CharField(
                        choices=[("sandbox", "Sandbox"), ("production", "Production")],
                        default="production",
                        max_length=20,
                    ),
                ),
                (
                    "base_url",
                    models.URLField(
                        blank=True,
                        default="",
                        help_text="Overrides the provider base URL from settings",
                    ),
                ),
                (
                    "notify_url",
                    models.URLField(
                        blank=True,
                        default="",
                        help_text="Overrides the callback URL handed to the provider",
                    ),
                ),
                ("return_url", models.URLField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("inactive", "Inactive"),
                            ("suspended", "Suspended"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=20,
                    ),
                ),
                ("currency", models.CharField(default="INR", max_length=3)),
                ("supports_collection", models.BooleanField(default=True)),
                ("supports_payout", models.BooleanField(default=False)),
                (
                    "priority",
                    models.PositiveSmallIntegerField(
                        default=5,
                        help_text="1 is the highest priority",
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(10),
                        ],
                    ),
                ),
                (
                    "collection_min_amount",
                    models.PositiveBigIntegerField(blank=True, null=True),
                ),
                (
                    "collection_max_amount",
                    models.PositiveBigIntegerField(blank=True, null=True),
                ),
                (
                    "collection_daily_limit",
                    models.PositiveBigIntegerField(blank=True, null=True),
                ),
                (
                    "collection_monthly_limit",
                    models.PositiveBigIntegerField(blank=True, null=True),
                ),
                (
                    "payout_min_amount",
                    models.PositiveBigIntegerField(blank=True, null=True),
                ),
                (
                    "payout_max_amount",
                    models.PositiveBigIntegerField(blank=True, null=True),
                ),
                (
                    "payout_daily_limit",
                    models.PositiveBigIntegerField(blank=True, null=True),
                ),
                (
                    "payout_monthly_limit",
                    models.PositiveBigIntegerField(blank=True, null=True),
                ),
                (
                    "fee_percentage",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0"),
                        help_text="Percentage of the amount, e.g. 2.50",
                        max_digits=5,
                    ),
                ),
                (
                    "fee_fixed",
                    models.PositiveBigIntegerField(
                        default=0, help_text="Flat fee per order in minor units"
                    ),
                ),
                (
                    "merchant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="provider_configs",
                        to="gateway.merchant",
                    ),
                ),
            ],
            options={
                "verbose_name": "Provider Config",
                "verbose_name_plural": "Provider Configs",
                "ordering": ["priority", "created_at"],
                "indexes": [
                    models.Index(
                        fields=["merchant", "status", "priority"],
                        name="provider_config_routing_idx",
                    ),
                    models.Index(
                        fields=["provider", "account_id"],
                        name="provider_config_account_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("merchant", "account_name"),
                        name="provider_config_unique_account_name",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
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
                    "order_id",
                    models.CharField(
                        default=gateway.models.order.generate_order_id,
                        editable=False,
                        max_length=40,
                        unique=True,
                    ),
                ),
                (
                    "merchant_order_id",
                    models.CharField(
                        help_text="Caller-supplied order id, unique per merchant",
                        max_length=64,
                    ),
                ),
                (
                    "direction",
                    models.CharField(
                        choices=[("collection", "Collection"), ("payout", "Payout")],
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        help_text="Amount in minor units (e.g. paise)"
                    ),
                ),
                ("currency", models.CharField(default="INR", max_length=3)),
                (
                    "fee",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Fee in minor units, computed from the channel at acceptance",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("success", "Success"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Incremented on every persisted transition"
                    ),
                ),
                (
                    "usage_reserved",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the amount is still counted on usage counters",
                    ),
                ),
                (
                    "provider_reference",
                    models.CharField(
                        blank=True, db_index=True, default="", max_length=128
                    ),
                ),
                (
                    "provider_status",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Last normalised provider status seen for this order",
                        max_length=20,
                    ),
                ),
                ("pay_url", models.TextField(blank=True, default="")),
                (
                    "utr",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Bank Unique Transaction Reference",
                        max_length=64,
                    ),
                ),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("notify_url", models.URLField(blank=True, default="")),
                (
                    "extra",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Payee details and caller metadata",
                    ),
                ),
                ("processing_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "merchant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="gateway.merchant",
                    ),
                ),
                (
                    "provider_config",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="gateway.providerconfig",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["provider_config", "merchant_order_id"],
                        name="order_provider_lookup_idx",
                    ),
                    models.Index(
                        fields=["status", "created_at"],
                        name="order_status_created_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("merchant", "merchant_order_id"),
                        name="order_unique_merchant_order_id",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="order_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UsageCounter",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
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
                    "direction",
                    models.CharField(
                        choices=[("collection", "Collection"), ("payout", "Payout")],
                        max_length=20,
                    ),
                ),
                (
                    "period",
                    models.CharField(
                        choices=[("day", "Day"), ("month", "Month")], max_length=10
                    ),
                ),
                ("period_start", models.DateField()),
                ("used", models.PositiveBigIntegerField(default=0)),
                (
                    "merchant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="usage_counters",
                        to="gateway.merchant",
                    ),
                ),
                (
                    "provider_config",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="usage_counters",
                        to="gateway.providerconfig",
                    ),
                ),
            ],
            options={
                "verbose_name": "Usage Counter",
                "verbose_name_plural": "Usage Counters",
                "ordering": ["-period_start"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=(
                            "merchant",
                            "provider_config",
                            "direction",
                            "period",
                            "period_start",
                        ),
                        name="usage_counter_unique_key",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ProviderCallback",
            fields=[
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
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("provider", models.CharField(db_index=True, max_length=20)),
                (
                    "body_digest",
                    models.CharField(
                        help_text="SHA-256 of the raw request body", max_length=64
                    ),
                ),
                (
                    "merchant_order_id",
                    models.CharField(
                        blank=True, db_index=True, default="", max_length=64
                    ),
                ),
                ("payload", models.JSONField(default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("received", "Received"),
                            ("applied", "Applied"),
                            ("duplicate", "Duplicate"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="received",
                        max_length=20,
                    ),
                ),
                (
                    "error_code",
                    models.CharField(blank=True, default="", max_length=50),
                ),
                ("error_message", models.TextField(blank=True, default="")),
                ("delivery_count", models.PositiveIntegerField(default=1)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="callbacks",
                        to="gateway.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Provider Callback",
                "verbose_name_plural": "Provider Callbacks",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "body_digest"),
                        name="provider_callback_unique_body",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="MerchantNotification",
            fields=[
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
                    "order_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("success", "Success"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                        ],
                        max_length=20,
                    ),
                ),
                ("notify_url", models.URLField()),
                ("payload", models.JSONField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("delivered", "Delivered"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True, default="")),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notifications",
                        to="gateway.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Merchant Notification",
                "verbose_name_plural": "Merchant Notifications",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "updated_at"],
                        name="notification_status_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("order", "order_status"),
                        name="merchant_notification_unique_status",
                    )
                ],
            },
        ),
    ]
