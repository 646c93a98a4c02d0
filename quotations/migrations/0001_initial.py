from django.conf import settings
from django.db import migrations, models
import django.core.validators
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="RouteRate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("origin_code", models.CharField(max_length=12)),
                ("destination_code", models.CharField(max_length=12)),
                ("rate_per_kg", models.DecimalField(decimal_places=4, max_digits=12)),
                ("effective_from", models.DateField()),
                ("effective_to", models.DateField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="updated_route_rates",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["origin_code", "destination_code", "-effective_from", "-id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("effective_to__isnull", True), ("is_active", True)),
                        fields=("origin_code", "destination_code"),
                        name="uniq_open_active_route_rate",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(blank=True, default="", max_length=120)),
                ("company_name", models.CharField(blank=True, default="", max_length=120)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
                ("phone", models.CharField(blank=True, default="", max_length=40)),
                ("address", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="customers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["name", "company_name", "id"]},
        ),
        migrations.CreateModel(
            name="SavedQuote",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("origin_code", models.CharField(max_length=12)),
                ("destination_code", models.CharField(max_length=12)),
                (
                    "chargeable_weight",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("sub_total", models.DecimalField(decimal_places=4, max_digits=14)),
                ("tax", models.DecimalField(decimal_places=4, max_digits=14)),
                ("grand_total", models.DecimalField(decimal_places=4, max_digits=14)),
                ("currency", models.CharField(default="PGK", max_length=3)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "applied_route_rate",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="quotes",
                        to="quotations.routerate",
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="quotes",
                        to="quotations.customer",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="quotes", to=settings.AUTH_USER_MODEL),
                ),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
        migrations.CreateModel(
            name="QuotePiece",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("weight_kg", models.DecimalField(decimal_places=3, max_digits=12)),
                ("length_cm", models.DecimalField(decimal_places=2, max_digits=12)),
                ("width_cm", models.DecimalField(decimal_places=2, max_digits=12)),
                ("height_cm", models.DecimalField(decimal_places=2, max_digits=12)),
                ("volumetric_weight_kg", models.DecimalField(decimal_places=3, max_digits=12)),
                (
                    "quote",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="pieces", to="quotations.savedquote"),
                ),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="QuoteLineItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveIntegerField()),
                ("name", models.CharField(max_length=80)),
                ("rate", models.DecimalField(decimal_places=4, max_digits=12)),
                ("sub_total", models.DecimalField(decimal_places=4, max_digits=14)),
                ("tax", models.DecimalField(decimal_places=4, max_digits=14)),
                ("total", models.DecimalField(decimal_places=4, max_digits=14)),
                (
                    "quote",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="line_items", to="quotations.savedquote"),
                ),
            ],
            options={
                "ordering": ["quote_id", "position"],
                "constraints": [
                    models.UniqueConstraint(fields=("quote", "position"), name="uniq_quote_line_position"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=80)),
                ("model_name", models.CharField(max_length=80)),
                ("object_id", models.CharField(blank=True, default="", max_length=64)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
    ]
