from datetime import date
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q


class RouteRate(models.Model):
    origin_code = models.CharField(max_length=12)
    destination_code = models.CharField(max_length=12)
    rate_per_kg = models.DecimalField(max_digits=12, decimal_places=4)
    effective_from = models.DateField()
    effective_to = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="updated_route_rates",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["origin_code", "destination_code", "-effective_from", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["origin_code", "destination_code"],
                condition=Q(is_active=True, effective_to__isnull=True),
                name="uniq_open_active_route_rate",
            )
        ]

    def __str__(self) -> str:
        return f"{self.origin_code}->{self.destination_code} {self.rate_per_kg} {self.effective_from}"

    def clean(self):
        if self.origin_code and self.origin_code == self.destination_code:
            raise ValidationError("Origin and destination must be different.")
        if self.rate_per_kg is not None and self.rate_per_kg < Decimal("0"):
            raise ValidationError({"rate_per_kg": "The rate cannot be negative."})

    def save(self, *args, **kwargs):
        self.origin_code = (self.origin_code or "").strip().upper()
        self.destination_code = (self.destination_code or "").strip().upper()
        if not self.effective_from:
            self.effective_from = date.today()
        super().save(*args, **kwargs)


class Customer(models.Model):
    name = models.CharField(max_length=120, blank=True, default="")
    company_name = models.CharField(max_length=120, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=40, blank=True, default="")
    address = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="customers",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "company_name", "id"]

    def __str__(self) -> str:
        return self.display_name

    def clean(self):
        if not self.name.strip() and not self.company_name.strip():
            raise ValidationError("A customer needs a name or a company name.")

    @property
    def display_name(self) -> str:
        if self.name and self.company_name and self.name != self.company_name:
            return f"{self.name} ({self.company_name})"
        return self.name or self.company_name

    @property
    def contact(self) -> str:
        return self.email or self.phone


class SavedQuote(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="quotes")
    customer = models.ForeignKey(
        Customer,
        on_delete=models.SET_NULL,
        related_name="quotes",
        null=True,
        blank=True,
    )
    applied_route_rate = models.ForeignKey(
        RouteRate,
        on_delete=models.SET_NULL,
        related_name="quotes",
        null=True,
        blank=True,
    )
    origin_code = models.CharField(max_length=12)
    destination_code = models.CharField(max_length=12)
    chargeable_weight = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    sub_total = models.DecimalField(max_digits=14, decimal_places=4)
    tax = models.DecimalField(max_digits=14, decimal_places=4)
    grand_total = models.DecimalField(max_digits=14, decimal_places=4)
    currency = models.CharField(max_length=3, default="PGK")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"Quote {self.reference} - {self.user}"

    @property
    def reference(self) -> str:
        return f"Q-{self.pk:06d}" if self.pk else ""

    @property
    def client_name(self) -> str:
        if self.customer:
            return self.customer.display_name
        return "Valued Customer"


class QuotePiece(models.Model):
    quote = models.ForeignKey(SavedQuote, on_delete=models.CASCADE, related_name="pieces")
    weight_kg = models.DecimalField(max_digits=12, decimal_places=3)
    length_cm = models.DecimalField(max_digits=12, decimal_places=2)
    width_cm = models.DecimalField(max_digits=12, decimal_places=2)
    height_cm = models.DecimalField(max_digits=12, decimal_places=2)
    volumetric_weight_kg = models.DecimalField(max_digits=12, decimal_places=3)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"Piece #{self.pk} - Quote #{self.quote_id}"


class QuoteLineItem(models.Model):
    quote = models.ForeignKey(SavedQuote, on_delete=models.CASCADE, related_name="line_items")
    position = models.PositiveIntegerField()
    name = models.CharField(max_length=80)
    rate = models.DecimalField(max_digits=12, decimal_places=4)
    sub_total = models.DecimalField(max_digits=14, decimal_places=4)
    tax = models.DecimalField(max_digits=14, decimal_places=4)
    total = models.DecimalField(max_digits=14, decimal_places=4)

    class Meta:
        ordering = ["quote_id", "position"]
        constraints = [
            models.UniqueConstraint(fields=["quote", "position"], name="uniq_quote_line_position"),
        ]

    def __str__(self) -> str:
        return f"{self.name} - Quote #{self.quote_id}"


class AuditLog(models.Model):
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action = models.CharField(max_length=80)
    model_name = models.CharField(max_length=80)
    object_id = models.CharField(max_length=64, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.action} {self.model_name} {self.object_id}".strip()
