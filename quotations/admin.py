from django.contrib import admin

from .models import AuditLog, Customer, QuoteLineItem, QuotePiece, RouteRate, SavedQuote


class QuoteLineItemInline(admin.TabularInline):
    model = QuoteLineItem
    extra = 0
    readonly_fields = ("position", "name", "rate", "sub_total", "tax", "total")


class QuotePieceInline(admin.TabularInline):
    model = QuotePiece
    extra = 0
    readonly_fields = ("weight_kg", "length_cm", "width_cm", "height_cm", "volumetric_weight_kg")


@admin.register(SavedQuote)
class SavedQuoteAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "user",
        "customer",
        "origin_code",
        "destination_code",
        "chargeable_weight",
        "grand_total",
        "created_at",
    )
    list_filter = ("origin_code", "destination_code", "created_at")
    search_fields = ("user__username", "customer__name", "customer__company_name", "origin_code", "destination_code")
    inlines = [QuoteLineItemInline, QuotePieceInline]


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("name", "company_name", "email", "phone", "created_by", "updated_at")
    search_fields = ("name", "company_name", "email", "phone")


@admin.register(RouteRate)
class RouteRateAdmin(admin.ModelAdmin):
    list_display = ("origin_code", "destination_code", "rate_per_kg", "effective_from", "effective_to", "is_active", "updated_by")
    list_filter = ("is_active", "effective_from")
    search_fields = ("origin_code", "destination_code")


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "actor", "action", "model_name", "object_id")
    list_filter = ("action", "model_name", "created_at")
    search_fields = ("actor__username", "action", "model_name", "object_id")
