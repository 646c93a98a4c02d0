import logging
from decimal import Decimal

from django.conf import settings
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.paginator import Paginator
from django.db import IntegrityError
from django.db.models import Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from .constants.charges import ANCILLARY_CHARGE_RULES, PUD_LOCATIONS, VOLUMETRIC_DIVISOR
from .forms import CustomerForm, QuoteForm, QuotePieceFormSet, RouteRateForm
from .models import Customer, RouteRate, SavedQuote
from .services.audit import log_admin_action
from .services.calculation import QuoteRejection, generate_quote
from .services.chargeable_weight import Piece, calculate_chargeable_weight
from .services.persistence import save_quote
from .services.rate_table import (
    available_locations,
    effective_route_rates,
    get_rate_table,
    normalize_location_code,
    replace_route_rate,
)


logger = logging.getLogger(__name__)


def _volumetric_divisor() -> Decimal:
    return Decimal(str(getattr(settings, "AIR_VOLUMETRIC_FACTOR", VOLUMETRIC_DIVISOR)))


def _pud_locations() -> frozenset[str]:
    return frozenset(normalize_location_code(code) for code in getattr(settings, "PUD_LOCATIONS", PUD_LOCATIONS))


def _currency() -> str:
    return getattr(settings, "QUOTE_CURRENCY", "PGK")


def _staff_only(request):
    if request.user.is_staff:
        return None
    messages.error(request, "You do not have permission to access the control panel.")
    return redirect("quotations:new_quote")


@login_required
def new_quote(request):
    rate_table = get_rate_table()
    locations = available_locations(rate_table)

    if request.method == "POST":
        form = QuoteForm(request.POST, locations=locations)
        formset = QuotePieceFormSet(request.POST, prefix="pieces")

        if form.is_valid() and formset.is_valid():
            pieces = [Piece.from_mapping(data) for data in formset.pieces_data()]
            origin = form.cleaned_data["origin"]
            destination = form.cleaned_data["destination"]

            result = generate_quote(
                pieces=pieces,
                origin=origin,
                destination=destination,
                rate_table=rate_table,
                rules=ANCILLARY_CHARGE_RULES,
                pud_locations=_pud_locations(),
                volumetric_divisor=_volumetric_divisor(),
            )
            if isinstance(result, QuoteRejection):
                logger.info("Quote %s -> %s rejected: %s", origin, destination, result.reason.value)
                form.add_error(None, result.message)
                return render(request, "quotations/new_quote.html", {"form": form, "formset": formset})

            route_rate_id = rate_table[origin][destination].get("route_rate_id")
            saved = save_quote(
                quote=result,
                pieces=pieces,
                user=request.user,
                customer=form.cleaned_data.get("customer"),
                route_rate=RouteRate.objects.filter(id=route_rate_id).first() if route_rate_id else None,
                currency=_currency(),
                volumetric_divisor=_volumetric_divisor(),
            )
            messages.success(request, "Quote saved successfully.")
            return redirect("quotations:quote_result", quote_id=saved.id)
    else:
        form = QuoteForm(locations=locations)
        formset = QuotePieceFormSet(prefix="pieces")

    return render(request, "quotations/new_quote.html", {"form": form, "formset": formset})


@login_required
@require_POST
def chargeable_weight_preview(request):
    formset = QuotePieceFormSet(request.POST, prefix="pieces")
    if not formset.is_valid():
        return JsonResponse(
            {
                "errors": [form.errors.get_json_data() for form in formset.forms],
                "non_form_errors": formset.non_form_errors().get_json_data(),
            },
            status=400,
        )
    pieces = [Piece.from_mapping(data) for data in formset.pieces_data()]
    weight = calculate_chargeable_weight(pieces, volumetric_divisor=_volumetric_divisor())
    return JsonResponse({"chargeable_weight": weight})


@login_required
def quote_result(request, quote_id: int):
    quote_query = SavedQuote.objects.select_related("customer", "user").prefetch_related("line_items", "pieces")
    if request.user.is_staff:
        quote = get_object_or_404(quote_query, id=quote_id)
    else:
        quote = get_object_or_404(quote_query, id=quote_id, user=request.user)
    return render(request, "quotations/result.html", {"quote": quote})


@login_required
def quote_history(request):
    query = request.GET.get("q", "").strip()

    quotes = SavedQuote.objects.select_related("user", "customer")
    if not request.user.is_staff:
        quotes = quotes.filter(user=request.user)

    if query:
        filters = (
            Q(origin_code__icontains=query)
            | Q(destination_code__icontains=query)
            | Q(customer__name__icontains=query)
            | Q(customer__company_name__icontains=query)
        )
        reference = query.upper().removeprefix("Q-").lstrip("0")
        if reference.isdecimal():
            filters |= Q(id=int(reference))
        quotes = quotes.filter(filters)

    paginator = Paginator(quotes.order_by("-created_at", "-id"), 30)
    page_obj = paginator.get_page(request.GET.get("page"))
    return render(
        request,
        "quotations/history.html",
        {
            "quotes": page_obj.object_list,
            "page_obj": page_obj,
            "query": query,
            "is_admin": request.user.is_staff,
        },
    )


@login_required
def customer_list(request):
    if request.method == "POST":
        customer_form = CustomerForm(request.POST)
        if customer_form.is_valid():
            customer = customer_form.save(commit=False)
            customer.created_by = request.user
            customer.save()
            log_admin_action(
                actor=request.user,
                action="CREATE_CUSTOMER",
                model_name="Customer",
                object_id=customer.id,
                metadata={"name": customer.name, "company_name": customer.company_name},
            )
            messages.success(request, "Customer saved successfully.")
            return redirect("quotations:customer_list")
    else:
        customer_form = CustomerForm()

    customers = Customer.objects.all()
    return render(request, "quotations/customers.html", {"customer_form": customer_form, "customers": customers})


@login_required
def customer_edit(request, customer_id: int):
    customer = get_object_or_404(Customer, id=customer_id)
    if request.method == "POST":
        customer_form = CustomerForm(request.POST, instance=customer)
        if customer_form.is_valid():
            customer = customer_form.save()
            log_admin_action(
                actor=request.user,
                action="UPDATE_CUSTOMER",
                model_name="Customer",
                object_id=customer.id,
                metadata={"changed": customer_form.changed_data},
            )
            messages.success(request, "Customer updated successfully.")
            return redirect("quotations:customer_list")
    else:
        customer_form = CustomerForm(instance=customer)
    return render(request, "quotations/customer_edit.html", {"customer_form": customer_form, "customer": customer})


@login_required
def admin_rates(request):
    denied = _staff_only(request)
    if denied:
        return denied

    if request.method == "POST":
        rate_form = RouteRateForm(request.POST, prefix="rate")
        if rate_form.is_valid():
            origin_code = rate_form.cleaned_data["origin_code"]
            destination_code = rate_form.cleaned_data["destination_code"]
            rate_per_kg = rate_form.cleaned_data["rate_per_kg"]
            try:
                new_rate = replace_route_rate(
                    origin_code=origin_code,
                    destination_code=destination_code,
                    rate_per_kg=rate_per_kg,
                    updated_by=request.user,
                )
            except IntegrityError:
                logger.warning("Concurrent update on route rate %s -> %s", origin_code, destination_code)
                messages.error(request, "The rate could not be saved because of a concurrent update. Please try again.")
                return redirect("quotations:admin_rates")

            log_admin_action(
                actor=request.user,
                action="CREATE_RATE",
                model_name="RouteRate",
                object_id=new_rate.id,
                metadata={
                    "origin_code": origin_code,
                    "destination_code": destination_code,
                    "rate_per_kg": rate_per_kg,
                },
            )
            messages.success(request, "Route rate saved successfully.")
            return redirect("quotations:admin_rates")
    else:
        rate_form = RouteRateForm(prefix="rate")

    return render(
        request,
        "quotations/admin_rates.html",
        {"rate_form": rate_form, "route_rates": effective_route_rates()},
    )


def home_redirect(request):
    if request.user.is_authenticated:
        return redirect("quotations:new_quote")
    return redirect("login")
