from decimal import Decimal

from django import forms
from django.forms import BaseFormSet, formset_factory

from .models import Customer
from .services.rate_table import normalize_location_code


MAX_PIECES = 200


class QuoteForm(forms.Form):
    origin = forms.ChoiceField(choices=(), label="Origin")
    destination = forms.ChoiceField(choices=(), label="Destination")
    customer = forms.ModelChoiceField(
        queryset=Customer.objects.all(),
        required=False,
        empty_label="-- Select Existing Customer --",
        label="Customer",
    )

    def __init__(self, *args, locations: list[str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        location_choices = [("", "Select location")] + [(code, code) for code in locations or []]
        self.fields["origin"].choices = location_choices
        self.fields["destination"].choices = location_choices


class PieceInputForm(forms.Form):
    # Blank dimensions count as zero; an all-blank row is an empty piece.
    weight_kg = forms.DecimalField(label="Weight (kg)", required=False, min_value=Decimal("0"), max_digits=12, decimal_places=3)
    length_cm = forms.DecimalField(label="Length (cm)", required=False, min_value=Decimal("0"), max_digits=12, decimal_places=2)
    width_cm = forms.DecimalField(label="Width (cm)", required=False, min_value=Decimal("0"), max_digits=12, decimal_places=2)
    height_cm = forms.DecimalField(label="Height (cm)", required=False, min_value=Decimal("0"), max_digits=12, decimal_places=2)


class PieceFormSet(BaseFormSet):
    def clean(self) -> None:
        super().clean()
        if any(self.errors):
            return

        if len(self.forms) > MAX_PIECES:
            raise forms.ValidationError(f"A quote cannot have more than {MAX_PIECES} pieces.")

    def pieces_data(self) -> list[dict]:
        return [form.cleaned_data for form in self.forms if form.cleaned_data]


QuotePieceFormSet = formset_factory(
    PieceInputForm,
    formset=PieceFormSet,
    extra=1,
    max_num=MAX_PIECES,
    validate_max=True,
)


class CustomerForm(forms.ModelForm):
    class Meta:
        model = Customer
        fields = ("name", "company_name", "email", "phone", "address")
        labels = {
            "name": "Name",
            "company_name": "Company",
            "email": "Email",
            "phone": "Phone",
            "address": "Address",
        }
        widgets = {"address": forms.Textarea(attrs={"rows": 3})}


class RouteRateForm(forms.Form):
    origin_code = forms.CharField(label="Origin code", max_length=12)
    destination_code = forms.CharField(label="Destination code", max_length=12)
    rate_per_kg = forms.DecimalField(label="Rate per kg", min_value=Decimal("0.0001"), max_digits=12, decimal_places=4)

    def clean_origin_code(self):
        return normalize_location_code(self.cleaned_data["origin_code"])

    def clean_destination_code(self):
        return normalize_location_code(self.cleaned_data["destination_code"])

    def clean(self):
        cleaned_data = super().clean()
        origin = cleaned_data.get("origin_code")
        destination = cleaned_data.get("destination_code")
        if origin and destination and origin == destination:
            raise forms.ValidationError("Origin and destination cannot be the same for a route.")
        return cleaned_data
