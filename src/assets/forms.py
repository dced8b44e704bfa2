"""Forms for the assets app.

These forms are the single source of payload validation: the workflow
services, the JSON views and the bulk importer all validate through them.
"""

from django import forms
from django.utils import timezone

from .models import Asset, AssetRequest, Department, Ticket


def form_errors(form) -> dict:
    """Flatten a bound form's errors into a ValidationError-ready dict."""
    return {field: list(errors) for field, errors in form.errors.items()}


def clean_id(payload: dict, field: str, required: bool = True):
    """Return ``payload[field]`` as an integer id, or None when optional."""
    try:
        return forms.IntegerField(required=required).clean(payload.get(field))
    except forms.ValidationError as e:
        raise forms.ValidationError({field: e.messages})


def clean_flag(payload: dict, field: str) -> bool:
    """Read a checkbox-style flag; "false" and "0" count as False."""
    return forms.BooleanField(required=False).clean(payload.get(field))


class DepartmentByNameField(forms.ModelChoiceField):
    """Accept a department by name (as submitted by forms and imports)."""

    def __init__(self, **kwargs):
        kwargs.setdefault("to_field_name", "name")
        super().__init__(Department.objects.filter(is_active=True), **kwargs)

    def prepare_value(self, value):
        if isinstance(value, Department):
            return value.name
        return super().prepare_value(value)

    def to_python(self, value):
        if isinstance(value, Department):
            value = value.name
        return super().to_python(value)


class AssetForm(forms.ModelForm):
    """Asset creation form, shared by manual entry and bulk import."""

    department = DepartmentByNameField(required=False)

    class Meta:
        model = Asset
        fields = [
            "asset_tag",
            "name",
            "category",
            "brand",
            "model",
            "serial_number",
            "department",
            "location",
            "purchase_date",
            "purchase_cost",
            "warranty_end_date",
            "specifications",
            "notes",
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["asset_tag"].required = False
        self.fields["specifications"].required = False

    def clean_asset_tag(self):
        return (self.cleaned_data.get("asset_tag") or "").strip().upper()

    def clean_specifications(self):
        specs = self.cleaned_data.get("specifications")
        if specs in (None, ""):
            return {}
        if not isinstance(specs, dict):
            raise forms.ValidationError(
                "Specifications must be a mapping of name to value."
            )
        return specs


class AssetRequestForm(forms.ModelForm):
    """Payload for submitting or editing a procurement request."""

    quantity = forms.IntegerField(
        min_value=AssetRequest.MIN_QUANTITY,
        max_value=AssetRequest.MAX_QUANTITY,
    )
    specification = forms.CharField(
        min_length=AssetRequest.MIN_SPECIFICATION_LENGTH,
        max_length=AssetRequest.MAX_SPECIFICATION_LENGTH,
    )
    department = DepartmentByNameField()

    class Meta:
        model = AssetRequest
        fields = [
            "category",
            "quantity",
            "specification",
            "reason",
            "department",
            "location",
            "request_type",
            "expected_delivery_date",
            "notes",
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["request_type"].required = False

    def clean_request_type(self):
        return self.cleaned_data.get("request_type") or "regular"

    def clean_location(self):
        location = self.cleaned_data.get("location", "").strip()
        if not location:
            raise forms.ValidationError("This field is required.")
        return location

    def clean_expected_delivery_date(self):
        delivery = self.cleaned_data.get("expected_delivery_date")
        changed = (
            self.instance.pk is None
            or "expected_delivery_date" in self.changed_data
        )
        if delivery and changed and delivery <= timezone.localdate():
            raise forms.ValidationError(
                "Expected delivery date must be in the future."
            )
        return delivery


class TicketForm(forms.ModelForm):
    """Payload for raising or editing a support ticket.

    The attachment is checked by the ticket service before this form
    runs, so that a bad upload surfaces as InvalidAttachment.
    """

    department = DepartmentByNameField()

    class Meta:
        model = Ticket
        fields = [
            "title",
            "description",
            "location",
            "department",
            "priority",
            "issue_category",
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["priority"].required = False

    def clean_priority(self):
        return self.cleaned_data.get("priority") or "medium"

    def _clean_required_text(self, name):
        value = (self.cleaned_data.get(name) or "").strip()
        if not value:
            raise forms.ValidationError("This field is required.")
        return value

    def clean_title(self):
        return self._clean_required_text("title")

    def clean_description(self):
        return self._clean_required_text("description")

    def clean_location(self):
        return self._clean_required_text("location")
