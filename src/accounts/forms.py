"""Forms for the accounts app."""

import re

from django import forms
from django.contrib.auth.forms import UserChangeForm, UserCreationForm

from assets.forms import DepartmentByNameField

from .models import CustomUser


def _clean_phone(phone):
    phone = (phone or "").strip()
    if phone and not re.match(r"^[0-9\s\-\(\)\+]+$", phone):
        raise forms.ValidationError(
            "Phone number may only contain digits, spaces, hyphens, "
            "parentheses, and +."
        )
    return phone


class CustomUserCreationForm(UserCreationForm):
    class Meta:
        model = CustomUser
        fields = ("username", "email", "display_name", "employee_id")


class CustomUserChangeForm(UserChangeForm):
    class Meta:
        model = CustomUser
        fields = (
            "username",
            "email",
            "display_name",
            "employee_id",
            "phone_number",
            "first_name",
            "last_name",
        )


class UserImportForm(forms.ModelForm):
    """One spreadsheet row of the user import."""

    department = DepartmentByNameField(required=False)

    class Meta:
        model = CustomUser
        fields = (
            "username",
            "email",
            "first_name",
            "last_name",
            "display_name",
            "employee_id",
            "phone_number",
            "department",
            "role",
        )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["role"].required = False

    def clean_role(self):
        return self.cleaned_data.get("role") or "user"

    def clean_email(self):
        email = self.cleaned_data.get("email", "").strip().lower()
        if (
            CustomUser.objects.filter(email__iexact=email)
            .exclude(pk=self.instance.pk)
            .exists()
        ):
            raise forms.ValidationError(
                "This email address is already in use."
            )
        return email

    def clean_employee_id(self):
        # Blank employee ids are stored as NULL so they stay unique
        return (self.cleaned_data.get("employee_id") or "").strip() or None

    def clean_phone_number(self):
        return _clean_phone(self.cleaned_data.get("phone_number"))

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("role") == "department_head" and not cleaned.get(
            "department"
        ):
            self.add_error(
                "department", "Department heads need a department."
            )
        return cleaned
