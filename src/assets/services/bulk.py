"""Bulk import service for assets and users.

Rows are validated one at a time with the same forms the single-record
operations use. Each row commits or fails on its own and the caller
receives a per-row report instead of an all-or-nothing result.
"""

import logging

from openpyxl import load_workbook

from django.core.exceptions import ValidationError

from accounts.forms import UserImportForm

from ..exceptions import atomic_transition
from ..forms import form_errors
from . import history
from .permissions import ActorContext, require
from .state import create_asset

logger = logging.getLogger(__name__)

# Columns whose values are matched case-insensitively against choices
LOWERCASE_COLUMNS = ("category", "role", "request_type")


def _header_key(value) -> str:
    return str(value).strip().lower().replace(" ", "_") if value else ""


def read_rows(file) -> list[dict]:
    """Read the first sheet of an .xlsx file into a list of row dicts.

    Header cells become keys ("Asset Tag" -> "asset_tag"); blank rows
    are skipped.
    """
    wb = load_workbook(file, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        headers = [_header_key(cell) for cell in next(rows, ())]
        result = []
        for values in rows:
            if all(v is None or str(v).strip() == "" for v in values):
                continue
            result.append(
                {h: v for h, v in zip(headers, values) if h}
            )
        return result
    finally:
        wb.close()


def _normalise(row: dict) -> dict:
    data = {}
    for key, value in row.items():
        if value is None:
            value = ""
        if isinstance(value, str):
            value = value.strip()
            if key in LOWERCASE_COLUMNS:
                value = value.lower()
        data[key] = value
    return data


def _errors_of(exc: ValidationError) -> dict:
    if hasattr(exc, "error_dict"):
        return exc.message_dict
    return {"__all__": exc.messages}


def _report(row_number, identifier, errors=None) -> dict:
    return {
        "row": row_number,
        "ok": not errors,
        "errors": errors or {},
        "identifier": identifier,
    }


def import_assets(actor: ActorContext, rows: list[dict]) -> list[dict]:
    """Create one asset per row; returns one report entry per row."""
    require(actor, "asset.import")
    seen_tags = set()
    report = []
    for row_number, row in enumerate(rows, start=1):
        data = _normalise(row)
        tag = str(data.get("asset_tag", "")).upper()
        if tag and tag in seen_tags:
            report.append(
                _report(
                    row_number,
                    tag,
                    {"asset_tag": ["Duplicate asset tag in this file."]},
                )
            )
            continue
        if tag:
            seen_tags.add(tag)
        try:
            asset = create_asset(actor, data)
        except ValidationError as exc:
            report.append(_report(row_number, tag, _errors_of(exc)))
            continue
        report.append(_report(row_number, asset.asset_tag))

    created = sum(1 for entry in report if entry["ok"])
    logger.info(
        "Asset import by %s: %d created, %d rejected",
        actor.name,
        created,
        len(report) - created,
    )
    return report


def _create_user(actor: ActorContext, data: dict):
    form = UserImportForm(data)
    if not form.is_valid():
        raise ValidationError(form_errors(form))
    if form.cleaned_data["role"] == "super_admin" and (
        actor.role != "super_admin"
    ):
        raise ValidationError(
            {"role": ["Only a super admin may create super admins."]}
        )
    department = form.cleaned_data.get("department")
    if (
        form.cleaned_data["role"] == "department_head"
        and department.head is not None
    ):
        raise ValidationError(
            {"role": [f"{department} already has a department head."]}
        )
    with atomic_transition():
        user = form.save(commit=False)
        user.is_staff = user.is_admin_staff
        user.set_unusable_password()
        user.save()
        history.record(
            user,
            "created",
            actor=actor,
            new_value=user.role,
            remark="Bulk import",
        )
    return user


def import_users(actor: ActorContext, rows: list[dict]) -> list[dict]:
    """Create one user per row; returns one report entry per row.

    Username, email and employee id must be unique both within the file
    and against existing accounts.
    """
    require(actor, "user.import")
    seen = {"username": set(), "email": set(), "employee_id": set()}
    report = []
    for row_number, row in enumerate(rows, start=1):
        data = _normalise(row)
        if "email" in data:
            data["email"] = str(data["email"]).lower()
        if data.get("employee_id") not in (None, ""):
            data["employee_id"] = str(data["employee_id"])
        identifier = str(data.get("username") or data.get("email") or "")

        duplicates = {
            field: ["Duplicate value in this file."]
            for field, values in seen.items()
            if data.get(field) and data[field] in values
        }
        if duplicates:
            report.append(_report(row_number, identifier, duplicates))
            continue
        for field, values in seen.items():
            if data.get(field):
                values.add(data[field])

        try:
            user = _create_user(actor, data)
        except ValidationError as exc:
            report.append(_report(row_number, identifier, _errors_of(exc)))
            continue
        report.append(_report(row_number, user.username))

    created = sum(1 for entry in report if entry["ok"])
    logger.info(
        "User import by %s: %d created, %d rejected",
        actor.name,
        created,
        len(report) - created,
    )
    return report
