"""Excel export service for assets and allocations."""

from io import BytesIO

import openpyxl
from openpyxl.styles import Font, PatternFill

from django.conf import settings
from django.db.models import Count, OuterRef, Subquery, Sum

from ..models import Allocation, Asset
from .permissions import (
    DENY,
    ActorContext,
    get_rule,
    require,
    scope_queryset,
)

# Threshold above which .iterator() is used for memory efficiency
ITERATOR_THRESHOLD = 1000
ITERATOR_CHUNK_SIZE = 1000

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(
    start_color="2563EB", end_color="2563EB", fill_type="solid"
)


def _can_see_costs(actor: ActorContext) -> bool:
    # Department heads are already scoped to their own department
    return get_rule(actor.role, "asset.view_costs") != DENY


def _write_header(ws, headers):
    ws.append(headers)
    for col_idx, _header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col_idx)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL


def _autosize(*sheets):
    for ws in sheets:
        for column_cells in ws.columns:
            max_length = max(
                len(str(cell.value or "")) for cell in column_cells
            )
            ws.column_dimensions[column_cells[0].column_letter].width = min(
                max_length + 2, 50
            )


def _iterate(queryset, total_count):
    # Use .iterator() for large datasets to reduce memory pressure
    if total_count > ITERATOR_THRESHOLD:
        return queryset.iterator(chunk_size=ITERATOR_CHUNK_SIZE)
    return queryset


def _date(value):
    return value.strftime("%Y-%m-%d") if value else ""


def _datetime(value):
    return value.strftime("%Y-%m-%dT%H:%M:%S") if value else ""


def _save(wb) -> BytesIO:
    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


def export_assets_xlsx(actor: ActorContext) -> BytesIO:
    """Export the assets visible to ``actor`` to an Excel workbook.

    Cost columns are only written for roles allowed to see costs.
    Returns a BytesIO containing the .xlsx file.
    """
    require_export(actor)
    base = scope_queryset(actor, "asset.export", Asset.objects.all())
    queryset = Asset.objects.with_related().filter(pk__in=base.values("pk"))
    queryset = queryset.annotate(
        _holder_name=Subquery(
            Allocation.objects.filter(
                asset=OuterRef("pk"), status="active"
            ).values("employee_name")[:1]
        )
    )
    show_costs = _can_see_costs(actor)

    wb = openpyxl.Workbook()

    # Summary sheet
    ws_summary = wb.active
    ws_summary.title = "Summary"
    total_count = base.count()
    ws_summary.append([f"{settings.SITE_NAME} Asset Export"])
    ws_summary["A1"].font = Font(bold=True, size=14)
    ws_summary.append([])
    ws_summary.append(["Total Assets", total_count])
    by_status = dict(
        base.order_by().values_list("status").annotate(n=Count("pk"))
    )
    for value, label in Asset.STATUS_CHOICES:
        ws_summary.append([label, by_status.get(value, 0)])
    if show_costs:
        ws_summary.append([])
        agg = base.aggregate(total_cost=Sum("purchase_cost"))
        total_cost = float(agg["total_cost"] or 0)
        ws_summary.append(["Total Purchase Cost", f"${total_cost:,.2f}"])

    # Assets sheet
    ws_assets = wb.create_sheet("Assets")
    headers = [
        "Asset Tag",
        "Name",
        "Category",
        "Brand",
        "Model",
        "Serial Number",
        "Status",
        "Department",
        "Location",
        "Held By",
        "Purchase Date",
    ]
    if show_costs:
        headers.append("Purchase Cost")
    headers += ["Warranty End Date", "Created Date"]
    _write_header(ws_assets, headers)

    for asset in _iterate(queryset, total_count):
        row = [
            asset.asset_tag,
            asset.name,
            asset.get_category_display(),
            asset.brand,
            asset.model,
            asset.serial_number,
            asset.get_status_display(),
            asset.department.name if asset.department else "",
            asset.location,
            asset._holder_name or "",
            _date(asset.purchase_date),
        ]
        if show_costs:
            row.append(
                float(asset.purchase_cost) if asset.purchase_cost else ""
            )
        row += [_date(asset.warranty_end_date), _datetime(asset.created_at)]
        ws_assets.append(row)

    _autosize(ws_summary, ws_assets)
    return _save(wb)


def export_allocations_xlsx(actor: ActorContext) -> BytesIO:
    """Export the allocation ledger visible to ``actor``."""
    require_export(actor)
    queryset = scope_queryset(
        actor,
        "asset.export",
        Allocation.objects.select_related("asset"),
        department_field="asset__department",
    ).order_by("-allocated_date")
    total_count = queryset.count()

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Allocations"
    _write_header(
        ws,
        [
            "Asset Tag",
            "Asset Name",
            "Employee",
            "Department",
            "Status",
            "Allocated",
            "Returned",
            "Condition",
            "Return Condition",
            "Notes",
        ],
    )
    for allocation in _iterate(queryset, total_count):
        ws.append(
            [
                allocation.asset.asset_tag,
                allocation.asset.name,
                allocation.employee_name,
                allocation.department_name,
                allocation.get_status_display(),
                _datetime(allocation.allocated_date),
                _datetime(allocation.return_date),
                allocation.get_condition_display(),
                allocation.get_return_condition_display(),
                allocation.notes,
            ]
        )

    _autosize(ws)
    return _save(wb)


def require_export(actor: ActorContext) -> None:
    """Exports are open to any role the export rule does not deny."""
    if get_rule(actor.role, "asset.export") == DENY:
        require(actor, "asset.export")
