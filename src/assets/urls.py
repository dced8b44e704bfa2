"""URL configuration for assets app."""

from django.urls import path

from . import views

app_name = "assets"

urlpatterns = [
    # Assets
    path("assets/", views.asset_collection, name="asset_collection"),
    path("assets/import/", views.asset_import, name="asset_import"),
    path("assets/export/", views.asset_export, name="asset_export"),
    path("assets/<int:pk>/", views.asset_detail, name="asset_detail"),
    path("assets/<int:pk>/retire/", views.asset_retire, name="asset_retire"),
    path(
        "assets/<int:pk>/maintenance/",
        views.asset_start_maintenance,
        name="asset_start_maintenance",
    ),
    path(
        "maintenance/<int:pk>/complete/",
        views.maintenance_complete,
        name="maintenance_complete",
    ),
    # Allocations
    path("allocations/", views.allocation_create, name="allocation_create"),
    path(
        "allocations/export/",
        views.allocation_export,
        name="allocation_export",
    ),
    path(
        "allocations/<int:pk>/",
        views.allocation_detail,
        name="allocation_detail",
    ),
    path(
        "allocations/<int:pk>/return/",
        views.allocation_return,
        name="allocation_return",
    ),
    path(
        "allocations/<int:pk>/transfer/",
        views.allocation_transfer,
        name="allocation_transfer",
    ),
    path(
        "allocations/<int:pk>/transfer-request/",
        views.allocation_transfer_request,
        name="allocation_transfer_request",
    ),
    # Transfer requests
    path("transfers/", views.transfer_collection, name="transfer_collection"),
    path("transfers/<int:pk>/", views.transfer_detail, name="transfer_detail"),
    path(
        "transfers/<int:pk>/approve/",
        views.transfer_approve,
        name="transfer_approve",
    ),
    path(
        "transfers/<int:pk>/reject/",
        views.transfer_reject,
        name="transfer_reject",
    ),
    # Requests
    path("requests/", views.request_collection, name="request_collection"),
    path("requests/<int:pk>/", views.request_detail, name="request_detail"),
    path(
        "requests/<int:pk>/approve/",
        views.request_approve,
        name="request_approve",
    ),
    path(
        "requests/<int:pk>/reject/",
        views.request_reject,
        name="request_reject",
    ),
    path(
        "requests/<int:pk>/start/", views.request_start, name="request_start"
    ),
    path(
        "requests/<int:pk>/fulfil/",
        views.request_fulfil,
        name="request_fulfil",
    ),
    # Tickets
    path("tickets/", views.ticket_collection, name="ticket_collection"),
    path("tickets/<int:pk>/", views.ticket_detail, name="ticket_detail"),
    path(
        "tickets/<int:pk>/status/", views.ticket_status, name="ticket_status"
    ),
    path(
        "tickets/<int:pk>/cancel/", views.ticket_cancel, name="ticket_cancel"
    ),
    path(
        "tickets/<int:pk>/assign/", views.ticket_assign, name="ticket_assign"
    ),
    path(
        "tickets/<int:pk>/comments/",
        views.ticket_comment,
        name="ticket_comment",
    ),
    # Administration
    path("users/import/", views.user_import, name="user_import"),
    path("users/<int:pk>/role/", views.user_role, name="user_role"),
    path(
        "settings/notifications/<slug:notification_type>/",
        views.notification_setting,
        name="notification_setting",
    ),
]
