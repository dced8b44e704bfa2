"""Tests for the JSON API views."""

from datetime import datetime
from io import BytesIO

import openpyxl
import pytest
from PIL import Image as PILImage

from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse
from django.utils import timezone

from assets.factories import AssetFactory, AssetRequestFactory
from assets.models import AssetRequest, NotificationSetting, Ticket
from assets.services import tickets
from assets.services.allocations import allocate


def _png_bytes():
    buf = BytesIO()
    PILImage.new("RGB", (10, 10), "blue").save(buf, "PNG")
    return buf.getvalue()


def _post(client, name, data=None, **kwargs):
    return client.post(
        reverse(f"assets:{name}", kwargs=kwargs),
        data or {},
        content_type="application/json",
    )


@pytest.mark.django_db
class TestAuthentication:
    def test_anonymous_is_redirected_to_login(self, client):
        response = client.get(reverse("assets:asset_collection"))
        assert response.status_code == 302
        assert reverse("admin:login") in response.url

    def test_wrong_method(self, admin_client, asset):
        response = admin_client.delete(
            reverse("assets:asset_detail", kwargs={"pk": asset.pk})
        )
        assert response.status_code == 405


@pytest.mark.django_db
class TestAssetEndpoints:
    def test_admin_creates_asset(self, admin_client):
        response = _post(
            admin_client,
            "asset_collection",
            {"name": "Dell U2723", "category": "monitor"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "available"
        assert data["asset_tag"]

    def test_invalid_asset_is_400(self, admin_client):
        response = _post(admin_client, "asset_collection", {"name": ""})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert "category" in body["errors"]

    def test_malformed_json_is_400(self, admin_client):
        response = admin_client.post(
            reverse("assets:asset_collection"),
            "{not json",
            content_type="application/json",
        )
        assert response.status_code == 400

    def test_user_cannot_create_asset(self, client_logged_in):
        response = _post(
            client_logged_in,
            "asset_collection",
            {"name": "X", "category": "mouse"},
        )
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_user_lists_only_held_assets(
        self, client_logged_in, admin_actor, asset, second_asset, user
    ):
        allocate(admin_actor, asset.pk, user.pk)
        response = client_logged_in.get(reverse("assets:asset_collection"))
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["asset_tag"] == "LT-0001"
        assert "purchase_cost" not in data["results"][0]

    def test_list_is_paginated(self, admin_client):
        AssetFactory.create_batch(55)
        first = admin_client.get(reverse("assets:asset_collection")).json()
        assert first["count"] == 55
        assert first["num_pages"] == 2
        assert len(first["results"]) == 50
        second = admin_client.get(
            reverse("assets:asset_collection"), {"page": 2}
        ).json()
        assert len(second["results"]) == 5

    def test_status_filter(self, admin_client, admin_actor, asset, user):
        AssetFactory()
        allocate(admin_actor, asset.pk, user.pk)
        data = admin_client.get(
            reverse("assets:asset_collection"), {"status": "assigned"}
        ).json()
        assert [a["asset_tag"] for a in data["results"]] == ["LT-0001"]

    def test_detail_shows_costs_and_history(self, admin_client, asset):
        response = admin_client.get(
            reverse("assets:asset_detail", kwargs={"pk": asset.pk})
        )
        data = response.json()
        assert data["purchase_cost"] == "1200.00"
        assert isinstance(data["history"], list)

    def test_missing_asset_is_404(self, admin_client):
        response = admin_client.get(
            reverse("assets:asset_detail", kwargs={"pk": 424242})
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_other_users_asset_is_403(self, client_logged_in, asset):
        response = client_logged_in.get(
            reverse("assets:asset_detail", kwargs={"pk": asset.pk})
        )
        assert response.status_code == 403

    def test_retire_twice_is_409(self, admin_client, asset):
        _post(admin_client, "asset_retire", {"reason": "EOL"}, pk=asset.pk)
        response = _post(admin_client, "asset_retire", pk=asset.pk)
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_maintenance_round_trip(self, admin_client, asset):
        started = _post(
            admin_client,
            "asset_start_maintenance",
            {"maintenance_type": "repair", "description": "Fan noise"},
            pk=asset.pk,
        )
        assert started.status_code == 201
        record_id = started.json()["id"]
        done = _post(
            admin_client,
            "maintenance_complete",
            {"cost": "80.00"},
            pk=record_id,
        )
        assert done.json()["status"] == "completed"
        asset.refresh_from_db()
        assert asset.status == "available"

    def test_export_downloads_workbook(self, admin_client, asset):
        response = admin_client.get(reverse("assets:asset_export"))
        assert response.status_code == 200
        assert response["Content-Type"].startswith(
            "application/vnd.openxmlformats"
        )
        assert "assetdesk-assets-" in response["Content-Disposition"]
        wb = openpyxl.load_workbook(BytesIO(response.content))
        assert "Assets" in wb.sheetnames

    def test_import_without_file(self, admin_client):
        response = admin_client.post(reverse("assets:asset_import"))
        assert response.status_code == 400
        assert "file" in response.json()["errors"]

    def test_import_spreadsheet(self, admin_client):
        wb = openpyxl.Workbook()
        wb.active.append(["Name", "Category"])
        wb.active.append(["Keyboard", "keyboard"])
        buffer = BytesIO()
        wb.save(buffer)
        upload = SimpleUploadedFile("assets.xlsx", buffer.getvalue())
        response = admin_client.post(
            reverse("assets:asset_import"), {"file": upload}
        )
        assert response.status_code == 200
        assert response.json()["rows"][0]["ok"] is True


@pytest.mark.django_db
class TestAllocationEndpoints:
    def test_allocate_then_conflict(self, admin_client, asset, user):
        payload = {"asset": asset.pk, "employee": user.pk}
        first = _post(admin_client, "allocation_create", payload)
        assert first.status_code == 201
        second = _post(admin_client, "allocation_create", payload)
        assert second.status_code == 409
        assert second.json()["error"] == "conflict"

    def test_return_twice_is_invalid_state(self, admin_client, asset, user):
        created = _post(
            admin_client,
            "allocation_create",
            {"asset": asset.pk, "employee": user.pk},
        ).json()
        _post(admin_client, "allocation_return", pk=created["id"])
        response = _post(admin_client, "allocation_return", pk=created["id"])
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state"

    def test_non_numeric_asset_is_400(self, admin_client, user):
        response = _post(
            admin_client,
            "allocation_create",
            {"asset": "abc", "employee": user.pk},
        )
        assert response.status_code == 400
        assert "asset" in response.json()["errors"]

    def test_missing_asset_is_400(self, admin_client, user):
        response = _post(
            admin_client, "allocation_create", {"employee": user.pk}
        )
        assert response.status_code == 400
        assert "asset" in response.json()["errors"]

    def test_transfer_to_non_numeric_employee(
        self, admin_client, admin_actor, asset, user
    ):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        response = _post(
            admin_client,
            "allocation_transfer",
            {"employee": "someone"},
            pk=allocation.pk,
        )
        assert response.status_code == 400
        assert "employee" in response.json()["errors"]
        allocation.refresh_from_db()
        assert allocation.status == "active"

    def test_form_encoded_false_keeps_asset_out_of_maintenance(
        self, admin_client, admin_actor, asset, user
    ):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        response = admin_client.post(
            reverse("assets:allocation_return", kwargs={"pk": allocation.pk}),
            {"condition": "good", "send_to_maintenance": "false"},
        )
        assert response.status_code == 200
        asset.refresh_from_db()
        assert asset.status == "available"

    def test_holder_sees_own_allocation(
        self, client_logged_in, admin_actor, asset, user
    ):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        response = client_logged_in.get(
            reverse("assets:allocation_detail", kwargs={"pk": allocation.pk})
        )
        assert response.status_code == 200
        assert response.json()["history"][0]["action"] == "assigned"


@pytest.mark.django_db
class TestTransferEndpoints:
    @pytest.fixture
    def allocation(self, admin_actor, asset, user):
        return allocate(admin_actor, asset.pk, user.pk)

    def _request(self, client, allocation, to_user):
        return _post(
            client,
            "allocation_transfer_request",
            {"to_user": to_user.pk, "notes": "Desk swap"},
            pk=allocation.pk,
        )

    def test_admin_requests_and_parties_approve(
        self, admin_client, client, password, allocation, user, second_user
    ):
        created = self._request(admin_client, allocation, second_user)
        assert created.status_code == 201
        transfer = created.json()
        assert transfer["status"] == "pending"
        assert sorted(transfer["awaiting"]) == sorted(
            [user.pk, second_user.pk]
        )

        client.login(username=user.username, password=password)
        first = _post(client, "transfer_approve", pk=transfer["id"])
        assert first.json()["awaiting"] == [second_user.pk]

        client.login(username=second_user.username, password=password)
        second = _post(client, "transfer_approve", pk=transfer["id"])
        assert second.json()["status"] == "approved"
        assert second.json()["new_allocation"]

    def test_duplicate_request_is_409(
        self, admin_client, allocation, second_user, outsider
    ):
        self._request(admin_client, allocation, second_user)
        response = self._request(admin_client, allocation, outsider)
        assert response.status_code == 409

    def test_non_numeric_recipient_is_400(self, admin_client, allocation):
        response = _post(
            admin_client,
            "allocation_transfer_request",
            {"to_user": "abc"},
            pk=allocation.pk,
        )
        assert response.status_code == 400
        assert "to_user" in response.json()["errors"]

    def test_parties_see_their_transfers_only(
        self,
        admin_client,
        client_logged_in,
        allocation,
        second_user,
        outsider,
        admin_actor,
        second_asset,
    ):
        self._request(admin_client, allocation, second_user)
        other = allocate(admin_actor, second_asset.pk, outsider.pk)
        self._request(admin_client, other, second_user)
        listing = client_logged_in.get(
            reverse("assets:transfer_collection")
        ).json()
        assert listing["count"] == 1
        assert listing["results"][0]["asset"] == allocation.asset_id
        assert admin_client.get(
            reverse("assets:transfer_collection")
        ).json()["count"] == 2

    def test_detail_shows_history(self, admin_client, allocation, second_user):
        transfer = self._request(admin_client, allocation, second_user).json()
        detail = admin_client.get(
            reverse("assets:transfer_detail", kwargs={"pk": transfer["id"]})
        ).json()
        assert [h["action"] for h in detail["history"]] == ["requested"]

    def test_outsider_cannot_reject(
        self, admin_client, client, password, allocation, second_user, outsider
    ):
        transfer = self._request(admin_client, allocation, second_user).json()
        client.login(username=outsider.username, password=password)
        response = _post(
            client, "transfer_reject", {"reason": "No"}, pk=transfer["id"]
        )
        assert response.status_code == 403

    def test_recipient_rejects(
        self, admin_client, client, password, allocation, second_user
    ):
        transfer = self._request(admin_client, allocation, second_user).json()
        client.login(username=second_user.username, password=password)
        response = _post(
            client, "transfer_reject", {"reason": "No"}, pk=transfer["id"]
        )
        assert response.json()["status"] == "rejected"
        assert response.json()["rejection_reason"] == "No"


@pytest.mark.django_db
class TestRequestEndpoints:
    @pytest.fixture
    def payload(self, department):
        return {
            "category": "monitor",
            "quantity": 1,
            "specification": "27 inch 4K monitor",
            "reason": "Second screen",
            "department": department.name,
            "location": "Desk 12",
        }

    def test_submit_and_list(self, client_logged_in, payload):
        created = _post(client_logged_in, "request_collection", payload)
        assert created.status_code == 201
        listing = client_logged_in.get(
            reverse("assets:request_collection")
        ).json()
        assert [r["request_id"] for r in listing["results"]] == [
            created.json()["request_id"]
        ]

    def test_list_hides_other_requests(self, client_logged_in, outsider):
        AssetRequestFactory(requester=outsider)
        listing = client_logged_in.get(
            reverse("assets:request_collection")
        ).json()
        assert listing["count"] == 0

    def test_approve_and_reject(self, admin_client, user):
        request = AssetRequestFactory(requester=user)
        approved = _post(admin_client, "request_approve", pk=request.pk)
        assert approved.json()["status"] == "approved"
        rejected = _post(
            admin_client, "request_reject", {"reason": "No"}, pk=request.pk
        )
        assert rejected.status_code == 409

    def test_reject_without_reason(self, admin_client, user):
        request = AssetRequestFactory(requester=user)
        response = _post(admin_client, "request_reject", pk=request.pk)
        assert response.status_code == 400
        assert "rejection_reason" in response.json()["errors"]

    def test_requester_cannot_approve(self, client_logged_in, user):
        request = AssetRequestFactory(requester=user)
        response = _post(client_logged_in, "request_approve", pk=request.pk)
        assert response.status_code == 403

    def test_patch_and_delete(self, client_logged_in, user):
        request = AssetRequestFactory(requester=user)
        url = reverse("assets:request_detail", kwargs={"pk": request.pk})
        patched = client_logged_in.patch(
            url, {"quantity": 5}, content_type="application/json"
        )
        assert patched.json()["quantity"] == 5
        deleted = client_logged_in.delete(url)
        assert deleted.status_code == 204
        assert not AssetRequest.objects.exists()

    def test_fulfil_requires_list(self, admin_client, user):
        request = AssetRequestFactory(requester=user, status="in_progress")
        response = _post(
            admin_client, "request_fulfil", {"assets": 5}, pk=request.pk
        )
        assert response.status_code == 400

    def test_fulfil_with_non_numeric_asset(self, admin_client, user):
        request = AssetRequestFactory(requester=user, status="in_progress")
        response = _post(
            admin_client, "request_fulfil", {"assets": ["abc"]}, pk=request.pk
        )
        assert response.status_code == 400
        assert "assets" in response.json()["errors"]


@pytest.mark.django_db
class TestTicketEndpoints:
    @pytest.fixture
    def held(self, admin_actor, asset, user):
        allocate(admin_actor, asset.pk, user.pk)
        return asset

    def test_create_with_attachment(self, client_logged_in, held, department):
        upload = SimpleUploadedFile(
            "photo.png",
            _png_bytes(),
            content_type="image/png",
        )
        response = client_logged_in.post(
            reverse("assets:ticket_collection"),
            {
                "asset": held.pk,
                "title": "Hinge broken",
                "description": "Lid wobbles",
                "location": "Desk 4B",
                "department": department.name,
                "attachment": upload,
            },
        )
        assert response.status_code == 201
        assert response.json()["attachment"]

    def test_bad_attachment_type(self, client_logged_in, held, department):
        upload = SimpleUploadedFile(
            "tool.exe", b"MZ", content_type="application/octet-stream"
        )
        response = client_logged_in.post(
            reverse("assets:ticket_collection"),
            {
                "asset": held.pk,
                "title": "Hinge broken",
                "description": "Lid wobbles",
                "location": "Desk 4B",
                "department": department.name,
                "attachment": upload,
            },
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_attachment"
        assert not Ticket.objects.exists()

    def test_status_comment_and_detail(
        self, client_logged_in, admin_client, held, department
    ):
        created = _post(
            client_logged_in,
            "ticket_collection",
            {
                "asset": held.pk,
                "title": "No sound",
                "description": "Speakers silent",
                "location": "Desk 4B",
                "department": department.name,
            },
        ).json()
        _post(
            client_logged_in,
            "ticket_comment",
            {"comment": "Headphones work"},
            pk=created["id"],
        )
        moved = _post(
            admin_client,
            "ticket_status",
            {"status": "in_progress"},
            pk=created["id"],
        )
        assert moved.json()["status"] == "in_progress"
        detail = admin_client.get(
            reverse("assets:ticket_detail", kwargs={"pk": created["id"]})
        ).json()
        assert [c["comment"] for c in detail["comments"]] == [
            "Headphones work"
        ]

    def test_assign_with_bad_deadline(
        self, admin_client, admin_user, user_actor, held, department
    ):
        ticket = tickets.create(
            user_actor,
            {
                "asset": held.pk,
                "title": "Dead pixel",
                "description": "Top left corner",
                "location": "Desk 4B",
                "department": department.name,
            },
        )
        response = _post(
            admin_client,
            "ticket_assign",
            {"assignee": admin_user.pk, "deadline": "next tuesday"},
            pk=ticket.pk,
        )
        assert response.status_code == 400
        assert "deadline" in response.json()["errors"]

    def test_assign_with_offset_less_deadline(
        self, admin_client, admin_user, user_actor, held, department
    ):
        ticket = tickets.create(
            user_actor,
            {
                "asset": held.pk,
                "title": "Dead pixel",
                "description": "Top left corner",
                "location": "Desk 4B",
                "department": department.name,
            },
        )
        response = _post(
            admin_client,
            "ticket_assign",
            {"assignee": admin_user.pk, "deadline": "2099-01-01T10:00:00"},
            pk=ticket.pk,
        )
        assert response.status_code == 200
        ticket.refresh_from_db()
        assert ticket.deadline == timezone.make_aware(
            datetime(2099, 1, 1, 10, 0)
        )

    def test_assign_to_non_numeric_assignee(
        self, admin_client, user_actor, held, department
    ):
        ticket = tickets.create(
            user_actor,
            {
                "asset": held.pk,
                "title": "Dead pixel",
                "description": "Top left corner",
                "location": "Desk 4B",
                "department": department.name,
            },
        )
        response = _post(
            admin_client, "ticket_assign", {"assignee": "abc"}, pk=ticket.pk
        )
        assert response.status_code == 400
        assert "assignee" in response.json()["errors"]

    def test_create_with_non_numeric_asset(
        self, client_logged_in, held, department
    ):
        response = _post(
            client_logged_in,
            "ticket_collection",
            {
                "asset": "abc",
                "title": "No sound",
                "description": "Speakers silent",
                "location": "Desk 4B",
                "department": department.name,
            },
        )
        assert response.status_code == 400
        assert "asset" in response.json()["errors"]

    def test_staff_cannot_cancel_through_status(
        self, admin_client, user_actor, held, department
    ):
        ticket = tickets.create(
            user_actor,
            {
                "asset": held.pk,
                "title": "No sound",
                "description": "Speakers silent",
                "location": "Desk 4B",
                "department": department.name,
            },
        )
        response = _post(
            admin_client,
            "ticket_status",
            {"status": "cancelled"},
            pk=ticket.pk,
        )
        assert response.status_code == 403
        ticket.refresh_from_db()
        assert ticket.status == "open"



@pytest.mark.django_db
class TestAdministrationEndpoints:
    def test_admin_changes_role(self, admin_client, user):
        response = _post(
            admin_client, "user_role", {"role": "financer"}, pk=user.pk
        )
        assert response.status_code == 200
        assert response.json()["role"] == "financer"

    def test_own_role_is_forbidden(self, admin_client, admin_user):
        response = _post(
            admin_client, "user_role", {"role": "user"}, pk=admin_user.pk
        )
        assert response.status_code == 403

    def test_non_numeric_department_is_400(self, admin_client, user):
        response = _post(
            admin_client,
            "user_role",
            {"role": "hr", "department": "abc"},
            pk=user.pk,
        )
        assert response.status_code == 400
        assert "department" in response.json()["errors"]
        user.refresh_from_db()
        assert user.role == "user"

    def test_form_encoded_false_disables_setting(
        self, client, super_admin, password
    ):
        client.login(username=super_admin.username, password=password)
        response = client.post(
            reverse(
                "assets:notification_setting",
                kwargs={"notification_type": "email_digest"},
            ),
            {"enabled": "false"},
        )
        assert response.json()["enabled"] is False
        assert not NotificationSetting.is_enabled("email_digest")

    def test_notification_setting_requires_super_admin(self, admin_client):
        response = _post(
            admin_client,
            "notification_setting",
            {"enabled": False},
            notification_type="email_digest",
        )
        assert response.status_code == 403

    def test_super_admin_toggles_setting(self, client, super_admin, password):
        client.login(username=super_admin.username, password=password)
        response = client.put(
            reverse(
                "assets:notification_setting",
                kwargs={"notification_type": "email_digest"},
            ),
            {"enabled": False},
            content_type="application/json",
        )
        assert response.json() == {
            "notification_type": "email_digest",
            "enabled": False,
        }
        assert not NotificationSetting.is_enabled("email_digest")
