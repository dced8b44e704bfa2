"""Tests for the allocation ledger."""

from unittest.mock import patch

import pytest

from django.core import mail
from django.core.exceptions import ValidationError
from django.db import IntegrityError

from assets.exceptions import (
    Conflict,
    Forbidden,
    InvalidState,
    InvalidTransition,
    NotFound,
)
from assets.factories import UserFactory
from assets.models import Allocation, MaintenanceRecord
from assets.services import history
from assets.services.allocations import (
    allocate,
    return_allocation,
    transfer_allocation,
)
from assets.services.maintenance import start_maintenance
from assets.services.state import retire_asset


@pytest.mark.django_db
class TestAllocate:
    def test_assigns_asset(self, admin_actor, asset, user):
        allocation = allocate(
            admin_actor, asset.pk, user.pk, {"condition": "excellent"}
        )
        asset.refresh_from_db()
        assert asset.status == "assigned"
        assert allocation.is_active
        assert allocation.employee_name == "Erin Employee"
        assert allocation.department_name == "Engineering"
        assert allocation.condition == "excellent"
        assert allocation.allocated_by_id == admin_actor.id

    def test_allocated_asset_conflicts(self, admin_actor, asset, user):
        allocate(admin_actor, asset.pk, user.pk)
        other = UserFactory()
        with pytest.raises(Conflict, match="already allocated"):
            allocate(admin_actor, asset.pk, other.pk)
        assert Allocation.objects.filter(status="active").count() == 1

    def test_asset_under_maintenance_conflicts(
        self, admin_actor, asset, user
    ):
        start_maintenance(admin_actor, asset.pk, "repair")
        with pytest.raises(Conflict, match="maintenance"):
            allocate(admin_actor, asset.pk, user.pk)

    def test_retired_asset(self, admin_actor, asset, user):
        retire_asset(admin_actor, asset.pk)
        with pytest.raises(InvalidTransition):
            allocate(admin_actor, asset.pk, user.pk)

    def test_inactive_employee(self, admin_actor, asset):
        gone = UserFactory(is_active=False)
        with pytest.raises(NotFound):
            allocate(admin_actor, asset.pk, gone.pk)

    def test_unknown_condition(self, admin_actor, asset, user):
        with pytest.raises(ValidationError):
            allocate(admin_actor, asset.pk, user.pk, {"condition": "mint"})

    @pytest.mark.parametrize("fixture", ["user_actor", "hr_actor"])
    def test_non_staff_cannot_allocate(self, request, fixture, asset, user):
        actor = request.getfixturevalue(fixture)
        with pytest.raises(Forbidden):
            allocate(actor, asset.pk, user.pk)

    def test_constraint_violation_surfaces_as_conflict(
        self, admin_actor, asset, user
    ):
        # Simulate a concurrent insert winning the race past the lock
        with patch.object(
            Allocation.objects, "create", side_effect=IntegrityError
        ):
            with pytest.raises(Conflict):
                allocate(admin_actor, asset.pk, user.pk)
        asset.refresh_from_db()
        assert asset.status == "available"

    def test_notifies_employee_after_commit(
        self, admin_actor, asset, user, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            allocate(admin_actor, asset.pk, user.pk)
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == [user.email]
        assert asset.asset_tag in mail.outbox[0].subject


@pytest.mark.django_db
class TestReturnAllocation:
    def test_round_trip(self, admin_actor, asset, user):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        returned = return_allocation(
            admin_actor, allocation.pk, "fair", "Scratched lid"
        )
        asset.refresh_from_db()
        assert asset.status == "available"
        assert returned.status == "returned"
        assert returned.return_condition == "fair"
        assert returned.return_date is not None

        actions = list(
            history.history_for("allocation", allocation.pk).values_list(
                "action", flat=True
            )
        )
        assert actions == ["assigned", "returned"]
        transitions = list(
            history.history_for("asset", asset.pk).values_list(
                "old_value", "new_value"
            )
        )
        assert transitions == [
            ("available", "assigned"),
            ("assigned", "available"),
        ]

    def test_return_twice(self, admin_actor, asset, user):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        return_allocation(admin_actor, allocation.pk)
        with pytest.raises(InvalidState):
            return_allocation(admin_actor, allocation.pk)

    def test_return_to_maintenance(self, admin_actor, asset, user):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        return_allocation(
            admin_actor,
            allocation.pk,
            "poor",
            "Cracked screen",
            send_to_maintenance=True,
        )
        asset.refresh_from_db()
        assert asset.status == "under_maintenance"
        record = MaintenanceRecord.objects.get(asset=asset)
        assert record.description == "Cracked screen"

    def test_missing_allocation(self, admin_actor):
        with pytest.raises(NotFound):
            return_allocation(admin_actor, 31337)

    def test_reallocate_after_return(self, admin_actor, asset, user):
        first = allocate(admin_actor, asset.pk, user.pk)
        return_allocation(admin_actor, first.pk)
        second = allocate(admin_actor, asset.pk, UserFactory().pk)
        assert second.is_active
        assert asset.allocations.count() == 2


@pytest.mark.django_db
class TestTransferAllocation:
    def test_transfer_moves_asset(
        self, admin_actor, asset, user, second_user
    ):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        new = transfer_allocation(
            admin_actor, allocation.pk, second_user.pk, "Team change"
        )
        allocation.refresh_from_db()
        asset.refresh_from_db()
        assert allocation.status == "returned"
        assert new.employee == second_user
        assert new.is_active
        assert asset.status == "assigned"
        assert asset.active_allocation == new

    def test_transfer_to_same_employee(self, admin_actor, asset, user):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        with pytest.raises(ValidationError):
            transfer_allocation(admin_actor, allocation.pk, user.pk)

    def test_transfer_returned_allocation(
        self, admin_actor, asset, user, second_user
    ):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        return_allocation(admin_actor, allocation.pk)
        with pytest.raises(InvalidState):
            transfer_allocation(admin_actor, allocation.pk, second_user.pk)
