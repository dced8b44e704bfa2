"""Tests for maintenance records."""

from decimal import Decimal

import pytest

from django.core.exceptions import ValidationError

from assets.exceptions import (
    Conflict,
    Forbidden,
    InvalidState,
    InvalidTransition,
    NotFound,
)
from assets.services.allocations import allocate
from assets.services.maintenance import (
    complete_maintenance,
    start_maintenance,
)
from assets.services.state import retire_asset


@pytest.mark.django_db
class TestStartMaintenance:
    def test_asset_goes_under_maintenance(self, admin_actor, asset):
        record = start_maintenance(
            admin_actor, asset.pk, "repair", description="Broken hinge"
        )
        asset.refresh_from_db()
        assert asset.status == "under_maintenance"
        assert record.is_open
        assert record.started_by_id == admin_actor.id

    def test_second_open_record_conflicts(self, admin_actor, asset):
        start_maintenance(admin_actor, asset.pk, "repair")
        with pytest.raises(Conflict):
            start_maintenance(admin_actor, asset.pk, "inspection")

    def test_allocated_asset_conflicts(self, admin_actor, asset, user):
        allocate(admin_actor, asset.pk, user.pk)
        with pytest.raises(Conflict):
            start_maintenance(admin_actor, asset.pk, "repair")

    def test_retired_asset(self, admin_actor, asset):
        retire_asset(admin_actor, asset.pk)
        with pytest.raises(InvalidTransition):
            start_maintenance(admin_actor, asset.pk, "repair")

    def test_unknown_type(self, admin_actor, asset):
        with pytest.raises(ValidationError):
            start_maintenance(admin_actor, asset.pk, "polish")

    def test_users_cannot_start(self, user_actor, asset):
        with pytest.raises(Forbidden):
            start_maintenance(user_actor, asset.pk, "repair")


@pytest.mark.django_db
class TestCompleteMaintenance:
    def test_asset_returns_to_available(self, admin_actor, asset):
        record = start_maintenance(admin_actor, asset.pk, "repair")
        done = complete_maintenance(
            admin_actor, record.pk, cost="149.90", notes="Hinge replaced"
        )
        asset.refresh_from_db()
        assert asset.status == "available"
        assert done.cost == Decimal("149.90")
        assert done.completed_by_id == admin_actor.id
        assert done.notes == "Hinge replaced"

    def test_already_closed(self, admin_actor, asset):
        record = start_maintenance(admin_actor, asset.pk, "repair")
        complete_maintenance(admin_actor, record.pk)
        with pytest.raises(InvalidState):
            complete_maintenance(admin_actor, record.pk)

    def test_negative_cost(self, admin_actor, asset):
        record = start_maintenance(admin_actor, asset.pk, "repair")
        with pytest.raises(ValidationError):
            complete_maintenance(admin_actor, record.pk, cost=-5)
        record.refresh_from_db()
        assert record.is_open

    def test_garbage_cost(self, admin_actor, asset):
        record = start_maintenance(admin_actor, asset.pk, "repair")
        with pytest.raises(ValidationError):
            complete_maintenance(admin_actor, record.pk, cost="cheap")

    def test_missing_record(self, admin_actor):
        with pytest.raises(NotFound):
            complete_maintenance(admin_actor, 424242)
