"""Tests for transfer requests."""

import pytest

from django.core import mail
from django.core.exceptions import ValidationError

from assets.exceptions import (
    Conflict,
    Forbidden,
    InvalidState,
    InvalidTransition,
    NotFound,
)
from assets.models import Allocation, HistoryRecord, TransferRequest
from assets.services import history, transfers
from assets.services.allocations import allocate, return_allocation


@pytest.fixture
def allocation(admin_actor, asset, user):
    return allocate(admin_actor, asset.pk, user.pk, {"condition": "fair"})


@pytest.fixture
def transfer(admin_actor, allocation, second_user):
    return transfers.request_transfer(
        admin_actor, allocation.pk, second_user.pk, notes="Team move"
    )


@pytest.mark.django_db
class TestRequestTransfer:
    def test_creates_pending_request(
        self, transfer, allocation, user, second_user
    ):
        assert transfer.status == "pending"
        assert transfer.from_user == user
        assert transfer.from_user_name == "Erin Employee"
        assert transfer.to_user_name == "Casey Colleague"
        assert transfer.asset_name == "ThinkPad T14"
        assert sorted(transfer.awaiting) == sorted([user.pk, second_user.pk])
        entry = history.history_for("transfer", transfer.pk).get()
        assert (entry.action, entry.new_value) == ("requested", "pending")

    def test_nothing_moves_yet(self, transfer, allocation, asset):
        allocation.refresh_from_db()
        asset.refresh_from_db()
        assert allocation.is_active
        assert asset.status == "assigned"

    def test_both_parties_are_notified(
        self,
        admin_actor,
        allocation,
        user,
        second_user,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            transfers.request_transfer(
                admin_actor, allocation.pk, second_user.pk
            )
        assert sorted(m.to[0] for m in mail.outbox) == [
            "colleague@example.com",
            "employee@example.com",
        ]
        assert "needs your approval" in mail.outbox[0].subject

    def test_second_pending_request_conflicts(
        self, admin_actor, transfer, allocation, outsider
    ):
        with pytest.raises(Conflict, match="pending transfer"):
            transfers.request_transfer(
                admin_actor, allocation.pk, outsider.pk
            )
        assert TransferRequest.objects.count() == 1

    def test_to_current_holder(self, admin_actor, allocation, user):
        with pytest.raises(ValidationError) as exc:
            transfers.request_transfer(admin_actor, allocation.pk, user.pk)
        assert "to_user" in exc.value.message_dict

    def test_returned_allocation(
        self, admin_actor, allocation, second_user
    ):
        return_allocation(admin_actor, allocation.pk)
        with pytest.raises(InvalidState):
            transfers.request_transfer(
                admin_actor, allocation.pk, second_user.pk
            )

    def test_unknown_recipient(self, admin_actor, allocation):
        with pytest.raises(NotFound):
            transfers.request_transfer(admin_actor, allocation.pk, 424242)

    def test_employee_cannot_initiate(
        self, user_actor, allocation, second_user
    ):
        with pytest.raises(Forbidden):
            transfers.request_transfer(
                user_actor, allocation.pk, second_user.pk
            )


@pytest.mark.django_db
class TestApproveTransfer:
    def test_one_party_approval_waits_for_the_other(
        self, user_actor, transfer, second_user, allocation
    ):
        approved = transfers.approve_transfer(user_actor, transfer.pk)
        assert approved.status == "pending"
        assert approved.from_user_approved_at is not None
        assert approved.awaiting == [second_user.pk]
        allocation.refresh_from_db()
        assert allocation.is_active

    def test_both_parties_complete_the_transfer(
        self, user_actor, second_user, actor_for, transfer, asset
    ):
        transfers.approve_transfer(user_actor, transfer.pk)
        done = transfers.approve_transfer(
            actor_for(second_user), transfer.pk
        )
        assert done.status == "approved"
        assert done.decided_at is not None
        new = done.new_allocation
        assert new.employee == second_user
        assert new.condition == "fair"
        assert new.is_active
        old = Allocation.objects.get(pk=transfer.allocation_id)
        assert old.status == "returned"
        asset.refresh_from_db()
        assert asset.status == "assigned"

    def test_admin_approves_on_behalf_of_both(
        self, admin_actor, transfer, second_user
    ):
        done = transfers.approve_transfer(admin_actor, transfer.pk)
        assert done.status == "approved"
        assert done.new_allocation.employee == second_user
        actions = list(
            history.history_for("transfer", transfer.pk).values_list(
                "action", flat=True
            )
        )
        assert actions == ["requested", "approved", "completed"]

    def test_completion_writes_ledger_history(
        self, admin_actor, transfer
    ):
        done = transfers.approve_transfer(admin_actor, transfer.pk)
        assert HistoryRecord.objects.filter(
            subject_type="allocation",
            subject_id=transfer.allocation_id,
            action="returned",
        ).exists()
        assert HistoryRecord.objects.filter(
            subject_type="allocation",
            subject_id=done.new_allocation_id,
            action="assigned",
        ).exists()

    def test_completion_notifies_both_parties(
        self,
        admin_actor,
        transfer,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            transfers.approve_transfer(admin_actor, transfer.pk)
        completed = [m for m in mail.outbox if "completed" in m.subject]
        assert sorted(m.to[0] for m in completed) == [
            "colleague@example.com",
            "employee@example.com",
        ]

    def test_outsider_cannot_approve(
        self, outsider, actor_for, transfer
    ):
        with pytest.raises(Forbidden):
            transfers.approve_transfer(actor_for(outsider), transfer.pk)

    def test_approved_request_is_final(self, admin_actor, transfer):
        transfers.approve_transfer(admin_actor, transfer.pk)
        with pytest.raises(InvalidTransition):
            transfers.approve_transfer(admin_actor, transfer.pk)
        with pytest.raises(InvalidTransition):
            transfers.reject_transfer(admin_actor, transfer.pk)

    def test_allocation_closed_in_the_meantime(
        self, admin_actor, transfer, allocation
    ):
        return_allocation(admin_actor, allocation.pk)
        with pytest.raises(InvalidState):
            transfers.approve_transfer(admin_actor, transfer.pk)
        transfer.refresh_from_db()
        assert transfer.status == "pending"

    def test_missing_request(self, admin_actor):
        with pytest.raises(NotFound):
            transfers.approve_transfer(admin_actor, 424242)


@pytest.mark.django_db
class TestRejectTransfer:
    def test_recipient_rejects(
        self, second_user, actor_for, transfer, allocation, user
    ):
        rejected = transfers.reject_transfer(
            actor_for(second_user), transfer.pk, "  Not my team  "
        )
        assert rejected.status == "rejected"
        assert rejected.rejection_reason == "Not my team"
        allocation.refresh_from_db()
        assert allocation.is_active
        assert allocation.employee == user
        entry = HistoryRecord.objects.get(
            subject_type="transfer", action="rejected"
        )
        assert entry.remark == "Not my team"

    def test_rejection_frees_the_allocation_for_a_new_request(
        self, admin_actor, transfer, allocation, outsider
    ):
        transfers.reject_transfer(admin_actor, transfer.pk)
        again = transfers.request_transfer(
            admin_actor, allocation.pk, outsider.pk
        )
        assert again.is_pending

    def test_rejection_notifies_parties(
        self,
        user_actor,
        transfer,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            transfers.reject_transfer(user_actor, transfer.pk)
        assert len(mail.outbox) == 2
        assert "no reason given" in mail.outbox[0].body

    def test_outsider_cannot_reject(self, outsider, actor_for, transfer):
        with pytest.raises(Forbidden):
            transfers.reject_transfer(actor_for(outsider), transfer.pk)
