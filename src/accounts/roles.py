"""Role administration."""

import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from assets.exceptions import Conflict, Forbidden, NotFound, atomic_transition
from assets.models import Department
from assets.services import history
from assets.services.permissions import ROLES, ActorContext, require

from .models import CustomUser

logger = logging.getLogger(__name__)


def change_role(
    actor: ActorContext,
    user_id: int,
    role: str,
    department_id: int | None = None,
) -> CustomUser:
    """Give ``user_id`` a new role, optionally moving their department.

    Only a super admin may grant or revoke ``super_admin``. A department
    has at most one active head; appointing a second one is a Conflict.
    """
    require(actor, "user.change_role")
    if role not in ROLES:
        raise ValidationError({"role": f"'{role}' is not a valid role."})
    if user_id == actor.id:
        raise Forbidden("You cannot change your own role.")

    with atomic_transition():
        try:
            user = CustomUser.objects.select_for_update().get(pk=user_id)
        except CustomUser.DoesNotExist:
            raise NotFound(f"User {user_id} does not exist.")
        if "super_admin" in (role, user.role) and actor.role != "super_admin":
            raise Forbidden(
                "Only a super admin may grant or revoke super admin."
            )

        if department_id is not None:
            try:
                user.department = Department.objects.get(
                    pk=department_id, is_active=True
                )
            except Department.DoesNotExist:
                raise NotFound(f"Department {department_id} does not exist.")

        if role == "department_head":
            if user.department_id is None:
                raise ValidationError(
                    {"department": "Department heads need a department."}
                )
            taken = (
                CustomUser.objects.filter(
                    department_id=user.department_id,
                    role="department_head",
                    is_active=True,
                )
                .exclude(pk=user.pk)
                .exists()
            )
            if taken:
                raise Conflict(
                    f"{user.department} already has a department head."
                )

        old_role = user.role
        user.role = role
        user.is_staff = user.is_admin_staff
        try:
            with transaction.atomic():
                user.save(
                    update_fields=["role", "department", "is_staff"]
                )
        except IntegrityError:
            raise Conflict(
                f"{user.department} already has a department head."
            )
        history.record(
            user,
            "role_changed",
            actor=actor,
            old_value=old_role,
            new_value=role,
        )
    logger.info(
        "Role of %s changed %s -> %s by %s",
        user.username,
        old_role,
        role,
        actor.name,
    )
    return user
