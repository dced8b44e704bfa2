"""Role and ownership based authorization policy.

The policy is a table of (action, role) -> rule. ``can()`` is a pure
function over that table and never raises for a denied check, so every
mutating service calls ``require()`` (or branches on ``can()``) before
touching state.
"""

from dataclasses import dataclass

from django.core.exceptions import ValidationError
from django.db.models import Q

from ..exceptions import Forbidden

ROLES = (
    "user",
    "hr",
    "department_head",
    "financer",
    "admin",
    "super_admin",
)

ALLOW = "allow"
OWNER = "allow_if_owner"
DEPARTMENT = "allow_if_department"
DENY = "deny"


def _rules(default=DENY, **per_role):
    table = {role: default for role in ROLES}
    table.update(per_role)
    return table


_STAFF = {"admin": ALLOW, "super_admin": ALLOW}

POLICY = {
    # Assets
    "asset.view": _rules(
        user=OWNER,
        hr=ALLOW,
        department_head=DEPARTMENT,
        financer=ALLOW,
        **_STAFF,
    ),
    "asset.create": _rules(**_STAFF),
    "asset.import": _rules(**_STAFF),
    "asset.export": _rules(
        department_head=DEPARTMENT, financer=ALLOW, **_STAFF
    ),
    "asset.view_costs": _rules(
        department_head=DEPARTMENT, financer=ALLOW, **_STAFF
    ),
    "asset.retire": _rules(**_STAFF),
    "asset.maintain": _rules(**_STAFF),
    # Requests
    "request.view": _rules(
        default=OWNER,
        hr=ALLOW,
        department_head=DEPARTMENT,
        financer=ALLOW,
        **_STAFF,
    ),
    "request.create": _rules(default=ALLOW),
    "request.edit": _rules(default=OWNER, hr=ALLOW, **_STAFF),
    "request.approve": _rules(**_STAFF),
    "request.reject": _rules(**_STAFF),
    "request.progress": _rules(**_STAFF),
    "request.delete": _rules(default=OWNER, hr=DENY, **_STAFF),
    # Allocations
    "allocation.view": _rules(
        default=OWNER,
        hr=ALLOW,
        department_head=DEPARTMENT,
        financer=ALLOW,
        **_STAFF,
    ),
    "allocation.create": _rules(**_STAFF),
    "allocation.return": _rules(**_STAFF),
    "allocation.transfer": _rules(**_STAFF),
    # Transfer requests
    "transfer.view": _rules(default=OWNER, hr=ALLOW, **_STAFF),
    "transfer.request": _rules(**_STAFF),
    "transfer.approve": _rules(default=OWNER, **_STAFF),
    "transfer.reject": _rules(default=OWNER, **_STAFF),
    # Tickets
    "ticket.view": _rules(
        default=OWNER, department_head=DEPARTMENT, **_STAFF
    ),
    "ticket.create": _rules(default=ALLOW),
    "ticket.edit": _rules(default=OWNER, **_STAFF),
    "ticket.cancel": _rules(default=OWNER),
    "ticket.comment": _rules(default=OWNER, **_STAFF),
    "ticket.assign": _rules(**_STAFF),
    "ticket.update_status": _rules(**_STAFF),
    # Administration
    "user.change_role": _rules(**_STAFF),
    "user.import": _rules(**_STAFF),
    "settings.notifications": _rules(super_admin=ALLOW),
}

ACTIONS = frozenset(POLICY)


@dataclass(frozen=True)
class ActorContext:
    """The already-authenticated user performing an operation."""

    id: int
    role: str
    department_id: int | None = None
    name: str = ""

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValidationError(f"'{self.role}' is not a valid role.")

    @classmethod
    def from_user(cls, user) -> "ActorContext":
        return cls(
            id=user.pk,
            role=user.role,
            department_id=user.department_id,
            name=user.get_display_name(),
        )

    @property
    def is_admin_staff(self) -> bool:
        return self.role in ("admin", "super_admin")


@dataclass(frozen=True)
class Ownership:
    """Ownership facts about the resource an action targets."""

    owner_ids: tuple = ()
    department_id: int | None = None


def get_rule(role: str, action: str) -> str:
    if action not in POLICY:
        raise ValueError(f"Unknown action '{action}'.")
    if role not in ROLES:
        raise ValueError(f"Unknown role '{role}'.")
    return POLICY[action][role]


def can(
    actor: ActorContext, action: str, context: Ownership | None = None
) -> bool:
    """Return whether ``actor`` may perform ``action`` on the resource."""
    rule = get_rule(actor.role, action)
    if rule == ALLOW:
        return True
    if rule == DENY or context is None:
        return False
    is_owner = actor.id in context.owner_ids
    if rule == OWNER:
        return is_owner
    # DEPARTMENT: own resources, plus anything in the actor's department
    return is_owner or (
        actor.department_id is not None
        and context.department_id == actor.department_id
    )


def require(
    actor: ActorContext, action: str, context: Ownership | None = None
) -> None:
    """Raise Forbidden unless the policy allows the action."""
    if not can(actor, action, context):
        raise Forbidden(
            f"Role '{actor.role}' may not perform '{action}' here."
        )


def scope_queryset(
    actor: ActorContext,
    action: str,
    queryset,
    owner_field: str | tuple | None = None,
    department_field: str = "department",
    owner_extra: dict | None = None,
):
    """Filter ``queryset`` down to the rows ``actor`` may see for ``action``.

    The list counterpart of ``can()``: owner rules match ``owner_field``
    (a field name or a tuple of them) against the actor, plus any
    ``owner_extra`` lookups; department rules also match
    ``department_field``. Callers filtering across a multi-valued relation
    should add ``.distinct()``.
    """
    rule = get_rule(actor.role, action)
    if rule == ALLOW:
        return queryset
    if rule == DENY:
        return queryset.none()
    fields = (owner_field,) if isinstance(owner_field, str) else owner_field
    owned = Q(pk__in=[])
    for field in fields or ():
        owned |= Q(**{field: actor.id}, **(owner_extra or {}))
    if rule == OWNER or actor.department_id is None:
        return queryset.filter(owned)
    return queryset.filter(
        owned | Q(**{department_field: actor.department_id})
    )


def request_ownership(asset_request) -> Ownership:
    return Ownership(
        owner_ids=(asset_request.requester_id,),
        department_id=asset_request.department_id,
    )


def allocation_ownership(allocation) -> Ownership:
    return Ownership(
        owner_ids=(allocation.employee_id,),
        department_id=allocation.asset.department_id,
    )


def ticket_ownership(ticket) -> Ownership:
    return Ownership(
        owner_ids=(ticket.reporter_id,),
        department_id=ticket.department_id,
    )


def transfer_ownership(transfer) -> Ownership:
    return Ownership(
        owner_ids=(transfer.from_user_id, transfer.to_user_id),
        department_id=transfer.asset.department_id,
    )


def asset_ownership(asset) -> Ownership:
    holder = asset.allocations.filter(status="active").values_list(
        "employee_id", flat=True
    )
    return Ownership(
        owner_ids=tuple(holder),
        department_id=asset.department_id,
    )
