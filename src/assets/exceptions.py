"""Error kinds raised by the workflow services.

Validation failures use Django's own ``ValidationError`` so that form
errors flow through unchanged; the remaining kinds are defined here.
"""

import logging
from contextlib import contextmanager

from django.core.exceptions import (
    ObjectDoesNotExist,
    PermissionDenied,
    ValidationError,
)
from django.db import OperationalError
from django.db import transaction as db_transaction

logger = logging.getLogger(__name__)

__all__ = [
    "Conflict",
    "Forbidden",
    "InvalidAttachment",
    "InvalidState",
    "InvalidTransition",
    "NotFound",
    "Unavailable",
    "ValidationError",
    "atomic_transition",
]


class Forbidden(PermissionDenied):
    """The authorization policy denied the action."""


class NotFound(ObjectDoesNotExist):
    """A referenced record does not exist."""


class Conflict(Exception):
    """The current state of the subject does not allow the operation."""


class InvalidTransition(Conflict):
    """The requested status is not reachable from the current status."""


class InvalidState(Conflict):
    """The subject is not in the state the operation requires."""


class InvalidAttachment(ValidationError):
    """An uploaded file failed the type or size constraints."""


class Unavailable(Exception):
    """A downstream dependency could not be reached; safe to retry."""


@contextmanager
def atomic_transition():
    """Run a transition in one database transaction.

    Operational failures (lost connection, lock timeout) roll the whole
    transaction back and surface as ``Unavailable``.
    """
    try:
        with db_transaction.atomic():
            yield
    except OperationalError as exc:
        logger.warning("Transition rolled back: %s", exc)
        raise Unavailable(
            "The database is temporarily unavailable. Please retry."
        ) from exc
