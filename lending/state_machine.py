"""
Contract status transitions.

All status writes go through :func:`transition`, which checks the move against
``CONTRACT_TRANSITIONS`` and applies it as a conditional UPDATE keyed on the
expected source status. A concurrent writer that already moved the contract
makes the update touch zero rows, which is reported as a StateError with no
mutation.
"""
import logging

from django.utils import timezone

from .exceptions import StateError
from .models import Contract

logger = logging.getLogger(__name__)

Status = Contract.Status

CONTRACT_TRANSITIONS = {
    Status.CREATED: {Status.PENDING_SIGNATURES},
    Status.PENDING_SIGNATURES: {Status.AWAITING_DISBURSAL},
    Status.AWAITING_DISBURSAL: {Status.AWAITING_RECEIPT_CONFIRMATION},
    Status.AWAITING_RECEIPT_CONFIRMATION: {Status.ACTIVE},
    Status.ACTIVE: {Status.COMPLETED, Status.DEFAULTED},
    Status.COMPLETED: set(),
    Status.DEFAULTED: set(),
}

TERMINAL_STATUSES = {Status.COMPLETED, Status.DEFAULTED}

# Order of the happy path, used to tell "already past this step" from "not there yet".
LIFECYCLE_ORDER = [
    Status.CREATED,
    Status.PENDING_SIGNATURES,
    Status.AWAITING_DISBURSAL,
    Status.AWAITING_RECEIPT_CONFIRMATION,
    Status.ACTIVE,
    Status.COMPLETED,
]


def can_transition(source, target):
    return target in CONTRACT_TRANSITIONS.get(source, set())


def has_reached(status, milestone):
    """True if ``status`` is ``milestone`` or any later lifecycle state."""
    if status == Status.DEFAULTED:
        return LIFECYCLE_ORDER.index(milestone) <= LIFECYCLE_ORDER.index(Status.ACTIVE)
    return LIFECYCLE_ORDER.index(status) >= LIFECYCLE_ORDER.index(milestone)


def transition(contract, target, **fields):
    """
    Move ``contract`` from its current in-memory status to ``target``.

    Extra ``fields`` are written in the same UPDATE. On success the instance is
    updated in place.
    """
    source = contract.status
    if not can_transition(source, target):
        raise StateError(
            f"Contract #{contract.pk} cannot move from {source} to {target}."
        )

    fields["status"] = target
    fields["updated_at"] = timezone.now()
    updated = Contract.objects.filter(pk=contract.pk, status=source).update(**fields)
    if updated != 1:
        raise StateError(
            f"Contract #{contract.pk} is no longer {source}; the transition to {target} was not applied."
        )

    for name, value in fields.items():
        setattr(contract, name, value)
    logger.info("Contract #%s moved %s -> %s", contract.pk, source, target)
    return contract


def lock_contract(contract_id):
    """Load a contract holding its row lock. Must run inside transaction.atomic()."""
    return Contract.objects.select_for_update().get(pk=contract_id)
