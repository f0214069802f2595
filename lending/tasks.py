from datetime import timedelta

from celery import shared_task
from celery.utils.log import get_task_logger
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import state_machine
from .exceptions import StateError
from .models import Contract, TrustIndexEvent, UserProfile
from .services import close_loan_request
from .trust import emit_trust_delta
from payment.models import Installment

logger = get_task_logger(__name__)


@shared_task
def apply_trust_index_delta(user_id, delta, reason):
    """
    Adjust a user's trust index and append the change to their history.

    Returns:
        dict: The user id, applied delta and resulting trust index
    """
    with transaction.atomic():
        profile, created = UserProfile.objects.select_for_update().get_or_create(
            user_id=user_id
        )
        profile.trust_index += delta
        profile.save(update_fields=["trust_index"])
        TrustIndexEvent.objects.create(
            user_id=user_id,
            delta=delta,
            reason=reason,
            resulting_index=profile.trust_index,
        )

    logger.info("Trust index of user %s %+d (%s) -> %s", user_id, delta, reason, profile.trust_index)
    return {"user_id": user_id, "delta": delta, "trust_index": profile.trust_index}


@shared_task
def mark_defaulted_contracts():
    """
    Apply the delinquency policy to active contracts.

    This task runs every hour and:
    1. Finds active contracts with an installment unpaid for longer than
       DEFAULT_GRACE_DAYS past its due date
    2. Moves each of them ACTIVE -> DEFAULTED through the state machine
    3. Closes the loan request behind the contract
    4. Queues trust index penalties for the receiver and guarantor

    Returns:
        dict: Summary of defaulted contracts
    """
    cutoff = timezone.localdate() - timedelta(days=settings.DEFAULT_GRACE_DAYS)

    delinquent_ids = list(
        Installment.objects.filter(
            status=Installment.Status.PENDING,
            due_date__lt=cutoff,
            contract__status=Contract.Status.ACTIVE,
        )
        .values_list("contract_id", flat=True)
        .distinct()
    )

    defaulted = []
    skipped = 0

    for contract_id in delinquent_ids:
        try:
            with transaction.atomic():
                contract = state_machine.lock_contract(contract_id)
                if not contract.installments.filter(
                    status=Installment.Status.PENDING, due_date__lt=cutoff
                ).exists():
                    skipped += 1
                    continue
                state_machine.transition(contract, Contract.Status.DEFAULTED)
                close_loan_request(contract)
                emit_trust_delta(contract.receiver_id, "CONTRACT_DEFAULTED")
                emit_trust_delta(contract.guarantor_id, "GUARANTEED_CONTRACT_DEFAULTED")
            defaulted.append(contract_id)
        except StateError as e:
            # Settled or completed between the scan and the lock.
            logger.info("Skipping contract #%s: %s", contract_id, e)
            skipped += 1

    result = {
        "task": "mark_defaulted_contracts",
        "timestamp": timezone.now().isoformat(),
        "defaulted_contracts": defaulted,
        "skipped_contracts": skipped,
        "delinquent_contracts": len(delinquent_ids),
    }
    logger.info("Delinquency run: %s", result)
    return result
