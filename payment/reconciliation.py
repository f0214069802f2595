"""
Payment reconciliation.

Applies verified gateway events to the ledger and to contract status exactly
once. Gateways redeliver freely, so every handler is written as
check-then-act inside a single transaction that holds the contract's row lock:

* a DISBURSAL completion writes at most one DISBURSED transaction per
  contract and moves AWAITING_DISBURSAL -> AWAITING_RECEIPT_CONFIRMATION once;
* an EMI completion is keyed on its gateway order reference and pays the next
  unpaid installment, completing the contract after the last one;
* a failure only leaves an audit row.

Events that do not fit the contract's current state are acknowledged and
logged, never raised, so the webhook always answers 200 once handled. The
partial unique constraints on Transaction back up the in-transaction checks
when two deliveries race on a database without row locks.
"""
import logging
import uuid
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from dateutil.relativedelta import relativedelta
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from lending import state_machine
from lending.exceptions import EligibilityError, NotFoundError, StateError
from lending.models import Contract
from lending.services import close_loan_request
from lending.trust import emit_trust_delta
from .models import Installment, Transaction
from .schedule import schedule_for_contract

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"
FAILED = "FAILED"
DISBURSAL = "DISBURSAL"
EMI = "EMI"

APPLIED = "APPLIED"
DUPLICATE = "DUPLICATE"
STALE = "STALE"
RECORDED = "RECORDED"
UNKNOWN_CONTRACT = "UNKNOWN_CONTRACT"

PaymentEvent = namedtuple(
    "PaymentEvent",
    ["event_type", "contract_id", "payment_type", "gateway_order_ref", "amount_minor"],
    defaults=[None],
)


def reconcile(event):
    """Apply one verified gateway event. Returns the outcome constant."""
    with transaction.atomic():
        try:
            contract = state_machine.lock_contract(event.contract_id)
        except Contract.DoesNotExist:
            logger.warning(
                "Gateway event %s for unknown contract %s ignored",
                event.gateway_order_ref,
                event.contract_id,
            )
            return UNKNOWN_CONTRACT

        if event.event_type == FAILED:
            return _record_failure(contract, event)
        if event.payment_type == DISBURSAL:
            return _apply_disbursal(contract, event)
        return _apply_emi(contract, event)


def _insert_transaction(**fields):
    """Insert a ledger row, returning None if a unique constraint says it already exists."""
    try:
        with transaction.atomic():
            return Transaction.objects.create(**fields)
    except IntegrityError:
        return None


def _apply_disbursal(contract, event):
    if not state_machine.has_reached(contract.status, Contract.Status.AWAITING_DISBURSAL):
        logger.warning(
            "Disbursal %s for contract #%s arrived while %s; acknowledged without changes",
            event.gateway_order_ref,
            contract.id,
            contract.status,
        )
        return STALE

    outcome = DUPLICATE
    existing = Transaction.objects.filter(
        contract=contract, status=Transaction.Status.DISBURSED
    ).first()
    if existing is None:
        created = _insert_transaction(
            contract=contract,
            from_user_id=contract.lender_id,
            to_user_id=contract.receiver_id,
            amount=contract.principal,
            status=Transaction.Status.DISBURSED,
            gateway_order_ref=event.gateway_order_ref,
        )
        if created is not None:
            logger.info(
                "Disbursal of %s recorded for contract #%s (%s)",
                contract.principal,
                contract.id,
                event.gateway_order_ref,
            )
            outcome = APPLIED
    elif existing.gateway_order_ref != event.gateway_order_ref:
        logger.warning(
            "Contract #%s already disbursed via %s; second disbursal %s not recorded",
            contract.id,
            existing.gateway_order_ref,
            event.gateway_order_ref,
        )

    if contract.status == Contract.Status.AWAITING_DISBURSAL:
        state_machine.transition(contract, Contract.Status.AWAITING_RECEIPT_CONFIRMATION)
        outcome = APPLIED

    if outcome == DUPLICATE:
        logger.info(
            "Duplicate disbursal event %s for contract #%s ignored",
            event.gateway_order_ref,
            contract.id,
        )
    return outcome


def next_unpaid_installment(contract, lock=False):
    installments = Installment.objects.filter(
        contract=contract, status=Installment.Status.PENDING
    ).order_by("emi_number")
    if lock:
        installments = installments.select_for_update()
    return installments.first()


def _apply_emi(contract, event):
    if Transaction.objects.filter(
        gateway_order_ref=event.gateway_order_ref,
        status=Transaction.Status.ACKNOWLEDGED,
    ).exists():
        logger.info(
            "Duplicate EMI event %s for contract #%s ignored",
            event.gateway_order_ref,
            contract.id,
        )
        return DUPLICATE

    if contract.status != Contract.Status.ACTIVE:
        logger.warning(
            "EMI payment %s for contract #%s arrived while %s; acknowledged without changes",
            event.gateway_order_ref,
            contract.id,
            contract.status,
        )
        return STALE

    installment = next_unpaid_installment(contract, lock=True)
    if installment is None:
        logger.warning(
            "EMI payment %s for contract #%s has no unpaid installment to settle",
            event.gateway_order_ref,
            contract.id,
        )
        return STALE

    created = _insert_transaction(
        contract=contract,
        from_user_id=contract.receiver_id,
        to_user_id=contract.lender_id,
        amount=installment.amount,
        status=Transaction.Status.ACKNOWLEDGED,
        gateway_order_ref=event.gateway_order_ref,
        emi_number=installment.emi_number,
    )
    if created is None:
        return DUPLICATE

    now = timezone.now()
    settled = Installment.objects.filter(
        pk=installment.pk, status=Installment.Status.PENDING
    ).update(status=Installment.Status.PAID, paid_at=now)
    if settled != 1:
        # Rolls back the ledger row written above.
        raise StateError(
            f"EMI #{installment.emi_number} of contract #{contract.id} is no longer pending"
        )
    logger.info(
        "EMI #%s of contract #%s paid (%s)",
        installment.emi_number,
        contract.id,
        event.gateway_order_ref,
    )

    on_time = timezone.localdate(now) <= installment.due_date
    emit_trust_delta(contract.receiver_id, "EMI_ON_TIME" if on_time else "EMI_LATE")

    if next_unpaid_installment(contract) is None:
        state_machine.transition(contract, Contract.Status.COMPLETED)
        close_loan_request(contract)
        emit_trust_delta(contract.receiver_id, "CONTRACT_COMPLETED")
    return APPLIED


def _record_failure(contract, event):
    logger.warning(
        "Payment %s (%s) failed for contract #%s",
        event.gateway_order_ref,
        event.payment_type,
        contract.id,
    )
    if event.payment_type == DISBURSAL:
        payer, payee, amount = contract.lender_id, contract.receiver_id, contract.principal
        emi_number = None
    else:
        installment = next_unpaid_installment(contract)
        payer, payee = contract.receiver_id, contract.lender_id
        amount = installment.amount if installment else Decimal("0")
        emi_number = installment.emi_number if installment else None
    if event.amount_minor is not None:
        amount = (Decimal(event.amount_minor) / 100).quantize(Decimal("0.01"))

    created = _insert_transaction(
        contract=contract,
        from_user_id=payer,
        to_user_id=payee,
        amount=amount,
        status=Transaction.Status.FAILED,
        gateway_order_ref=event.gateway_order_ref,
        emi_number=emi_number,
    )
    return RECORDED if created is not None else DUPLICATE


def confirm_receipt(receiver, contract_id):
    """
    Receiver confirms the disbursed funds arrived.

    Activates the contract, fixes its start and end dates and materializes
    the EMI schedule.
    """
    with transaction.atomic():
        try:
            contract = state_machine.lock_contract(contract_id)
        except Contract.DoesNotExist:
            raise NotFoundError("Contract not found")
        if contract.receiver_id != receiver.id:
            raise EligibilityError("Only the receiver can confirm receipt of funds")
        if contract.status != Contract.Status.AWAITING_RECEIPT_CONFIRMATION:
            raise StateError(f"Receipt cannot be confirmed while the contract is {contract.status}")

        start_date = timezone.localdate()
        end_date = start_date + relativedelta(days=contract.tenor_days)
        state_machine.transition(
            contract, Contract.Status.ACTIVE, start_date=start_date, end_date=end_date
        )
        Installment.objects.bulk_create(
            Installment(
                contract=contract,
                emi_number=item.emi_number,
                due_date=item.due_date,
                principal_component=item.principal_component,
                interest_component=item.interest_component,
            )
            for item in schedule_for_contract(contract)
        )

    logger.info("Receipt confirmed for contract #%s; loan is active", contract.id)
    return contract


def _gateway_order_ref(payment_type, contract_id):
    return f"{payment_type}_{contract_id}_{uuid.uuid4().hex[:8]}"


def _start_payment(client, contract, payer, payment_type, amount):
    gateway_order_ref = _gateway_order_ref(payment_type, contract.id)
    amount_minor = int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))
    base_url = settings.PAYMENT_GATEWAY["REDIRECT_BASE_URL"].rstrip("/")
    redirect_url = (
        f"{base_url}/payment-status?merchantOrderId={gateway_order_ref}&type={payment_type}"
    )
    meta_info = {
        "contractId": str(contract.id),
        "payerId": str(payer.id),
        "paymentType": payment_type,
    }
    checkout_url = client.create_order(gateway_order_ref, amount_minor, redirect_url, meta_info)
    logger.info(
        "%s payment %s of %s initiated for contract #%s",
        payment_type,
        gateway_order_ref,
        amount,
        contract.id,
    )
    return {
        "redirect_url": checkout_url,
        "gateway_order_ref": gateway_order_ref,
        "amount": str(amount),
    }


def _get_contract(contract_id):
    try:
        return Contract.objects.get(pk=contract_id)
    except (Contract.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Contract not found")


def initiate_disbursal_payment(client, lender, contract_id):
    contract = _get_contract(contract_id)
    if contract.lender_id != lender.id:
        raise EligibilityError("Only the lender can disburse this contract")
    if contract.status != Contract.Status.AWAITING_DISBURSAL:
        raise StateError(f"Disbursal is not possible while the contract is {contract.status}")
    return _start_payment(client, contract, lender, DISBURSAL, contract.principal)


def initiate_emi_payment(client, receiver, contract_id):
    contract = _get_contract(contract_id)
    if contract.receiver_id != receiver.id:
        raise EligibilityError("You are not authorized to make payments for this contract.")
    if contract.status != Contract.Status.ACTIVE:
        raise StateError("Payments can only be made on active loans.")
    installment = next_unpaid_installment(contract)
    if installment is None:
        raise StateError("This contract has no outstanding installments.")
    return _start_payment(client, contract, receiver, EMI, installment.amount)
