"""
Loan request, guarantor and contract-signing workflows.

Every public function here is one all-or-nothing unit: it runs inside
``transaction.atomic()`` and raises a LendingError before any write becomes
visible.
"""
import logging

from django.contrib.auth.models import User
from django.db import IntegrityError, transaction
from django.utils import timezone

from . import state_machine
from .eligibility import validate_guarantor_nomination, validate_request_creation
from .exceptions import (
    ConflictError,
    EligibilityError,
    NotFoundError,
    StateError,
    ValidationError,
)
from .models import Contract, GuarantorRequest, LoanBrochure, LoanRequest
from payment.schedule import total_repayable

logger = logging.getLogger(__name__)


def get_user(user_id, label="User"):
    if user_id in (None, ""):
        raise ValidationError(f"{label.lower()}_id is required")
    try:
        return User.objects.get(id=user_id)
    except (User.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(f"{label} not found")


def _lock_loan_request(loan_request_id):
    try:
        return LoanRequest.objects.select_for_update().get(id=loan_request_id)
    except LoanRequest.DoesNotExist:
        raise NotFoundError("Loan request not found")


def create_loan_request(receiver, role, brochure_ids, guarantor_id, purpose=""):
    """Create a loan request together with its guarantor request."""
    with transaction.atomic():
        brochures = validate_request_creation(receiver, role, brochure_ids, guarantor_id)
        guarantor = validate_guarantor_nomination(receiver, guarantor_id)
        if any(brochure.lender_id == guarantor.id for brochure in brochures):
            raise ValidationError("A guarantor cannot also be the lender of a selected brochure.")

        try:
            with transaction.atomic():
                loan_request = LoanRequest.objects.create(
                    receiver=receiver, guarantor=guarantor, purpose=purpose or ""
                )
        except IntegrityError:
            raise ConflictError("You already have an active loan request.")
        loan_request.brochures.set(brochures)
        GuarantorRequest.objects.create(
            receiver=receiver, guarantor=guarantor, loan_request=loan_request
        )

    logger.info(
        "Loan request #%s created by user %s with guarantor %s",
        loan_request.id,
        receiver.id,
        guarantor.id,
    )
    return loan_request


def cancel_loan_request(receiver, loan_request_id):
    with transaction.atomic():
        loan_request = _lock_loan_request(loan_request_id)
        if loan_request.receiver_id != receiver.id:
            raise EligibilityError("You can only cancel your own loan requests")
        if loan_request.status not in (
            LoanRequest.Status.PENDING,
            LoanRequest.Status.GUARANTOR_ACCEPTED,
        ):
            raise StateError("Only pending loan requests can be cancelled")

        loan_request.status = LoanRequest.Status.CANCELLED
        loan_request.save(update_fields=["status", "updated_at"])
        loan_request.guarantor_requests.filter(
            status=GuarantorRequest.Status.PENDING
        ).update(status=GuarantorRequest.Status.DECLINED, responded_at=timezone.now())

    logger.info("Loan request #%s cancelled", loan_request.id)
    return loan_request


def nominate_guarantor(receiver, loan_request_id, guarantor_id):
    """Open a new guarantor request after the previous guarantor declined."""
    with transaction.atomic():
        loan_request = _lock_loan_request(loan_request_id)
        if loan_request.receiver_id != receiver.id:
            raise EligibilityError("You can only nominate guarantors for your own loan requests")
        if loan_request.status != LoanRequest.Status.PENDING:
            raise StateError("A guarantor can only be nominated while the loan request is pending")
        if loan_request.guarantor_requests.filter(
            status=GuarantorRequest.Status.PENDING
        ).exists():
            raise ConflictError("This loan request already has a pending guarantor request")

        guarantor = validate_guarantor_nomination(receiver, guarantor_id)
        if loan_request.brochures.filter(lender=guarantor).exists():
            raise ValidationError("A guarantor cannot also be the lender of a selected brochure.")

        loan_request.guarantor = guarantor
        loan_request.save(update_fields=["guarantor", "updated_at"])
        guarantor_request = GuarantorRequest.objects.create(
            receiver=receiver, guarantor=guarantor, loan_request=loan_request
        )

    logger.info(
        "Guarantor %s nominated for loan request #%s", guarantor.id, loan_request.id
    )
    return guarantor_request


def respond_to_guarantor_request(guarantor, guarantor_request_id, decision):
    if decision not in (GuarantorRequest.Status.ACCEPTED, GuarantorRequest.Status.DECLINED):
        raise ValidationError("status must be ACCEPTED or DECLINED")

    with transaction.atomic():
        loan_request_id = (
            GuarantorRequest.objects.filter(id=guarantor_request_id)
            .values_list("loan_request_id", flat=True)
            .first()
        )
        if loan_request_id is None:
            raise NotFoundError("Guarantor request not found")
        # Same lock order as cancel_loan_request: loan request, then guarantor request.
        loan_request = _lock_loan_request(loan_request_id)
        guarantor_request = GuarantorRequest.objects.select_for_update().get(
            id=guarantor_request_id
        )

        if guarantor_request.guarantor_id != guarantor.id:
            raise EligibilityError("Only the nominated guarantor can respond to this request")
        if guarantor_request.status != GuarantorRequest.Status.PENDING:
            raise StateError(
                f"This guarantor request has already been {guarantor_request.status.lower()}"
            )
        if loan_request.status != LoanRequest.Status.PENDING:
            raise StateError("The loan request is no longer pending")

        guarantor_request.status = decision
        guarantor_request.responded_at = timezone.now()
        guarantor_request.save(update_fields=["status", "responded_at"])

        if decision == GuarantorRequest.Status.ACCEPTED:
            loan_request.status = LoanRequest.Status.GUARANTOR_ACCEPTED
            loan_request.save(update_fields=["status", "updated_at"])

    logger.info(
        "Guarantor request #%s %s by user %s",
        guarantor_request.id,
        decision,
        guarantor.id,
    )
    return guarantor_request


def accept_loan_request(lender, loan_request_id, brochure_id):
    """Lender takes up a guarantor-backed request and a contract is drafted."""
    with transaction.atomic():
        loan_request = _lock_loan_request(loan_request_id)
        if loan_request.status != LoanRequest.Status.GUARANTOR_ACCEPTED:
            raise StateError("Only requests accepted by a guarantor can be accepted by a lender")
        try:
            brochure = loan_request.brochures.get(id=brochure_id)
        except (LoanBrochure.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Brochure is not part of this loan request")
        if brochure.lender_id != lender.id:
            raise EligibilityError("You can only accept requests for your own brochures")
        if lender.id in (loan_request.receiver_id, loan_request.guarantor_id):
            raise EligibilityError("The lender must be different from the receiver and guarantor")
        if not brochure.active:
            raise StateError("This brochure is no longer active")

        loan_request.status = LoanRequest.Status.CONTRACTING
        loan_request.save(update_fields=["status", "updated_at"])
        contract = Contract.objects.create(
            loan_request=loan_request,
            brochure=brochure,
            receiver_id=loan_request.receiver_id,
            lender=lender,
            guarantor_id=loan_request.guarantor_id,
            principal=brochure.amount,
            interest_rate=brochure.interest_rate,
            tenor_days=brochure.tenor_days,
            total_repayable=total_repayable(brochure.amount, brochure.interest_rate),
        )

    logger.info(
        "Lender %s accepted loan request #%s; contract #%s created",
        lender.id,
        loan_request.id,
        contract.id,
    )
    return contract


def sign_contract(user, contract_id):
    """
    Record the signature of the receiver or lender.

    Signing twice is a no-op. The contract becomes AWAITING_DISBURSAL once both
    parties have signed.
    """
    with transaction.atomic():
        try:
            contract = state_machine.lock_contract(contract_id)
        except Contract.DoesNotExist:
            raise NotFoundError("Contract not found")

        if user.id == contract.receiver_id:
            flag = "receiver_signed"
        elif user.id == contract.lender_id:
            flag = "lender_signed"
        else:
            raise EligibilityError("Only the receiver or lender can sign this contract")

        if getattr(contract, flag):
            return contract
        if contract.status not in (
            Contract.Status.CREATED,
            Contract.Status.PENDING_SIGNATURES,
        ):
            raise StateError(f"Contract cannot be signed while {contract.status}")

        if contract.status == Contract.Status.CREATED:
            state_machine.transition(contract, Contract.Status.PENDING_SIGNATURES)

        now = timezone.now()
        setattr(contract, flag, True)
        setattr(contract, f"{flag}_at", now)
        contract.save(update_fields=[flag, f"{flag}_at", "updated_at"])
        logger.info("Contract #%s signed by user %s", contract.id, user.id)

        if contract.receiver_signed and contract.lender_signed:
            state_machine.transition(contract, Contract.Status.AWAITING_DISBURSAL)

    return contract


def update_brochure(lender, brochure_id, changes):
    with transaction.atomic():
        try:
            brochure = LoanBrochure.objects.select_for_update().get(id=brochure_id)
        except LoanBrochure.DoesNotExist:
            raise NotFoundError("Brochure not found")
        if brochure.lender_id != lender.id:
            raise EligibilityError("You can only edit your own brochures")

        term_changes = {
            name: value
            for name, value in changes.items()
            if name in ("amount", "interest_rate", "tenor_days")
            and value != getattr(brochure, name)
        }
        if term_changes and brochure.is_locked:
            raise StateError("Brochure terms cannot change once a request has been accepted")

        for name, value in changes.items():
            setattr(brochure, name, value)
        brochure.save()
    return brochure


def close_loan_request(contract):
    """Close the request behind a contract that reached a terminal status."""
    LoanRequest.objects.filter(
        id=contract.loan_request_id, status=LoanRequest.Status.CONTRACTING
    ).update(status=LoanRequest.Status.CLOSED, updated_at=timezone.now())
