"""
Eligibility rules for opening a loan request.

Everything here is read-only: the checks look at profiles, brochures and
endorsements but never write. Callers run them inside the same atomic block
as the writes they guard.
"""
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import User

from .exceptions import (
    ConflictError,
    EligibilityError,
    NotFoundError,
    RoleError,
    ValidationError,
)
from .models import Endorsement, LoanBrochure, LoanRequest, Role, UserProfile

MIN_BROCHURES = 1
MAX_BROCHURES = 3


def max_loan_limit(trust_index):
    """
    Maximum amount a receiver with ``trust_index`` may request.

    Walks the ``TRUST_INDEX_LOAN_LIMITS`` tiers keeping a running maximum, so
    the result never decreases as the index grows even if a tier is misordered.
    """
    limit = Decimal("0")
    for minimum_index, tier_limit in sorted(settings.TRUST_INDEX_LOAN_LIMITS):
        if trust_index < minimum_index:
            break
        limit = max(limit, Decimal(tier_limit))
    return limit


def trust_index_of(user):
    profile, _ = UserProfile.objects.get_or_create(user=user)
    return profile.trust_index


def load_brochures(brochure_ids):
    if not isinstance(brochure_ids, (list, tuple)):
        raise ValidationError("brochure_ids must be a list")
    if not MIN_BROCHURES <= len(brochure_ids) <= MAX_BROCHURES:
        raise ValidationError(
            f"You must select between {MIN_BROCHURES} and {MAX_BROCHURES} brochures to apply for."
        )
    try:
        unique_ids = {int(brochure_id) for brochure_id in brochure_ids}
    except (TypeError, ValueError):
        raise ValidationError("brochure_ids must contain integer ids")
    if len(unique_ids) != len(brochure_ids):
        raise ValidationError("brochure_ids must not repeat a brochure")

    brochures = list(LoanBrochure.objects.filter(id__in=unique_ids, active=True))
    if len(brochures) != len(unique_ids):
        raise ValidationError(
            "One or more of the selected brochures are invalid or no longer active."
        )
    return brochures


def validate_request_creation(receiver, role, brochure_ids, guarantor_id):
    """
    Check that ``receiver`` acting as ``role`` may request the given brochures.

    Returns the loaded brochures. ``guarantor_id`` is validated separately by
    :func:`validate_guarantor_nomination`.
    """
    if role not in Role.values:
        raise ValidationError(f"role must be one of {', '.join(Role.values)}")
    if role != Role.RECEIVER:
        raise RoleError("You must be in the RECEIVER role to request a loan.")

    brochures = load_brochures(brochure_ids)
    if any(brochure.lender_id == receiver.id for brochure in brochures):
        raise ValidationError("You cannot apply for your own brochure.")

    if LoanRequest.objects.filter(
        receiver=receiver, status__in=LoanRequest.ACTIVE_STATUSES
    ).exists():
        raise ConflictError("You already have an active loan request.")

    trust_index = trust_index_of(receiver)
    max_loan = max_loan_limit(trust_index)
    for brochure in brochures:
        if brochure.amount > max_loan:
            raise EligibilityError(
                f"Your TrustIndex of {trust_index} makes you ineligible for a loan of "
                f"amount {brochure.amount}. Your maximum eligible amount is {max_loan}."
            )
    return brochures


def validate_guarantor_nomination(receiver, guarantor_id):
    if guarantor_id is None:
        raise ValidationError("guarantor_id is required")
    try:
        guarantor_id = int(guarantor_id)
    except (TypeError, ValueError):
        raise ValidationError("guarantor_id must be an integer")
    if guarantor_id == receiver.id:
        raise ValidationError("You cannot nominate yourself as guarantor.")

    try:
        guarantor = User.objects.get(id=guarantor_id)
    except User.DoesNotExist:
        raise NotFoundError("Guarantor not found")

    if not Endorsement.objects.filter(endorser=guarantor, endorsee=receiver).exists():
        raise EligibilityError(
            f"{guarantor.username} has not endorsed you and cannot be nominated as guarantor."
        )

    minimum = settings.GUARANTOR_MIN_TRUST_INDEX
    if trust_index_of(guarantor) < minimum:
        raise EligibilityError(
            f"A guarantor needs a TrustIndex of at least {minimum}."
        )
    return guarantor
