import pytest
from decimal import Decimal
from lending.eligibility import (
    load_brochures,
    max_loan_limit,
    validate_guarantor_nomination,
    validate_request_creation,
)
from lending.exceptions import (
    ConflictError,
    EligibilityError,
    NotFoundError,
    RoleError,
    ValidationError,
)
from lending.models import LoanBrochure
from conftest import make_user


class TestMaxLoanLimit:
    """Trust index tiers"""

    @pytest.mark.parametrize(
        "trust_index,expected",
        [
            (0, "0"),
            (299, "0"),
            (300, "5000"),
            (450, "10000"),
            (500, "25000"),
            (650, "50000"),
            (799, "100000"),
            (800, "200000"),
            (1000, "200000"),
        ],
    )
    def test_tiers(self, trust_index, expected):
        assert max_loan_limit(trust_index) == Decimal(expected)

    def test_limit_never_decreases(self):
        limits = [max_loan_limit(trust_index) for trust_index in range(0, 1001, 10)]
        assert limits == sorted(limits)

    def test_misordered_tiers_keep_running_max(self, settings):
        settings.TRUST_INDEX_LOAN_LIMITS = [(300, 5000), (400, 20000), (500, 15000)]

        assert max_loan_limit(450) == Decimal("20000")
        assert max_loan_limit(550) == Decimal("20000")


@pytest.mark.django_db
class TestRequestCreationRules:
    """Eligibility checks run before a loan request is written"""

    def test_eligible_receiver(self, receiver_user, guarantor_user, brochure):
        brochures = validate_request_creation(receiver_user, "RECEIVER", [brochure.id], guarantor_user.id)

        assert brochures == [brochure]

    def test_amount_above_limit(self, low_trust_receiver, guarantor_user, large_brochure):
        with pytest.raises(EligibilityError) as excinfo:
            validate_request_creation(
                low_trust_receiver, "RECEIVER", [large_brochure.id], guarantor_user.id
            )

        assert "Your maximum eligible amount is 10000" in str(excinfo.value)
        assert excinfo.value.status_code == 403

    def test_amount_at_limit(self, low_trust_receiver, lender_user):
        at_limit = LoanBrochure.objects.create(
            lender=lender_user, amount=Decimal("10000.00"), interest_rate=Decimal("5"), tenor_days=30
        )

        assert validate_request_creation(low_trust_receiver, "RECEIVER", [at_limit.id], None)

    def test_any_brochure_above_limit_rejects(self, low_trust_receiver, brochure, large_brochure):
        with pytest.raises(EligibilityError):
            validate_request_creation(
                low_trust_receiver, "RECEIVER", [brochure.id, large_brochure.id], None
            )

    @pytest.mark.parametrize("role", ["LENDER", "GUARANTOR"])
    def test_wrong_role(self, receiver_user, brochure, role):
        with pytest.raises(RoleError):
            validate_request_creation(receiver_user, role, [brochure.id], None)

    def test_unknown_role(self, receiver_user, brochure):
        with pytest.raises(ValidationError):
            validate_request_creation(receiver_user, "BORROWER", [brochure.id], None)

    def test_own_brochure(self, lender_user, brochure):
        with pytest.raises(ValidationError):
            validate_request_creation(lender_user, "RECEIVER", [brochure.id], None)

    def test_existing_active_request(self, loan_request, receiver_user, brochure):
        with pytest.raises(ConflictError):
            validate_request_creation(receiver_user, "RECEIVER", [brochure.id], None)


@pytest.mark.django_db
class TestBrochureSelection:
    def test_empty_selection(self):
        with pytest.raises(ValidationError):
            load_brochures([])

    def test_too_many_brochures(self, lender_user):
        ids = [
            LoanBrochure.objects.create(
                lender=lender_user, amount=Decimal("1000"), interest_rate=Decimal("5"), tenor_days=30
            ).id
            for _ in range(4)
        ]

        with pytest.raises(ValidationError) as excinfo:
            load_brochures(ids)
        assert "between 1 and 3" in str(excinfo.value)
        assert len(load_brochures(ids[:3])) == 3

    def test_repeated_brochure(self, brochure):
        with pytest.raises(ValidationError):
            load_brochures([brochure.id, brochure.id])

    def test_inactive_brochure(self, brochure):
        brochure.active = False
        brochure.save()

        with pytest.raises(ValidationError):
            load_brochures([brochure.id])

    def test_not_a_list(self, brochure):
        with pytest.raises(ValidationError):
            load_brochures(brochure.id)


@pytest.mark.django_db
class TestGuarantorNomination:
    """Who may stand as guarantor"""

    def test_endorsing_guarantor(self, receiver_user, guarantor_user):
        assert validate_guarantor_nomination(receiver_user, guarantor_user.id) == guarantor_user

    def test_self_nomination(self, receiver_user):
        with pytest.raises(ValidationError):
            validate_guarantor_nomination(receiver_user, receiver_user.id)

    def test_guarantor_without_endorsement(self, receiver_user, lender_user):
        with pytest.raises(EligibilityError) as excinfo:
            validate_guarantor_nomination(receiver_user, lender_user.id)

        assert "has not endorsed you" in str(excinfo.value)

    def test_endorsement_is_directional(self, receiver_user, guarantor_user):
        # guarantor endorsed receiver, not the other way round
        with pytest.raises(EligibilityError):
            validate_guarantor_nomination(guarantor_user, receiver_user.id)

    def test_guarantor_below_minimum_trust(self, receiver_user):
        from lending.models import Endorsement

        weak = make_user("weak_guarantor", 480)
        Endorsement.objects.create(endorser=weak, endorsee=receiver_user)

        with pytest.raises(EligibilityError) as excinfo:
            validate_guarantor_nomination(receiver_user, weak.id)
        assert "at least 500" in str(excinfo.value)

    def test_unknown_guarantor(self, receiver_user):
        with pytest.raises(NotFoundError):
            validate_guarantor_nomination(receiver_user, 999)

    def test_missing_guarantor(self, receiver_user):
        with pytest.raises(ValidationError):
            validate_guarantor_nomination(receiver_user, None)
