from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django.db.models import Q
from .exceptions import LendingError, ValidationError
from .models import (
    Contract,
    Endorsement,
    GuarantorRequest,
    LoanBrochure,
    LoanRequest,
    TrustIndexEvent,
    UserProfile,
)
from .serializers import (
    ContractSerializer,
    CreateUserSerializer,
    GuarantorRequestSerializer,
    LoanBrochureSerializer,
    LoanRequestSerializer,
    TrustIndexEventSerializer,
    UserProfileSerializer,
)
from . import services
from payment.serializers import InstallmentSerializer


def error_response(error):
    return Response({"error": str(error)}, status=error.status_code)


class CreateUserView(APIView):
    """
    Create a new user with profile.

    Expected input:
    - username: Unique username
    - email: User email
    - password: Password (min 8 characters)
    - trust_index: Starting trust index (optional, default: 500)
    - payout_id: Payout handle such as a UPI id (optional)
    """

    def post(self, request):
        serializer = CreateUserSerializer(data=request.data)
        if serializer.is_valid():
            try:
                user = serializer.save()
            except IntegrityError:
                return Response(
                    {"error": "Username already exists"},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            return Response(
                {
                    "id": user.id,
                    "username": user.username,
                    "email": user.email,
                    "profile": {
                        "trust_index": user.profile.trust_index,
                        "payout_id": user.profile.payout_id,
                    },
                },
                status=status.HTTP_201_CREATED,
            )
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class UserProfileView(APIView):
    """Profile and trust index history of a user."""

    def get(self, request, user_id):
        try:
            user = services.get_user(user_id)
        except LendingError as e:
            return error_response(e)

        profile, created = UserProfile.objects.get_or_create(user=user)
        events = TrustIndexEvent.objects.filter(user=user)
        return Response(
            {
                "profile": UserProfileSerializer(profile).data,
                "trust_index_history": TrustIndexEventSerializer(events, many=True).data,
                "endorsed_by": list(
                    user.endorsements_received.values_list("endorser_id", flat=True)
                ),
            }
        )


class EndorseUserView(APIView):
    """
    Record that one user vouches for another.

    Expected input:
    - endorser_id: ID of the user giving the endorsement
    """

    def post(self, request, user_id):
        try:
            endorsee = services.get_user(user_id)
            endorser = services.get_user(request.data.get("endorser_id"), "Endorser")
            if endorser.id == endorsee.id:
                raise ValidationError("You cannot endorse yourself")
        except LendingError as e:
            return error_response(e)

        endorsement, created = Endorsement.objects.get_or_create(
            endorser=endorser, endorsee=endorsee
        )
        return Response(
            {"endorser": endorser.id, "endorsee": endorsee.id, "created": created},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class BrochureListCreateView(APIView):
    """
    GET: search active brochures.

    Query parameters (all optional):
    - min_amount / max_amount: Amount range
    - lender_id: Only brochures from this lender
    - include_inactive: "true" to list inactive ones too (with lender_id)

    POST: lender publishes a brochure.

    Expected input:
    - lender_id: ID of the lender
    - amount: Loan amount offered
    - interest_rate: Flat interest (%) over the full tenor
    - tenor_days: Loan duration in days
    """

    def get(self, request):
        brochures = LoanBrochure.objects.select_related("lender").order_by("amount", "id")
        lender_id = request.query_params.get("lender_id")
        if lender_id:
            brochures = brochures.filter(lender_id=lender_id)
        if not (lender_id and request.query_params.get("include_inactive") == "true"):
            brochures = brochures.filter(active=True)
        try:
            if request.query_params.get("min_amount"):
                brochures = brochures.filter(amount__gte=request.query_params["min_amount"])
            if request.query_params.get("max_amount"):
                brochures = brochures.filter(amount__lte=request.query_params["max_amount"])
            data = LoanBrochureSerializer(brochures, many=True).data
        except DjangoValidationError:
            return Response(
                {"error": "min_amount and max_amount must be numbers"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(data)

    def post(self, request):
        try:
            lender = services.get_user(request.data.get("lender_id"), "Lender")
        except LendingError as e:
            return error_response(e)

        serializer = LoanBrochureSerializer(data=request.data)
        if serializer.is_valid():
            brochure = serializer.save(lender=lender)
            return Response(
                LoanBrochureSerializer(brochure).data, status=status.HTTP_201_CREATED
            )
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class BrochureDetailView(APIView):
    """
    Lender edits a brochure. Terms are frozen once a request using it has been
    accepted; deactivating is always allowed.

    Expected input:
    - lender_id: ID of the owning lender
    - any of amount, interest_rate, tenor_days, active
    """

    def patch(self, request, brochure_id):
        try:
            lender = services.get_user(request.data.get("lender_id"), "Lender")
            brochure = LoanBrochure.objects.get(id=brochure_id)
        except LoanBrochure.DoesNotExist:
            return Response({"error": "Brochure not found"}, status=status.HTTP_404_NOT_FOUND)
        except LendingError as e:
            return error_response(e)

        serializer = LoanBrochureSerializer(brochure, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            brochure = services.update_brochure(lender, brochure_id, serializer.validated_data)
        except LendingError as e:
            return error_response(e)
        return Response(LoanBrochureSerializer(brochure).data)


class LoanRequestListCreateView(APIView):
    """
    GET: list the receiver's own loan requests (?receiver_id=).

    POST: create a loan request and its guarantor request together.

    Expected input:
    - receiver_id: ID of the receiver
    - role: Role the user is acting in; must be "RECEIVER"
    - brochure_ids: List of 1 to 3 brochure IDs
    - guarantor_id: ID of the nominated guarantor
    - purpose: Short description (optional)
    """

    def get(self, request):
        try:
            receiver = services.get_user(request.query_params.get("receiver_id"), "Receiver")
        except LendingError as e:
            return error_response(e)

        loan_requests = LoanRequest.objects.filter(receiver=receiver).prefetch_related(
            "brochures"
        )
        serializer = LoanRequestSerializer(loan_requests, many=True)
        return Response(serializer.data)

    def post(self, request):
        receiver_id = request.data.get("receiver_id")
        role = request.data.get("role")
        brochure_ids = request.data.get("brochure_ids")
        guarantor_id = request.data.get("guarantor_id")

        if not all([receiver_id, role, brochure_ids, guarantor_id]):
            return Response(
                {
                    "error": "receiver_id, role, brochure_ids, and guarantor_id are required"
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            receiver = services.get_user(receiver_id, "Receiver")
            loan_request = services.create_loan_request(
                receiver,
                role,
                brochure_ids,
                guarantor_id,
                purpose=request.data.get("purpose", ""),
            )
        except LendingError as e:
            return error_response(e)

        serializer = LoanRequestSerializer(loan_request)
        return Response(serializer.data, status=status.HTTP_201_CREATED)


class CancelLoanRequestView(APIView):
    """
    Receiver cancels a pending loan request.

    Expected input:
    - receiver_id: ID of the owning receiver
    """

    def post(self, request, loan_request_id):
        try:
            receiver = services.get_user(request.data.get("receiver_id"), "Receiver")
            loan_request = services.cancel_loan_request(receiver, loan_request_id)
        except LendingError as e:
            return error_response(e)

        return Response(LoanRequestSerializer(loan_request).data)


class IncomingLoanRequestsView(APIView):
    """
    List guarantor-accepted loan requests that include one of the lender's
    brochures (?lender_id=).
    """

    def get(self, request):
        try:
            lender = services.get_user(request.query_params.get("lender_id"), "Lender")
        except LendingError as e:
            return error_response(e)

        loan_requests = (
            LoanRequest.objects.filter(
                status=LoanRequest.Status.GUARANTOR_ACCEPTED, brochures__lender=lender
            )
            .distinct()
            .prefetch_related("brochures")
        )
        return Response(LoanRequestSerializer(loan_requests, many=True).data)


class AcceptLoanRequestView(APIView):
    """
    Lender accepts a guarantor-backed loan request.

    Expected input:
    - lender_id: ID of the lender
    - brochure_id: Which of the lender's brochures in the request to contract on

    This moves the request to CONTRACTING and drafts the contract.
    """

    def post(self, request, loan_request_id):
        brochure_id = request.data.get("brochure_id")
        if not brochure_id:
            return Response(
                {"error": "brochure_id is required"}, status=status.HTTP_400_BAD_REQUEST
            )

        try:
            lender = services.get_user(request.data.get("lender_id"), "Lender")
            contract = services.accept_loan_request(lender, loan_request_id, brochure_id)
        except LendingError as e:
            return error_response(e)

        return Response(ContractSerializer(contract).data, status=status.HTTP_201_CREATED)


class GuarantorRequestCreateView(APIView):
    """
    Nominate a new guarantor after the previous one declined.

    Expected input:
    - receiver_id: ID of the receiver
    - loan_request_id: ID of the pending loan request
    - guarantor_id: ID of the newly nominated guarantor
    """

    def post(self, request):
        loan_request_id = request.data.get("loan_request_id")
        guarantor_id = request.data.get("guarantor_id")
        if not all([loan_request_id, guarantor_id]):
            return Response(
                {"error": "loan_request_id and guarantor_id are required"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            receiver = services.get_user(request.data.get("receiver_id"), "Receiver")
            guarantor_request = services.nominate_guarantor(
                receiver, loan_request_id, guarantor_id
            )
        except LendingError as e:
            return error_response(e)

        return Response(
            GuarantorRequestSerializer(guarantor_request).data,
            status=status.HTTP_201_CREATED,
        )


class PendingGuarantorRequestsView(APIView):
    """List pending guarantor requests addressed to a user (?guarantor_id=)."""

    def get(self, request):
        try:
            guarantor = services.get_user(request.query_params.get("guarantor_id"), "Guarantor")
        except LendingError as e:
            return error_response(e)

        pending = GuarantorRequest.objects.filter(
            guarantor=guarantor, status=GuarantorRequest.Status.PENDING
        ).select_related("receiver", "guarantor")
        return Response(GuarantorRequestSerializer(pending, many=True).data)


class GuarantorRequestDetailView(APIView):
    """
    GET: a guarantor request by ID.

    PATCH: guarantor responds.

    Expected input:
    - guarantor_id: ID of the nominated guarantor
    - status: "ACCEPTED" or "DECLINED"
    """

    def get(self, request, guarantor_request_id):
        try:
            guarantor_request = GuarantorRequest.objects.get(id=guarantor_request_id)
        except GuarantorRequest.DoesNotExist:
            return Response(
                {"error": "Guarantor request not found"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(GuarantorRequestSerializer(guarantor_request).data)

    def patch(self, request, guarantor_request_id):
        decision = request.data.get("status")
        if not decision:
            return Response(
                {"error": "status is required"}, status=status.HTTP_400_BAD_REQUEST
            )

        try:
            guarantor = services.get_user(request.data.get("guarantor_id"), "Guarantor")
            guarantor_request = services.respond_to_guarantor_request(
                guarantor, guarantor_request_id, decision
            )
        except LendingError as e:
            return error_response(e)

        return Response(GuarantorRequestSerializer(guarantor_request).data)


class ContractDetailView(APIView):
    """
    Retrieve contract details by ID including the EMI schedule once active.
    """

    def get(self, request, contract_id):
        try:
            contract = Contract.objects.get(id=contract_id)
        except Contract.DoesNotExist:
            return Response(
                {"error": "Contract not found"}, status=status.HTTP_404_NOT_FOUND
            )

        contract_data = ContractSerializer(contract).data
        installments = contract.installments.all()
        schedule_data = InstallmentSerializer(installments, many=True).data

        return Response({"contract": contract_data, "emi_schedule": schedule_data})


class SignContractView(APIView):
    """
    Receiver or lender signs the contract.

    Expected input:
    - user_id: ID of the signing party

    Signing twice is harmless. Once both have signed the contract awaits
    disbursal.
    """

    def post(self, request, contract_id):
        try:
            user = services.get_user(request.data.get("user_id"))
            contract = services.sign_contract(user, contract_id)
        except LendingError as e:
            return error_response(e)

        return Response(ContractSerializer(contract).data)


class MyContractsView(APIView):
    """List contracts a user is party to (?user_id=)."""

    def get(self, request):
        try:
            user = services.get_user(request.query_params.get("user_id"))
        except LendingError as e:
            return error_response(e)

        contracts = Contract.objects.filter(
            Q(receiver=user) | Q(lender=user) | Q(guarantor=user)
        ).order_by("-created_at")
        return Response(ContractSerializer(contracts, many=True).data)
