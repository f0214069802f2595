import logging

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from django.db import DatabaseError
from .gateway import CallbackVerificationError, get_callback_verifier, get_gateway_client
from .models import Transaction
from .reconciliation import (
    confirm_receipt,
    initiate_disbursal_payment,
    initiate_emi_payment,
    reconcile,
)
from .serializers import (
    GatewayCallbackSerializer,
    InstallmentSerializer,
    TransactionSerializer,
)
from lending.exceptions import LendingError
from lending.models import Contract
from lending.serializers import ContractSerializer
from lending.services import get_user
from lending.views import error_response

logger = logging.getLogger(__name__)


class GatewayClientMixin:
    gateway_client = None

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.gateway_client is None:
            self.gateway_client = get_gateway_client()


class DisbursePaymentView(GatewayClientMixin, APIView):
    """
    Lender starts the disbursal payment for a fully signed contract.

    Expected input:
    - lender_id: ID of the contract's lender

    Returns the gateway redirect URL. The contract only moves on when the
    gateway confirms the payment through the callback.
    """

    def post(self, request, contract_id):
        try:
            lender = get_user(request.data.get("lender_id"), "Lender")
            result = initiate_disbursal_payment(self.gateway_client, lender, contract_id)
        except LendingError as e:
            return error_response(e)

        return Response(result, status=status.HTTP_200_OK)


class MakePaymentView(GatewayClientMixin, APIView):
    """
    Receiver starts paying the next EMI of an active contract.

    Expected input:
    - contract_id: ID of the contract
    - receiver_id: ID of the contract's receiver
    """

    def post(self, request):
        contract_id = request.data.get("contract_id")
        if not contract_id:
            return Response(
                {"error": "Contract ID is required to initiate a payment."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            receiver = get_user(request.data.get("receiver_id"), "Receiver")
            result = initiate_emi_payment(self.gateway_client, receiver, contract_id)
        except LendingError as e:
            return error_response(e)

        return Response(
            {"message": "Payment initiated successfully.", **result},
            status=status.HTTP_200_OK,
        )


class ConfirmReceiptView(APIView):
    """
    Receiver confirms the disbursed funds arrived, activating the loan.

    Expected input:
    - receiver_id: ID of the contract's receiver

    This will start the loan and create the EMI schedule.
    """

    def post(self, request, contract_id):
        try:
            receiver = get_user(request.data.get("receiver_id"), "Receiver")
            contract = confirm_receipt(receiver, contract_id)
        except LendingError as e:
            return error_response(e)

        return Response(
            {
                "contract": ContractSerializer(contract).data,
                "emi_schedule": InstallmentSerializer(
                    contract.installments.all(), many=True
                ).data,
            }
        )


class EmiScheduleView(APIView):
    """
    Get the EMI schedule for a contract.

    Installments past their due date and still unpaid are reported as OVERDUE.
    """

    def get(self, request, contract_id):
        try:
            contract = Contract.objects.get(id=contract_id)
        except Contract.DoesNotExist:
            return Response(
                {"error": "Contract not found"}, status=status.HTTP_404_NOT_FOUND
            )

        serializer = InstallmentSerializer(contract.installments.all(), many=True)
        return Response(serializer.data)


class ContractPaymentsView(APIView):
    """
    Get the payment history (ledger) for a specific contract.
    """

    def get(self, request, contract_id):
        try:
            contract = Contract.objects.get(id=contract_id)
        except Contract.DoesNotExist:
            return Response(
                {"error": "Contract not found"}, status=status.HTTP_404_NOT_FOUND
            )

        transactions = Transaction.objects.filter(contract=contract)
        serializer = TransactionSerializer(transactions, many=True)
        return Response(serializer.data)


class PaymentCallbackView(APIView):
    """
    Payment gateway webhook.

    Answers 200 for every event that was handled, including stale and
    duplicate deliveries, so the gateway stops retrying. Only deliveries that
    fail verification or structural validation get a 400; an event that could
    not be applied because of a database or domain error gets a 503 so the
    gateway redelivers it.
    """

    verifier = None

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.verifier is None:
            self.verifier = get_callback_verifier()

    def post(self, request):
        try:
            body = self.verifier.verify(request.headers.get("Authorization"), request.body)
        except CallbackVerificationError as e:
            logger.warning("Callback validation failed: %s", e)
            return Response(
                {"error": "Callback validation failed"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        serializer = GatewayCallbackSerializer(data=body)
        if not serializer.is_valid():
            logger.warning("Malformed gateway callback rejected: %s", serializer.errors)
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        event = serializer.to_event()
        logger.info(
            "Received %s %s callback for contract %s (%s)",
            event.payment_type,
            event.event_type,
            event.contract_id,
            event.gateway_order_ref,
        )
        try:
            outcome = reconcile(event)
        except (LendingError, DatabaseError) as e:
            logger.error(
                "Reconciling %s for contract %s failed: %s",
                event.gateway_order_ref,
                event.contract_id,
                e,
            )
            return Response(
                {"error": "Callback could not be processed, retry later"},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return Response({"status": "ok", "outcome": outcome}, status=status.HTTP_200_OK)
