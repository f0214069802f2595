import hashlib
import pytest
from datetime import timedelta
from decimal import Decimal
from django.db import DatabaseError
from django.utils import timezone
from rest_framework import status
from lending.exceptions import StateError
from lending.models import Contract, LoanRequest
from payment.models import Installment, Transaction
from conftest import gateway_callback, payment_url


@pytest.mark.django_db
class TestDisbursalInitiation:
    """Test the lender starting a disbursal checkout"""

    def test_disburse_returns_redirect(self, api_client, signed_contract, lender_user, payment_gateway_doubles):
        response = api_client.post(
            payment_url(f"contract/{signed_contract.id}/disburse/"),
            {"lender_id": lender_user.id},
        )

        assert response.status_code == status.HTTP_200_OK
        ref = response.data["gateway_order_ref"]
        assert ref.startswith(f"DISBURSAL_{signed_contract.id}_")
        assert response.data["redirect_url"].endswith(ref)
        assert response.data["amount"] == "10000.00"

        order = payment_gateway_doubles.orders[0]
        assert order["amount_minor"] == 1000000
        assert order["meta_info"]["paymentType"] == "DISBURSAL"
        assert order["meta_info"]["contractId"] == str(signed_contract.id)
        assert "merchantOrderId=" + ref in order["redirect_url"]

        # Nothing moves until the gateway confirms
        signed_contract.refresh_from_db()
        assert signed_contract.status == "AWAITING_DISBURSAL"
        assert not Transaction.objects.exists()

    def test_disburse_unsigned_contract(self, api_client, contract, lender_user):
        response = api_client.post(
            payment_url(f"contract/{contract.id}/disburse/"),
            {"lender_id": lender_user.id},
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_disburse_by_receiver(self, api_client, signed_contract, receiver_user):
        response = api_client.post(
            payment_url(f"contract/{signed_contract.id}/disburse/"),
            {"lender_id": receiver_user.id},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_disburse_gateway_unavailable(self, api_client, signed_contract, lender_user, settings):
        settings.PAYMENT_GATEWAY = {
            **settings.PAYMENT_GATEWAY,
            "CLIENT": "conftest.FailingGatewayClient",
        }

        response = api_client.post(
            payment_url(f"contract/{signed_contract.id}/disburse/"),
            {"lender_id": lender_user.id},
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert "try again later" in response.data["error"]


@pytest.mark.django_db
class TestReceiptConfirmation:
    """Test activation of a disbursed contract"""

    def test_confirm_receipt_creates_schedule(self, api_client, disbursed_contract, receiver_user):
        response = api_client.post(
            payment_url(f"contract/{disbursed_contract.id}/confirm-receipt/"),
            {"receiver_id": receiver_user.id},
        )

        assert response.status_code == status.HTTP_200_OK
        contract_data = response.data["contract"]
        assert contract_data["status"] == "ACTIVE"
        today = timezone.localdate()
        assert contract_data["start_date"] == today.isoformat()
        assert contract_data["end_date"] == (today + timedelta(days=90)).isoformat()

        schedule = response.data["emi_schedule"]
        assert [emi["emi_number"] for emi in schedule] == [1, 2, 3]
        assert [emi["due_date"] for emi in schedule] == [
            (today + timedelta(days=30)).isoformat(),
            (today + timedelta(days=60)).isoformat(),
            (today + timedelta(days=90)).isoformat(),
        ]
        assert sum(Decimal(emi["amount"]) for emi in schedule) == Decimal("11000.00")

    def test_confirm_receipt_twice(self, api_client, active_contract, receiver_user):
        response = api_client.post(
            payment_url(f"contract/{active_contract.id}/confirm-receipt/"),
            {"receiver_id": receiver_user.id},
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert Installment.objects.filter(contract=active_contract).count() == 3

    def test_confirm_receipt_before_disbursal(self, api_client, signed_contract, receiver_user):
        response = api_client.post(
            payment_url(f"contract/{signed_contract.id}/confirm-receipt/"),
            {"receiver_id": receiver_user.id},
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert not Installment.objects.exists()

    def test_confirm_receipt_by_lender(self, api_client, disbursed_contract, lender_user):
        response = api_client.post(
            payment_url(f"contract/{disbursed_contract.id}/confirm-receipt/"),
            {"receiver_id": lender_user.id},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestEmiPayment:
    """Test EMI payment initiation"""

    def test_make_payment_for_next_emi(self, api_client, active_contract, receiver_user, payment_gateway_doubles):
        payment_data = {"contract_id": active_contract.id, "receiver_id": receiver_user.id}

        response = api_client.post(payment_url("pay/"), payment_data)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["message"] == "Payment initiated successfully."
        assert response.data["gateway_order_ref"].startswith(f"EMI_{active_contract.id}_")
        assert response.data["amount"] == "3666.00"
        assert payment_gateway_doubles.orders[0]["amount_minor"] == 366600

    def test_make_payment_missing_contract(self, api_client, receiver_user):
        response = api_client.post(payment_url("pay/"), {"receiver_id": receiver_user.id})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "Contract ID is required" in response.data["error"]

    def test_make_payment_unauthorized(self, api_client, active_contract, lender_user):
        payment_data = {"contract_id": active_contract.id, "receiver_id": lender_user.id}

        response = api_client.post(payment_url("pay/"), payment_data)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert "not authorized" in response.data["error"]

    def test_make_payment_inactive_contract(self, api_client, signed_contract, receiver_user):
        payment_data = {"contract_id": signed_contract.id, "receiver_id": receiver_user.id}

        response = api_client.post(payment_url("pay/"), payment_data)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert "active loans" in response.data["error"]

    def test_make_payment_nonexistent_contract(self, api_client, receiver_user):
        payment_data = {"contract_id": 999, "receiver_id": receiver_user.id}

        response = api_client.post(payment_url("pay/"), payment_data)

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestScheduleAndHistory:
    """Test read-only payment endpoints"""

    def test_schedule_marks_overdue(self, api_client, active_contract):
        first = active_contract.installments.get(emi_number=1)
        first.due_date = timezone.localdate() - timedelta(days=2)
        first.save()

        response = api_client.get(payment_url(f"contract/{active_contract.id}/schedule/"))

        assert response.status_code == status.HTTP_200_OK
        assert [emi["status"] for emi in response.data] == ["OVERDUE", "PENDING", "PENDING"]

    def test_schedule_empty_before_activation(self, api_client, signed_contract):
        response = api_client.get(payment_url(f"contract/{signed_contract.id}/schedule/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data == []

    def test_schedule_nonexistent_contract(self, api_client):
        response = api_client.get(payment_url("contract/999/schedule/"))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_payment_history(self, api_client, active_contract):
        response = api_client.get(payment_url(f"contract/{active_contract.id}/"))

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data) == 1
        assert response.data[0]["status"] == "DISBURSED"
        assert response.data[0]["gateway_order_ref"] == f"DISBURSAL_{active_contract.id}_seed"


@pytest.mark.django_db
class TestPaymentCallback:
    """Test the gateway webhook endpoint"""

    def test_disbursal_callback(self, api_client, signed_contract):
        body = gateway_callback(signed_contract.id, f"DISBURSAL_{signed_contract.id}_abc")

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"status": "ok", "outcome": "APPLIED"}
        signed_contract.refresh_from_db()
        assert signed_contract.status == "AWAITING_RECEIPT_CONFIRMATION"

    def test_redelivered_callback(self, api_client, signed_contract):
        body = gateway_callback(signed_contract.id, f"DISBURSAL_{signed_contract.id}_abc")
        api_client.post(payment_url("callback/"), body, format="json")

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["outcome"] == "DUPLICATE"
        assert Transaction.objects.filter(status="DISBURSED").count() == 1

    def test_early_callback_acknowledged(self, api_client, contract):
        body = gateway_callback(contract.id, f"DISBURSAL_{contract.id}_early")

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["outcome"] == "STALE"
        assert not Transaction.objects.exists()

    def test_failed_callback(self, api_client, signed_contract):
        body = gateway_callback(
            signed_contract.id,
            f"DISBURSAL_{signed_contract.id}_abc",
            event_type="CHECKOUT_ORDER_FAILED",
        )

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["outcome"] == "RECORDED"
        assert Transaction.objects.get().status == "FAILED"
        signed_contract.refresh_from_db()
        assert signed_contract.status == "AWAITING_DISBURSAL"

    def test_unknown_contract_acknowledged(self, api_client):
        body = gateway_callback(999, "DISBURSAL_999_abc")

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["outcome"] == "UNKNOWN_CONTRACT"

    def test_malformed_callback(self, api_client, signed_contract):
        body = {"type": "CHECKOUT_ORDER_COMPLETED", "payload": {"metaInfo": {}}}

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        signed_contract.refresh_from_db()
        assert signed_contract.status == "AWAITING_DISBURSAL"

    def test_unsupported_event_type(self, api_client, signed_contract):
        body = gateway_callback(signed_contract.id, "DISBURSAL_x", event_type="CHECKOUT_ORDER_REFUNDED")

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_callback_body_not_json(self, api_client):
        response = api_client.post(
            payment_url("callback/"), "not json", content_type="application/json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error"] == "Callback validation failed"

    def test_locked_database_asks_for_redelivery(self, api_client, signed_contract, monkeypatch):
        def locked(event):
            raise DatabaseError("database is locked")

        monkeypatch.setattr("payment.views.reconcile", locked)
        body = gateway_callback(signed_contract.id, f"DISBURSAL_{signed_contract.id}_abc")

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert "error" in response.data
        signed_contract.refresh_from_db()
        assert signed_contract.status == "AWAITING_DISBURSAL"

    def test_state_conflict_asks_for_redelivery(self, api_client, active_contract, monkeypatch):
        def conflict(event):
            raise StateError("EMI #1 is no longer pending")

        monkeypatch.setattr("payment.views.reconcile", conflict)
        body = gateway_callback(active_contract.id, "EMI_abc", payment_type="EMI")

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.data["error"] == "Callback could not be processed, retry later"


@pytest.mark.django_db
class TestCallbackAuthorization:
    """Test the SHA256 webhook credential check"""

    @pytest.fixture(autouse=True)
    def sha256_verifier(self, settings):
        settings.PAYMENT_GATEWAY = {
            **settings.PAYMENT_GATEWAY,
            "CALLBACK_VERIFIER": "payment.gateway.Sha256CallbackVerifier",
            "WEBHOOK_USERNAME": "merchant",
            "WEBHOOK_PASSWORD": "s3cret",
        }

    def test_valid_authorization(self, api_client, signed_contract):
        digest = hashlib.sha256(b"merchant:s3cret").hexdigest()
        body = gateway_callback(signed_contract.id, f"DISBURSAL_{signed_contract.id}_abc")

        response = api_client.post(
            payment_url("callback/"), body, format="json", HTTP_AUTHORIZATION=digest
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["outcome"] == "APPLIED"

    def test_prefixed_authorization(self, api_client, signed_contract):
        digest = hashlib.sha256(b"merchant:s3cret").hexdigest()
        body = gateway_callback(signed_contract.id, f"DISBURSAL_{signed_contract.id}_abc")

        response = api_client.post(
            payment_url("callback/"), body, format="json", HTTP_AUTHORIZATION=f"SHA256 {digest}"
        )

        assert response.status_code == status.HTTP_200_OK

    def test_wrong_authorization(self, api_client, signed_contract):
        digest = hashlib.sha256(b"merchant:guess").hexdigest()
        body = gateway_callback(signed_contract.id, f"DISBURSAL_{signed_contract.id}_abc")

        response = api_client.post(
            payment_url("callback/"), body, format="json", HTTP_AUTHORIZATION=digest
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        signed_contract.refresh_from_db()
        assert signed_contract.status == "AWAITING_DISBURSAL"
        assert not Transaction.objects.exists()

    def test_missing_authorization(self, api_client, signed_contract):
        body = gateway_callback(signed_contract.id, f"DISBURSAL_{signed_contract.id}_abc")

        response = api_client.post(payment_url("callback/"), body, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestFullLoanLifecycle:
    """Disbursal through final EMI driven entirely by gateway callbacks"""

    def test_loan_runs_to_completion(self, api_client, signed_contract, receiver_user, lender_user):
        contract_id = signed_contract.id

        response = api_client.post(
            payment_url(f"contract/{contract_id}/disburse/"), {"lender_id": lender_user.id}
        )
        disbursal_ref = response.data["gateway_order_ref"]
        api_client.post(
            payment_url("callback/"), gateway_callback(contract_id, disbursal_ref), format="json"
        )

        api_client.post(
            payment_url(f"contract/{contract_id}/confirm-receipt/"),
            {"receiver_id": receiver_user.id},
        )

        for _ in range(3):
            response = api_client.post(
                payment_url("pay/"), {"contract_id": contract_id, "receiver_id": receiver_user.id}
            )
            assert response.status_code == status.HTTP_200_OK
            callback = api_client.post(
                payment_url("callback/"),
                gateway_callback(contract_id, response.data["gateway_order_ref"], payment_type="EMI"),
                format="json",
            )
            assert callback.data["outcome"] == "APPLIED"

        contract = Contract.objects.get(id=contract_id)
        assert contract.status == "COMPLETED"
        assert contract.loan_request.status == LoanRequest.Status.CLOSED
        assert not Installment.objects.filter(contract=contract, status="PENDING").exists()

        paid = Transaction.objects.filter(contract=contract, status="ACKNOWLEDGED")
        assert sum(t.amount for t in paid) == Decimal("11000.00")
        assert list(paid.values_list("emi_number", flat=True)) == [1, 2, 3]

        # No more installments to pay
        response = api_client.post(
            payment_url("pay/"), {"contract_id": contract_id, "receiver_id": receiver_user.id}
        )
        assert response.status_code == status.HTTP_409_CONFLICT
