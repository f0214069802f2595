import os
import django

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")
django.setup()

import pytest
from django.contrib.auth.models import User
from rest_framework.test import APIClient
from decimal import Decimal
from core.celery import app as celery_app
from lending.exceptions import GatewayError
from lending.models import Endorsement, LoanBrochure, UserProfile
from lending import services
from payment.reconciliation import PaymentEvent, confirm_receipt, reconcile

celery_app.conf.CELERY_TASK_ALWAYS_EAGER = True
celery_app.conf.CELERY_TASK_EAGER_PROPAGATES = True


class RecordingGatewayClient:
    """Gateway double that records orders and hands back a sandbox URL."""

    orders = []

    def create_order(self, gateway_order_ref, amount_minor, redirect_url, meta_info):
        self.orders.append(
            {
                "gateway_order_ref": gateway_order_ref,
                "amount_minor": amount_minor,
                "redirect_url": redirect_url,
                "meta_info": meta_info,
            }
        )
        return f"https://sandbox.gateway.test/checkout/{gateway_order_ref}"


class FailingGatewayClient:
    def create_order(self, gateway_order_ref, amount_minor, redirect_url, meta_info):
        raise GatewayError("Could not initiate payment. Please try again later.")


@pytest.fixture(autouse=True)
def payment_gateway_doubles(settings):
    """Swap the real gateway client and webhook verifier for test doubles"""
    RecordingGatewayClient.orders = []
    settings.PAYMENT_GATEWAY = {
        **settings.PAYMENT_GATEWAY,
        "CLIENT": "conftest.RecordingGatewayClient",
        "CALLBACK_VERIFIER": "payment.gateway.TrustingCallbackVerifier",
    }
    return RecordingGatewayClient


@pytest.fixture
def api_client():
    """Returns API client for making requests"""
    return APIClient()


def lending_url(path):
    """Helper to build lending API URLs"""
    return f"/api/lending/{path.lstrip('/')}"


def payment_url(path):
    """Helper to build payment API URLs"""
    return f"/api/payment/{path.lstrip('/')}"


def gateway_callback(contract_id, order_ref, payment_type="DISBURSAL", event_type="CHECKOUT_ORDER_COMPLETED"):
    """Builds a gateway webhook body in the provider's format"""
    return {
        "type": event_type,
        "payload": {
            "originalMerchantOrderId": order_ref,
            "state": "COMPLETED" if event_type.endswith("COMPLETED") else "FAILED",
            "metaInfo": {"contractId": str(contract_id), "paymentType": payment_type},
        },
    }


def make_user(username, trust_index):
    user = User.objects.create_user(
        username=username, email=f"{username}@test.com", password="testpass123"
    )
    UserProfile.objects.create(user=user, trust_index=trust_index)
    return user


@pytest.fixture
def receiver_user():
    """Creates a receiver with a mid-range trust index"""
    return make_user("test_receiver", 600)


@pytest.fixture
def guarantor_user(receiver_user):
    """Creates a guarantor who has endorsed the receiver"""
    guarantor = make_user("test_guarantor", 650)
    Endorsement.objects.create(endorser=guarantor, endorsee=receiver_user)
    return guarantor


@pytest.fixture
def lender_user():
    """Creates a lender"""
    return make_user("test_lender", 700)


@pytest.fixture
def low_trust_receiver(guarantor_user):
    """Creates a receiver with trust index 450, endorsed by the guarantor"""
    receiver = make_user("low_trust_receiver", 450)
    Endorsement.objects.create(endorser=guarantor_user, endorsee=receiver)
    return receiver


@pytest.fixture
def brochure(lender_user):
    """Creates a 10000 loan at 10% flat over 90 days"""
    return LoanBrochure.objects.create(
        lender=lender_user,
        amount=Decimal("10000.00"),
        interest_rate=Decimal("10.00"),
        tenor_days=90,
    )


@pytest.fixture
def large_brochure(lender_user):
    """Creates a brochure above the limit of a trust index 450 receiver"""
    return LoanBrochure.objects.create(
        lender=lender_user,
        amount=Decimal("15000.00"),
        interest_rate=Decimal("12.00"),
        tenor_days=120,
    )


@pytest.fixture
def loan_request(receiver_user, guarantor_user, brochure):
    """Creates a pending loan request with its guarantor request"""
    return services.create_loan_request(
        receiver_user, "RECEIVER", [brochure.id], guarantor_user.id
    )


@pytest.fixture
def guaranteed_loan_request(loan_request, guarantor_user):
    """Loan request the guarantor has accepted"""
    guarantor_request = loan_request.guarantor_requests.get()
    services.respond_to_guarantor_request(guarantor_user, guarantor_request.id, "ACCEPTED")
    loan_request.refresh_from_db()
    return loan_request


@pytest.fixture
def contract(guaranteed_loan_request, lender_user, brochure):
    """Contract drafted from an accepted loan request, still unsigned"""
    return services.accept_loan_request(lender_user, guaranteed_loan_request.id, brochure.id)


@pytest.fixture
def signed_contract(contract, receiver_user, lender_user):
    """Contract signed by both parties, awaiting disbursal"""
    services.sign_contract(receiver_user, contract.id)
    return services.sign_contract(lender_user, contract.id)


@pytest.fixture
def disbursed_contract(signed_contract):
    """Contract whose disbursal has been confirmed by the gateway"""
    reconcile(
        PaymentEvent("COMPLETED", signed_contract.id, "DISBURSAL", f"DISBURSAL_{signed_contract.id}_seed")
    )
    signed_contract.refresh_from_db()
    return signed_contract


@pytest.fixture
def active_contract(disbursed_contract, receiver_user):
    """Contract the receiver has confirmed receipt for, with its EMI schedule"""
    return confirm_receipt(receiver_user, disbursed_contract.id)
