from django.urls import path
from .views import (
    ConfirmReceiptView,
    ContractPaymentsView,
    DisbursePaymentView,
    EmiScheduleView,
    MakePaymentView,
    PaymentCallbackView,
)

urlpatterns = [
    path("pay/", MakePaymentView.as_view(), name="make-payment"),
    path("callback/", PaymentCallbackView.as_view(), name="payment-callback"),
    path("contract/<int:contract_id>/", ContractPaymentsView.as_view(), name="contract-payments"),
    path(
        "contract/<int:contract_id>/schedule/",
        EmiScheduleView.as_view(),
        name="emi-schedule",
    ),
    path(
        "contract/<int:contract_id>/disburse/",
        DisbursePaymentView.as_view(),
        name="disburse-payment",
    ),
    path(
        "contract/<int:contract_id>/confirm-receipt/",
        ConfirmReceiptView.as_view(),
        name="confirm-receipt",
    ),
]
