from django.urls import path
from .views import (
    AcceptLoanRequestView,
    BrochureDetailView,
    BrochureListCreateView,
    CancelLoanRequestView,
    ContractDetailView,
    CreateUserView,
    EndorseUserView,
    GuarantorRequestCreateView,
    GuarantorRequestDetailView,
    IncomingLoanRequestsView,
    LoanRequestListCreateView,
    MyContractsView,
    PendingGuarantorRequestsView,
    SignContractView,
    UserProfileView,
)

urlpatterns = [
    path("user/", CreateUserView.as_view(), name="create-user"),
    path("user/<int:user_id>/", UserProfileView.as_view(), name="user-profile"),
    path("user/<int:user_id>/endorse/", EndorseUserView.as_view(), name="endorse-user"),
    path("brochures/", BrochureListCreateView.as_view(), name="brochures"),
    path("brochures/<int:brochure_id>/", BrochureDetailView.as_view(), name="brochure-detail"),
    path("loan-requests/", LoanRequestListCreateView.as_view(), name="loan-requests"),
    path(
        "loan-requests/incoming/",
        IncomingLoanRequestsView.as_view(),
        name="incoming-loan-requests",
    ),
    path(
        "loan-requests/<int:loan_request_id>/cancel/",
        CancelLoanRequestView.as_view(),
        name="cancel-loan-request",
    ),
    path(
        "loan-requests/<int:loan_request_id>/accept/",
        AcceptLoanRequestView.as_view(),
        name="accept-loan-request",
    ),
    path(
        "guarantor-requests/",
        GuarantorRequestCreateView.as_view(),
        name="create-guarantor-request",
    ),
    path(
        "guarantor-requests/pending/",
        PendingGuarantorRequestsView.as_view(),
        name="pending-guarantor-requests",
    ),
    path(
        "guarantor-requests/<int:guarantor_request_id>/",
        GuarantorRequestDetailView.as_view(),
        name="guarantor-request-detail",
    ),
    path("contracts/", MyContractsView.as_view(), name="my-contracts"),
    path("contract/<int:contract_id>/", ContractDetailView.as_view(), name="contract-detail"),
    path("contract/<int:contract_id>/sign/", SignContractView.as_view(), name="sign-contract"),
]
