from django.contrib import admin
from .models import (
    Contract,
    Endorsement,
    GuarantorRequest,
    LoanBrochure,
    LoanRequest,
    TrustIndexEvent,
    UserProfile,
)


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ["user", "trust_index", "payout_id"]


@admin.register(Endorsement)
class EndorsementAdmin(admin.ModelAdmin):
    list_display = ["endorser", "endorsee", "created_at"]


@admin.register(TrustIndexEvent)
class TrustIndexEventAdmin(admin.ModelAdmin):
    list_display = ["user", "delta", "reason", "resulting_index", "created_at"]
    list_filter = ["reason"]


@admin.register(LoanBrochure)
class LoanBrochureAdmin(admin.ModelAdmin):
    list_display = ["id", "lender", "amount", "interest_rate", "tenor_days", "active"]
    list_filter = ["active"]


@admin.register(LoanRequest)
class LoanRequestAdmin(admin.ModelAdmin):
    list_display = ["id", "receiver", "guarantor", "status", "created_at"]
    list_filter = ["status"]


@admin.register(GuarantorRequest)
class GuarantorRequestAdmin(admin.ModelAdmin):
    list_display = ["id", "loan_request", "receiver", "guarantor", "status", "created_at"]
    list_filter = ["status"]


@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "receiver",
        "lender",
        "guarantor",
        "principal",
        "status",
        "created_at",
    ]
    list_filter = ["status"]
    readonly_fields = ["status", "receiver_signed", "lender_signed"]

    def has_delete_permission(self, request, obj=None):
        return False
