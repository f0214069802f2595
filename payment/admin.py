from django.contrib import admin
from .models import Installment, Transaction


@admin.register(Installment)
class InstallmentAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "contract",
        "emi_number",
        "principal_component",
        "interest_component",
        "due_date",
        "status",
        "paid_at",
    ]
    list_filter = ["status"]
    ordering = ["contract", "emi_number"]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "contract",
        "from_user",
        "to_user",
        "amount",
        "status",
        "gateway_order_ref",
        "emi_number",
        "created_at",
    ]
    list_filter = ["status"]

    def has_delete_permission(self, request, obj=None):
        return False
