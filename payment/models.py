from django.db import models
from django.db.models import Q
from django.contrib.auth.models import User
from django.utils import timezone

from lending.exceptions import StateError
from lending.models import Contract


class Installment(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"

    contract = models.ForeignKey(
        Contract, on_delete=models.PROTECT, related_name="installments"
    )
    emi_number = models.PositiveIntegerField()
    due_date = models.DateField()
    principal_component = models.DecimalField(max_digits=12, decimal_places=2)
    interest_component = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.PENDING
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["emi_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["contract", "emi_number"], name="unique_emi_number_per_contract"
            ),
        ]

    def __str__(self):
        return f"EMI #{self.emi_number} for Contract #{self.contract_id} - {self.status}"

    @property
    def amount(self):
        return self.principal_component + self.interest_component

    def is_overdue(self, today=None):
        today = today or timezone.localdate()
        return self.status == self.Status.PENDING and self.due_date < today

    @property
    def display_status(self):
        return "OVERDUE" if self.is_overdue() else self.status


class Transaction(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ACKNOWLEDGED = "ACKNOWLEDGED", "Acknowledged"
        DISBURSED = "DISBURSED", "Disbursed"
        FAILED = "FAILED", "Failed"

    contract = models.ForeignKey(
        Contract, on_delete=models.PROTECT, related_name="transactions"
    )
    from_user = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="outgoing_transactions"
    )
    to_user = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="incoming_transactions"
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=15, choices=Status.choices)
    gateway_order_ref = models.CharField(max_length=100)
    emi_number = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["contract"],
                condition=Q(status="DISBURSED"),
                name="one_disbursal_per_contract",
            ),
            models.UniqueConstraint(
                fields=["gateway_order_ref", "status"],
                name="unique_gateway_ref_per_status",
            ),
        ]

    def __str__(self):
        return f"{self.status} {self.amount} on Contract #{self.contract_id} ({self.gateway_order_ref})"

    def delete(self, *args, **kwargs):
        raise StateError("Ledger entries cannot be deleted.")
