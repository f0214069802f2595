from django.db import models
from django.db.models import Q
from django.contrib.auth.models import User

from .exceptions import StateError


class Role(models.TextChoices):
    RECEIVER = "RECEIVER", "Receiver"
    LENDER = "LENDER", "Lender"
    GUARANTOR = "GUARANTOR", "Guarantor"


class UserProfile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")
    trust_index = models.IntegerField(default=500)
    payout_id = models.CharField(max_length=100, blank=True, default="")

    def __str__(self):
        return f"{self.user.username} - TI {self.trust_index}"


class Endorsement(models.Model):
    endorser = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="endorsements_given"
    )
    endorsee = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="endorsements_received"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["endorser", "endorsee"], name="unique_endorsement_pair"
            ),
        ]

    def __str__(self):
        return f"{self.endorser.username} endorses {self.endorsee.username}"


class TrustIndexEvent(models.Model):
    user = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="trust_index_events"
    )
    delta = models.IntegerField()
    reason = models.CharField(max_length=100)
    resulting_index = models.IntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.user.username} {self.delta:+d} ({self.reason})"


class LoanBrochure(models.Model):
    lender = models.ForeignKey(User, on_delete=models.CASCADE, related_name="brochures")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    interest_rate = models.DecimalField(max_digits=5, decimal_places=2)
    tenor_days = models.PositiveIntegerField()
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Brochure #{self.id} - {self.amount} @ {self.interest_rate}% / {self.tenor_days}d"

    @property
    def is_locked(self):
        """Terms are frozen once an accepted request references the brochure."""
        return self.loan_requests.filter(
            status__in=[LoanRequest.Status.CONTRACTING, LoanRequest.Status.CLOSED]
        ).exists()


class LoanRequest(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        GUARANTOR_ACCEPTED = "GUARANTOR_ACCEPTED", "Guarantor accepted"
        CONTRACTING = "CONTRACTING", "Contracting"
        CANCELLED = "CANCELLED", "Cancelled"
        CLOSED = "CLOSED", "Closed"

    ACTIVE_STATUSES = [Status.PENDING, Status.GUARANTOR_ACCEPTED, Status.CONTRACTING]

    receiver = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="loan_requests"
    )
    guarantor = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="guaranteed_loan_requests"
    )
    brochures = models.ManyToManyField(LoanBrochure, related_name="loan_requests")
    purpose = models.CharField(max_length=500, blank=True, default="")
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["receiver"],
                condition=Q(status__in=["PENDING", "GUARANTOR_ACCEPTED", "CONTRACTING"]),
                name="one_active_loan_request_per_receiver",
            ),
        ]

    def __str__(self):
        return f"LoanRequest #{self.id} by {self.receiver.username} - {self.status}"


class GuarantorRequest(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ACCEPTED = "ACCEPTED", "Accepted"
        DECLINED = "DECLINED", "Declined"

    receiver = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="guarantor_requests_sent"
    )
    guarantor = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="guarantor_requests_received"
    )
    loan_request = models.ForeignKey(
        LoanRequest, on_delete=models.CASCADE, related_name="guarantor_requests"
    )
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.PENDING
    )
    created_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["loan_request"],
                condition=Q(status="PENDING"),
                name="one_pending_guarantor_request_per_loan_request",
            ),
        ]

    def __str__(self):
        return f"GuarantorRequest #{self.id} to {self.guarantor.username} - {self.status}"


class Contract(models.Model):
    class Status(models.TextChoices):
        CREATED = "CREATED", "Created"
        PENDING_SIGNATURES = "PENDING_SIGNATURES", "Pending signatures"
        AWAITING_DISBURSAL = "AWAITING_DISBURSAL", "Awaiting disbursal"
        AWAITING_RECEIPT_CONFIRMATION = (
            "AWAITING_RECEIPT_CONFIRMATION",
            "Awaiting receipt confirmation",
        )
        ACTIVE = "ACTIVE", "Active"
        COMPLETED = "COMPLETED", "Completed"
        DEFAULTED = "DEFAULTED", "Defaulted"

    loan_request = models.OneToOneField(
        LoanRequest, on_delete=models.PROTECT, related_name="contract"
    )
    brochure = models.ForeignKey(
        LoanBrochure, on_delete=models.PROTECT, related_name="contracts"
    )
    receiver = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="contracts_as_receiver"
    )
    lender = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="contracts_as_lender"
    )
    guarantor = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="contracts_as_guarantor"
    )
    principal = models.DecimalField(max_digits=12, decimal_places=2)
    interest_rate = models.DecimalField(max_digits=5, decimal_places=2)
    tenor_days = models.PositiveIntegerField()
    total_repayable = models.DecimalField(max_digits=12, decimal_places=2)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    status = models.CharField(
        max_length=30, choices=Status.choices, default=Status.CREATED
    )
    receiver_signed = models.BooleanField(default=False)
    lender_signed = models.BooleanField(default=False)
    receiver_signed_at = models.DateTimeField(null=True, blank=True)
    lender_signed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Contract #{self.id} - {self.principal} - {self.status}"

    def delete(self, *args, **kwargs):
        raise StateError("Contracts cannot be deleted, only moved to a terminal status.")
