from rest_framework import serializers
from django.contrib.auth.models import User
from .models import (
    Contract,
    GuarantorRequest,
    LoanBrochure,
    LoanRequest,
    TrustIndexEvent,
    UserProfile,
)


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "username"]


class CreateUserSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)
    trust_index = serializers.IntegerField(default=500, required=False, min_value=0)
    payout_id = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )

    class Meta:
        model = User
        fields = ["username", "email", "password", "trust_index", "payout_id"]
        extra_kwargs = {
            "email": {"required": True},
        }

    def create(self, validated_data):
        trust_index = validated_data.pop("trust_index", 500)
        payout_id = validated_data.pop("payout_id", "")

        user = User.objects.create_user(
            username=validated_data["username"],
            email=validated_data["email"],
            password=validated_data["password"],
        )
        UserProfile.objects.create(user=user, trust_index=trust_index, payout_id=payout_id)

        return user


class UserProfileSerializer(serializers.ModelSerializer):
    user = UserSerializer()

    class Meta:
        model = UserProfile
        fields = ["user", "trust_index", "payout_id"]


class TrustIndexEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = TrustIndexEvent
        fields = ["delta", "reason", "resulting_index", "created_at"]


class LoanBrochureSerializer(serializers.ModelSerializer):
    lender_username = serializers.CharField(source="lender.username", read_only=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=1)
    interest_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0)
    tenor_days = serializers.IntegerField(min_value=1)

    class Meta:
        model = LoanBrochure
        fields = [
            "id",
            "lender",
            "lender_username",
            "amount",
            "interest_rate",
            "tenor_days",
            "active",
            "created_at",
        ]
        read_only_fields = ["id", "lender", "created_at"]


class GuarantorRequestSerializer(serializers.ModelSerializer):
    receiver_username = serializers.CharField(source="receiver.username", read_only=True)
    guarantor_username = serializers.CharField(source="guarantor.username", read_only=True)

    class Meta:
        model = GuarantorRequest
        fields = [
            "id",
            "receiver",
            "receiver_username",
            "guarantor",
            "guarantor_username",
            "loan_request",
            "status",
            "created_at",
            "responded_at",
        ]
        read_only_fields = fields


class LoanRequestSerializer(serializers.ModelSerializer):
    receiver_username = serializers.CharField(source="receiver.username", read_only=True)
    guarantor_username = serializers.CharField(source="guarantor.username", read_only=True)
    brochures = LoanBrochureSerializer(many=True, read_only=True)

    class Meta:
        model = LoanRequest
        fields = [
            "id",
            "receiver",
            "receiver_username",
            "guarantor",
            "guarantor_username",
            "brochures",
            "purpose",
            "status",
            "created_at",
        ]
        read_only_fields = fields


class ContractSerializer(serializers.ModelSerializer):
    receiver_username = serializers.CharField(source="receiver.username", read_only=True)
    lender_username = serializers.CharField(source="lender.username", read_only=True)
    guarantor_username = serializers.CharField(source="guarantor.username", read_only=True)

    class Meta:
        model = Contract
        fields = [
            "id",
            "loan_request",
            "brochure",
            "receiver",
            "receiver_username",
            "lender",
            "lender_username",
            "guarantor",
            "guarantor_username",
            "principal",
            "interest_rate",
            "tenor_days",
            "total_repayable",
            "start_date",
            "end_date",
            "status",
            "receiver_signed",
            "lender_signed",
            "receiver_signed_at",
            "lender_signed_at",
            "created_at",
        ]
        read_only_fields = fields
