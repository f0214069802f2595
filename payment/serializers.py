from rest_framework import serializers
from .models import Installment, Transaction
from .reconciliation import COMPLETED, DISBURSAL, EMI, FAILED, PaymentEvent

EVENT_TYPES = {
    "CHECKOUT_ORDER_COMPLETED": COMPLETED,
    "CHECKOUT_ORDER_FAILED": FAILED,
    COMPLETED: COMPLETED,
    FAILED: FAILED,
}


class InstallmentSerializer(serializers.ModelSerializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    status = serializers.CharField(source="display_status", read_only=True)

    class Meta:
        model = Installment
        fields = [
            "emi_number",
            "due_date",
            "principal_component",
            "interest_component",
            "amount",
            "status",
            "paid_at",
        ]
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Transaction
        fields = [
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
        read_only_fields = fields


class MetaInfoSerializer(serializers.Serializer):
    contractId = serializers.IntegerField()
    paymentType = serializers.ChoiceField(choices=[DISBURSAL, EMI], required=False, default=EMI)


class CallbackPayloadSerializer(serializers.Serializer):
    originalMerchantOrderId = serializers.CharField(max_length=100, required=False)
    gatewayOrderRef = serializers.CharField(max_length=100, required=False)
    amount = serializers.IntegerField(required=False, min_value=0)
    metaInfo = MetaInfoSerializer()

    def validate(self, attrs):
        if not (attrs.get("originalMerchantOrderId") or attrs.get("gatewayOrderRef")):
            raise serializers.ValidationError(
                "originalMerchantOrderId or gatewayOrderRef is required"
            )
        return attrs


class GatewayCallbackSerializer(serializers.Serializer):
    """Structural validation of a verified gateway callback body."""

    type = serializers.CharField(required=False)
    eventType = serializers.CharField(required=False)
    payload = CallbackPayloadSerializer()

    def validate(self, attrs):
        raw_type = attrs.get("type") or attrs.get("eventType")
        if raw_type not in EVENT_TYPES:
            raise serializers.ValidationError(f"Unsupported event type: {raw_type}")
        attrs["event_type"] = EVENT_TYPES[raw_type]
        return attrs

    def to_event(self):
        data = self.validated_data
        payload = data["payload"]
        return PaymentEvent(
            event_type=data["event_type"],
            contract_id=payload["metaInfo"]["contractId"],
            payment_type=payload["metaInfo"]["paymentType"],
            gateway_order_ref=payload.get("originalMerchantOrderId")
            or payload["gatewayOrderRef"],
            amount_minor=payload.get("amount"),
        )
