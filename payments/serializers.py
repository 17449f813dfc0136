from rest_framework import serializers


class PaymentProofSerializer(serializers.Serializer):
    provider_order_id = serializers.CharField(max_length=100)
    payment_id = serializers.CharField(max_length=100)
    signature = serializers.CharField(max_length=128)
