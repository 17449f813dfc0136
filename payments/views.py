"""Payment verification endpoint used by the checkout page before placing an order."""

from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import PaymentProofSerializer
from .verification import verify


class VerifyPaymentView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = PaymentProofSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = verify(**serializer.validated_data)
        return Response({'valid': result.valid})
