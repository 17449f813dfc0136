"""Payment proof errors."""

from rest_framework import status
from rest_framework.exceptions import APIException


class PaymentProofMissing(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Payment details are required for online payments.'
    default_code = 'payment_proof_missing'


class PaymentVerificationFailed(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Payment verification failed.'
    default_code = 'payment_verification_failed'
