"""Payment proof verification for online checkouts.

The gateway signs ``provider_order_id|payment_id`` with the merchant key
secret (HMAC-SHA256, lowercase hex). A proof is valid only when the
recomputed digest matches the submitted signature exactly.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass

from django.conf import settings

from .exceptions import PaymentProofMissing, PaymentVerificationFailed

logger = logging.getLogger(__name__)

CASH_ON_DELIVERY = 'Cash on Delivery'
PROOF_FIELDS = ('provider_order_id', 'payment_id', 'signature')


@dataclass(frozen=True)
class PaymentVerification:
    valid: bool


def expected_signature(provider_order_id: str, payment_id: str, secret: str) -> str:
    message = f'{provider_order_id}|{payment_id}'.encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify(provider_order_id, payment_id, signature, secret=None) -> PaymentVerification:
    """Check a gateway signature in constant time."""
    secret = settings.RAZORPAY_KEY_SECRET if secret is None else secret
    if not (provider_order_id and payment_id and signature and secret):
        return PaymentVerification(valid=False)
    digest = expected_signature(str(provider_order_id), str(payment_id), secret)
    return PaymentVerification(valid=hmac.compare_digest(digest, str(signature)))


def is_online(payment_method: str) -> bool:
    return payment_method != CASH_ON_DELIVERY


def verify_payment_proof(payment_method, proof, secret=None) -> str:
    """Return the payment status an order placed with ``proof`` starts in.

    Cash on Delivery needs no proof and stays ``Pending``. Every other method
    must carry a complete, valid proof and is ``Paid``.
    """
    if not is_online(payment_method):
        return 'Pending'

    proof = proof or {}
    if not all(proof.get(field) for field in PROOF_FIELDS):
        raise PaymentProofMissing()

    result = verify(proof['provider_order_id'], proof['payment_id'], proof['signature'], secret=secret)
    if not result.valid:
        logger.warning("Payment signature mismatch for provider order %s", proof['provider_order_id'])
        raise PaymentVerificationFailed()
    return 'Paid'
