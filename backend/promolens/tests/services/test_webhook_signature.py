"""
Tests for Shopify webhook HMAC verification.

Run with: pytest backend/promolens/tests/services/test_webhook_signature.py -v
"""

import base64
import hashlib
import hmac
from unittest.mock import MagicMock

import pytest

from promolens.config.settings import ConnectorSettings
from promolens.services.order_ingestion import (
    InvalidWebhookSignatureError,
    OrderIngestionService,
    verify_shopify_webhook,
)

SECRET = "test-webhook-secret"
BODY = b'{"id": 820982911946154508, "total_price": "99.00"}'


def sign(body: bytes, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


@pytest.mark.security
class TestVerifyShopifyWebhook:

    def test_valid_signature(self):
        assert verify_shopify_webhook(BODY, sign(BODY), SECRET) is True

    def test_wrong_secret(self):
        assert verify_shopify_webhook(BODY, sign(BODY, "other-secret"), SECRET) is False

    def test_tampered_body(self):
        assert verify_shopify_webhook(BODY + b" ", sign(BODY), SECRET) is False

    def test_missing_header(self):
        assert verify_shopify_webhook(BODY, None, SECRET) is False
        assert verify_shopify_webhook(BODY, "", SECRET) is False

    def test_missing_secret(self):
        assert verify_shopify_webhook(BODY, sign(BODY), None) is False

    def test_hex_digest_is_rejected(self):
        hex_digest = hmac.new(SECRET.encode("utf-8"), BODY, hashlib.sha256).hexdigest()
        assert verify_shopify_webhook(BODY, hex_digest, SECRET) is False


@pytest.mark.security
class TestServiceVerifySignature:

    @pytest.fixture
    def service(self):
        settings = ConnectorSettings(shopify_webhook_secret=SECRET)
        return OrderIngestionService(MagicMock(), settings, repository=MagicMock())

    def test_valid_signature_passes(self, service):
        service.verify_signature(BODY, sign(BODY))

    def test_invalid_signature_raises(self, service):
        with pytest.raises(InvalidWebhookSignatureError):
            service.verify_signature(BODY, "bm90LWEtc2lnbmF0dXJl")
