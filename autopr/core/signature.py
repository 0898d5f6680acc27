"""Sentry webhook 서명 검증 (HMAC-SHA256)"""

import hashlib
import hmac

SIGNATURE_HEADER = "Sentry-Hook-Signature"


class SignatureVerifier:
    """Sentry-Hook-Signature 헤더 검증기.

    Sentry는 raw body를 client secret으로 HMAC-SHA256 서명한 hex 문자열을 보낸다.
    """

    def __init__(self, secret: str):
        self._secret = secret.encode("utf-8")

    def sign(self, body: bytes) -> str:
        return hmac.new(self._secret, body, hashlib.sha256).hexdigest()

    def verify(self, signature: str | None, body: bytes) -> bool:
        if not signature:
            return False
        expected = self.sign(body)
        # timing attack 방지
        return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))
