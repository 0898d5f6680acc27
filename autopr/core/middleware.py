import logging

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from autopr.core.signature import SIGNATURE_HEADER, SignatureVerifier

logger = logging.getLogger(__name__)


class SignatureMiddleware:
    """웹훅 서명 검증 → 통과 시 body를 그대로 다시 흘려보냄

    서명 계산을 위해 body를 끝까지 읽어야 하므로, 검증 후에는 버퍼링한 body를
    새 receive 채널로 다음 앱에 재전달한다. 검증 실패 시 다음 앱은 호출되지 않는다.
    """

    def __init__(self, app: ASGIApp, verifier: SignatureVerifier, paths: list[str] | tuple[str, ...] = ("/webhook",)):
        self.app = app
        self.verifier = verifier
        self.paths = tuple(paths)

    def _is_protected(self, scope: Scope) -> bool:
        if scope["type"] != "http" or scope["method"] != "POST":
            return False
        path = scope["path"]
        return any(path == p or path.startswith(p.rstrip("/") + "/") for p in self.paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self._is_protected(scope):
            await self.app(scope, receive, send)
            return

        signature = Headers(scope=scope).get(SIGNATURE_HEADER)
        if not signature:
            logger.warning("Rejected %s: missing signature", scope["path"])
            await JSONResponse({"detail": "missing signature"}, status_code=401)(scope, receive, send)
            return

        body = await self._read_body(receive)
        if body is None:
            logger.warning("Rejected %s: failed to read body", scope["path"])
            await JSONResponse({"detail": "failed to read body"}, status_code=400)(scope, receive, send)
            return

        if not self.verifier.verify(signature, body):
            logger.warning("Rejected %s: invalid signature", scope["path"])
            await JSONResponse({"detail": "invalid signature"}, status_code=401)(scope, receive, send)
            return

        await self.app(scope, _replay(body, receive), send)

    @staticmethod
    async def _read_body(receive: Receive) -> bytes | None:
        """http.request 메시지를 끝까지 읽음. 도중 연결 끊김이면 None"""
        chunks: list[bytes] = []
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return None
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                return b"".join(chunks)


def _replay(body: bytes, receive: Receive) -> Receive:
    """버퍼링한 body를 한 번 돌려주고, 이후에는 원래 receive로 위임 (disconnect 감지용)"""
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay
