"""
Idempotency-Key replay for the payment-side redemption endpoint.

The first successful answer for (path, X-User, Idempotency-Key) is kept in
the shared cache for IDEMPOTENCY_TTL seconds and a repeat gets it back
verbatim, flagged with the Idempotent-Replay header. Rejections are never
stored: a retry after COUPON_USAGE_LIMIT_REACHED is evaluated again.
"""
import asyncio
import json
from contextlib import asynccontextmanager
from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from coursemarket.core.config import settings
from coursemarket.utils.cache import Cache, get_cache
from coursemarket.utils.logger import get_logger

log = get_logger("idempotency")

# Endpoints soportados y la clave de éxito esperada en el JSON
ALLOW = {
    "/checkout/redeem": "redemption_id",
}


def replay_key(path: str, user: str, idem_key: str) -> str:
    return f"idempotency:{path}:{user}:{idem_key}"


class _KeyedLocks:
    """
    One asyncio lock per replay key; same-key requests run one at a time.
    An entry lives only while some request holds or waits for it.
    """

    def __init__(self):
        self._locks = {}
        self._holders = {}

    def __len__(self):
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]


def _without_length(headers) -> dict:
    return {k: v for k, v in headers.items() if k.lower() != "content-length"}


def _replay(stored: dict) -> Response:
    body = stored["body"]
    try:
        js = json.loads(body)
    except ValueError:
        js = None
    if isinstance(js, dict):
        js.setdefault("replay", True)
        body = json.dumps(js)
    headers = _without_length(stored["headers"])
    headers["Idempotent-Replay"] = "true"
    return Response(
        content=body,
        status_code=stored["status"],
        media_type=stored["media_type"],
        headers=headers,
    )


def _worth_storing(status: int, body: bytes, success_key: str) -> bool:
    if not 200 <= status < 300:
        return False
    try:
        js = json.loads(body.decode("utf-8"))
    except ValueError:
        return False
    return isinstance(js, dict) and success_key in js


_keyed_locks = _KeyedLocks()


class RedeemIdempotency(BaseHTTPMiddleware):
    def __init__(self, app, cache: Cache):
        super().__init__(app)
        self.cache = cache

    async def dispatch(self, request, call_next):
        path = request.url.path
        success_key = ALLOW.get(path) if request.method == "POST" else None
        idem_key = request.headers.get("Idempotency-Key")
        if not success_key or not idem_key:
            return await call_next(request)

        # la clave vale por usuario: dos compradores no comparten respuestas
        key = replay_key(path, request.headers.get("X-User", ""), idem_key)
        cache = self.cache
        stored = await run_in_threadpool(cache.get_json, key)
        if stored:
            return _replay(stored)

        async with _keyed_locks.hold(key):
            stored = await run_in_threadpool(cache.get_json, key)
            if stored:
                log.info("replaying %s", key)
                return _replay(stored)

            response = await call_next(request)
            body = b""
            async for chunk in response.body_iterator:
                body += chunk

            fresh = Response(
                content=body,
                status_code=response.status_code,
                media_type=response.media_type,
                headers=_without_length(response.headers),
            )
            if _worth_storing(response.status_code, body, success_key):
                await run_in_threadpool(
                    cache.set_json,
                    key,
                    {
                        "status": fresh.status_code,
                        "headers": dict(fresh.headers),
                        "media_type": fresh.media_type,
                        "body": body.decode("utf-8"),
                    },
                    settings.idempotency_ttl,
                )
                log.info("stored idempotent answer for %s", key)
            return fresh


def install_idempotency(app, cache: Optional[Cache] = None):
    app.add_middleware(RedeemIdempotency, cache=cache or get_cache())
