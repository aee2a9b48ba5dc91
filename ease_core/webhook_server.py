"""aiohttp server exposing the purchase webhook on the bot's event loop."""

from __future__ import annotations

from typing import Awaitable, Callable

from aiohttp import web

from .config import Config
from .constants import WEBHOOK_MAX_BODY_BYTES, WEBHOOK_ROUTE
from .logger import get_logger
from .pipeline import IngestionPipeline
from .rate_limiter import RateLimiter, get_rate_limiter

logger = get_logger()
access_logger = get_logger("http")

PIPELINE_KEY = web.AppKey("pipeline", IngestionPipeline)
CONFIG_KEY = web.AppKey("config", Config)
LIMITER_KEY = web.AppKey("rate_limiter", RateLimiter)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def security_headers_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    response = await handler(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


async def handle_health(request: web.Request) -> web.Response:
    return web.Response(text="OK")


async def handle_purchase_webhook(request: web.Request) -> web.Response:
    """POST /easebot: verify, record and promote a third-party purchase."""
    pipeline = request.app[PIPELINE_KEY]
    config = request.app[CONFIG_KEY]
    limiter = request.app[LIMITER_KEY]
    source = request.remote or "unknown"

    allowed, retry_after, _remaining = await limiter.try_acquire(
        scope="webhook",
        identifier=source,
        window=config.rate_limit.window_seconds,
        max_uses=config.rate_limit.max_requests,
    )
    if not allowed:
        violations, alert = await limiter.record_violation(f"webhook:{source}")
        if alert:
            logger.warning(f"Webhook source {source} hit the rate limit {violations} times in a short window")
        return web.json_response(
            {"error": "rate limited"},
            status=429,
            headers={"Retry-After": str(retry_after)},
        )

    try:
        raw_body = await request.read()
    except web.HTTPRequestEntityTooLarge:
        return web.json_response({"error": "payload too large"}, status=413)

    result = await pipeline.handle_webhook(
        raw_body,
        request.headers.get(config.signature_header),
        source_ip=source,
    )
    return web.json_response(result.body, status=result.status)


def create_app(
    pipeline: IngestionPipeline,
    config: Config,
    rate_limiter: RateLimiter | None = None,
) -> web.Application:
    """Build the aiohttp application serving the health check and the webhook."""
    app = web.Application(
        client_max_size=WEBHOOK_MAX_BODY_BYTES,
        middlewares=[security_headers_middleware],
    )
    app[PIPELINE_KEY] = pipeline
    app[CONFIG_KEY] = config
    app[LIMITER_KEY] = rate_limiter or get_rate_limiter()

    app.router.add_get("/", handle_health)
    app.router.add_post(WEBHOOK_ROUTE, handle_purchase_webhook)
    return app


class WebhookServer:
    """Runs the webhook application alongside the Discord client."""

    def __init__(self, app: web.Application, host: str = "0.0.0.0", port: int = 3000) -> None:
        self.app = app
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        if self._runner is not None:
            return
        runner = web.AppRunner(self.app, access_log=access_logger)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner
        logger.info(f"Webhook server listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Webhook server stopped.")
