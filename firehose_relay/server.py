"""HTTP and WebSocket surface of the relay."""

from typing import Optional

import websockets
from fastapi import FastAPI, Response, WebSocket
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .auth import AccountVerifier
from .config import Settings, settings
from .did import DIDResolver
from .errors import AuthenticationError, DIDResolutionError, InvalidDIDError
from .firehose import FirehosePipeline
from .logging_setup import get_logger
from .ratelimit import WindowRateLimiter
from .records import RecordDecoder
from .session import Connector, RelaySession

logger = get_logger(__name__)

BANNER = """\
  firehose relay

  Connect with a WebSocket client to this address to receive a live,
  simplified stream of posts from the network firehose.

  An account session token is required:
      Authorization: Bearer <token>
"""


async def deny(websocket: WebSocket) -> None:
    """Refuse the upgrade with HTTP 401, or close with 1008 on servers that
    cannot send a response in place of the handshake."""
    if "websocket.http.response" in websocket.scope.get("extensions", {}):
        await websocket.send_denial_response(PlainTextResponse("Unauthorized", status_code=401))
    else:
        await websocket.close(code=1008)


def create_app(
        config: Settings = settings,
        *,
        connect: Connector = websockets.connect,
        record_decoder: Optional[RecordDecoder] = None,
        did_resolver: Optional[DIDResolver] = None,
        account_verifier: Optional[AccountVerifier] = None,
    ) -> FastAPI:
    """Build the application.

    The record decoder is built once and shared read-only by every session;
    each session gets its own pipeline, rate limiter and sockets.
    """
    app = FastAPI(
        title="Firehose Relay",
        description="Relays a simplified view of the atproto firehose to WebSocket subscribers",
        version="1.0.0",
    )
    decoder = record_decoder or RecordDecoder()
    resolver = did_resolver or DIDResolver(config.plc_directory_url, timeout=config.http_timeout)
    verifier = account_verifier or AccountVerifier(
        config.baas_endpoint,
        config.project_id,
        config.appwrite_api_key,
        timeout=config.http_timeout,
        debug=config.debug,
    )
    app.state.sessions = set()

    @app.get("/", response_class=PlainTextResponse)
    async def banner():
        return BANNER

    @app.websocket("/")
    async def relay(websocket: WebSocket):
        try:
            await verifier.verify(websocket.headers.get("authorization"))
        except AuthenticationError as e:
            logger.info("subscriber_rejected", reason=str(e))
            await deny(websocket)
            return

        session = RelaySession(
            websocket,
            FirehosePipeline(decoder),
            upstream_url=config.upstream_url,
            connect=connect,
            rate_limiter=WindowRateLimiter(config.rate_limit_max_messages, config.rate_limit_window_seconds),
            send_queue_size=config.send_queue_size,
            connect_timeout=config.upstream_connect_timeout,
            max_size=config.upstream_max_size,
        )
        app.state.sessions.add(session)
        try:
            await session.run()
        finally:
            app.state.sessions.discard(session)

    @app.get("/resolve/{did}")
    async def resolve(did: str):
        """Resolve a DID to its document and primary handle."""
        try:
            document = await resolver.resolve(did)
        except InvalidDIDError as e:
            return JSONResponse(content={"error": str(e)}, status_code=400)
        except DIDResolutionError as e:
            logger.warning("did_resolve_failed", did=did, error=str(e), status=e.status)
            return JSONResponse(content={"error": str(e), "status": e.status}, status_code=502)

        content = document.model_dump(by_alias=True, exclude_none=True)
        content["handle"] = document.handle
        return JSONResponse(content=content)

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return JSONResponse(
            content={
                "status": "healthy",
                "service": config.service_name,
                "active_sessions": len(app.state.sessions),
            },
            status_code=200,
        )

    @app.get("/ready")
    async def readiness_check():
        """Kubernetes readiness probe endpoint."""
        return JSONResponse(content={"status": "ready", "service": config.service_name}, status_code=200)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
