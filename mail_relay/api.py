"""
FastAPI application factory and HTTP schemas for the mail relay.

The module exposes a `create_app` function that builds the REST API used by
the inbound mail trigger and by the external timer driving retry sweeps.
Authentication is enforced through a configurable API token carried in the
``X-API-Token`` header.
"""

from typing import Optional, Dict, Any, List, Callable, AsyncContextManager

from fastapi import FastAPI, HTTPException, APIRouter, Depends, Query, Request, status
from fastapi.responses import Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from .core import MailRelayCore, RelayConfigurationError
from .message import InboundMessage

app = FastAPI(title="Inbound Mail Relay")
service: MailRelayCore | None = None
API_TOKEN_HEADER_NAME = "X-API-Token"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)
app.state.api_token = None

async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header.

    When no token is configured the dependency is bypassed.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or api_token != expected:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")

auth_dependency = Depends(require_token)


class CommandStatus(BaseModel):
    """Base schema shared by most responses produced by the relay."""
    ok: bool
    error: Optional[str] = None


class BasicOkResponse(CommandStatus):
    pass


class InboundResponse(CommandStatus):
    """Outcome of relaying one inbound message."""
    delivered: bool
    retry_id: Optional[str] = None


class RetrySweepResponse(CommandStatus):
    """Counters of one retry sweep."""
    processed: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    dead_lettered: int = 0
    errors: int = 0


class DeadLetterResponse(CommandStatus):
    """Permanently failed requests, in store order."""
    items: List[Dict[str, Any]] = Field(default_factory=list)


def _require_service() -> MailRelayCore:
    if not service:
        raise HTTPException(500, "Service not initialized")
    return service


def create_app(
    svc: MailRelayCore,
    api_token: str | None = None,
    lifespan: Callable[[FastAPI], AsyncContextManager] | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    svc:
        Instance of :class:`mail_relay.core.MailRelayCore` implementing the
        relay pipeline and the retry sweep.
    api_token:
        Optional secret used to protect every endpoint. When provided, the
        ``X-API-Token`` header must match this value on every request.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn or any ASGI
        server.
    """
    global service
    service = svc

    if lifespan is not None:
        api = FastAPI(title="Inbound Mail Relay", lifespan=lifespan)
    else:
        api = app

    api.state.api_token = api_token
    router = APIRouter(prefix="/commands", tags=["commands"], dependencies=[auth_dependency])

    @api.get("/status", response_model=BasicOkResponse, response_model_exclude_none=True, dependencies=[auth_dependency])
    async def status_():
        """Return a simple health status payload."""
        return BasicOkResponse(ok=True)

    @api.post("/inbound", response_model=InboundResponse, response_model_exclude_none=True, dependencies=[auth_dependency])
    async def inbound(
        request: Request,
        mail_from: str = Query(..., description="Envelope sender"),
        rcpt_to: str = Query(..., description="Envelope recipient"),
    ):
        """Relay one raw RFC 822 message posted as the request body."""
        relay = _require_service()
        raw = await request.body()
        message = InboundMessage.from_bytes(raw, mail_from=mail_from, rcpt_to=rcpt_to)
        try:
            outcome = await relay.handle_inbound(message)
        except RelayConfigurationError as exc:
            raise HTTPException(500, str(exc))
        return InboundResponse(ok=True, delivered=outcome.delivered, retry_id=outcome.retry_id, error=outcome.error)

    @router.post("/retry-sweep", response_model=RetrySweepResponse, response_model_exclude_none=True)
    async def retry_sweep(limit: Optional[int] = Query(default=None, ge=1)):
        """Replay due entries of the retry queue once."""
        relay = _require_service()
        try:
            report = await relay.process_retry_cycle(limit)
        except RelayConfigurationError as exc:
            raise HTTPException(500, str(exc))
        return RetrySweepResponse(
            ok=True,
            processed=report.processed,
            succeeded=report.succeeded,
            rescheduled=report.rescheduled,
            dead_lettered=report.dead_lettered,
            errors=report.errors,
        )

    @api.get("/dead-letters", response_model=DeadLetterResponse, response_model_exclude_none=True, dependencies=[auth_dependency])
    async def dead_letters(limit: int = Query(default=100, ge=1)):
        """List permanently failed requests for manual review."""
        relay = _require_service()
        items = await relay.list_dead_letters(limit)
        return DeadLetterResponse(
            ok=True,
            items=[item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items],
        )

    @api.get("/metrics", dependencies=[auth_dependency])
    async def metrics():
        """Expose Prometheus metrics collected by the relay."""
        relay = _require_service()
        return Response(content=relay.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    api.include_router(router)
    return api
