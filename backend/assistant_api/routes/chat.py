"""
Chat endpoint.

POST /chat
Gated by the session token (when enforced) and the per-client daily quota.
"""
import time

from fastapi import APIRouter, Depends, Request

from assistant_api.core.errors import InputInvalid, UpstreamUnavailable
from assistant_api.core.logging import get_logger
from assistant_api.core.quota import get_client_ip
from assistant_api.core.session import get_session_token
from assistant_api.core.tracing import set_span_attribute
from assistant_api.dependencies import Services, get_services
from assistant_api.models import ChatRequest, ChatResponse, ErrorResponse
from assistant_api.services.ai.llm_client import UPSTREAM as AI_UPSTREAM

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def chat(
    body: ChatRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    """
    Answer a chat message.

    The message is classified, grounded (scraped page, pasted text or an
    earlier pasted message) when the intent needs it, and answered with the
    matching prompt. A scrape that outlives the poll deadline is reported
    with its `jobId`.
    """
    identity = get_client_ip(request)

    services.gate.authorize(get_session_token(request.headers))

    if not body.message or not body.message.strip():
        raise InputInvalid()

    if not services.llm.configured:
        services.metrics.record_upstream_error(AI_UPSTREAM, "not_configured")
        raise UpstreamUnavailable(AI_UPSTREAM, "not_configured")

    count = await services.quota.enforce(identity)
    set_span_attribute("chat.quota_count", count if count is not None else -1)

    outcome = await services.chat.handle(
        body.message,
        history=body.history,
        context=body.context,
        is_cancelled=request.is_disconnected,
    )

    return ChatResponse(
        response=outcome.response,
        job_id=outcome.job_id,
        timestamp=int(time.time() * 1000),
    )
