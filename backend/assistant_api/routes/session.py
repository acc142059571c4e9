"""
Session token issuance.

POST /session {"turnstileToken": "..."}
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request

from assistant_api.core.errors import ServiceError
from assistant_api.core.logging import get_logger
from assistant_api.core.quota import get_client_ip
from assistant_api.dependencies import Services, get_services
from assistant_api.models import SessionRequest, SessionResponse

logger = get_logger(__name__)

router = APIRouter()


@router.post("", response_model=SessionResponse)
async def create_session(
    request: Request,
    body: Optional[SessionRequest] = None,
    services: Services = Depends(get_services),
):
    identity = get_client_ip(request)
    verification_token = body.verification_token if body else None
    token = await services.gate.issue(identity, verification_token)

    claims = services.gate.tokens.verify(token)
    if claims is None:
        # Only possible if the signing secret changed between issue and verify.
        raise ServiceError("freshly issued session token failed verification")

    return SessionResponse(
        token=token,
        expires_at=int(claims.expires_at.timestamp() * 1000),
        bypass=claims.bypass,
        dev=claims.dev,
    )
