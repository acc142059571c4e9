"""
Admin endpoints for session gating.

GET  /admin/verification
POST /admin/verification {"required": bool}

Both require the X-Admin-Key header to match ADMIN_API_KEY. With no key
configured the endpoints are disabled.
"""
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from assistant_api.core.logging import get_logger
from assistant_api.dependencies import Services, get_services

logger = get_logger(__name__)

router = APIRouter()


class VerificationToggle(BaseModel):
    required: bool


def require_admin(
    x_admin_key: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Services:
    expected = services.settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=503, detail="Admin API not configured")
    if not x_admin_key or not hmac.compare_digest(x_admin_key.encode(), expected.encode()):
        logger.warning("admin_auth_failed")
        raise HTTPException(status_code=401, detail="Invalid admin key")
    return services


def _policy_body(services: Services) -> dict:
    policy = services.gate.policy
    return {
        "production": policy.is_production,
        "verification_required": policy.verification_required,
        "enforced": policy.enforced,
    }


@router.get("/verification")
async def get_verification(services: Services = Depends(require_admin)):
    return _policy_body(services)


@router.post("/verification")
async def set_verification(
    toggle: VerificationToggle,
    services: Services = Depends(require_admin),
):
    """Switch human verification on or off without a restart."""
    services.gate.set_verification_required(toggle.required)
    logger.info("admin_verification_toggled", required=toggle.required)
    return _policy_body(services)
