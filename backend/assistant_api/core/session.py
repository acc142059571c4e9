"""
Short-lived session tokens gating the chat endpoint.

Tokens are HS256 JWTs (python-jose) carrying the caller identity, issue and
expiry times and two flags:
- bypass: issued because verification is administratively switched off
- dev: issued in a non-production environment with no verification secret

Nothing is stored server-side; a token is valid while its signature checks
out and its expiry is in the future.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx
from jose import JWTError, jwt

from .circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from .errors import Unauthorized, UpstreamUnavailable
from .logging import get_logger

logger = get_logger(__name__)

SESSION_TTL = timedelta(hours=24)
JWT_ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionClaims:
    identity: str
    issued_at: datetime
    expires_at: datetime
    bypass: bool = False
    dev: bool = False


class SessionTokenService:
    """Issues and verifies signed session tokens."""

    def __init__(
        self,
        secret: str,
        ttl: timedelta = SESSION_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not secret:
            raise ValueError("session secret must not be empty")
        self._secret = secret
        self.ttl = ttl
        self._clock = clock

    def issue(self, identity: str, bypass: bool = False, dev: bool = False) -> str:
        issued_at = self._clock()
        expires_at = issued_at + self.ttl
        claims = {
            "sub": identity,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        if bypass:
            claims["bypass"] = True
        if dev:
            claims["dev"] = True
        return jwt.encode(claims, self._secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: str) -> Optional[SessionClaims]:
        """
        Check signature and expiry.

        Returns:
            The decoded claims, or None if the token is malformed, badly
            signed or expired.
        """
        try:
            # Expiry is checked below against the injected clock.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as e:
            logger.info("session_token_rejected", reason="invalid", error=str(e))
            return None

        identity = payload.get("sub")
        iat = payload.get("iat")
        exp = payload.get("exp")
        if not isinstance(identity, str) or not isinstance(iat, int) or not isinstance(exp, int):
            logger.info("session_token_rejected", reason="malformed_claims")
            return None

        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        if self._clock() >= expires_at:
            logger.info("session_token_rejected", reason="expired")
            return None

        return SessionClaims(
            identity=identity,
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=expires_at,
            bypass=bool(payload.get("bypass", False)),
            dev=bool(payload.get("dev", False)),
        )


class HumanVerifier:
    """Cloudflare Turnstile siteverify client."""

    def __init__(
        self,
        secret_key: Optional[str],
        verify_url: str,
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self.circuit_breaker = CircuitBreaker(name="human_verification", min_calls=5)

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    async def _post(self, data: dict) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self._transport
        ) as client:
            response = await client.post(self.verify_url, data=data)
            response.raise_for_status()
            return response

    async def verify(self, token: str, client_ip: Optional[str]) -> bool:
        if not self.secret_key:
            raise UpstreamUnavailable("verification", "not_configured")

        data = {"secret": self.secret_key, "response": token}
        if client_ip and client_ip != "unknown":
            data["remoteip"] = client_ip

        try:
            response = await self.circuit_breaker.call_async(self._post, data)
        except CircuitBreakerOpenError as e:
            raise UpstreamUnavailable("verification", "circuit_open") from e
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable("verification", "timeout") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("verification", "generic", str(e)) from e

        try:
            body = response.json()
        except ValueError:
            logger.warning("verification_invalid_response", status_code=response.status_code)
            return False

        success = bool(body.get("success"))
        if not success:
            logger.info("verification_failed", error_codes=body.get("error-codes"))
        return success


@dataclass(frozen=True)
class GatingPolicy:
    """Snapshot of the flags that decide whether sessions are enforced."""

    is_production: bool
    verification_required: bool

    @property
    def enforced(self) -> bool:
        return self.is_production and self.verification_required


class SessionGate:
    """
    Issues tokens and guards the chat endpoint.

    The policy object is replaced wholesale when an admin flips a flag, and
    every decision reads it exactly once, so a single request never sees two
    different flag states.
    """

    def __init__(
        self,
        tokens: SessionTokenService,
        verifier: HumanVerifier,
        policy: GatingPolicy,
        metrics,
    ):
        self.tokens = tokens
        self.verifier = verifier
        self._policy = policy
        self.metrics = metrics

    @property
    def policy(self) -> GatingPolicy:
        return self._policy

    def set_verification_required(self, required: bool) -> GatingPolicy:
        policy = GatingPolicy(
            is_production=self._policy.is_production,
            verification_required=required,
        )
        self._policy = policy
        logger.info("session_gating_policy_changed", verification_required=required)
        return policy

    async def issue(self, identity: str, verification_token: Optional[str]) -> str:
        """
        Issue a token through the first matching path:
        1. verification switched off -> bypass token
        2. non-production without a verification secret -> dev token
        3. otherwise the human-verification token must check out
        """
        policy = self._policy

        if not policy.verification_required:
            self.metrics.record_session_token("issued_bypass")
            logger.info("session_token_issued", kind="bypass")
            return self.tokens.issue(identity, bypass=True)

        if not policy.is_production and not self.verifier.configured:
            self.metrics.record_session_token("issued_dev")
            logger.info("session_token_issued", kind="dev")
            return self.tokens.issue(identity, dev=True)

        if not verification_token:
            self.metrics.record_session_token("verification_missing")
            raise Unauthorized("verification token is required")

        if not await self.verifier.verify(verification_token, identity):
            self.metrics.record_session_token("verification_failed")
            raise Unauthorized("human verification failed", token_supplied=True)

        self.metrics.record_session_token("issued")
        logger.info("session_token_issued", kind="verified")
        return self.tokens.issue(identity)

    def authorize(self, token: Optional[str]) -> Optional[SessionClaims]:
        """
        Gate a request.

        Returns:
            Verified claims, or None when gating is not enforced and no valid
            token was presented.

        Raises:
            Unauthorized: gating is enforced and the token is missing or invalid.
        """
        policy = self._policy
        claims = self.tokens.verify(token) if token else None

        if not policy.enforced:
            return claims

        if not token:
            self.metrics.record_session_token("missing")
            raise Unauthorized("session token missing")
        if claims is None:
            self.metrics.record_session_token("invalid")
            raise Unauthorized("session token invalid or expired", token_supplied=True)

        self.metrics.record_session_token("verified")
        return claims


def get_session_token(headers) -> Optional[str]:
    """Read the token from `Authorization: Bearer` or `X-Session-Token`."""
    auth_header = headers.get("Authorization")
    if auth_header:
        parts = auth_header.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
            return parts[1].strip()

    token = headers.get("X-Session-Token")
    if token and token.strip():
        return token.strip()
    return None
