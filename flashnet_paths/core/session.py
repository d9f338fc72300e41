"""Challenge-response session for the AMM gateway.

At most one authentication is in flight per manager: concurrent callers that
find no valid session all await the same task and share its result or its
failure.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import jwt
from loguru import logger

from flashnet_paths.core.config import get_session_default_ttl, get_session_expiry_skew
from flashnet_paths.core.errors import AuthenticationFailed
from flashnet_paths.core.utils.signer import Signer, sign_challenge

if TYPE_CHECKING:
    from flashnet_paths.core.clients.AmmClient import AmmClient
    from flashnet_paths.core.clients.models import AuthToken


class AuthState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Session:
    public_key: str
    token: str
    expires_at: float


def _parse_expires_at(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        # milliseconds since epoch are common in gateway payloads
        return value / 1000 if value > 1e12 else float(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return _parse_expires_at(float(text))
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp()
        except ValueError:
            return None
    return None


def _jwt_expiry(token: str) -> float | None:
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp")
    return float(exp) if isinstance(exp, (int, float)) else None


class SessionManager:
    def __init__(
        self,
        client: AmmClient,
        signer: Signer,
        *,
        public_key: str | None = None,
        expiry_skew_s: float | None = None,
        default_ttl_s: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.signer = signer
        self._public_key = public_key
        self.expiry_skew_s = (
            expiry_skew_s if expiry_skew_s is not None else get_session_expiry_skew()
        )
        self.default_ttl_s = (
            default_ttl_s if default_ttl_s is not None else get_session_default_ttl()
        )
        self._clock = clock
        self._session: Session | None = None
        self._inflight: asyncio.Task[Session] | None = None
        self._expired = False

    @property
    def state(self) -> AuthState:
        if self._inflight is not None and not self._inflight.done():
            return AuthState.AUTHENTICATING
        if self._session is None:
            return AuthState.EXPIRED if self._expired else AuthState.UNAUTHENTICATED
        if not self._is_valid(self._session):
            return AuthState.EXPIRED
        return AuthState.AUTHENTICATED

    @property
    def session(self) -> Session | None:
        return self._session

    def _is_valid(self, session: Session) -> bool:
        return self._clock() < session.expires_at - self.expiry_skew_s

    async def public_key(self) -> str:
        if self._public_key is None:
            identity = getattr(self.signer, "identity_public_key", None)
            if identity is None:
                raise AuthenticationFailed("Signer does not expose an identity public key")
            self._public_key = await identity()
        return self._public_key

    async def ensure_authenticated(self) -> Session:
        session = self._session
        if session is not None and self._is_valid(session):
            return session

        if self._inflight is None or self._inflight.done():
            if session is not None:
                logger.debug("Session token expired; re-authenticating")
                self._expired = True
            self._session = None
            self._inflight = asyncio.ensure_future(self._authenticate())
        # shield: one waiter being cancelled must not cancel the shared attempt
        return await asyncio.shield(self._inflight)

    def invalidate(self, token: str | None = None) -> None:
        """Drop the current session, or only ``token`` if it is still current."""
        if self._session is None:
            return
        if token is not None and self._session.token != token:
            return
        logger.debug("Invalidating gateway session")
        self._session = None
        self._expired = False

    async def _authenticate(self) -> Session:
        try:
            public_key = await self.public_key()
            challenge = await self.client.get_challenge(public_key)
            signature = await sign_challenge(challenge.challenge, self.signer)
            token = await self.client.verify_challenge(public_key, signature.hex())
        except AuthenticationFailed:
            self._reset()
            raise
        except Exception as exc:
            self._reset()
            logger.warning(f"Gateway authentication failed: {exc}")
            raise AuthenticationFailed(f"Authentication failed: {exc}") from exc

        if not token.access_token:
            self._reset()
            raise AuthenticationFailed("Gateway did not return an access token")

        session = Session(
            public_key=public_key,
            token=token.access_token,
            expires_at=self._expiry_for(token),
        )
        self._session = session
        self._expired = False
        logger.info(f"Authenticated with gateway as {public_key[:12]}...")
        return session

    def _reset(self) -> None:
        self._session = None
        self._expired = False

    def _expiry_for(self, token: AuthToken) -> float:
        now = self._clock()
        if token.expires_in is not None:
            return now + float(token.expires_in)
        explicit = _parse_expires_at(token.expires_at)
        if explicit is not None:
            return explicit
        claimed = _jwt_expiry(token.access_token)
        if claimed is not None:
            return claimed
        return now + self.default_ttl_s
