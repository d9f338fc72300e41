from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from flashnet_paths.core.config import (
    get_gateway_url,
    get_http_timeout,
    get_read_retries,
)
from flashnet_paths.core.errors import (
    AuthenticationFailed,
    FlashnetError,
    GatewayError,
    NetworkError,
)
from flashnet_paths.core.utils.retry import retry_async

if TYPE_CHECKING:
    from flashnet_paths.core.session import SessionManager


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, NetworkError):
        return True
    if isinstance(exc, GatewayError):
        return exc.status_code == 429 or (exc.status_code or 0) >= 500
    return False


def _error_from_response(resp: httpx.Response, method: str, path: str) -> FlashnetError:
    try:
        body = resp.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        message = (resp.text or resp.reason_phrase or "").strip()
        if resp.status_code >= 500:
            return NetworkError(
                f"Gateway returned HTTP {resp.status_code} for {method} {path}: {message}",
                details={"status_code": resp.status_code},
            )
        return GatewayError(
            message or f"HTTP {resp.status_code}",
            status_code=resp.status_code,
        )

    code = body.get("errorCode") or body.get("code")
    message = body.get("message") or body.get("error") or f"HTTP {resp.status_code}"
    if not code and resp.status_code >= 500:
        return NetworkError(
            f"Gateway returned HTTP {resp.status_code} for {method} {path}: {message}",
            details={"status_code": resp.status_code},
        )
    return GatewayError(
        str(message),
        code=str(code) if code else f"FSAG-{1000 if resp.status_code < 500 else 5000}",
        status_code=resp.status_code,
        request_id=body.get("requestId"),
        details=body.get("details") if isinstance(body.get("details"), dict) else None,
    )


class GatewayClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        read_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or get_gateway_url()).rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout if timeout is not None else get_http_timeout()),
            transport=transport,
        )
        self.headers = {
            "Content-Type": "application/json",
        }
        self.read_retries = read_retries if read_retries is not None else get_read_retries()
        self.session: SessionManager | None = None

    def attach_session(self, session: SessionManager) -> None:
        self.session = session

    async def close(self) -> None:
        await self.client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        logger.debug(f"Making {method} request to {self.base_url}{path}")
        start_time = time.time()

        merged_headers = dict(self.headers)
        if headers:
            merged_headers.update(headers)
        try:
            resp = await self.client.request(method, path, headers=merged_headers, **kwargs)
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        elapsed = time.time() - start_time
        if resp.status_code >= 400:
            logger.warning(
                f"HTTP {resp.status_code} response for {method} {path} after {elapsed:.2f}s"
            )
        else:
            logger.debug(
                f"HTTP {resp.status_code} response for {method} {path} after {elapsed:.2f}s"
            )
        return resp

    async def _authed_request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self.session is None:
            raise AuthenticationFailed(
                f"{method} {path} requires a session but none is attached"
            )

        session = await self.session.ensure_authenticated()
        resp = await self._send(
            method, path, headers={"Authorization": f"Bearer {session.token}"}, **kwargs
        )
        if resp.status_code != 401:
            return resp

        logger.info(f"Gateway rejected session token for {method} {path}; re-authenticating")
        self.session.invalidate(session.token)
        session = await self.session.ensure_authenticated()
        resp = await self._send(
            method, path, headers={"Authorization": f"Bearer {session.token}"}, **kwargs
        )
        if resp.status_code == 401:
            self.session.invalidate(session.token)
            raise AuthenticationFailed(
                f"Gateway rejected a freshly issued token for {method} {path}"
            )
        return resp

    async def _request(
        self,
        method: str,
        path: str,
        *,
        auth: bool = True,
        idempotent: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Send a request and decode the JSON body.

        Only ``idempotent`` requests (reads and simulations) are retried on
        transient failures; intent submissions are sent exactly once.
        """

        async def _attempt() -> Any:
            if auth:
                resp = await self._authed_request(method, path, **kwargs)
            else:
                resp = await self._send(method, path, **kwargs)
            if resp.status_code >= 400:
                raise _error_from_response(resp, method, path)
            if not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError as exc:
                raise GatewayError(
                    f"Malformed JSON from {method} {path}", status_code=resp.status_code
                ) from exc

        if not idempotent:
            return await _attempt()

        def _log_retry(attempt: int, exc: Exception, delay_s: float) -> None:
            logger.warning(
                f"Retrying {method} {path} in {delay_s:.2f}s (attempt {attempt + 1}): {exc}"
            )

        return await retry_async(
            _attempt,
            max_retries=self.read_retries,
            should_retry=is_transient,
            on_retry=_log_retry,
        )
