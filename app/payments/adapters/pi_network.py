"""
HTTP provider for the Pi platform API.

Calls are made with httpx on a small thread pool and returned as futures.
All Pi API calls go through this adapter to ensure consistent timeouts,
error translation and structured logging.

Configuration (via settings):
    PI_API_BASE_URL: Platform base URL (default: https://api.testnet.minepi.com)
    PI_API_KEY: Server API key, sent as "Authorization: Key <key>"
    PI_PROVIDER_TIMEOUT_SECONDS: Per-request timeout (default: 10)

Endpoints used:
    GET  /v2/me                        (user access token)
    POST /v2/payments                  create an app-to-user payment
    POST /v2/payments/<id>/complete    submit the txid
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING

import httpx
from django.conf import settings

from payments.exceptions import (
    ProviderError,
    ProviderRequestError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from payments.state_machines import PaymentStatus
from payments.types import (
    CreatePaymentParams,
    ProviderCompletion,
    ProviderIdentity,
    ProviderPayment,
    parse_amount,
)

if TYPE_CHECKING:
    from typing import Any, Callable


class PiNetworkProvider:
    """
    Adapter for Pi platform API operations.

    Features:
    - Configurable timeout on every HTTP call
    - Automatic error translation to ProviderError subclasses
    - Structured logging with timing metrics

    Usage:
        provider = PiNetworkProvider()
        payment = provider.create_payment(params).result(timeout=10)
    """

    name = "pi"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
        max_workers: int = 4,
    ) -> None:
        self.base_url = (base_url or settings.PI_API_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PI_API_KEY
        self.timeout = timeout or settings.PI_PROVIDER_TIMEOUT_SECONDS
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="pi-provider",
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Core Operations
    # =========================================================================

    def authenticate_user(
        self,
        uid: str,
        access_token: str | None = None,
    ) -> Future[ProviderIdentity]:
        """
        Verify a Pi SDK access token against /v2/me.

        Without a token the claimed UID cannot be verified and the
        identity comes back unauthenticated.
        """
        if not access_token:
            future: Future[ProviderIdentity] = Future()
            future.set_result(ProviderIdentity(uid=uid, authenticated=False))
            return future

        def call() -> ProviderIdentity:
            data = self._request(
                "GET",
                "/v2/me",
                operation="authenticate_user",
                headers={"Authorization": f"Bearer {access_token}"},
            )
            return ProviderIdentity(
                uid=str(data.get("uid", "")),
                username=str(data.get("username", "")),
                authenticated=bool(data.get("uid")),
                testnet=True,
            )

        return self._submit(call)

    def create_payment(self, params: CreatePaymentParams) -> Future[ProviderPayment]:
        """
        Create an app-to-user payment.

        Raises (through the future):
            ProviderRequestError: Provider rejected the payment
            ProviderUnavailableError: Provider unreachable or 5xx
            ProviderTimeoutError: Request timed out
        """

        def call() -> ProviderPayment:
            data = self._request(
                "POST",
                "/v2/payments",
                operation="create_payment",
                json={
                    "payment": {
                        "amount": str(params.amount),
                        "memo": params.memo,
                        "metadata": params.metadata,
                        "uid": params.uid,
                    }
                },
            )
            identifier = data.get("identifier")
            if not identifier:
                raise ProviderRequestError(
                    "Pi API response is missing the payment identifier",
                    provider_code="missing_identifier",
                )
            amount = data.get("amount")
            return ProviderPayment(
                payment_id=str(identifier),
                amount=params.amount if amount is None else parse_amount(amount),
                status=PaymentStatus.PENDING.value,
                testnet=data.get("network", "Pi Testnet") != "Pi Network",
                raw_response=data,
            )

        return self._submit(call)

    def complete_payment(
        self,
        payment_id: str,
        txid: str | None = None,
    ) -> Future[ProviderCompletion]:
        """Submit the blockchain txid for a payment."""

        def call() -> ProviderCompletion:
            if not txid:
                raise ProviderRequestError(
                    "A txid is required to complete a Pi payment",
                    provider_code="missing_txid",
                )
            data = self._request(
                "POST",
                f"/v2/payments/{payment_id}/complete",
                operation="complete_payment",
                json={"txid": txid},
            )
            status = data.get("status") or {}
            return ProviderCompletion(
                payment_id=payment_id,
                txid=txid,
                completed=bool(status.get("developer_completed", True)),
                raw_response=data,
            )

        return self._submit(call)

    def close(self) -> None:
        """Release the HTTP client and worker threads."""
        self._executor.shutdown(wait=False)
        self._client.close()

    # =========================================================================
    # Transport
    # =========================================================================

    def _submit(self, fn: Callable[[], Any]) -> Future:
        return self._executor.submit(fn)

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        headers: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Perform one HTTP call and return the decoded JSON object."""
        logger = self.get_logger()
        request_headers = {"Authorization": f"Key {self.api_key}"}
        request_headers.update(headers or {})

        log_context = {"operation": operation, "path": path}
        start_time = time.time()
        logger.info("Starting Pi API operation", extra=log_context)

        try:
            response = self._client.request(method, path, headers=request_headers, json=json)
            response.raise_for_status()
            data = response.json()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_http_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Pi API operation completed",
            extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
        )

        if not isinstance(data, dict):
            raise ProviderRequestError(
                "Pi API returned a non-object response",
                provider_code="unexpected_response",
            )
        return data

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _handle_http_error(
        self,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate httpx exceptions to ProviderError subclasses.

        Raises:
            ProviderTimeoutError: Request timed out
            ProviderUnavailableError: Connection failure or 5xx
            ProviderRequestError: 4xx or undecodable body
        """
        logger = self.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, ProviderError):
            raise error

        if isinstance(error, httpx.TimeoutException):
            logger.warning("Pi API request timed out", extra=log_context)
            raise ProviderTimeoutError(
                f"Pi API did not answer within {self.timeout}s",
                provider_code="timeout",
            ) from error

        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            log_context = {**log_context, "status_code": status_code}
            if status_code >= 500:
                logger.error("Pi API server error", extra=log_context)
                raise ProviderUnavailableError(
                    "Pi API service error. Please retry.",
                    provider_code=f"http_{status_code}",
                ) from error
            if status_code in (401, 403):
                logger.critical("Pi API authentication failed - check PI_API_KEY", extra=log_context)
            else:
                logger.error("Pi API rejected the request", extra=log_context)
            raise ProviderRequestError(
                f"Pi API rejected the request ({status_code})",
                provider_code=f"http_{status_code}",
                details={"body": error.response.text[:500]},
            ) from error

        if isinstance(error, httpx.TransportError):
            logger.error("Connection error to Pi API", extra=log_context, exc_info=True)
            raise ProviderUnavailableError(
                "Could not connect to the Pi API. Please retry.",
                provider_code="connection_error",
            ) from error

        if isinstance(error, ValueError):
            logger.error("Pi API returned invalid JSON", extra=log_context)
            raise ProviderRequestError(
                "Pi API returned invalid JSON",
                provider_code="invalid_json",
            ) from error

        logger.error(
            f"Unexpected error from Pi API: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise ProviderUnavailableError(
            f"Unexpected Pi API error: {error}",
            provider_code="unknown_error",
        ) from error


__all__ = ["PiNetworkProvider"]
