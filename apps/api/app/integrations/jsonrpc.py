import itertools
import time
from typing import Any

import httpx

from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationError,
    IntegrationRejectedError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)


class JsonRpcTransport:
    """Minimal JSON-RPC 2.0 caller with bounded retries for idempotent reads."""

    def __init__(
        self,
        service: str,
        url: str,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
    ) -> None:
        self.service = service
        self.url = url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self._ids = itertools.count(1)

    def call(self, method: str, params: list[Any] | None = None, *, retry: bool = True) -> Any:
        if not self.url:
            raise IntegrationUnavailableError(self.service, f"{self.service} URL is not configured")

        max_retries = self.max_retries if retry else 0
        for attempt in range(max_retries + 1):
            try:
                return self._call_once(method, params or [])
            except httpx.TimeoutException:
                integration_error: IntegrationError = IntegrationTimeoutError(self.service)
            except httpx.TransportError as err:
                integration_error = IntegrationUnavailableError(self.service, str(err))
            except IntegrationUnavailableError as err:
                integration_error = err

            if attempt >= max_retries:
                raise integration_error
            time.sleep(self.backoff_s * (2**attempt))

        raise IntegrationUnavailableError(self.service)

    def _call_once(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        with httpx.Client(timeout=self.timeout_s) as client:
            response = client.post(self.url, json=payload)

        if response.status_code >= 500:
            raise IntegrationUnavailableError(self.service, f"{self.service} returned 5xx")
        if response.status_code >= 400:
            raise IntegrationBadGatewayError(
                self.service, f"{self.service} returned {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as err:
            raise IntegrationBadGatewayError(self.service, "Malformed JSON-RPC response") from err
        if not isinstance(body, dict):
            raise IntegrationBadGatewayError(self.service, "Malformed JSON-RPC response")

        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise IntegrationRejectedError(self.service, message or "JSON-RPC error")
        return body.get("result")
