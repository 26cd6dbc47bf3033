import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import httpx

from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)


@dataclass(frozen=True)
class RecordingResult:
    status_code: int
    body: dict[str, Any]

    @property
    def recorded(self) -> bool:
        return self.status_code == 200

    @property
    def duplicate(self) -> bool:
        return self.status_code == 409


class PurchaseRecorderProtocol(Protocol):
    def record_purchase(
        self,
        *,
        wallet_address: str,
        token_amount: Decimal,
        payment_amount: Decimal,
        transaction_hash: str,
        order_type: str,
    ) -> RecordingResult: ...


class PurchaseApiClient:
    """Calls the purchase recording endpoint on behalf of a paying wallet."""

    def __init__(self, base_url: str, timeout_s: float, max_retries: int, backoff_s: float) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    def record_purchase(
        self,
        *,
        wallet_address: str,
        token_amount: Decimal,
        payment_amount: Decimal,
        transaction_hash: str,
        order_type: str,
    ) -> RecordingResult:
        payload = {
            "walletAddress": wallet_address,
            "tokenAmount": str(token_amount),
            "paymentAmount": str(payment_amount),
            "transactionHash": transaction_hash,
            "orderType": order_type,
        }

        # Resubmitting is safe: the recorder rejects a known hash with 409.
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                with httpx.Client(timeout=self.timeout_s) as client:
                    response = client.post(f"{self.base_url}/api/v1/purchases", json=payload)

                if response.status_code >= 500 and attempt < self.max_retries:
                    raise IntegrationUnavailableError("purchase_api", "Recorder returned 5xx")
                try:
                    body = response.json()
                except ValueError as err:
                    raise IntegrationBadGatewayError(
                        "purchase_api", "Recorder returned malformed JSON"
                    ) from err
                return RecordingResult(status_code=response.status_code, body=body)
            except httpx.TimeoutException:
                integration_error = IntegrationTimeoutError("purchase_api")
            except httpx.TransportError as err:
                integration_error = IntegrationUnavailableError("purchase_api", str(err))
            except IntegrationUnavailableError as err:
                integration_error = err

            if attempt >= self.max_retries:
                raise integration_error
            time.sleep(self.backoff_s * (2**attempt))

        raise IntegrationUnavailableError("purchase_api")
