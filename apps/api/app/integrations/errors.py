"""Failures of outbound calls: ledger node, custodial signer, wallet, recorder API."""

from dataclasses import dataclass
from typing import Any


@dataclass
class IntegrationError(Exception):
    service: str
    code: str
    message: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.service}:{self.code}:{self.message}"

    def as_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "service": self.service}


class IntegrationTimeoutError(IntegrationError):
    def __init__(self, service: str, message: str = "Upstream timeout") -> None:
        super().__init__(service=service, code="TIMEOUT", message=message, retryable=True)


class IntegrationUnavailableError(IntegrationError):
    def __init__(self, service: str, message: str = "Upstream unavailable") -> None:
        super().__init__(service=service, code="UNAVAILABLE", message=message, retryable=True)


class IntegrationBadGatewayError(IntegrationError):
    def __init__(self, service: str, message: str = "Unexpected upstream response") -> None:
        super().__init__(service=service, code="BAD_GATEWAY", message=message)


class IntegrationRejectedError(IntegrationError):
    """The upstream understood the call and refused it, e.g. a JSON-RPC error or a revert."""

    def __init__(self, service: str, message: str = "Upstream rejected the request") -> None:
        super().__init__(service=service, code="REJECTED", message=message)
