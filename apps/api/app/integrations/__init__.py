from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationError,
    IntegrationRejectedError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)
from app.integrations.retry import RetryExhaustedError, RetryPolicy

__all__ = [
    "IntegrationError",
    "IntegrationTimeoutError",
    "IntegrationUnavailableError",
    "IntegrationBadGatewayError",
    "IntegrationRejectedError",
    "RetryPolicy",
    "RetryExhaustedError",
]
