from dataclasses import dataclass

from fastapi import status


@dataclass
class SettlementError(Exception):
    code: str
    message: str
    retryable: bool = False
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


class ValidationError(SettlementError):
    def __init__(self, message: str) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class DuplicateTransactionError(SettlementError):
    def __init__(self, transaction_hash: str) -> None:
        super().__init__(
            code="DUPLICATE_TRANSACTION",
            message="Transaction already processed",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.transaction_hash = transaction_hash


class InsufficientBalanceError(SettlementError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            code="INSUFFICIENT_BALANCE",
            message="Insufficient distribution wallet balance",
            retryable=True,
        )
        self.required = required
        self.available = available


class TransferError(SettlementError):
    """A transfer was rejected, or submitted as `tx_hash` and never confirmed."""

    def __init__(self, message: str, retryable: bool = True, tx_hash: str | None = None) -> None:
        super().__init__(code="TRANSFER_ERROR", message=message, retryable=retryable)
        self.tx_hash = tx_hash


class PersistenceInconsistencyError(SettlementError):
    """Tokens moved on-chain but the order row could not be updated."""

    def __init__(self, tx_hash: str, message: str = "Failed to update order status") -> None:
        super().__init__(code="PERSISTENCE_INCONSISTENCY", message=message)
        self.tx_hash = tx_hash


class DistributionSetupError(SettlementError):
    def __init__(self, message: str) -> None:
        super().__init__(code="DISTRIBUTION_SETUP", message=message)


class DistributionBusyError(SettlementError):
    def __init__(self, message: str = "Another distribution batch is running") -> None:
        super().__init__(
            code="DISTRIBUTION_BUSY",
            message=message,
            retryable=True,
            status_code=status.HTTP_409_CONFLICT,
        )


class OrderNotFoundError(SettlementError):
    def __init__(self) -> None:
        super().__init__(
            code="ORDER_NOT_FOUND",
            message="Order not found",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class InvalidTransitionError(SettlementError):
    def __init__(self, message: str) -> None:
        super().__init__(
            code="INVALID_TRANSITION",
            message=message,
            status_code=status.HTTP_409_CONFLICT,
        )
