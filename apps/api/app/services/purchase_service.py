"""Purchase recorder: turns a confirmed on-chain payment into exactly one order row.

The recorder moves no funds. It only records a claim; settlement happens in the
distribution batch, which runs with the custodial signer the client never sees.
"""

import re
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.order_event import OrderEventType
from app.models.token_order import OrderStatus, OrderType, TokenOrder
from app.observability import log_event, metrics_store
from app.services.errors import DuplicateTransactionError, ValidationError
from app.services.order_events import append_order_event

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-f]{40}$")
TRANSACTION_HASH_MAX_LENGTH = 128
# token_orders amounts are Numeric(36, 18).
AMOUNT_MAX_FRACTION_DIGITS = 18
AMOUNT_MAX_INTEGER_DIGITS = 18


def normalize_address(value: str) -> str:
    return value.strip().lower()


def normalize_transaction_hash(value: str) -> str:
    return value.strip().lower()


def _reject(message: str) -> ValidationError:
    metrics_store.increment("purchase_validation_rejected_total")
    return ValidationError(message)


def _positive_decimal(value: object, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as err:
        raise _reject(f"Invalid {field}") from err
    if not amount.is_finite() or amount <= 0:
        raise _reject("Invalid amounts")
    exponent = amount.normalize().as_tuple().exponent
    if -exponent > AMOUNT_MAX_FRACTION_DIGITS:
        raise _reject(f"{field} supports at most {AMOUNT_MAX_FRACTION_DIGITS} decimal places")
    if amount.adjusted() + 1 > AMOUNT_MAX_INTEGER_DIGITS:
        raise _reject(f"{field} is too large")
    return amount


def _parse_order_type(value: object) -> OrderType:
    if isinstance(value, OrderType):
        return value
    try:
        return OrderType(str(value).strip().lower())
    except ValueError as err:
        raise _reject("orderType must be 'buy' or 'sell'") from err


def find_by_transaction_hash(db: Session, transaction_hash: str) -> TokenOrder | None:
    tx_hash = normalize_transaction_hash(transaction_hash)
    return db.scalar(
        select(TokenOrder).where(
            or_(
                TokenOrder.payment_transaction_hash == tx_hash,
                TokenOrder.transaction_hash == tx_hash,
            )
        )
    )


def record_purchase(
    db: Session,
    *,
    wallet_address: str | None,
    token_amount: object,
    payment_amount: object,
    transaction_hash: str | None,
    order_type: object = OrderType.BUY,
) -> TokenOrder:
    if not wallet_address or token_amount is None or payment_amount is None or not transaction_hash:
        raise _reject("Missing required fields")

    address = normalize_address(wallet_address)
    if not _ADDRESS_PATTERN.match(address):
        raise _reject("Invalid wallet address")

    tx_hash = normalize_transaction_hash(transaction_hash)
    if not tx_hash or len(tx_hash) > TRANSACTION_HASH_MAX_LENGTH:
        raise _reject("Invalid transaction hash")

    tokens = _positive_decimal(token_amount, "tokenAmount")
    payment = _positive_decimal(payment_amount, "paymentAmount")
    kind = _parse_order_type(order_type or OrderType.BUY)

    if find_by_transaction_hash(db, tx_hash) is not None:
        metrics_store.increment("purchase_duplicate_rejected_total")
        raise DuplicateTransactionError(tx_hash)

    order = TokenOrder(
        wallet_address=address,
        order_type=kind,
        token_amount=tokens,
        payment_amount=payment,
        payment_currency=settings.payment_currency,
        transaction_hash=tx_hash,
        payment_transaction_hash=tx_hash,
        status=OrderStatus.AWAITING_DISTRIBUTION,
        liquidity_added=False,
        distribution_attempts=0,
    )
    db.add(order)
    try:
        db.flush()
        append_order_event(db, order, OrderEventType.INSERT)
        db.commit()
    except IntegrityError as err:
        # A concurrent recorder won the unique constraint on the hash.
        db.rollback()
        if find_by_transaction_hash(db, tx_hash) is None:
            raise
        metrics_store.increment("purchase_duplicate_rejected_total")
        raise DuplicateTransactionError(tx_hash) from err
    except SQLAlchemyError:
        db.rollback()
        metrics_store.increment("purchase_store_failed_total")
        raise

    db.refresh(order)
    metrics_store.increment("purchase_recorded_total")
    log_event(
        "purchase_recorded",
        order_id=str(order.id),
        wallet_address=address,
        tx_hash=tx_hash,
    )
    return order
