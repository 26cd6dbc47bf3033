"""Distribution batch: settle recorded buy orders with custodial token transfers.

Orders are handled one at a time. The custodial wallet has a single transaction
sequence, so only one transfer may be in flight. A failure on one order is
recorded on that order and the batch moves on.

Before a transfer the order is claimed with the batch's lease holder id. The
claim is cleared when the outcome is recorded, so a batch that takes over an
expired lease never sees an order whose transfer is still in flight. A claim
left behind by a crashed batch is released with an admin requeue.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.integrations.errors import IntegrationError
from app.integrations.ledger_client import LedgerClientProtocol, parse_units
from app.models.order_event import OrderEventType
from app.models.token_order import OrderStatus, OrderType, TokenOrder
from app.observability import log_event, metrics_store, observe_timing
from app.services.distribution_lease_service import LeaseHandle, distribution_lease, renew_lease
from app.services.errors import (
    DistributionBusyError,
    InsufficientBalanceError,
    PersistenceInconsistencyError,
    TransferError,
)
from app.services.order_events import append_order_event
from app.services.state_machine import ensure_valid_transition

MESSAGE_ORDER_CLAIMED = "Order is already being distributed by another batch"
MESSAGE_INVALID_AMOUNT = "Order token amount must be positive"


@dataclass
class DistributionOutcome:
    order_id: uuid.UUID
    success: bool
    tx_hash: str | None = None
    error: str | None = None


@dataclass
class DistributionReport:
    processed: int = 0
    total: int = 0
    results: list[DistributionOutcome] = field(default_factory=list)


def select_pending_orders(db: Session, limit: int) -> list[TokenOrder]:
    query = (
        select(TokenOrder)
        .where(
            TokenOrder.order_type == OrderType.BUY,
            TokenOrder.status == OrderStatus.AWAITING_DISTRIBUTION,
            TokenOrder.distribution_claim.is_(None),
        )
        .order_by(TokenOrder.created_at.asc(), TokenOrder.id.asc())
        .limit(limit)
    )
    return list(db.scalars(query))


def _claim_order(db: Session, order: TokenOrder, holder: str) -> bool:
    result = db.execute(
        update(TokenOrder)
        .where(
            TokenOrder.id == order.id,
            TokenOrder.status == OrderStatus.AWAITING_DISTRIBUTION,
            TokenOrder.distribution_claim.is_(None),
        )
        .values(distribution_claim=holder, distribution_claimed_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(order)
    return result.rowcount == 1


def _clear_claim(order: TokenOrder) -> None:
    order.distribution_claim = None
    order.distribution_claimed_at = None


def _send_tokens(ledger: LedgerClientProtocol, order: TokenOrder, amount: int) -> str:
    try:
        tx_hash = ledger.transfer(order.wallet_address, amount)
    except IntegrationError as err:
        raise TransferError(err.message, retryable=err.retryable) from err
    try:
        ledger.wait_for_confirmation(tx_hash)
    except IntegrationError as err:
        raise TransferError(err.message, retryable=err.retryable, tx_hash=tx_hash) from err
    return tx_hash


def _mark_fulfilled(db: Session, order: TokenOrder, tx_hash: str) -> None:
    ensure_valid_transition(order.status, OrderStatus.FULFILLED)
    try:
        order.status = OrderStatus.FULFILLED
        order.fulfilled_at = datetime.now(timezone.utc)
        order.transaction_hash = tx_hash
        order.last_error = None
        _clear_claim(order)
        db.flush()
        append_order_event(db, order, OrderEventType.UPDATE)
        db.commit()
    except SQLAlchemyError as err:
        # The claim stays committed, so no later batch re-sends these tokens.
        db.rollback()
        raise PersistenceInconsistencyError(tx_hash) from err


def _record_transfer_failure(db: Session, order: TokenOrder, message: str) -> None:
    order_id = order.id
    order.distribution_attempts += 1
    order.last_error = message
    _clear_claim(order)
    if order.distribution_attempts >= settings.distribution_max_attempts:
        ensure_valid_transition(order.status, OrderStatus.FAILED)
        order.status = OrderStatus.FAILED
        metrics_store.increment("distribution_orders_failed_total")
    try:
        db.flush()
        append_order_event(db, order, OrderEventType.UPDATE)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        log_event(
            "distribution_failure_not_recorded",
            level=logging.ERROR,
            order_id=str(order_id),
            detail=message,
        )


def _distribute_order(
    db: Session, ledger: LedgerClientProtocol, order: TokenOrder, lease: LeaseHandle
) -> DistributionOutcome:
    order_id = order.id
    try:
        amount = parse_units(order.token_amount, ledger.decimals())
    except ValueError as err:
        return DistributionOutcome(order_id=order_id, success=False, error=str(err))
    if amount <= 0:
        log_event(
            "distribution_invalid_amount",
            level=logging.ERROR,
            order_id=str(order_id),
            detail=f"token_amount={order.token_amount}",
        )
        return DistributionOutcome(order_id=order_id, success=False, error=MESSAGE_INVALID_AMOUNT)

    available = ledger.balance_of(ledger.custodial_address)
    if available < amount:
        shortfall = InsufficientBalanceError(required=amount, available=available)
        metrics_store.increment("distribution_insufficient_balance_total")
        log_event(
            "distribution_insufficient_balance",
            level=logging.WARNING,
            order_id=str(order_id),
            wallet_address=order.wallet_address,
            detail=f"required={amount} available={available}",
        )
        return DistributionOutcome(order_id=order_id, success=False, error=shortfall.message)

    if not _claim_order(db, order, lease.holder):
        metrics_store.increment("distribution_order_claim_conflict_total")
        log_event("distribution_order_already_claimed", level=logging.WARNING, order_id=str(order_id))
        return DistributionOutcome(order_id=order_id, success=False, error=MESSAGE_ORDER_CLAIMED)

    tx_hash = _send_tokens(ledger, order, amount)
    try:
        _mark_fulfilled(db, order, tx_hash)
    except PersistenceInconsistencyError as err:
        metrics_store.increment("distribution_persistence_inconsistency_total")
        log_event(
            "distribution_persistence_inconsistency",
            level=logging.CRITICAL,
            order_id=str(order_id),
            tx_hash=tx_hash,
            detail="tokens transferred but order row not updated; reconcile manually",
        )
        return DistributionOutcome(order_id=order_id, success=False, tx_hash=tx_hash, error=err.message)

    metrics_store.increment("distribution_orders_fulfilled_total")
    log_event(
        "distribution_order_fulfilled",
        order_id=str(order_id),
        wallet_address=order.wallet_address,
        tx_hash=tx_hash,
    )
    return DistributionOutcome(order_id=order_id, success=True, tx_hash=tx_hash)


def run_distribution_batch(
    db: Session,
    ledger: LedgerClientProtocol,
    batch_size: int | None = None,
) -> DistributionReport:
    limit = batch_size or settings.distribution_batch_size
    report = DistributionReport()

    with distribution_lease(db) as lease, observe_timing("distribution_batch_duration_s"):
        orders = select_pending_orders(db, limit)
        report.total = len(orders)
        for order in orders:
            try:
                renew_lease(db, lease)
            except DistributionBusyError as err:
                log_event(
                    "distribution_lease_lost",
                    level=logging.ERROR,
                    detail=f"{err.message}; stopped after {len(report.results)} of {report.total} orders",
                )
                break
            order_id = order.id
            try:
                outcome = _distribute_order(db, ledger, order, lease)
            except TransferError as err:
                _record_transfer_failure(db, order, err.message)
                log_event(
                    "distribution_transfer_failed",
                    level=logging.WARNING,
                    order_id=str(order_id),
                    tx_hash=err.tx_hash,
                    detail=err.message,
                )
                outcome = DistributionOutcome(
                    order_id=order_id, success=False, tx_hash=err.tx_hash, error=err.message
                )
            except IntegrationError as err:
                # Ledger reads failed before any transfer; nothing to record on the row.
                log_event(
                    "distribution_ledger_unavailable",
                    level=logging.WARNING,
                    order_id=str(order_id),
                    detail=str(err),
                )
                outcome = DistributionOutcome(order_id=order_id, success=False, error=err.message)
            except Exception as err:
                db.rollback()
                log_event(
                    "distribution_order_crashed",
                    level=logging.ERROR,
                    order_id=str(order_id),
                    detail=f"{type(err).__name__}: {err}",
                )
                outcome = DistributionOutcome(order_id=order_id, success=False, error=str(err))
            if outcome.success:
                report.processed += 1
            report.results.append(outcome)

    metrics_store.increment("distribution_batches_total")
    log_event(
        "distribution_batch_completed",
        detail=f"processed={report.processed} total={report.total}",
    )
    return report
