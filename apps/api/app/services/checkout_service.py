"""Purchaser checkout: pay the presale wallet, then record the purchase.

The payment is final once confirmed on-chain, so a recording failure after that
point is never reported as a failed purchase.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from app.integrations.errors import IntegrationError
from app.integrations.ledger_client import TransferReceipt, parse_units
from app.integrations.purchase_api_client import PurchaseRecorderProtocol
from app.integrations.wallet_signer import WalletSession
from app.models.token_order import OrderType
from app.observability import log_event
from app.services.errors import ValidationError

NATIVE_DECIMALS = 18

MESSAGE_RECORDED = "Purchase recorded. Tokens will be distributed shortly."
MESSAGE_ALREADY_RECORDED = "Transaction already processed. Tokens will be distributed shortly."
MESSAGE_RECORDING_DEFERRED = (
    "Payment confirmed, but the purchase could not be recorded yet. "
    "Keep the transaction hash; tokens will follow once it is recorded."
)


class ConfirmationWaiterProtocol(Protocol):
    def wait_for_confirmation(self, tx_hash: str) -> TransferReceipt: ...


@dataclass(frozen=True)
class CheckoutResult:
    payment_tx_hash: str
    token_amount: Decimal
    payment_amount: Decimal
    recorded: bool
    message: str


def quote_payment(token_amount: Decimal, price_native: Decimal) -> Decimal:
    if token_amount <= 0:
        raise ValidationError("Invalid amounts")
    return (token_amount * price_native).normalize()


def buy_tokens(
    session: WalletSession,
    token_amount: Decimal,
    *,
    recorder: PurchaseRecorderProtocol,
    confirmations: ConfirmationWaiterProtocol,
    presale_wallet: str,
    price_native: Decimal,
    chain_id: int,
) -> CheckoutResult:
    if not presale_wallet:
        raise ValidationError("Presale wallet is not configured")

    if session.chain_id != chain_id:
        session.signer.switch_network(chain_id)
        if session.refresh_chain() != chain_id:
            raise ValidationError(f"Wallet is on chain {session.chain_id}, expected {chain_id}")

    payment_amount = quote_payment(token_amount, price_native)
    try:
        amount_wei = parse_units(payment_amount, NATIVE_DECIMALS)
    except ValueError as err:
        raise ValidationError(f"Payment amount {payment_amount} is finer than 1 wei") from err

    tx_hash = session.signer.send_payment(presale_wallet, amount_wei)
    confirmations.wait_for_confirmation(tx_hash)
    log_event("checkout_payment_confirmed", wallet_address=session.address, tx_hash=tx_hash)

    try:
        result = recorder.record_purchase(
            wallet_address=session.address,
            token_amount=token_amount,
            payment_amount=payment_amount,
            transaction_hash=tx_hash,
            order_type=OrderType.BUY.value,
        )
    except IntegrationError as err:
        log_event(
            "checkout_recording_unavailable",
            level=logging.WARNING,
            wallet_address=session.address,
            tx_hash=tx_hash,
            detail=str(err),
        )
        return CheckoutResult(tx_hash, token_amount, payment_amount, False, MESSAGE_RECORDING_DEFERRED)

    if result.recorded:
        return CheckoutResult(tx_hash, token_amount, payment_amount, True, MESSAGE_RECORDED)
    if result.duplicate:
        return CheckoutResult(tx_hash, token_amount, payment_amount, True, MESSAGE_ALREADY_RECORDED)

    log_event(
        "checkout_recording_rejected",
        level=logging.WARNING,
        wallet_address=session.address,
        tx_hash=tx_hash,
        detail=f"status={result.status_code} body={result.body}",
    )
    return CheckoutResult(tx_hash, token_amount, payment_amount, False, MESSAGE_RECORDING_DEFERRED)
