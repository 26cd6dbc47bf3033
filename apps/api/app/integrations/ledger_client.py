"""Token-ledger collaborator: ERC-20 reads and custodial transfers over JSON-RPC.

Reads (``balanceOf``, ``decimals``, receipts) go to the ledger node. Transfers are
submitted through the custodial signer, which holds the distribution wallet's key
and signs ``eth_sendTransaction`` requests for that managed account. This service
never sees key material.
"""

from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Protocol

from app.config import missing_distribution_settings, settings
from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationError,
    IntegrationRejectedError,
)
from app.integrations.jsonrpc import JsonRpcTransport
from app.integrations.retry import RetryExhaustedError, RetryPolicy
from app.services.errors import DistributionSetupError

_BALANCE_OF_SELECTOR = "0x70a08231"
_DECIMALS_SELECTOR = "0x313ce567"
_TRANSFER_SELECTOR = "0xa9059cbb"


class TransferNotConfirmedError(IntegrationError):
    def __init__(self, tx_hash: str, attempts: int) -> None:
        super().__init__(
            service="ledger",
            code="NOT_CONFIRMED",
            message=f"Transfer {tx_hash} not confirmed after {attempts} receipt checks",
            retryable=True,
        )


@dataclass(frozen=True)
class TransferReceipt:
    tx_hash: str
    block_number: int
    succeeded: bool


class LedgerClientProtocol(Protocol):
    custodial_address: str

    def decimals(self) -> int: ...

    def balance_of(self, address: str) -> int: ...

    def transfer(self, recipient: str, amount: int) -> str: ...

    def wait_for_confirmation(self, tx_hash: str) -> TransferReceipt: ...


def parse_units(amount: Decimal, decimals: int) -> int:
    """Convert a decimal token amount into integer base units."""
    with localcontext() as ctx:
        ctx.prec = 96
        scaled = Decimal(amount).scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{amount} has more than {decimals} fractional digits")
        return int(scaled)


def format_units(value: int, decimals: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 96
        return Decimal(value).scaleb(-decimals)


def _encode_address(address: str) -> str:
    body = address.lower().removeprefix("0x")
    if len(body) != 40:
        raise ValueError(f"Invalid address: {address}")
    return body.rjust(64, "0")


def _encode_uint(value: int) -> str:
    if value < 0:
        raise ValueError("uint256 cannot be negative")
    return format(value, "x").rjust(64, "0")


def _hex_to_int(value: object) -> int:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise IntegrationBadGatewayError("ledger", f"Expected hex quantity, got {value!r}")
    return int(value, 16) if len(value) > 2 else 0


class JsonRpcLedgerClient:
    def __init__(
        self,
        rpc: JsonRpcTransport,
        signer: JsonRpcTransport,
        token_contract: str,
        custodial_address: str,
        confirmation_policy: RetryPolicy,
    ) -> None:
        self.rpc = rpc
        self.signer = signer
        self.token_contract = token_contract.lower()
        self.custodial_address = custodial_address.lower()
        self.confirmation_policy = confirmation_policy
        self._decimals: int | None = None

    def _eth_call(self, data: str) -> int:
        result = self.rpc.call("eth_call", [{"to": self.token_contract, "data": data}, "latest"])
        return _hex_to_int(result)

    def decimals(self) -> int:
        if self._decimals is None:
            self._decimals = self._eth_call(_DECIMALS_SELECTOR)
        return self._decimals

    def balance_of(self, address: str) -> int:
        return self._eth_call(_BALANCE_OF_SELECTOR + _encode_address(address))

    def transfer(self, recipient: str, amount: int) -> str:
        data = _TRANSFER_SELECTOR + _encode_address(recipient) + _encode_uint(amount)
        # Never retried: a timed-out submission may still have been broadcast.
        tx_hash = self.signer.call(
            "eth_sendTransaction",
            [{"from": self.custodial_address, "to": self.token_contract, "data": data}],
            retry=False,
        )
        if not isinstance(tx_hash, str) or not tx_hash.startswith("0x"):
            raise IntegrationBadGatewayError("custodial_signer", "Signer returned no transaction hash")
        return tx_hash.lower()

    def _receipt(self, tx_hash: str) -> TransferReceipt | None:
        receipt = self.rpc.call("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            return None
        if not isinstance(receipt, dict):
            raise IntegrationBadGatewayError("ledger", "Malformed transaction receipt")
        return TransferReceipt(
            tx_hash=tx_hash,
            block_number=_hex_to_int(receipt.get("blockNumber")),
            succeeded=_hex_to_int(receipt.get("status", "0x1")) == 1,
        )

    def wait_for_confirmation(self, tx_hash: str) -> TransferReceipt:
        try:
            receipt = self.confirmation_policy.poll(lambda: self._receipt(tx_hash))
        except RetryExhaustedError as err:
            raise TransferNotConfirmedError(tx_hash, err.attempts) from err
        if not receipt.succeeded:
            raise IntegrationRejectedError("ledger", f"Transfer {tx_hash} reverted on-chain")
        return receipt


def confirmation_policy_from_settings() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.confirmation_max_attempts,
        initial_delay_s=settings.confirmation_initial_delay_s,
        multiplier=settings.confirmation_backoff_multiplier,
        max_delay_s=settings.confirmation_max_delay_s,
    )


def get_ledger_client() -> LedgerClientProtocol:
    missing = missing_distribution_settings()
    if missing:
        raise DistributionSetupError(
            "Distribution is not configured: missing " + ", ".join(missing)
        )
    return JsonRpcLedgerClient(
        rpc=JsonRpcTransport(
            "ledger",
            settings.ledger_rpc_url,
            timeout_s=settings.ledger_timeout_s,
            max_retries=settings.ledger_max_retries,
            backoff_s=settings.ledger_backoff_s,
        ),
        signer=JsonRpcTransport(
            "custodial_signer",
            settings.custodial_signer_url,
            timeout_s=settings.ledger_timeout_s,
            max_retries=settings.ledger_max_retries,
            backoff_s=settings.ledger_backoff_s,
        ),
        token_contract=settings.token_contract_address,
        custodial_address=settings.distribution_wallet_address,
        confirmation_policy=confirmation_policy_from_settings(),
    )
