"""Purchaser-side wallet collaborator.

The connected account is carried by an explicit ``WalletSession`` owned by the
caller; nothing here keeps a process-wide "current account".
"""

from dataclasses import dataclass
from typing import Protocol

from app.integrations.errors import IntegrationBadGatewayError
from app.integrations.jsonrpc import JsonRpcTransport


class WalletSignerProtocol(Protocol):
    def request_accounts(self) -> list[str]: ...

    def chain_id(self) -> int: ...

    def send_payment(self, to: str, amount_wei: int) -> str: ...

    def switch_network(self, chain_id: int) -> None: ...


@dataclass
class WalletSession:
    address: str
    chain_id: int
    signer: WalletSignerProtocol

    def refresh_chain(self) -> int:
        self.chain_id = self.signer.chain_id()
        return self.chain_id


def connect_wallet(signer: WalletSignerProtocol) -> WalletSession:
    accounts = signer.request_accounts()
    if not accounts:
        raise IntegrationBadGatewayError("wallet", "Wallet returned no accounts")
    return WalletSession(address=accounts[0].lower(), chain_id=signer.chain_id(), signer=signer)


class JsonRpcWalletSigner:
    """EIP-1193 style wallet reached over JSON-RPC."""

    def __init__(self, transport: JsonRpcTransport) -> None:
        self.transport = transport
        self._from: str | None = None

    def request_accounts(self) -> list[str]:
        accounts = self.transport.call("eth_requestAccounts")
        if not isinstance(accounts, list):
            raise IntegrationBadGatewayError("wallet", "Malformed account list")
        accounts = [str(account).lower() for account in accounts]
        if accounts:
            self._from = accounts[0]
        return accounts

    def chain_id(self) -> int:
        value = self.transport.call("eth_chainId")
        if not isinstance(value, str) or not value.startswith("0x"):
            raise IntegrationBadGatewayError("wallet", f"Malformed chain id {value!r}")
        return int(value, 16)

    def send_payment(self, to: str, amount_wei: int) -> str:
        tx: dict[str, str] = {"to": to.lower(), "value": hex(amount_wei)}
        if self._from:
            tx["from"] = self._from
        tx_hash = self.transport.call("eth_sendTransaction", [tx], retry=False)
        if not isinstance(tx_hash, str) or not tx_hash.startswith("0x"):
            raise IntegrationBadGatewayError("wallet", "Wallet returned no transaction hash")
        return tx_hash.lower()

    def switch_network(self, chain_id: int) -> None:
        self.transport.call("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}], retry=False)
