from decimal import Decimal

import httpx
import pytest

from app.config import settings
from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationRejectedError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
)
from app.integrations.jsonrpc import JsonRpcTransport
from app.integrations.ledger_client import (
    JsonRpcLedgerClient,
    TransferNotConfirmedError,
    format_units,
    get_ledger_client,
    parse_units,
)
from app.integrations.retry import RetryPolicy
from app.services.errors import DistributionSetupError

TOKEN = "0x" + "1" * 40
CUSTODIAL = "0x" + "C" * 40
RECIPIENT = "0x" + "2" * 40


class _Response:
    def __init__(self, status_code: int, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _ClientStub:
    def __init__(self, post_sequence, sent=None):
        self._post_sequence = post_sequence
        self.sent = sent if sent is not None else []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def post(self, _url, json):
        self.sent.append(json)
        value = self._post_sequence.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


class _FakeTransport:
    def __init__(self, responses: dict[str, list]):
        self.responses = responses
        self.calls: list[tuple[str, list, bool]] = []

    def call(self, method, params=None, *, retry=True):
        self.calls.append((method, params or [], retry))
        value = self.responses[method].pop(0)
        if isinstance(value, Exception):
            raise value
        return value


def _ledger(rpc_responses, signer_responses=None, policy=None):
    rpc = _FakeTransport(rpc_responses)
    signer = _FakeTransport(signer_responses or {})
    client = JsonRpcLedgerClient(
        rpc=rpc,
        signer=signer,
        token_contract=TOKEN,
        custodial_address=CUSTODIAL,
        confirmation_policy=policy or RetryPolicy.fixed(max_attempts=3, delay_s=0),
    )
    return client, rpc, signer


def test_parse_and_format_units():
    assert parse_units(Decimal("1000"), 18) == 1000 * 10**18
    assert parse_units(Decimal("0.5"), 6) == 500_000
    assert format_units(1_500_000, 6) == Decimal("1.5")


def test_parse_units_rejects_excess_precision():
    with pytest.raises(ValueError, match="fractional digits"):
        parse_units(Decimal("1.0001"), 3)


def test_balance_of_encodes_address_argument():
    client, rpc, _ = _ledger({"eth_call": [hex(42)]})

    assert client.balance_of(CUSTODIAL) == 42
    method, params, _retry = rpc.calls[0]
    assert method == "eth_call"
    assert params[0]["to"] == TOKEN
    assert params[0]["data"] == "0x70a08231" + "0" * 24 + "c" * 40


def test_decimals_is_cached():
    client, rpc, _ = _ledger({"eth_call": ["0x12"]})

    assert client.decimals() == 18
    assert client.decimals() == 18
    assert len(rpc.calls) == 1


def test_transfer_goes_through_signer_without_retry():
    tx_hash = "0x" + "AB" * 32
    client, _, signer = _ledger({}, {"eth_sendTransaction": [tx_hash]})

    assert client.transfer(RECIPIENT, 255) == tx_hash.lower()
    method, params, retry = signer.calls[0]
    assert method == "eth_sendTransaction"
    assert retry is False
    assert params[0]["from"] == CUSTODIAL.lower()
    assert params[0]["to"] == TOKEN
    assert params[0]["data"] == "0xa9059cbb" + "0" * 24 + "2" * 40 + "0" * 62 + "ff"


def test_transfer_without_hash_is_bad_gateway():
    client, _, _ = _ledger({}, {"eth_sendTransaction": [None]})

    with pytest.raises(IntegrationBadGatewayError):
        client.transfer(RECIPIENT, 1)


def test_wait_for_confirmation_polls_until_receipt():
    receipt = {"blockNumber": "0x10", "status": "0x1"}
    client, rpc, _ = _ledger({"eth_getTransactionReceipt": [None, None, receipt]})

    result = client.wait_for_confirmation("0xfeed")

    assert result.block_number == 16
    assert result.succeeded is True
    assert len(rpc.calls) == 3


def test_wait_for_confirmation_is_bounded():
    client, _, _ = _ledger({"eth_getTransactionReceipt": [None, None, None]})

    with pytest.raises(TransferNotConfirmedError) as exc_info:
        client.wait_for_confirmation("0xfeed")
    assert exc_info.value.retryable is True


def test_reverted_transfer_is_rejected():
    client, _, _ = _ledger(
        {"eth_getTransactionReceipt": [{"blockNumber": "0x10", "status": "0x0"}]}
    )

    with pytest.raises(IntegrationRejectedError, match="reverted"):
        client.wait_for_confirmation("0xfeed")


def test_get_ledger_client_requires_distribution_settings(monkeypatch):
    monkeypatch.setattr(settings, "ledger_rpc_url", "")
    monkeypatch.setattr(settings, "custodial_signer_url", "http://signer")
    monkeypatch.setattr(settings, "token_contract_address", TOKEN)
    monkeypatch.setattr(settings, "distribution_wallet_address", "")

    with pytest.raises(DistributionSetupError) as exc_info:
        get_ledger_client()

    assert "LEDGER_RPC_URL" in exc_info.value.message
    assert "DISTRIBUTION_WALLET_ADDRESS" in exc_info.value.message
    assert "CUSTODIAL_SIGNER_URL" not in exc_info.value.message
    assert exc_info.value.status_code == 500


def test_get_ledger_client_builds_client_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "ledger_rpc_url", "http://node")
    monkeypatch.setattr(settings, "custodial_signer_url", "http://signer")
    monkeypatch.setattr(settings, "token_contract_address", TOKEN)
    monkeypatch.setattr(settings, "distribution_wallet_address", CUSTODIAL)

    client = get_ledger_client()

    assert isinstance(client, JsonRpcLedgerClient)
    assert client.custodial_address == CUSTODIAL.lower()


def test_transport_retries_timeout_then_succeeds(monkeypatch):
    sequence = [
        httpx.ReadTimeout("timeout"),
        _Response(200, {"jsonrpc": "2.0", "id": 2, "result": "0x1"}),
    ]
    monkeypatch.setattr(
        "app.integrations.jsonrpc.httpx.Client",
        lambda timeout: _ClientStub(sequence),
    )

    transport = JsonRpcTransport("ledger", "http://node", timeout_s=0.1, max_retries=2, backoff_s=0)
    assert transport.call("eth_chainId") == "0x1"


def test_transport_does_not_retry_when_disabled(monkeypatch):
    sequence = [httpx.ReadTimeout("timeout"), _Response(200, {"result": "0x1"})]
    monkeypatch.setattr(
        "app.integrations.jsonrpc.httpx.Client",
        lambda timeout: _ClientStub(sequence),
    )

    transport = JsonRpcTransport("signer", "http://signer", timeout_s=0.1, max_retries=2, backoff_s=0)
    with pytest.raises(IntegrationTimeoutError):
        transport.call("eth_sendTransaction", [{}], retry=False)
    assert len(sequence) == 1


def test_transport_maps_rpc_error_to_rejected(monkeypatch):
    sent: list[dict] = []
    sequence = [_Response(200, {"error": {"code": -32000, "message": "insufficient funds"}})]
    monkeypatch.setattr(
        "app.integrations.jsonrpc.httpx.Client",
        lambda timeout: _ClientStub(sequence, sent),
    )

    transport = JsonRpcTransport("ledger", "http://node", timeout_s=0.1, max_retries=0, backoff_s=0)
    with pytest.raises(IntegrationRejectedError, match="insufficient funds"):
        transport.call("eth_call", [{"to": TOKEN}])
    assert sent[0]["jsonrpc"] == "2.0"
    assert sent[0]["method"] == "eth_call"


def test_transport_maps_status_codes(monkeypatch):
    sequence = [_Response(404, {}), _Response(503, {})]
    monkeypatch.setattr(
        "app.integrations.jsonrpc.httpx.Client",
        lambda timeout: _ClientStub(sequence),
    )

    transport = JsonRpcTransport("ledger", "http://node", timeout_s=0.1, max_retries=0, backoff_s=0)
    with pytest.raises(IntegrationBadGatewayError):
        transport.call("eth_call")
    with pytest.raises(IntegrationUnavailableError):
        transport.call("eth_call")


def test_transport_requires_url():
    transport = JsonRpcTransport("ledger", "", timeout_s=0.1, max_retries=0, backoff_s=0)

    with pytest.raises(IntegrationUnavailableError):
        transport.call("eth_call")
