import pytest

from app.config import settings
from app.integrations.ledger_client import get_ledger_client
from app.main import app

TOKEN_UNIT = 10**18


def _wallet(n: int) -> str:
    return "0x" + f"{n:040x}"


def _purchase(client, n: int, token_amount: str = "1000"):
    response = client.post(
        "/api/v1/purchases",
        json={
            "walletAddress": _wallet(n),
            "tokenAmount": token_amount,
            "paymentAmount": "0.01",
            "transactionHash": f"0xpay{n}",
            "orderType": "buy",
        },
    )
    assert response.status_code == 200
    return response.json()["order"]


@pytest.fixture
def ledger_override(fake_ledger):
    app.dependency_overrides[get_ledger_client] = lambda: fake_ledger
    yield fake_ledger
    app.dependency_overrides.pop(get_ledger_client, None)


def test_distribution_requires_backoffice_role(client):
    assert client.post("/api/v1/distribution/run").status_code == 401


def test_distribution_reports_missing_configuration(client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "ledger_rpc_url", "")

    response = client.post("/api/v1/distribution/run", headers=auth_headers["ops"])

    assert response.status_code == 500
    assert response.json()["code"] == "DISTRIBUTION_SETUP"
    assert "LEDGER_RPC_URL" in response.json()["error"]


def test_scenario_purchase_then_distribution(client, auth_headers, ledger_override):
    order = _purchase(client, 1)

    response = client.post("/api/v1/distribution/run", headers=auth_headers["ops"])

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["processed"] == 1
    assert body["total"] == 1
    result = body["results"][0]
    assert result["orderId"] == order["id"]
    assert result["success"] is True
    assert result["txHash"].startswith("0x")

    detail = client.get(f"/api/v1/orders/{order['id']}", headers=auth_headers["ops"]).json()
    assert detail["status"] == "fulfilled"
    assert detail["fulfilled_at"] is not None
    assert detail["transaction_hash"] == result["txHash"]
    assert ledger_override.balance_of(ledger_override.custodial_address) == 4000 * TOKEN_UNIT


def test_insufficient_balance_is_reported_per_order(client, auth_headers, ledger_override):
    order = _purchase(client, 1, token_amount="6000")

    body = client.post("/api/v1/distribution/run", headers=auth_headers["admin"]).json()

    assert body["processed"] == 0
    assert body["total"] == 1
    assert body["results"] == [
        {
            "orderId": order["id"],
            "success": False,
            "txHash": None,
            "error": "Insufficient distribution wallet balance",
        }
    ]


def test_batch_size_is_honoured(client, auth_headers, ledger_override):
    for n in range(1, 4):
        _purchase(client, n, token_amount="1")

    body = client.post(
        "/api/v1/distribution/run", json={"batch_size": 2}, headers=auth_headers["ops"]
    ).json()

    assert body["total"] == 2


def test_empty_run_returns_zero_counts(client, auth_headers, ledger_override):
    body = client.post("/api/v1/distribution/run", headers=auth_headers["ops"]).json()

    assert body == {"success": True, "processed": 0, "total": 0, "results": []}


def test_invalid_batch_size_is_400(client, auth_headers, ledger_override):
    response = client.post(
        "/api/v1/distribution/run", json={"batch_size": 0}, headers=auth_headers["ops"]
    )

    assert response.status_code == 400
