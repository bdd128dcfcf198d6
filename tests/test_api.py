import pytest
from fastapi.testclient import TestClient

from stakechain.ledger.rpc import api
from stakechain.ledger.core.ledger import Ledger
from stakechain.protocol.config.params import NETWORKS
from stakechain.protocol.types.common import TxType

from helpers import DAY, Wallet, write_genesis

FUNDS = 5_000_000


@pytest.fixture
def admin():
    return Wallet()


@pytest.fixture
def node(tmp_path, clock, bus, admin):
    write_genesis(tmp_path, admin=admin.address, genesis_time=clock.now, alloc={admin.address: FUNDS})
    ledger = Ledger(str(tmp_path / "ledger.db"), config=NETWORKS["devnet"], clock=clock, events=bus)
    api.ledger = ledger
    yield ledger
    api.ledger = None
    ledger.close()


@pytest.fixture
def client(node):
    return TestClient(api.app)


def send(client, wallet, tx_type, **fields):
    resp = client.post("/tx/send", json=wallet.tx(tx_type, **fields).model_dump(mode="json"))
    assert resp.status_code == 200
    body = resp.json()
    if body["status"] == "committed":
        wallet.nonce += 1
    return body


def test_uninitialized_node_returns_503():
    api.ledger = None
    client = TestClient(api.app)
    assert client.get("/status").status_code == 503


def test_status(client, clock):
    data = client.get("/status").json()
    assert data["network"] == "devnet"
    assert data["pool_initialized"] is True
    assert data["positions"] == 0
    assert data["time"] == clock.now


def test_pool_and_balance(client, admin):
    pool = client.get("/pool").json()
    assert pool["admin"] == admin.address
    assert pool["reserve"] == "0"
    assert pool["daily_reward_rate_bps"] == 10

    bal = client.get(f"/balance/{admin.address}").json()
    assert bal["balance"] == str(FUNDS)
    assert bal["nonce"] == 0


def test_pool_missing(tmp_path, clock, bus):
    ledger = Ledger(str(tmp_path / "bare.db"), config=NETWORKS["devnet"], clock=clock, events=bus)
    api.ledger = ledger
    try:
        assert TestClient(api.app).get("/pool").status_code == 404
    finally:
        api.ledger = None
        ledger.close()


def test_stake_claim_close_over_rpc(client, clock, admin):
    body = send(client, admin, TxType.DEPOSIT_RESERVE, amount=100_000)
    assert body["status"] == "committed"
    assert body["result"]["reserve"] == 100_000

    body = send(client, admin, TxType.OPEN_POSITION, amount=1_000_000)
    pos_id = body["result"]["id"]

    pos = client.get(f"/position/{pos_id}").json()
    assert pos["principal"] == 1_000_000
    assert pos["active"] is True

    listing = client.get(f"/positions/{admin.address}").json()
    assert [p["id"] for p in listing["positions"]] == [pos_id]
    assert listing["total_principal"] == "1000000"

    clock.advance(2 * DAY)
    reward = client.get(f"/position/{pos_id}/reward").json()
    assert reward["pending_reward"] == "2000"
    assert reward["at"] == clock.now

    future = client.get(f"/position/{pos_id}/reward", params={"at": clock.now + DAY}).json()
    assert future["pending_reward"] == "3000"

    body = send(client, admin, TxType.CLAIM, position_id=pos_id)
    assert body["result"]["reward_paid"] == 2_000

    body = send(client, admin, TxType.CLOSE_POSITION, position_id=pos_id)
    assert body["result"]["principal_returned"] == 1_000_000
    assert client.get(f"/position/{pos_id}").status_code == 404

    tx = client.get(f"/tx/{body['tx_hash']}").json()
    assert tx["tx_type"] == "CLOSE_POSITION"
    assert tx["result"]["closed"] is True


def test_rejected_tx_reports_kind(client, admin):
    stranger = Wallet()
    body = send(client, stranger, TxType.DEPOSIT_RESERVE, amount=10)
    assert body["status"] == "rejected"
    assert body["error"] == "Unauthorized"

    pos_id = send(client, admin, TxType.OPEN_POSITION, amount=100)["result"]["id"]
    body = send(client, admin, TxType.CLAIM, position_id=pos_id)
    assert body["status"] == "rejected"
    assert body["error"] == "NothingToClaim"

    body = send(client, stranger, TxType.CLAIM, position_id=pos_id)
    assert body["error"] == "Unauthorized"


def test_bad_signature_reported(client, admin):
    tx = admin.tx(TxType.DEPOSIT_RESERVE, amount=10)
    tx.amount = 20
    body = client.post("/tx/send", json=tx.model_dump(mode="json")).json()
    assert body["status"] == "rejected"
    assert body["error"] == "ValidationError"


def test_unknown_lookups(client):
    assert client.get("/position/nope").status_code == 404
    assert client.get("/position/nope/reward").status_code == 404
    assert client.get("/tx/deadbeef").status_code == 404
    assert client.get("/positions/stk1nobody").json()["positions"] == []


def test_metrics_endpoint(client, admin):
    send(client, admin, TxType.DEPOSIT_RESERVE, amount=1_234)
    resp = client.get("/metrics")
    assert resp.status_code == 200
    text = resp.text
    assert "stakechain_reserve_balance 1234.0" in text
    assert "stakechain_accounts_total 1.0" in text
    assert 'stakechain_operations_total{operation="DEPOSIT_RESERVE"}' in text
