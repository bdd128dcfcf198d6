"""Signed transaction path: authentication, nonces, routing."""
import pytest

from stakechain.ledger.core.ledger import Ledger
from stakechain.protocol.config.params import NETWORKS, NetworkConfig
from stakechain.protocol.types.common import (
    TxType, ValidationError, Unauthorized, NothingToClaim, PoolAlreadyInitialized,
)
from stakechain.protocol.types.pool import RewardPool
from stakechain.protocol.types.position import StakePosition, Settlement
from stakechain.protocol.crypto.keys import generate_private_key
from stakechain.protocol.crypto.addresses import address_from_pubkey, is_valid_address

from helpers import DAY, Wallet, write_genesis

FUNDS = 5_000_000


@pytest.fixture
def admin():
    return Wallet()


@pytest.fixture
def user():
    return Wallet()


@pytest.fixture
def node(tmp_path, clock, bus, admin, user):
    write_genesis(tmp_path, admin=admin.address, genesis_time=clock.now,
                  alloc={admin.address: FUNDS, user.address: FUNDS})
    ledger = Ledger(str(tmp_path / "ledger.db"), config=NETWORKS["devnet"], clock=clock, events=bus)
    yield ledger
    ledger.close()


def submit(node, wallet, tx_type, **fields):
    result = node.submit(wallet.tx(tx_type, **fields))
    wallet.nonce += 1
    return result


def test_wallet_address_is_bech32(user):
    assert user.address.startswith("stk1")
    assert is_valid_address(user.address)


def test_full_lifecycle_via_transactions(node, clock, admin, user):
    pool = submit(node, admin, TxType.DEPOSIT_RESERVE, amount=100_000)
    assert isinstance(pool, RewardPool)
    assert pool.reserve == 100_000

    pos = submit(node, user, TxType.OPEN_POSITION, amount=1_000_000)
    assert isinstance(pos, StakePosition)
    assert pos.owner == user.address
    assert pos.last_claim == clock.now

    clock.advance(3 * DAY)
    claimed = submit(node, user, TxType.CLAIM, position_id=pos.id)
    assert isinstance(claimed, Settlement)
    assert claimed.reward_paid == 3_000

    clock.advance(DAY)
    closed = submit(node, user, TxType.CLOSE_POSITION, position_id=pos.id)
    assert closed.closed
    assert closed.principal_returned == 1_000_000
    assert closed.reward_paid == 1_000

    assert node.get_account(user.address).balance == FUNDS + 4_000
    assert node.get_account(user.address).nonce == 3
    assert node.get_pool().reserve == 100_000 - 4_000


def test_transfer_via_transaction(node, user):
    other = Wallet()
    submit(node, user, TxType.TRANSFER, to_address=other.address, amount=250)
    assert node.get_account(other.address).balance == 250
    assert node.get_account(user.address).balance == FUNDS - 250


def test_committed_tx_is_journaled(node, admin):
    tx = admin.tx(TxType.DEPOSIT_RESERVE, amount=42)
    node.submit(tx)

    entry = node.get_transaction(tx.hash_hex)
    assert entry["tx_type"] == TxType.DEPOSIT_RESERVE.value
    assert entry["caller"] == admin.address
    assert entry["result"]["reserve"] == 42


def test_replay_rejected(node, admin):
    tx = admin.tx(TxType.DEPOSIT_RESERVE, amount=10)
    node.submit(tx)

    with pytest.raises(ValidationError, match="nonce"):
        node.submit(tx)
    assert node.get_pool().reserve == 10


def test_wrong_nonce_rejected(node, user):
    with pytest.raises(ValidationError, match="nonce"):
        node.submit(user.tx(TxType.OPEN_POSITION, amount=100, nonce=5))
    assert node.get_account(user.address).nonce == 0


def test_tampered_transaction_rejected(node, user):
    tx = user.tx(TxType.TRANSFER, to_address=Wallet().address, amount=10)
    tx.amount = 1_000
    with pytest.raises(ValidationError, match="signature"):
        node.submit(tx)
    assert node.get_account(user.address).balance == FUNDS


def test_missing_signature_rejected(node, user):
    tx = user.tx(TxType.OPEN_POSITION, amount=100)
    tx.signature = ""
    with pytest.raises(ValidationError, match="Missing"):
        node.submit(tx)


def test_malformed_hex_rejected(node, user):
    tx = user.tx(TxType.OPEN_POSITION, amount=100)
    tx.signature = "zz"
    with pytest.raises(ValidationError, match="encoding"):
        node.submit(tx)


def test_pubkey_must_match_sender(node, admin, user):
    # user signs a tx claiming to come from admin
    tx = user.tx(TxType.DEPOSIT_RESERVE, amount=10)
    tx.from_address = admin.address
    tx.sign(user.priv)
    with pytest.raises(ValidationError, match="mismatch"):
        node.submit(tx)
    assert node.get_pool().reserve == 0


def test_operation_rejection_keeps_nonce(node, user):
    with pytest.raises(Unauthorized):
        node.submit(user.tx(TxType.DEPOSIT_RESERVE, amount=10))
    assert node.get_account(user.address).nonce == 0

    # Same nonce is still usable afterwards
    submit(node, user, TxType.OPEN_POSITION, amount=100)
    assert node.get_account(user.address).nonce == 1


def test_claim_requires_position_id(node, user):
    with pytest.raises(ValidationError, match="position_id"):
        node.submit(user.tx(TxType.CLAIM))


def test_claim_same_block_nothing(node, user):
    pos = submit(node, user, TxType.OPEN_POSITION, amount=1_000_000)
    with pytest.raises(NothingToClaim):
        node.submit(user.tx(TxType.CLAIM, position_id=pos.id))


def test_init_pool_via_transaction(empty_ledger, clock):
    admin = Wallet()
    pool = submit(empty_ledger, admin, TxType.INIT_POOL)
    assert pool.admin == admin.address
    assert pool.daily_reward_rate_bps == NETWORKS["devnet"].daily_reward_rate_bps
    assert pool.created_at == clock.now

    with pytest.raises(PoolAlreadyInitialized):
        empty_ledger.submit(Wallet().tx(TxType.INIT_POOL))


def test_address_prefix_follows_network(tmp_path, clock, bus):
    config = NetworkConfig(network_id="localnet", daily_reward_rate_bps=10,
                           genesis_premine=0, bech32_prefix_acc="tst")
    node = Ledger(str(tmp_path / "ledger.db"), config=config, clock=clock, events=bus)
    try:
        wallet = Wallet()
        # Default wallet addresses use "stk", so they cannot authenticate on a "tst" network
        with pytest.raises(ValidationError, match="mismatch"):
            node.submit(wallet.tx(TxType.INIT_POOL))

        tst_wallet = Wallet(generate_private_key())
        tst_wallet.address = address_from_pubkey(tst_wallet.pub, prefix="tst")
        assert node.submit(tst_wallet.tx(TxType.INIT_POOL)).admin == tst_wallet.address
    finally:
        node.close()
