"""Shared test helpers: fake clock, well-known addresses, genesis writer."""
import json
import os

from stakechain.protocol.crypto.keys import generate_private_key, public_key_from_private
from stakechain.protocol.crypto.addresses import address_from_pubkey
from stakechain.protocol.types.tx import Transaction

DAY = 86_400
GENESIS_TIME = 1_700_000_000
INITIAL_BALANCE = 10_000_000

ADMIN = "stk1admin"
ALICE = "stk1alice"
BOB = "stk1bob"


class FakeClock:
    """Manually driven time source."""

    def __init__(self, start: int = GENESIS_TIME):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


def write_genesis(data_dir, admin=ADMIN, alloc=None, genesis_time=GENESIS_TIME, rate_bps=None):
    genesis = {"genesis_time": genesis_time, "alloc": alloc or {}}
    if admin:
        genesis["admin"] = admin
    if rate_bps is not None:
        genesis["daily_reward_rate_bps"] = rate_bps
    with open(os.path.join(str(data_dir), "genesis.json"), "w") as f:
        json.dump(genesis, f)


class Wallet:
    """Key pair plus a local nonce counter for building signed transactions."""

    def __init__(self, priv: bytes = None):
        self.priv = priv or generate_private_key()
        self.pub = public_key_from_private(self.priv)
        self.address = address_from_pubkey(self.pub)
        self.nonce = 0

    def tx(self, tx_type, **fields) -> Transaction:
        tx = Transaction(
            tx_type=tx_type,
            from_address=self.address,
            nonce=fields.pop("nonce", self.nonce),
            pub_key=self.pub.hex(),
            **fields
        )
        tx.sign(self.priv)
        return tx
