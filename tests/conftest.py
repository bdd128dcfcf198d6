import pytest

from stakechain.ledger.core.ledger import Ledger
from stakechain.ledger.core.events import EventBus
from stakechain.protocol.config.params import NETWORKS

from helpers import FakeClock, write_genesis, ADMIN, ALICE, BOB, INITIAL_BALANCE



@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    """Provide a clean EventBus for each test."""
    bus = EventBus()
    yield bus
    bus.clear()


@pytest.fixture
def ledger(tmp_path, clock, bus):
    """Ledger with a pool (admin = ADMIN, 10 bps/day) and three funded accounts."""
    write_genesis(tmp_path, admin=ADMIN, genesis_time=clock.now,
                  alloc={ADMIN: INITIAL_BALANCE, ALICE: INITIAL_BALANCE, BOB: INITIAL_BALANCE})
    node = Ledger(str(tmp_path / "ledger.db"), config=NETWORKS["devnet"], clock=clock, events=bus)
    yield node
    node.close()


@pytest.fixture
def empty_ledger(tmp_path, clock, bus):
    """Ledger without genesis: no pool, no balances."""
    node = Ledger(str(tmp_path / "ledger.db"), config=NETWORKS["devnet"], clock=clock, events=bus)
    yield node
    node.close()
