# MIT License
# Copyright (c) 2025 Hashborn

from typing import Optional, List, Callable, Any
import time
import logging
import os
import json
import threading
from ...protocol.types.tx import Transaction
from ...protocol.types.common import TxType, ProtocolError
from ...protocol.types.pool import RewardPool
from ...protocol.types.position import StakePosition, Settlement
from ...protocol.types.value import Coin
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig
from ..storage.db import StorageDB
from ..observability import metrics
from .state import LedgerState, OperationResult
from .accounts import Account
from .custody import credit
from .events import (
    EventBus, event_bus, POOL_INITIALIZED, POSITION_OPENED, RESERVE_DEPOSITED,
    REWARD_CLAIMED, POSITION_CLOSED, TRANSFER_COMPLETED, OPERATION_REJECTED,
)

logger = logging.getLogger(__name__)

GENESIS_KEY = "genesis_applied"

EVENT_FOR_TX = {
    TxType.INIT_POOL: POOL_INITIALIZED,
    TxType.TRANSFER: TRANSFER_COMPLETED,
    TxType.OPEN_POSITION: POSITION_OPENED,
    TxType.DEPOSIT_RESERVE: RESERVE_DEPOSITED,
    TxType.CLAIM: REWARD_CLAIMED,
    TxType.CLOSE_POSITION: POSITION_CLOSED,
}


def system_clock() -> int:
    return int(time.time())


def rejection_kind(error: Exception) -> str:
    return getattr(error, "kind", type(error).__name__)


class Ledger:
    """
    Staking ledger node state.

    Every mutating call runs under one re-entrant lock against a scratch copy
    of the state. The copy is committed to SQLite in a single transaction
    only when the operation succeeded, so a rejected call leaves storage and
    the in-memory state untouched.
    """

    def __init__(self, db_path: str, config: NetworkConfig = CURRENT_NETWORK,
                 clock: Optional[Callable[[], int]] = None,
                 events: Optional[EventBus] = None):
        self.db = StorageDB(db_path)
        self._lock = threading.RLock()
        self.config = config
        self.clock = clock or system_clock
        self.events = events if events is not None else event_bus
        self.state = LedgerState(self.db, config)
        self.state.load()

        # Try to load genesis allocation on first start
        self.genesis_path = os.path.join(os.path.dirname(db_path), "genesis.json")
        self._apply_genesis()

    def _apply_genesis(self):
        """Loads initial balances and the pool admin from genesis.json, once per database."""
        if self.db.get_state(GENESIS_KEY):
            pool = self.state.get_pool()
            logger.info(f"Ledger loaded (pool initialized: {pool is not None}, positions: {len(self.state.list_positions())})")
            return

        if not os.path.exists(self.genesis_path):
            logger.warning("No genesis.json found. Starting with 0 balances and no pool.")
            return

        with self._lock:
            scratch = self.state.clone()

            # A database that already carries state was started without genesis
            if scratch.get_pool() is not None or self.db.get_state_by_prefix("acc:"):
                logger.warning(f"Ignoring {self.genesis_path}: ledger already holds state")
                scratch.set_meta(GENESIS_KEY, "1")
                self._commit(scratch, "GENESIS", "", data={"skipped": True})
                return

            with open(self.genesis_path, "r") as f:
                data = json.load(f)

            alloc = data.get("alloc", {})
            for address, amount in alloc.items():
                acc = scratch.get_account(address)
                credit(acc, Coin(amount=int(amount)))
                scratch.set_account(acc)

            admin = data.get("admin")
            if admin:
                scratch.init_pool(admin, int(data.get("genesis_time", self.clock())),
                                  rate_bps=data.get("daily_reward_rate_bps"))

            scratch.set_meta(GENESIS_KEY, "1")
            self._commit(scratch, "GENESIS", admin or "", data=data)

        logger.info(f"Applied genesis allocation to {len(alloc)} accounts (admin: {admin or 'none'}).")

    def _commit(self, scratch: LedgerState, operation: str, caller: str,
                tx_hash: Optional[str] = None, data: Any = None):
        journal = {
            "tx_hash": tx_hash,
            "tx_type": operation,
            "caller": caller,
            "timestamp": self.clock(),
            "data": json.dumps(data, default=str) if data is not None else "",
        }
        scratch.commit(journal)
        self.state = scratch

    def _execute(self, operation: TxType, caller: str, fn: Callable[[LedgerState], OperationResult],
                 tx_hash: Optional[str] = None) -> OperationResult:
        """
        Runs one operation atomically: all checks and effects, or nothing.

        Listeners are notified after the ledger lock is released.
        """
        try:
            result = self._apply(operation, caller, fn, tx_hash)
        except ProtocolError as e:
            kind = rejection_kind(e)
            logger.warning(f"{operation.value} by {caller} rejected: {kind}: {e}")
            metrics.record_rejection(operation.value, kind)
            self.events.emit(OPERATION_REJECTED, operation=operation.value, caller=caller,
                             reason=kind, error=str(e), tx_hash=tx_hash)
            raise

        self.events.emit(EVENT_FOR_TX[operation], caller=caller, result=result, tx_hash=tx_hash)
        return result

    def _apply(self, operation: TxType, caller: str, fn: Callable[[LedgerState], OperationResult],
               tx_hash: Optional[str]) -> OperationResult:
        with self._lock:
            scratch = self.state.clone()
            result = fn(scratch)
            self._commit(scratch, operation.value, caller, tx_hash=tx_hash,
                         data=result.model_dump())

            metrics.record_operation(operation.value)
            if isinstance(result, Settlement):
                metrics.record_settlement(result)

            logger.info(f"{operation.value} by {caller} committed")
            return result

    # --- Thread-safe operations ---
    def init_pool(self, caller: str, rate_bps: Optional[int] = None, now: Optional[int] = None) -> RewardPool:
        now = self.clock() if now is None else now
        return self._execute(TxType.INIT_POOL, caller, lambda s: s.init_pool(caller, now, rate_bps))

    def transfer(self, caller: str, to_address: str, amount: int) -> Account:
        return self._execute(TxType.TRANSFER, caller, lambda s: s.transfer(caller, to_address, amount))

    def open_position(self, caller: str, amount: int, now: Optional[int] = None) -> StakePosition:
        now = self.clock() if now is None else now
        return self._execute(TxType.OPEN_POSITION, caller, lambda s: s.open_position(caller, amount, now))

    def deposit_reserve(self, caller: str, amount: int) -> RewardPool:
        return self._execute(TxType.DEPOSIT_RESERVE, caller, lambda s: s.deposit_reserve(caller, amount))

    def claim(self, caller: str, position_id: str, now: Optional[int] = None) -> Settlement:
        now = self.clock() if now is None else now
        return self._execute(TxType.CLAIM, caller, lambda s: s.claim(caller, position_id, now))

    def close_position(self, caller: str, position_id: str, now: Optional[int] = None) -> Settlement:
        now = self.clock() if now is None else now
        return self._execute(TxType.CLOSE_POSITION, caller, lambda s: s.close_position(caller, position_id, now))

    def submit(self, tx: Transaction) -> OperationResult:
        """Applies a signed transaction using the node clock as `now`."""
        now = self.clock()
        return self._execute(tx.tx_type, tx.from_address,
                             lambda s: s.apply_transaction(tx, now), tx_hash=tx.hash_hex)

    # --- Queries ---
    def get_pool(self) -> Optional[RewardPool]:
        with self._lock:
            pool = self.state.get_pool()
            return pool.model_copy(deep=True) if pool is not None else None

    def get_account(self, address: str) -> Account:
        with self._lock:
            return self.state.get_account(address).model_copy(deep=True)

    def get_position(self, position_id: str) -> Optional[StakePosition]:
        with self._lock:
            pos = self.state.get_position(position_id)
            return pos.model_copy(deep=True) if pos is not None else None

    def list_positions(self, owner: Optional[str] = None) -> List[StakePosition]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self.state.list_positions(owner)]

    def pending_reward(self, position_id: str, now: Optional[int] = None) -> int:
        """Reward a claim at `now` would pay. Raises PositionNotFound / PoolNotInitialized."""
        now = self.clock() if now is None else now
        with self._lock:
            return self.state.pending_reward(position_id, now)

    def count_funded_accounts(self) -> int:
        with self._lock:
            return sum(1 for acc in self.state.get_all_accounts() if acc.balance > 0)

    def get_transaction(self, tx_hash: str) -> Optional[dict]:
        row = self.db.get_journal_entry(tx_hash)
        if not row:
            return None
        seq, tx_hash, tx_type, caller, timestamp, data = row
        return {
            "seq": seq,
            "tx_hash": tx_hash,
            "tx_type": tx_type,
            "caller": caller,
            "timestamp": timestamp,
            "result": json.loads(data) if data else None,
        }

    def close(self):
        self.db.close()

