from typing import Dict, Optional, List, Set, Union
from .accounts import Account
from .custody import debit, credit, escrow, release
from .rewards import compute_reward
from ...protocol.types.tx import Transaction
from ...protocol.types.common import (
    TxType, ValidationError, Unauthorized, InactivePosition, NothingToClaim,
    InsufficientReserve, ClockRegression, PositionNotFound, PoolNotInitialized,
    PoolAlreadyInitialized, InvalidAmount,
)
from ...protocol.types.pool import RewardPool
from ...protocol.types.position import StakePosition, Settlement
from ...protocol.types.value import Coin
from ...protocol.crypto.hash import sha256_hex
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.crypto.keys import verify
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig
from ..storage.db import StorageDB

POOL_KEY = "pool"
POS_SEQ_KEY = "pos_seq"

OperationResult = Union[RewardPool, StakePosition, Settlement, Account]


def debit_reserve(pool: RewardPool, amount: int) -> Coin:
    """Checks and debits the reserve in one step."""
    if pool.reserve < amount:
        raise InsufficientReserve(f"Insufficient reserve: have {pool.reserve}, need {amount}")
    pool.reserve -= amount
    return Coin(amount=amount)


class LedgerState:
    def __init__(self, db: StorageDB, config: NetworkConfig = CURRENT_NETWORK,
                 accounts: Dict[str, Account] = None,
                 positions: Dict[str, StakePosition] = None,
                 pool: Optional[RewardPool] = None):
        self.db = db
        self.config = config
        # Cache for modified/accessed accounts: address -> Account
        self._accounts: Dict[str, Account] = accounts if accounts is not None else {}
        # Cache for positions: id -> StakePosition
        self._positions: Dict[str, StakePosition] = positions if positions is not None else {}
        self._pool: Optional[RewardPool] = pool
        # Positions closed since the last commit
        self._deleted: Set[str] = set()
        # Storage keys touched since the last commit
        self._dirty: Set[str] = set()
        # Plain string entries (markers, counters)
        self._meta: Dict[str, str] = {}

        self.pos_seq = 0

    def clone(self) -> 'LedgerState':
        """Creates a scratch copy of the state. Nothing touches the DB until commit()."""
        new_accounts = {k: v.model_copy(deep=True) for k, v in self._accounts.items()}
        new_positions = {k: v.model_copy(deep=True) for k, v in self._positions.items()}
        new_pool = self._pool.model_copy(deep=True) if self._pool is not None else None
        cloned = LedgerState(self.db, self.config, new_accounts, new_positions, new_pool)
        cloned._deleted = set(self._deleted)
        cloned._dirty = set(self._dirty)
        cloned._meta = dict(self._meta)
        cloned.pos_seq = self.pos_seq
        return cloned

    def set_meta(self, key: str, value: str):
        self._meta[key] = value
        self._dirty.add(key)

    def load(self):
        val = self.db.get_state(POS_SEQ_KEY)
        if val:
            self.pos_seq = int(val)

    # --- Accounts ---
    def get_account(self, address: str) -> Account:
        if address in self._accounts:
            return self._accounts[address]

        # Try load from DB
        raw_json = self.db.get_state(f"acc:{address}")
        if raw_json:
            acc = Account.model_validate_json(raw_json)
            self._accounts[address] = acc
            return acc

        # Return generic new account
        return Account(address=address)

    def set_account(self, account: Account):
        self._accounts[account.address] = account
        self._dirty.add(f"acc:{account.address}")

    def get_all_accounts(self) -> List[Account]:
        final_accounts = {}
        for k, v in self.db.get_state_by_prefix("acc:").items():
            final_accounts[k.split(":", 1)[1]] = Account.model_validate_json(v)
        # Overlay cache
        final_accounts.update(self._accounts)
        return list(final_accounts.values())

    # --- Pool ---
    def get_pool(self) -> Optional[RewardPool]:
        if self._pool is None:
            raw_json = self.db.get_state(POOL_KEY)
            if raw_json:
                self._pool = RewardPool.model_validate_json(raw_json)
        return self._pool

    def require_pool(self) -> RewardPool:
        pool = self.get_pool()
        if pool is None:
            raise PoolNotInitialized("Reward pool has not been initialized")
        return pool

    def set_pool(self, pool: RewardPool):
        self._pool = pool
        self._dirty.add(POOL_KEY)

    # --- Positions ---
    def get_position(self, position_id: str) -> Optional[StakePosition]:
        if position_id in self._deleted:
            return None
        if position_id in self._positions:
            return self._positions[position_id]

        raw_json = self.db.get_state(f"pos:{position_id}")
        if raw_json:
            pos = StakePosition.model_validate_json(raw_json)
            self._positions[position_id] = pos
            return pos
        return None

    def require_position(self, position_id: str) -> StakePosition:
        pos = self.get_position(position_id)
        if pos is None:
            raise PositionNotFound(f"Position {position_id} not found")
        return pos

    def set_position(self, position: StakePosition):
        self._positions[position.id] = position
        self._deleted.discard(position.id)
        self._dirty.add(f"pos:{position.id}")

    def delete_position(self, position_id: str):
        self._positions.pop(position_id, None)
        self._deleted.add(position_id)
        self._dirty.add(f"pos:{position_id}")

    def list_positions(self, owner: Optional[str] = None) -> List[StakePosition]:
        """Loads all live positions from DB + cache overlay, oldest first."""
        final_positions = {}
        for k, v in self.db.get_state_by_prefix("pos:").items():
            final_positions[k.split(":", 1)[1]] = StakePosition.model_validate_json(v)
        final_positions.update(self._positions)
        for pos_id in self._deleted:
            final_positions.pop(pos_id, None)

        positions = [p for p in final_positions.values() if owner is None or p.owner == owner]
        return sorted(positions, key=lambda p: (p.start_time, p.id))

    def commit(self, journal: Optional[dict] = None):
        """Writes every key touched since the last commit in one DB transaction."""
        sets: Dict[str, str] = {}
        deletes: List[str] = []
        for key in sorted(self._dirty):
            if key in self._meta:
                sets[key] = self._meta[key]
            elif key == POOL_KEY:
                sets[key] = self._pool.model_dump_json()
            elif key == POS_SEQ_KEY:
                sets[key] = str(self.pos_seq)
            elif key.startswith("acc:"):
                sets[key] = self._accounts[key[4:]].model_dump_json()
            elif key.startswith("pos:"):
                pos_id = key[4:]
                if pos_id in self._deleted:
                    deletes.append(key)
                else:
                    sets[key] = self._positions[pos_id].model_dump_json()

        self.db.write_batch(sets, deletes, journal)
        self._dirty.clear()
        self._deleted.clear()

    # --- Operations ---
    def init_pool(self, caller: str, now: int, rate_bps: Optional[int] = None) -> RewardPool:
        if self.get_pool() is not None:
            raise PoolAlreadyInitialized("Reward pool already initialized")

        rate = self.config.daily_reward_rate_bps if rate_bps is None else rate_bps
        if rate < 0:
            raise InvalidAmount(f"Reward rate must be non-negative, got {rate}")

        pool = RewardPool(
            id=sha256_hex(f"pool:{caller}:{now}".encode("utf-8")),
            admin=caller,
            daily_reward_rate_bps=rate,
            reserve=0,
            created_at=now,
        )
        self.set_pool(pool)
        return pool

    def transfer(self, caller: str, to_address: Optional[str], amount: int) -> Account:
        if not to_address:
            raise ValidationError("Transfer must have to_address")
        if amount <= 0:
            raise InvalidAmount(f"Transfer amount must be positive, got {amount}")

        sender = self.get_account(caller)
        coin = debit(sender, amount)
        self.set_account(sender)

        recipient = self.get_account(to_address)
        credit(recipient, coin)
        self.set_account(recipient)
        return recipient

    def open_position(self, caller: str, amount: int, now: int) -> StakePosition:
        if amount < self.config.min_stake:
            raise InvalidAmount(f"Stake {amount} below minimum {self.config.min_stake}")

        account = self.get_account(caller)
        coin = debit(account, amount)
        self.set_account(account)

        self.pos_seq += 1
        self._dirty.add(POS_SEQ_KEY)

        position = StakePosition(
            id=sha256_hex(f"{caller}:{self.pos_seq}:{now}".encode("utf-8")),
            owner=caller,
            principal=coin.amount,
            start_time=now,
            reward_accum=0,
            last_claim=now,
            active=True,
            escrowed_value=escrow(coin),
        )
        self.set_position(position)
        return position

    def deposit_reserve(self, caller: str, amount: int) -> RewardPool:
        pool = self.require_pool()
        if caller != pool.admin:
            raise Unauthorized("Only the pool admin can deposit into the reserve")
        if amount <= 0:
            raise InvalidAmount(f"Deposit amount must be positive, got {amount}")

        account = self.get_account(caller)
        coin = debit(account, amount)
        self.set_account(account)

        pool.reserve += coin.amount
        self.set_pool(pool)
        return pool

    def _authorize(self, caller: str, position: StakePosition):
        if not position.active:
            raise InactivePosition(f"Position {position.id} is not active")
        if caller != position.owner:
            raise Unauthorized(f"Only the position owner can settle position {position.id}")

    def _reward(self, position: StakePosition, pool: RewardPool, now: int) -> int:
        return compute_reward(position, pool, now,
                              seconds_per_day=self.config.seconds_per_day,
                              bps_denominator=self.config.bps_denominator)

    def pending_reward(self, position_id: str, now: int) -> int:
        return self._reward(self.require_position(position_id), self.require_pool(), now)

    def claim(self, caller: str, position_id: str, now: int) -> Settlement:
        pool = self.require_pool()
        position = self.require_position(position_id)
        self._authorize(caller, position)

        # Moving last_claim backwards would pay the same days twice
        if now < position.last_claim:
            raise ClockRegression(f"Time went backwards: now={now}, last_claim={position.last_claim}")

        reward = self._reward(position, pool, now)
        if reward == 0:
            raise NothingToClaim(f"Nothing to claim on position {position_id}")

        payout = debit_reserve(pool, reward)

        position.reward_accum = 0
        position.last_claim = now
        self.set_position(position)
        self.set_pool(pool)

        account = self.get_account(caller)
        credit(account, payout)
        self.set_account(account)

        return Settlement(
            position_id=position_id,
            owner=caller,
            reward_paid=payout.amount,
            settled_at=now,
        )

    def close_position(self, caller: str, position_id: str, now: int) -> Settlement:
        pool = self.require_pool()
        position = self.require_position(position_id)
        self._authorize(caller, position)

        holder = position.escrowed_value
        if holder is None or holder.released:
            raise ValidationError(f"Active position {position_id} holds no escrowed value")

        reward = self._reward(position, pool, now)
        payout = debit_reserve(pool, reward) if reward > 0 else Coin(amount=0)

        account = self.get_account(caller)
        credit(account, payout)
        principal = release(holder)
        credit(account, principal)
        self.set_account(account)

        position.active = False
        self.set_pool(pool)
        self.delete_position(position_id)

        return Settlement(
            position_id=position_id,
            owner=caller,
            reward_paid=payout.amount,
            principal_returned=principal.amount,
            settled_at=now,
            closed=True,
        )

    def apply_transaction(self, tx: Transaction, now: int) -> OperationResult:
        """
        Verifies and applies a signed transaction (in-memory). Raises on failure.

        The signature authenticates `from_address`; after that the caller is
        trusted by every operation.
        """
        # 0. Crypto Verification
        if not tx.signature or not tx.pub_key:
            raise ValidationError("Missing signature or pub_key")

        try:
            pub_bytes = bytes.fromhex(tx.pub_key)
            sig_bytes = bytes.fromhex(tx.signature)
        except ValueError as e:
            raise ValidationError(f"Invalid key or signature encoding: {e}")

        derived_addr = address_from_pubkey(pub_bytes, prefix=self.config.bech32_prefix_acc)
        if derived_addr != tx.from_address:
            raise ValidationError(f"pub_key mismatch: derived {derived_addr}, expected {tx.from_address}")

        if not verify(bytes.fromhex(tx.hash()), sig_bytes, pub_bytes):
            raise ValidationError("Invalid signature")

        # 1. Nonce check
        sender = self.get_account(tx.from_address)
        if tx.nonce != sender.nonce:
            raise ValidationError(f"Invalid nonce: expected {sender.nonce}, got {tx.nonce}")

        # 2. Route by Type
        caller = tx.from_address
        if tx.tx_type == TxType.INIT_POOL:
            result = self.init_pool(caller, now)
        elif tx.tx_type == TxType.TRANSFER:
            result = self.transfer(caller, tx.to_address, tx.amount)
        elif tx.tx_type == TxType.OPEN_POSITION:
            result = self.open_position(caller, tx.amount, now)
        elif tx.tx_type == TxType.DEPOSIT_RESERVE:
            result = self.deposit_reserve(caller, tx.amount)
        elif tx.tx_type == TxType.CLAIM:
            result = self.claim(caller, self._position_ref(tx), now)
        elif tx.tx_type == TxType.CLOSE_POSITION:
            result = self.close_position(caller, self._position_ref(tx), now)
        else:
            raise ValidationError(f"Unsupported tx type {tx.tx_type}")

        # 3. Bump nonce (same commit as the operation)
        sender = self.get_account(tx.from_address)
        sender.nonce += 1
        self.set_account(sender)
        return result

    @staticmethod
    def _position_ref(tx: Transaction) -> str:
        if not tx.position_id:
            raise ValidationError(f"{tx.tx_type.value} must provide position_id")
        return tx.position_id
