from enum import Enum

class TxType(str, Enum):
    INIT_POOL = "INIT_POOL"             # One-time pool creation (admin)
    TRANSFER = "TRANSFER"               # Move free balance between accounts
    OPEN_POSITION = "OPEN_POSITION"     # Lock value into a new position
    DEPOSIT_RESERVE = "DEPOSIT_RESERVE" # Admin top-up of the reward reserve
    CLAIM = "CLAIM"                     # Pay out accrued reward
    CLOSE_POSITION = "CLOSE_POSITION"   # Principal + remaining reward, delete position

class ProtocolError(Exception):
    pass

class ValidationError(ProtocolError):
    pass

class StakingError(ProtocolError):
    """Base class for rejected ledger operations. Rejections never mutate state."""
    kind = "StakingError"

class Unauthorized(StakingError):
    kind = "Unauthorized"

class InactivePosition(StakingError):
    kind = "InactivePosition"

class NothingToClaim(StakingError):
    kind = "NothingToClaim"

class InsufficientReserve(StakingError):
    kind = "InsufficientReserve"

class ClockRegression(StakingError):
    kind = "ClockRegression"

class PositionNotFound(StakingError):
    kind = "PositionNotFound"

class PoolNotInitialized(StakingError):
    kind = "PoolNotInitialized"

class PoolAlreadyInitialized(StakingError):
    kind = "PoolAlreadyInitialized"

class InvalidAmount(StakingError):
    kind = "InvalidAmount"

class InsufficientBalance(StakingError):
    kind = "InsufficientBalance"

class EscrowReleased(StakingError):
    kind = "EscrowReleased"
