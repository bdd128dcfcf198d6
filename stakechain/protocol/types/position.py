from pydantic import BaseModel, Field
from typing import Optional
from .value import Escrow

class StakePosition(BaseModel):
    """Represents one user's stake and its accrual bookkeeping."""
    id: str
    owner: str                       # Address that opened the position
    principal: int = Field(ge=0)     # Locked amount, never changes
    start_time: int                  # Creation time, informational only
    reward_accum: int = Field(default=0, ge=0)  # Computed but not yet paid
    last_claim: int                  # Start of the un-accrued period
    active: bool = True

    # Present while active, released on close
    escrowed_value: Optional[Escrow] = None

class Settlement(BaseModel):
    """Outcome of a claim or close: what left the pool and the position."""
    position_id: str
    owner: str
    reward_paid: int = 0          # Debited from the reserve
    principal_returned: int = 0   # Released from escrow (close only)
    settled_at: int
    closed: bool = False
