from pydantic import BaseModel, Field

class RewardPool(BaseModel):
    """Shared singleton holding the reward reserve."""
    id: str
    admin: str                           # Only address allowed to deposit
    daily_reward_rate_bps: int           # Basis points per day (10 = 0.10%/day)
    reserve: int = Field(default=0, ge=0)
    created_at: int = 0                  # Unix time of init_pool
