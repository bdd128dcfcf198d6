from ...protocol.types.pool import RewardPool
from ...protocol.types.position import StakePosition
from ...protocol.config.params import SECONDS_PER_DAY, BPS_DENOMINATOR


def days_elapsed(since: int, now: int, seconds_per_day: int = SECONDS_PER_DAY) -> int:
    """Whole days between two timestamps. A clock that went backwards yields 0."""
    if now <= since:
        return 0
    return (now - since) // seconds_per_day


def compute_reward(position: StakePosition, pool: RewardPool, now: int,
                   seconds_per_day: int = SECONDS_PER_DAY,
                   bps_denominator: int = BPS_DENOMINATOR) -> int:
    """
    Calculate the reward currently owed on a position.

    Accrual is linear in the principal and quantized to whole days since
    `last_claim`. A partial day accrues nothing yet; since `last_claim` is not
    moved here, it is picked up by a later call.

    Args:
        position: Position to evaluate (not modified)
        pool: Pool supplying the daily rate in basis points
        now: Current unix time in seconds

    Returns:
        Newly accrued reward plus `reward_accum`, in minimal units.
        0 for an inactive position.
    """
    if not position.active:
        return 0

    days_passed = days_elapsed(position.last_claim, now, seconds_per_day)
    if days_passed == 0:
        return position.reward_accum

    newly_accrued = position.principal * pool.daily_reward_rate_bps * days_passed // bps_denominator
    return newly_accrued + position.reward_accum
