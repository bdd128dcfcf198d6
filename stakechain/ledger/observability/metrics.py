# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports ledger metrics in Prometheus format.

Metrics:
- Reserve balance, reward rate
- Active positions, total staked principal
- Committed operations and rejections by error kind
- Rewards paid out, principal returned
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# POOL METRICS
# ═══════════════════════════════════════════════════════════════════

reserve_balance = Gauge(
    'stakechain_reserve_balance',
    'Reward reserve available for payouts',
    registry=metrics_registry
)

daily_reward_rate_bps = Gauge(
    'stakechain_daily_reward_rate_bps',
    'Daily reward rate in basis points',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# POSITION METRICS
# ═══════════════════════════════════════════════════════════════════

positions_active = Gauge(
    'stakechain_positions_active',
    'Number of open stake positions',
    registry=metrics_registry
)

total_staked = Gauge(
    'stakechain_total_staked',
    'Total principal locked in positions',
    registry=metrics_registry
)

accounts_total = Gauge(
    'stakechain_accounts_total',
    'Number of accounts with a non-zero balance',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'stakechain_operations_total',
    'Committed ledger operations',
    ['operation'],
    registry=metrics_registry
)

rejections_total = Counter(
    'stakechain_rejections_total',
    'Rejected ledger operations',
    ['operation', 'reason'],
    registry=metrics_registry
)

rewards_paid_total = Counter(
    'stakechain_rewards_paid_total',
    'Total reward paid out of the reserve',
    registry=metrics_registry
)

principal_returned_total = Counter(
    'stakechain_principal_returned_total',
    'Total principal released from closed positions',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def record_operation(operation: str):
    operations_total.labels(operation=operation).inc()


def record_rejection(operation: str, reason: str):
    rejections_total.labels(operation=operation, reason=reason).inc()


def record_settlement(settlement):
    """
    Update payout counters from a claim or close.

    Args:
        settlement: Settlement returned by the ledger
    """
    if settlement.reward_paid:
        rewards_paid_total.inc(settlement.reward_paid)
    if settlement.principal_returned:
        principal_returned_total.inc(settlement.principal_returned)


def update_metrics(ledger):
    """
    Update gauges from ledger state. Called when metrics are scraped.
    Counters are only touched by the record_* helpers.

    Args:
        ledger: Ledger instance
    """
    pool = ledger.get_pool()
    if pool is not None:
        reserve_balance.set(pool.reserve)
        daily_reward_rate_bps.set(pool.daily_reward_rate_bps)

    positions = ledger.list_positions()
    positions_active.set(len(positions))
    total_staked.set(sum(p.principal for p in positions))

    accounts_total.set(ledger.count_funded_accounts())
