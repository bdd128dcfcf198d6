# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict

# Global Constants
DENOM = "stk"
DECIMALS = 6

SECONDS_PER_DAY = 86_400
BPS_DENOMINATOR = 10_000

class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 daily_reward_rate_bps: int,
                 genesis_premine: int,
                 min_stake: int = 1,
                 bech32_prefix_acc: str = "stk",
                 seconds_per_day: int = SECONDS_PER_DAY,
                 bps_denominator: int = BPS_DENOMINATOR,
                 # Devnet specific deterministic keys (hex strings)
                 faucet_priv_key: str = None):
        self.network_id = network_id
        self.daily_reward_rate_bps = daily_reward_rate_bps
        self.genesis_premine = genesis_premine
        self.min_stake = min_stake
        self.bech32_prefix_acc = bech32_prefix_acc
        self.seconds_per_day = seconds_per_day
        self.bps_denominator = bps_denominator
        self.faucet_priv_key = faucet_priv_key

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        daily_reward_rate_bps=10,
        genesis_premine=1_000_000_000 * 10**DECIMALS,
        min_stake=1,
        # Deterministic Faucet Key for Devnet
        faucet_priv_key="4f3edf982522b4e51b7e8b5f2f9c4d1d7a9e5f8c2b6d4e1a3c5b7d9e0f1a2b3c"
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        daily_reward_rate_bps=10,
        genesis_premine=100_000_000 * 10**DECIMALS,
        min_stake=1 * 10**DECIMALS,
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        daily_reward_rate_bps=10,
        genesis_premine=0,
        min_stake=10 * 10**DECIMALS,
    )
}

def get_network(network_id: str) -> NetworkConfig:
    if network_id not in NETWORKS:
        raise ValueError(f"Unknown network '{network_id}' (expected one of {', '.join(NETWORKS)})")
    return NETWORKS[network_id]

# Default to devnet unless overridden
CURRENT_NETWORK = get_network(os.environ.get("STAKECHAIN_NETWORK", "devnet"))
