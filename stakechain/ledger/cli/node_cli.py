import argparse
import os
import logging
import json
import time
from ...protocol.crypto.keys import generate_private_key, public_key_from_private
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.config.params import get_network
from ..core.ledger import Ledger
from ..rpc.api import start_rpc_server

logger = logging.getLogger(__name__)

def cmd_init(args):
    """Initialize node: admin key, genesis allocation, data dir."""
    data_dir = args.datadir
    config = get_network(args.network)
    os.makedirs(data_dir, exist_ok=True)

    key_path = os.path.join(data_dir, "admin_key.hex")
    if os.path.exists(key_path):
        print(f"Admin key already exists at {key_path}")
        return

    if config.faucet_priv_key:
        # Use deterministic key for Devnet
        priv = bytes.fromhex(config.faucet_priv_key)
        print("Using DETERMINISTIC Devnet admin key.")
    else:
        priv = generate_private_key()

    with open(key_path, "w") as f:
        f.write(priv.hex())
    os.chmod(key_path, 0o600)

    pub = public_key_from_private(priv)
    addr = address_from_pubkey(pub, prefix=config.bech32_prefix_acc)
    print("Generated ADMIN key (pool admin, holds the premine).")
    print(f"Address: {addr}")
    print(f"PubKey Hex: {pub.hex()}")
    print("SAVE THIS KEY TO FUND THE RESERVE!")

    genesis_data = {
        "network": config.network_id,
        "genesis_time": int(time.time()),
        "admin": addr,
        "daily_reward_rate_bps": config.daily_reward_rate_bps,
        "alloc": {
            addr: config.genesis_premine
        }
    }
    with open(os.path.join(data_dir, "genesis.json"), "w") as f:
        json.dump(genesis_data, f, indent=2)

    print(f"\nNode initialized in {data_dir}")

def cmd_run(args):
    data_dir = args.datadir
    db_path = os.path.join(data_dir, "ledger.db")
    config = get_network(args.network)

    print("Starting StakeChain node...")
    print(f"Network: {config.network_id}")
    print(f"Data DB: {db_path}")
    print(f"RPC: {args.host}:{args.port}")

    os.makedirs(data_dir, exist_ok=True)
    ledger = Ledger(db_path, config=config)
    try:
        start_rpc_server(ledger, host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    finally:
        ledger.close()
        logger.info("Ledger closed")

def main():
    parser = argparse.ArgumentParser(description="StakeChain Node CLI")
    parser.add_argument("--datadir", default="./.stakechain", help="Data directory")
    parser.add_argument("--network", default=os.environ.get("STAKECHAIN_NETWORK", "devnet"),
                        help="Network config (devnet, testnet, mainnet)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Init command
    subparsers.add_parser("init", help="Initialize node configuration")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
