# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import os
from decimal import Decimal
import requests
from .keystore import KeyStore
from ..protocol.types.tx import Transaction
from ..protocol.types.common import TxType
from ..protocol.config.params import DECIMALS, DENOM

DEFAULT_NODE = "http://localhost:8000"

def get_node_url(args):
    return args.node or os.environ.get("STAKECHAIN_NODE", DEFAULT_NODE)

def to_units(amount: str) -> int:
    return int(Decimal(amount) * 10**DECIMALS)

def fmt_units(units) -> str:
    return f"{Decimal(int(units)) / 10**DECIMALS} {DENOM}"

def fetch(url: str) -> dict:
    try:
        resp = requests.get(url, timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()

# --- Keys Commands ---
def cmd_keys_add(args):
    ks = KeyStore()
    try:
        key = ks.create_key(args.name)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' created.")
    print(f"Address: {key['address']}")
    print(f"Pubkey:  {key['public_key']}")
    print("Important: Private key saved unencrypted. Do not share!")

def cmd_keys_import(args):
    ks = KeyStore()
    try:
        key = ks.import_key(args.name, args.private_key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{args.name}' imported.")
    print(f"Address: {key['address']}")

def cmd_keys_list(args):
    keys = KeyStore().list_keys()
    if not keys:
        print("No keys found.")
        return

    print(f"{'Name':<15} {'Address':<45}")
    print("-" * 60)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<45}")

def cmd_keys_delete(args):
    if not KeyStore().delete_key(args.name):
        print(f"Key '{args.name}' not found.")
        sys.exit(1)
    print(f"Key '{args.name}' deleted.")

def cmd_keys_show(args):
    key = KeyStore().get_key(args.name)
    if not key:
        print(f"Key '{args.name}' not found.")
        sys.exit(1)
    print(json.dumps({k: v for k, v in key.items() if k != 'private_key'}, indent=2))

# --- Query Commands ---
def cmd_query_pool(args):
    data = fetch(f"{get_node_url(args)}/pool")
    print(f"Pool:    {data['id']}")
    print(f"Admin:   {data['admin']}")
    print(f"Rate:    {data['daily_reward_rate_bps']} bps/day")
    print(f"Reserve: {fmt_units(data['reserve'])}")

def cmd_query_balance(args):
    data = fetch(f"{get_node_url(args)}/balance/{args.address}")
    print(f"Balance: {fmt_units(data['balance'])}")
    print(f"Nonce: {data['nonce']}")

def cmd_query_position(args):
    print(json.dumps(fetch(f"{get_node_url(args)}/position/{args.position_id}"), indent=2))

def cmd_query_positions(args):
    data = fetch(f"{get_node_url(args)}/positions/{args.owner}")
    print(f"{'Position':<66} {'Principal':<20} {'Last claim'}")
    print("-" * 100)
    for p in data['positions']:
        print(f"{p['id']:<66} {fmt_units(p['principal']):<20} {p['last_claim']}")
    print(f"Total: {fmt_units(data['total_principal'])}")

def cmd_query_reward(args):
    url = f"{get_node_url(args)}/position/{args.position_id}/reward"
    if args.at is not None:
        url += f"?at={args.at}"
    data = fetch(url)
    print(f"Pending reward: {fmt_units(data['pending_reward'])} (at {data['at']})")

# --- Tx Commands ---
def load_sender(args):
    key = KeyStore().get_key(args.from_name)
    if not key:
        print(f"Key '{args.from_name}' not found.")
        sys.exit(1)
    return key

def build_tx(args, tx_type: TxType, **fields) -> Transaction:
    key = load_sender(args)
    url = get_node_url(args)
    nonce = fetch(f"{url}/balance/{key['address']}")['nonce']

    tx = Transaction(
        tx_type=tx_type,
        from_address=key['address'],
        nonce=nonce,
        pub_key=key['public_key'],
        **fields
    )
    tx.sign(bytes.fromhex(key['private_key']))
    return tx

def broadcast_tx(args, tx: Transaction):
    try:
        resp = requests.post(f"{get_node_url(args)}/tx/send", json=tx.model_dump(mode="json"), timeout=10)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error broadcasting: {resp.text}")
        sys.exit(1)

    res = resp.json()
    if res['status'] != "committed":
        print(f"Rejected ({res['error']}): {res['detail']}")
        sys.exit(1)
    print(f"Success! TxHash: {res['tx_hash']}")
    return res['result']

def cmd_tx_send(args):
    tx = build_tx(args, TxType.TRANSFER, to_address=args.to_address, amount=to_units(args.amount))
    print(f"Sending {args.amount} {DENOM} to {args.to_address}...")
    broadcast_tx(args, tx)

def cmd_tx_stake(args):
    tx = build_tx(args, TxType.OPEN_POSITION, amount=to_units(args.amount))
    print(f"Staking {args.amount} {DENOM}...")
    result = broadcast_tx(args, tx)
    print(f"Position: {result['id']}")

def cmd_tx_deposit(args):
    tx = build_tx(args, TxType.DEPOSIT_RESERVE, amount=to_units(args.amount))
    print(f"Depositing {args.amount} {DENOM} into the reward reserve...")
    result = broadcast_tx(args, tx)
    print(f"Reserve: {fmt_units(result['reserve'])}")

def cmd_tx_claim(args):
    tx = build_tx(args, TxType.CLAIM, position_id=args.position_id)
    result = broadcast_tx(args, tx)
    print(f"Claimed: {fmt_units(result['reward_paid'])}")

def cmd_tx_close(args):
    tx = build_tx(args, TxType.CLOSE_POSITION, position_id=args.position_id)
    result = broadcast_tx(args, tx)
    print(f"Principal returned: {fmt_units(result['principal_returned'])}")
    print(f"Reward paid:        {fmt_units(result['reward_paid'])}")

def main():
    parser = argparse.ArgumentParser(description="StakeChain CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")

    subparsers = parser.add_subparsers(dest="command")

    # Keys
    p_keys = subparsers.add_parser("keys", help="Manage keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create new key")
    pk_add.add_argument("name", help="Key name")

    pk_imp = sp_keys.add_parser("import", help="Import private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("--private-key", required=True, help="Hex private key")

    sp_keys.add_parser("list", help="List keys")

    pk_del = sp_keys.add_parser("delete", help="Delete a key")
    pk_del.add_argument("name", help="Key name")

    pk_show = sp_keys.add_parser("show", help="Show key details")
    pk_show.add_argument("name", help="Key name")

    # Query
    p_query = subparsers.add_parser("query", help="Query ledger state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("pool", help="Show the reward pool")

    pq_bal = sp_query.add_parser("balance", help="Get account balance")
    pq_bal.add_argument("address", help="Account address")

    pq_pos = sp_query.add_parser("position", help="Show one position")
    pq_pos.add_argument("position_id", help="Position id")

    pq_list = sp_query.add_parser("positions", help="List open positions of an owner")
    pq_list.add_argument("owner", help="Owner address")

    pq_rew = sp_query.add_parser("reward", help="Pending reward of a position")
    pq_rew.add_argument("position_id", help="Position id")
    pq_rew.add_argument("--at", type=int, help="Unix time (default: node clock)")

    # Tx
    p_tx = subparsers.add_parser("tx", help="Create and send transactions")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    pt_send = sp_tx.add_parser("send", help=f"Send {DENOM} tokens")
    pt_send.add_argument("to_address", help="Recipient address")
    pt_send.add_argument("amount", help=f"Amount in {DENOM}")
    pt_send.add_argument("--from", dest="from_name", required=True, help="Sender key name")

    pt_stake = sp_tx.add_parser("stake", help="Open a new stake position")
    pt_stake.add_argument("amount", help=f"Amount to stake in {DENOM}")
    pt_stake.add_argument("--from", dest="from_name", required=True, help="Staker key name")

    pt_dep = sp_tx.add_parser("deposit", help="Top up the reward reserve (admin only)")
    pt_dep.add_argument("amount", help=f"Amount in {DENOM}")
    pt_dep.add_argument("--from", dest="from_name", required=True, help="Admin key name")

    pt_claim = sp_tx.add_parser("claim", help="Claim accrued rewards")
    pt_claim.add_argument("position_id", help="Position id")
    pt_claim.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    pt_close = sp_tx.add_parser("close", help="Close a position (principal + rewards)")
    pt_close.add_argument("position_id", help="Position id")
    pt_close.add_argument("--from", dest="from_name", required=True, help="Owner key name")

    args = parser.parse_args()

    if args.command == "keys":
        if args.subcommand == "add": cmd_keys_add(args)
        elif args.subcommand == "import": cmd_keys_import(args)
        elif args.subcommand == "list": cmd_keys_list(args)
        elif args.subcommand == "show": cmd_keys_show(args)
        elif args.subcommand == "delete": cmd_keys_delete(args)
        else: p_keys.print_help()

    elif args.command == "query":
        if args.subcommand == "pool": cmd_query_pool(args)
        elif args.subcommand == "balance": cmd_query_balance(args)
        elif args.subcommand == "position": cmd_query_position(args)
        elif args.subcommand == "positions": cmd_query_positions(args)
        elif args.subcommand == "reward": cmd_query_reward(args)
        else: p_query.print_help()

    elif args.command == "tx":
        if args.subcommand == "send": cmd_tx_send(args)
        elif args.subcommand == "stake": cmd_tx_stake(args)
        elif args.subcommand == "deposit": cmd_tx_deposit(args)
        elif args.subcommand == "claim": cmd_tx_claim(args)
        elif args.subcommand == "close": cmd_tx_close(args)
        else: p_tx.print_help()

    else:
        parser.print_help()

if __name__ == "__main__":
    main()
