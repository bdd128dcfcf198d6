from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from typing import Optional
from ...protocol.types.tx import Transaction
from ...protocol.types.common import ProtocolError, PositionNotFound, PoolNotInitialized
from ..core.ledger import Ledger, rejection_kind
from ..observability.metrics import metrics_registry, update_metrics
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="StakeChain Node RPC")

# Enable CORS for dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
ledger: Optional[Ledger] = None

def require_ledger() -> Ledger:
    if not ledger:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return ledger

@app.get("/status")
async def get_status():
    node = require_ledger()
    pool = node.get_pool()
    return {
        "network": node.config.network_id,
        "pool_initialized": pool is not None,
        "positions": len(node.list_positions()),
        "journal_size": node.db.journal_size(),
        "time": node.clock()
    }

@app.get("/pool")
async def get_pool():
    node = require_ledger()
    pool = node.get_pool()
    if pool is None:
        raise HTTPException(status_code=404, detail="Pool not initialized")
    return {
        "id": pool.id,
        "admin": pool.admin,
        "daily_reward_rate_bps": pool.daily_reward_rate_bps,
        "reserve": str(pool.reserve),
        "created_at": pool.created_at
    }

@app.get("/balance/{address}")
async def get_balance(address: str):
    node = require_ledger()
    acc = node.get_account(address)
    return {
        "address": address,
        "balance": str(acc.balance),
        "nonce": acc.nonce
    }

@app.get("/position/{position_id}")
async def get_position(position_id: str):
    node = require_ledger()
    pos = node.get_position(position_id)
    if not pos:
        raise HTTPException(status_code=404, detail="Position not found")
    return pos

@app.get("/position/{position_id}/reward")
async def get_position_reward(position_id: str, at: Optional[int] = Query(default=None, description="Unix time, defaults to node clock")):
    """Reward a claim would pay right now (or at `at`)."""
    node = require_ledger()
    now = node.clock() if at is None else at
    try:
        reward = node.pending_reward(position_id, now)
    except PositionNotFound:
        raise HTTPException(status_code=404, detail="Position not found")
    except PoolNotInitialized:
        raise HTTPException(status_code=503, detail="Pool not initialized")
    return {
        "position_id": position_id,
        "pending_reward": str(reward),
        "at": now
    }

@app.get("/positions/{owner}")
async def get_positions(owner: str):
    """All open positions of one owner."""
    node = require_ledger()
    positions = node.list_positions(owner)
    return {
        "owner": owner,
        "positions": positions,
        "total_principal": str(sum(p.principal for p in positions))
    }

@app.post("/tx/send")
async def send_tx(tx: Transaction):
    node = require_ledger()
    try:
        result = node.submit(tx)
    except ProtocolError as e:
        return {"tx_hash": tx.hash_hex, "status": "rejected", "error": rejection_kind(e), "detail": str(e)}

    return {"tx_hash": tx.hash_hex, "status": "committed", "result": result.model_dump()}

@app.get("/tx/{tx_hash}")
async def get_tx(tx_hash: str):
    node = require_ledger()
    entry = node.get_transaction(tx_hash)
    if not entry:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return entry

@app.get("/metrics")
async def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    node = require_ledger()
    update_metrics(node)
    return Response(
        content=generate_latest(metrics_registry),
        media_type=CONTENT_TYPE_LATEST
    )

def start_rpc_server(ledger_instance: Ledger, host: str = "0.0.0.0", port: int = 8000):
    global ledger
    ledger = ledger_instance
    import uvicorn
    logger.info(f"Serving RPC on {host}:{port}")
    uvicorn.run(app, host=host, port=port)
