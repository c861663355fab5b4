from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from clients.blockchain import BlockchainError, BlockchainGateway, is_address
from models.operations.credit_ownerships import (
    credit_ownership_count_by_buyer,
    credit_ownership_get_active_by_buyer,
    credit_ownership_get_by_buyer,
)
from models.operations.projects import project_get
from models.operations.users import user_get
from schemas.common import ownership_to_wire, project_to_wire
from utils import log
from utils.constants import MESSAGES
from utils.helpers import pagination, total_pages

from .dependencies import (
    blockchain_get,
    chain_call,
    require_blockchain,
    require_buyer,
    user_id_get,
    user_wallet_get,
)

logger = log.get_logger(__name__)

router = APIRouter(prefix="/buyer", tags=["buyer"])


# ── Helpers ───────────────────────────────────────────────────────────────────

async def _projects(project_ids: Iterable[str]) -> Dict[str, Any]:
    projects = {}
    for project_id in set(project_ids):
        project = await project_get(project_id)
        if project is not None:
            projects[project_id] = project
    return projects


async def _sellers(seller_ids: Iterable[str]) -> Dict[str, Any]:
    sellers = {}
    for seller_id in set(seller_ids):
        seller = await user_get(seller_id)
        if seller is not None:
            sellers[seller_id] = seller
    return sellers


def _project_summary(project) -> Dict[str, Any]:
    return {
        "_id": project.id,
        "projectId": project.data.project_id,
        "name": project.data.name,
        "type": project.data.type,
        "location": project.data.location.model_dump(mode="json"),
    }


def _seller_summary(seller) -> Dict[str, Any]:
    return {"_id": seller.id, "name": seller.data.name, "organization": seller.data.organization}


async def _wallet_balance(chain: BlockchainGateway, wallet: Optional[str]) -> float:
    """On-chain balance for the stats card; 0 when it cannot be read."""
    if not is_address(wallet) or not chain.is_connected():
        return 0.0
    try:
        return await chain_call(chain.token_balance, wallet)
    except BlockchainError as e:
        logger.warning(f"Balance lookup for {wallet} failed: {e}")
        return 0.0


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/stats")
async def route_buyer_stats(
    user: dict = Depends(require_buyer),
    chain: BlockchainGateway = Depends(blockchain_get),
) -> Dict[str, Any]:
    """Dashboard totals over the buyer's active holdings."""
    holdings = await credit_ownership_get_active_by_buyer(user_id_get(user))
    current_balance = await _wallet_balance(chain, user_wallet_get(user))
    return {
        "success": True,
        "stats": {
            "totalPurchased": sum(h.data.credits_owned for h in holdings),
            "currentBalance": current_balance,
            # one credit offsets one tonne of CO2
            "offsetEmissions": current_balance,
            "totalSpent": round(sum(h.data.total_cost for h in holdings), 4),
        },
    }


@router.get("/holdings")
async def route_buyer_holdings(
    user: dict = Depends(require_buyer),
) -> Dict[str, Any]:
    holdings = await credit_ownership_get_active_by_buyer(user_id_get(user))
    projects = await _projects(h.data.project_id for h in holdings)
    sellers = await _sellers(h.data.seller_id for h in holdings)

    rendered = []
    for holding in holdings:
        doc = ownership_to_wire(holding)
        if holding.data.project_id in projects:
            doc["project"] = _project_summary(projects[holding.data.project_id])
        if holding.data.seller_id in sellers:
            doc["seller"] = _seller_summary(sellers[holding.data.seller_id])
        rendered.append(doc)
    return {"success": True, "holdings": rendered}


@router.get("/transactions")
async def route_buyer_transactions(
    page: int = Query(1),
    limit: int = Query(20),
    user: dict = Depends(require_buyer),
) -> Dict[str, Any]:
    """Purchase history, newest first."""
    buyer_id = user_id_get(user)
    page, limit, skip = pagination(page, limit)
    purchases = await credit_ownership_get_by_buyer(buyer_id, limit=limit, offset=skip)
    total = await credit_ownership_count_by_buyer(buyer_id)
    projects = await _projects(p.data.project_id for p in purchases)
    sellers = await _sellers(p.data.seller_id for p in purchases)

    transactions = []
    for purchase in purchases:
        project = projects.get(purchase.data.project_id)
        seller = sellers.get(purchase.data.seller_id)
        created_at = purchase.data.created_at
        transactions.append({
            "_id": purchase.id,
            "type": "purchase",
            "amount": purchase.data.credits_owned,
            "price": purchase.data.total_cost,
            "project": project.data.name if project else "Unknown Project",
            "seller": (seller.data.name if seller else None) or "Unknown Seller",
            "date": created_at.date().isoformat() if created_at else None,
            "txHash": purchase.data.blockchain.token_transfer_tx_hash,
            "paymentHash": purchase.data.blockchain.payment_tx_hash,
        })

    return {
        "success": True,
        "transactions": transactions,
        "totalPages": total_pages(total, limit),
        "currentPage": page,
        "total": total,
    }


@router.get("/wallet-balance")
async def route_buyer_wallet_balance(
    wallet_address: Optional[str] = Query(None, alias="walletAddress"),
    user: dict = Depends(require_buyer),
    chain: BlockchainGateway = Depends(require_blockchain),
) -> Dict[str, Any]:
    """Token balance of *walletAddress*, or of the buyer's own wallet when omitted."""
    wallet = wallet_address or user_wallet_get(user)
    if not is_address(wallet):
        raise HTTPException(status_code=400, detail="Valid wallet address required")

    try:
        balance = await chain_call(chain.token_balance, wallet)
    except BlockchainError as e:
        logger.error(f"Balance lookup for {wallet} failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=MESSAGES["BLOCKCHAIN_ERROR"])

    return {"success": True, "balance": balance, "walletAddress": wallet}


@router.get("/holdings-by-project")
async def route_buyer_holdings_by_project(
    user: dict = Depends(require_buyer),
) -> Dict[str, Any]:
    """Active holdings grouped per project, largest first. Holdings whose
    project no longer exists are left out."""
    holdings = await credit_ownership_get_active_by_buyer(user_id_get(user))
    projects = await _projects(h.data.project_id for h in holdings)

    groups: Dict[str, Dict[str, Any]] = {}
    for holding in holdings:
        project = projects.get(holding.data.project_id)
        if project is None:
            continue
        group = groups.setdefault(project.id, {
            "_id": project.id,
            "totalCredits": 0.0,
            "totalSpent": 0.0,
            "purchases": [],
            "projectDetails": project_to_wire(project),
        })
        group["totalCredits"] += holding.data.credits_owned
        group["totalSpent"] += holding.data.total_cost
        group["purchases"].append(ownership_to_wire(holding))

    grouped: List[Dict[str, Any]] = sorted(groups.values(), key=lambda g: g["totalCredits"], reverse=True)
    return {"success": True, "holdings": grouped}
