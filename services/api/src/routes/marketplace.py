from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

import conf
from clients.blockchain import BlockchainError, BlockchainGateway, is_address
from models.entities.couchbase.credit_ownerships import OwnershipBlockchain
from models.entities.couchbase.listings import LISTED_STATUSES, ListingSale
from models.operations.credit_claims import credit_claim_get, credit_claim_release_listing
from models.operations.credit_ownerships import credit_ownership_record_purchase
from models.operations.listings import (
    listing_cancel,
    listing_count,
    listing_create_for_claim,
    listing_find_listed_for_claim,
    listing_get,
    listing_get_by_seller,
    listing_record_sale,
    listing_reserve_purchase,
    listing_restore_purchase,
    listing_search,
    listing_update_price,
)
from schemas.common import listing_to_wire, ownership_to_wire
from schemas.marketplace import BuyCreditsRequest, ListCreditsRequest, UpdatePriceRequest
from utils import log
from utils.constants import MESSAGES
from utils.helpers import generate_listing_id, pagination, total_pages

from .dependencies import (
    blockchain_get,
    chain_call,
    require_blockchain,
    require_buyer,
    require_developer,
    user_id_get,
    user_wallet_get,
)

logger = log.get_logger(__name__)

router = APIRouter(prefix="/marketplace", tags=["marketplace"])


# ── Helpers ───────────────────────────────────────────────────────────────────

def _fmt(value: float) -> str:
    return f"{value:g}"


def _conflict_status(error: str) -> int:
    return 409 if error.startswith("Concurrent update conflict") else 400


async def _owned_listing(listing_id: str, user: dict, action: str):
    listing = await listing_get(listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    if listing.data.seller_id != user_id_get(user):
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this listing")
    return listing


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("/list", status_code=201)
async def route_marketplace_list(
    body: ListCreditsRequest,
    user: dict = Depends(require_developer),
    chain: BlockchainGateway = Depends(blockchain_get),
) -> Dict[str, Any]:
    """Put (part of) an issued claim on the market at the default price."""
    seller_id = user_id_get(user)

    claim = await credit_claim_get(body.claim_id)
    if not claim:
        raise HTTPException(status_code=404, detail="Credit claim not found")
    if claim.data.developer_id != seller_id:
        raise HTTPException(status_code=403, detail="Not authorized to sell these credits")
    if claim.data.status != "approved":
        raise HTTPException(status_code=400, detail="Only approved credits can be listed")
    if not claim.data.credit_issuance.credits_issued:
        raise HTTPException(status_code=400, detail="Credits must be issued before listing")

    quantity = body.credits_to_sell
    if quantity <= 0:
        raise HTTPException(status_code=400, detail="Credits to sell must be greater than zero")
    if quantity > (claim.data.credit_issuance.approved_credits or 0):
        raise HTTPException(status_code=400, detail="Cannot sell more credits than approved")

    if await listing_find_listed_for_claim(claim.id):
        raise HTTPException(status_code=400, detail="Credits already listed in marketplace")

    wallet = user_wallet_get(user)
    if not is_address(wallet):
        raise HTTPException(status_code=400, detail="Valid wallet address required to list credits")

    if not chain.is_connected():
        raise HTTPException(status_code=503, detail="Blockchain connection is not available")
    try:
        balance = await chain_call(chain.token_balance, wallet)
    except BlockchainError as e:
        logger.error(f"Balance lookup for {wallet} failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=MESSAGES["BLOCKCHAIN_ERROR"])

    if balance < quantity:
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient token balance. You have {_fmt(balance)} credits but trying to sell {_fmt(quantity)}",
        )

    listing, error = await listing_create_for_claim(
        generate_listing_id(),
        seller_id,
        claim.data.project_id,
        claim.id,
        quantity,
        conf.get_listing_default_price(),
    )
    if error is not None:
        logger.warning(f"Listing for claim {claim.id} rejected: {error}")
        raise HTTPException(status_code=_conflict_status(error), detail=error)

    logger.info(f"Listing {listing.id} created for claim {claim.id} ({_fmt(quantity)} credits)")
    return {
        "success": True,
        "message": "Credits listed successfully",
        "listing": listing_to_wire(listing),
    }


@router.get("/listings")
async def route_marketplace_listings(
    status: str = Query("active"),
    page: int = Query(1),
    limit: int = Query(20),
) -> Dict[str, Any]:
    page, limit, skip = pagination(page, limit)
    listings = await listing_search(status or None, limit=limit, offset=skip)
    total = await listing_count(status or None)
    return {
        "success": True,
        "listings": [listing_to_wire(listing) for listing in listings],
        "totalPages": total_pages(total, limit),
        "currentPage": page,
        "total": total,
    }


@router.get("/my-listings")
async def route_marketplace_my_listings(
    user: dict = Depends(require_developer),
) -> Dict[str, Any]:
    listings = await listing_get_by_seller(user_id_get(user))
    return {"success": True, "listings": [listing_to_wire(listing) for listing in listings]}


@router.post("/buy")
async def route_marketplace_buy(
    body: BuyCreditsRequest,
    user: dict = Depends(require_buyer),
    chain: BlockchainGateway = Depends(require_blockchain),
) -> Dict[str, Any]:
    """Reserve the credits on the listing, move the tokens, then record the
    sale and the buyer's holding. The reservation is undone if the transfer
    fails."""
    buyer_id = user_id_get(user)
    quantity = body.credits_to_buy

    listing = await listing_get(body.listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    if listing.data.status not in LISTED_STATUSES:
        raise HTTPException(status_code=400, detail="Listing is not available for purchase")
    if quantity <= 0 or quantity > listing.data.credits_available:
        raise HTTPException(status_code=400, detail="Invalid credit amount")

    wallet = user_wallet_get(user)
    if not is_address(wallet):
        raise HTTPException(status_code=400, detail="Valid wallet address required to purchase credits")

    if body.transaction_hash:
        try:
            receipt = await chain_call(chain.get_transaction_receipt, body.transaction_hash)
        except Exception as e:
            logger.warning(f"Payment receipt lookup for {body.transaction_hash} failed: {e}")
            raise HTTPException(status_code=400, detail="Invalid transaction hash")
        if not receipt or receipt.get("status") != 1:
            raise HTTPException(status_code=400, detail="Payment transaction not found or not confirmed")

    total_price = quantity * listing.data.price_per_credit

    reserved, error = await listing_reserve_purchase(listing.id, quantity)
    if error is not None:
        logger.warning(f"Purchase of {_fmt(quantity)} from listing {listing.id} rejected: {error}")
        raise HTTPException(status_code=_conflict_status(error), detail=error)

    try:
        transfer = await chain_call(chain.token_transfer, wallet, quantity)
    except Exception as e:
        logger.error(f"Token transfer for listing {listing.id} failed: {e}", exc_info=True)
        _, restore_error = await listing_restore_purchase(listing.id, quantity)
        if restore_error is not None:
            logger.error(f"Could not restore {_fmt(quantity)} credits on listing {listing.id}: {restore_error}")
        raise HTTPException(status_code=502, detail="Token transfer failed, purchase was not completed")

    if reserved.data.status == "sold":
        await credit_claim_release_listing(reserved.data.credit_claim_id, listing.id, 0.0)

    sale = ListingSale(
        buyer_id=buyer_id,
        amount=quantity,
        price=total_price,
        transaction_hash=transfer.tx_hash,
    )
    updated, _ = await listing_record_sale(listing.id, sale)
    ownership = await credit_ownership_record_purchase(
        buyer_id,
        updated or reserved,
        quantity,
        total_price,
        OwnershipBlockchain(
            payment_tx_hash=body.transaction_hash,
            token_transfer_tx_hash=transfer.tx_hash,
            block_number=transfer.block_number,
        ),
    )

    logger.info(f"Buyer {buyer_id} purchased {_fmt(quantity)} credits from listing {listing.id}")
    return {
        "success": True,
        "message": "Credits purchased successfully",
        "tokenTransferHash": transfer.tx_hash,
        "paymentHash": body.transaction_hash,
        "creditsPurchased": quantity,
        "totalPrice": total_price,
        "listing": listing_to_wire(updated or reserved),
        "ownership": ownership_to_wire(ownership),
    }


@router.get("/{listing_id}")
async def route_marketplace_listing_get(listing_id: str) -> Dict[str, Any]:
    listing = await listing_get(listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return {"success": True, "listing": listing_to_wire(listing)}


@router.patch("/{listing_id}/cancel")
async def route_marketplace_listing_cancel(
    listing_id: str,
    user: dict = Depends(require_developer),
) -> Dict[str, Any]:
    await _owned_listing(listing_id, user, "cancel")

    listing, error, remainder = await listing_cancel(listing_id)
    if error is not None:
        raise HTTPException(status_code=_conflict_status(error), detail=error)

    logger.info(f"Listing {listing_id} cancelled, {_fmt(remainder)} credits released")
    return {
        "success": True,
        "message": "Listing cancelled successfully",
        "listing": listing_to_wire(listing),
    }


@router.patch("/{listing_id}/update-price")
async def route_marketplace_listing_update_price(
    listing_id: str,
    body: UpdatePriceRequest,
    user: dict = Depends(require_developer),
) -> Dict[str, Any]:
    await _owned_listing(listing_id, user, "update")

    listing, error = await listing_update_price(listing_id, body.price_per_credit)
    if error is not None:
        raise HTTPException(status_code=_conflict_status(error), detail=error)

    return {
        "success": True,
        "message": "Price updated successfully",
        "listing": listing_to_wire(listing),
    }
