import logging
from typing import List, Optional

from models.entities.couchbase.credit_ownerships import (
    CreditOwnership,
    CreditOwnershipData,
    OwnershipBlockchain,
)
from models.entities.couchbase.listings import Listing

logger = logging.getLogger(__name__)


async def credit_ownership_find_active(buyer_id: str, credit_claim_id: str) -> Optional[CreditOwnership]:
    return await CreditOwnership.find_one(
        "buyer_id = $buyer_id AND credit_claim_id = $claim_id AND status = 'active'",
        buyer_id=buyer_id,
        claim_id=credit_claim_id,
    )


async def credit_ownership_get_by_buyer(
    buyer_id: str, limit: Optional[int] = None, offset: int = 0
) -> List[CreditOwnership]:
    return await CreditOwnership.find("buyer_id = $buyer_id", limit=limit, offset=offset, buyer_id=buyer_id)


async def credit_ownership_count_by_buyer(buyer_id: str) -> int:
    return await CreditOwnership.count("buyer_id = $buyer_id", buyer_id=buyer_id)


async def credit_ownership_get_active_by_buyer(buyer_id: str) -> List[CreditOwnership]:
    return await CreditOwnership.find("buyer_id = $buyer_id AND status = 'active'", buyer_id=buyer_id)


async def credit_ownership_record_purchase(
    buyer_id: str,
    listing: Listing,
    credits: float,
    total_cost: float,
    blockchain: OwnershipBlockchain,
) -> CreditOwnership:
    """Create the buyer's holding for the claim, or top up the existing one."""
    existing = await credit_ownership_find_active(buyer_id, listing.data.credit_claim_id)
    if existing is not None:
        def _mutate(data: CreditOwnershipData) -> Optional[str]:
            data.credits_owned += credits
            data.total_cost += total_cost
            data.blockchain = blockchain
            return None

        ownership, error = await CreditOwnership.cas_update(existing.id, _mutate)
        if ownership is not None:
            return ownership
        logger.warning("Could not top up ownership %s (%s), recording a new one", existing.id, error)

    data = CreditOwnershipData(
        buyer_id=buyer_id,
        seller_id=listing.data.seller_id,
        listing_id=listing.id,
        project_id=listing.data.project_id,
        credit_claim_id=listing.data.credit_claim_id,
        credits_owned=credits,
        purchase_price=listing.data.price_per_credit,
        total_cost=total_cost,
        blockchain=blockchain,
    )
    return await CreditOwnership.create(data, user_id=buyer_id)
