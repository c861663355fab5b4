import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from models.entities.couchbase.listings import LISTED_STATUSES, Listing, ListingData, ListingSale
from models.operations.credit_claims import credit_claim_release_listing, credit_claim_reserve_listing

ListingResult = Tuple[Optional[Listing], Optional[str]]


async def listing_create(
    listing_id: str,
    seller_id: str,
    project_id: str,
    credit_claim_id: str,
    quantity: float,
    price_per_credit: float,
) -> Listing:
    data = ListingData(
        listing_id=listing_id,
        seller_id=seller_id,
        project_id=project_id,
        credit_claim_id=credit_claim_id,
        credits_available=quantity,
        credits_listed=quantity,
        price_per_credit=price_per_credit,
    )
    return await Listing.create(data, key=listing_id, user_id=seller_id)


async def listing_create_for_claim(
    listing_id: str,
    seller_id: str,
    project_id: str,
    credit_claim_id: str,
    quantity: float,
    price_per_credit: float,
) -> ListingResult:
    """Reserve the quantity on the claim, then create the listing.

    The reservation is given back if the listing cannot be written.
    """
    _, error = await credit_claim_reserve_listing(credit_claim_id, listing_id, quantity)
    if error is not None:
        return None, error
    try:
        listing = await listing_create(
            listing_id, seller_id, project_id, credit_claim_id, quantity, price_per_credit
        )
    except Exception:
        await credit_claim_release_listing(credit_claim_id, listing_id, quantity)
        raise
    return listing, None


async def listing_get(listing_id: str) -> Optional[Listing]:
    return await Listing.get(listing_id)


async def listing_get_by_seller(seller_id: str) -> List[Listing]:
    return await Listing.find("seller_id = $seller_id", seller_id=seller_id)


async def listing_find_listed_for_claim(credit_claim_id: str) -> Optional[Listing]:
    return await Listing.find_one(
        "credit_claim_id = $claim_id AND status IN $statuses",
        claim_id=credit_claim_id,
        statuses=list(LISTED_STATUSES),
    )


def _search_where(status: Optional[str]) -> Tuple[str, Optional[list]]:
    if not status:
        return "", None
    statuses = list(LISTED_STATUSES) if status == "active" else [status]
    return "status IN $statuses", statuses


async def listing_search(status: Optional[str] = "active", limit: int = 20, offset: int = 0) -> List[Listing]:
    where, statuses = _search_where(status)
    return await Listing.find(where, limit=limit, offset=offset, statuses=statuses)


async def listing_count(status: Optional[str] = "active") -> int:
    where, statuses = _search_where(status)
    return await Listing.count(where, statuses=statuses)


# ── Purchases ───────────────────────────────────────────────────────────────

async def listing_reserve_purchase(listing_id: str, quantity: float) -> ListingResult:
    """Take *quantity* off the available credits before settlement."""

    def _mutate(data: ListingData) -> Optional[str]:
        if data.status not in LISTED_STATUSES:
            return "Listing is not available for purchase"
        if not math.isfinite(quantity) or quantity <= 0 or quantity > data.credits_available:
            return "Invalid credit amount"
        data.credits_available -= quantity
        data.derive_status()
        return None

    return await Listing.cas_update(listing_id, _mutate)


async def listing_restore_purchase(listing_id: str, quantity: float) -> ListingResult:
    """Undo :func:`listing_reserve_purchase` after a failed settlement."""

    def _mutate(data: ListingData) -> Optional[str]:
        data.credits_available = min(data.credits_available + quantity, data.credits_listed)
        data.derive_status()
        return None

    return await Listing.cas_update(listing_id, _mutate)


async def listing_record_sale(listing_id: str, sale: ListingSale) -> ListingResult:
    if sale.sold_at is None:
        sale.sold_at = datetime.now(timezone.utc)

    def _mutate(data: ListingData) -> Optional[str]:
        data.sales.append(sale)
        return None

    return await Listing.cas_update(listing_id, _mutate)


# ── Seller actions ──────────────────────────────────────────────────────────

async def listing_cancel(listing_id: str) -> Tuple[Optional[Listing], Optional[str], float]:
    """Cancel the listing. Returns the unsold remainder alongside the result."""
    remainder = {"credits": 0.0}

    def _mutate(data: ListingData) -> Optional[str]:
        if data.status in ("sold", "cancelled"):
            return "Cannot cancel this listing"
        remainder["credits"] = data.credits_available
        data.status = "cancelled"
        return None

    listing, error = await Listing.cas_update(listing_id, _mutate)
    if error is not None:
        return None, error, 0.0
    await credit_claim_release_listing(listing.data.credit_claim_id, listing_id, remainder["credits"])
    return listing, None, remainder["credits"]


async def listing_update_price(listing_id: str, price_per_credit: float) -> ListingResult:
    def _mutate(data: ListingData) -> Optional[str]:
        if data.status not in LISTED_STATUSES:
            return "Can only update price for active listings"
        data.price_per_credit = price_per_credit
        return None

    return await Listing.cas_update(listing_id, _mutate)
