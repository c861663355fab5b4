from typing import Optional

from pydantic import Field

from .common import RequestModel


class ListCreditsRequest(RequestModel):
    claim_id: str = Field(min_length=1)
    # sign and bounds are checked by the route, after ownership
    credits_to_sell: float


class BuyCreditsRequest(RequestModel):
    listing_id: str = Field(min_length=1)
    credits_to_buy: float
    transaction_hash: Optional[str] = None


class UpdatePriceRequest(RequestModel):
    price_per_credit: float = Field(gt=0)
