from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, model_validator
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData

ListingStatus = Literal["active", "partial", "sold", "cancelled"]

LISTED_STATUSES = ("active", "partial")


class ListingBlockchain(BaseModel):
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None


class ListingSale(BaseModel):
    buyer_id: str
    amount: float
    price: float
    transaction_hash: Optional[str] = None
    sold_at: Optional[datetime] = None


class ListingData(BaseCouchbaseEntityData):
    listing_id: str
    seller_id: str
    project_id: str
    credit_claim_id: str
    credits_available: float
    credits_listed: float
    price_per_credit: float = 0.001
    status: ListingStatus = "active"
    blockchain: ListingBlockchain = ListingBlockchain()
    sales: List[ListingSale] = []

    def derive_status(self) -> None:
        """Nothing left is sold, something sold is partial."""
        if self.status == "cancelled":
            return
        if self.credits_available <= 0:
            self.status = "sold"
        elif self.credits_available < self.credits_listed:
            self.status = "partial"
        else:
            self.status = "active"

    @model_validator(mode="after")
    def status_from_quantities(self) -> "ListingData":
        self.derive_status()
        return self


class Listing(BaseModelCouchbase[ListingData]):
    _collection_name = "listings"
