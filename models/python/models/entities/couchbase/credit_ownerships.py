from typing import Literal, Optional
from pydantic import BaseModel
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class OwnershipBlockchain(BaseModel):
    payment_tx_hash: Optional[str] = None
    token_transfer_tx_hash: Optional[str] = None
    block_number: Optional[int] = None


class CreditOwnershipData(BaseCouchbaseEntityData):
    buyer_id: str
    seller_id: str
    listing_id: str
    project_id: str
    credit_claim_id: str
    credits_owned: float
    purchase_price: float
    total_cost: float
    blockchain: OwnershipBlockchain = OwnershipBlockchain()
    status: Literal["active", "transferred"] = "active"


class CreditOwnership(BaseModelCouchbase[CreditOwnershipData]):
    _collection_name = "credit_ownerships"
