from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData

ClaimStatus = Literal[
    "pending", "under_review", "inspection_scheduled",
    "inspection_completed", "approved", "rejected",
]
InspectionResult = Literal["passed", "failed", "partial", "not started"]

OPEN_CLAIM_STATUSES = ("pending", "under_review", "inspection_scheduled", "inspection_completed")


class ReportingPeriod(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SupportingDocument(BaseModel):
    file_name: str
    file_hash: str
    upload_date: Optional[datetime] = None


class ClaimDetails(BaseModel):
    mrv_data_refs: List[str] = []
    credits_requested: float
    reporting_period: ReportingPeriod = ReportingPeriod()
    supporting_documents: List[SupportingDocument] = []


class Inspection(BaseModel):
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    inspector_id: Optional[str] = None
    findings: Optional[str] = None
    report: Optional[str] = None
    inspection_result: InspectionResult = "not started"


class ClaimReview(BaseModel):
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    comments: Optional[str] = None


class CreditIssuance(BaseModel):
    approved_credits: Optional[float] = None
    issued_at: Optional[datetime] = None
    transaction_hash: Optional[str] = None
    credits_issued: bool = False
    issuance_pending: bool = False


class CreditClaimData(BaseCouchbaseEntityData):
    claim_id: str
    project_id: str
    developer_id: str
    claim_details: ClaimDetails
    status: ClaimStatus = "pending"
    inspection: Inspection = Inspection()
    review: ClaimReview = ClaimReview()
    credit_issuance: CreditIssuance = CreditIssuance()
    # total reserved by listings that are not cancelled (sold credits stay counted)
    credits_listed: float = 0.0
    active_listing_id: Optional[str] = None


class CreditClaim(BaseModelCouchbase[CreditClaimData]):
    _collection_name = "credit_claims"
