import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from models.entities.couchbase.credit_claims import (
    OPEN_CLAIM_STATUSES,
    ClaimDetails,
    CreditClaim,
    CreditClaimData,
    SupportingDocument,
)

ClaimResult = Tuple[Optional[CreditClaim], Optional[str]]


async def credit_claim_create(
    claim_id: str, project_id: str, developer_id: str, details: ClaimDetails
) -> CreditClaim:
    data = CreditClaimData(
        claim_id=claim_id,
        project_id=project_id,
        developer_id=developer_id,
        claim_details=details,
    )
    return await CreditClaim.create(data, key=claim_id, user_id=developer_id)


async def credit_claim_get(claim_id: str) -> Optional[CreditClaim]:
    return await CreditClaim.get(claim_id)


async def credit_claim_get_by_developer(developer_id: str) -> List[CreditClaim]:
    return await CreditClaim.find("developer_id = $developer_id", developer_id=developer_id)


async def credit_claim_list(status: Optional[str] = None, limit: int = 10, offset: int = 0) -> List[CreditClaim]:
    where = "status = $status" if status else ""
    return await CreditClaim.find(where, limit=limit, offset=offset, status=status)


async def credit_claim_count(status: Optional[str] = None) -> int:
    where = "status = $status" if status else ""
    return await CreditClaim.count(where, status=status)


async def credit_claim_find_open_for_project(project_id: str) -> Optional[CreditClaim]:
    return await CreditClaim.find_one(
        "project_id = $project_id AND status IN $statuses",
        project_id=project_id,
        statuses=list(OPEN_CLAIM_STATUSES),
    )


# ── Review flow ─────────────────────────────────────────────────────────────

async def credit_claim_schedule_inspection(
    claim_id: str, inspector_id: str, scheduled_date: datetime
) -> ClaimResult:
    def _mutate(data: CreditClaimData) -> Optional[str]:
        if data.status not in ("pending", "under_review"):
            return "Cannot schedule inspection for claim in current status"
        data.status = "inspection_scheduled"
        data.inspection.scheduled_date = scheduled_date
        data.inspection.inspector_id = inspector_id
        return None

    return await CreditClaim.cas_update(claim_id, _mutate)


async def credit_claim_complete_inspection(
    claim_id: str,
    inspector_id: str,
    findings: str,
    inspection_result: str,
    report: Optional[str] = None,
) -> ClaimResult:
    def _mutate(data: CreditClaimData) -> Optional[str]:
        if data.status != "inspection_scheduled":
            return "Inspection not scheduled for this claim"
        if data.inspection.inspector_id != inspector_id:
            return "Only the assigned inspector can complete this inspection"
        data.status = "inspection_completed"
        data.inspection.completed_date = datetime.now(timezone.utc)
        data.inspection.findings = findings
        data.inspection.inspection_result = inspection_result
        if report:
            data.inspection.report = report
        return None

    return await CreditClaim.cas_update(claim_id, _mutate)


async def credit_claim_begin_issuance(claim_id: str) -> ClaimResult:
    """Flag the claim as mid-issuance so only one caller moves tokens for it."""

    def _mutate(data: CreditClaimData) -> Optional[str]:
        if data.status != "inspection_completed":
            return "Inspection must be completed before issuing credits"
        if data.credit_issuance.issuance_pending:
            return "Credits are already being issued for this claim"
        data.credit_issuance.issuance_pending = True
        return None

    return await CreditClaim.cas_update(claim_id, _mutate)


async def credit_claim_abort_issuance(claim_id: str) -> ClaimResult:
    def _mutate(data: CreditClaimData) -> Optional[str]:
        data.credit_issuance.issuance_pending = False
        return None

    return await CreditClaim.cas_update(claim_id, _mutate)


async def credit_claim_mark_issued(
    claim_id: str,
    reviewer_id: str,
    approved_credits: float,
    transaction_hash: Optional[str],
    comments: Optional[str] = None,
) -> ClaimResult:
    def _mutate(data: CreditClaimData) -> Optional[str]:
        if data.status != "inspection_completed":
            return "Inspection must be completed before issuing credits"
        if not data.credit_issuance.issuance_pending:
            return "Credit issuance was not started for this claim"
        now = datetime.now(timezone.utc)
        data.status = "approved"
        data.credit_issuance.approved_credits = approved_credits
        data.credit_issuance.issued_at = now
        data.credit_issuance.transaction_hash = transaction_hash
        data.credit_issuance.credits_issued = True
        data.credit_issuance.issuance_pending = False
        data.review.reviewed_at = now
        data.review.reviewed_by = reviewer_id
        data.review.comments = comments or "Credits issued and tokens transferred successfully"
        return None

    return await CreditClaim.cas_update(claim_id, _mutate)


async def credit_claim_reject(claim_id: str, reviewer_id: str, reason: str) -> ClaimResult:
    def _mutate(data: CreditClaimData) -> Optional[str]:
        if data.status == "approved":
            return "Cannot reject an already approved claim"
        if data.credit_issuance.issuance_pending:
            return "Credits are being issued for this claim"
        data.status = "rejected"
        data.review.reviewed_at = datetime.now(timezone.utc)
        data.review.reviewed_by = reviewer_id
        data.review.comments = reason
        return None

    return await CreditClaim.cas_update(claim_id, _mutate)


async def credit_claim_add_document(claim_id: str, document: SupportingDocument) -> ClaimResult:
    if document.upload_date is None:
        document.upload_date = datetime.now(timezone.utc)

    def _mutate(data: CreditClaimData) -> Optional[str]:
        data.claim_details.supporting_documents.append(document)
        return None

    return await CreditClaim.cas_update(claim_id, _mutate)


# ── Listing reservations ────────────────────────────────────────────────────

def reserve_listing(data: CreditClaimData, listing_id: str, quantity: float) -> Optional[str]:
    """Reserve *quantity* of the claim's approved credits for a new listing.

    One listing per claim at a time, and the credits reserved by non-cancelled
    listings never exceed the approved amount.
    """
    if data.status != "approved" or not data.credit_issuance.credits_issued:
        return "Only approved credits can be listed"
    if data.active_listing_id is not None:
        return "Credits already listed in marketplace"
    if not math.isfinite(quantity) or quantity <= 0:
        return "Credits to sell must be greater than zero"
    approved = data.credit_issuance.approved_credits or 0.0
    if data.credits_listed + quantity > approved:
        return "Cannot sell more credits than approved"
    data.credits_listed += quantity
    data.active_listing_id = listing_id
    return None


def release_listing(data: CreditClaimData, listing_id: str, quantity: float) -> Optional[str]:
    data.credits_listed = max(data.credits_listed - quantity, 0.0)
    if data.active_listing_id == listing_id:
        data.active_listing_id = None
    return None


async def credit_claim_reserve_listing(claim_id: str, listing_id: str, quantity: float) -> ClaimResult:
    return await CreditClaim.cas_update(claim_id, lambda data: reserve_listing(data, listing_id, quantity))


async def credit_claim_release_listing(claim_id: str, listing_id: str, quantity: float = 0.0) -> ClaimResult:
    """Give back *quantity* unsold credits and detach the listing from the claim."""
    return await CreditClaim.cas_update(claim_id, lambda data: release_listing(data, listing_id, quantity))
