from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from clients.blockchain import BlockchainGateway, is_address
from clients.ipfs import IpfsError, StorageGateway
from models.entities.couchbase.credit_claims import ClaimDetails, ReportingPeriod, SupportingDocument
from models.operations.credit_claims import (
    credit_claim_abort_issuance,
    credit_claim_add_document,
    credit_claim_begin_issuance,
    credit_claim_complete_inspection,
    credit_claim_count,
    credit_claim_create,
    credit_claim_find_open_for_project,
    credit_claim_get,
    credit_claim_get_by_developer,
    credit_claim_list,
    credit_claim_mark_issued,
    credit_claim_reject,
    credit_claim_schedule_inspection,
)
from models.operations.projects import project_get, project_set_status
from models.operations.users import user_get
from schemas.claims import (
    ClaimCreateRequest,
    CompleteInspectionRequest,
    IssueCreditsRequest,
    RejectClaimRequest,
    ScheduleInspectionRequest,
)
from schemas.common import claim_to_wire
from utils import log
from utils.constants import FILE_UPLOAD, MESSAGES, USER_ROLES
from utils.helpers import generate_claim_id, pagination, total_pages

from .dependencies import (
    chain_call,
    require_authenticated,
    require_blockchain,
    require_developer,
    require_regulator,
    require_storage,
    upload_read,
    user_id_get,
    user_role_get,
)

logger = log.get_logger(__name__)

router = APIRouter(prefix="/claims", tags=["claims"])


# ── Helpers ───────────────────────────────────────────────────────────────────

async def _claim_or_404(claim_id: str):
    claim = await credit_claim_get(claim_id)
    if not claim:
        raise HTTPException(status_code=404, detail="Credit claim not found")
    return claim


def _raise_on_error(error: Optional[str]) -> None:
    if error is None:
        return
    status_code = 409 if error.startswith("Concurrent update conflict") else 400
    raise HTTPException(status_code=status_code, detail=error)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("", status_code=201)
async def route_claim_create(
    body: ClaimCreateRequest,
    user: dict = Depends(require_developer),
) -> Dict[str, Any]:
    developer_id = user_id_get(user)

    project = await project_get(body.project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if project.data.developer_id != developer_id:
        raise HTTPException(status_code=403, detail="Not authorized to claim credits for this project")
    if project.data.status != "approved":
        raise HTTPException(status_code=400, detail="Only approved projects can claim credits")
    if not project.data.mrv_data:
        raise HTTPException(status_code=400, detail="Project must have MRV data before claiming credits")
    if await credit_claim_find_open_for_project(project.id):
        raise HTTPException(status_code=400, detail="A claim is already pending for this project")

    if body.credits_requested <= 0:
        raise HTTPException(status_code=400, detail="Credits requested must be greater than zero")
    if body.credits_requested > project.data.project_details.expected_credits:
        raise HTTPException(status_code=400, detail="Credits requested cannot exceed expected credits")

    details = ClaimDetails(
        mrv_data_refs=body.mrv_data_refs,
        credits_requested=body.credits_requested,
        reporting_period=ReportingPeriod(
            start_date=body.reporting_period.start_date,
            end_date=body.reporting_period.end_date,
        ),
    )
    claim = await credit_claim_create(generate_claim_id(), project.id, developer_id, details)
    logger.info(f"Claim {claim.id} submitted for project {project.id}")
    return {
        "success": True,
        "message": "Credit claim submitted successfully",
        "claim": claim_to_wire(claim),
    }


@router.get("/my-claims")
async def route_claim_my_claims(
    user: dict = Depends(require_developer),
) -> Dict[str, Any]:
    claims = await credit_claim_get_by_developer(user_id_get(user))
    return {"success": True, "claims": [claim_to_wire(claim) for claim in claims]}


@router.get("")
async def route_claim_list(
    status: Optional[str] = Query(None),
    page: int = Query(1),
    limit: int = Query(10),
    user: dict = Depends(require_regulator),
) -> Dict[str, Any]:
    page, limit, skip = pagination(page, limit)
    claims = await credit_claim_list(status, limit=limit, offset=skip)
    total = await credit_claim_count(status)
    return {
        "success": True,
        "claims": [claim_to_wire(claim) for claim in claims],
        "totalPages": total_pages(total, limit),
        "currentPage": page,
        "total": total,
    }


@router.get("/{claim_id}")
async def route_claim_get(
    claim_id: str,
    user: dict = Depends(require_authenticated),
) -> Dict[str, Any]:
    claim = await _claim_or_404(claim_id)
    is_owner = claim.data.developer_id == user_id_get(user)
    if not is_owner and user_role_get(user) != USER_ROLES["REGULATORY_BODY"]:
        raise HTTPException(status_code=403, detail=MESSAGES["FORBIDDEN"])
    return {"success": True, "claim": claim_to_wire(claim)}


# ── Review flow ───────────────────────────────────────────────────────────────

@router.post("/{claim_id}/schedule-inspection")
async def route_claim_schedule_inspection(
    claim_id: str,
    body: ScheduleInspectionRequest,
    user: dict = Depends(require_regulator),
) -> Dict[str, Any]:
    claim = await _claim_or_404(claim_id)
    if claim.data.status not in ("pending", "under_review"):
        raise HTTPException(status_code=400, detail="Cannot schedule inspection for claim in current status")

    scheduled = _as_utc(body.inspection_date)
    if scheduled <= datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="Inspection date must be in the future")

    claim, error = await credit_claim_schedule_inspection(claim_id, user_id_get(user), scheduled)
    _raise_on_error(error)
    return {
        "success": True,
        "message": "Inspection scheduled successfully",
        "claim": claim_to_wire(claim),
    }


@router.post("/{claim_id}/complete-inspection")
async def route_claim_complete_inspection(
    claim_id: str,
    body: CompleteInspectionRequest,
    user: dict = Depends(require_regulator),
) -> Dict[str, Any]:
    inspector_id = user_id_get(user)
    claim = await _claim_or_404(claim_id)
    if claim.data.status != "inspection_scheduled":
        raise HTTPException(status_code=400, detail="Inspection not scheduled for this claim")
    if claim.data.inspection.inspector_id != inspector_id:
        raise HTTPException(status_code=403, detail="Only the assigned inspector can complete this inspection")

    claim, error = await credit_claim_complete_inspection(
        claim_id, inspector_id, body.findings, body.inspection_result, body.report
    )
    _raise_on_error(error)
    return {
        "success": True,
        "message": "Inspection completed successfully",
        "claim": claim_to_wire(claim),
    }


@router.post("/{claim_id}/issue-credits")
async def route_claim_issue_credits(
    claim_id: str,
    body: IssueCreditsRequest,
    user: dict = Depends(require_regulator),
    chain: BlockchainGateway = Depends(require_blockchain),
) -> Dict[str, Any]:
    """Mint the approved amount to the developer's wallet and mark the claim
    issued. The project is completed once its credits are out."""
    claim = await _claim_or_404(claim_id)
    if claim.data.status != "inspection_completed":
        raise HTTPException(status_code=400, detail="Inspection must be completed before issuing credits")
    if claim.data.inspection.inspection_result not in ("passed", "partial"):
        raise HTTPException(status_code=400, detail="Cannot issue credits for failed inspection")

    approved = body.approved_credits
    if approved <= 0:
        raise HTTPException(status_code=400, detail="Approved credits must be greater than zero")
    if approved > claim.data.claim_details.credits_requested:
        raise HTTPException(status_code=400, detail="Approved credits cannot exceed requested credits")

    developer = await user_get(claim.data.developer_id)
    wallet = developer.data.wallet_address if developer else None
    if not is_address(wallet):
        raise HTTPException(status_code=400, detail="Invalid or missing developer wallet address")

    _, error = await credit_claim_begin_issuance(claim_id)
    if error is not None:
        logger.warning(f"Issuance for claim {claim_id} refused: {error}")
        _raise_on_error(error)

    try:
        transfer = await chain_call(chain.token_transfer, wallet, approved)
    except Exception as e:
        logger.error(f"Issuing {approved} credits for claim {claim_id} failed: {e}", exc_info=True)
        _, abort_error = await credit_claim_abort_issuance(claim_id)
        if abort_error is not None:
            logger.error(f"Issuance flag on claim {claim_id} not cleared: {abort_error}")
        raise HTTPException(status_code=502, detail=MESSAGES["BLOCKCHAIN_ERROR"])

    claim, error = await credit_claim_mark_issued(
        claim_id, user_id_get(user), approved, transfer.tx_hash, body.comments
    )
    if error is not None:
        # tokens are already out, the record must be fixed by hand
        logger.error(f"Claim {claim_id} not marked issued after transfer {transfer.tx_hash}: {error}")
        _raise_on_error(error)

    _, project_error = await project_set_status(claim.data.project_id, "completed")
    if project_error is not None:
        logger.warning(f"Project {claim.data.project_id} not marked completed: {project_error}")

    logger.info(f"Issued {approved} credits for claim {claim_id} in {transfer.tx_hash}")
    return {
        "success": True,
        "message": "Credits issued and tokens transferred successfully",
        "txHash": transfer.tx_hash,
        "claim": claim_to_wire(claim),
    }


@router.post("/{claim_id}/reject")
async def route_claim_reject(
    claim_id: str,
    body: RejectClaimRequest,
    user: dict = Depends(require_regulator),
) -> Dict[str, Any]:
    await _claim_or_404(claim_id)
    claim, error = await credit_claim_reject(claim_id, user_id_get(user), body.reason)
    _raise_on_error(error)
    return {
        "success": True,
        "message": "Credit claim rejected",
        "claim": claim_to_wire(claim),
    }


@router.post("/{claim_id}/documents")
async def route_claim_upload_documents(
    claim_id: str,
    files: List[UploadFile] = File(...),
    user: dict = Depends(require_developer),
    storage: StorageGateway = Depends(require_storage),
) -> Dict[str, Any]:
    claim = await _claim_or_404(claim_id)
    if claim.data.developer_id != user_id_get(user):
        raise HTTPException(status_code=403, detail="Not authorized to upload documents for this claim")
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > FILE_UPLOAD["MAX_FILES"]:
        raise HTTPException(status_code=400, detail=f"At most {FILE_UPLOAD['MAX_FILES']} files per upload")

    documents = []
    for file in files:
        content = await upload_read(file)
        try:
            cid = await storage.store_file(content, file.filename or "document", {"claimId": claim_id})
        except IpfsError as e:
            logger.error(f"Upload of {file.filename} for claim {claim_id} failed: {e}", exc_info=True)
            raise HTTPException(status_code=502, detail=MESSAGES["FILE_UPLOAD_ERROR"])
        document = SupportingDocument(file_name=file.filename or "document", file_hash=cid)
        claim, error = await credit_claim_add_document(claim_id, document)
        _raise_on_error(error)
        documents.append(document.model_dump(mode="json"))

    return {
        "success": True,
        "message": "Documents uploaded successfully",
        "documents": documents,
        "claim": claim_to_wire(claim),
    }
