from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from clients.ipfs import IpfsError, StorageGateway
from models.entities.couchbase.projects import (
    Coordinates,
    MrvReport,
    ProjectData,
    ProjectDetails,
    ProjectLocation,
)
from models.operations.projects import (
    project_add_mrv_report,
    project_count,
    project_create,
    project_get,
    project_get_by_developer,
    project_list,
    project_review,
)
from schemas.common import project_to_wire
from schemas.projects import ProjectCreateRequest, ProjectReviewRequest
from utils import log
from utils.constants import FILE_UPLOAD, MESSAGES
from utils.helpers import generate_project_id, pagination, total_pages

from .dependencies import (
    require_authenticated,
    require_developer,
    require_regulator,
    require_storage,
    upload_read,
    user_id_get,
    user_wallet_get,
)

logger = log.get_logger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


async def _project_or_404(project_id: str):
    project = await project_get(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("", status_code=201)
async def route_project_create(
    body: ProjectCreateRequest,
    user: dict = Depends(require_developer),
) -> Dict[str, Any]:
    developer_id = user_id_get(user)
    project_id = generate_project_id()
    coordinates = body.location.coordinates
    data = ProjectData(
        project_id=project_id,
        name=body.name,
        description=body.description,
        developer_id=developer_id,
        type=body.type,
        location=ProjectLocation(
            country=body.location.country,
            state=body.location.state,
            address=body.location.address,
            coordinates=Coordinates(**coordinates.model_dump()) if coordinates else None,
        ),
        project_details=ProjectDetails(**body.project_details.model_dump()),
        status="submitted",
    )
    project = await project_create(project_id, developer_id, data)
    logger.info(f"Project {project.id} submitted by {developer_id}")
    return {
        "success": True,
        "message": "Project submitted successfully",
        "project": project_to_wire(project),
    }


@router.get("/my-projects")
async def route_project_my_projects(
    user: dict = Depends(require_developer),
) -> Dict[str, Any]:
    projects = await project_get_by_developer(user_id_get(user))
    return {"success": True, "projects": [project_to_wire(p) for p in projects]}


@router.get("")
async def route_project_list(
    status: Optional[str] = Query(None),
    page: int = Query(1),
    limit: int = Query(10),
    user: dict = Depends(require_regulator),
) -> Dict[str, Any]:
    """Review queue for regulators."""
    page, limit, skip = pagination(page, limit)
    projects = await project_list(status, limit=limit, offset=skip)
    total = await project_count(status)
    return {
        "success": True,
        "projects": [project_to_wire(p) for p in projects],
        "totalPages": total_pages(total, limit),
        "currentPage": page,
        "total": total,
    }


@router.get("/{project_id}")
async def route_project_get(
    project_id: str,
    user: dict = Depends(require_authenticated),
) -> Dict[str, Any]:
    project = await _project_or_404(project_id)
    return {"success": True, "project": project_to_wire(project)}


@router.post("/{project_id}/review")
async def route_project_review(
    project_id: str,
    body: ProjectReviewRequest,
    user: dict = Depends(require_regulator),
) -> Dict[str, Any]:
    await _project_or_404(project_id)
    project, error = await project_review(project_id, user_id_get(user), body.decision, body.comments)
    if error is not None:
        raise HTTPException(status_code=400, detail=error)
    logger.info(f"Project {project_id} reviewed: {body.decision}")
    return {
        "success": True,
        "message": f"Project {body.decision.replace('_', ' ')}",
        "project": project_to_wire(project),
    }


@router.post("/{project_id}/mrv")
async def route_project_mrv_upload(
    project_id: str,
    files: List[UploadFile] = File(...),
    report_name: Optional[str] = Form(None, alias="reportName"),
    description: Optional[str] = Form(None),
    user: dict = Depends(require_developer),
    storage: StorageGateway = Depends(require_storage),
) -> Dict[str, Any]:
    """Pin the MRV files and a metadata document describing them, then
    attach the report to the project."""
    developer_id = user_id_get(user)
    project = await _project_or_404(project_id)
    if project.data.developer_id != developer_id:
        raise HTTPException(status_code=403, detail="Not authorized to upload MRV data for this project")
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(files) > FILE_UPLOAD["MAX_FILES"]:
        raise HTTPException(status_code=400, detail=f"At most {FILE_UPLOAD['MAX_FILES']} files per upload")

    name = report_name or f"MRV report {len(project.data.mrv_data) + 1}"
    uploaded = []
    try:
        for file in files:
            content = await upload_read(file)
            cid = await storage.store_file(content, file.filename or "mrv", {"projectId": project_id})
            uploaded.append({"fileName": file.filename, "cid": cid, "size": len(content)})

        metadata = {
            "projectId": project_id,
            "reportName": name,
            "description": description,
            "uploader": user_wallet_get(user) or developer_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "files": uploaded,
        }
        metadata_cid = await storage.store_json(metadata, name=f"{project_id}-mrv-metadata")
    except IpfsError as e:
        logger.error(f"MRV upload for project {project_id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=MESSAGES["FILE_UPLOAD_ERROR"])

    report = MrvReport(
        report_name=name,
        description=description,
        metadata_cid=metadata_cid,
        files=[f["cid"] for f in uploaded],
        uploaded_by=developer_id,
    )
    project, error = await project_add_mrv_report(project_id, report)
    if error is not None:
        raise HTTPException(status_code=409, detail=error)

    return {
        "success": True,
        "message": "MRV data submitted successfully",
        "metadataCid": metadata_cid,
        "files": uploaded,
        "project": project_to_wire(project),
    }
