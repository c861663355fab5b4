from datetime import datetime, timezone
from typing import List, Literal, Optional, Tuple

from models.entities.couchbase.projects import MrvReport, Project, ProjectData


async def project_create(project_id: str, developer_id: str, data: ProjectData) -> Project:
    data.project_id = project_id
    data.developer_id = developer_id
    if data.status == "submitted" and data.verification.submitted_at is None:
        data.verification.submitted_at = datetime.now(timezone.utc)
    return await Project.create(data, key=project_id, user_id=developer_id)


async def project_get(project_id: str) -> Optional[Project]:
    return await Project.get(project_id)


async def project_get_by_developer(developer_id: str) -> List[Project]:
    return await Project.find("developer_id = $developer_id", developer_id=developer_id)


def _status_where(status: Optional[str]) -> str:
    return "status = $status" if status else ""


async def project_list(status: Optional[str] = None, limit: int = 10, offset: int = 0) -> List[Project]:
    return await Project.find(_status_where(status), limit=limit, offset=offset, status=status)


async def project_count(status: Optional[str] = None) -> int:
    return await Project.count(_status_where(status), status=status)


async def project_review(
    project_id: str,
    reviewer_id: str,
    decision: Literal["under_review", "approved", "rejected"],
    comments: Optional[str] = None,
) -> Tuple[Optional[Project], Optional[str]]:
    def _mutate(data: ProjectData) -> Optional[str]:
        if data.status in ("active", "completed"):
            return f"Cannot review project in status {data.status}"
        data.status = decision
        data.verification.reviewed_by = reviewer_id
        data.verification.reviewed_at = datetime.now(timezone.utc)
        data.verification.comments = comments
        return None

    return await Project.cas_update(project_id, _mutate)


async def project_set_status(project_id: str, status: str) -> Tuple[Optional[Project], Optional[str]]:
    def _mutate(data: ProjectData) -> Optional[str]:
        data.status = status
        return None

    return await Project.cas_update(project_id, _mutate)


async def project_add_mrv_report(project_id: str, report: MrvReport) -> Tuple[Optional[Project], Optional[str]]:
    if report.uploaded_at is None:
        report.uploaded_at = datetime.now(timezone.utc)

    def _mutate(data: ProjectData) -> Optional[str]:
        data.mrv_data.append(report)
        return None

    return await Project.cas_update(project_id, _mutate)
