from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData

ProjectType = Literal[
    "renewable_energy", "afforestation", "energy_efficiency",
    "waste_management", "transportation", "industrial",
]
ProjectStatus = Literal[
    "draft", "submitted", "under_review", "approved", "rejected", "active", "completed"
]


class Coordinates(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ProjectLocation(BaseModel):
    country: str
    state: str
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class ProjectDetails(BaseModel):
    start_date: datetime
    end_date: datetime
    expected_credits: float
    methodology: Optional[str] = None
    baseline: Optional[str] = None


class ProjectDocument(BaseModel):
    file_name: str
    file_hash: str
    file_type: Optional[str] = None
    upload_date: Optional[datetime] = None


class ProjectVerification(BaseModel):
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    comments: Optional[str] = None


class MrvReport(BaseModel):
    report_name: str
    description: Optional[str] = None
    metadata_cid: str
    files: List[str] = []
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None


class ProjectData(BaseCouchbaseEntityData):
    project_id: str
    name: str
    description: str
    developer_id: str
    type: ProjectType
    location: ProjectLocation
    project_details: ProjectDetails
    documentation: List[ProjectDocument] = []
    status: ProjectStatus = "draft"
    verification: ProjectVerification = ProjectVerification()
    mrv_data: List[MrvReport] = []


class Project(BaseModelCouchbase[ProjectData]):
    _collection_name = "projects"
