from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, model_validator

from .common import RequestModel, check_date_order

ProjectTypeIn = Literal[
    "renewable_energy", "afforestation", "energy_efficiency",
    "waste_management", "transportation", "industrial",
]


class CoordinatesIn(RequestModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class LocationIn(RequestModel):
    country: str = Field(min_length=1)
    state: str = Field(min_length=1)
    address: Optional[str] = None
    coordinates: Optional[CoordinatesIn] = None


class ProjectDetailsIn(RequestModel):
    start_date: datetime
    end_date: datetime
    expected_credits: float = Field(gt=0)
    methodology: Optional[str] = None
    baseline: Optional[str] = None

    @model_validator(mode="after")
    def end_after_start(self) -> "ProjectDetailsIn":
        check_date_order(self.start_date, self.end_date, "End date must be after start date")
        return self


class ProjectCreateRequest(RequestModel):
    name: str = Field(min_length=3)
    description: str = Field(min_length=10)
    type: ProjectTypeIn
    location: LocationIn
    project_details: ProjectDetailsIn


class ProjectReviewRequest(RequestModel):
    decision: Literal["under_review", "approved", "rejected"]
    comments: Optional[str] = Field(default=None, max_length=1000)
