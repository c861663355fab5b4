from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from .common import RequestModel, check_date_order


class ReportingPeriodIn(RequestModel):
    start_date: datetime
    end_date: datetime

    @model_validator(mode="after")
    def end_after_start(self) -> "ReportingPeriodIn":
        check_date_order(self.start_date, self.end_date, "End date must be after start date")
        return self


class ClaimCreateRequest(RequestModel):
    project_id: str = Field(min_length=1)
    credits_requested: float
    reporting_period: ReportingPeriodIn
    mrv_data_refs: List[str] = []


class ScheduleInspectionRequest(RequestModel):
    inspection_date: datetime


class CompleteInspectionRequest(RequestModel):
    findings: str = Field(min_length=1)
    inspection_result: Literal["passed", "failed", "partial"]
    report: Optional[str] = None


class IssueCreditsRequest(RequestModel):
    approved_credits: float
    comments: Optional[str] = Field(default=None, max_length=1000)


class RejectClaimRequest(RequestModel):
    reason: str = Field(min_length=1, max_length=1000)
