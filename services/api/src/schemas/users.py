from typing import Literal, Optional

from pydantic import Field

from utils.constants import ETH_ADDRESS_PATTERN

from .common import RequestModel


class OnboardingRequest(RequestModel):
    role: Literal["project_developer", "credit_buyer", "regulatory_body"]
    name: str = Field(min_length=2)
    organization: Optional[str] = Field(default=None, min_length=2)
    wallet_address: str = Field(pattern=ETH_ADDRESS_PATTERN)
