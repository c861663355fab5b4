from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import MarketplaceClientError

LISTED_STATUSES = frozenset({"active", "partial"})


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreditIssuance(_WireModel):
    credits_issued: bool = Field(False, alias="creditsIssued")
    approved_credits: float = Field(0, alias="approvedCredits")
    transaction_hash: Optional[str] = Field(None, alias="transactionHash")


class CreditClaim(_WireModel):
    id: str = Field(alias="_id")
    claim_id: Optional[str] = Field(None, alias="claimId")
    project: Any = None
    status: str
    credit_issuance: CreditIssuance = Field(default_factory=CreditIssuance, alias="creditIssuance")

    @property
    def approved_credits(self) -> float:
        return self.credit_issuance.approved_credits

    def is_issued(self) -> bool:
        return (
            self.status == "approved"
            and self.credit_issuance.credits_issued
            and self.credit_issuance.approved_credits > 0
        )


class Listing(_WireModel):
    id: str = Field(alias="_id")
    listing_id: Optional[str] = Field(None, alias="listingId")
    credit_claim: Optional[str] = Field(None, alias="creditClaim")
    status: str
    credits_available: float = Field(0, alias="creditsAvailable")
    credits_listed: float = Field(0, alias="creditsListed")
    price_per_credit: Optional[float] = Field(None, alias="pricePerCredit")

    @field_validator("credit_claim", mode="before")
    @classmethod
    def _claim_reference(cls, value: Any) -> Any:
        # the backend may populate the claim reference
        if isinstance(value, dict):
            return value.get("_id") or value.get("id")
        return value

    def is_listed(self) -> bool:
        return self.status in LISTED_STATUSES


EligibilitySet = List[CreditClaim]


# ── Page state ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PageData:
    """What the three reads produced. ``None`` marks a branch that failed."""
    claims: Optional[List[CreditClaim]] = None
    listings: Optional[List[Listing]] = None
    wallet_address: Optional[str] = None
    balance: Optional[float] = None


@dataclass(frozen=True)
class Ready:
    data: PageData


@dataclass(frozen=True)
class Degraded:
    data: PageData
    failures: Dict[str, MarketplaceClientError] = field(default_factory=dict)


@dataclass(frozen=True)
class Failed:
    failures: Dict[str, MarketplaceClientError] = field(default_factory=dict)


PageState = Union[Ready, Degraded, Failed]


@dataclass(frozen=True)
class AccountChanged:
    """Wallet provider reported a new account list."""
    accounts: List[str]

    @property
    def address(self) -> str:
        return self.accounts[0] if self.accounts else ""
