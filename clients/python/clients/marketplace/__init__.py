from .api import MarketplaceApiClient
from .exceptions import (
    AlreadyListed,
    BackendRejected,
    ExceedsApproved,
    InsufficientBalance,
    InvalidAmount,
    MarketplaceClientError,
    NetworkFetchFailed,
    SelectionRequired,
    SubmissionInProgress,
    WalletUnavailable,
    WorkflowNotReady,
)
from .models import (
    AccountChanged,
    CreditClaim,
    CreditIssuance,
    Degraded,
    EligibilitySet,
    Failed,
    Listing,
    PageData,
    PageState,
    Ready,
)
from .session import SessionContext
from .wallet import TokenBalanceReader, WalletProvider, Web3WalletProvider
from .workflow import (
    ListingWorkflow,
    WorkflowState,
    eligible_claims,
    listed_claim_ids,
    max_sellable,
)

__all__ = [
    "MarketplaceApiClient",
    "AlreadyListed",
    "BackendRejected",
    "ExceedsApproved",
    "InsufficientBalance",
    "InvalidAmount",
    "MarketplaceClientError",
    "NetworkFetchFailed",
    "SelectionRequired",
    "SubmissionInProgress",
    "WalletUnavailable",
    "WorkflowNotReady",
    "AccountChanged",
    "CreditClaim",
    "CreditIssuance",
    "Degraded",
    "EligibilitySet",
    "Failed",
    "Listing",
    "PageData",
    "PageState",
    "Ready",
    "SessionContext",
    "TokenBalanceReader",
    "WalletProvider",
    "Web3WalletProvider",
    "ListingWorkflow",
    "WorkflowState",
    "eligible_claims",
    "listed_claim_ids",
    "max_sellable",
]
