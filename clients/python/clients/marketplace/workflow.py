"""Seller-side listing workflow.

Decides which of a seller's approved credit claims may be listed, how much of
each can be sold against the wallet's token balance, and submits the
listing. One ``ListingWorkflow`` per user session:

    IDLE -> LOADING -> READY -> SELECTING -> SUBMITTING -> SUCCESS -> READY
                                                       \\-> FAILED  -> READY

Opening the page issues three independent reads (claims, listings, wallet)
and always lands in READY, tagging the result as ``Ready``, ``Degraded`` or
``Failed``. Only one submission may be in flight per session because the
backend has no idempotency key for listing creation.
"""

import asyncio
import contextlib
import logging
import math
from enum import Enum
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set, Tuple, TypeVar

from clients.blockchain import CARBON_TOKEN_ADDRESS

from .api import MarketplaceApiClient
from .exceptions import (
    AlreadyListed,
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
    Degraded,
    EligibilitySet,
    Failed,
    Listing,
    PageData,
    PageState,
    Ready,
)
from .session import SessionContext
from .wallet import ACCOUNTS_CHANGED, TokenBalanceReader, WalletProvider

logger = logging.getLogger(__name__)

R = TypeVar("R")

BRANCHES = ("claims", "listings", "wallet")


class WorkflowState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    SELECTING = "selecting"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


# ── Pure core ───────────────────────────────────────────────────────────────

def listed_claim_ids(listings: Iterable[Listing]) -> Set[str]:
    """Claim ids referenced by listings that are still active or partial."""
    return {l.credit_claim for l in listings if l.is_listed() and l.credit_claim}


def eligible_claims(claims: Iterable[CreditClaim], listings: Iterable[Listing]) -> EligibilitySet:
    listed = listed_claim_ids(listings)
    return [c for c in claims if c.is_issued() and c.id not in listed]


def max_sellable(claim: CreditClaim, balance: float) -> float:
    return min(claim.credit_issuance.approved_credits, balance)


# ── Workflow ────────────────────────────────────────────────────────────────

class ListingWorkflow:
    def __init__(
        self,
        session: SessionContext,
        api: Optional[MarketplaceApiClient] = None,
        provider: Optional[WalletProvider] = None,
        balance_reader: Optional[TokenBalanceReader] = None,
        token_address: str = CARBON_TOKEN_ADDRESS,
    ):
        self.session = session
        self.api = api or MarketplaceApiClient(session)
        self.provider = provider
        if balance_reader is None and provider is not None:
            balance_reader = TokenBalanceReader(provider, token_address)
        self.balance_reader = balance_reader

        self.state = WorkflowState.IDLE
        self.history: List[WorkflowState] = [self.state]
        self.page_state: Optional[PageState] = None
        self.claims: List[CreditClaim] = []
        self.listings: List[Listing] = []
        self.wallet_address: Optional[str] = session.wallet_address
        self.balance: float = 0.0
        self.selected_claim: Optional[CreditClaim] = None
        self.quantity: float = 0.0
        self.last_error: Optional[MarketplaceClientError] = None

        self._events: "asyncio.Queue[AccountChanged]" = asyncio.Queue()
        self._pump: Optional[asyncio.Task] = None
        self._subscribed = False

    async def __aenter__(self) -> "ListingWorkflow":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ── State bookkeeping ────────────────────────────────────────────────────

    def _enter(self, state: WorkflowState) -> None:
        logger.debug("Listing workflow %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _snapshot(self) -> Tuple[Any, ...]:
        return (
            self.state,
            self.page_state,
            self.claims,
            self.listings,
            self.wallet_address,
            self.balance,
            self.selected_claim,
            self.quantity,
        )

    def _restore(self, snapshot: Tuple[Any, ...]) -> None:
        (
            state,
            self.page_state,
            self.claims,
            self.listings,
            self.wallet_address,
            self.balance,
            self.selected_claim,
            self.quantity,
        ) = snapshot
        if state != self.state:
            self._enter(state)

    async def _bounded(self, call: Awaitable[R]) -> R:
        try:
            async with asyncio.timeout(self.session.timeout):
                return await call
        except TimeoutError as e:
            raise NetworkFetchFailed(f"Timed out after {self.session.timeout}s") from e

    @property
    def eligible(self) -> EligibilitySet:
        return eligible_claims(self.claims, self.listings)

    # ── Reads ────────────────────────────────────────────────────────────────

    async def load_eligible_claims(self, user_id: str) -> EligibilitySet:
        """Claims the user may list right now. Read-only."""
        if self.session.user_id is not None and user_id != self.session.user_id:
            raise ValueError(f"Session belongs to user {self.session.user_id}, not {user_id}")

        claims, listings = await asyncio.gather(
            self._bounded(self.api.get_my_claims()),
            self._bounded(self.api.get_my_listings()),
            return_exceptions=True,
        )
        for result in (claims, listings):
            if isinstance(result, BaseException):
                raise _as_client_error(result) from result
        return eligible_claims(claims, listings)

    async def resolve_wallet(self) -> Tuple[str, float]:
        """Connected account and its token balance, asking for a connection
        when none exists yet."""
        if self.provider is None or self.balance_reader is None:
            raise WalletUnavailable("No wallet provider detected")

        accounts = await self._bounded(self.provider.request("eth_accounts"))
        if not accounts:
            accounts = await self._bounded(self.provider.request("eth_requestAccounts"))
        if not accounts:
            raise WalletUnavailable("No wallet account was authorized")

        address = accounts[0]
        balance = await self._bounded(self.balance_reader.balance_of(address))
        return address, balance

    async def _load(self) -> PageState:
        results = await asyncio.gather(
            self._bounded(self.api.get_my_claims()),
            self._bounded(self.api.get_my_listings()),
            self.resolve_wallet(),
            return_exceptions=True,
        )

        failures: Dict[str, MarketplaceClientError] = {}
        for branch, result in zip(BRANCHES, results):
            if isinstance(result, BaseException):
                failures[branch] = _as_client_error(result)
                logger.warning("Listing page read %s failed: %s", branch, failures[branch])

        claims, listings, wallet = results
        data = PageData(
            claims=None if "claims" in failures else claims,
            listings=None if "listings" in failures else listings,
            wallet_address=None if "wallet" in failures else wallet[0],
            balance=None if "wallet" in failures else wallet[1],
        )

        self.claims = data.claims if data.claims is not None else []
        self.listings = data.listings if data.listings is not None else []
        if "wallet" in failures:
            self.balance = 0.0
        else:
            self.wallet_address, self.balance = data.wallet_address, data.balance

        if not failures:
            page: PageState = Ready(data)
        elif len(failures) == len(BRANCHES):
            page = Failed(failures)
        else:
            page = Degraded(data, failures)
        self.page_state = page
        return page

    async def open(self) -> PageState:
        """Load claims, listings and the wallet, then enter READY."""
        if self.state == WorkflowState.SUBMITTING:
            raise SubmissionInProgress("A listing submission is in progress")

        snapshot = self._snapshot()
        self._enter(WorkflowState.LOADING)
        try:
            page = await self._load()
        except asyncio.CancelledError:
            self._restore(snapshot)
            raise

        self.selected_claim = None
        self.quantity = 0.0
        self._subscribe()
        self._enter(WorkflowState.READY)
        return page

    async def refresh(self) -> PageState:
        return await self.open()

    # ── Selection & submission ───────────────────────────────────────────────

    def select(self, claim: CreditClaim) -> float:
        """Select *claim* and preset the quantity to the most that can be sold."""
        if self.state == WorkflowState.SUBMITTING:
            raise SubmissionInProgress("A listing submission is in progress")
        if self.state not in (WorkflowState.READY, WorkflowState.SELECTING):
            raise WorkflowNotReady(f"Cannot select a claim while {self.state.value}")

        self.selected_claim = claim
        self.quantity = max_sellable(claim, self.balance)
        if self.state != WorkflowState.SELECTING:
            self._enter(WorkflowState.SELECTING)
        return self.quantity

    def _validate(self, claim: Optional[CreditClaim], quantity: float) -> CreditClaim:
        if claim is None:
            raise SelectionRequired("Please select a credit claim")
        if claim.id not in {c.id for c in self.eligible}:
            raise AlreadyListed("Credits already listed in marketplace")
        if not math.isfinite(quantity) or quantity <= 0:
            raise InvalidAmount("Please enter a valid amount")
        if quantity > claim.credit_issuance.approved_credits:
            raise ExceedsApproved("Cannot sell more credits than approved")
        if quantity > self.balance:
            raise InsufficientBalance(
                f"Insufficient token balance. You have {self.balance} credits but trying to sell {quantity}"
            )
        return claim

    async def submit_listing(
        self, claim: Optional[CreditClaim] = None, quantity: Optional[float] = None
    ) -> Optional[Listing]:
        """Validate locally, post the listing, then refresh the page.

        Local validation failures raise before any network call and leave the
        state unchanged. A backend refusal raises ``BackendRejected`` and
        returns the workflow to READY; any other failure of the call is
        raised as ``NetworkFetchFailed`` the same way.
        """
        if self.state == WorkflowState.SUBMITTING:
            raise SubmissionInProgress("A listing submission is in progress")
        if self.state not in (WorkflowState.READY, WorkflowState.SELECTING):
            raise WorkflowNotReady(f"Cannot submit while {self.state.value}")

        if claim is not None and (self.selected_claim is None or self.selected_claim.id != claim.id):
            self.select(claim)
        if quantity is None:
            quantity = self.quantity
        else:
            self.quantity = quantity

        claim = self._validate(self.selected_claim, quantity)

        snapshot = self._snapshot()
        self._enter(WorkflowState.SUBMITTING)
        try:
            response = await self._bounded(self.api.list_credits(claim.id, quantity))
        except asyncio.CancelledError:
            self._restore(snapshot)
            raise
        except MarketplaceClientError as e:
            logger.warning("Listing claim %s rejected: %s", claim.id, e)
            self.last_error = e
            self._enter(WorkflowState.FAILED)
            self._enter(WorkflowState.READY)
            raise
        except Exception as e:
            error = _as_client_error(e)
            logger.error("Listing claim %s failed: %s", claim.id, e, exc_info=True)
            self.last_error = error
            self._enter(WorkflowState.FAILED)
            self._enter(WorkflowState.READY)
            raise error from e

        self.last_error = None
        self._enter(WorkflowState.SUCCESS)
        logger.info("Listed %s credits from claim %s", quantity, claim.id)

        listing = response.get("listing")
        try:
            await self._load()
        finally:
            self.selected_claim = None
            self.quantity = 0.0
            self._enter(WorkflowState.READY)
        return Listing.model_validate(listing) if listing else None

    # ── Wallet account changes ───────────────────────────────────────────────

    def _subscribe(self) -> None:
        if self._subscribed or self.provider is None:
            return
        self.provider.on(ACCOUNTS_CHANGED, self._on_accounts_changed)
        self._pump = asyncio.get_running_loop().create_task(self._pump_events())
        self._subscribed = True

    def _on_accounts_changed(self, accounts: List[str]) -> None:
        self._events.put_nowait(AccountChanged(list(accounts)))

    async def _pump_events(self) -> None:
        while True:
            message = await self._events.get()
            try:
                await self.handle_account_changed(message)
            finally:
                self._events.task_done()

    async def handle_account_changed(self, message: AccountChanged) -> None:
        """Revalidate the balance for the newly reported account."""
        if not message.address:
            self.wallet_address = ""
            self.balance = 0.0
            return

        self.wallet_address = message.address
        if self.balance_reader is None:
            self.balance = 0.0
            return
        try:
            self.balance = await self._bounded(self.balance_reader.balance_of(message.address))
        except Exception as e:
            logger.warning("Balance refresh for %s failed: %s", message.address, e)
            self.balance = 0.0

    async def settle(self) -> None:
        """Wait until queued account-change messages have been handled."""
        await self._events.join()

    async def close(self) -> None:
        if self._subscribed and self.provider is not None:
            self.provider.remove_listener(ACCOUNTS_CHANGED, self._on_accounts_changed)
        self._subscribed = False
        if self._pump is not None:
            self._pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump
            self._pump = None


def _as_client_error(error: BaseException) -> MarketplaceClientError:
    if isinstance(error, MarketplaceClientError):
        return error
    return NetworkFetchFailed(str(error) or type(error).__name__)
