from __future__ import annotations

import asyncio

import pytest

from clients.marketplace import (
    AlreadyListed,
    BackendRejected,
    CreditClaim,
    Degraded,
    ExceedsApproved,
    Failed,
    InsufficientBalance,
    InvalidAmount,
    Listing,
    ListingWorkflow,
    NetworkFetchFailed,
    Ready,
    SelectionRequired,
    SessionContext,
    SubmissionInProgress,
    WalletUnavailable,
    WorkflowNotReady,
    WorkflowState,
    eligible_claims,
    max_sellable,
)

WALLET = "0x" + "ab" * 20
OTHER_WALLET = "0x" + "cd" * 20


def _claim(claim_id: str, approved: float = 100.0, issued: bool = True, status: str = "approved") -> CreditClaim:
    return CreditClaim.model_validate({
        "_id": claim_id,
        "status": status,
        "creditIssuance": {"creditsIssued": issued, "approvedCredits": approved},
    })


def _listing(listing_id: str, claim_id: str, status: str = "active") -> Listing:
    return Listing.model_validate({
        "_id": listing_id,
        "creditClaim": claim_id,
        "status": status,
        "creditsAvailable": 10,
        "creditsListed": 10,
    })


class FakeApi:
    def __init__(self, claims=(), listings=(), fail=(), list_error=None, delay=0.0):
        self.claims = list(claims)
        self.listings = list(listings)
        self.fail = set(fail)
        self.list_error = list_error
        self.delay = delay
        self.list_calls = []
        self.gate = None

    async def get_my_claims(self):
        await asyncio.sleep(self.delay)
        if "claims" in self.fail:
            raise NetworkFetchFailed("claims unavailable")
        return list(self.claims)

    async def get_my_listings(self):
        if "listings" in self.fail:
            raise NetworkFetchFailed("listings unavailable")
        return list(self.listings)

    async def list_credits(self, claim_id, credits_to_sell):
        self.list_calls.append((claim_id, credits_to_sell))
        if self.gate is not None:
            await self.gate.wait()
        if self.list_error is not None:
            raise self.list_error
        return {"success": True, "message": "Credits listed successfully"}


class FakeProvider:
    def __init__(self, accounts=(WALLET,), authorized=True):
        self.accounts = list(accounts)
        self.authorized = authorized
        self.handlers = []
        self.calls = []

    async def request(self, method, params=None):
        self.calls.append(method)
        if method == "eth_accounts":
            return list(self.accounts) if self.authorized else []
        if method == "eth_requestAccounts":
            self.authorized = True
            return list(self.accounts)
        raise WalletUnavailable(f"unsupported {method}")

    def on(self, event, handler):
        self.handlers.append(handler)

    def remove_listener(self, event, handler):
        self.handlers.remove(handler)

    def emit(self, accounts):
        for handler in list(self.handlers):
            handler(accounts)


class FakeBalances:
    def __init__(self, balances):
        self.balances = dict(balances)

    async def balance_of(self, address):
        if address not in self.balances:
            raise WalletUnavailable(f"no balance for {address}")
        return self.balances[address]


def _workflow(api, balance=60.0, provider=None, timeout=1.0, user_id="dev-1"):
    session = SessionContext(base_url="http://api.test", token="t", user_id=user_id, timeout=timeout)
    provider = provider if provider is not None else FakeProvider()
    return ListingWorkflow(session, api=api, provider=provider, balance_reader=FakeBalances({WALLET: balance}))


# ── Scenarios ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_submit_lists_the_full_balance():
    api = FakeApi(claims=[_claim("c1", approved=100)])
    async with _workflow(api, balance=60) as wf:
        assert isinstance(wf.page_state, Ready)
        assert [c.id for c in wf.eligible] == ["c1"]

        assert wf.select(wf.eligible[0]) == 60
        await wf.submit_listing()

        assert api.list_calls == [("c1", 60)]
        assert wf.state == WorkflowState.READY
        assert wf.history[-3:] == [WorkflowState.SUBMITTING, WorkflowState.SUCCESS, WorkflowState.READY]
        assert wf.selected_claim is None
        assert wf.quantity == 0


@pytest.mark.asyncio
async def test_already_listed_claim_is_rejected_without_calling_the_backend():
    claim = _claim("c1")
    api = FakeApi(claims=[claim], listings=[_listing("l1", "c1")])
    async with _workflow(api) as wf:
        assert wf.eligible == []
        with pytest.raises(AlreadyListed, match="Credits already listed in marketplace"):
            await wf.submit_listing(claim, 10)

        assert api.list_calls == []
        assert WorkflowState.SUBMITTING not in wf.history


@pytest.mark.asyncio
async def test_zero_balance_means_nothing_can_be_sold():
    api = FakeApi(claims=[_claim("c1", approved=100)])
    async with _workflow(api, balance=0) as wf:
        assert wf.select(wf.eligible[0]) == 0
        with pytest.raises(InvalidAmount):
            await wf.submit_listing()
        assert api.list_calls == []


@pytest.mark.asyncio
async def test_quantity_over_approved_is_rejected():
    api = FakeApi(claims=[_claim("c1", approved=50)])
    async with _workflow(api, balance=100) as wf:
        with pytest.raises(ExceedsApproved):
            await wf.submit_listing(wf.eligible[0], 80)
        assert api.list_calls == []


@pytest.mark.asyncio
async def test_quantity_over_balance_is_rejected():
    api = FakeApi(claims=[_claim("c1", approved=100)])
    async with _workflow(api, balance=30) as wf:
        with pytest.raises(InsufficientBalance, match="You have 30"):
            await wf.submit_listing(wf.eligible[0], 40)
        assert api.list_calls == []


@pytest.mark.asyncio
async def test_submit_without_selection_requires_one():
    api = FakeApi(claims=[_claim("c1")])
    async with _workflow(api) as wf:
        with pytest.raises(SelectionRequired):
            await wf.submit_listing()


@pytest.mark.asyncio
async def test_submit_before_open_is_not_ready():
    wf = _workflow(FakeApi(claims=[_claim("c1")]))
    with pytest.raises(WorkflowNotReady):
        await wf.submit_listing(_claim("c1"), 10)
    assert wf.state == WorkflowState.IDLE


@pytest.mark.asyncio
async def test_backend_rejection_returns_to_ready_with_the_message():
    error = BackendRejected("Credits already listed in marketplace", status_code=400)
    api = FakeApi(claims=[_claim("c1")], list_error=error)
    async with _workflow(api) as wf:
        with pytest.raises(BackendRejected) as info:
            await wf.submit_listing(wf.eligible[0], 10)

        assert str(info.value) == "Credits already listed in marketplace"
        assert wf.last_error is error
        assert wf.state == WorkflowState.READY
        assert wf.history[-3:] == [WorkflowState.SUBMITTING, WorkflowState.FAILED, WorkflowState.READY]


@pytest.mark.asyncio
async def test_nan_quantity_is_an_invalid_amount():
    api = FakeApi(claims=[_claim("c1")])
    async with _workflow(api) as wf:
        with pytest.raises(InvalidAmount):
            await wf.submit_listing(wf.eligible[0], float("nan"))
        assert api.list_calls == []
        assert WorkflowState.SUBMITTING not in wf.history


@pytest.mark.asyncio
async def test_unissued_claim_is_refused_without_calling_the_backend():
    claim = _claim("c1", approved=100, issued=False)
    api = FakeApi(claims=[claim])
    async with _workflow(api) as wf:
        assert wf.eligible == []
        with pytest.raises(AlreadyListed):
            await wf.submit_listing(claim, 10)
        assert api.list_calls == []


@pytest.mark.asyncio
async def test_unexpected_list_error_becomes_a_network_failure():
    api = FakeApi(claims=[_claim("c1")], list_error=RuntimeError("boom"))
    async with _workflow(api) as wf:
        with pytest.raises(NetworkFetchFailed, match="boom") as info:
            await wf.submit_listing(wf.eligible[0], 10)

        assert isinstance(info.value.__cause__, RuntimeError)
        assert wf.last_error is info.value
        assert wf.state == WorkflowState.READY
        assert wf.history[-3:] == [WorkflowState.SUBMITTING, WorkflowState.FAILED, WorkflowState.READY]

# ── Page state ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_one_failed_read_degrades_the_page():
    api = FakeApi(claims=[_claim("c1")], fail={"listings"})
    async with _workflow(api) as wf:
        page = wf.page_state
        assert isinstance(page, Degraded)
        assert set(page.failures) == {"listings"}
        assert page.data.listings is None
        assert [c.id for c in page.data.claims] == ["c1"]
        assert wf.state == WorkflowState.READY


@pytest.mark.asyncio
async def test_every_read_failing_still_lands_in_ready():
    api = FakeApi(fail={"claims", "listings"})
    session = SessionContext(base_url="http://api.test", token="t")
    wf = ListingWorkflow(session, api=api)
    page = await wf.open()

    assert isinstance(page, Failed)
    assert set(page.failures) == {"claims", "listings", "wallet"}
    assert isinstance(page.failures["wallet"], WalletUnavailable)
    assert wf.state == WorkflowState.READY
    await wf.close()


@pytest.mark.asyncio
async def test_missing_wallet_zeroes_the_balance():
    api = FakeApi(claims=[_claim("c1")])
    session = SessionContext(base_url="http://api.test", token="t")
    wf = ListingWorkflow(session, api=api)
    page = await wf.open()

    assert isinstance(page, Degraded)
    assert set(page.failures) == {"wallet"}
    assert wf.balance == 0
    assert wf.select(wf.eligible[0]) == 0
    await wf.close()


@pytest.mark.asyncio
async def test_wallet_asks_for_authorization_when_no_account_is_exposed():
    provider = FakeProvider(authorized=False)
    async with _workflow(FakeApi(), provider=provider) as wf:
        assert provider.calls[:2] == ["eth_accounts", "eth_requestAccounts"]
        assert wf.wallet_address == WALLET
        assert wf.balance == 60


@pytest.mark.asyncio
async def test_slow_read_times_out_as_network_failure():
    api = FakeApi(claims=[_claim("c1")], delay=1.0)
    async with _workflow(api, timeout=0.05) as wf:
        page = wf.page_state
        assert isinstance(page, Degraded)
        assert isinstance(page.failures["claims"], NetworkFetchFailed)


@pytest.mark.asyncio
async def test_cancelled_open_restores_the_previous_state():
    api = FakeApi(claims=[_claim("c1")], delay=10.0)
    wf = _workflow(api)

    task = asyncio.create_task(wf.open())
    while wf.state != WorkflowState.LOADING:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert wf.state == WorkflowState.IDLE
    assert wf.claims == []
    assert wf.page_state is None


@pytest.mark.asyncio
async def test_second_submission_while_one_is_in_flight_is_refused():
    api = FakeApi(claims=[_claim("c1")])
    api.gate = asyncio.Event()
    async with _workflow(api) as wf:
        claim = wf.eligible[0]
        first = asyncio.create_task(wf.submit_listing(claim, 10))
        while wf.state != WorkflowState.SUBMITTING:
            await asyncio.sleep(0)

        with pytest.raises(SubmissionInProgress):
            await wf.submit_listing(claim, 10)

        api.gate.set()
        await first
        assert api.list_calls == [("c1", 10)]


# ── Account changes ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_account_change_revalidates_the_balance():
    provider = FakeProvider()
    api = FakeApi(claims=[_claim("c1")])
    session = SessionContext(base_url="http://api.test", token="t")
    wf = ListingWorkflow(
        session, api=api, provider=provider,
        balance_reader=FakeBalances({WALLET: 60, OTHER_WALLET: 5}),
    )
    async with wf:
        provider.emit([OTHER_WALLET])
        await wf.settle()
        assert wf.wallet_address == OTHER_WALLET
        assert wf.balance == 5

        provider.emit([])
        await wf.settle()
        assert wf.wallet_address == ""
        assert wf.balance == 0

    assert provider.handlers == []


@pytest.mark.asyncio
async def test_unknown_account_balance_falls_back_to_zero():
    provider = FakeProvider()
    async with _workflow(FakeApi(), provider=provider) as wf:
        provider.emit([OTHER_WALLET])
        await wf.settle()
        assert wf.wallet_address == OTHER_WALLET
        assert wf.balance == 0


# ── Eligibility reads ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_load_eligible_claims_is_scoped_to_the_session_user():
    api = FakeApi(claims=[_claim("c1"), _claim("c2")], listings=[_listing("l1", "c2", "partial")])
    wf = _workflow(api, user_id="dev-1")

    eligible = await wf.load_eligible_claims("dev-1")
    assert [c.id for c in eligible] == ["c1"]
    assert wf.state == WorkflowState.IDLE

    with pytest.raises(ValueError):
        await wf.load_eligible_claims("someone-else")


@pytest.mark.asyncio
async def test_load_eligible_claims_surfaces_read_failures():
    wf = _workflow(FakeApi(fail={"claims"}))
    with pytest.raises(NetworkFetchFailed):
        await wf.load_eligible_claims("dev-1")


@pytest.mark.parametrize(
    "claim",
    [
        _claim("c1", status="pending"),
        _claim("c1", status="inspection_completed"),
        _claim("c1", issued=False),
        _claim("c1", approved=0),
    ],
    ids=["pending", "inspected", "not-issued", "nothing-approved"],
)
def test_claims_that_are_not_issued_are_not_eligible(claim):
    assert eligible_claims([claim], []) == []


@pytest.mark.parametrize("status", ["sold", "cancelled"])
def test_closed_listings_do_not_exclude_their_claim(status):
    claims = [_claim("c1")]
    assert [c.id for c in eligible_claims(claims, [_listing("l1", "c1", status)])] == ["c1"]


@pytest.mark.parametrize("status", ["active", "partial"])
def test_open_listings_exclude_their_claim(status):
    claims = [_claim("c1"), _claim("c2")]
    assert [c.id for c in eligible_claims(claims, [_listing("l1", "c1", status)])] == ["c2"]


@pytest.mark.parametrize(
    "approved, balance, expected",
    [(100, 60, 60), (40, 60, 40), (50, 50, 50), (100, 0, 0)],
)
def test_max_sellable_is_the_smaller_of_approved_and_balance(approved, balance, expected):
    assert max_sellable(_claim("c1", approved=approved), balance) == expected
