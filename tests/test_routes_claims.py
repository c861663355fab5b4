from __future__ import annotations

import pytest

from fakes import DEV_WALLET, bearer, seed_claim, seed_project, seed_user
from models.entities.couchbase.credit_claims import CreditClaim, Inspection
from models.entities.couchbase.projects import Project

CLAIM_BODY = {
    "projectId": "PRJ-1",
    "creditsRequested": 100,
    "reportingPeriod": {"startDate": "2024-01-01T00:00:00Z", "endDate": "2024-06-30T00:00:00Z"},
}


@pytest.fixture
def users(store):
    seed_user(store, "dev-1", "project_developer", DEV_WALLET)
    seed_user(store, "dev-2", "project_developer")
    seed_user(store, "reg-1", "regulatory_body")
    seed_user(store, "reg-2", "regulatory_body")


@pytest.fixture
def inspected(store, users):
    seed_project(store)
    seed_claim(
        store,
        status="inspection_completed",
        inspection=Inspection(inspector_id="reg-1", inspection_result="passed"),
    )


# ── Submission ──────────────────────────────────────────────────────────────

def test_submit_claim_for_approved_project(client, store, users):
    seed_project(store)

    response = client.post("/api/claims", json=CLAIM_BODY, headers=bearer("dev-1"))

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Credit claim submitted successfully"
    claim = body["claim"]
    assert claim["_id"].startswith("CLM-")
    assert claim["status"] == "pending"
    assert claim["project"] == "PRJ-1"
    assert claim["developer"] == "dev-1"
    assert claim["claimDetails"]["creditsRequested"] == 100


def test_only_one_open_claim_per_project(client, store, users):
    seed_project(store)
    client.post("/api/claims", json=CLAIM_BODY, headers=bearer("dev-1"))

    response = client.post("/api/claims", json=CLAIM_BODY, headers=bearer("dev-1"))

    assert response.status_code == 400
    assert response.json()["message"] == "A claim is already pending for this project"
    assert len(store.all(CreditClaim)) == 1


@pytest.mark.parametrize(
    "project, credits, message",
    [
        ({"with_mrv": False}, 100, "Project must have MRV data before claiming credits"),
        ({"status": "submitted"}, 100, "Only approved projects can claim credits"),
        ({}, 600, "Credits requested cannot exceed expected credits"),
        ({}, 0, "Credits requested must be greater than zero"),
    ],
)
def test_submit_claim_preconditions(client, store, users, project, credits, message):
    seed_project(store, **project)

    response = client.post(
        "/api/claims", json={**CLAIM_BODY, "creditsRequested": credits}, headers=bearer("dev-1")
    )

    assert response.status_code == 400
    assert response.json()["message"] == message


def test_claim_on_another_developers_project_is_forbidden(client, store, users):
    seed_project(store)

    response = client.post("/api/claims", json=CLAIM_BODY, headers=bearer("dev-2"))

    assert response.status_code == 403


# ── Reading ─────────────────────────────────────────────────────────────────

def test_claim_visible_to_owner_and_regulator_only(client, store, users):
    seed_claim(store, status="pending")

    assert client.get("/api/claims/CLM-1", headers=bearer("dev-1")).status_code == 200
    assert client.get("/api/claims/CLM-1", headers=bearer("reg-1")).status_code == 200
    assert client.get("/api/claims/CLM-1", headers=bearer("dev-2")).status_code == 403


def test_regulator_lists_claims_by_status(client, store, users):
    seed_claim(store, "CLM-1", status="pending")
    seed_claim(store, "CLM-2", status="approved")

    body = client.get("/api/claims?status=pending", headers=bearer("reg-1")).json()

    assert body["total"] == 1
    assert [claim["_id"] for claim in body["claims"]] == ["CLM-1"]
    assert client.get("/api/claims", headers=bearer("dev-1")).status_code == 403


def test_my_claims(client, store, users):
    seed_claim(store, "CLM-1", status="pending")
    seed_claim(store, "CLM-2", developer_id="dev-2", status="pending")

    body = client.get("/api/claims/my-claims", headers=bearer("dev-1")).json()

    assert [claim["_id"] for claim in body["claims"]] == ["CLM-1"]


# ── Inspection ──────────────────────────────────────────────────────────────

def test_inspection_must_be_in_the_future(client, store, users):
    seed_claim(store, status="pending")

    response = client.post(
        "/api/claims/CLM-1/schedule-inspection",
        json={"inspectionDate": "2020-01-01T00:00:00Z"},
        headers=bearer("reg-1"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Inspection date must be in the future"


def test_schedule_then_complete_inspection(client, store, users):
    seed_claim(store, status="pending")

    scheduled = client.post(
        "/api/claims/CLM-1/schedule-inspection",
        json={"inspectionDate": "2099-01-01T09:00:00Z"},
        headers=bearer("reg-1"),
    )
    assert scheduled.status_code == 200
    assert scheduled.json()["claim"]["status"] == "inspection_scheduled"
    assert scheduled.json()["claim"]["inspection"]["inspectorId"] == "reg-1"

    other = client.post(
        "/api/claims/CLM-1/complete-inspection",
        json={"findings": "All meters verified", "inspectionResult": "passed"},
        headers=bearer("reg-2"),
    )
    assert other.status_code == 403
    assert other.json()["message"] == "Only the assigned inspector can complete this inspection"

    completed = client.post(
        "/api/claims/CLM-1/complete-inspection",
        json={"findings": "All meters verified", "inspectionResult": "passed"},
        headers=bearer("reg-1"),
    )
    assert completed.status_code == 200
    inspection = completed.json()["claim"]["inspection"]
    assert completed.json()["claim"]["status"] == "inspection_completed"
    assert inspection["inspectionResult"] == "passed"
    assert inspection["completedDate"] is not None


def test_complete_without_schedule_is_rejected(client, store, users):
    seed_claim(store, status="pending")

    response = client.post(
        "/api/claims/CLM-1/complete-inspection",
        json={"findings": "n/a", "inspectionResult": "failed"},
        headers=bearer("reg-1"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Inspection not scheduled for this claim"


# ── Issuance ────────────────────────────────────────────────────────────────

def test_issue_credits_mints_to_the_developer(client, store, chain, inspected):
    response = client.post(
        "/api/claims/CLM-1/issue-credits", json={"approvedCredits": 100}, headers=bearer("reg-1")
    )

    assert response.status_code == 200
    body = response.json()
    assert body["txHash"] == "0x" + "0" * 63 + "1"
    assert body["claim"]["status"] == "approved"
    assert body["claim"]["creditIssuance"]["approvedCredits"] == 100
    assert body["claim"]["creditIssuance"]["creditsIssued"] is True
    assert chain.transfers == [(DEV_WALLET, 100)]
    assert store.load(Project, "PRJ-1").data.status == "completed"


def test_issue_more_than_requested_is_rejected(client, store, chain, inspected):
    response = client.post(
        "/api/claims/CLM-1/issue-credits", json={"approvedCredits": 150}, headers=bearer("reg-1")
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Approved credits cannot exceed requested credits"
    assert chain.transfers == []


def test_issue_needs_a_developer_wallet(client, store, chain, inspected):
    seed_user(store, "dev-1", "project_developer", None)

    response = client.post(
        "/api/claims/CLM-1/issue-credits", json={"approvedCredits": 50}, headers=bearer("reg-1")
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid or missing developer wallet address"


def test_failed_mint_leaves_the_claim_unissued(client, store, chain, inspected):
    chain.fail_transfers = True

    response = client.post(
        "/api/claims/CLM-1/issue-credits", json={"approvedCredits": 50}, headers=bearer("reg-1")
    )

    assert response.status_code == 502
    claim = store.load(CreditClaim, "CLM-1")
    assert claim.data.status == "inspection_completed"
    assert claim.data.credit_issuance.credits_issued is False
    assert claim.data.credit_issuance.issuance_pending is False


def test_issuance_in_flight_blocks_a_second_transfer(client, store, chain, inspected):
    store.raw(CreditClaim, "CLM-1")["credit_issuance"]["issuance_pending"] = True

    response = client.post(
        "/api/claims/CLM-1/issue-credits", json={"approvedCredits": 100}, headers=bearer("reg-1")
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Credits are already being issued for this claim"
    assert chain.transfers == []


def test_claim_is_flagged_while_tokens_move(client, store, chain, inspected):
    seen = []
    transfer = chain.token_transfer

    def token_transfer(to, amount):
        seen.append(store.raw(CreditClaim, "CLM-1")["credit_issuance"]["issuance_pending"])
        return transfer(to, amount)

    chain.token_transfer = token_transfer

    first = client.post(
        "/api/claims/CLM-1/issue-credits", json={"approvedCredits": 100}, headers=bearer("reg-1")
    )
    second = client.post(
        "/api/claims/CLM-1/issue-credits", json={"approvedCredits": 100}, headers=bearer("reg-1")
    )

    assert first.status_code == 200
    assert second.status_code == 400
    assert seen == [True]
    assert chain.transfers == [(DEV_WALLET, 100)]
    assert store.load(CreditClaim, "CLM-1").data.credit_issuance.issuance_pending is False


def test_failed_mint_can_be_retried(client, store, chain, inspected):
    chain.fail_transfers = True
    client.post("/api/claims/CLM-1/issue-credits", json={"approvedCredits": 50}, headers=bearer("reg-1"))
    chain.fail_transfers = False

    response = client.post(
        "/api/claims/CLM-1/issue-credits", json={"approvedCredits": 50}, headers=bearer("reg-1")
    )

    assert response.status_code == 200
    assert chain.transfers == [(DEV_WALLET, 50)]


def test_reject_claim(client, store, users):
    seed_claim(store, status="under_review")

    response = client.post("/api/claims/CLM-1/reject", json={"reason": "Meter data missing"}, headers=bearer("reg-1"))

    assert response.status_code == 200
    assert response.json()["claim"]["status"] == "rejected"
    assert response.json()["claim"]["review"]["comments"] == "Meter data missing"


def test_approved_claim_cannot_be_rejected(client, store, users):
    seed_claim(store)

    response = client.post("/api/claims/CLM-1/reject", json={"reason": "Too late"}, headers=bearer("reg-1"))

    assert response.status_code == 400
    assert response.json()["message"] == "Cannot reject an already approved claim"


# ── Documents ───────────────────────────────────────────────────────────────

def test_upload_supporting_documents(client, store, storage, users):
    seed_claim(store, status="pending")

    response = client.post(
        "/api/claims/CLM-1/documents",
        files=[("files", ("meter.pdf", b"%PDF-1.7", "application/pdf"))],
        headers=bearer("dev-1"),
    )

    assert response.status_code == 200
    documents = response.json()["claim"]["claimDetails"]["supportingDocuments"]
    assert documents[0]["fileName"] == "meter.pdf"
    assert documents[0]["fileHash"] == "bafyfile1"
    assert storage.files == [("meter.pdf", b"%PDF-1.7")]


def test_upload_rejects_unknown_file_types(client, store, storage, users):
    seed_claim(store, status="pending")

    response = client.post(
        "/api/claims/CLM-1/documents",
        files=[("files", ("notes.exe", b"MZ", "application/x-msdownload"))],
        headers=bearer("dev-1"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid file type: application/x-msdownload"
    assert storage.files == []


def test_upload_needs_storage(client, store, storage, users):
    seed_claim(store, status="pending")
    storage.available = False

    response = client.post(
        "/api/claims/CLM-1/documents",
        files=[("files", ("meter.pdf", b"%PDF-1.7", "application/pdf"))],
        headers=bearer("dev-1"),
    )

    assert response.status_code == 503
    assert response.json()["message"] == "Decentralized storage is not available"
