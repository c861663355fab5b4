import logging
from typing import Any, Dict, List, Optional, Type

import httpx

from clients.http import HttpError, HttpTransportError, request

from .exceptions import BackendRejected, MarketplaceClientError, NetworkFetchFailed
from .models import CreditClaim, Listing
from .session import SessionContext

logger = logging.getLogger(__name__)


class MarketplaceApiClient:
    """Typed access to the claims and marketplace endpoints.

    Reads raise ``NetworkFetchFailed`` on any failure; writes raise
    ``BackendRejected`` with the backend's message when the backend refuses.
    """

    def __init__(self, session: SessionContext, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.session = session
        self._transport = transport

    def _url(self, path: str) -> str:
        return self.session.base_url.rstrip("/") + path

    async def _call(
        self,
        method: str,
        path: str,
        rejection: Type[MarketplaceClientError],
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            body = await request(
                method,
                self._url(path),
                headers=self.session.auth_headers(),
                json_data=json_data,
                params=params,
                timeout=self.session.timeout,
                transport=self._transport,
            )
        except HttpTransportError as e:
            raise NetworkFetchFailed(str(e)) from e
        except HttpError as e:
            message = _message(e.body) or f"Request failed with status {e.status_code}"
            logger.warning("%s %s rejected (%s): %s", method, path, e.status_code, message)
            if rejection is BackendRejected:
                raise BackendRejected(message, status_code=e.status_code) from e
            raise rejection(message) from e

        if not isinstance(body, dict):
            raise rejection(f"Unexpected response from {path}")
        if body.get("success") is False:
            message = _message(body) or "Request failed"
            raise rejection(message)
        return body

    # ── Reads ───────────────────────────────────────────────────────────────

    async def get_my_claims(self) -> List[CreditClaim]:
        body = await self._call("GET", "/api/claims/my-claims", NetworkFetchFailed)
        return [CreditClaim.model_validate(c) for c in body.get("claims") or []]

    async def get_my_listings(self) -> List[Listing]:
        body = await self._call("GET", "/api/marketplace/my-listings", NetworkFetchFailed)
        return [Listing.model_validate(item) for item in body.get("listings") or []]

    async def get_listings(self, status: str = "active", page: int = 1, limit: int = 10) -> Dict[str, Any]:
        body = await self._call(
            "GET",
            "/api/marketplace/listings",
            NetworkFetchFailed,
            params={"status": status, "page": page, "limit": limit},
        )
        body["listings"] = [Listing.model_validate(item) for item in body.get("listings") or []]
        return body

    # ── Writes ──────────────────────────────────────────────────────────────

    async def list_credits(self, claim_id: str, credits_to_sell: float) -> Dict[str, Any]:
        return await self._call(
            "POST",
            "/api/marketplace/list",
            BackendRejected,
            json_data={"claimId": claim_id, "creditsToSell": credits_to_sell},
        )

    async def buy_credits(
        self,
        listing_id: str,
        credits_to_buy: float,
        buyer_wallet_address: str,
        transaction_hash: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "listingId": listing_id,
            "creditsToBuy": credits_to_buy,
            "buyerWalletAddress": buyer_wallet_address,
        }
        if transaction_hash:
            payload["transactionHash"] = transaction_hash
        return await self._call("POST", "/api/marketplace/buy", BackendRejected, json_data=payload)

    async def cancel_listing(self, listing_id: str) -> Dict[str, Any]:
        return await self._call("PATCH", f"/api/marketplace/{listing_id}/cancel", BackendRejected)


def _message(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return None
