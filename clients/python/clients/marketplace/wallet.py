"""Wallet provider access for the listing workflow.

``WalletProvider`` follows the EIP-1193 shape browser extensions expose:
``request(method, params)`` plus ``on``/``remove_listener`` for the
``accountsChanged`` event. ``Web3WalletProvider`` implements it over a
JSON-RPC node, polling ``eth_accounts`` to produce account-change events.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Protocol

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from clients.blockchain import CARBON_TOKEN_ADDRESS, from_base_units

from .exceptions import WalletUnavailable

logger = logging.getLogger(__name__)

ACCOUNTS_CHANGED = "accountsChanged"

AccountsHandler = Callable[[List[str]], None]


class WalletProvider(Protocol):
    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any: ...

    def on(self, event: str, handler: AccountsHandler) -> None: ...

    def remove_listener(self, event: str, handler: AccountsHandler) -> None: ...


class Web3WalletProvider:
    """EIP-1193 style provider backed by a node's JSON-RPC endpoint."""

    def __init__(self, rpc_url: str, poll_interval: float = 2.0, timeout: float = 15.0):
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.poll_interval = poll_interval
        self._handlers: List[AccountsHandler] = []
        self._poller: Optional[asyncio.Task] = None

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        try:
            response = await self.w3.provider.make_request(method, params or [])
        except Exception as e:
            raise WalletUnavailable(f"Wallet provider request {method} failed: {e}") from e
        if "error" in response:
            error = response["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise WalletUnavailable(f"Wallet provider rejected {method}: {message}")
        return response.get("result")

    def on(self, event: str, handler: AccountsHandler) -> None:
        if event != ACCOUNTS_CHANGED:
            raise ValueError(f"Unsupported event: {event}")
        self._handlers.append(handler)
        if self._poller is None:
            self._poller = asyncio.get_running_loop().create_task(self._poll())

    def remove_listener(self, event: str, handler: AccountsHandler) -> None:
        if event != ACCOUNTS_CHANGED:
            return
        if handler in self._handlers:
            self._handlers.remove(handler)
        if not self._handlers and self._poller is not None:
            self._poller.cancel()
            self._poller = None

    async def _accounts(self) -> Optional[List[str]]:
        try:
            return list(await self.request("eth_accounts") or [])
        except WalletUnavailable as e:
            logger.debug("Account poll failed: %s", e)
            return None

    async def _poll(self) -> None:
        last = await self._accounts()
        while True:
            await asyncio.sleep(self.poll_interval)
            current = await self._accounts()
            if current is None or current == last:
                continue
            last = current
            for handler in list(self._handlers):
                handler(current)


def _selector(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature)[:4])


BALANCE_OF_SELECTOR = _selector("balanceOf(address)")
DECIMALS_SELECTOR = _selector("decimals()")


class TokenBalanceReader:
    """Reads ``balanceOf`` and ``decimals`` of the carbon token through a provider."""

    def __init__(self, provider: WalletProvider, token_address: str = CARBON_TOKEN_ADDRESS):
        self.provider = provider
        self.token_address = token_address

    async def _call(self, data: str) -> int:
        result = await self.provider.request("eth_call", [{"to": self.token_address, "data": data}, "latest"])
        return Web3.to_int(hexstr=result)

    async def balance_of(self, address: str) -> float:
        if not Web3.is_address(address):
            raise WalletUnavailable(f"Invalid wallet address: {address}")
        data = BALANCE_OF_SELECTOR + address.lower().removeprefix("0x").rjust(64, "0")
        raw, decimals = await asyncio.gather(self._call(data), self._call(DECIMALS_SELECTOR))
        return from_base_units(raw, decimals)
