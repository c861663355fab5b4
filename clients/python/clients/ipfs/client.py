"""Storage gateway for project documents.

Two backends: a plain IPFS node reached over its HTTP RPC API, and the
Pinata pinning service. The node connection is optional; when the version
check fails the gateway stays usable but reports itself disconnected and
callers fall back to Pinata.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

import httpx

from .exceptions import IpfsUnavailable, IpfsUploadError

logger = logging.getLogger(__name__)

# Configuration
IPFS_HOST = os.environ.get("IPFS_HOST", "localhost")
IPFS_PORT = int(os.environ.get("IPFS_PORT", "5001"))
IPFS_PROTOCOL = os.environ.get("IPFS_PROTOCOL", "http")
PINATA_JWT = os.environ.get("PINATA_JWT", "")

PINATA_BASE_URL = "https://api.pinata.cloud"
DEFAULT_TIMEOUT_S = 30.0


class IpfsGateway:
    """Handle on an IPFS node's HTTP RPC API."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        protocol: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.host = host or IPFS_HOST
        self.port = port or IPFS_PORT
        self.protocol = protocol or IPFS_PROTOCOL
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.version: Optional[str] = None

    @property
    def api_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}/api/v0"

    async def initialize(self) -> bool:
        """Check the node with ``/version``. Never raises."""
        client = httpx.AsyncClient(base_url=self.api_url, timeout=self.timeout, transport=self._transport)
        try:
            response = await client.post("/version")
            response.raise_for_status()
            self.version = response.json().get("Version")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("IPFS initialization failed, continuing without a node: %s", e)
            await client.aclose()
            self._client = None
            return False

        self._client = client
        logger.info("Connected to IPFS node version: %s", self.version)
        return True

    def get_client(self) -> Optional[httpx.AsyncClient]:
        return self._client

    def is_connected(self) -> bool:
        return self._client is not None

    async def add_bytes(self, content: bytes, filename: str) -> str:
        """Add *content* to the node and return its CID."""
        if self._client is None:
            raise IpfsUnavailable("IPFS node is not connected")
        try:
            response = await self._client.post(
                "/add", params={"pin": "true"}, files={"file": (filename, content)}
            )
        except httpx.HTTPError as e:
            raise IpfsUploadError(f"IPFS add failed: {e}") from e
        if response.status_code != 200:
            raise IpfsUploadError(f"IPFS add failed: {response.text}", response.status_code)
        return response.json()["Hash"]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class PinataClient:
    """Minimal client for Pinata's pinning endpoints."""

    def __init__(
        self,
        jwt: Optional[str] = None,
        base_url: str = PINATA_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.jwt = jwt if jwt is not None else PINATA_JWT
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.jwt)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.jwt}"}

    async def _post(self, path: str, **kwargs: Any) -> str:
        if not self.is_configured():
            raise IpfsUnavailable("Pinata is not configured (PINATA_JWT)")
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(path, headers=self._headers(), **kwargs)
            except httpx.HTTPError as e:
                raise IpfsUploadError(f"Pinata request failed: {e}") from e
        if response.status_code != 200:
            logger.error("Pinata %s returned %s: %s", path, response.status_code, response.text)
            raise IpfsUploadError(f"Pinata upload failed: {response.text}", response.status_code)
        return response.json()["IpfsHash"]

    async def pin_file(self, content: bytes, filename: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        files = {"file": (filename, content)}
        data = {}
        if metadata:
            data["pinataMetadata"] = json.dumps({"name": filename, "keyvalues": metadata})
        return await self._post("/pinning/pinFileToIPFS", files=files, data=data)

    async def pin_json(self, content: Dict[str, Any], name: Optional[str] = None) -> str:
        body: Dict[str, Any] = {"pinataContent": content}
        if name:
            body["pinataMetadata"] = {"name": name}
        return await self._post("/pinning/pinJSONToIPFS", json=body)


class StorageGateway:
    """Picks a backend per upload: the node when connected, else Pinata."""

    def __init__(self, node: Optional[IpfsGateway] = None, pinata: Optional[PinataClient] = None) -> None:
        self.node = node or IpfsGateway()
        self.pinata = pinata or PinataClient()

    async def initialize(self) -> bool:
        return await self.node.initialize()

    def is_available(self) -> bool:
        return self.node.is_connected() or self.pinata.is_configured()

    def status(self) -> Dict[str, bool]:
        return {"ipfs": self.node.is_connected(), "pinata": self.pinata.is_configured()}

    async def store_file(self, content: bytes, filename: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        if self.node.is_connected():
            return await self.node.add_bytes(content, filename)
        return await self.pinata.pin_file(content, filename, metadata)

    async def store_json(self, content: Dict[str, Any], name: Optional[str] = None) -> str:
        if self.node.is_connected():
            payload = json.dumps(content).encode()
            return await self.node.add_bytes(payload, name or "data.json")
        return await self.pinata.pin_json(content, name)

    async def close(self) -> None:
        await self.node.close()


_storage_instance: Optional[StorageGateway] = None


def get_storage_gateway() -> StorageGateway:
    global _storage_instance
    if _storage_instance is None:
        _storage_instance = StorageGateway()
    return _storage_instance


def set_storage_gateway(gateway: Optional[StorageGateway]) -> None:
    global _storage_instance
    _storage_instance = gateway
