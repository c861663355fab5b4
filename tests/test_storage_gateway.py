from __future__ import annotations

import json

import httpx
import pytest

from clients.ipfs import IpfsGateway, IpfsUnavailable, IpfsUploadError, PinataClient, StorageGateway


def _node(handler):
    return IpfsGateway(host="ipfs.test", port=5001, protocol="http", transport=httpx.MockTransport(handler))


def _pinata(handler, jwt="pinata-jwt"):
    return PinataClient(jwt=jwt, base_url="https://pinata.test", transport=httpx.MockTransport(handler))


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.mark.asyncio
async def test_unreachable_node_leaves_gateway_disconnected():
    node = _node(_unreachable)

    assert await node.initialize() is False
    assert node.is_connected() is False
    with pytest.raises(IpfsUnavailable):
        await node.add_bytes(b"x", "x.txt")


@pytest.mark.asyncio
async def test_connected_node_takes_uploads():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v0/version":
            return httpx.Response(200, json={"Version": "0.29.0"})
        assert request.url.path == "/api/v0/add"
        assert request.url.params["pin"] == "true"
        return httpx.Response(200, json={"Name": "report.pdf", "Hash": "QmNode"})

    gateway = StorageGateway(node=_node(handler), pinata=_pinata(_unreachable, jwt=""))

    assert await gateway.initialize() is True
    assert gateway.node.version == "0.29.0"
    assert gateway.status() == {"ipfs": True, "pinata": False}
    assert await gateway.store_file(b"%PDF", "report.pdf") == "QmNode"
    await gateway.close()
    assert gateway.node.is_connected() is False


@pytest.mark.asyncio
async def test_falls_back_to_pinata_without_a_node():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, request.headers["Authorization"]))
        if request.url.path == "/pinning/pinJSONToIPFS":
            body = json.loads(request.content)
            assert body == {"pinataContent": {"projectId": "PRJ-1"}, "pinataMetadata": {"name": "meta"}}
            return httpx.Response(200, json={"IpfsHash": "QmJson"})
        return httpx.Response(200, json={"IpfsHash": "QmFile"})

    gateway = StorageGateway(node=_node(_unreachable), pinata=_pinata(handler))
    await gateway.initialize()

    assert gateway.is_available() is True
    assert await gateway.store_file(b"data", "meter.csv", {"projectId": "PRJ-1"}) == "QmFile"
    assert await gateway.store_json({"projectId": "PRJ-1"}, name="meta") == "QmJson"
    assert seen == [
        ("/pinning/pinFileToIPFS", "Bearer pinata-jwt"),
        ("/pinning/pinJSONToIPFS", "Bearer pinata-jwt"),
    ]


@pytest.mark.asyncio
async def test_pinata_rejection_carries_the_status():
    gateway = StorageGateway(
        node=_node(_unreachable),
        pinata=_pinata(lambda request: httpx.Response(401, text="invalid jwt")),
    )

    with pytest.raises(IpfsUploadError) as info:
        await gateway.store_file(b"data", "meter.csv")
    assert info.value.status_code == 401


@pytest.mark.asyncio
async def test_nothing_configured_is_unavailable():
    gateway = StorageGateway(node=_node(_unreachable), pinata=_pinata(_unreachable, jwt=""))
    await gateway.initialize()

    assert gateway.is_available() is False
    with pytest.raises(IpfsUnavailable):
        await gateway.store_json({"a": 1})
