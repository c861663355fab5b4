import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

import conf
import uvicorn
from fastapi import FastAPI
from app import create_app
from utils import log

from clients.blockchain import BlockchainGateway, set_blockchain_gateway
from clients.couchbase import check_connection
from clients.ipfs import IpfsGateway, PinataClient, StorageGateway, set_storage_gateway

log.init(conf.get_log_level(), conf.get_environment())
logger = log.get_logger(__name__)


async def _init_blockchain() -> BlockchainGateway:
    chain_conf = conf.get_blockchain_conf()
    gateway = BlockchainGateway(
        rpc_url=chain_conf.rpc_url,
        private_key=chain_conf.private_key or "",
        token_address=chain_conf.token_address,
        timeout=chain_conf.timeout,
    )
    loop = asyncio.get_running_loop()
    if not await loop.run_in_executor(None, gateway.initialize):
        logger.warning("Starting without blockchain access; issuing, listing and buying will answer 503")
    set_blockchain_gateway(gateway)
    return gateway


async def _init_storage() -> StorageGateway:
    ipfs_conf = conf.get_ipfs_conf()
    gateway = StorageGateway(
        node=IpfsGateway(host=ipfs_conf.host, port=ipfs_conf.port, protocol=ipfs_conf.protocol),
        pinata=PinataClient(jwt=ipfs_conf.pinata_jwt or ""),
    )
    await gateway.initialize()
    if not gateway.is_available():
        logger.warning("No IPFS node and no Pinata credentials; uploads will answer 503")
    set_storage_gateway(gateway)
    return gateway


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Check database connection
    logger.info("Verifying Couchbase connection...")
    await check_connection()
    logger.info("Couchbase connection verified.")

    # Initialize auth client if enabled
    if conf.USE_AUTH:
        from utils import auth

        app.state.auth_client = auth.AuthClient(conf.get_auth_config())
    else:
        logger.warning("Authentication is disabled (set USE_AUTH to enable)")

    app.state.blockchain = await _init_blockchain()
    app.state.storage = await _init_storage()

    yield

    await app.state.storage.close()


app = create_app(lifespan=lifespan)

if not conf.validate():
    raise ValueError("Invalid configuration.")

http_conf = conf.get_http_conf()
logger.info(f"Starting API on port {http_conf.port}")

logger.info("--- Registered Routes ---")
for route in app.routes:
    methods_set = getattr(route, "methods", None)
    methods = ", ".join(methods_set) if methods_set else "Any"
    path = getattr(route, "path", "<unknown>")
    logger.info(f"{path} [{methods}]")
logger.info("-------------------------")

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=http_conf.host,
        port=http_conf.port,
        reload=http_conf.autoreload,
        log_level="info",
        reload_dirs=[str(Path(__file__).parent), "/models", "/clients"],
        log_config=None,
    )
