from fastapi import APIRouter, Depends

from clients.blockchain import BlockchainGateway
from clients.ipfs import StorageGateway
from utils import log

from .buyer import router as buyer_router
from .claims import router as claims_router
from .dependencies import blockchain_get, storage_get
from .marketplace import router as marketplace_router
from .projects import router as projects_router
from .users import router as users_router

logger = log.get_logger(__name__)

router = APIRouter(prefix="/api")
router.include_router(users_router)
router.include_router(projects_router)
router.include_router(claims_router)
router.include_router(marketplace_router)
router.include_router(buyer_router)


@router.get("/health", tags=["dev"])
async def route_health(
    chain: BlockchainGateway = Depends(blockchain_get),
    storage: StorageGateway = Depends(storage_get),
):
    """Connection state of the external gateways."""
    return {
        "status": "ok",
        "blockchain": {"connected": chain.is_connected(), "networkId": chain.get_network_id()},
        "storage": storage.status(),
    }
