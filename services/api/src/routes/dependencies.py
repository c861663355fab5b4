import asyncio
from typing import Optional

from fastapi import Depends, HTTPException, Request, UploadFile, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import conf
from clients.blockchain import BlockchainGateway, get_blockchain_gateway
from clients.ipfs import StorageGateway, get_storage_gateway
from models.operations.users import user_create_if_not_exists_and_get
from utils import log
from utils.constants import FILE_UPLOAD, MESSAGES, USER_ROLES

logger = log.get_logger(__name__)

security = HTTPBearer(auto_error=False)


def _email_claim(payload: dict) -> Optional[str]:
    email = payload.get("email")
    # Handle potential list format for email
    if isinstance(email, list):
        if not email:
            return None
        item = email[0]
        return item.get("value") if isinstance(item, dict) else str(item)
    return email


async def current_user_get(
    request: Request,
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=MESSAGES["UNAUTHORIZED"])
    if not hasattr(request.app.state, "auth_client"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No auth_client")

    payload = request.app.state.auth_client.decode_jwt(token.credentials)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID not found in token")

    email = _email_claim(payload)
    payload["db_user"] = await user_create_if_not_exists_and_get(user_id, str(email) if email else "")
    return payload


def require_role(*roles: str):
    """Dependency factory: the caller's stored role must be one of *roles*."""

    async def _require(user: dict = Depends(current_user_get)) -> dict:
        db_user = user.get("db_user")
        role = db_user.data.role if db_user is not None else None
        if role not in roles:
            logger.warning("User %s with role %s denied, needs one of %s", user.get("sub"), role, roles)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=MESSAGES["FORBIDDEN"])
        return user

    return _require


require_developer = require_role(USER_ROLES["PROJECT_DEVELOPER"])
require_buyer = require_role(USER_ROLES["CREDIT_BUYER"])
require_regulator = require_role(USER_ROLES["REGULATORY_BODY"])


async def require_authenticated(user: dict = Depends(current_user_get)) -> dict:
    return user


def user_id_get(user: dict) -> str:
    uid = user.get("sub")
    if not uid:
        raise HTTPException(status_code=400, detail="User ID not found in token")
    return uid


def user_role_get(user: dict) -> Optional[str]:
    db_user = user.get("db_user")
    return db_user.data.role if db_user is not None else None


def user_wallet_get(user: dict) -> Optional[str]:
    db_user = user.get("db_user")
    return db_user.data.wallet_address if db_user is not None else None


# ── Gateways ────────────────────────────────────────────────────────────────

def blockchain_get() -> BlockchainGateway:
    return get_blockchain_gateway()


def storage_get() -> StorageGateway:
    return get_storage_gateway()


def require_blockchain(chain: BlockchainGateway = Depends(blockchain_get)) -> BlockchainGateway:
    if not chain.is_connected():
        raise HTTPException(status_code=503, detail="Blockchain connection is not available")
    return chain


def require_storage(storage: StorageGateway = Depends(storage_get)) -> StorageGateway:
    if not storage.is_available():
        raise HTTPException(status_code=503, detail="Decentralized storage is not available")
    return storage


async def chain_call(fn, *args):
    """Run a blocking web3 call on the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, fn, *args)


async def upload_read(file: UploadFile) -> bytes:
    """Read an upload, enforcing the allowed types and the size limit."""
    if file.content_type not in FILE_UPLOAD["ALLOWED_TYPES"]:
        raise HTTPException(status_code=400, detail=f"Invalid file type: {file.content_type}")
    content = await file.read()
    if len(content) > conf.get_upload_max_file_size():
        raise HTTPException(status_code=413, detail=f"File too large: {file.filename}")
    return content
