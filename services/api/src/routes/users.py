from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from models.operations.users import user_get_by_wallet, user_get_data_for_frontend, user_update_onboarding
from schemas.common import user_to_wire
from schemas.users import OnboardingRequest
from utils import log
from .dependencies import current_user_get, user_id_get

logger = log.get_logger(__name__)

router = APIRouter(tags=["users"])

@router.get("/user_data", response_model=Dict[str, Any])
async def route_user_data_get(
    user: dict = Depends(current_user_get)
) -> Dict[str, Any]:
    """
    Retrieves the stored profile of the authenticated user.
    """
    user_id = user_id_get(user)

    try:
        return await user_get_data_for_frontend(user_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/user_data/onboarding", response_model=Dict[str, Any])
async def route_user_onboarding(
    body: OnboardingRequest,
    user: dict = Depends(current_user_get),
) -> Dict[str, Any]:
    """
    Saves the role, display name, organization and wallet of a new user.
    """
    user_id = user_id_get(user)

    holder = await user_get_by_wallet(body.wallet_address)
    if holder is not None and holder.id != user_id:
        logger.warning(f"User {user_id} tried to register wallet {body.wallet_address} held by {holder.id}")
        raise HTTPException(status_code=400, detail="Wallet address already registered")

    try:
        updated = await user_update_onboarding(user_id, body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "user": user_to_wire(updated)}
