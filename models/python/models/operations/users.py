from typing import Any, Dict, Optional

from models.entities.couchbase.users import User, UserData, UserProfile


async def user_get(user_id: str) -> Optional[User]:
    return await User.get(user_id)


async def user_get_data_for_frontend(user_id: str) -> Dict[str, Any]:
    user = await User.get(user_id)
    if not user:
        raise ValueError(f"User with ID {user_id} not found")
    return {"user": {"_id": user.id, **user.data.model_dump(mode="json")}}


async def user_create_if_not_exists_and_get(user_id: str, email: str) -> User:
    existing_user = await User.get(user_id)
    if existing_user:
        return existing_user
    new_user_data = UserData(email=email)
    return await User.create(new_user_data, key=user_id, user_id=user_id)


async def user_get_by_wallet(wallet_address: str) -> Optional[User]:
    return await User.find_one("LOWER(wallet_address) = $wallet", wallet=wallet_address.lower())


async def user_update_onboarding(user_id: str, data: dict) -> User:
    user = await User.get(user_id)
    if not user:
        raise ValueError(f"User with ID {user_id} not found")

    allowed_fields = {"role", "name", "organization", "wallet_address"}
    for key, value in data.items():
        if key in allowed_fields and value is not None:
            setattr(user.data, key, value)

    if data.get("profile"):
        user.data.profile = UserProfile(**data["profile"])

    return await User.update(user)
