from typing import Literal, Optional
from pydantic import BaseModel
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData

UserRole = Literal["project_developer", "credit_buyer", "regulatory_body"]


class UserContact(BaseModel):
    phone: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None


class UserProfile(BaseModel):
    avatar: Optional[str] = None
    bio: Optional[str] = None
    contact: UserContact = UserContact()


class UserData(BaseCouchbaseEntityData):
    email: str
    name: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[UserRole] = None
    wallet_address: Optional[str] = None
    profile: UserProfile = UserProfile()
    is_verified: bool = False
    is_active: bool = True


class User(BaseModelCouchbase[UserData]):
    _collection_name = "users"
