import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel
from couchbase.exceptions import CASMismatchException, DocumentNotFoundException
from couchbase.options import ReplaceOptions

from .keyspace import Keyspace, get_keyspace


class BaseCouchbaseEntityData(BaseModel):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by_user_id: Optional[str] = None


DataT = TypeVar("DataT", bound=BaseCouchbaseEntityData)
T = TypeVar("T", bound="BaseModelCouchbase")


class BaseModelCouchbase(BaseModel, Generic[DataT]):
    id: str
    data: DataT
    cas: Optional[int] = None

    _collection_name: ClassVar[str] = ""

    @staticmethod
    def dump_data(data: BaseCouchbaseEntityData) -> dict:
        """Document body as stored. Fields marked exclude=True are kept."""
        doc = data.model_dump(mode='json')
        for field_name, field_info in type(data).model_fields.items():
            if field_info.exclude:
                value = getattr(data, field_name)
                if value is not None:
                    doc[field_name] = value
        return doc

    @classmethod
    def get_keyspace(cls) -> Keyspace:
        if not cls._collection_name:
            raise ValueError(f"_collection_name not set for {cls.__name__}")
        return get_keyspace(cls._collection_name)

    @classmethod
    def from_row(cls: type[T], row: dict) -> Optional[T]:
        """Build an entity from a `SELECT META().id, * FROM ...` row."""
        data = row.get(cls._collection_name)
        if not data:
            return None
        return cls(id=row["id"], data=data)

    @classmethod
    async def get(cls: type[T], id: str) -> Optional[T]:
        try:
            collection = await cls.get_keyspace().get_collection()
            result = await collection.get(id)
            return cls(id=id, data=result.content_as[dict], cas=result.cas)
        except DocumentNotFoundException:
            return None

    @classmethod
    async def create(cls: type[T], data: DataT, key: Optional[str] = None, user_id: Optional[str] = None) -> T:
        if key is None:
            key = str(uuid.uuid4())

        now = datetime.now(timezone.utc)
        if data.created_at is None:
            data.created_at = now
        data.updated_at = now
        if user_id:
            data.created_by_user_id = user_id

        result = await cls.get_keyspace().insert(cls.dump_data(data), key=key)
        return cls(id=key, data=data, cas=result.cas)

    @classmethod
    async def update(cls: type[T], item: T) -> T:
        """Replace the document. CAS-guarded when the item was read with a CAS."""
        collection = await cls.get_keyspace().get_collection()
        item.data.updated_at = datetime.now(timezone.utc)
        doc = cls.dump_data(item.data)
        if item.cas:
            result = await collection.replace(item.id, doc, ReplaceOptions(cas=item.cas))
        else:
            result = await collection.replace(item.id, doc)
        item.cas = result.cas
        return item

    @classmethod
    async def delete(cls: type[T], id: str) -> bool:
        try:
            await cls.get_keyspace().remove(id)
            return True
        except DocumentNotFoundException:
            return False

    @classmethod
    async def find(
        cls: type[T],
        where: str = "",
        order_by: str = "created_at DESC",
        limit: Optional[int] = None,
        offset: int = 0,
        **params: Any,
    ) -> List[T]:
        keyspace = cls.get_keyspace()
        query = f"SELECT META().id, * FROM {keyspace}"
        if where:
            query += f" WHERE {where}"
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit is not None:
            query += f" LIMIT {int(limit)} OFFSET {int(offset)}"
        rows = await keyspace.query(query, **params)
        return [item for item in (cls.from_row(row) for row in rows) if item is not None]

    @classmethod
    async def find_one(cls: type[T], where: str, **params: Any) -> Optional[T]:
        items = await cls.find(where, order_by="", limit=1, **params)
        return items[0] if items else None

    @classmethod
    async def count(cls, where: str = "", **params: Any) -> int:
        return await cls.get_keyspace().count(where, **params)

    @classmethod
    async def cas_update(
        cls: type[T],
        id: str,
        mutator: Callable[[DataT], Optional[str]],
        max_retries: int = 5,
    ) -> Tuple[Optional[T], Optional[str]]:
        """Read-modify-write a document with CAS-guarded retry.

        *mutator* mutates the data in place and returns ``None`` on success or
        an error string to abort without writing. On ``CASMismatchException``
        the document is re-read and the mutator re-applied, backing off
        10 ms, 20 ms, 40 ms, ...

        Returns ``(item, None)`` on success and ``(None, error)`` otherwise.
        """
        backoff_ms = 10
        for attempt in range(max_retries + 1):
            item = await cls.get(id)
            if item is None:
                return None, f"{cls.__name__} {id} not found"

            error = mutator(item.data)
            if error is not None:
                return None, error

            try:
                return await cls.update(item), None
            except CASMismatchException:
                if attempt == max_retries:
                    break
                await asyncio.sleep(backoff_ms / 1000)
                backoff_ms *= 2

        return None, "Concurrent update conflict, please retry"
