import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from couchbase.result import MutationResult
from couchbase.options import QueryOptions

from .config import get_cluster, DEFAULT_BUCKET_NAME


@dataclass
class Keyspace:
    bucket_name: str
    scope_name: str
    collection_name: str

    @classmethod
    def from_string(cls, keyspace: str) -> 'Keyspace':
        parts = keyspace.split('.')
        if len(parts) != 3:
            raise ValueError(
                "Invalid keyspace format. Expected 'bucket_name.scope_name.collection_name', "
                f"got '{keyspace}'"
            )
        return cls(*parts)

    def __str__(self) -> str:
        return f"`{self.bucket_name}`.`{self.scope_name}`.`{self.collection_name}`"

    async def query(self, query: str, **params: Any) -> List[Dict[str, Any]]:
        """Run a N1QL statement with named parameters ($name placeholders)."""
        cluster = await get_cluster()
        query = query.replace("${keyspace}", str(self))
        # unset optional filters are not sent
        params = {k: v for k, v in params.items() if v is not None}
        options = QueryOptions(named_parameters=params) if params else QueryOptions()
        result = cluster.query(query, options)
        return [row async for row in result]

    async def get_collection(self):
        cluster = await get_cluster()
        bucket = cluster.bucket(self.bucket_name)
        return bucket.scope(self.scope_name).collection(self.collection_name)

    async def insert(self, value: dict, key: Optional[str] = None, **kwargs) -> MutationResult:
        if key is None:
            key = str(uuid.uuid4())
        collection = await self.get_collection()
        return await collection.insert(key, value, **kwargs)

    async def upsert(self, key: str, value: dict, **kwargs) -> MutationResult:
        collection = await self.get_collection()
        return await collection.upsert(key, value, **kwargs)

    async def remove(self, key: str, **kwargs) -> int:
        collection = await self.get_collection()
        result = await collection.remove(key, **kwargs)
        return result.cas

    async def count(self, where: str = "", **params: Any) -> int:
        where_clause = f" WHERE {where}" if where else ""
        rows = await self.query(f"SELECT COUNT(*) AS total FROM {self}{where_clause}", **params)
        return int(rows[0]["total"]) if rows else 0


def get_keyspace(
    collection_name: str,
    scope_name: str = "_default",
    bucket_name: str = DEFAULT_BUCKET_NAME,
) -> Keyspace:
    """
    Create a Keyspace for a collection in the default bucket.

    Args:
        collection_name: Name of the collection
        scope_name: Name of the scope (defaults to "_default")
        bucket_name: Name of the bucket (defaults to COUCHBASE_BUCKET)
    """
    return Keyspace(bucket_name, scope_name, collection_name)
