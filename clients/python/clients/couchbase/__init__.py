from .config import (
    DEFAULT_BUCKET_NAME,
    HOST,
    PROTOCOL,
    config_errors,
    get_cluster,
    get_default_bucket,
    check_connection,
)
from .keyspace import Keyspace, get_keyspace
from .base_model import (
    BaseModelCouchbase,
    BaseCouchbaseEntityData,
    DataT,
    T,
)

from couchbase.exceptions import (
    CASMismatchException,
    DocumentExistsException,
    DocumentNotFoundException,
)

__all__ = [
    "DEFAULT_BUCKET_NAME",
    "HOST",
    "PROTOCOL",
    "config_errors",
    "get_cluster",
    "get_default_bucket",
    "check_connection",
    "Keyspace",
    "get_keyspace",
    "BaseModelCouchbase",
    "BaseCouchbaseEntityData",
    "DataT",
    "T",
    "CASMismatchException",
    "DocumentExistsException",
    "DocumentNotFoundException",
]
