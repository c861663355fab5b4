from .client import (
    IpfsGateway,
    PinataClient,
    StorageGateway,
    get_storage_gateway,
    set_storage_gateway,
)
from .exceptions import IpfsError, IpfsUnavailable, IpfsUploadError

__all__ = [
    "IpfsGateway",
    "PinataClient",
    "StorageGateway",
    "get_storage_gateway",
    "set_storage_gateway",
    "IpfsError",
    "IpfsUnavailable",
    "IpfsUploadError",
]
