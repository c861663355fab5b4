class IpfsError(Exception):
    """Base exception for storage gateway errors."""
    pass


class IpfsUnavailable(IpfsError):
    """Raised when content is pushed while no IPFS node is connected."""
    pass


class IpfsUploadError(IpfsError):
    """Raised when a pin or add request is rejected."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
