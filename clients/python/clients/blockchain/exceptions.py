class BlockchainError(Exception):
    """Base exception for the blockchain gateway."""
    pass


class BlockchainUnavailable(BlockchainError):
    """Raised when a chain call is attempted without a live connection."""
    pass
