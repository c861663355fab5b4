from .client import (
    BlockchainGateway,
    TransferReceipt,
    ERC20_ABI,
    CARBON_TOKEN_ADDRESS,
    from_base_units,
    to_base_units,
    is_address,
    get_blockchain_gateway,
    set_blockchain_gateway,
)
from .exceptions import BlockchainError, BlockchainUnavailable

__all__ = [
    "BlockchainGateway",
    "TransferReceipt",
    "ERC20_ABI",
    "CARBON_TOKEN_ADDRESS",
    "from_base_units",
    "to_base_units",
    "is_address",
    "get_blockchain_gateway",
    "set_blockchain_gateway",
    "BlockchainError",
    "BlockchainUnavailable",
]
