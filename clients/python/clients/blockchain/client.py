"""Blockchain gateway: a configuration wrapper around a web3 HTTP connection.

The gateway resolves the network id, optionally loads a signing account from
a private key, and exposes the handful of ERC-20 calls the marketplace needs
(balance, transfer, receipt lookup). Everything here is blocking; async
callers go through ``loop.run_in_executor``.
"""

import logging
import os
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from .exceptions import BlockchainError, BlockchainUnavailable

logger = logging.getLogger(__name__)

# Configuration
BLOCKCHAIN_RPC_URL = os.environ.get("BLOCKCHAIN_RPC_URL", "http://localhost:8545")
BLOCKCHAIN_PRIVATE_KEY = os.environ.get("BLOCKCHAIN_PRIVATE_KEY", "")
BLOCKCHAIN_TIMEOUT_S = float(os.environ.get("BLOCKCHAIN_TIMEOUT_S", "15"))
CARBON_TOKEN_ADDRESS = os.environ.get(
    "CARBON_TOKEN_ADDRESS", "0x555ab359988f83854eB2A89B1841E4fA5A6592b2"
)

RECEIPT_TIMEOUT_S = 120

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transferFrom",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


def from_base_units(raw: int, decimals: int) -> float:
    """``raw / 10**decimals`` as a float, computed exactly before rounding."""
    return float(Decimal(int(raw)) / (Decimal(10) ** int(decimals)))


def to_base_units(amount: float, decimals: int) -> int:
    """Inverse of :func:`from_base_units`, truncating sub-unit dust."""
    scaled = Decimal(str(amount)) * (Decimal(10) ** int(decimals))
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def is_address(value: Any) -> bool:
    return isinstance(value, str) and Web3.is_address(value)


@dataclass
class TransferReceipt:
    tx_hash: str
    block_number: Optional[int]


class BlockchainGateway:
    """Opaque handle on a JSON-RPC endpoint plus the carbon token contract."""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        private_key: Optional[str] = None,
        token_address: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.rpc_url = rpc_url or BLOCKCHAIN_RPC_URL
        self.token_address = token_address or CARBON_TOKEN_ADDRESS
        self.timeout = timeout if timeout is not None else BLOCKCHAIN_TIMEOUT_S
        self._private_key = private_key if private_key is not None else BLOCKCHAIN_PRIVATE_KEY

        self.web3: Optional[Web3] = None
        self.network_id: Optional[int] = None
        self.default_account: Optional[str] = None
        self._account = None
        self._decimals: Optional[int] = None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """Connect and resolve the network. Never raises; returns False when
        the node is unreachable so the API can start without chain access."""
        try:
            web3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout}))
            if not web3.is_connected():
                logger.warning("Blockchain node at %s not reachable, chain features disabled", self.rpc_url)
                return False

            self.network_id = int(web3.net.version)
            logger.info("Connected to blockchain network: %s", self.network_id)

            if self._private_key:
                self._account = web3.eth.account.from_key(self._private_key)
                self.default_account = self._account.address
                logger.info("Default account set: %s", self.default_account)

            self.web3 = web3
            return True
        except Exception as e:
            logger.error("Blockchain initialization error: %s", e)
            self.web3 = None
            return False

    def get_web3(self) -> Optional[Web3]:
        return self.web3

    def get_network_id(self) -> Optional[int]:
        return self.network_id

    def get_default_account(self) -> Optional[str]:
        return self.default_account

    def is_connected(self) -> bool:
        return self.web3 is not None

    def _require_web3(self) -> Web3:
        if self.web3 is None:
            raise BlockchainUnavailable("Blockchain connection is not available")
        return self.web3

    # ------------------------------------------------------------------
    # Token contract
    # ------------------------------------------------------------------

    def token_contract(self):
        web3 = self._require_web3()
        return web3.eth.contract(address=Web3.to_checksum_address(self.token_address), abi=ERC20_ABI)

    def token_decimals(self) -> int:
        if self._decimals is None:
            self._decimals = int(self.token_contract().functions.decimals().call())
        return self._decimals

    def token_balance(self, address: str) -> float:
        """Balance of *address* in whole tokens."""
        if not is_address(address):
            raise BlockchainError(f"Invalid address: {address}")
        raw = self.token_contract().functions.balanceOf(Web3.to_checksum_address(address)).call()
        return from_base_units(raw, self.token_decimals())

    def token_transfer(self, to: str, amount: float) -> TransferReceipt:
        """Transfer *amount* whole tokens from the default account and wait
        for the receipt."""
        web3 = self._require_web3()
        if self._account is None:
            raise BlockchainError("No signing account configured (BLOCKCHAIN_PRIVATE_KEY)")
        if not is_address(to):
            raise BlockchainError(f"Invalid recipient address: {to}")

        units = to_base_units(amount, self.token_decimals())
        if units <= 0:
            raise BlockchainError(f"Transfer amount too small: {amount}")

        sender = self._account.address
        tx = self.token_contract().functions.transfer(Web3.to_checksum_address(to), units).build_transaction({
            "from": sender,
            "nonce": web3.eth.get_transaction_count(sender),
            "chainId": web3.eth.chain_id,
        })
        signed = self._account.sign_transaction(tx)
        tx_hash = web3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Token transfer submitted: %s", tx_hash.hex())

        receipt = web3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT_S)
        if receipt.get("status") != 1:
            raise BlockchainError(f"Token transfer {tx_hash.hex()} reverted")
        logger.info("Token transfer confirmed in block %s", receipt.get("blockNumber"))
        return TransferReceipt(tx_hash=tx_hash.hex(), block_number=receipt.get("blockNumber"))

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        web3 = self._require_web3()
        try:
            return dict(web3.eth.get_transaction_receipt(tx_hash))
        except TransactionNotFound:
            return None


_gateway_instance: Optional[BlockchainGateway] = None


def get_blockchain_gateway() -> BlockchainGateway:
    """Returns the process-wide gateway (not yet initialized on first call)."""
    global _gateway_instance
    if _gateway_instance is None:
        _gateway_instance = BlockchainGateway()
    return _gateway_instance


def set_blockchain_gateway(gateway: Optional[BlockchainGateway]) -> None:
    global _gateway_instance
    _gateway_instance = gateway
